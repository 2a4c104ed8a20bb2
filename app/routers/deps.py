import uuid

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services import restaurant_service
from app.services.change_feed import ChangePublisher


def request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def get_publisher(request: Request) -> ChangePublisher:
    return request.app.state.change_publisher


async def tenant_id(restaurant_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> uuid.UUID:
    """Resolve the restaurant from the path; every tenant-scoped route goes through here."""
    await restaurant_service.get_restaurant(db, restaurant_id)
    return restaurant_id
