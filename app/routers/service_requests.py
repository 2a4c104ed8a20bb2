import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.routers.deps import get_publisher, request_id, tenant_id
from app.schemas.service_request import ServiceRequestCreate
from app.services import service_request_service
from app.services.change_feed import ChangePublisher
from shared.events import ServiceRequestRow

router = APIRouter()


@router.post("", response_model=ServiceRequestRow, status_code=status.HTTP_201_CREATED)
async def call_waiter(
    body: ServiceRequestCreate,
    restaurant_id: uuid.UUID = Depends(tenant_id),
    req_id: str = Depends(request_id),
    publisher: ChangePublisher = Depends(get_publisher),
    db: AsyncSession = Depends(get_db),
) -> ServiceRequestRow:
    return await service_request_service.create_service_request(
        db, restaurant_id, body.table_no, req_id, publisher
    )


@router.get("/pending", response_model=list[ServiceRequestRow])
async def list_pending(
    restaurant_id: uuid.UUID = Depends(tenant_id),
    db: AsyncSession = Depends(get_db),
) -> list[ServiceRequestRow]:
    return await service_request_service.list_pending_service_requests(db, restaurant_id)


@router.post("/{service_request_id}/resolve", response_model=ServiceRequestRow)
async def resolve(
    service_request_id: uuid.UUID,
    restaurant_id: uuid.UUID = Depends(tenant_id),
    req_id: str = Depends(request_id),
    publisher: ChangePublisher = Depends(get_publisher),
    db: AsyncSession = Depends(get_db),
) -> ServiceRequestRow:
    return await service_request_service.resolve_service_request(
        db, restaurant_id, service_request_id, req_id, publisher
    )
