from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.schemas.stats import PlatformStats
from app.services import stats_service

router = APIRouter()


@router.get("/stats", response_model=PlatformStats)
async def platform_stats(db: AsyncSession = Depends(get_db)) -> PlatformStats:
    return await stats_service.platform_stats(db)
