import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.order import Order
from app.models.restaurant import Restaurant
from app.schemas.stats import PlatformStats

logger = logging.getLogger(__name__)


async def platform_stats(db: AsyncSession) -> PlatformStats:
    """Counts across every tenant. The only read in the store that is not restaurant-scoped."""
    restaurants = await db.scalar(select(func.count()).select_from(Restaurant))
    active_restaurants = await db.scalar(
        select(func.count()).select_from(Restaurant).where(Restaurant.is_active.is_(True))
    )
    rows = await db.execute(select(Order.status, func.count()).group_by(Order.status))
    orders_by_status = {status.value: count for status, count in rows.all()}

    stats = PlatformStats(
        restaurants=restaurants or 0,
        active_restaurants=active_restaurants or 0,
        orders=sum(orders_by_status.values()),
        orders_by_status=orders_by_status,
    )
    logger.debug("Computed platform stats", extra=stats.model_dump())
    return stats
