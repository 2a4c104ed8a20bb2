"""
Read side of the persistent store used by the synchronizer.

Every query takes the TenantContext explicitly and filters on its
restaurant id; nothing here is allowed to read a tenant from anywhere else.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timedelta

from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from shared.events import OrderItemRow, OrderRow, OrderWithItems, ServiceRequestRow, ServiceRequestStatus
from shared.lifecycle import ACTIVE_STATUSES, OrderStatus
from sync_service.context import TenantContext
from sync_service.models import Order, ServiceRequest

logger = logging.getLogger(__name__)


class OrderStore(ABC):
    """Query surface the synchronizer consumes."""

    @abstractmethod
    async def fetch_order(self, ctx: TenantContext, order_id: uuid.UUID) -> OrderWithItems | None:
        """Fetch one order with its items, or None if it is not visible to this tenant."""

    @abstractmethod
    async def fetch_active_orders(self, ctx: TenantContext) -> list[OrderWithItems]:
        """Orders still on the board plus recently paid ones, newest first."""

    @abstractmethod
    async def fetch_pending_service_requests(self, ctx: TenantContext) -> list[ServiceRequestRow]:
        """Unresolved service requests, newest first."""


def _to_order(order: Order) -> OrderWithItems:
    return OrderWithItems(
        **OrderRow.model_validate(order).model_dump(),
        items=[OrderItemRow.model_validate(item) for item in order.items],
    )


class SqlOrderStore(OrderStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], recent_paid_window_hours: int = 24):
        self._session_factory = session_factory
        self._recent_paid_window = timedelta(hours=recent_paid_window_hours)

    async def fetch_order(self, ctx: TenantContext, order_id: uuid.UUID) -> OrderWithItems | None:
        async with self._session_factory() as db:
            result = await db.execute(
                select(Order)
                .where(Order.id == order_id, Order.restaurant_id == ctx.restaurant_id)
                .options(selectinload(Order.items))
            )
            order = result.scalars().first()
            return _to_order(order) if order is not None else None

    async def fetch_active_orders(self, ctx: TenantContext) -> list[OrderWithItems]:
        paid_cutoff = datetime.utcnow() - self._recent_paid_window
        async with self._session_factory() as db:
            result = await db.execute(
                select(Order)
                .where(
                    Order.restaurant_id == ctx.restaurant_id,
                    or_(
                        Order.status.in_(ACTIVE_STATUSES),
                        and_(Order.status == OrderStatus.PAID, Order.created_at >= paid_cutoff),
                    ),
                )
                .options(selectinload(Order.items))
                .order_by(Order.created_at.desc())
            )
            orders = [_to_order(o) for o in result.scalars().all()]

        logger.debug(
            "Fetched active orders",
            extra={"restaurant_id": str(ctx.restaurant_id), "count": len(orders)},
        )
        return orders

    async def fetch_pending_service_requests(self, ctx: TenantContext) -> list[ServiceRequestRow]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ServiceRequest)
                .where(
                    ServiceRequest.restaurant_id == ctx.restaurant_id,
                    ServiceRequest.status == ServiceRequestStatus.PENDING,
                )
                .order_by(ServiceRequest.created_at.desc())
            )
            return [ServiceRequestRow.model_validate(r) for r in result.scalars().all()]
