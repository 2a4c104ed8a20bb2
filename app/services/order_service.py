import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.config import settings
from app.errors import ConcurrentTransitionError, NotFoundError
from app.metrics import ORDER_TRANSITIONS, ORDERS_CREATED
from app.models.menu_item import MenuItem
from app.models.order import Order, OrderItem
from app.schemas.order import OrderCreate, OrderResponse
from app.services.change_feed import ChangePublisher
from shared import lifecycle
from shared.events import ChangeType, OrderItemRow, OrderRow, Table
from shared.lifecycle import ACTIVE_STATUSES, IllegalTransitionError, OrderStatus

logger = logging.getLogger(__name__)

Transition = Callable[[OrderStatus], OrderStatus]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _row(order: Order) -> dict[str, Any]:
    return OrderRow.model_validate(order).model_dump(mode="json")


def _build_response(order: Order) -> OrderResponse:
    return OrderResponse(
        **OrderRow.model_validate(order).model_dump(),
        items=[OrderItemRow.model_validate(item) for item in order.items],
        next_action=lifecycle.action_label(order.status),
    )


async def _fetch_order(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    order_id: uuid.UUID,
    refresh: bool = False,
) -> Order | None:
    query = (
        select(Order)
        .where(Order.id == order_id, Order.restaurant_id == restaurant_id)
        .options(selectinload(Order.items))
    )
    if refresh:
        query = query.execution_options(populate_existing=True)
    result = await db.execute(query)
    return result.scalars().first()


async def _require_order(
    db: AsyncSession, restaurant_id: uuid.UUID, order_id: uuid.UUID
) -> Order:
    order = await _fetch_order(db, restaurant_id, order_id)
    if order is None:
        raise NotFoundError("Order", order_id)
    return order


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


async def get_order(
    db: AsyncSession, restaurant_id: uuid.UUID, order_id: uuid.UUID
) -> OrderResponse:
    return _build_response(await _require_order(db, restaurant_id, order_id))


async def list_active_orders(
    db: AsyncSession, restaurant_id: uuid.UUID, now: datetime | None = None
) -> list[OrderResponse]:
    """Orders still on the board, plus paid orders from the recent window."""
    now = now or datetime.utcnow()
    paid_cutoff = now - timedelta(hours=settings.recent_paid_window_hours)
    result = await db.execute(
        select(Order)
        .where(
            Order.restaurant_id == restaurant_id,
            or_(
                Order.status.in_(ACTIVE_STATUSES),
                and_(Order.status == OrderStatus.PAID, Order.created_at >= paid_cutoff),
            ),
        )
        .options(selectinload(Order.items))
        .order_by(Order.created_at.desc())
    )
    return [_build_response(order) for order in result.scalars().all()]


async def create_order(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    order_data: OrderCreate,
    request_id: str,
    publisher: ChangePublisher,
) -> OrderResponse:
    # 1. Validate menu items against this restaurant's menu
    menu_item_ids = {item.menu_item_id for item in order_data.items}
    result = await db.execute(
        select(MenuItem).where(
            MenuItem.id.in_(menu_item_ids),
            MenuItem.restaurant_id == restaurant_id,
            MenuItem.is_available.is_(True),
        )
    )
    menu_items: dict[uuid.UUID, MenuItem] = {m.id: m for m in result.scalars().all()}

    missing = menu_item_ids - set(menu_items.keys())
    if missing:
        raise ValueError(f"Menu items not found or unavailable: {sorted(str(m) for m in missing)}")

    # 2. Snapshot names and prices, calculate totals
    line_items: list[dict] = []
    total = Decimal("0.00")
    for req_item in order_data.items:
        menu_item = menu_items[req_item.menu_item_id]
        unit_price = menu_item.price
        total_price = unit_price * req_item.quantity
        total += total_price
        line_items.append(
            {
                "menu_item_id": menu_item.id,
                "menu_item_name": menu_item.name,
                "quantity": req_item.quantity,
                "unit_price": unit_price,
                "total_price": total_price,
                "notes": req_item.notes,
            }
        )

    # 3. Persist order + items in one transaction
    order = Order(
        restaurant_id=restaurant_id,
        table_number=order_data.table_number,
        customer_name=order_data.customer_name,
        notes=order_data.notes,
        status=lifecycle.initial_status(order_data.payment_method),
        payment_method=order_data.payment_method,
        total_amount=total,
    )
    db.add(order)
    await db.flush()  # obtain order.id before inserting items

    for line in line_items:
        db.add(OrderItem(order_id=order.id, **line))

    await db.commit()
    ORDERS_CREATED.labels(order_data.payment_method.value).inc()

    logger.info(
        "Order persisted",
        extra={
            "order_id": str(order.id),
            "restaurant_id": str(restaurant_id),
            "request_id": request_id,
            "status": order.status.value,
            "amount": float(total),
            "item_count": len(line_items),
        },
    )

    # 4. Publish the bare row; subscribers fetch the items themselves
    await publisher.publish(
        Table.ORDERS,
        ChangeType.INSERT,
        restaurant_id,
        new=_row(order),
        correlation_id=request_id,
    )

    order = await _fetch_order(db, restaurant_id, order.id, refresh=True)
    return _build_response(order)


async def transition_order(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    order_id: uuid.UUID,
    transition: Transition,
    request_id: str,
    publisher: ChangePublisher,
    notes: str | None = None,
) -> OrderResponse:
    """
    Apply an engine transition and persist it with a compare-and-swap write.

    The UPDATE only matches while the row still holds the status we read, so
    two staff members acting on the same order cannot silently overwrite each
    other: the slower one gets ConcurrentTransitionError and nothing changes.
    """
    order = await _require_order(db, restaurant_id, order_id)
    action = getattr(transition, "__name__", "transition")
    current = order.status
    old_row = _row(order)

    try:
        next_status = transition(current)
    except IllegalTransitionError:
        ORDER_TRANSITIONS.labels(action, "illegal").inc()
        raise

    values: dict[str, Any] = {"status": next_status, "updated_at": datetime.utcnow()}
    if notes is not None:
        values["notes"] = notes

    result = await db.execute(
        update(Order)
        .where(
            Order.id == order_id,
            Order.restaurant_id == restaurant_id,
            Order.status == current,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        ORDER_TRANSITIONS.labels(action, "conflict").inc()
        raise ConcurrentTransitionError(order_id, current.value)

    await db.commit()
    ORDER_TRANSITIONS.labels(action, "applied").inc()

    order = await _fetch_order(db, restaurant_id, order_id, refresh=True)
    logger.info(
        "Order status changed",
        extra={
            "order_id": str(order_id),
            "restaurant_id": str(restaurant_id),
            "request_id": request_id,
            "from_status": current.value,
            "to_status": next_status.value,
        },
    )

    await publisher.publish(
        Table.ORDERS,
        ChangeType.UPDATE,
        restaurant_id,
        new=_row(order),
        old=old_row,
        correlation_id=request_id,
    )
    return _build_response(order)


async def update_order_status(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    order_id: uuid.UUID,
    status: OrderStatus,
    request_id: str,
    publisher: ChangePublisher,
) -> OrderResponse:
    """Move to an explicit target status, which must be an engine-legal successor."""

    def set_status(current: OrderStatus) -> OrderStatus:
        if status == OrderStatus.CANCELLED:
            return lifecycle.cancel(current)
        if status == OrderStatus.REJECTED:
            return lifecycle.reject(current)
        next_status = lifecycle.advance(current)
        if next_status != status:
            raise IllegalTransitionError(
                current.value,
                f"illegal transition: '{current.value}' can only advance to '{next_status.value}'",
            )
        return next_status

    return await transition_order(db, restaurant_id, order_id, set_status, request_id, publisher)


async def confirm_payment(
    db: AsyncSession,
    restaurant_id: uuid.UUID,
    order_id: uuid.UUID,
    success: bool,
    payment_id: str | None,
    request_id: str,
    publisher: ChangePublisher,
) -> OrderResponse:
    """Outcome of an online payment: accept the pending order or cancel it."""
    order = await _require_order(db, restaurant_id, order_id)
    if order.status != OrderStatus.PENDING:
        raise IllegalTransitionError(
            order.status.value,
            f"payment already settled: order is '{order.status.value}', not 'pending'",
        )

    if success:
        note = f"Paid online (payment id {payment_id})" if payment_id else "Paid online"
        return await transition_order(
            db, restaurant_id, order_id, lifecycle.advance, request_id, publisher, notes=note
        )
    return await transition_order(
        db, restaurant_id, order_id, lifecycle.cancel, request_id, publisher, notes="Payment failed"
    )
