"""
Pure reconciliation of change-feed actions into a tenant's live board.

``reduce(view, action)`` never performs I/O and never mutates its input: it
returns a new TenantView, the notices the presentation layer should show, and
an Outcome describing what happened. Applying the same action twice yields
the same view and no second notice.
"""

import uuid
from enum import Enum
from typing import NamedTuple, Union

from pydantic import BaseModel

from shared.events import OrderRow, OrderWithItems, ServiceRequestRow, ServiceRequestStatus
from shared.lifecycle import CLOSED_STATUSES, OrderStatus


class Outcome(str, Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"  # already reflected in the view
    STALE = "stale"  # targets an id the view does not hold
    OUTDATED = "outdated"  # older than what the view already holds
    IGNORED = "ignored"  # irrelevant for the live board
    FOREIGN_TENANT = "foreign_tenant"


class Urgency(str, Enum):
    NORMAL = "normal"
    HIGH = "high"


# ---------------------------------------------------------------------------
# View
# ---------------------------------------------------------------------------


class TenantView(BaseModel):
    restaurant_id: uuid.UUID
    orders: tuple[OrderWithItems, ...] = ()  # newest first
    service_requests: tuple[ServiceRequestRow, ...] = ()  # newest first

    model_config = {"frozen": True}

    def find_order(self, order_id: uuid.UUID) -> OrderWithItems | None:
        return next((o for o in self.orders if o.id == order_id), None)

    def has_order(self, order_id: uuid.UUID) -> bool:
        return self.find_order(order_id) is not None

    def has_service_request(self, request_id: uuid.UUID) -> bool:
        return any(r.id == request_id for r in self.service_requests)

    def orders_in(self, status: OrderStatus) -> list[OrderWithItems]:
        return [o for o in self.orders if o.status == status]


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


class OrderCreated(BaseModel):
    order: OrderWithItems

    @property
    def restaurant_id(self) -> uuid.UUID:
        return self.order.restaurant_id


class OrderUpdated(BaseModel):
    row: OrderRow

    @property
    def restaurant_id(self) -> uuid.UUID:
        return self.row.restaurant_id


class ServiceRequestCreated(BaseModel):
    request: ServiceRequestRow

    @property
    def restaurant_id(self) -> uuid.UUID:
        return self.request.restaurant_id


class ServiceRequestUpdated(BaseModel):
    request: ServiceRequestRow

    @property
    def restaurant_id(self) -> uuid.UUID:
        return self.request.restaurant_id


FeedAction = Union[OrderCreated, OrderUpdated, ServiceRequestCreated, ServiceRequestUpdated]


class SnapshotLoaded(BaseModel):
    """
    Authoritative state read from the store.

    ``replay`` holds the feed actions applied while the fetch was in flight,
    in arrival order. They are folded over the snapshot so changes committed
    after the read are not lost; the reducer's idempotency absorbs the ones
    the snapshot already reflects.
    """

    restaurant_id: uuid.UUID
    orders: list[OrderWithItems]
    service_requests: list[ServiceRequestRow]
    replay: list[FeedAction] = []


Action = Union[SnapshotLoaded, FeedAction]


# ---------------------------------------------------------------------------
# Effects
# ---------------------------------------------------------------------------


class NewOrderNotice(BaseModel):
    order: OrderWithItems
    urgency: Urgency = Urgency.NORMAL
    display_seconds: int = 5

    @property
    def message(self) -> str:
        return f"New order: table {self.order.table_number or '?'} - {self.order.total_amount:.2f}"


class NewServiceRequestNotice(BaseModel):
    request: ServiceRequestRow
    urgency: Urgency = Urgency.HIGH
    display_seconds: int = 10

    @property
    def message(self) -> str:
        return f"Table {self.request.table_no} is calling a waiter"


class OrderStatusChangedNotice(BaseModel):
    order: OrderWithItems
    previous_status: OrderStatus

    @property
    def message(self) -> str:
        return (
            f"Order for table {self.order.table_number or '?'} moved "
            f"{self.previous_status.value} -> {self.order.status.value}"
        )


Effect = Union[NewOrderNotice, NewServiceRequestNotice, OrderStatusChangedNotice]


class Reduction(NamedTuple):
    view: TenantView
    effects: tuple[Effect, ...]
    outcome: Outcome


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

# Columns an UPDATE may change on a live order. Items and totals are fixed at creation.
_PATCHABLE_ORDER_FIELDS = {"status", "notes", "customer_name", "table_number", "updated_at"}


def _unchanged(view: TenantView, outcome: Outcome) -> Reduction:
    return Reduction(view, (), outcome)


def _snapshot_loaded(view: TenantView, action: SnapshotLoaded) -> Reduction:
    orders = tuple(o for o in action.orders if o.status not in CLOSED_STATUSES)
    service_requests = tuple(
        r for r in action.service_requests if r.status == ServiceRequestStatus.PENDING
    )
    new_view = view.model_copy(update={"orders": orders, "service_requests": service_requests})
    # Notices for replayed actions were already emitted when they first arrived.
    for replayed in action.replay:
        new_view = reduce(new_view, replayed).view
    return Reduction(new_view, (), Outcome.APPLIED)


def _order_created(view: TenantView, action: OrderCreated) -> Reduction:
    order = action.order
    if view.has_order(order.id):
        return _unchanged(view, Outcome.DUPLICATE)
    if order.status in CLOSED_STATUSES:
        return _unchanged(view, Outcome.IGNORED)
    new_view = view.model_copy(update={"orders": (order, *view.orders)})
    return Reduction(new_view, (NewOrderNotice(order=order),), Outcome.APPLIED)


def _order_updated(view: TenantView, action: OrderUpdated) -> Reduction:
    row = action.row
    current = view.find_order(row.id)
    if current is None:
        # Missed the INSERT; the next reconciliation picks the order up.
        return _unchanged(view, Outcome.STALE)
    if row.updated_at < current.updated_at:
        return _unchanged(view, Outcome.OUTDATED)

    patched = current.model_copy(update=row.model_dump(include=_PATCHABLE_ORDER_FIELDS))
    if patched == current:
        return _unchanged(view, Outcome.DUPLICATE)

    effects: tuple[Effect, ...] = ()
    if patched.status != current.status:
        effects = (OrderStatusChangedNotice(order=patched, previous_status=current.status),)

    if patched.status in CLOSED_STATUSES:
        orders = tuple(o for o in view.orders if o.id != row.id)
    else:
        orders = tuple(patched if o.id == row.id else o for o in view.orders)
    return Reduction(view.model_copy(update={"orders": orders}), effects, Outcome.APPLIED)


def _service_request_created(view: TenantView, action: ServiceRequestCreated) -> Reduction:
    request = action.request
    if request.status != ServiceRequestStatus.PENDING:
        return _unchanged(view, Outcome.IGNORED)
    if view.has_service_request(request.id):
        return _unchanged(view, Outcome.DUPLICATE)
    new_view = view.model_copy(update={"service_requests": (request, *view.service_requests)})
    return Reduction(new_view, (NewServiceRequestNotice(request=request),), Outcome.APPLIED)


def _service_request_updated(view: TenantView, action: ServiceRequestUpdated) -> Reduction:
    request = action.request
    if request.status != ServiceRequestStatus.RESOLVED:
        return _unchanged(view, Outcome.IGNORED)
    if not view.has_service_request(request.id):
        return _unchanged(view, Outcome.STALE)
    remaining = tuple(r for r in view.service_requests if r.id != request.id)
    return Reduction(view.model_copy(update={"service_requests": remaining}), (), Outcome.APPLIED)


_HANDLERS = {
    SnapshotLoaded: _snapshot_loaded,
    OrderCreated: _order_created,
    OrderUpdated: _order_updated,
    ServiceRequestCreated: _service_request_created,
    ServiceRequestUpdated: _service_request_updated,
}


def reduce(view: TenantView, action: Action) -> Reduction:
    if action.restaurant_id != view.restaurant_id:
        return _unchanged(view, Outcome.FOREIGN_TENANT)
    return _HANDLERS[type(action)](view, action)
