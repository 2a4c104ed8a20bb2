"""
Order lifecycle state machine shared by the store service and the sync worker.

The engine is a set of pure functions over OrderStatus. Callers persist the
returned status and publish the change themselves; nothing here touches I/O.
"""

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    RECEIVED = "received"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    PAID = "paid"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class PaymentMethod(str, Enum):
    CASH = "cash"
    ONLINE = "online"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class IllegalTransitionError(ValueError):
    """A transition was requested from a status that does not allow it."""

    def __init__(self, status: str, message: str) -> None:
        super().__init__(message)
        self.status = status


class TerminalStateError(IllegalTransitionError):
    def __init__(self, status: str) -> None:
        super().__init__(status, f"terminal state: order is already '{status}'")


class UnknownStatusError(IllegalTransitionError):
    def __init__(self, status: str) -> None:
        super().__init__(status, f"unrecognized order status '{status}'")


class IllegalCancellationError(IllegalTransitionError):
    def __init__(self, status: str) -> None:
        super().__init__(
            status, f"illegal cancellation: order in '{status}' can no longer be cancelled"
        )


# ---------------------------------------------------------------------------
# Transition tables
# ---------------------------------------------------------------------------

NEXT_STATUS: dict[OrderStatus, OrderStatus] = {
    OrderStatus.PENDING: OrderStatus.RECEIVED,
    OrderStatus.RECEIVED: OrderStatus.PREPARING,
    OrderStatus.PREPARING: OrderStatus.READY,
    OrderStatus.READY: OrderStatus.SERVED,
    OrderStatus.SERVED: OrderStatus.PAID,
}

ACTION_LABELS: dict[OrderStatus, str] = {
    OrderStatus.PENDING: "Accept",
    OrderStatus.RECEIVED: "Start preparing",
    OrderStatus.PREPARING: "Mark ready",
    OrderStatus.READY: "Serve",
    OrderStatus.SERVED: "Checkout",
}

TERMINAL_STATUSES = frozenset({OrderStatus.PAID, OrderStatus.CANCELLED, OrderStatus.REJECTED})
CANCELLABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.RECEIVED})
ACTIVE_STATUSES = frozenset(NEXT_STATUS)

# Orders in these statuses drop out of the live board entirely.
CLOSED_STATUSES = frozenset({OrderStatus.CANCELLED, OrderStatus.REJECTED})


def parse_status(status: OrderStatus | str) -> OrderStatus:
    if isinstance(status, OrderStatus):
        return status
    try:
        return OrderStatus(status)
    except ValueError:
        raise UnknownStatusError(str(status)) from None


def initial_status(payment_method: PaymentMethod | str) -> OrderStatus:
    """Online orders wait for payment confirmation; everything else is accepted directly."""
    if PaymentMethod(payment_method) == PaymentMethod.ONLINE:
        return OrderStatus.PENDING
    return OrderStatus.RECEIVED


def is_terminal(status: OrderStatus | str) -> bool:
    return parse_status(status) in TERMINAL_STATUSES


def can_cancel(status: OrderStatus | str) -> bool:
    return parse_status(status) in CANCELLABLE_STATUSES


def action_label(status: OrderStatus | str) -> str | None:
    return ACTION_LABELS.get(parse_status(status))


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


def advance(status: OrderStatus | str) -> OrderStatus:
    """
    Return the single forward successor of ``status``.

    Raises TerminalStateError for paid/cancelled/rejected orders and
    UnknownStatusError for values outside the vocabulary.
    """
    current = parse_status(status)
    next_status = NEXT_STATUS.get(current)
    if next_status is None:
        raise TerminalStateError(current.value)
    return next_status


def cancel(status: OrderStatus | str) -> OrderStatus:
    """Cancel an order that has not started preparation yet."""
    current = parse_status(status)
    if current not in CANCELLABLE_STATUSES:
        raise IllegalCancellationError(current.value)
    return OrderStatus.CANCELLED


def reject(status: OrderStatus | str) -> OrderStatus:
    current = parse_status(status)
    if current not in CANCELLABLE_STATUSES:
        raise IllegalTransitionError(
            current.value, f"illegal rejection: order in '{current.value}' was already accepted"
        )
    return OrderStatus.REJECTED
