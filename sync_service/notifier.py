"""
Notification surface produced by the synchronizer.

Callbacks are fire-and-forget: the presentation layer decides on sound,
toast or highlight, and a failing callback never reaches the synchronizer.
"""

import logging

from sync_service.metrics import NOTIFICATIONS
from sync_service.reducer import (
    Effect,
    NewOrderNotice,
    NewServiceRequestNotice,
    OrderStatusChangedNotice,
)

logger = logging.getLogger(__name__)


class Notifier:
    """Base notifier; override the callbacks you care about."""

    def on_new_order(self, notice: NewOrderNotice) -> None:
        pass

    def on_new_service_request(self, notice: NewServiceRequestNotice) -> None:
        pass

    def on_order_status_changed(self, notice: OrderStatusChangedNotice) -> None:
        pass


class LoggingNotifier(Notifier):
    """Writes one structured log line per notice. Used by the standalone worker."""

    def on_new_order(self, notice: NewOrderNotice) -> None:
        logger.info(
            "NOTIFICATION: New order",
            extra={
                "order_id": str(notice.order.id),
                "restaurant_id": str(notice.order.restaurant_id),
                "table_number": notice.order.table_number,
                "total_amount": float(notice.order.total_amount),
                "urgency": notice.urgency.value,
                "display_seconds": notice.display_seconds,
                "text": notice.message,
            },
        )

    def on_new_service_request(self, notice: NewServiceRequestNotice) -> None:
        logger.warning(
            "NOTIFICATION: Waiter called",
            extra={
                "service_request_id": str(notice.request.id),
                "restaurant_id": str(notice.request.restaurant_id),
                "table_no": notice.request.table_no,
                "urgency": notice.urgency.value,
                "display_seconds": notice.display_seconds,
                "text": notice.message,
            },
        )

    def on_order_status_changed(self, notice: OrderStatusChangedNotice) -> None:
        logger.info(
            "NOTIFICATION: Order status changed",
            extra={
                "order_id": str(notice.order.id),
                "restaurant_id": str(notice.order.restaurant_id),
                "from_status": notice.previous_status.value,
                "to_status": notice.order.status.value,
            },
        )


_CALLBACKS = {
    NewOrderNotice: ("new_order", "on_new_order"),
    NewServiceRequestNotice: ("service_request", "on_new_service_request"),
    OrderStatusChangedNotice: ("status_changed", "on_order_status_changed"),
}


def dispatch(notifier: Notifier, effect: Effect) -> None:
    kind, method = _CALLBACKS[type(effect)]
    try:
        getattr(notifier, method)(effect)
    except Exception as exc:
        logger.error(
            "Notifier callback failed",
            extra={"kind": kind, "notifier": type(notifier).__name__, "error": str(exc)},
        )
        NOTIFICATIONS.labels(kind, "failed").inc()
        return
    NOTIFICATIONS.labels(kind, "sent").inc()
