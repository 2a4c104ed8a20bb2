"""
Keeps one tenant's live board in sync with the store through the change feed.

Subscription lifecycle:

    DISCONNECTED --connect(ctx)--> SUBSCRIBING --snapshot--> SUBSCRIBED
         ^                                                       |
         +------------------ disconnect() / connect(other) ------+

Guarantees:
  - Tenant isolation: every event is checked against the current tenant, and
    results of fetches started for a previous tenant are discarded.
  - Idempotency: the reducer upserts/removes by id, so redelivered events do
    not duplicate entries or re-fire notices.
  - Isolation per event: a failing event is logged and counted, the stream
    keeps flowing.
  - Reconciliation completeness: feed actions applied while a snapshot fetch
    is in flight are replayed onto that snapshot, so a late snapshot never
    hides a newer change.
  - Known limitation: an UPDATE for an order the view has not seen yet is
    dropped, not buffered; the next reconciliation repairs it.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from enum import Enum

from shared.events import ChangeEvent, ChangeType, OrderRow, ServiceRequestRow, Table
from sync_service.context import TenantContext
from sync_service.feed import ChangeFeed, FeedSubscription
from sync_service.metrics import RECONCILIATIONS, SUBSCRIPTION_STATE, SYNC_EVENTS
from sync_service.notifier import Notifier, dispatch
from sync_service.reducer import (
    Action,
    FeedAction,
    OrderCreated,
    OrderUpdated,
    Outcome,
    ServiceRequestCreated,
    ServiceRequestUpdated,
    SnapshotLoaded,
    TenantView,
    reduce,
)
from sync_service.store import OrderStore

logger = logging.getLogger(__name__)

# (table, event kinds) subscribed on connect
SUBSCRIPTIONS: tuple[tuple[Table, tuple[ChangeType, ...]], ...] = (
    (Table.ORDERS, (ChangeType.INSERT, ChangeType.UPDATE)),
    (Table.SERVICE_REQUESTS, (ChangeType.INSERT, ChangeType.UPDATE)),
)


class SubscriptionState(str, Enum):
    DISCONNECTED = "disconnected"
    SUBSCRIBING = "subscribing"
    SUBSCRIBED = "subscribed"


_STATE_GAUGE_VALUES = {
    SubscriptionState.DISCONNECTED: 0,
    SubscriptionState.SUBSCRIBING: 1,
    SubscriptionState.SUBSCRIBED: 2,
}

ViewListener = Callable[[TenantView], None]


class Synchronizer:
    def __init__(self, store: OrderStore, feed: ChangeFeed, notifier: Notifier | None = None):
        self._store = store
        self._feed = feed
        self._notifier = notifier or Notifier()
        self._state = SubscriptionState.DISCONNECTED
        self._context: TenantContext | None = None
        self._view: TenantView | None = None
        self._subscriptions: list[FeedSubscription] = []
        self._listeners: list[ViewListener] = []
        # Feed actions applied during each in-flight reconciliation
        self._replay_logs: list[list[FeedAction]] = []

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def context(self) -> TenantContext | None:
        return self._context

    @property
    def view(self) -> TenantView | None:
        return self._view

    def add_listener(self, listener: ViewListener) -> None:
        """Register a callback invoked with every new view."""
        self._listeners.append(listener)

    def _set_state(self, state: SubscriptionState) -> None:
        self._state = state
        if self._context is not None:
            SUBSCRIPTION_STATE.labels(str(self._context.restaurant_id)).set(_STATE_GAUGE_VALUES[state])

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, ctx: TenantContext) -> None:
        """Subscribe for ``ctx`` and load the authoritative snapshot; switches tenant if needed."""
        if self._state != SubscriptionState.DISCONNECTED:
            logger.info(
                "Switching tenant",
                extra={
                    "from_restaurant_id": str(self._context.restaurant_id) if self._context else None,
                    "to_restaurant_id": str(ctx.restaurant_id),
                },
            )
            await self.disconnect()

        self._context = ctx
        self._view = TenantView(restaurant_id=ctx.restaurant_id)
        self._set_state(SubscriptionState.SUBSCRIBING)

        try:
            for table, kinds in SUBSCRIPTIONS:
                subscription = await self._feed.subscribe(ctx, table, kinds)
                if self._context is not ctx:
                    # connect() for another tenant ran while we were subscribing.
                    await self._feed.unsubscribe(subscription)
                    return
                self._subscriptions.append(subscription)
            # Rows committed between subscribe and fetch also arrive as events;
            # the snapshot replays them.
            await self._reconcile(ctx)
        except Exception as exc:
            logger.error(
                "Subscription failed",
                extra={"restaurant_id": str(ctx.restaurant_id), "error": str(exc)},
            )
            if self._context is ctx:
                await self.disconnect()
            raise

        if self._context is ctx:
            self._set_state(SubscriptionState.SUBSCRIBED)
            logger.info("Subscribed to live board", extra={"restaurant_id": str(ctx.restaurant_id)})

    async def disconnect(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            try:
                await self._feed.unsubscribe(subscription)
            except Exception as exc:
                logger.warning(
                    "Failed to unsubscribe cleanly",
                    extra={"table": subscription.table.value, "error": str(exc)},
                )

        if self._context is not None:
            self._set_state(SubscriptionState.DISCONNECTED)
            logger.info("Disconnected", extra={"restaurant_id": str(self._context.restaurant_id)})
        self._state = SubscriptionState.DISCONNECTED
        self._context = None
        self._view = None
        self._replay_logs = []

    async def reconcile(self) -> None:
        """Re-read the tenant's current state and merge it into the view. Safe while run() is consuming."""
        await self._reconcile(self._require_context())

    async def _reconcile(self, ctx: TenantContext) -> None:
        replay: list[FeedAction] = []
        self._replay_logs.append(replay)
        try:
            orders, service_requests = await asyncio.gather(
                self._store.fetch_active_orders(ctx),
                self._store.fetch_pending_service_requests(ctx),
            )
        except Exception:
            RECONCILIATIONS.labels("failed").inc()
            raise
        finally:
            self._replay_logs = [log for log in self._replay_logs if log is not replay]

        if self._context is not ctx:
            RECONCILIATIONS.labels("discarded").inc()
            return

        self._apply(
            SnapshotLoaded(
                restaurant_id=ctx.restaurant_id,
                orders=orders,
                service_requests=service_requests,
                replay=replay,
            ),
            table="snapshot",
        )
        RECONCILIATIONS.labels("applied").inc()
        logger.info(
            "Reconciled live board",
            extra={
                "restaurant_id": str(ctx.restaurant_id),
                "orders": len(self._view.orders),
                "service_requests": len(self._view.service_requests),
                "replayed": len(replay),
            },
        )

    async def run(self) -> None:
        """Consume every subscribed stream until they end (on disconnect)."""
        subscriptions = list(self._subscriptions)
        if not subscriptions:
            raise RuntimeError("Synchronizer.run() called before connect()")
        await asyncio.gather(*(self._consume(s) for s in subscriptions))

    async def _consume(self, subscription: FeedSubscription) -> None:
        async for event in subscription:
            try:
                await self.handle(event)
            except Exception as exc:
                logger.error(
                    "Failed to apply change event",
                    extra={
                        "event_id": str(event.event_id),
                        "table": event.table.value,
                        "event_type": event.event_type.value,
                        "error": str(exc),
                    },
                )
                SYNC_EVENTS.labels(event.table.value, "error").inc()

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    async def handle(self, event: ChangeEvent) -> str:
        """Apply one feed event to the view. Returns the outcome label."""
        ctx = self._context
        table = event.table.value
        if ctx is None or self._view is None:
            return self._record(table, "ignored")

        if not self._belongs_to(ctx, event):
            logger.debug(
                "Event for another restaurant, ignoring",
                extra={"event_id": str(event.event_id), "restaurant_id": str(event.restaurant_id)},
            )
            return self._record(table, Outcome.FOREIGN_TENANT.value)

        action = await self._to_action(ctx, event)
        if isinstance(action, str):
            return self._record(table, action)

        if self._context is not ctx:
            # Tenant switched while we were fetching.
            return self._record(table, "discarded")

        return self._apply(action, table=table).value

    @staticmethod
    def _belongs_to(ctx: TenantContext, event: ChangeEvent) -> bool:
        if event.restaurant_id != ctx.restaurant_id:
            return False
        row_tenant = (event.new or event.old or {}).get("restaurant_id")
        return row_tenant is None or uuid.UUID(str(row_tenant)) == ctx.restaurant_id

    async def _to_action(self, ctx: TenantContext, event: ChangeEvent) -> FeedAction | str:
        if event.new is None:
            return Outcome.IGNORED.value

        if event.table == Table.ORDERS:
            if event.event_type == ChangeType.INSERT:
                order_id = uuid.UUID(str(event.new["id"]))
                if self._view.has_order(order_id):
                    return Outcome.DUPLICATE.value
                # The feed carries only the row; load the items with it.
                order = await self._store.fetch_order(ctx, order_id)
                if order is None:
                    return Outcome.STALE.value
                return OrderCreated(order=order)
            if event.event_type == ChangeType.UPDATE:
                return OrderUpdated(row=OrderRow.model_validate(event.new))

        if event.table == Table.SERVICE_REQUESTS:
            request = ServiceRequestRow.model_validate(event.new)
            if event.event_type == ChangeType.INSERT:
                return ServiceRequestCreated(request=request)
            if event.event_type == ChangeType.UPDATE:
                return ServiceRequestUpdated(request=request)

        return Outcome.IGNORED.value

    def _apply(self, action: Action, table: str) -> Outcome:
        reduction = reduce(self._view, action)
        if not isinstance(action, SnapshotLoaded):
            for log in self._replay_logs:
                log.append(action)
        changed = reduction.view is not self._view
        self._view = reduction.view
        self._record(table, reduction.outcome.value)

        if reduction.outcome == Outcome.STALE:
            logger.debug(
                "Dropped change for an entry not in the view",
                extra={"table": table, "action": type(action).__name__},
            )

        for effect in reduction.effects:
            dispatch(self._notifier, effect)

        if changed:
            for listener in self._listeners:
                try:
                    listener(self._view)
                except Exception as exc:
                    logger.error("View listener failed", extra={"error": str(exc)})
        return reduction.outcome

    @staticmethod
    def _record(table: str, outcome: str) -> str:
        SYNC_EVENTS.labels(table, outcome).inc()
        return outcome

    def _require_context(self) -> TenantContext:
        if self._context is None:
            raise RuntimeError("Synchronizer is not connected to a restaurant")
        return self._context
