import asyncio
import uuid
from datetime import datetime

import pytest

from factories import make_order, make_service_request
from shared.events import ChangeEvent, ChangeType, ServiceRequestStatus, Table
from shared.lifecycle import ACTIVE_STATUSES, OrderStatus
from sync_service.context import TenantContext
from sync_service.feed import ChangeFeed, FeedSubscription
from sync_service.notifier import Notifier
from sync_service.store import OrderStore
from sync_service.synchronizer import SubscriptionState, Synchronizer

TENANT_A = uuid.UUID("00000000-0000-0000-0000-00000000000a")
TENANT_B = uuid.UUID("00000000-0000-0000-0000-00000000000b")


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeStore(OrderStore):
    def __init__(self):
        self.orders = {}
        self.service_requests = {}
        self.fetch_order_calls = []
        self.gates: dict[uuid.UUID, asyncio.Event] = {}
        # Snapshot reads happen first, then the reply waits on the gate.
        self.snapshot_gates: dict[uuid.UUID, asyncio.Event] = {}
        self.snapshot_taken = asyncio.Event()
        self.snapshot_reads: list[uuid.UUID] = []

    def add_order(self, order):
        self.orders[order.id] = order
        return order

    def add_service_request(self, request):
        self.service_requests[request.id] = request
        return request

    async def _wait(self, ctx):
        gate = self.gates.get(ctx.restaurant_id)
        if gate is not None:
            await gate.wait()

    async def fetch_order(self, ctx, order_id):
        self.fetch_order_calls.append(order_id)
        await self._wait(ctx)
        order = self.orders.get(order_id)
        if order is None or order.restaurant_id != ctx.restaurant_id:
            return None
        return order

    async def fetch_active_orders(self, ctx):
        self.snapshot_reads.append(ctx.restaurant_id)
        orders = [
            o
            for o in self.orders.values()
            if o.restaurant_id == ctx.restaurant_id
            and (o.status in ACTIVE_STATUSES or o.status == OrderStatus.PAID)
        ]
        self.snapshot_taken.set()
        gate = self.snapshot_gates.get(ctx.restaurant_id)
        if gate is not None:
            await gate.wait()
        return list(reversed(orders))

    async def fetch_pending_service_requests(self, ctx):
        return [
            r
            for r in reversed(list(self.service_requests.values()))
            if r.restaurant_id == ctx.restaurant_id and r.status == ServiceRequestStatus.PENDING
        ]


class FakeSubscription(FeedSubscription):
    def __init__(self, ctx, table, event_kinds):
        self.context = ctx
        self.table = table
        self.event_kinds = frozenset(event_kinds)
        self.queue: asyncio.Queue = asyncio.Queue()

    async def __aiter__(self):
        while True:
            event = await self.queue.get()
            if event is None:
                return
            if event.event_type in self.event_kinds:
                yield event

    def close(self):
        self.queue.put_nowait(None)


class FakeFeed(ChangeFeed):
    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.active: list[FakeSubscription] = []
        self.gates: dict[uuid.UUID, asyncio.Event] = {}

    async def subscribe(self, ctx, table, event_kinds):
        gate = self.gates.get(ctx.restaurant_id)
        if gate is not None:
            await gate.wait()
        if table == self.fail_on:
            raise ConnectionError("feed unavailable")
        subscription = FakeSubscription(ctx, table, event_kinds)
        self.active.append(subscription)
        return subscription

    async def unsubscribe(self, subscription):
        subscription.close()
        self.active.remove(subscription)

    def push(self, event):
        for subscription in self.active:
            same_tenant = subscription.context.restaurant_id == event.restaurant_id
            if subscription.table == event.table and same_tenant:
                subscription.queue.put_nowait(event)

    def close_all(self):
        for subscription in self.active:
            subscription.close()


class RecordingNotifier(Notifier):
    def __init__(self, fail=False):
        self.fail = fail
        self.new_orders = []
        self.service_requests = []
        self.status_changes = []

    def on_new_order(self, notice):
        if self.fail:
            raise RuntimeError("speaker unplugged")
        self.new_orders.append(notice)

    def on_new_service_request(self, notice):
        self.service_requests.append(notice)

    def on_order_status_changed(self, notice):
        self.status_changes.append(notice)


def order_insert(order, restaurant_id=None):
    return ChangeEvent(
        event_type=ChangeType.INSERT,
        table=Table.ORDERS,
        restaurant_id=restaurant_id or order.restaurant_id,
        new=order.model_dump(mode="json", exclude={"items"}),
    )


def order_update(order, **changes):
    new = {**order.model_dump(mode="json", exclude={"items"}), **changes}
    return ChangeEvent(
        event_type=ChangeType.UPDATE,
        table=Table.ORDERS,
        restaurant_id=order.restaurant_id,
        new=new,
        old=order.model_dump(mode="json", exclude={"items"}),
    )


def service_request_event(request, event_type=ChangeType.INSERT):
    return ChangeEvent(
        event_type=event_type,
        table=Table.SERVICE_REQUESTS,
        restaurant_id=request.restaurant_id,
        new=request.model_dump(mode="json"),
    )


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def feed():
    return FakeFeed()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def sync(store, feed, notifier):
    return Synchronizer(store, feed, notifier)


# ---------------------------------------------------------------------------
# Connection lifecycle
# ---------------------------------------------------------------------------


async def test_connect_loads_snapshot_and_subscribes(sync, store, feed):
    preparing = store.add_order(make_order(TENANT_A, status=OrderStatus.PREPARING))
    store.add_order(make_order(TENANT_A, status=OrderStatus.CANCELLED))
    store.add_order(make_order(TENANT_B))
    waiting = store.add_service_request(make_service_request(TENANT_A))
    store.add_service_request(make_service_request(TENANT_A, status=ServiceRequestStatus.RESOLVED))

    assert sync.state == SubscriptionState.DISCONNECTED
    await sync.connect(TenantContext(TENANT_A))

    assert sync.state == SubscriptionState.SUBSCRIBED
    assert [o.id for o in sync.view.orders] == [preparing.id]
    assert [r.id for r in sync.view.service_requests] == [waiting.id]
    assert {s.table for s in feed.active} == {Table.ORDERS, Table.SERVICE_REQUESTS}
    assert all(s.event_kinds == {ChangeType.INSERT, ChangeType.UPDATE} for s in feed.active)


async def test_disconnect_releases_everything(sync, feed):
    await sync.connect(TenantContext(TENANT_A))
    await sync.disconnect()

    assert sync.state == SubscriptionState.DISCONNECTED
    assert sync.context is None
    assert sync.view is None
    assert feed.active == []


async def test_failed_subscription_leaves_synchronizer_disconnected(store, notifier):
    feed = FakeFeed(fail_on=Table.SERVICE_REQUESTS)
    sync = Synchronizer(store, feed, notifier)

    with pytest.raises(ConnectionError):
        await sync.connect(TenantContext(TENANT_A))

    assert sync.state == SubscriptionState.DISCONNECTED
    assert feed.active == []


async def test_switching_tenant_replaces_view_and_subscriptions(sync, store, feed):
    order_a = store.add_order(make_order(TENANT_A))
    order_b = store.add_order(make_order(TENANT_B))

    await sync.connect(TenantContext(TENANT_A))
    first_subscriptions = list(feed.active)
    await sync.connect(TenantContext(TENANT_B))

    assert sync.context.restaurant_id == TENANT_B
    assert [o.id for o in sync.view.orders] == [order_b.id]
    assert not sync.view.has_order(order_a.id)
    assert len(feed.active) == 2
    assert not set(first_subscriptions) & set(feed.active)


async def test_snapshot_for_previous_tenant_is_discarded(sync, store):
    store.add_order(make_order(TENANT_A))
    order_b = store.add_order(make_order(TENANT_B))
    store.snapshot_gates[TENANT_A] = asyncio.Event()

    slow_connect = asyncio.create_task(sync.connect(TenantContext(TENANT_A)))
    await store.snapshot_taken.wait()
    await sync.connect(TenantContext(TENANT_B))
    store.snapshot_gates[TENANT_A].set()
    await slow_connect

    assert sync.state == SubscriptionState.SUBSCRIBED
    assert sync.context.restaurant_id == TENANT_B
    assert [o.id for o in sync.view.orders] == [order_b.id]


async def test_tenant_switch_while_subscribing_drops_the_late_handle(sync, store, feed):
    order_b = store.add_order(make_order(TENANT_B))
    feed.gates[TENANT_A] = asyncio.Event()

    slow_connect = asyncio.create_task(sync.connect(TenantContext(TENANT_A)))
    await asyncio.sleep(0)
    await sync.connect(TenantContext(TENANT_B))
    feed.gates[TENANT_A].set()
    await slow_connect

    assert sync.state == SubscriptionState.SUBSCRIBED
    assert sync.context.restaurant_id == TENANT_B
    assert len(feed.active) == 2
    assert all(s.context.restaurant_id == TENANT_B for s in feed.active)
    assert store.snapshot_reads == [TENANT_B]
    assert [o.id for o in sync.view.orders] == [order_b.id]

    await sync.disconnect()
    assert feed.active == []


async def test_subscriptions_carry_the_tenant(sync, feed):
    await sync.connect(TenantContext(TENANT_A))
    assert {s.context for s in feed.active} == {TenantContext(TENANT_A)}


async def test_events_applied_during_reconcile_survive_the_snapshot(sync, store, notifier):
    preparing = store.add_order(make_order(TENANT_A, status=OrderStatus.PREPARING))
    await sync.connect(TenantContext(TENANT_A))
    store.snapshot_taken.clear()
    store.snapshot_gates[TENANT_A] = asyncio.Event()

    reconciling = asyncio.create_task(sync.reconcile())
    await store.snapshot_taken.wait()

    # committed after the snapshot was read, delivered before it lands
    created = store.add_order(make_order(TENANT_A))
    assert await sync.handle(order_insert(created)) == "applied"
    store.orders[preparing.id] = preparing.model_copy(
        update={"status": OrderStatus.READY, "updated_at": datetime(2026, 10, 19, 12, 1)}
    )
    update = order_update(preparing, status="ready", updated_at="2026-10-19T12:01:00")
    assert await sync.handle(update) == "applied"
    request = make_service_request(TENANT_A)
    await sync.handle(service_request_event(request))

    store.snapshot_gates[TENANT_A].set()
    await reconciling

    server = {o.id: o.status for o in store.orders.values()}
    assert {o.id: o.status for o in sync.view.orders} == server
    assert sync.view.find_order(preparing.id).status == OrderStatus.READY
    assert sync.view.has_service_request(request.id)
    # replay does not repeat notices
    assert len(notifier.new_orders) == 1
    assert len(notifier.status_changes) == 1
    assert len(notifier.service_requests) == 1


async def test_events_during_reconcile_while_streaming(sync, store, feed):
    await sync.connect(TenantContext(TENANT_A))
    store.snapshot_taken.clear()
    store.snapshot_gates[TENANT_A] = asyncio.Event()
    streaming = asyncio.create_task(sync.run())

    reconciling = asyncio.create_task(sync.reconcile())
    await store.snapshot_taken.wait()
    created = store.add_order(make_order(TENANT_A))
    feed.push(order_insert(created))
    while not sync.view.has_order(created.id):
        await asyncio.sleep(0)

    store.snapshot_gates[TENANT_A].set()
    await reconciling
    assert sync.view.has_order(created.id)

    feed.close_all()
    await asyncio.wait_for(streaming, timeout=1)


async def test_run_requires_connection(sync):
    with pytest.raises(RuntimeError):
        await sync.run()


async def test_reconcile_requires_connection(sync):
    with pytest.raises(RuntimeError):
        await sync.reconcile()


# ---------------------------------------------------------------------------
# Event handling
# ---------------------------------------------------------------------------


async def test_insert_fetches_items_and_notifies(sync, store, notifier):
    await sync.connect(TenantContext(TENANT_A))
    order = store.add_order(make_order(TENANT_A, table_number="5", total="120.00"))

    outcome = await sync.handle(order_insert(order))

    assert outcome == "applied"
    assert sync.view.orders[0].items == order.items
    assert [n.message for n in notifier.new_orders] == ["New order: table 5 - 120.00"]


async def test_redelivered_insert_skips_fetch_and_notice(sync, store, notifier):
    await sync.connect(TenantContext(TENANT_A))
    order = store.add_order(make_order(TENANT_A))
    await sync.handle(order_insert(order))
    calls = len(store.fetch_order_calls)

    outcome = await sync.handle(order_insert(order))

    assert outcome == "duplicate"
    assert len(store.fetch_order_calls) == calls
    assert len(sync.view.orders) == 1
    assert len(notifier.new_orders) == 1


async def test_insert_for_row_gone_from_store_is_stale(sync, notifier):
    await sync.connect(TenantContext(TENANT_A))
    outcome = await sync.handle(order_insert(make_order(TENANT_A)))
    assert outcome == "stale"
    assert sync.view.orders == ()
    assert notifier.new_orders == []


async def test_update_patches_view_and_reports_status_change(sync, store, notifier):
    order = store.add_order(make_order(TENANT_A, status=OrderStatus.PREPARING))
    await sync.connect(TenantContext(TENANT_A))

    outcome = await sync.handle(order_update(order, status="ready", updated_at="2026-10-19T12:01:00"))

    assert outcome == "applied"
    assert sync.view.find_order(order.id).status == OrderStatus.READY
    (change,) = notifier.status_changes
    assert change.previous_status == OrderStatus.PREPARING


async def test_foreign_events_are_ignored_without_fetching(sync, store):
    await sync.connect(TenantContext(TENANT_A))
    before = sync.view
    order_b = store.add_order(make_order(TENANT_B))

    assert await sync.handle(order_insert(order_b)) == "foreign_tenant"
    # envelope claims tenant A but the row belongs to B
    assert await sync.handle(order_insert(order_b, restaurant_id=TENANT_A)) == "foreign_tenant"
    assert store.fetch_order_calls == []
    assert sync.view is before


async def test_events_before_connect_are_ignored(sync):
    assert await sync.handle(order_insert(make_order(TENANT_A))) == "ignored"


async def test_insert_finishing_after_tenant_switch_is_discarded(sync, store):
    order_a = store.add_order(make_order(TENANT_A))
    await sync.connect(TenantContext(TENANT_A))
    store.gates[TENANT_A] = asyncio.Event()

    pending = asyncio.create_task(sync.handle(order_insert(order_a)))
    await asyncio.sleep(0)
    await sync.connect(TenantContext(TENANT_B))
    store.gates[TENANT_A].set()

    assert await pending == "discarded"
    assert sync.view.restaurant_id == TENANT_B
    assert not sync.view.has_order(order_a.id)


async def test_service_request_lifecycle_through_feed(sync, notifier):
    await sync.connect(TenantContext(TENANT_A))
    request = make_service_request(TENANT_A, table_no="3")

    await sync.handle(service_request_event(request))
    assert sync.view.has_service_request(request.id)
    assert notifier.service_requests[0].request.id == request.id

    resolved = request.model_copy(update={"status": ServiceRequestStatus.RESOLVED})
    await sync.handle(service_request_event(resolved, ChangeType.UPDATE))
    assert sync.view.service_requests == ()


async def test_delete_events_are_ignored(sync):
    await sync.connect(TenantContext(TENANT_A))
    event = ChangeEvent(event_type=ChangeType.DELETE, table=Table.ORDERS, restaurant_id=TENANT_A, old={})
    assert await sync.handle(event) == "ignored"


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


async def test_bad_event_does_not_stop_the_stream(sync, store, feed):
    await sync.connect(TenantContext(TENANT_A))
    good = store.add_order(make_order(TENANT_A))

    feed.push(
        ChangeEvent(
            event_type=ChangeType.UPDATE,
            table=Table.ORDERS,
            restaurant_id=TENANT_A,
            new={"id": "not-a-uuid", "restaurant_id": str(TENANT_A)},
        )
    )
    feed.push(order_insert(good))
    feed.close_all()
    await asyncio.wait_for(sync.run(), timeout=1)

    assert [o.id for o in sync.view.orders] == [good.id]


async def test_failing_notifier_does_not_block_the_view(store, feed):
    sync = Synchronizer(store, feed, RecordingNotifier(fail=True))
    await sync.connect(TenantContext(TENANT_A))
    order = store.add_order(make_order(TENANT_A))

    assert await sync.handle(order_insert(order)) == "applied"
    assert sync.view.has_order(order.id)


async def test_listeners_see_every_new_view(sync, store):
    views = []
    sync.add_listener(views.append)
    await sync.connect(TenantContext(TENANT_A))
    order = store.add_order(make_order(TENANT_A))

    await sync.handle(order_insert(order))
    await sync.handle(order_insert(order))

    assert len(views) == 2  # snapshot, insert; the duplicate changes nothing
    assert views[-1] is sync.view


async def test_view_converges_after_gap_and_reconcile(sync, store):
    await sync.connect(TenantContext(TENANT_A))
    missed = store.add_order(make_order(TENANT_A, status=OrderStatus.PREPARING))

    # the INSERT was lost; its UPDATE alone is dropped
    outcome = await sync.handle(order_update(missed, status="ready", updated_at="2026-10-19T12:01:00"))
    assert outcome == "stale"
    assert not sync.view.has_order(missed.id)

    store.orders[missed.id] = missed.model_copy(update={"status": OrderStatus.READY})
    await sync.reconcile()
    assert sync.view.find_order(missed.id).status == OrderStatus.READY
