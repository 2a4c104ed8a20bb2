import uuid
from types import SimpleNamespace

from shared.events import ChangeEvent, ChangeType, Table
from sync_service.context import TenantContext
from sync_service.feed import KafkaFeedSubscription

TENANT_A = uuid.UUID("00000000-0000-0000-0000-00000000000a")
TENANT_B = uuid.UUID("00000000-0000-0000-0000-00000000000b")


class StubConsumer:
    """Iterates prepared messages the way AIOKafkaConsumer yields ConsumerRecords."""

    def __init__(self, messages):
        self._messages = messages

    async def __aiter__(self):
        for msg in self._messages:
            yield msg


def _message(restaurant_id, event_type=ChangeType.INSERT, value=None, offset=0):
    if value is None:
        value = ChangeEvent(
            event_type=event_type,
            table=Table.ORDERS,
            restaurant_id=restaurant_id,
            new={"id": str(uuid.uuid4())},
        ).model_dump_json().encode()
    return SimpleNamespace(
        key=str(restaurant_id).encode(),
        value=value,
        headers=[],
        topic="changes.orders",
        offset=offset,
        partition=0,
    )


async def _collect(subscription):
    return [event async for event in subscription]


async def test_subscription_keeps_only_its_tenants_messages():
    messages = [
        _message(TENANT_A, offset=0),
        _message(TENANT_B, offset=1),
        _message(TENANT_A, offset=2),
    ]
    subscription = KafkaFeedSubscription(
        StubConsumer(messages), TenantContext(TENANT_A), Table.ORDERS, [ChangeType.INSERT]
    )

    events = await _collect(subscription)

    assert len(events) == 2
    assert all(e.restaurant_id == TENANT_A for e in events)
    assert subscription.context == TenantContext(TENANT_A)


async def test_subscription_filters_kinds_and_skips_garbage():
    messages = [
        _message(TENANT_A, event_type=ChangeType.DELETE),
        _message(TENANT_A, value=b"{not json"),
        _message(TENANT_A, event_type=ChangeType.UPDATE),
    ]
    subscription = KafkaFeedSubscription(
        StubConsumer(messages),
        TenantContext(TENANT_A),
        Table.ORDERS,
        [ChangeType.INSERT, ChangeType.UPDATE],
    )

    events = await _collect(subscription)

    assert [e.event_type for e in events] == [ChangeType.UPDATE]
