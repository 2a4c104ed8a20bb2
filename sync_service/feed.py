"""
Subscriber side of the change feed.

Each subscription owns its own Kafka consumer without a consumer group, so
every synchronizer sees every event of the table (broadcast, like a database
realtime channel) starting from the moment it subscribed, and keeps only
the messages keyed with its tenant's restaurant id. Anything missed before
that is recovered by the reconciliation fetch, not by replay.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Iterable

from aiokafka import AIOKafkaConsumer
from opentelemetry import trace

from shared.events import ChangeEvent, ChangeType, Table, topic_for
from shared.tracing import incoming_context
from sync_service.context import TenantContext
from sync_service.metrics import SYNC_EVENTS

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class FeedSubscription(ABC):
    """Handle returned by ChangeFeed.subscribe; iterate it to receive the tenant's events."""

    context: TenantContext
    table: Table
    event_kinds: frozenset[ChangeType]

    @abstractmethod
    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        ...


class ChangeFeed(ABC):
    @abstractmethod
    async def subscribe(
        self, ctx: TenantContext, table: Table, event_kinds: Iterable[ChangeType]
    ) -> FeedSubscription:
        ...

    @abstractmethod
    async def unsubscribe(self, subscription: FeedSubscription) -> None:
        ...


class KafkaFeedSubscription(FeedSubscription):
    def __init__(
        self,
        consumer: AIOKafkaConsumer,
        ctx: TenantContext,
        table: Table,
        event_kinds: Iterable[ChangeType],
    ):
        self._consumer = consumer
        self._key = str(ctx.restaurant_id).encode()
        self.context = ctx
        self.table = table
        self.event_kinds = frozenset(event_kinds)

    async def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        # Ends when the consumer is stopped by unsubscribe().
        async for msg in self._consumer:
            # Messages are keyed by restaurant id; the synchronizer re-checks the payload.
            if msg.key != self._key:
                SYNC_EVENTS.labels(self.table.value, "foreign_tenant").inc()
                continue
            event = self._parse(msg)
            if event is not None and event.event_type in self.event_kinds:
                yield event

    def _parse(self, msg) -> ChangeEvent | None:
        parent = incoming_context(msg.headers)
        with tracer.start_as_current_span(f"kafka.consume.{msg.topic}", context=parent):
            try:
                return ChangeEvent.model_validate_json(msg.value)
            except Exception as exc:
                logger.error(
                    "Failed to parse change event",
                    extra={
                        "error": str(exc),
                        "topic": msg.topic,
                        "offset": msg.offset,
                        "partition": msg.partition,
                    },
                )
                SYNC_EVENTS.labels(self.table.value, "parse_error").inc()
                return None

    async def stop(self) -> None:
        await self._consumer.stop()


class KafkaChangeFeed(ChangeFeed):
    def __init__(self, bootstrap_servers: str, topic_prefix: str) -> None:
        self._bootstrap_servers = bootstrap_servers
        self._topic_prefix = topic_prefix

    def topic(self, table: Table) -> str:
        return topic_for(self._topic_prefix, table)

    async def subscribe(
        self, ctx: TenantContext, table: Table, event_kinds: Iterable[ChangeType]
    ) -> KafkaFeedSubscription:
        kinds = frozenset(event_kinds)
        consumer = AIOKafkaConsumer(
            self.topic(table),
            bootstrap_servers=self._bootstrap_servers,
            group_id=None,
            enable_auto_commit=False,
            auto_offset_reset="latest",
        )
        await consumer.start()
        logger.info(
            "Subscribed to change feed",
            extra={
                "topic": self.topic(table),
                "restaurant_id": str(ctx.restaurant_id),
                "event_kinds": sorted(k.value for k in kinds),
            },
        )
        return KafkaFeedSubscription(consumer, ctx, table, kinds)

    async def unsubscribe(self, subscription: FeedSubscription) -> None:
        if isinstance(subscription, KafkaFeedSubscription):
            await subscription.stop()
            logger.info(
                "Unsubscribed from change feed",
                extra={
                    "topic": self.topic(subscription.table),
                    "restaurant_id": str(subscription.context.restaurant_id),
                },
            )
