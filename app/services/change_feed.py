"""
Publishes row-level change events to Kafka after each committed write.

One topic per table (see shared.events.topic_for), keyed by restaurant id so
a tenant's events stay on one partition. Trace context rides in the headers.
"""

import logging
import uuid
from typing import Any

from aiokafka import AIOKafkaProducer

from shared.events import ChangeEvent, ChangeType, Table, topic_for
from shared.tracing import outgoing_headers

logger = logging.getLogger(__name__)


class ChangePublisher:
    def __init__(self, producer: AIOKafkaProducer, topic_prefix: str) -> None:
        self._producer = producer
        self._topic_prefix = topic_prefix

    async def publish(
        self,
        table: Table,
        event_type: ChangeType,
        restaurant_id: uuid.UUID,
        new: dict[str, Any] | None,
        old: dict[str, Any] | None = None,
        correlation_id: str = "unknown",
    ) -> ChangeEvent:
        event = ChangeEvent(
            event_type=event_type,
            table=table,
            restaurant_id=restaurant_id,
            new=new,
            old=old,
            correlation_id=correlation_id,
        )

        await self._producer.send_and_wait(
            topic_for(self._topic_prefix, table),
            key=str(restaurant_id).encode(),
            value=event.model_dump_json().encode(),
            headers=outgoing_headers(),
        )

        logger.info(
            "Published change event",
            extra={
                "table": table.value,
                "event_type": event_type.value,
                "restaurant_id": str(restaurant_id),
                "row_id": str((new or old or {}).get("id")),
                "correlation_id": correlation_id,
            },
        )
        return event
