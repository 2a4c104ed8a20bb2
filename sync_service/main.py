"""
Sync worker entry point.
Connects one Synchronizer per configured restaurant and runs the feed loops.
"""

import asyncio
import logging

import prometheus_client

from shared.tracing import setup_tracing
from sync_service.config import settings
from sync_service.context import TenantContext
from sync_service.database import AsyncSessionLocal, engine
from sync_service.feed import KafkaChangeFeed
from sync_service.notifier import LoggingNotifier
from sync_service.store import SqlOrderStore
from sync_service.synchronizer import Synchronizer
from sync_service.utils.logging import setup_logging

setup_logging(settings.log_level)
logger = logging.getLogger(__name__)

prometheus_client.start_http_server(settings.metrics_port)
setup_tracing("sync-service", settings.otlp_endpoint)


async def _run_tenant(synchronizer: Synchronizer, ctx: TenantContext) -> None:
    await synchronizer.connect(ctx)
    try:
        await synchronizer.run()
    finally:
        await synchronizer.disconnect()


async def main() -> None:
    if not settings.restaurant_ids:
        logger.error("No restaurant ids configured (RESTAURANT_IDS); nothing to sync")
        return

    store = SqlOrderStore(AsyncSessionLocal, settings.recent_paid_window_hours)
    feed = KafkaChangeFeed(settings.kafka_bootstrap_servers, settings.kafka_topic_prefix)
    notifier = LoggingNotifier()

    logger.info(
        "Sync service started",
        extra={
            "bootstrap_servers": settings.kafka_bootstrap_servers,
            "restaurant_ids": [str(r) for r in settings.restaurant_ids],
            "metrics_port": settings.metrics_port,
        },
    )

    try:
        await asyncio.gather(
            *(
                _run_tenant(Synchronizer(store, feed, notifier), TenantContext(restaurant_id))
                for restaurant_id in settings.restaurant_ids
            )
        )
    finally:
        await engine.dispose()
        logger.info("Sync service stopped")


if __name__ == "__main__":
    asyncio.run(main())
