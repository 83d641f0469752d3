"""
Notification worker entry point: ``python -m notification_service.main``.

Offsets are committed manually after each message is handled, so a crash
replays at most the message in flight.
"""

import asyncio
import logging

import prometheus_client
from aiokafka import AIOKafkaConsumer

from canteen.utils.logging import setup_logging
from notification_service.config import NotificationSettings, get_settings
from notification_service.consumer import TOPICS, run_consumer
from shared.tracing import setup_tracing, shutdown_tracing

logger = logging.getLogger(__name__)


def build_consumer(settings: NotificationSettings) -> AIOKafkaConsumer:
    return AIOKafkaConsumer(
        *TOPICS,
        bootstrap_servers=settings.kafka_bootstrap_servers,
        group_id=settings.kafka_consumer_group,
        enable_auto_commit=False,
        auto_offset_reset="earliest",
    )


async def main(settings: NotificationSettings) -> None:
    consumer = build_consumer(settings)
    await consumer.start()
    logger.info(
        "Notification service started",
        extra={
            "topics": list(TOPICS),
            "consumer_group": settings.kafka_consumer_group,
            "metrics_port": settings.metrics_port,
        },
    )

    try:
        await run_consumer(consumer)
    finally:
        await consumer.stop()
        logger.info("Notification service stopped")


if __name__ == "__main__":
    settings = get_settings()
    setup_logging(settings.log_level, service="canteen-notification-service")
    prometheus_client.start_http_server(settings.metrics_port)
    provider = setup_tracing(
        "canteen-notification-service", settings.otlp_endpoint, settings.trace_sample_ratio
    )
    try:
        asyncio.run(main(settings))
    finally:
        shutdown_tracing(provider)
