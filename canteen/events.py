"""
Post-commit publication of order events.

Events are only published after the unit of work that produced them has
committed. Publishing is best-effort: a broker failure is logged and never
undoes or fails the committed change.
"""

import logging
import uuid
from abc import ABC, abstractmethod

from aiokafka import AIOKafkaProducer
from opentelemetry.propagate import inject

from shared.events import EventBase

logger = logging.getLogger(__name__)


class EventPublisher(ABC):
    @abstractmethod
    async def publish(self, topic: str, key: uuid.UUID, event: EventBase) -> None:
        ...

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None


class NullEventPublisher(EventPublisher):
    """Used when no Kafka cluster is configured."""

    async def publish(self, topic: str, key: uuid.UUID, event: EventBase) -> None:
        logger.debug("Event publishing disabled, dropping %s", topic, extra={"key": str(key)})


class KafkaEventPublisher(EventPublisher):
    def __init__(self, bootstrap_servers: str) -> None:
        self._producer = AIOKafkaProducer(
            bootstrap_servers=bootstrap_servers,
            enable_idempotence=True,
        )

    async def start(self) -> None:
        await self._producer.start()

    async def stop(self) -> None:
        await self._producer.stop()

    async def publish(self, topic: str, key: uuid.UUID, event: EventBase) -> None:
        # Propagate trace context into the downstream Kafka message
        outgoing_headers: dict[str, str] = {}
        inject(outgoing_headers)
        kafka_headers = [(k, v.encode()) for k, v in outgoing_headers.items()]

        try:
            await self._producer.send_and_wait(
                topic,
                key=str(key).encode(),
                value=event.model_dump_json().encode(),
                headers=kafka_headers,
            )
        except Exception as exc:
            logger.error(
                "Failed to publish %s event",
                topic,
                extra={"key": str(key), "error": str(exc), "correlation_id": event.correlation_id},
            )
            return

        logger.info(
            "Published %s event",
            topic,
            extra={"key": str(key), "correlation_id": event.correlation_id},
        )


def build_publisher(bootstrap_servers: str) -> EventPublisher:
    if not bootstrap_servers:
        return NullEventPublisher()
    return KafkaEventPublisher(bootstrap_servers)
