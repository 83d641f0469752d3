"""
Notification service consumer. Listens to order payment/status events and
logs a structured user-facing notification. Delivery channels (email, push)
plug in where the log line is written.
"""

import logging
from datetime import datetime

from aiokafka import AIOKafkaConsumer
from opentelemetry import trace
from opentelemetry.propagate import extract
from pydantic import ValidationError

from notification_service.metrics import EVENT_LAG, NOTIFICATIONS
from shared.events import (
    ORDER_PAYMENT_UPDATED_TOPIC,
    ORDER_STATUS_UPDATED_TOPIC,
    OrderPaymentUpdatedEvent,
    OrderStatusUpdatedEvent,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

TOPICS = (ORDER_PAYMENT_UPDATED_TOPIC, ORDER_STATUS_UPDATED_TOPIC)

_STATUS_MESSAGES = {
    "COOKING": "Your order is being prepared",
    "READY": "Your order is ready for pickup",
    "COMPLETED": "Your order is completed, enjoy your meal",
}


async def run_consumer(consumer: AIOKafkaConsumer) -> None:
    """Main consumer loop, runs until cancelled."""
    async for msg in consumer:
        await handle_message(msg)
        await consumer.commit()


async def handle_message(msg) -> None:
    # Extract W3C trace context propagated via Kafka headers
    headers = {k: v.decode() for k, v in msg.headers} if msg.headers else {}
    ctx = extract(headers)

    with tracer.start_as_current_span(f"kafka.consume.{msg.topic}", context=ctx):
        try:
            if msg.topic == ORDER_PAYMENT_UPDATED_TOPIC:
                event = OrderPaymentUpdatedEvent.model_validate_json(msg.value)
                notify_payment(event)
            elif msg.topic == ORDER_STATUS_UPDATED_TOPIC:
                event = OrderStatusUpdatedEvent.model_validate_json(msg.value)
                notify_status(event)
            else:
                logger.warning("Ignoring message from unexpected topic %s", msg.topic)
                NOTIFICATIONS.labels("unknown_topic").inc()
                return
        except ValidationError as exc:
            logger.error(
                "Failed to parse %s message",
                msg.topic,
                extra={"error": str(exc), "offset": msg.offset, "partition": msg.partition},
            )
            NOTIFICATIONS.labels("parse_error").inc()
            return

        EVENT_LAG.labels(msg.topic).observe(
            max((datetime.utcnow() - event.occurred_at).total_seconds(), 0.0)
        )


def notify_payment(event: OrderPaymentUpdatedEvent) -> None:
    if event.payment_status == "PAID":
        logger.info(
            "NOTIFICATION: Payment received, the canteen will start your order",
            extra={
                "order_id": str(event.order_id),
                "user_id": str(event.user_id),
                "canteen_id": str(event.canteen_id),
                "correlation_id": event.correlation_id,
            },
        )
        NOTIFICATIONS.labels("paid").inc()
        return

    logger.info(
        "NOTIFICATION: Order cancelled, payment was not completed",
        extra={
            "order_id": str(event.order_id),
            "user_id": str(event.user_id),
            "transaction_status": event.transaction_status,
            "correlation_id": event.correlation_id,
        },
    )
    NOTIFICATIONS.labels("payment_cancelled").inc()


def notify_status(event: OrderStatusUpdatedEvent) -> None:
    logger.info(
        "NOTIFICATION: %s",
        _STATUS_MESSAGES.get(event.order_status, f"Order is now {event.order_status}"),
        extra={
            "order_id": str(event.order_id),
            "user_id": str(event.user_id),
            "order_status": event.order_status,
            "correlation_id": event.correlation_id,
        },
    )
    NOTIFICATIONS.labels("order_status").inc()
