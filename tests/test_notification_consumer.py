import logging
import uuid
from types import SimpleNamespace

import pytest

from notification_service.consumer import handle_message, run_consumer
from shared.events import (
    ORDER_PAYMENT_UPDATED_TOPIC,
    ORDER_STATUS_UPDATED_TOPIC,
    OrderPaymentUpdatedEvent,
    OrderStatusUpdatedEvent,
)


def _message(topic, value: bytes, headers=None):
    return SimpleNamespace(topic=topic, value=value, headers=headers or [], offset=7, partition=0)


@pytest.fixture
def notifications(caplog):
    caplog.set_level(logging.INFO, logger="notification_service.consumer")
    return caplog


def _ids():
    return {"order_id": uuid.uuid4(), "user_id": uuid.uuid4(), "canteen_id": uuid.uuid4()}


async def test_paid_event_notifies_customer(notifications):
    event = OrderPaymentUpdatedEvent(
        **_ids(),
        previous_status="UNPAID",
        payment_status="PAID",
        transaction_status="settlement",
        correlation_id="req-1",
    )

    await handle_message(_message(ORDER_PAYMENT_UPDATED_TOPIC, event.model_dump_json().encode()))

    assert "Payment received" in notifications.text


async def test_cancelled_event_notifies_customer(notifications):
    event = OrderPaymentUpdatedEvent(
        **_ids(),
        previous_status="UNPAID",
        payment_status="CANCELLED",
        transaction_status="expire",
        stock_released=True,
    )

    await handle_message(_message(ORDER_PAYMENT_UPDATED_TOPIC, event.model_dump_json().encode()))

    assert "Order cancelled" in notifications.text


async def test_status_event_uses_friendly_message(notifications):
    event = OrderStatusUpdatedEvent(**_ids(), order_status="READY")

    await handle_message(
        _message(
            ORDER_STATUS_UPDATED_TOPIC,
            event.model_dump_json().encode(),
            headers=[("traceparent", b"00-0af7651916cd43dd8448eb211c80319c-b7ad6b7169203331-01")],
        )
    )

    assert "ready for pickup" in notifications.text


async def test_malformed_message_is_logged_not_raised(notifications):
    await handle_message(_message(ORDER_STATUS_UPDATED_TOPIC, b'{"order_id": "nope"}'))

    assert any(r.levelno == logging.ERROR for r in notifications.records)


async def test_unexpected_topic_ignored(notifications):
    await handle_message(_message("order.placed", b"{}"))

    assert "unexpected topic" in notifications.text


class _FakeConsumer:
    def __init__(self, messages):
        self._messages = messages
        self.commits = 0

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for msg in self._messages:
            yield msg

    async def commit(self):
        self.commits += 1


async def test_offsets_committed_after_each_message(notifications):
    event = OrderStatusUpdatedEvent(**_ids(), order_status="COOKING")
    consumer = _FakeConsumer(
        [
            _message(ORDER_STATUS_UPDATED_TOPIC, event.model_dump_json().encode()),
            _message(ORDER_STATUS_UPDATED_TOPIC, b"not json"),
        ]
    )

    await run_consumer(consumer)

    assert consumer.commits == 2
    assert "being prepared" in notifications.text
