"""
Reconciles Midtrans payment notifications with local order state.

Notifications are redelivered freely by the provider, so every step is safe
to replay:
  - the signature is checked before anything is read or written;
  - a notification that maps to the current status is a no-op;
  - the transition itself is a compare-and-set on payment_status, so two
    concurrent deliveries cannot both apply it;
  - CANCELLED is terminal, which makes the stock release happen once.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Mapping

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from canteen.errors import (
    GatewayNotConfiguredError,
    InvalidRequestError,
    InvalidSignatureError,
    NotFoundError,
)
from canteen.events import EventPublisher
from canteen.metrics import STOCK_RELEASED, WEBHOOK_OUTCOMES
from canteen.models.order import Order, PaymentStatus
from canteen.payments.gateway import PaymentGateway
from canteen.schemas.webhook import MidtransNotification
from canteen.services.inventory import InventoryLedger
from shared.events import ORDER_PAYMENT_UPDATED_TOPIC, OrderPaymentUpdatedEvent

logger = logging.getLogger(__name__)

_SETTLED = {"settlement", "capture"}
_FAILED = {"cancel", "expire", "deny", "failure"}


def map_payment_status(transaction_status: str, fraud_status: str | None) -> PaymentStatus | None:
    """Local payment status for a notification, or None when it implies no change."""
    if transaction_status in _SETTLED:
        return PaymentStatus.PAID if fraud_status == "accept" else None
    if transaction_status in _FAILED:
        return PaymentStatus.CANCELLED
    return None


@dataclass
class ReconcileOutcome:
    order_id: uuid.UUID
    previous_status: PaymentStatus
    payment_status: PaymentStatus
    outcome: str  # applied | replay | ignored

    @property
    def applied(self) -> bool:
        return self.outcome == "applied"


class WebhookReconciler:
    def __init__(
        self,
        sessionmaker: async_sessionmaker[AsyncSession],
        ledger: InventoryLedger,
        gateway: PaymentGateway,
        publisher: EventPublisher,
    ) -> None:
        self._sessionmaker = sessionmaker
        self._ledger = ledger
        self._gateway = gateway
        self._publisher = publisher

    async def handle_notification(
        self,
        payload: Mapping[str, Any],
        request_id: str | None = None,
    ) -> ReconcileOutcome:
        if not self._gateway.configured:
            raise GatewayNotConfiguredError()

        if not self._gateway.verify_notification(payload):
            WEBHOOK_OUTCOMES.labels("invalid_signature").inc()
            logger.warning(
                "Rejected payment notification with invalid signature",
                extra={"order_id": str(payload.get("order_id")), "request_id": request_id},
            )
            raise InvalidSignatureError()

        try:
            notification = MidtransNotification.model_validate(payload)
        except ValidationError as exc:
            raise InvalidRequestError(f"Malformed payment notification: {exc.error_count()} error(s)")

        target = map_payment_status(notification.transaction_status, notification.fraud_status)
        order_id = self._parse_order_id(notification.order_id)

        async with self._sessionmaker() as db:
            async with db.begin():
                result = await db.execute(
                    select(Order).where(Order.id == order_id).options(selectinload(Order.items))
                )
                order = result.scalars().first()
                if order is None:
                    WEBHOOK_OUTCOMES.labels("order_not_found").inc()
                    raise NotFoundError(f"Order not found: {notification.order_id}")

                outcome = await self._apply(db, order, target)

        WEBHOOK_OUTCOMES.labels(outcome.outcome).inc()
        logger.info(
            "Payment notification reconciled",
            extra={
                "order_id": str(order.id),
                "transaction_id": notification.transaction_id,
                "transaction_status": notification.transaction_status,
                "fraud_status": notification.fraud_status,
                "previous_status": outcome.previous_status.value,
                "payment_status": outcome.payment_status.value,
                "outcome": outcome.outcome,
                "request_id": request_id,
            },
        )

        if outcome.applied:
            await self._publisher.publish(
                ORDER_PAYMENT_UPDATED_TOPIC,
                order.id,
                OrderPaymentUpdatedEvent(
                    correlation_id=request_id,
                    order_id=order.id,
                    user_id=order.user_id,
                    canteen_id=order.canteen_id,
                    previous_status=outcome.previous_status.value,
                    payment_status=outcome.payment_status.value,
                    transaction_status=notification.transaction_status,
                    stock_released=outcome.payment_status == PaymentStatus.CANCELLED,
                ),
            )
        return outcome

    @staticmethod
    def _parse_order_id(raw: str) -> uuid.UUID:
        try:
            return uuid.UUID(raw)
        except ValueError:
            WEBHOOK_OUTCOMES.labels("order_not_found").inc()
            raise NotFoundError(f"Order not found: {raw}")

    async def _apply(
        self,
        db: AsyncSession,
        order: Order,
        target: PaymentStatus | None,
    ) -> ReconcileOutcome:
        current = order.payment_status

        if target is None:
            return ReconcileOutcome(order.id, current, current, "ignored")
        if target == current:
            return ReconcileOutcome(order.id, current, current, "replay")
        # CANCELLED is terminal: its stock is already released. A late settlement
        # on a cancelled order is left for a manual refund.
        if current == PaymentStatus.CANCELLED:
            logger.warning(
                "Notification for cancelled order ignored",
                extra={"order_id": str(order.id), "requested_status": target.value},
            )
            return ReconcileOutcome(order.id, current, current, "ignored")

        result = await db.execute(
            update(Order)
            .where(Order.id == order.id, Order.payment_status == current)
            .values(payment_status=target)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            # A concurrent delivery for the same order won the compare-and-set
            return ReconcileOutcome(order.id, current, current, "replay")

        if target == PaymentStatus.CANCELLED:
            for item in order.items:
                await self._ledger.release(db, item.menu_item_id, item.quantity)
                STOCK_RELEASED.inc(item.quantity)

        return ReconcileOutcome(order.id, current, target, "applied")
