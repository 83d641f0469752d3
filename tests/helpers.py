"""Shared test doubles and query helpers."""

import uuid
from dataclasses import dataclass

from sqlalchemy import select

from canteen.auth import Identity
from canteen.events import EventPublisher
from canteen.models import MenuItem, Order, PaymentStatus, User
from canteen.payments.gateway import PaymentGateway, PaymentGatewayError, SnapTransaction
from canteen.payments.signature import compute_signature, verify_signature

SERVER_KEY = "SB-Mid-server-test-key"


class FakeGateway(PaymentGateway):
    """Records createTransaction calls; verifies signatures with the real scheme."""

    def __init__(self, server_key: str = SERVER_KEY) -> None:
        self.server_key = server_key
        self.should_fail = False
        self.calls: list[dict] = []

    async def create_transaction(self, order_id, items, gross_amount, customer) -> SnapTransaction:
        self.calls.append(
            {"order_id": order_id, "items": items, "gross_amount": gross_amount, "customer": customer}
        )
        if self.should_fail:
            raise PaymentGatewayError("Snap createTransaction failed: 500")
        return SnapTransaction(
            token=f"tok-{order_id}",
            redirect_url=f"https://app.sandbox.midtrans.com/snap/v2/vtweb/tok-{order_id}",
        )

    def verify_notification(self, payload) -> bool:
        return verify_signature(payload, self.server_key)


class RecordingPublisher(EventPublisher):
    def __init__(self) -> None:
        self.events: list[tuple[str, uuid.UUID, object]] = []

    async def publish(self, topic, key, event) -> None:
        self.events.append((topic, key, event))

    def topics(self) -> list[str]:
        return [topic for topic, _, _ in self.events]


def make_notification(
    order_id,
    transaction_status: str,
    fraud_status: str | None = "accept",
    gross_amount: str = "15000.00",
    status_code: str = "200",
    server_key: str = SERVER_KEY,
) -> dict:
    payload = {
        "transaction_id": str(uuid.uuid4()),
        "order_id": str(order_id),
        "status_code": status_code,
        "gross_amount": gross_amount,
        "transaction_status": transaction_status,
        "payment_type": "qris",
        "signature_key": compute_signature(str(order_id), status_code, gross_amount, server_key),
    }
    if fraud_status is not None:
        payload["fraud_status"] = fraud_status
    return payload


def identity_of(user: User) -> Identity:
    return Identity(id=user.id, email=user.email, name=user.name, role=user.role, phone=user.phone)


def auth(user: Identity) -> dict[str, str]:
    return {"X-User-Id": str(user.id)}


@dataclass
class World:
    customer: Identity
    other_customer: Identity
    owner: Identity
    other_owner: Identity
    canteen_id: uuid.UUID
    other_canteen_id: uuid.UUID
    nasi_goreng: uuid.UUID  # price 15000, stock 5
    es_teh: uuid.UUID  # price 5000, stock 10
    bakso: uuid.UUID  # other canteen, price 12000, stock 3
    removed_item: uuid.UUID  # soft-deleted


# ---------------------------------------------------------------------------
# Query helpers
# ---------------------------------------------------------------------------


async def get_stock(services, menu_item_id: uuid.UUID) -> int:
    async with services.sessionmaker() as db:
        result = await db.execute(select(MenuItem.stock).where(MenuItem.id == menu_item_id))
        return result.scalar_one()


async def get_order(services, order_id: uuid.UUID) -> Order | None:
    async with services.sessionmaker() as db:
        result = await db.execute(select(Order).where(Order.id == order_id))
        return result.scalars().first()


async def count_orders(services) -> int:
    async with services.sessionmaker() as db:
        result = await db.execute(select(Order.id))
        return len(result.all())


async def set_payment_status(services, order_id: uuid.UUID, status: PaymentStatus) -> None:
    async with services.sessionmaker() as db:
        async with db.begin():
            order = await db.get(Order, order_id)
            order.payment_status = status



class FakeClock:
    """Manually advanced monotonic clock for the circuit breaker."""

    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now
