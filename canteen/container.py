"""
Process-wide service objects, built once at start-up and handed to the app.
Tests build their own with a fake gateway and a recording publisher.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from canteen.config import Settings
from canteen.database import build_engine, build_sessionmaker
from canteen.events import EventPublisher, build_publisher
from canteen.payments.gateway import PaymentGateway, build_gateway
from canteen.services.feedback_service import FeedbackService
from canteen.services.inventory import InventoryLedger
from canteen.services.order_service import OrderService
from canteen.services.reconciler import WebhookReconciler


@dataclass
class Services:
    engine: AsyncEngine
    sessionmaker: async_sessionmaker[AsyncSession]
    gateway: PaymentGateway
    publisher: EventPublisher
    orders: OrderService
    reconciler: WebhookReconciler
    feedback: FeedbackService

    async def start(self) -> None:
        await self.publisher.start()

    async def aclose(self) -> None:
        await self.publisher.stop()
        await self.gateway.aclose()
        await self.engine.dispose()


def build_services(
    settings: Settings,
    engine: AsyncEngine | None = None,
    gateway: PaymentGateway | None = None,
    publisher: EventPublisher | None = None,
) -> Services:
    engine = engine or build_engine(settings.database_url)
    sessionmaker = build_sessionmaker(engine)
    gateway = gateway or build_gateway(settings)
    publisher = publisher or build_publisher(settings.kafka_bootstrap_servers)
    ledger = InventoryLedger()

    return Services(
        engine=engine,
        sessionmaker=sessionmaker,
        gateway=gateway,
        publisher=publisher,
        orders=OrderService(sessionmaker, ledger, gateway, publisher),
        reconciler=WebhookReconciler(sessionmaker, ledger, gateway, publisher),
        feedback=FeedbackService(sessionmaker),
    )
