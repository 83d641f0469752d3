"""
Payment gateway client.

Two variants are resolved once at start-up from settings:
  - MidtransSnapGateway: creates Snap transactions over HTTP and verifies
    notification signatures with the server key.
  - UnconfiguredGateway: used when no server key is set; it never produces
    a payment link and refuses to verify notifications.

Callers check ``gateway.configured`` instead of catching errors for the
unconfigured case.
"""

import asyncio
import logging
import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from canteen.config import Settings
from canteen.errors import GatewayNotConfiguredError
from canteen.metrics import GATEWAY_LATENCY
from canteen.payments.circuit_breaker import CircuitBreaker
from canteen.payments.signature import verify_signature

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class PaymentGatewayError(Exception):
    """Base class for gateway call failures."""


class PaymentTimeoutError(PaymentGatewayError):
    """Gateway did not answer within the configured timeout."""


class CircuitBreakerOpenError(PaymentGatewayError):
    """Circuit breaker is open; fail fast without calling the gateway."""


# ---------------------------------------------------------------------------
# Request / result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TransactionItem:
    id: str
    name: str
    price: int
    quantity: int


@dataclass(frozen=True)
class CustomerDetails:
    email: str
    first_name: str
    phone: str | None = None


@dataclass(frozen=True)
class SnapTransaction:
    token: str | None
    redirect_url: str


# ---------------------------------------------------------------------------
# Interface
# ---------------------------------------------------------------------------


class PaymentGateway(ABC):
    configured: bool = True

    @abstractmethod
    async def create_transaction(
        self,
        order_id: uuid.UUID,
        items: list[TransactionItem],
        gross_amount: int,
        customer: CustomerDetails,
    ) -> SnapTransaction:
        """Create a remote payment transaction and return its redirect link."""

    @abstractmethod
    def verify_notification(self, payload: Mapping[str, Any]) -> bool:
        """Check that a notification payload was signed by the gateway."""

    async def aclose(self) -> None:
        return None


class UnconfiguredGateway(PaymentGateway):
    configured = False

    async def create_transaction(self, order_id, items, gross_amount, customer) -> SnapTransaction:
        raise GatewayNotConfiguredError("Payment gateway not configured")

    def verify_notification(self, payload: Mapping[str, Any]) -> bool:
        raise GatewayNotConfiguredError()


class MidtransSnapGateway(PaymentGateway):
    def __init__(
        self,
        server_key: str,
        base_url: str,
        timeout: float,
        circuit_breaker: CircuitBreaker,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._server_key = server_key
        self._timeout = timeout
        self._circuit_breaker = circuit_breaker
        self._client = httpx.AsyncClient(
            base_url=base_url,
            auth=(server_key, ""),
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    async def create_transaction(
        self,
        order_id: uuid.UUID,
        items: list[TransactionItem],
        gross_amount: int,
        customer: CustomerDetails,
    ) -> SnapTransaction:
        if not self._circuit_breaker.allow_request():
            raise CircuitBreakerOpenError("Payment gateway unavailable (circuit breaker open)")

        body = {
            "transaction_details": {"order_id": str(order_id), "gross_amount": gross_amount},
            "item_details": [
                {"id": i.id, "name": i.name, "price": i.price, "quantity": i.quantity}
                for i in items
            ],
            "customer_details": {
                "email": customer.email,
                "first_name": customer.first_name,
                **({"phone": customer.phone} if customer.phone else {}),
            },
        }

        start = time.perf_counter()
        try:
            response = await asyncio.wait_for(
                self._client.post("/snap/v1/transactions", json=body),
                timeout=self._timeout,
            )
            response.raise_for_status()
            data = response.json()
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            self._circuit_breaker.record_failure()
            raise PaymentTimeoutError(
                f"Gateway did not respond within {self._timeout}s"
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            self._circuit_breaker.record_failure()
            raise PaymentGatewayError(f"Snap createTransaction failed: {exc}") from exc
        except asyncio.CancelledError:
            # Caller went away mid-call; the outcome is unknown, so free the probe slot
            self._circuit_breaker.abandon_probe()
            raise
        finally:
            GATEWAY_LATENCY.observe(time.perf_counter() - start)

        if not isinstance(data, dict):
            self._circuit_breaker.record_failure()
            raise PaymentGatewayError("Snap response body is not a JSON object")

        redirect_url = data.get("redirect_url")
        if not redirect_url:
            self._circuit_breaker.record_failure()
            raise PaymentGatewayError("Snap response did not contain a redirect_url")

        self._circuit_breaker.record_success()
        logger.debug(
            "Snap transaction created",
            extra={"order_id": str(order_id), "gross_amount": gross_amount},
        )
        return SnapTransaction(token=data.get("token"), redirect_url=redirect_url)

    def verify_notification(self, payload: Mapping[str, Any]) -> bool:
        return verify_signature(payload, self._server_key)

    async def aclose(self) -> None:
        await self._client.aclose()


def build_gateway(settings: Settings) -> PaymentGateway:
    if not settings.midtrans_server_key:
        logger.info("Midtrans server key not set, payment links disabled")
        return UnconfiguredGateway()

    logger.info(
        "Midtrans gateway configured",
        extra={"sandbox": settings.midtrans_is_sandbox},
    )
    return MidtransSnapGateway(
        server_key=settings.midtrans_server_key,
        base_url=settings.snap_base_url,
        timeout=settings.payment_gateway_timeout,
        circuit_breaker=CircuitBreaker(
            failure_threshold=settings.circuit_breaker_failure_threshold,
            recovery_timeout=settings.circuit_breaker_recovery_timeout,
        ),
    )
