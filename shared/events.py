"""
Pydantic event schemas shared by the API and the notification service.
All events extend EventBase which carries correlation/tracing metadata.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

ORDER_PLACED_TOPIC = "order.placed"
ORDER_PAYMENT_UPDATED_TOPIC = "order.payment_updated"
ORDER_STATUS_UPDATED_TOPIC = "order.status_updated"


class EventBase(BaseModel):
    event_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    event_version: int = 1
    correlation_id: str | None = None  # carries X-Request-ID from the HTTP layer
    occurred_at: datetime = Field(default_factory=datetime.utcnow)

    model_config = {"extra": "ignore"}


class OrderItemEvent(BaseModel):
    menu_item_id: uuid.UUID
    quantity: int
    price_at_order: int

    model_config = {"extra": "ignore"}


class OrderPlacedEvent(EventBase):
    order_id: uuid.UUID
    user_id: uuid.UUID
    canteen_id: uuid.UUID
    total_amount: int
    payment_link: str | None = None
    items: list[OrderItemEvent]


class OrderPaymentUpdatedEvent(EventBase):
    order_id: uuid.UUID
    user_id: uuid.UUID
    canteen_id: uuid.UUID
    previous_status: str
    payment_status: str  # "PAID" | "CANCELLED"
    transaction_status: str
    stock_released: bool = False


class OrderStatusUpdatedEvent(EventBase):
    order_id: uuid.UUID
    user_id: uuid.UUID
    canteen_id: uuid.UUID
    order_status: str  # "COOKING" | "READY" | "COMPLETED"
