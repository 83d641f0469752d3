import uuid
from datetime import datetime
from enum import Enum

from pydantic import Field, field_validator

from canteen.models.order import OrderStatus, PaymentStatus
from canteen.schemas.common import CamelModel


class OrderBy(str, Enum):
    ASC = "asc"
    DESC = "desc"


class OrderItemCreate(CamelModel):
    menu_id: uuid.UUID
    quantity: int = Field(gt=0, description="Quantity must be greater than 0")


class OrderCreate(CamelModel):
    items: list[OrderItemCreate] = Field(min_length=1, description="At least one item is required")


class UpdateOrderStatusRequest(CamelModel):
    order_status: OrderStatus

    @field_validator("order_status")
    @classmethod
    def _preparation_states_only(cls, value: OrderStatus) -> OrderStatus:
        if value == OrderStatus.WAITING:
            raise ValueError("Order status must be one of COOKING, READY, COMPLETED")
        return value


class OrderItemResponse(CamelModel):
    id: uuid.UUID
    menu_id: uuid.UUID
    quantity: int
    price_at_order: int


class OrderResponse(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    canteen_id: uuid.UUID
    payment_status: PaymentStatus
    order_status: OrderStatus
    items: list[OrderItemResponse]
    total_amount: int
    payment_link: str | None
    created_at: datetime
    updated_at: datetime


class CreateOrderResponse(CamelModel):
    message: str
    order: OrderResponse


class OrderListEntry(CamelModel):
    id: uuid.UUID
    canteen_id: uuid.UUID
    canteen_name: str
    payment_status: PaymentStatus
    order_status: OrderStatus
    total_amount: int
    created_at: datetime
    updated_at: datetime
    # Only included for the ordering user
    payment_link: str | None = None


class ListOrdersResponse(CamelModel):
    orders: list[OrderListEntry]


class OrderItemDetailResponse(CamelModel):
    id: uuid.UUID
    menu_id: uuid.UUID
    menu_name: str
    menu_photo_url: str | None
    quantity: int
    price_at_order: int


class OrderDetailResponse(CamelModel):
    id: uuid.UUID
    user_id: uuid.UUID
    user_name: str
    canteen_id: uuid.UUID
    canteen_name: str
    payment_status: PaymentStatus
    order_status: OrderStatus
    items: list[OrderItemDetailResponse]
    total_amount: int
    created_at: datetime
    updated_at: datetime


class GetOrderDetailResponse(CamelModel):
    order: OrderDetailResponse
