import logging
import uuid

from fastapi import APIRouter, Depends, Query, Request, status

from canteen.auth import Identity, require_roles
from canteen.dependencies import get_order_service, request_id
from canteen.models.order import OrderStatus, PaymentStatus
from canteen.models.user import UserRole
from canteen.schemas.common import MessageResponse
from canteen.schemas.order import (
    CreateOrderResponse,
    GetOrderDetailResponse,
    ListOrdersResponse,
    OrderBy,
    OrderCreate,
    UpdateOrderStatusRequest,
)
from canteen.services.order_service import OrderService

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=CreateOrderResponse, status_code=status.HTTP_201_CREATED)
async def place_order(
    body: OrderCreate,
    request: Request,
    identity: Identity = Depends(require_roles(UserRole.USER)),
    service: OrderService = Depends(get_order_service),
) -> CreateOrderResponse:
    rid = request_id(request)
    logger.info(
        "Received place_order request",
        extra={"request_id": rid, "user_id": str(identity.id), "line_count": len(body.items)},
    )
    order = await service.create_order(identity, body, rid)
    return CreateOrderResponse(message="Order created successfully", order=order)


@router.get("", response_model=ListOrdersResponse, response_model_exclude_unset=True)
async def list_orders(
    identity: Identity = Depends(require_roles(UserRole.USER, UserRole.CANTEEN_OWNER)),
    service: OrderService = Depends(get_order_service),
    order_status: OrderStatus | None = Query(default=None, alias="orderStatus"),
    payment_status: PaymentStatus | None = Query(default=None, alias="paymentStatus"),
    order_by: OrderBy = Query(default=OrderBy.DESC, alias="orderBy"),
) -> ListOrdersResponse:
    orders = await service.list_orders(identity, order_status, payment_status, order_by)
    return ListOrdersResponse(orders=orders)


@router.get("/{order_id}", response_model=GetOrderDetailResponse)
async def get_order(
    order_id: uuid.UUID,
    identity: Identity = Depends(require_roles(UserRole.USER, UserRole.CANTEEN_OWNER)),
    service: OrderService = Depends(get_order_service),
) -> GetOrderDetailResponse:
    order = await service.get_order_detail(identity, order_id)
    return GetOrderDetailResponse(order=order)


@router.patch("/{order_id}/status", response_model=MessageResponse)
async def update_order_status(
    order_id: uuid.UUID,
    body: UpdateOrderStatusRequest,
    request: Request,
    identity: Identity = Depends(require_roles(UserRole.CANTEEN_OWNER)),
    service: OrderService = Depends(get_order_service),
) -> MessageResponse:
    await service.update_order_status(identity, order_id, body.order_status, request_id(request))
    return MessageResponse(message="Order status updated successfully")
