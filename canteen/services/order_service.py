import logging
import uuid
from collections import OrderedDict

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from canteen.auth import Identity
from canteen.errors import InsufficientStockError, InvalidRequestError, InvalidStateError, NotFoundError
from canteen.events import EventPublisher
from canteen.metrics import ORDER_REJECTIONS, ORDERS_CREATED, PAYMENT_LINK_OUTCOMES
from canteen.models.menu_item import MenuItem
from canteen.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from canteen.models.user import UserRole
from canteen.payments.gateway import (
    CircuitBreakerOpenError,
    CustomerDetails,
    PaymentGateway,
    PaymentGatewayError,
    TransactionItem,
)
from canteen.schemas.order import (
    OrderBy,
    OrderCreate,
    OrderDetailResponse,
    OrderItemDetailResponse,
    OrderItemResponse,
    OrderListEntry,
    OrderResponse,
)
from canteen.services.inventory import InventoryLedger
from canteen.services.scopes import get_canteen_by_owner, resolve_scope
from shared.events import (
    ORDER_PLACED_TOPIC,
    ORDER_STATUS_UPDATED_TOPIC,
    OrderItemEvent,
    OrderPlacedEvent,
    OrderStatusUpdatedEvent,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _merge_lines(order_data: OrderCreate) -> "OrderedDict[uuid.UUID, int]":
    """Collapse repeated menu ids into one line, keeping first-seen order."""
    lines: OrderedDict[uuid.UUID, int] = OrderedDict()
    for item in order_data.items:
        lines[item.menu_id] = lines.get(item.menu_id, 0) + item.quantity
    return lines


def _build_response(order: Order) -> OrderResponse:
    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        canteen_id=order.canteen_id,
        payment_status=order.payment_status,
        order_status=order.order_status,
        items=[
            OrderItemResponse(
                id=item.id,
                menu_id=item.menu_item_id,
                quantity=item.quantity,
                price_at_order=item.price_at_order,
            )
            for item in order.items
        ],
        total_amount=order.total_amount,
        payment_link=order.payment_link,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def _build_detail(order: Order) -> OrderDetailResponse:
    return OrderDetailResponse(
        id=order.id,
        user_id=order.user_id,
        user_name=order.user.name,
        canteen_id=order.canteen_id,
        canteen_name=order.canteen.name,
        payment_status=order.payment_status,
        order_status=order.order_status,
        items=[
            OrderItemDetailResponse(
                id=item.id,
                menu_id=item.menu_item_id,
                menu_name=item.menu_item.name,
                menu_photo_url=item.menu_item.photo_url,
                quantity=item.quantity,
                price_at_order=item.price_at_order,
            )
            for item in order.items
        ],
        total_amount=order.total_amount,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class OrderService:
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

    async def create_order(
        self,
        identity: Identity,
        order_data: OrderCreate,
        request_id: str | None = None,
    ) -> OrderResponse:
        lines = _merge_lines(order_data)

        # Order rows and stock decrements commit or roll back together
        async with self._sessionmaker() as db:
            async with db.begin():
                order, menus = await self._reserve_and_persist(db, identity, lines)

        ORDERS_CREATED.inc()
        logger.info(
            "Order persisted with stock reserved",
            extra={
                "order_id": str(order.id),
                "canteen_id": str(order.canteen_id),
                "request_id": request_id,
                "amount": order.total_amount,
                "item_count": len(order.items),
            },
        )

        # Only requested once the reservation is durable
        payment_link = await self._acquire_payment_link(order, menus, identity, request_id)
        if payment_link is not None:
            order.payment_link = payment_link

        await self._publisher.publish(
            ORDER_PLACED_TOPIC,
            order.id,
            OrderPlacedEvent(
                correlation_id=request_id,
                order_id=order.id,
                user_id=order.user_id,
                canteen_id=order.canteen_id,
                total_amount=order.total_amount,
                payment_link=order.payment_link,
                items=[
                    OrderItemEvent(
                        menu_item_id=item.menu_item_id,
                        quantity=item.quantity,
                        price_at_order=item.price_at_order,
                    )
                    for item in order.items
                ],
            ),
        )

        return _build_response(order)

    async def _reserve_and_persist(
        self,
        db: AsyncSession,
        identity: Identity,
        lines: "OrderedDict[uuid.UUID, int]",
    ) -> tuple[Order, dict[uuid.UUID, MenuItem]]:
        # 1. Load every referenced menu item in one query
        result = await db.execute(
            select(MenuItem).where(
                MenuItem.id.in_(list(lines)),
                MenuItem.deleted_at.is_(None),
            )
        )
        menus: dict[uuid.UUID, MenuItem] = {m.id: m for m in result.scalars().all()}

        missing = [menu_id for menu_id in lines if menu_id not in menus]
        if missing:
            ORDER_REJECTIONS.labels("not_found").inc()
            raise NotFoundError(f"Menu(s) not found: {', '.join(str(m) for m in missing)}")

        # 2. Single canteen per order
        canteen_ids = {m.canteen_id for m in menus.values()}
        if len(canteen_ids) > 1:
            ORDER_REJECTIONS.labels("cross_canteen").inc()
            raise InvalidRequestError("All items must be from the same canteen")
        canteen_id = canteen_ids.pop()

        # 3. Check every line before writing anything
        for menu_id, quantity in lines.items():
            menu = menus[menu_id]
            if menu.stock < quantity:
                ORDER_REJECTIONS.labels("insufficient_stock").inc()
                raise InsufficientStockError(menu.name, menu.stock, quantity)

        # 4-5. Order + items with a price snapshot
        order = Order(
            user_id=identity.id,
            canteen_id=canteen_id,
            payment_status=PaymentStatus.UNPAID,
            order_status=OrderStatus.WAITING,
            payment_link=None,
            items=[
                OrderItem(
                    menu_item_id=menu_id,
                    quantity=quantity,
                    price_at_order=menus[menu_id].price,
                )
                for menu_id, quantity in lines.items()
            ],
        )
        db.add(order)
        await db.flush()

        # 6. Guarded decrement; a concurrent order that drained the stock
        #    since step 3 surfaces here and aborts the whole transaction
        try:
            for menu_id, quantity in lines.items():
                await self._ledger.reserve(db, menu_id, quantity)
        except InsufficientStockError:
            ORDER_REJECTIONS.labels("insufficient_stock").inc()
            raise

        return order, menus

    async def _acquire_payment_link(
        self,
        order: Order,
        menus: dict[uuid.UUID, MenuItem],
        identity: Identity,
        request_id: str | None,
    ) -> str | None:
        """Never raises: the order stands without a link if the gateway cannot provide one."""
        log_extra = {"order_id": str(order.id), "request_id": request_id}

        if not self._gateway.configured:
            PAYMENT_LINK_OUTCOMES.labels("unconfigured").inc()
            logger.info("Payment gateway not configured, order has no payment link", extra=log_extra)
            return None

        try:
            transaction = await self._gateway.create_transaction(
                order_id=order.id,
                items=[
                    TransactionItem(
                        id=str(item.menu_item_id),
                        name=menus[item.menu_item_id].name,
                        price=item.price_at_order,
                        quantity=item.quantity,
                    )
                    for item in order.items
                ],
                gross_amount=order.total_amount,
                customer=CustomerDetails(
                    email=identity.email,
                    first_name=identity.name,
                    phone=identity.phone,
                ),
            )
        except CircuitBreakerOpenError as exc:
            PAYMENT_LINK_OUTCOMES.labels("circuit_open").inc()
            logger.warning("Payment link skipped", extra={**log_extra, "error": str(exc)})
            return None
        except PaymentGatewayError as exc:
            PAYMENT_LINK_OUTCOMES.labels("failed").inc()
            logger.error("Payment link acquisition failed", extra={**log_extra, "error": str(exc)})
            return None

        try:
            async with self._sessionmaker() as db:
                async with db.begin():
                    await db.execute(
                        update(Order)
                        .where(Order.id == order.id)
                        .values(payment_link=transaction.redirect_url)
                        .execution_options(synchronize_session=False)
                    )
        except SQLAlchemyError as exc:
            PAYMENT_LINK_OUTCOMES.labels("failed").inc()
            logger.error("Failed to store payment link", extra={**log_extra, "error": str(exc)})
            return None

        PAYMENT_LINK_OUTCOMES.labels("created").inc()
        logger.info("Payment link stored", extra=log_extra)
        return transaction.redirect_url

    async def list_orders(
        self,
        identity: Identity,
        order_status: OrderStatus | None = None,
        payment_status: PaymentStatus | None = None,
        order_by: OrderBy = OrderBy.DESC,
    ) -> list[OrderListEntry]:
        async with self._sessionmaker() as db:
            scope = await resolve_scope(db, identity)
            stmt = (
                select(Order)
                .where(scope.order_filter())
                .options(selectinload(Order.items), selectinload(Order.canteen))
            )
            if order_status is not None:
                stmt = stmt.where(Order.order_status == order_status)
            if payment_status is not None:
                stmt = stmt.where(Order.payment_status == payment_status)
            ordering = Order.created_at.asc() if order_by == OrderBy.ASC else Order.created_at.desc()
            result = await db.execute(stmt.order_by(ordering))
            orders = result.scalars().all()

        entries = []
        for order in orders:
            fields = dict(
                id=order.id,
                canteen_id=order.canteen_id,
                canteen_name=order.canteen.name,
                payment_status=order.payment_status,
                order_status=order.order_status,
                total_amount=order.total_amount,
                created_at=order.created_at,
                updated_at=order.updated_at,
            )
            if identity.role == UserRole.USER:
                fields["payment_link"] = order.payment_link
            entries.append(OrderListEntry(**fields))
        return entries

    async def get_order_detail(self, identity: Identity, order_id: uuid.UUID) -> OrderDetailResponse:
        async with self._sessionmaker() as db:
            scope = await resolve_scope(db, identity)
            result = await db.execute(
                select(Order)
                .where(Order.id == order_id, scope.order_filter())
                .options(
                    selectinload(Order.items).selectinload(OrderItem.menu_item),
                    selectinload(Order.user),
                    selectinload(Order.canteen),
                )
            )
            order = result.scalars().first()

        if order is None:
            raise NotFoundError("Order not found")
        return _build_detail(order)

    async def update_order_status(
        self,
        identity: Identity,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        request_id: str | None = None,
    ) -> None:
        """Owner-driven progression. Any of COOKING/READY/COMPLETED is accepted once paid."""
        async with self._sessionmaker() as db:
            async with db.begin():
                canteen = await get_canteen_by_owner(db, identity.id)
                result = await db.execute(
                    select(Order).where(Order.id == order_id, Order.canteen_id == canteen.id)
                )
                order = result.scalars().first()
                if order is None:
                    raise NotFoundError("Order not found for this canteen")
                if order.payment_status != PaymentStatus.PAID:
                    raise InvalidStateError("Payment for this order is not completed")

                # Guard on PAID again in case a cancellation landed meanwhile
                updated = await db.execute(
                    update(Order)
                    .where(Order.id == order_id, Order.payment_status == PaymentStatus.PAID)
                    .values(order_status=new_status)
                    .execution_options(synchronize_session=False)
                )
                if updated.rowcount != 1:
                    raise InvalidStateError("Payment for this order is not completed")

        logger.info(
            "Order status updated",
            extra={
                "order_id": str(order_id),
                "canteen_id": str(canteen.id),
                "order_status": new_status.value,
                "request_id": request_id,
            },
        )
        await self._publisher.publish(
            ORDER_STATUS_UPDATED_TOPIC,
            order_id,
            OrderStatusUpdatedEvent(
                correlation_id=request_id,
                order_id=order_id,
                user_id=order.user_id,
                canteen_id=order.canteen_id,
                order_status=new_status.value,
            ),
        )
