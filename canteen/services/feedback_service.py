import logging
import uuid
from datetime import datetime

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from canteen.auth import Identity
from canteen.errors import ConflictError, InvalidStateError, NotFoundError
from canteen.models.feedback import Feedback
from canteen.models.order import Order, OrderStatus
from canteen.schemas.feedback import FeedbackCreate, FeedbackResponse
from canteen.services.scopes import get_canteen_by_owner, resolve_scope

logger = logging.getLogger(__name__)


def _build_response(feedback: Feedback, user_name: str) -> FeedbackResponse:
    return FeedbackResponse(
        id=feedback.id,
        order_id=feedback.order_id,
        user_id=feedback.user_id,
        user_name=user_name,
        rating=feedback.rating,
        comment=feedback.comment,
        created_at=feedback.created_at,
    )


class FeedbackService:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    async def create_feedback(self, identity: Identity, data: FeedbackCreate) -> FeedbackResponse:
        try:
            feedback, order = await self._insert_feedback(identity, data)
        except IntegrityError:
            # A concurrent request for the same order won the unique order_id slot
            raise ConflictError("Feedback already exists for this order")

        logger.info(
            "Feedback created",
            extra={"feedback_id": str(feedback.id), "order_id": str(order.id), "rating": data.rating},
        )
        return _build_response(feedback, identity.name)

    async def _insert_feedback(
        self, identity: Identity, data: FeedbackCreate
    ) -> tuple[Feedback, Order]:
        async with self._sessionmaker() as db:
            async with db.begin():
                result = await db.execute(
                    select(Order).where(Order.id == data.order_id, Order.user_id == identity.id)
                )
                order = result.scalars().first()
                if order is None:
                    raise NotFoundError("Order not found")
                if order.order_status != OrderStatus.COMPLETED:
                    raise InvalidStateError("Feedback can only be created for completed orders")

                # Soft-deleted feedback still occupies the order's single slot
                if await self._feedback_exists(db, order.id):
                    raise ConflictError("Feedback already exists for this order")

                feedback = Feedback(
                    order_id=order.id,
                    user_id=identity.id,
                    rating=data.rating,
                    comment=data.comment,
                    deleted_at=None,
                )
                db.add(feedback)
        return feedback, order

    @staticmethod
    async def _feedback_exists(db: AsyncSession, order_id: uuid.UUID) -> bool:
        result = await db.execute(select(Feedback.id).where(Feedback.order_id == order_id))
        return result.first() is not None

    async def list_feedbacks(self, identity: Identity) -> list[FeedbackResponse]:
        async with self._sessionmaker() as db:
            scope = await resolve_scope(db, identity)
            result = await db.execute(
                select(Feedback)
                .join(Order, Feedback.order_id == Order.id)
                .where(Feedback.deleted_at.is_(None), scope.order_filter())
                .options(selectinload(Feedback.user))
                .order_by(Feedback.created_at.desc())
            )
            feedbacks = result.scalars().all()
        return [_build_response(f, f.user.name) for f in feedbacks]

    async def delete_feedback(self, identity: Identity, feedback_id: uuid.UUID) -> None:
        async with self._sessionmaker() as db:
            async with db.begin():
                canteen = await get_canteen_by_owner(db, identity.id)
                in_canteen = select(Order.id).where(Order.canteen_id == canteen.id)
                result = await db.execute(
                    update(Feedback)
                    .where(
                        Feedback.id == feedback_id,
                        Feedback.deleted_at.is_(None),
                        Feedback.order_id.in_(in_canteen),
                    )
                    .values(deleted_at=datetime.utcnow())
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    raise NotFoundError("Feedback not found")

        logger.info(
            "Feedback deleted",
            extra={"feedback_id": str(feedback_id), "canteen_id": str(canteen.id)},
        )
