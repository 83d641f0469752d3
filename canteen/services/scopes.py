"""
Scope resolution: turns an authenticated identity into the canonical filter
that limits which orders (and order-linked rows such as feedback) it may see.
"""

import uuid
from abc import ABC, abstractmethod

from sqlalchemy import ColumnElement, select
from sqlalchemy.ext.asyncio import AsyncSession

from canteen.auth import Identity
from canteen.errors import ForbiddenError, NotFoundError
from canteen.models.canteen import Canteen
from canteen.models.order import Order
from canteen.models.user import UserRole


class OrderScope(ABC):
    @abstractmethod
    def order_filter(self) -> ColumnElement[bool]:
        """Criterion on Order restricting rows to this scope."""


class UserScope(OrderScope):
    """Orders placed by one user."""

    def __init__(self, user_id: uuid.UUID) -> None:
        self.user_id = user_id

    def order_filter(self) -> ColumnElement[bool]:
        return Order.user_id == self.user_id


class CanteenScope(OrderScope):
    """Orders placed at one canteen."""

    def __init__(self, canteen_id: uuid.UUID) -> None:
        self.canteen_id = canteen_id

    def order_filter(self) -> ColumnElement[bool]:
        return Order.canteen_id == self.canteen_id


async def find_canteen_by_owner(db: AsyncSession, owner_id: uuid.UUID) -> Canteen | None:
    result = await db.execute(
        select(Canteen).where(Canteen.owner_id == owner_id, Canteen.deleted_at.is_(None))
    )
    return result.scalars().first()


async def get_canteen_by_owner(db: AsyncSession, owner_id: uuid.UUID) -> Canteen:
    canteen = await find_canteen_by_owner(db, owner_id)
    if canteen is None:
        raise NotFoundError("Canteen not found for this owner")
    return canteen


async def resolve_scope(db: AsyncSession, identity: Identity) -> OrderScope:
    if identity.role == UserRole.USER:
        return UserScope(identity.id)
    if identity.role == UserRole.CANTEEN_OWNER:
        canteen = await get_canteen_by_owner(db, identity.id)
        return CanteenScope(canteen.id)
    raise ForbiddenError("Forbidden")
