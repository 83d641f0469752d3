"""
Caller identity.

Authentication happens upstream; the auth layer forwards the authenticated
user id in ``X-User-Id``. The id is trusted, but the user row is still
loaded so that soft-deleted users are rejected and role/contact details come
from the database rather than from headers.
"""

import uuid
from dataclasses import dataclass

from fastapi import Depends, Header, Request
from sqlalchemy import select

from canteen.errors import ForbiddenError, UnauthorizedError
from canteen.models.user import User, UserRole

AUTH_ERROR_401 = "Unauthorized - Missing or unknown user identity"
AUTH_ERROR_403 = "Forbidden - User does not have required role/permissions"


@dataclass(frozen=True)
class Identity:
    id: uuid.UUID
    email: str
    name: str
    role: UserRole
    phone: str | None = None


async def get_identity(
    request: Request,
    x_user_id: str | None = Header(default=None),
) -> Identity:
    if not x_user_id:
        raise UnauthorizedError("Missing X-User-Id header")
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        raise UnauthorizedError(AUTH_ERROR_401)

    sessionmaker = request.app.state.services.sessionmaker
    async with sessionmaker() as db:
        result = await db.execute(
            select(User).where(User.id == user_id, User.deleted_at.is_(None))
        )
        user = result.scalars().first()

    if user is None:
        raise UnauthorizedError(AUTH_ERROR_401)

    return Identity(id=user.id, email=user.email, name=user.name, role=user.role, phone=user.phone)


def require_roles(*roles: UserRole):
    allowed = set(roles)

    async def _dependency(identity: Identity = Depends(get_identity)) -> Identity:
        if identity.role not in allowed:
            raise ForbiddenError("Forbidden")
        return identity

    return _dependency
