"""
Identity & Role Check

Resolves the caller behind an ``Authorization: Bearer <token>`` header and
confirms its role. This is the single implementation shared by every
protected route (see app.dependencies).
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import MissingCredential, SubjectNotFound, Forbidden, InvalidCredential
from app.core.security import decode_access_token
from app.models import User, UserRole, Restaurant

logger = logging.getLogger(__name__)

ROLE_DENIED_MESSAGES = {
    UserRole.RESTAURANT: "Access denied. Only restaurant owners can access this resource.",
    UserRole.CUSTOMER: "Access denied. Only customers can access this resource.",
}


def extract_bearer_token(authorization: Optional[str]) -> str:
    """Return the token part of a ``Bearer`` header or raise MissingCredential."""
    if not authorization:
        raise MissingCredential()

    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise MissingCredential()
    return token.strip()


async def resolve_identity(
    db: AsyncSession,
    authorization: Optional[str],
    required_role: Optional[UserRole] = None,
) -> User:
    """
    Resolve and authorize the caller.

    Args:
        db: Active database session
        authorization: Raw ``Authorization`` header value
        required_role: Role the caller must hold, or None for any account

    Returns:
        User: The authenticated account

    Raises:
        MissingCredential: No bearer token supplied
        InvalidCredential: Bad signature, expired, or malformed token
        SubjectNotFound: Token subject has no matching user
        Forbidden: User does not hold ``required_role``
    """
    token = extract_bearer_token(authorization)
    claims = decode_access_token(token)

    try:
        user_id = int(claims["id"])
    except (TypeError, ValueError):
        raise InvalidCredential("Token subject is not a valid user id.")

    user = await db.get(User, user_id)
    if user is None:
        logger.warning(f"Token subject {user_id} has no matching user")
        raise SubjectNotFound()

    if required_role is not None and user.role != required_role:
        logger.warning(
            f"User #{user.id} ({user.role.value}) denied: requires {required_role.value}"
        )
        raise Forbidden(ROLE_DENIED_MESSAGES[required_role])

    return user


async def get_owned_restaurant(
    db: AsyncSession,
    restaurant_id: int,
    owner: User,
) -> Optional[Restaurant]:
    """Return the restaurant if it exists and belongs to ``owner``, else None."""
    result = await db.execute(
        select(Restaurant).where(
            Restaurant.id == restaurant_id,
            Restaurant.owner_id == owner.id,
        )
    )
    return result.scalar_one_or_none()


async def list_owned_restaurants(db: AsyncSession, owner: User) -> list[Restaurant]:
    result = await db.execute(
        select(Restaurant).where(Restaurant.owner_id == owner.id).order_by(Restaurant.id)
    )
    return list(result.scalars().all())
