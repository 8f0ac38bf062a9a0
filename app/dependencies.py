"""
FastAPI dependencies for authenticated routes.

Usage:
    @app.get("/api/orders")
    async def list_orders(owner: User = Depends(require_restaurant_owner)):
        ...
"""

from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.models import User, UserRole
from app.services.identity import resolve_identity


def require_role(role: Optional[UserRole] = None):
    """
    Build a dependency resolving the caller and, when given, checking its role.

    Args:
        role: Required role, or None to accept any authenticated account
    """
    async def dependency(
        authorization: Optional[str] = Header(None),
        db: AsyncSession = Depends(get_db),
    ) -> User:
        return await resolve_identity(db, authorization, required_role=role)

    return dependency


get_current_user = require_role()
require_restaurant_owner = require_role(UserRole.RESTAURANT)
