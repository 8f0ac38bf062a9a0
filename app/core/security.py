"""
Password hashing and bearer token helpers.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from werkzeug.security import generate_password_hash, check_password_hash

from app.core.config import get_settings
from app.core.exceptions import InvalidCredential

logger = logging.getLogger(__name__)


def hash_password(raw_password: str) -> str:
    return generate_password_hash(raw_password)


def verify_password(raw_password: str, password_hash: str) -> bool:
    return check_password_hash(password_hash, raw_password)


def create_access_token(user_id: int) -> str:
    """Issue a signed token whose ``id`` claim names the user."""
    settings = get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "id": user_id,
        "iat": now,
        "exp": now + timedelta(minutes=settings.access_token_expire_minutes),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """
    Verify signature and expiry and return the claims.

    Raises:
        InvalidCredential: token expired, tampered with, or missing the ``id`` claim
    """
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.ExpiredSignatureError:
        raise InvalidCredential("Token expired.")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Token rejected: {e}")
        raise InvalidCredential("Invalid token.")

    if claims.get("id") is None:
        raise InvalidCredential("Token has no subject.")
    return claims
