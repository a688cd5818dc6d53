"""
JWT utilities for the authentication boundary.

Users register and log in through the external auth service. This service
only verifies the bearer tokens it issues: ``sub`` carries the user UUID and
``role`` is either ``admin`` or ``user``.
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from evote.core.config import settings
from evote.core.logging_config import get_logger

logger = get_logger(__name__)

ROLE_ADMIN = "admin"
ROLE_USER = "user"


def create_access_token(
    data: dict, expires_delta: timedelta | None = None
) -> str:
    """
    Create a JWT access token.

    Args:
        data: Payload data to encode in the token
        expires_delta: Optional expiration time delta

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(UTC) + expires_delta
    else:
        expire = datetime.now(UTC) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )

    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """
    Decode and verify a JWT access token.

    Returns:
        Decoded token payload or None if invalid
    """
    try:
        return jwt.decode(
            token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError as e:
        logger.debug(f"Rejected access token: {e}")
        return None
