"""API dependencies for authentication and authorization."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from evote.core.logging_config import election_logger
from evote.core.security import ROLE_ADMIN, ROLE_USER, decode_access_token

security = HTTPBearer()


def _user_from_token(token: str) -> dict:
    payload = decode_access_token(token)

    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    try:
        UUID(str(user_id))
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    role = payload.get("role", ROLE_USER)
    if role not in (ROLE_ADMIN, ROLE_USER):
        role = ROLE_USER

    return {"id": str(user_id), "role": role}


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> dict:
    """
    Dependency to get the current authenticated user.

    Users live in the external auth service; the verified token is the
    whole identity: ``{"id": <uuid str>, "role": "admin" | "user"}``.
    """
    return _user_from_token(credentials.credentials)


def require_admin(current_user: Annotated[dict, Depends(get_current_user)]) -> dict:
    """
    Dependency to require admin role.

    Raises HTTP 403 if user is not an admin.
    """
    if current_user.get("role") != ROLE_ADMIN:
        election_logger.log_unauthorized_access(
            "admin", user_id=current_user.get("id"), reason="admin role required"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required"
        )
    return current_user


def is_admin(user: dict | None) -> bool:
    return bool(user) and user.get("role") == ROLE_ADMIN
