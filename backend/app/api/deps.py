"""Shared dependencies for API routes."""

from __future__ import annotations

from typing import Any, AsyncGenerator, Callable

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import Resource, UserRole
from app.core.errors import AuthenticationError, PermissionDeniedError
from app.core.permissions import Scope, build_scope
from app.core.security import decode_access_token
from app.db.models.user import User
from app.db.session import get_db as _get_db
from app.repositories import users as user_repository

security_scheme = HTTPBearer(auto_error=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async DB session (committed on success, rolled back on error)."""
    async for session in _get_db():
        yield session


async def get_current_token_payload(
    credentials: HTTPAuthorizationCredentials | None = Depends(security_scheme),
) -> dict[str, Any]:
    """Extract and validate JWT payload from bearer token."""
    if credentials is None:
        raise AuthenticationError("Access denied. No token provided.")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Invalid or expired token")
    return payload


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    token_payload: dict[str, Any] = Depends(get_current_token_payload),
) -> User:
    """Resolve an active user from JWT payload."""
    subject = token_payload.get("sub")
    try:
        user_id = int(subject)
    except (TypeError, ValueError):
        raise AuthenticationError("Invalid authentication token") from None

    user = await user_repository.get_user_by_id(db, user_id)
    if user is None:
        raise AuthenticationError("Invalid token. User not found.")
    if not user.is_active:
        raise AuthenticationError("Account is deactivated")

    return user


def require_roles(*roles: UserRole) -> Callable[..., Any]:
    """Dependency factory: allow only callers whose role is in `roles`."""
    allowed = {UserRole(role) for role in roles}

    async def _guard(current_user: User = Depends(get_current_user)) -> User:
        if UserRole(current_user.role) not in allowed:
            raise PermissionDeniedError()
        return current_user

    return _guard


def ensure_self_or_admin(current_user: User, user_id: int) -> None:
    if current_user.role != UserRole.ADMIN and current_user.id != user_id:
        raise PermissionDeniedError()


def scope_for(current_user: User, resource: Resource) -> Scope:
    return build_scope(current_user.id, current_user.role, resource)
