"""
User repository containing all data-access operations for the users table.

Repository rules:
- Pure data-access logic only
- Every function receives AsyncSession explicitly
- Functions flush, but never commit
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any

from sqlalchemy import asc, case, desc, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import UserRole
from app.core.security import hash_password
from app.db.models.base import as_utc, utcnow
from app.db.models.user import User

SORTABLE_FIELDS = {"created_at", "first_name", "last_name", "email"}


def normalize_email(email: str) -> str:
    return email.lower().strip()


async def create_user(
    db: AsyncSession,
    *,
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: str = UserRole.USER.value,
    phone: str | None = None,
    date_of_birth: date | None = None,
    address: dict[str, Any] | None = None,
    is_email_verified: bool = False,
) -> User:
    """Create a new user with a hashed password."""
    user = User(
        email=normalize_email(email),
        hashed_password=hash_password(password),
        first_name=first_name.strip(),
        last_name=last_name.strip(),
        role=role.lower(),
        phone=phone,
        date_of_birth=date_of_birth,
        address=address,
        is_email_verified=is_email_verified,
    )
    db.add(user)
    await db.flush()
    return user


async def get_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch a user by primary key."""
    return await db.get(User, user_id)


async def get_active_user_by_id(db: AsyncSession, user_id: int) -> User | None:
    """Fetch an active user by primary key."""
    stmt = select(User).where(User.id == user_id, User.is_active.is_(True))
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> User | None:
    """Fetch a user by email address (case-insensitive)."""
    stmt = select(User).where(User.email == normalize_email(email))
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_user_by_reset_token(db: AsyncSession, token_hash: str) -> User | None:
    """Fetch the user holding an unexpired password-reset token."""
    stmt = select(User).where(User.password_reset_token == token_hash)
    result = await db.execute(stmt)
    user = result.scalar_one_or_none()
    if user is None or user.password_reset_expires is None:
        return None
    if as_utc(user.password_reset_expires) <= utcnow():
        return None
    return user


def _user_filters(
    *,
    role: str | None = None,
    is_active: bool | None = None,
    search: str | None = None,
) -> list:
    filters = []
    if role is not None:
        filters.append(User.role == role.lower())
    if is_active is not None:
        filters.append(User.is_active.is_(is_active))
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(
            or_(
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.email.ilike(pattern),
            )
        )
    return filters


async def list_users(
    db: AsyncSession,
    *,
    role: str | None = None,
    is_active: bool | None = None,
    search: str | None = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
    offset: int = 0,
    limit: int = 10,
) -> tuple[list[User], int]:
    """List users with optional role/active/search filters. Returns (rows, total)."""
    filters = _user_filters(role=role, is_active=is_active, search=search)

    column = getattr(User, sort_by if sort_by in SORTABLE_FIELDS else "created_at")
    order = asc(column) if sort_order == "asc" else desc(column)

    stmt = select(User).where(*filters).order_by(order).offset(offset).limit(limit)
    result = await db.execute(stmt)

    total = await db.scalar(select(func.count()).select_from(User).where(*filters))
    return list(result.scalars().all()), total or 0


async def update_user(
    db: AsyncSession,
    user: User,
    **fields: object,
) -> User:
    """Update mutable profile fields and return the updated user."""
    allowed = {"first_name", "last_name", "phone", "date_of_birth", "address"}
    for key, value in fields.items():
        if key not in allowed or value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
        setattr(user, key, value)

    await db.flush()
    return user


async def update_password(db: AsyncSession, user: User, new_password: str) -> None:
    """Change a user's password and clear any pending reset token."""
    user.hashed_password = hash_password(new_password)
    user.password_reset_token = None
    user.password_reset_expires = None
    await db.flush()


async def set_reset_token(db: AsyncSession, user: User, token_hash: str) -> None:
    user.password_reset_token = token_hash
    user.password_reset_expires = utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
    await db.flush()


async def set_active_status(
    db: AsyncSession,
    user_id: int,
    is_active: bool,
) -> User | None:
    """Activate or deactivate a user and return updated row."""
    user = await get_user_by_id(db, user_id)
    if user is None:
        return None
    user.is_active = is_active
    await db.flush()
    return user


async def register_failed_login(db: AsyncSession, user: User, now: datetime | None = None) -> None:
    """
    Count a failed password attempt.

    An expired lock restarts the counter at 1; reaching MAX_LOGIN_ATTEMPTS
    locks the account for ACCOUNT_LOCK_MINUTES.
    """
    now = now or utcnow()
    if user.lock_until is not None and as_utc(user.lock_until) <= now:
        user.lock_until = None
        user.login_attempts = 1
    else:
        user.login_attempts = (user.login_attempts or 0) + 1
        if user.login_attempts >= settings.MAX_LOGIN_ATTEMPTS and not user.is_locked(now):
            user.lock_until = now + timedelta(minutes=settings.ACCOUNT_LOCK_MINUTES)
    await db.flush()


async def record_login(db: AsyncSession, user_id: int) -> None:
    """Reset lockout counters and stamp last_login_at on successful authentication."""
    stmt = (
        update(User)
        .where(User.id == user_id)
        .values(last_login_at=utcnow(), login_attempts=0, lock_until=None)
    )
    await db.execute(stmt)
    await db.flush()


async def role_statistics(db: AsyncSession) -> list[dict[str, Any]]:
    """Per-role user counts with active breakdown."""
    active = func.sum(case((User.is_active.is_(True), 1), else_=0))
    stmt = select(User.role, func.count(User.id), active).group_by(User.role)
    result = await db.execute(stmt)
    return [
        {"role": role, "count": count, "active": int(active_count or 0)}
        for role, count, active_count in result.all()
    ]


async def count_users(db: AsyncSession, *, is_active: bool | None = None) -> int:
    stmt = select(func.count(User.id))
    if is_active is not None:
        stmt = stmt.where(User.is_active.is_(is_active))
    return await db.scalar(stmt) or 0


async def recent_users(db: AsyncSession, limit: int = 5) -> list[User]:
    result = await db.execute(select(User).order_by(User.created_at.desc()).limit(limit))
    return list(result.scalars().all())
