"""
Password hashing and JWT helpers.

Access tokens carry `sub`, `role`, `email` and are signed with
JWT_SECRET_KEY.  Refresh tokens carry only `sub` and are signed with a
separate secret so one cannot be replayed as the other.
"""

from __future__ import annotations

import hashlib
import re
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any

import jwt
from passlib.context import CryptContext

from app.core.config import settings

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

PASSWORD_PATTERN = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$")
PASSWORD_RULE_MESSAGE = (
    "Password must contain at least one uppercase letter, one lowercase letter, "
    "one number, and one special character"
)


def hash_password(password: str) -> str:
    """Hash a plaintext password."""
    return pwd_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    """Check a plaintext password against its stored hash."""
    return pwd_context.verify(password, hashed_password)


def is_strong_password(password: str) -> bool:
    return bool(PASSWORD_PATTERN.match(password))


def _encode(claims: dict[str, Any], secret: str, expires_delta: timedelta, token_type: str) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        **claims,
        "type": token_type,
        "iat": now,
        "exp": now + expires_delta,
    }
    return jwt.encode(payload, secret, algorithm=settings.JWT_ALGORITHM)


def _decode(token: str, secret: str, token_type: str) -> dict[str, Any] | None:
    try:
        payload = jwt.decode(token, secret, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    if payload.get("type") != token_type:
        return None
    return payload


def create_access_token(claims: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Issue a signed bearer token."""
    return _encode(
        claims,
        settings.JWT_SECRET_KEY,
        expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES),
        ACCESS_TOKEN_TYPE,
    )


def create_refresh_token(subject: str, expires_delta: timedelta | None = None) -> str:
    """Issue a long-lived refresh token for `subject`."""
    return _encode(
        {"sub": subject},
        settings.JWT_REFRESH_SECRET_KEY,
        expires_delta or timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
        REFRESH_TOKEN_TYPE,
    )


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Return the payload of a valid access token, else None."""
    return _decode(token, settings.JWT_SECRET_KEY, ACCESS_TOKEN_TYPE)


def decode_refresh_token(token: str) -> dict[str, Any] | None:
    """Return the payload of a valid refresh token, else None."""
    return _decode(token, settings.JWT_REFRESH_SECRET_KEY, REFRESH_TOKEN_TYPE)


def generate_reset_token() -> tuple[str, str]:
    """Return (raw_token, sha256_hex) for a password reset."""
    raw = secrets.token_hex(32)
    return raw, hash_reset_token(raw)


def hash_reset_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()
