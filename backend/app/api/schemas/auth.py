"""Authentication request/response schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from app.core.security import PASSWORD_RULE_MESSAGE, is_strong_password
from app.db.models.base import today


def _check_password(value: str) -> str:
    if not is_strong_password(value):
        raise ValueError(PASSWORD_RULE_MESSAGE)
    return value


class Address(BaseModel):
    street: str | None = None
    city: str | None = None
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None


class RegisterRequest(BaseModel):
    """Request payload for self-registration."""

    first_name: str = Field(..., min_length=2, max_length=50)
    last_name: str = Field(..., min_length=2, max_length=50)
    email: EmailStr
    password: str = Field(..., min_length=8, max_length=256)
    phone: str | None = Field(None, pattern=r"^\+?[\d\s\-()]{7,20}$")
    date_of_birth: date | None = None
    address: Address | None = None

    @field_validator("first_name", "last_name")
    @classmethod
    def strip_name(cls, value: str) -> str:
        value = value.strip()
        if len(value) < 2:
            raise ValueError("Name must be between 2 and 50 characters")
        return value

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password(value)

    @field_validator("date_of_birth")
    @classmethod
    def born_in_past(cls, value: date | None) -> date | None:
        if value is not None and value >= today():
            raise ValueError("Date of birth must be in the past")
        return value


class LoginRequest(BaseModel):
    """Request payload for login endpoint."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=256)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str = Field(..., min_length=8, max_length=256)

    @field_validator("password")
    @classmethod
    def strong_password(cls, value: str) -> str:
        return _check_password(value)


class UserOut(BaseModel):
    """Public user profile (never includes credential or reset fields)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    full_name: str
    email: str
    phone: str | None
    date_of_birth: date | None
    age: int | None
    address: dict[str, Any] | None
    role: str
    profile_image: str | None
    is_active: bool
    is_email_verified: bool
    created_at: datetime
    updated_at: datetime
    last_login_at: datetime | None


class AuthPayload(BaseModel):
    """Data block returned by register and login."""

    user: UserOut
    token: str
    refresh_token: str
    expires_in: int
