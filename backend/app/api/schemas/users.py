"""User management schemas."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, Field, field_validator

from app.api.schemas.auth import Address
from app.db.models.base import today


class UserUpdate(BaseModel):
    """Profile fields a user (or an admin) may change."""

    first_name: str | None = Field(None, min_length=2, max_length=50)
    last_name: str | None = Field(None, min_length=2, max_length=50)
    phone: str | None = Field(None, pattern=r"^\+?[\d\s\-()]{7,20}$")
    date_of_birth: date | None = None
    address: Address | None = None

    @field_validator("date_of_birth")
    @classmethod
    def born_in_past(cls, value: date | None) -> date | None:
        if value is not None and value >= today():
            raise ValueError("Date of birth must be in the past")
        return value
