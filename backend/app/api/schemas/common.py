"""Response envelope and pagination shared by every router."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Literal

from fastapi import Query
from pydantic import BaseModel, ConfigDict


class FieldError(BaseModel):
    """One field-level validation failure."""

    field: str
    message: str
    value: Any = None


class ApiResponse(BaseModel):
    """`{status, message, data, errors}` envelope."""

    status: Literal["success", "error"] = "success"
    message: str | None = None
    data: Any = None
    errors: list[FieldError] | None = None


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total: int
    has_next: bool
    has_prev: bool

    @classmethod
    def build(cls, *, page: int, limit: int, total: int) -> "Pagination":
        total_pages = math.ceil(total / limit) if limit else 0
        return cls(
            current_page=page,
            total_pages=total_pages,
            total=total,
            has_next=page < total_pages,
            has_prev=page > 1,
        )


@dataclass
class PageParams:
    """`page`/`limit` query parameters, injected with Depends()."""

    page: int = Query(1, ge=1)
    limit: int = Query(10, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class UserSummary(BaseModel):
    """Embedded user reference (holder, agent, reviewer)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    first_name: str
    last_name: str
    email: str
    phone: str | None = None


class PolicySummary(BaseModel):
    """Embedded policy reference on premiums and claims."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    policy_number: str
    policy_type: str
    coverage_amount: float
    status: str


def success(data: Any = None, message: str | None = None) -> ApiResponse:
    return ApiResponse(status="success", message=message, data=data)


def paginated(key: str, items: list[Any], params: PageParams, total: int, **extra: Any) -> ApiResponse:
    """Envelope a page of `items` under `data[key]` with its pagination block."""
    data = {
        key: items,
        "pagination": Pagination.build(page=params.page, limit=params.limit, total=total),
        **extra,
    }
    return success(data)
