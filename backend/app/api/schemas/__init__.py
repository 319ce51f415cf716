"""API schema package."""

from app.api.schemas.auth import LoginRequest, RegisterRequest, UserOut
from app.api.schemas.common import ApiResponse, FieldError, PageParams, Pagination

__all__ = [
    "ApiResponse",
    "FieldError",
    "LoginRequest",
    "PageParams",
    "Pagination",
    "RegisterRequest",
    "UserOut",
]
