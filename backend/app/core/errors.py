"""
Application exception hierarchy.

All request-path exceptions inherit from AppError so the exception
handlers in `app.main` can render them with the standard response
envelope.  Each exception carries the HTTP status it maps to plus
optional field-level errors.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base exception for all errors reported back to API callers."""

    status_code: int = 400

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        errors: list[dict[str, Any]] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.errors = errors
        self.details = details or {}
        super().__init__(message)


class ValidationFailed(AppError):
    """Request payload failed a field-level rule."""

    status_code = 400

    def __init__(self, message: str = "Validation failed", **kwargs) -> None:
        super().__init__(message, **kwargs)


class DomainRuleError(AppError):
    """A business rule rejected the operation (claim over coverage, premium already paid, ...)."""

    status_code = 400


class AuthenticationError(AppError):
    """Missing, invalid or expired credentials."""

    status_code = 401


class PermissionDeniedError(AppError):
    """Authenticated caller is not allowed to perform the operation."""

    status_code = 403

    def __init__(self, message: str = "Access denied", **kwargs) -> None:
        super().__init__(message, **kwargs)


class NotFoundError(AppError):
    """Requested record does not exist or is outside the caller's scope."""

    status_code = 404


class ConflictError(AppError):
    """Concurrent modification detected."""

    status_code = 409


class AccountLockedError(AppError):
    """Too many failed login attempts."""

    status_code = 423


class PaymentGatewayError(AppError):
    """A payment provider call failed or returned an unexpected response."""

    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        provider: str | None = None,
        provider_status: int | None = None,
        **kwargs,
    ) -> None:
        self.provider = provider
        self.provider_status = provider_status
        super().__init__(message, **kwargs)
