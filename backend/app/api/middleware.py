"""Request access logging."""

from __future__ import annotations

import logging
import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.core.logging import ACCESS_LOGGER_NAME
from app.core.security import decode_access_token


def _caller_id(request: Request) -> str | None:
    """Best-effort user id from the bearer token; never raises."""
    header = request.headers.get("authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    payload = decode_access_token(token)
    return payload.get("sub") if payload else None


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One access-log line per request: method, path, status, duration and caller."""

    def __init__(self, app, logger_name: str = ACCESS_LOGGER_NAME) -> None:
        super().__init__(app)
        self.logger = structlog.get_logger(logger_name)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        started = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            level = logging.WARNING if status_code >= 400 else logging.INFO
            self.logger.log(
                level,
                "request",
                method=request.method,
                path=request.url.path,
                status=status_code,
                duration_ms=duration_ms,
                user_id=_caller_id(request),
                ip=_client_ip(request),
                user_agent=request.headers.get("user-agent"),
            )
