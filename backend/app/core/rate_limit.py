"""
In-memory request-volume limiter for the API prefix.

Sliding window per client IP.  Configure via RATE_LIMIT_WINDOW_SECONDS
and RATE_LIMIT_MAX_REQUESTS (0 disables the limiter).  Only paths under
`path_prefix` are counted; health checks and static assets pass freely.
"""

from __future__ import annotations

import time
from collections import defaultdict, deque
from threading import Lock

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from app.core.logging import get_logger

logger = get_logger(__name__)


class SlidingWindow:
    """Per-client sliding window counter."""

    __slots__ = ("_window_sec", "_max_requests", "_clients", "_lock")

    def __init__(self, window_sec: float, max_requests: int) -> None:
        self._window_sec = window_sec
        self._max_requests = max_requests
        self._clients: dict[str, deque[float]] = defaultdict(deque)
        self._lock = Lock()

    def allow(self, client_id: str) -> tuple[bool, int]:
        """Return (allowed, remaining) for the given client."""
        now = time.monotonic()
        cutoff = now - self._window_sec

        with self._lock:
            timestamps = self._clients[client_id]
            while timestamps and timestamps[0] < cutoff:
                timestamps.popleft()

            if len(timestamps) >= self._max_requests:
                return False, 0

            timestamps.append(now)
            return True, self._max_requests - len(timestamps)

    def cleanup(self) -> None:
        """Drop clients with no requests inside the window."""
        cutoff = time.monotonic() - self._window_sec

        with self._lock:
            stale = [k for k, v in self._clients.items() if not v or v[-1] < cutoff]
            for k in stale:
                del self._clients[k]


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Rejects clients that exceed the request budget with 429."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        window_seconds: int,
        max_requests: int,
        path_prefix: str = "/api/",
    ) -> None:
        super().__init__(app)
        self._enabled = max_requests > 0
        self._window = SlidingWindow(float(window_seconds), max_requests)
        self._window_seconds = window_seconds
        self._max_requests = max_requests
        self._path_prefix = path_prefix
        self._cleanup_counter = 0

    @staticmethod
    def _client_ip(request: Request) -> str:
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            return forwarded.split(",")[0].strip()
        if request.client:
            return request.client.host
        return "unknown"

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if not self._enabled or not request.url.path.startswith(self._path_prefix):
            return await call_next(request)

        client = self._client_ip(request)
        allowed, remaining = self._window.allow(client)
        if not allowed:
            logger.warning("Rate limit exceeded", client=client, path=request.url.path)
            return JSONResponse(
                {
                    "status": "error",
                    "message": "Too many requests from this IP, please try again later.",
                },
                status_code=429,
                headers={"Retry-After": str(self._window_seconds)},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self._max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)

        self._cleanup_counter += 1
        if self._cleanup_counter >= 500:
            self._cleanup_counter = 0
            self._window.cleanup()

        return response
