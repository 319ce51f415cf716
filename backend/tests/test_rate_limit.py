from __future__ import annotations

from unittest.mock import patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from app.core.rate_limit import RateLimitMiddleware, SlidingWindow


class TestSlidingWindow:
    def test_allows_up_to_limit(self) -> None:
        window = SlidingWindow(60.0, 3)
        assert [window.allow("a") for _ in range(4)] == [(True, 2), (True, 1), (True, 0), (False, 0)]

    def test_clients_are_independent(self) -> None:
        window = SlidingWindow(60.0, 1)
        assert window.allow("a")[0] is True
        assert window.allow("b")[0] is True
        assert window.allow("a")[0] is False

    def test_window_slides(self) -> None:
        window = SlidingWindow(10.0, 1)
        with patch("app.core.rate_limit.time.monotonic", return_value=100.0):
            assert window.allow("a")[0] is True
            assert window.allow("a")[0] is False
        with patch("app.core.rate_limit.time.monotonic", return_value=111.0):
            assert window.allow("a")[0] is True

    def test_cleanup_drops_idle_clients(self) -> None:
        window = SlidingWindow(10.0, 5)
        with patch("app.core.rate_limit.time.monotonic", return_value=100.0):
            window.allow("a")
        with patch("app.core.rate_limit.time.monotonic", return_value=200.0):
            window.cleanup()
        assert "a" not in window._clients


def _app(max_requests: int) -> FastAPI:
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, window_seconds=900, max_requests=max_requests)

    @app.get("/api/v1/ping")
    async def ping() -> dict:
        return {"ok": True}

    @app.get("/health")
    async def health() -> dict:
        return {"ok": True}

    return app


class TestRateLimitMiddleware:
    def test_rejects_over_budget(self) -> None:
        client = TestClient(_app(2))
        first = client.get("/api/v1/ping")
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert client.get("/api/v1/ping").status_code == 200

        blocked = client.get("/api/v1/ping")
        assert blocked.status_code == 429
        assert blocked.json() == {
            "status": "error",
            "message": "Too many requests from this IP, please try again later.",
        }
        assert blocked.headers["Retry-After"] == "900"

    def test_only_api_paths_counted(self) -> None:
        client = TestClient(_app(1))
        for _ in range(3):
            assert client.get("/health").status_code == 200
        assert client.get("/api/v1/ping").status_code == 200

    def test_forwarded_for_identifies_client(self) -> None:
        client = TestClient(_app(1))
        assert client.get("/api/v1/ping", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200
        assert client.get("/api/v1/ping", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 200
        assert client.get("/api/v1/ping", headers={"X-Forwarded-For": "10.0.0.1, 172.16.0.1"}).status_code == 429

    def test_zero_disables(self) -> None:
        client = TestClient(_app(0))
        for _ in range(5):
            assert client.get("/api/v1/ping").status_code == 200
