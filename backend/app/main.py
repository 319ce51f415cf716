"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.orm.exc import StaleDataError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.middleware import RequestLoggingMiddleware
from app.api.v1 import admin, auth, claims, payments, policies, premiums, users
from app.core.config import settings
from app.core.errors import AppError
from app.core.logging import get_logger, setup_access_log, setup_logging
from app.core.rate_limit import RateLimitMiddleware
from app.db.models.base import utcnow

STATIC_DIR = Path(__file__).parent / "static"

logger = get_logger("app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle hooks."""
    setup_logging("DEBUG" if settings.APP_ENV == "development" else settings.LOG_LEVEL)
    setup_access_log()
    startup_log = get_logger("startup")
    startup_log.info("Application starting", env=settings.APP_ENV)
    yield
    startup_log.info("Application shutting down")


def _envelope(
    status_code: int,
    message: str,
    errors: list | None = None,
    headers: dict[str, str] | None = None,
    **extra,
) -> JSONResponse:
    content = {"status": "error", "message": message}
    if errors:
        content["errors"] = errors
    content.update(extra)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(content), headers=headers)


def _field_errors(exc: RequestValidationError) -> list[dict]:
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path", "header")]
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append(
            {
                "field": ".".join(location) or "body",
                "message": message,
                "value": error.get("input"),
            }
        )
    return errors


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    return _envelope(exc.status_code, exc.message, exc.errors, **exc.details)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _envelope(400, "Validation failed", _field_errors(exc))


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return _envelope(404, f"Route {request.url.path} not found")
    return _envelope(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))


async def stale_data_handler(request: Request, exc: StaleDataError) -> JSONResponse:
    logger.warning("Concurrent modification", method=request.method, path=request.url.path)
    return _envelope(409, "Record was modified by another request; please retry")


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error", method=request.method, path=request.url.path)
    return _envelope(500, "Internal server error")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Insurance Administration API",
        description="Policies, claims, premiums and payments for insurance administration",
        version="1.0.0",
        lifespan=lifespan,
    )

    # Last added is outermost: request logging sees rate-limited responses too
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        window_seconds=settings.RATE_LIMIT_WINDOW_SECONDS,
        max_requests=settings.RATE_LIMIT_MAX_REQUESTS,
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(StaleDataError, stale_data_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    for module in (auth, users, policies, claims, premiums, payments, admin):
        app.include_router(module.router, prefix=settings.API_PREFIX)

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, str]:
        """Public health-check endpoint."""
        return {
            "status": "success",
            "message": "Insurance API is running",
            "timestamp": utcnow().isoformat(),
            "environment": settings.APP_ENV,
        }

    # Marketing site; mounted last so API routes take precedence
    app.mount("/", StaticFiles(directory=STATIC_DIR, html=True), name="static")
    return app


app = create_app()
