"""
Structured logging setup (structlog on top of stdlib logging).

Usage:
    from app.core.logging import get_logger, setup_logging

    setup_logging("INFO")          # call once at startup
    logger = get_logger(__name__)
    logger.info("Policy created", policy_id=42)

The request log is a separate stdlib logger (`app.access`) with its own
rotated JSON-lines files; see `setup_access_log`.
"""

from __future__ import annotations

import logging
import os
import sys
from logging.handlers import TimedRotatingFileHandler

import structlog

from app.core.config import settings

ACCESS_LOGGER_NAME = "app.access"

_shared_processors: list = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
]


def setup_logging(level: str = "INFO") -> None:
    """Configure structlog and the root stdlib handler."""
    if settings.APP_ENV == "development":
        renderer = structlog.dev.ConsoleRenderer()
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            *_shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.format_exc_info,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level.upper())

    # SQLAlchemy echo is noisy; keep it at WARNING unless explicitly debugging
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


class _BelowLevel(logging.Filter):
    """Pass only records strictly below a level."""

    def __init__(self, level: int) -> None:
        super().__init__()
        self.level = level

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < self.level


def setup_access_log(
    log_dir: str | None = None,
    retention_days: int | None = None,
) -> logging.Logger:
    """
    Attach rotated file handlers to the request logger.

    Successful requests go to `access.log`, 4xx/5xx to `error.log`.
    Files rotate at midnight and keep `retention_days` backups.
    """
    log_dir = log_dir or settings.LOG_DIR
    retention_days = retention_days if retention_days is not None else settings.LOG_RETENTION_DAYS
    os.makedirs(log_dir, exist_ok=True)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=[structlog.processors.TimeStamper(fmt="iso", utc=True)],
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            structlog.processors.JSONRenderer(),
        ],
    )

    info_handler = TimedRotatingFileHandler(
        os.path.join(log_dir, "access.log"),
        when="midnight",
        backupCount=retention_days,
        encoding="utf-8",
        utc=True,
    )
    info_handler.setFormatter(formatter)
    info_handler.addFilter(_BelowLevel(logging.WARNING))

    error_handler = TimedRotatingFileHandler(
        os.path.join(log_dir, "error.log"),
        when="midnight",
        backupCount=retention_days,
        encoding="utf-8",
        utc=True,
    )
    error_handler.setFormatter(formatter)
    error_handler.setLevel(logging.WARNING)

    access_logger = logging.getLogger(ACCESS_LOGGER_NAME)
    for existing in list(access_logger.handlers):
        access_logger.removeHandler(existing)
        existing.close()
    access_logger.addHandler(info_handler)
    access_logger.addHandler(error_handler)
    access_logger.setLevel(logging.INFO)
    access_logger.propagate = False
    return access_logger


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to `name`."""
    return structlog.get_logger(name)
