"""Logging setup for the marketplace.

Stdlib handlers carry the output; structlog renders it. Console output in
development, JSON lines in production and staging, and rotating files only
when a log directory is configured.
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Any

import structlog

LEVEL_BY_ENVIRONMENT = {
    "production": "INFO",
    "staging": "INFO",
    "development": "DEBUG",
    "test": "WARNING",
}

QUIET_LOGGERS = ("asyncio", "urllib3", "uvicorn.access", "sqlalchemy.engine")

_MAX_LOG_BYTES = 10 * 1024 * 1024
_LOG_BACKUPS = 5


def current_environment() -> str:
    return (os.getenv("ENVIRONMENT") or os.getenv("PROTEAN_ENV") or "development").lower()


def resolve_log_level(environment: str | None = None) -> str:
    """``LOG_LEVEL`` wins; otherwise the level follows the environment name."""
    environment = environment or current_environment()
    return os.getenv("LOG_LEVEL", LEVEL_BY_ENVIRONMENT.get(environment, "INFO")).upper()


def _rotating_file(path: Path, level: int | str) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=_MAX_LOG_BYTES,
        backupCount=_LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(level)
    return handler


def _build_handlers(level: str, log_dir: str | None) -> list[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    handlers: list[logging.Handler] = [console]

    if log_dir:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        handlers.append(_rotating_file(directory / "marketplace.log", level))
        handlers.append(_rotating_file(directory / "marketplace_error.log", logging.ERROR))

    return handlers


def _renderer(environment: str):
    if environment in ("production", "staging"):
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(log_dir: str | None = None) -> None:
    """Configure stdlib handlers and structlog for the whole process.

    ``log_dir`` falls back to ``MARKETPLACE_LOG_DIR``; with neither set only
    the console handler is installed.
    """
    environment = current_environment()
    level = resolve_log_level(environment)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers = _build_handlers(level, log_dir or os.getenv("MARKETPLACE_LOG_DIR"))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            _renderer(environment),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def add_context(**kwargs: Any) -> None:
    """Bind values (request path, order id) onto every later log line in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
