# logging.py

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler
from typing import Any

import structlog
from structlog.contextvars import bound_contextvars, merge_contextvars

from Harmony.config import Settings

# Third-party loggers routed through the root handlers
_PROPAGATED = ("uvicorn", "uvicorn.error", "uvicorn.access", "asyncio", "httpx")


def _level(name: str | None, default: int) -> int | None:
    """Map a configured level name to a stdlib level; ``NONE`` disables."""
    if name is None:
        return default
    if name.upper() == "NONE":
        return None
    return getattr(logging, name.upper(), default)


def _formatter() -> structlog.stdlib.ProcessorFormatter:
    # Renders both structlog events and foreign stdlib records as JSON lines
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            merge_contextvars,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        foreign_pre_chain=[structlog.processors.add_log_level, merge_contextvars],
    )


def _handlers(settings: Settings, root_level: int) -> list[logging.Handler]:
    formatter = _formatter()
    handlers: list[logging.Handler] = []

    console_level = _level(settings.logging_console, root_level)
    if console_level is not None:
        console = logging.StreamHandler()
        console.setLevel(console_level)
        handlers.append(console)

    file_level = _level(settings.logging_file, root_level)
    if file_level is not None:
        path = settings.logging_file_path
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=settings.logging_max_bytes,
            backupCount=settings.logging_backup_count,
        )
        file_handler.setLevel(file_level)
        handlers.append(file_handler)

    for handler in handlers:
        handler.setFormatter(formatter)
    return handlers


def setup_logging(settings: Settings | None = None) -> None:
    """Configure structlog over stdlib logging with per-handler levels."""
    settings = settings if settings is not None else Settings()
    root_level = _level(settings.logging_level, logging.INFO) or logging.INFO

    logging.captureWarnings(True)
    logging.basicConfig(level=root_level, handlers=_handlers(settings, root_level), force=True)
    for name in _PROPAGATED:
        lg = logging.getLogger(name)
        lg.handlers = []
        lg.propagate = True

    structlog.configure(
        processors=[
            merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


@contextmanager
def dispatch_context(**fields: Any) -> Iterator[None]:
    """Bind dispatch identifiers to every log line emitted inside the block."""
    with bound_contextvars(**{k: v for k, v in fields.items() if v is not None}):
        yield


def redact_settings(settings: Settings) -> dict:
    """Return a redacted dict of settings safe for logging.

    Tokens and keys are replaced with "[REDACTED]".
    """
    data = settings.model_dump()
    for k in data:
        if k.endswith(("_token", "_secret", "_key")):
            data[k] = "[REDACTED]"
    return data
