"""
Structured logging with request correlation.

All modules log through ``get_logger(__name__)`` and pass context as keyword
arguments. Request and user identifiers are carried in context variables and
merged into every event emitted while a request is being served.
"""

import logging
import sys
import time
from typing import Any, Optional
from uuid import uuid4

import structlog
from structlog.types import Processor

from storefront.core.config import get_settings

REQUEST_ID_KEY = "request_id"
USER_ID_KEY = "user_id"


def configure_logging() -> None:
    """
    Configure structlog and the standard library root logger.

    Console rendering is used in development, JSON everywhere else. Library
    loggers (uvicorn, SQLAlchemy) go through the same handler so that their
    output shares the level set in configuration.
    """
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.use_json_logs:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=sys.stdout.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            )
        )

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level),
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.db_echo else logging.WARNING
    )
    logging.getLogger("stripe").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)


def set_request_id(request_id: Optional[str] = None) -> str:
    """
    Bind a request id to the current context.

    Args:
        request_id: Incoming id, a new UUID is generated when missing

    Returns:
        The request id now bound to the context
    """
    request_id = request_id or str(uuid4())
    structlog.contextvars.bind_contextvars(**{REQUEST_ID_KEY: request_id})
    return request_id


def get_request_id() -> str:
    return structlog.contextvars.get_contextvars().get(REQUEST_ID_KEY, "")


def set_user_id(user_id: Optional[str]) -> None:
    if user_id is None:
        structlog.contextvars.unbind_contextvars(USER_ID_KEY)
        return
    structlog.contextvars.bind_contextvars(**{USER_ID_KEY: user_id})


def clear_context() -> None:
    """Drop all request scoped context. Called when a response is sent."""
    structlog.contextvars.clear_contextvars()


class PerformanceLogger:
    """Context manager timing a block and logging its duration."""

    slow_threshold_ms = 500.0

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        **context: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.context = context
        self.start_time: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is None:
            return

        duration_ms = round((time.perf_counter() - self.start_time) * 1000, 2)

        if exc_type is not None:
            self.logger.warning(
                "Operation failed",
                operation=self.operation,
                duration_ms=duration_ms,
                error_type=exc_type.__name__,
                **self.context,
            )
            return

        log = (
            self.logger.warning
            if duration_ms > self.slow_threshold_ms
            else self.logger.debug
        )
        log(
            "Operation completed",
            operation=self.operation,
            duration_ms=duration_ms,
            **self.context,
        )


def log_performance(
    logger: structlog.stdlib.BoundLogger,
    operation: str,
    **context: Any,
) -> PerformanceLogger:
    """
    Time a block of code.

    Example:
        >>> with log_performance(logger, "place_order", buyer_id=str(buyer_id)):
        ...     await service.place_order(...)
    """
    return PerformanceLogger(logger, operation, **context)
