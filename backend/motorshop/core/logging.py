"""
Structured logging setup.

Configures structlog on top of the standard library logger, binds the
acting user into context variables so every log line emitted during an
order operation carries it, and offers a timing context manager for
lifecycle operations.
"""

import logging
import sys
import time
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional

import structlog
from structlog.types import EventDict, Processor

from motorshop.core.config import get_settings

actor_id_ctx: ContextVar[Optional[int]] = ContextVar("actor_id", default=None)
operation_ctx: ContextVar[Optional[str]] = ContextVar("operation", default=None)


def add_actor_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """
    Add the acting user and current operation to a log event.

    Args:
        logger: Logger instance
        method_name: Log method name
        event_dict: Event dictionary to modify

    Returns:
        Event dictionary with actor_id and operation when set
    """
    actor_id = actor_id_ctx.get()
    if actor_id is not None:
        event_dict.setdefault("actor_id", actor_id)
    operation = operation_ctx.get()
    if operation:
        event_dict.setdefault("operation", operation)
    return event_dict


def add_timestamp(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def configure_logging() -> None:
    """
    Configure structlog and the standard library root logger.

    Development renders colored console output; every other environment
    renders one JSON object per line.
    """
    settings = get_settings()

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_timestamp,
        add_actor_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.is_development:
        processors.append(
            structlog.dev.ConsoleRenderer(
                colors=True,
                exception_formatter=structlog.dev.plain_traceback,
            )
        )
    else:
        processors.append(structlog.processors.JSONRenderer())

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

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog logger instance
    """
    return structlog.get_logger(name)


@contextmanager
def bind_actor(actor_id: Optional[int], operation: Optional[str] = None) -> Iterator[None]:
    """
    Bind the acting user and operation name for the enclosed block.

    Args:
        actor_id: Identifier of the acting user, None for system actions
        operation: Name of the lifecycle operation being executed
    """
    actor_token = actor_id_ctx.set(actor_id)
    operation_token = operation_ctx.set(operation)
    try:
        yield
    finally:
        operation_ctx.reset(operation_token)
        actor_id_ctx.reset(actor_token)


class PerformanceLogger:
    """
    Context manager that logs how long a block took.

    Failures are logged at error level with the exception type; slow
    successes (over ``slow_threshold_ms``) are logged as warnings.
    """

    def __init__(
        self,
        logger: structlog.stdlib.BoundLogger,
        operation: str,
        slow_threshold_ms: float = 500.0,
        **context: Any,
    ):
        self.logger = logger
        self.operation = operation
        self.slow_threshold_ms = slow_threshold_ms
        self.context = context
        self.start_time: Optional[float] = None

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        self.logger.debug("Operation started", operation=self.operation, **self.context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self.start_time is None:
            return

        duration_ms = round((time.perf_counter() - self.start_time) * 1000, 2)

        if exc_type is not None:
            self.logger.error(
                "Operation failed",
                operation=self.operation,
                duration_ms=duration_ms,
                error_type=exc_type.__name__,
                **self.context,
            )
            return

        log_method = (
            self.logger.warning
            if duration_ms > self.slow_threshold_ms
            else self.logger.info
        )
        log_method(
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
    Create a performance logger context manager.

    Example:
        >>> with log_performance(logger, "submit_budget", order_id=12):
        ...     await service.submit_budget(12, entries, actor)
    """
    return PerformanceLogger(logger, operation, **context)
