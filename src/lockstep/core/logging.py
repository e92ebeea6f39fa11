"""
Structured logging for lockstep.

Manifesto:
    Lock contention, breaker transitions, and batch progress are only
    observable through logs. Every module logs event-style names with
    keyword fields so the output can be aggregated and queried:

    >>> logger = get_logger(__name__)
    >>> logger.warning("lock_contended", resource="lock:google-sheets:abc", attempt=2)

Architecture:
    ::

        configure_logging(level, json_format, service)
            structlog processor chain:
              1. TimeStamper (iso)
              2. merge_contextvars
              3. add_log_level / add_logger_name
              4. add_service_metadata
              5. JSONRenderer (non-tty) or ConsoleRenderer (tty)

Features:
    - JSON output for log aggregation, coloured console for development
    - Context propagation through contextvars (destination, sync_id)
    - ``LogContext`` for scoped fields (sync and async)

Tags:
    logging, structlog, observability, lockstep
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

_SERVICE_NAME = "lockstep"


def _add_service_metadata(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add service-level metadata to all logs."""
    event_dict.setdefault("service", _SERVICE_NAME)
    return event_dict


def configure_logging(
    level: str = "INFO",
    json_format: bool | None = None,
    service: str = "lockstep",
    add_timestamp: bool = True,
) -> None:
    """Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: True for JSON, False for console, None for auto (JSON if not tty)
        service: Service name to include in logs
        add_timestamp: Include ISO timestamp in logs
    """
    global _SERVICE_NAME
    _SERVICE_NAME = service

    if json_format is None:
        json_format = not sys.stderr.isatty()

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        _add_service_metadata,
    ]

    if add_timestamp:
        shared_processors.insert(0, structlog.processors.TimeStamper(fmt="iso"))

    if json_format:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty())

    structlog.configure(
        processors=shared_processors + [renderer],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, level.upper())
        ),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # structlog renders the message; stdlib only routes it to stderr
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
    )
    # basicConfig leaves the level alone when handlers already exist
    logging.getLogger().setLevel(getattr(logging, level.upper()))


def get_logger(name: str | None = None) -> Any:
    """Get a structured logger.

    Args:
        name: Logger name (usually __name__)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind context to include in all subsequent logs.

    Example:
        bind_context(destination="sheet-123", sync_id="abc")
        logger.info("batch_started")  # Includes destination and sync_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific keys from logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


def clear_context() -> None:
    """Clear all bound context."""
    structlog.contextvars.clear_contextvars()


class LogContext:
    """Context manager for scoped logging context.

    Example:
        with LogContext(destination="sheet-123"):
            logger.info("sync_started")
        # Context cleared here
    """

    def __init__(self, **kwargs: Any):
        self._context = kwargs

    def __enter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())

    async def __aenter__(self) -> LogContext:
        bind_context(**self._context)
        return self

    async def __aexit__(self, *args: Any) -> None:
        unbind_context(*self._context.keys())


__all__ = [
    "configure_logging",
    "get_logger",
    "bind_context",
    "unbind_context",
    "clear_context",
    "LogContext",
]
