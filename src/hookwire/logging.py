"""Structured logging configuration for Hookwire.

JSON output in production, colored console output in development. Every
event dict passes through a redaction processor so that secrets or card
numbers placed in log calls never reach the output.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

from hookwire.sanitize import REDACTED, is_sensitive_key, sanitize

if TYPE_CHECKING:
    from structlog.typing import EventDict, Processor, WrappedLogger

_configured = False

# Keys structlog itself manages; never redacted or rewritten.
_RESERVED_KEYS = frozenset({"event", "level", "logger", "timestamp", "exc_info", "stack_info"})


def redact_sensitive(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """structlog processor that redacts sensitive keys and nested values."""
    for key, value in list(event_dict.items()):
        if key in _RESERVED_KEYS:
            continue
        if is_sensitive_key(key):
            event_dict[key] = REDACTED
        elif isinstance(value, dict | list | str):
            event_dict[key] = sanitize(value)
    return event_dict


def configure_logging(
    level: str = "INFO",
    format: str = "json",
) -> None:
    """Configure structured logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        format: "json" for production, "text" for development.
    """
    global _configured

    log_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        redact_sensitive,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if format.lower() == "json":
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, configuring defaults on first use.

    Example:
        ```python
        logger = get_logger(__name__)
        logger.info("Endpoint registered", endpoint_id="whk_123")
        ```
    """
    if not _configured:
        configure_logging()

    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: Any) -> None:
    """Bind context variables (e.g. request_id, owner_id) to subsequent log lines."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables at the end of a request."""
    structlog.contextvars.clear_contextvars()


def unbind_context(*keys: str) -> None:
    """Remove specific keys from the logging context."""
    structlog.contextvars.unbind_contextvars(*keys)


logger = get_logger("hookwire")
