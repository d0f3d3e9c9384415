"""
Structured Logging Module

Structured JSON logging with correlation id support. The agent services log
through get_logger() so turn-level fields (session, user, tool) land as JSON
keys; plain modules use logging.getLogger(__name__), which configure_logging()
routes to the same stream.

Pattern: Structured logging for observability
Pattern: Singleton configuration (configure once at startup)
"""

import contextvars
import logging
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Generator, Optional, TextIO

import structlog
from structlog.types import EventDict, Processor


_configured: bool = False


# =============================================================================
# Correlation ID Context
# =============================================================================

_correlation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current context."""
    _correlation_id_var.set(correlation_id)


def get_correlation_id() -> Optional[str]:
    return _correlation_id_var.get()


def clear_correlation_id() -> None:
    _correlation_id_var.set(None)


@contextmanager
def correlation_id_context(correlation_id: str) -> Generator[None, None, None]:
    """
    Context manager for setting correlation ID.

    Example:
        >>> with correlation_id_context("req-12345"):
        ...     logger.info("agent_turn_started")
    """
    token = _correlation_id_var.set(correlation_id)
    try:
        yield
    finally:
        _correlation_id_var.reset(token)


# =============================================================================
# Processors
# =============================================================================


def add_correlation_id(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add correlation ID to log event if set."""
    correlation_id = get_correlation_id()
    if correlation_id is not None:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def add_timestamp(
    logger: logging.Logger, _method_name: str, event_dict: EventDict
) -> EventDict:
    """Add ISO 8601 UTC timestamp to log event."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def rename_level(
    logger: logging.Logger, _method_name: str, event_dict: EventDict
) -> EventDict:
    """Rename log_level to level for cleaner output."""
    if "log_level" in event_dict:
        event_dict["level"] = event_dict.pop("log_level")
    return event_dict


# =============================================================================
# Configuration
# =============================================================================


def configure_logging(
    level: str = "INFO",
    stream: Optional[TextIO] = None,
    force: bool = False,
) -> None:
    """
    Configure structlog and stdlib logging for the application.

    Called once at startup. Subsequent calls are no-ops unless force=True.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        stream: Output stream (default: sys.stdout)
        force: Force reconfiguration (tests)
    """
    global _configured

    if _configured and not force:
        return

    output = stream or sys.stdout
    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        add_timestamp,
        add_correlation_id,
        rename_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(ensure_ascii=False),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(_level_to_int(level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(
        level=_level_to_int(level),
        stream=output,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        force=force,
    )

    _configured = True


def reset_logging() -> None:
    """Reset configuration state. Tests only."""
    global _configured
    _configured = False


def get_logger(name: str) -> Any:
    """
    Get a structured logger bound to a name.

    The returned proxy resolves the structlog configuration on use, so
    module-level loggers follow configure_logging() calls made later.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("tool_executed", tool="query_questions", outcome="success")
    """
    return structlog.get_logger(logger_name=name)


def _level_to_int(level: str) -> int:
    levels = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return levels.get(level.upper(), logging.INFO)
