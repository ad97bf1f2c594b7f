"""
Standardized Logging Configuration

This module provides a consistent, structured logging setup for the assistant core.
Supports JSON logging for production and human-readable format for development.
Components log through structlog, which renders into the stdlib handlers
configured here.
"""

import json
import logging
import os
import sys
import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

import structlog


# =============================================================================
# Configuration
# =============================================================================


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    PRETTY = "pretty"
    SIMPLE = "simple"


DEFAULT_LOG_LEVEL = os.getenv("ARIA_LOG_LEVEL", "INFO")
DEFAULT_LOG_FORMAT = os.getenv(
    "ARIA_LOG_FORMAT",
    "json" if os.getenv("ARIA_ENVIRONMENT") == "production" else "pretty",
)
SERVICE_NAME = os.getenv("ARIA_SERVICE_NAME", "aria-core")

_RESERVED_ATTRS = {
    "name", "msg", "args", "levelname", "levelno", "pathname",
    "filename", "module", "lineno", "funcName", "created",
    "msecs", "relativeCreated", "thread", "threadName",
    "processName", "process", "message", "exc_info", "exc_text",
    "stack_info", "taskName",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Custom Formatters
# =============================================================================


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        result: Dict[str, Any] = {
            "timestamp": _utcnow().isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "service": SERVICE_NAME,
        }

        context = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if context:
            result["context"] = context

        if record.exc_info:
            result["error"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }
            result["stack_trace"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(result, default=str)


class PrettyFormatter(logging.Formatter):
    """Human-readable log formatter for development."""

    COLORS = {
        "DEBUG": "\033[36m",  # Cyan
        "INFO": "\033[32m",   # Green
        "WARNING": "\033[33m",  # Yellow
        "ERROR": "\033[31m",  # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with colors."""
        color = self.COLORS.get(record.levelname, "")

        timestamp = _utcnow().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        level = f"{color}{record.levelname:8}{self.RESET}"
        logger = f"\033[90m{record.name}\033[0m"

        message = f"{timestamp} | {level} | {logger} | {record.getMessage()}"

        extra_fields = [
            f"{key}={value}"
            for key, value in record.__dict__.items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        ]
        if extra_fields:
            message += f" | {' '.join(extra_fields)}"

        if record.exc_info:
            message += f"\n{''.join(traceback.format_exception(*record.exc_info))}"

        return message


class SimpleFormatter(logging.Formatter):
    """Simple log formatter without colors."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record simply."""
        timestamp = _utcnow().strftime("%Y-%m-%d %H:%M:%S")
        return f"{timestamp} [{record.levelname}] {record.name}: {record.getMessage()}"


# =============================================================================
# Logger Setup
# =============================================================================


def _select_formatter(format: str) -> logging.Formatter:
    if format == LogFormat.JSON or format == "json":
        return JSONFormatter()
    if format == LogFormat.PRETTY or format == "pretty":
        return PrettyFormatter()
    return SimpleFormatter()


def setup_logging(
    level: str = DEFAULT_LOG_LEVEL,
    format: str = DEFAULT_LOG_FORMAT,
    service_name: Optional[str] = None,
) -> None:
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format (json, pretty, simple)
        service_name: Service name for log entries
    """
    global SERVICE_NAME

    if service_name:
        SERVICE_NAME = service_name

    numeric_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(_select_formatter(format))
    root_logger.addHandler(handler)

    # structlog event dicts are handed to stdlib; key/values travel as `extra`
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.render_to_log_kwargs,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Suppress noisy third-party loggers
    logging.getLogger("websockets").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured",
        extra={"level": level, "format": format, "service": SERVICE_NAME},
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger with the given name.

    Args:
        name: Logger name (typically __name__)
    """
    return structlog.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """Bind key/values to every log line emitted from the current task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear task-scoped logging context."""
    structlog.contextvars.clear_contextvars()


__all__ = [
    "LogLevel",
    "LogFormat",
    "JSONFormatter",
    "PrettyFormatter",
    "SimpleFormatter",
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
]
