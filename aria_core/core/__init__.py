# Aria Core shared infrastructure

from aria_core.core.logging import (
    LogFormat,
    LogLevel,
    JSONFormatter,
    PrettyFormatter,
    SimpleFormatter,
    bind_context,
    clear_context,
    get_logger,
    setup_logging,
)

__all__ = [
    "LogFormat",
    "LogLevel",
    "JSONFormatter",
    "PrettyFormatter",
    "SimpleFormatter",
    "bind_context",
    "clear_context",
    "get_logger",
    "setup_logging",
]
