"""
Telemetry layer - structured logging for resilience components.
"""

from faultline.telemetry.logger import (
    FaultlineLogger,
    JsonFormatter,
    LogContext,
    LogLevel,
    TextFormatter,
    clear_log_context,
    get_log_context,
    set_log_context,
)

__all__ = [
    "FaultlineLogger",
    "JsonFormatter",
    "LogContext",
    "LogLevel",
    "TextFormatter",
    "clear_log_context",
    "get_log_context",
    "set_log_context",
]
