"""
Structured logging for faultline.

Loggers are built explicitly and handed to the components that need them;
there is no process-wide logger registry.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from contextvars import ContextVar
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TextIO

# Context variable for task-scoped logging context
_log_context: ContextVar[dict[str, Any] | None] = ContextVar("log_context", default=None)


class LogLevel(str, Enum):
    """Log levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"

    def to_logging_level(self) -> int:
        """Convert to standard logging level."""
        return getattr(logging, self.value)


@dataclass
class LogContext:
    """Task-scoped logging context.

    Attributes:
        call_id: Identifier of the logical call being protected
        policy: Name of the resilience policy in use
        extra: Additional context fields
    """

    call_id: str | None = None
    policy: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result: dict[str, Any] = {}
        if self.call_id:
            result["call_id"] = self.call_id
        if self.policy:
            result["policy"] = self.policy
        result.update(self.extra)
        return result

    def with_extra(self, **kwargs: Any) -> LogContext:
        """Create new context with additional fields."""
        return LogContext(
            call_id=self.call_id,
            policy=self.policy,
            extra={**self.extra, **kwargs},
        )


def get_log_context() -> LogContext:
    """Get current logging context."""
    data = _log_context.get()
    if not data:
        return LogContext()
    data = dict(data)
    return LogContext(
        call_id=data.pop("call_id", None),
        policy=data.pop("policy", None),
        extra=data,
    )


def set_log_context(context: LogContext) -> None:
    """Set logging context for current async context."""
    _log_context.set(context.to_dict())


def clear_log_context() -> None:
    """Clear logging context."""
    _log_context.set(None)


class JsonFormatter(logging.Formatter):
    """JSON log formatter."""

    def __init__(self, include_timestamp: bool = True) -> None:
        super().__init__()
        self._include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: dict[str, Any] = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self._include_timestamp:
            log_data["timestamp"] = time.strftime(
                "%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)
            ) + f".{int(record.msecs):03d}Z"

        if context_dict := get_log_context().to_dict():
            log_data["context"] = context_dict

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable text formatter."""

    def __init__(self, include_context: bool = True) -> None:
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        self._include_context = include_context

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as text."""
        result = super().format(record)

        fields: dict[str, Any] = {}
        if self._include_context:
            fields.update(get_log_context().to_dict())
        fields.update(getattr(record, "extra_fields", {}))
        if fields:
            result = f"{result} | " + " ".join(f"{k}={v}" for k, v in fields.items())

        return result


class FaultlineLogger:
    """Structured logger injected into resilience components.

    Keyword arguments passed to the log methods become structured fields.

    Example:
        >>> logger = FaultlineLogger.create("payments", format="text")
        >>> breaker = CircuitBreaker(logger=logger)
        >>> logger.info("Breaker ready", breaker="payments-api")
    """

    def __init__(self, logger: logging.Logger) -> None:
        """Initialize with underlying logger."""
        self._logger = logger

    @classmethod
    def create(
        cls,
        name: str,
        level: LogLevel = LogLevel.INFO,
        format: str = "json",
        stream: TextIO | None = None,
    ) -> FaultlineLogger:
        """Build a logger with its own handler.

        Args:
            name: Logger name
            level: Log level
            format: Output format ('json' or 'text')
            stream: Output stream (default: stderr)

        Returns:
            Configured logger instance

        Raises:
            ValueError: If the format is unknown or ``name`` already has handlers
        """
        formatter: logging.Formatter
        if format == "json":
            formatter = JsonFormatter()
        elif format == "text":
            formatter = TextFormatter()
        else:
            raise ValueError(f"Unknown log format: {format!r}")

        logger = logging.getLogger(name)
        if logger.handlers:
            raise ValueError(f"Logger {name!r} is already configured")

        handler = logging.StreamHandler(stream or sys.stderr)
        handler.setFormatter(formatter)
        handler.setLevel(level.to_logging_level())

        logger.addHandler(handler)
        logger.setLevel(level.to_logging_level())
        logger.propagate = False
        return cls(logger)

    @classmethod
    def for_module(cls, name: str) -> FaultlineLogger:
        """Wrap the stdlib logger for ``name`` without touching its handlers."""
        return cls(logging.getLogger(name))

    @property
    def name(self) -> str:
        return self._logger.name

    def is_enabled_for(self, level: LogLevel) -> bool:
        return self._logger.isEnabledFor(level.to_logging_level())

    def _log(
        self, level: int, msg: str, exc_info: bool = False, **kwargs: Any
    ) -> None:
        """Internal log method."""
        extra = {"extra_fields": kwargs} if kwargs else {}
        self._logger.log(level, msg, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, **kwargs: Any) -> None:
        """Log debug message."""
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs: Any) -> None:
        """Log info message."""
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs: Any) -> None:
        """Log warning message."""
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, exc_info: bool = False, **kwargs: Any) -> None:
        """Log error message."""
        self._log(logging.ERROR, msg, exc_info=exc_info, **kwargs)

    def exception(self, msg: str, **kwargs: Any) -> None:
        """Log exception with traceback."""
        self._log(logging.ERROR, msg, exc_info=True, **kwargs)
