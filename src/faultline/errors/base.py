"""错误基类：提供分层错误体系和结构化错误上下文。

Base error classes for faultline.

Provides a layered error hierarchy:
- FaultlineError: Base class for all library errors
- CircuitOpenError: Circuit breaker refused to run the operation
- OperationTimeoutError: Operation exceeded the per-call timeout
- ConfigurationError: Invalid configuration or settings document

Failures of the wrapped operation itself are never translated; they surface
as whatever exception the operation raised.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from faultline.errors.classification import ErrorKind


@dataclass
class ErrorContext:
    """Structured error context for diagnostics."""

    field_path: str | None = None
    """Path to the problematic field (e.g., 'policies.default.capacity')"""

    details: dict[str, Any] = field(default_factory=dict)
    """Additional details about the error"""

    source: str | None = None
    """Error source (e.g., 'circuit_breaker', 'config')"""

    hint: str | None = None
    """Actionable hint for resolving the error"""

    def __str__(self) -> str:
        parts = []
        if self.source:
            parts.append(f"[{self.source}]")
        if self.field_path:
            parts.append(f"at '{self.field_path}'")
        if self.hint:
            parts.append(f"(hint: {self.hint})")
        return " ".join(parts)


class FaultlineError(Exception):
    """Base class for all faultline errors.

    Attributes:
        message: Human-readable error message
        context: Structured error context
        kind: Tag used for exhaustive handling without isinstance chains
    """

    kind: ErrorKind = ErrorKind.OPERATION

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
    ) -> None:
        self.message = message
        self.context = context or ErrorContext()
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the full error message."""
        ctx_str = str(self.context)
        if ctx_str:
            return f"{self.message} {ctx_str}"
        return self.message

    def with_hint(self, hint: str) -> FaultlineError:
        """Add a hint to this error."""
        self.context.hint = hint
        self.args = (self._format_message(),)
        return self


class CircuitOpenError(FaultlineError):
    """Raised when the circuit is open and the call is rejected.

    The wrapped operation is never invoked when this error is raised.
    """

    kind = ErrorKind.CIRCUIT_OPEN

    def __init__(
        self,
        message: str = "Circuit breaker is OPEN",
        *,
        breaker: str | None = None,
        time_until_retry: float | None = None,
    ) -> None:
        ctx = ErrorContext(source="circuit_breaker")
        if breaker:
            ctx.details["breaker"] = breaker
        if time_until_retry is not None:
            ctx.details["time_until_retry"] = time_until_retry
        super().__init__(message, ctx)
        self.breaker = breaker
        self.time_until_retry = time_until_retry


class OperationTimeoutError(FaultlineError):
    """Raised when an operation does not finish within its per-call timeout."""

    kind = ErrorKind.TIMEOUT

    def __init__(
        self,
        message: str = "Operation timeout",
        *,
        timeout_seconds: float | None = None,
        breaker: str | None = None,
    ) -> None:
        ctx = ErrorContext(source="circuit_breaker")
        if timeout_seconds is not None:
            ctx.details["timeout_seconds"] = timeout_seconds
        if breaker:
            ctx.details["breaker"] = breaker
        super().__init__(message, ctx)
        self.timeout_seconds = timeout_seconds
        self.breaker = breaker


class ConfigurationError(FaultlineError):
    """Invalid component configuration or settings document.

    Raised when:
    - A threshold, capacity or rate is not positive
    - A settings file cannot be found or parsed
    - A settings document fails validation
    - A named policy does not exist
    """

    kind = ErrorKind.CONFIGURATION

    def __init__(
        self,
        message: str,
        context: ErrorContext | None = None,
        *,
        field: str | None = None,
        value: Any = None,
    ) -> None:
        ctx = context or ErrorContext(source="config")
        if field:
            ctx.field_path = field
        if value is not None:
            ctx.details["value"] = value
        super().__init__(message, ctx)
        self.field = field
        self.value = value
