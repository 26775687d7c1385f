"""
Error classification for resilience outcomes.

Every exception that leaves ``execute`` maps to exactly one ``ErrorKind`` so
callers can branch on a closed set of outcomes instead of chains of
``isinstance`` checks::

    match classify_error(exc):
        case ErrorKind.CIRCUIT_OPEN: ...
        case ErrorKind.TIMEOUT: ...
        case ErrorKind.CONFIGURATION: ...
        case ErrorKind.OPERATION: ...
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Outcome classification for failed calls."""

    OPERATION = "operation"
    """The wrapped operation itself failed."""

    CIRCUIT_OPEN = "circuit_open"
    """The circuit breaker refused to invoke the operation."""

    TIMEOUT = "timeout"
    """The operation exceeded the circuit breaker's per-call timeout."""

    CONFIGURATION = "configuration"
    """A component or settings document was misconfigured."""


# Kinds that indicate the dependency was never (fully) exercised
_SYNTHETIC_KINDS: set[ErrorKind] = {
    ErrorKind.CIRCUIT_OPEN,
    ErrorKind.TIMEOUT,
}


def classify_error(error: BaseException) -> ErrorKind:
    """Classify an exception into an ErrorKind.

    Library errors carry their own ``kind`` tag; anything else is an
    operation failure.

    Args:
        error: The exception raised by a resilience call

    Returns:
        The matching ErrorKind
    """
    kind = getattr(error, "kind", None)
    if isinstance(kind, ErrorKind):
        return kind
    return ErrorKind.OPERATION


def is_synthetic(error: BaseException) -> bool:
    """Check if an error was produced by the breaker rather than the operation.

    Args:
        error: The exception to inspect

    Returns:
        True for circuit-open rejections and per-call timeouts
    """
    return classify_error(error) in _SYNTHETIC_KINDS
