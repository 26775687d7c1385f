"""异步弹性原语：重试、令牌桶限流与熔断器，由调用方自由组合。

faultline: async resilience primitives for Python.

Retry, token-bucket rate limiting and circuit breaking as independent
components that callers nest at the call site.
"""
from __future__ import annotations

from faultline.clock import Clock, ManualClock, SystemClock
from faultline.config import ResilienceSettings, load_settings, parse_settings
from faultline.errors import (
    CircuitOpenError,
    ConfigurationError,
    ErrorKind,
    FaultlineError,
    OperationTimeoutError,
    classify_error,
)
from faultline.resilience import (
    AutoRefillHandle,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    RateLimiter,
    RateLimiterConfig,
    RetryConfig,
    RetryHandler,
    SignalsSnapshot,
    with_retry,
)
from faultline.telemetry import FaultlineLogger, LogLevel

__version__ = "0.1.0"

__all__ = [
    "AutoRefillHandle",
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    # Errors
    "CircuitOpenError",
    "CircuitState",
    # Clock
    "Clock",
    "ConfigurationError",
    "ErrorKind",
    "FaultlineError",
    # Logging
    "FaultlineLogger",
    "LogLevel",
    "ManualClock",
    "OperationTimeoutError",
    # Rate limiting
    "RateLimiter",
    "RateLimiterConfig",
    # Config
    "ResilienceSettings",
    # Retry
    "RetryConfig",
    "RetryHandler",
    "SignalsSnapshot",
    "SystemClock",
    "classify_error",
    "load_settings",
    "parse_settings",
    "with_retry",
    # Version
    "__version__",
]
