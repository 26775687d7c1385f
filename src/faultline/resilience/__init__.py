"""
Resilience layer - Retry, rate limiting and circuit breaker.

This module provides three independent primitives that callers nest at the
call site, for example retry around rate limiter around circuit breaker:
- RetryHandler: Exponential backoff with a retry predicate
- RateLimiter: Token bucket admission control
- CircuitBreaker: Closed/Open/Half-Open state machine with per-call timeout
- SignalsSnapshot: Point-in-time state of breakers and limiters
"""

from faultline.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    CircuitStats,
)
from faultline.resilience.rate_limiter import (
    AutoRefillHandle,
    RateLimiter,
    RateLimiterConfig,
)
from faultline.resilience.retry import (
    JitterStrategy,
    RetryConfig,
    RetryHandler,
    with_retry,
)
from faultline.resilience.signals import (
    CircuitBreakerSnapshot,
    RateLimiterSnapshot,
    SignalsSnapshot,
)

__all__ = [
    # Rate limiting
    "AutoRefillHandle",
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerSnapshot",
    "CircuitState",
    "CircuitStats",
    # Retry
    "JitterStrategy",
    "RateLimiter",
    "RateLimiterConfig",
    "RateLimiterSnapshot",
    "RetryConfig",
    "RetryHandler",
    # Signals
    "SignalsSnapshot",
    "with_retry",
]
