"""
Resilience signals and snapshots.

Point-in-time views of breaker and limiter state for dashboards, health
endpoints and log enrichment.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from faultline.resilience.circuit_breaker import CircuitBreaker
    from faultline.resilience.rate_limiter import RateLimiter


@dataclass
class RateLimiterSnapshot:
    """Snapshot of rate limiter state.

    Attributes:
        tokens_available: Available tokens (fractional)
        max_tokens: Maximum tokens (bucket capacity)
        refill_rate: Token refill rate per second
        auto_refill_running: Whether the background refill task is active
    """

    tokens_available: float
    max_tokens: float
    refill_rate: float
    auto_refill_running: bool = False

    @property
    def is_throttled(self) -> bool:
        """Check if a single-token request would be denied right now."""
        return self.tokens_available < 1

    @property
    def utilization(self) -> float:
        """Get utilization ratio (0.0 to 1.0)."""
        if self.max_tokens == 0:
            return 0.0
        return 1.0 - (self.tokens_available / self.max_tokens)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "tokens_available": self.tokens_available,
            "max_tokens": self.max_tokens,
            "refill_rate": self.refill_rate,
            "auto_refill_running": self.auto_refill_running,
            "is_throttled": self.is_throttled,
            "utilization": self.utilization,
        }


@dataclass
class CircuitBreakerSnapshot:
    """Snapshot of circuit breaker state.

    Attributes:
        name: Breaker name
        state: Current state (closed, open, half_open)
        failure_count: Current failure count
        failure_threshold: Threshold for opening
        success_count: Successes in half-open state
        success_threshold: Successes needed to close
        last_failure_time: Monotonic time of last failure
        cooldown_remaining_ms: Remaining open time in milliseconds
    """

    name: str
    state: str
    failure_count: int
    failure_threshold: int
    success_count: int = 0
    success_threshold: int = 0
    last_failure_time: float | None = None
    cooldown_remaining_ms: float | None = None

    @property
    def is_open(self) -> bool:
        """Check if circuit is open."""
        return self.state == "open"

    @property
    def is_closed(self) -> bool:
        """Check if circuit is closed."""
        return self.state == "closed"

    @property
    def is_half_open(self) -> bool:
        """Check if circuit is half-open."""
        return self.state == "half_open"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "state": self.state,
            "failure_count": self.failure_count,
            "failure_threshold": self.failure_threshold,
            "success_count": self.success_count,
            "success_threshold": self.success_threshold,
            "last_failure_time": self.last_failure_time,
            "cooldown_remaining_ms": self.cooldown_remaining_ms,
            "is_open": self.is_open,
        }


@dataclass
class SignalsSnapshot:
    """Combined snapshot of a set of breakers and limiters.

    Attributes:
        breakers: Breaker snapshots keyed by breaker name
        rate_limiters: Limiter snapshots keyed by caller-chosen name
    """

    breakers: dict[str, CircuitBreakerSnapshot] = field(default_factory=dict)
    rate_limiters: dict[str, RateLimiterSnapshot] = field(default_factory=dict)

    @classmethod
    def collect(
        cls,
        breakers: list[CircuitBreaker] | None = None,
        rate_limiters: dict[str, RateLimiter] | None = None,
    ) -> SignalsSnapshot:
        """Capture the current state of the given components."""
        return cls(
            breakers={b.name: b.snapshot() for b in breakers or []},
            rate_limiters={
                name: limiter.snapshot()
                for name, limiter in (rate_limiters or {}).items()
            },
        )

    @property
    def open_breakers(self) -> list[str]:
        """Names of breakers currently failing fast."""
        return [name for name, snap in self.breakers.items() if snap.is_open]

    @property
    def is_degraded(self) -> bool:
        """Check if any breaker is not closed."""
        return any(not snap.is_closed for snap in self.breakers.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "breakers": {k: v.to_dict() for k, v in self.breakers.items()},
            "rate_limiters": {k: v.to_dict() for k, v in self.rate_limiters.items()},
            "open_breakers": self.open_breakers,
            "is_degraded": self.is_degraded,
        }
