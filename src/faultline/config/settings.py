"""
Settings models for resilience policies.

These Pydantic models describe the on-disk policy document and convert into
the runtime configuration dataclasses. Durations are in milliseconds in the
document, matching how operators usually write them.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

from faultline.errors import ConfigurationError
from faultline.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    JitterStrategy,
    RateLimiter,
    RateLimiterConfig,
    RetryConfig,
    RetryHandler,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from faultline.resilience import CircuitState


class CircuitBreakerSettings(BaseModel):
    """Circuit breaker settings."""

    model_config = ConfigDict(extra="forbid")

    failure_threshold: int = Field(
        default=5, ge=1, description="Failures in closed state that open the circuit"
    )
    success_threshold: int = Field(
        default=2, ge=1, description="Half-open successes that close the circuit"
    )
    timeout_ms: int = Field(default=60000, gt=0, description="Per-call timeout")
    reset_timeout_ms: int = Field(
        default=30000, gt=0, description="Time spent open before probing"
    )

    def to_config(
        self,
        on_state_change: Callable[[CircuitState, CircuitState], None] | None = None,
    ) -> CircuitBreakerConfig:
        """Convert to runtime configuration."""
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            success_threshold=self.success_threshold,
            timeout_seconds=self.timeout_ms / 1000.0,
            reset_timeout_seconds=self.reset_timeout_ms / 1000.0,
            on_state_change=on_state_change,
        )


class RateLimiterSettings(BaseModel):
    """Token bucket settings."""

    model_config = ConfigDict(extra="forbid")

    capacity: int = Field(gt=0, description="Maximum tokens in the bucket")
    refill_rate_per_second: float = Field(gt=0, description="Tokens added per second")
    refill_interval_ms: int = Field(
        default=1000, gt=0, description="Background refill period"
    )

    def to_config(self) -> RateLimiterConfig:
        """Convert to runtime configuration."""
        return RateLimiterConfig(
            capacity=self.capacity,
            refill_rate_per_second=self.refill_rate_per_second,
            refill_interval_seconds=self.refill_interval_ms / 1000.0,
        )


class RetrySettings(BaseModel):
    """Retry settings."""

    model_config = ConfigDict(extra="forbid")

    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    initial_delay_ms: float = Field(default=1000, ge=0, description="First backoff delay")
    max_delay_ms: float = Field(default=30000, ge=0, description="Backoff cap")
    exponential_base: float = Field(default=2.0, gt=0, description="Backoff growth factor")
    jitter: JitterStrategy = Field(default=JitterStrategy.NONE, description="Jitter strategy")

    def to_config(
        self,
        should_retry: Callable[[Exception], bool] | None = None,
        on_retry: Callable[[int, Exception], None] | None = None,
    ) -> RetryConfig:
        """Convert to runtime configuration.

        Predicates and observers are code, not data, so they are supplied here.
        """
        return RetryConfig(
            max_retries=self.max_retries,
            initial_delay_ms=self.initial_delay_ms,
            max_delay_ms=self.max_delay_ms,
            exponential_base=self.exponential_base,
            jitter=self.jitter,
            should_retry=should_retry,
            on_retry=on_retry,
        )


class PolicySettings(BaseModel):
    """A named combination of resilience settings.

    Any section may be omitted; only the components a call site needs
    have to be configured.
    """

    model_config = ConfigDict(extra="forbid")

    circuit_breaker: CircuitBreakerSettings | None = None
    rate_limiter: RateLimiterSettings | None = None
    retry: RetrySettings | None = None


class ResilienceSettings(BaseModel):
    """Top-level settings document.

    Example document (YAML)::

        policies:
          payments:
            circuit_breaker: {failure_threshold: 3, reset_timeout_ms: 10000}
            rate_limiter: {capacity: 20, refill_rate_per_second: 5}
            retry: {max_retries: 2, initial_delay_ms: 250}
    """

    model_config = ConfigDict(extra="forbid")

    policies: dict[str, PolicySettings] = Field(default_factory=dict)

    def policy(self, name: str) -> PolicySettings:
        """Look up a policy by name.

        Raises:
            ConfigurationError: If no such policy exists
        """
        try:
            return self.policies[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown resilience policy: {name}",
                field=f"policies.{name}",
            ).with_hint(f"known policies: {sorted(self.policies)}") from None

    def _section(self, name: str, section: str) -> Any:
        value = getattr(self.policy(name), section)
        if value is None:
            raise ConfigurationError(
                f"Policy '{name}' has no {section} section",
                field=f"policies.{name}.{section}",
            )
        return value

    def build_circuit_breaker(self, name: str, **kwargs: Any) -> CircuitBreaker:
        """Build a circuit breaker from a named policy.

        Args:
            name: Policy name (also used as the breaker name)
            **kwargs: on_state_change plus CircuitBreaker keyword arguments
        """
        on_state_change = kwargs.pop("on_state_change", None)
        settings: CircuitBreakerSettings = self._section(name, "circuit_breaker")
        return CircuitBreaker(settings.to_config(on_state_change), name=name, **kwargs)

    def build_rate_limiter(self, name: str, **kwargs: Any) -> RateLimiter:
        """Build a rate limiter from a named policy."""
        settings: RateLimiterSettings = self._section(name, "rate_limiter")
        return RateLimiter(settings.to_config(), **kwargs)

    def build_retry_handler(self, name: str, **kwargs: Any) -> RetryHandler:
        """Build a retry handler from a named policy.

        Args:
            name: Policy name
            **kwargs: should_retry / on_retry plus RetryHandler keyword arguments
        """
        should_retry = kwargs.pop("should_retry", None)
        on_retry = kwargs.pop("on_retry", None)
        settings: RetrySettings = self._section(name, "retry")
        return RetryHandler(settings.to_config(should_retry, on_retry), **kwargs)
