"""
Integration tests for composed resilience policies.

Tests retry, rate limiting and circuit breaking working together on one
call path, both on a manual clock and in real time.
"""

from __future__ import annotations

import asyncio

import pytest

from faultline.clock import ManualClock
from faultline.config import parse_settings
from faultline.errors import CircuitOpenError, ErrorKind, classify_error
from faultline.resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    RateLimiter,
    RateLimiterConfig,
    RetryConfig,
    RetryHandler,
    SignalsSnapshot,
)


class UpstreamError(Exception):
    """Failure reported by the fake dependency."""


class FakeUpstream:
    """Dependency that fails a fixed number of times."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0

    async def __call__(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise UpstreamError(f"call {self.calls} failed")
        return "ok"


class TestComposition:
    """Tests for retry around limiter around breaker."""

    @pytest.mark.asyncio
    async def test_recovers_through_half_open(self, clock: ManualClock) -> None:
        """Test retries outlast the cooldown and close the circuit."""
        transitions = []
        breaker = CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=2,
                success_threshold=1,
                reset_timeout_seconds=5,
                on_state_change=lambda old, new: transitions.append((old, new)),
            ),
            name="upstream",
            clock=clock,
        )
        limiter = RateLimiter(
            RateLimiterConfig(capacity=10, refill_rate_per_second=1), clock=clock
        )
        retry = RetryHandler(
            RetryConfig(max_retries=3, initial_delay_ms=5000), clock=clock
        )
        upstream = FakeUpstream(failures=2)

        result = await retry.execute(
            lambda: limiter.execute(lambda: breaker.execute(upstream))
        )

        assert result == "ok"
        assert upstream.calls == 3
        assert clock.sleeps == [5.0, 10.0]
        assert transitions == [
            (CircuitState.CLOSED, CircuitState.OPEN),
            (CircuitState.OPEN, CircuitState.HALF_OPEN),
            (CircuitState.HALF_OPEN, CircuitState.CLOSED),
        ]
        assert limiter.get_available_tokens() == 9
        assert breaker.get_stats().state_changes == 3

    @pytest.mark.asyncio
    async def test_open_circuit_is_not_retried(self, clock: ManualClock) -> None:
        """Test a predicate can stop retrying once the circuit fails fast."""
        breaker = CircuitBreaker(name="upstream", clock=clock)
        breaker.force_open()
        retry = RetryHandler(
            RetryConfig(
                max_retries=5,
                should_retry=lambda e: classify_error(e) is not ErrorKind.CIRCUIT_OPEN,
            ),
            clock=clock,
        )
        upstream = FakeUpstream(failures=0)

        with pytest.raises(CircuitOpenError) as exc_info:
            await retry.execute(lambda: breaker.execute(upstream))

        assert upstream.calls == 0
        assert clock.sleeps == []
        assert exc_info.value.breaker == "upstream"
        assert breaker.get_stats().rejected_requests == 1

    @pytest.mark.asyncio
    async def test_policy_from_settings(self, clock: ManualClock) -> None:
        """Test components built from one settings document cooperate."""
        settings = parse_settings(
            {
                "policies": {
                    "search": {
                        "circuit_breaker": {"failure_threshold": 1},
                        "rate_limiter": {"capacity": 2, "refill_rate_per_second": 1},
                        "retry": {"max_retries": 0},
                    }
                }
            }
        )
        breaker = settings.build_circuit_breaker("search", clock=clock)
        limiter = settings.build_rate_limiter("search", clock=clock)
        retry = settings.build_retry_handler("search", clock=clock)

        with pytest.raises(UpstreamError):
            await retry.execute(
                lambda: limiter.execute(lambda: breaker.execute(FakeUpstream(1)))
            )

        snap = SignalsSnapshot.collect(
            breakers=[breaker], rate_limiters={"search": limiter}
        )
        assert snap.open_breakers == ["search"]
        assert snap.rate_limiters["search"].tokens_available == 1.0


class TestRealTime:
    """End-to-end scenarios on the system clock."""

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_breaker_cycle(self) -> None:
        """Test a full open and recover cycle with real waiting."""
        breaker = CircuitBreaker(
            CircuitBreakerConfig(
                failure_threshold=1, success_threshold=1, reset_timeout_seconds=0.05
            )
        )

        with pytest.raises(UpstreamError):
            await breaker.execute(FakeUpstream(failures=1))
        assert breaker.state is CircuitState.OPEN

        with pytest.raises(CircuitOpenError):
            await breaker.execute(FakeUpstream(failures=0))

        await asyncio.sleep(0.06)
        assert await breaker.execute(FakeUpstream(failures=0)) == "ok"
        assert breaker.state is CircuitState.CLOSED

    @pytest.mark.slow
    @pytest.mark.asyncio
    async def test_limiter_refills(self) -> None:
        """Test an exhausted bucket grants again after real time passes."""
        limiter = RateLimiter(RateLimiterConfig(capacity=5, refill_rate_per_second=10))

        assert limiter.try_acquire(5) is True
        assert limiter.try_acquire(1) is False

        await asyncio.sleep(0.1)
        assert limiter.try_acquire(1) is True
