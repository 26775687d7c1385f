#!/usr/bin/env python3
"""
Resilience patterns example.

This example wraps a flaky in-process dependency with:
- Retry with exponential backoff
- Token bucket rate limiting
- A circuit breaker with per-call timeout
- Settings loaded from a policy document

Usage:
    python examples/resilience.py
"""

import asyncio
import random

from faultline import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
    ErrorKind,
    FaultlineLogger,
    RateLimiter,
    RateLimiterConfig,
    RetryConfig,
    RetryHandler,
    SignalsSnapshot,
    classify_error,
    parse_settings,
)

logger = FaultlineLogger.create("faultline.example", format="text")


class InventoryService:
    """Fake dependency that fails on a configurable share of calls."""

    def __init__(self, failure_rate: float) -> None:
        self.failure_rate = failure_rate
        self.calls = 0

    async def reserve(self, sku: str) -> str:
        self.calls += 1
        await asyncio.sleep(0.01)
        if random.random() < self.failure_rate:
            raise ConnectionError(f"inventory unavailable for {sku}")
        return f"reserved {sku}"


def print_transition(old: CircuitState, new: CircuitState) -> None:
    print(f"  circuit: {old.value} -> {new.value}")


async def layered_call() -> None:
    """Compose retry, rate limiting and circuit breaking by hand."""
    print("Composing retry -> rate limiter -> circuit breaker...")
    print()

    service = InventoryService(failure_rate=0.5)
    breaker = CircuitBreaker(
        CircuitBreakerConfig(
            failure_threshold=3,
            success_threshold=1,
            timeout_seconds=1.0,
            reset_timeout_seconds=0.2,
            on_state_change=print_transition,
        ),
        name="inventory",
        logger=logger,
    )
    limiter = RateLimiter(RateLimiterConfig.from_rps(20, burst=5), logger=logger)
    retry = RetryHandler(
        RetryConfig(
            max_retries=4,
            initial_delay_ms=50,
            max_delay_ms=400,
            # Failing fast is the point of an open circuit
            should_retry=lambda e: classify_error(e) is not ErrorKind.CIRCUIT_OPEN,
        ),
        logger=logger,
    )

    for i in range(8):
        sku = f"SKU-{i}"
        try:
            result = await retry.execute(
                lambda: limiter.execute(lambda: breaker.execute(lambda: service.reserve(sku)))
            )
            print(f"  {result}")
        except Exception as e:
            print(f"  {sku} failed: {type(e).__name__}: {e}")

    print()
    print(f"Upstream calls: {service.calls}")
    print(f"Breaker: {breaker!r}")
    print(f"Stats: {breaker.get_stats()}")


async def from_settings() -> None:
    """Build the same components from a policy document."""
    print("\n" + "=" * 50)
    print("Building components from settings...")
    print()

    settings = parse_settings(
        {
            "policies": {
                "inventory": {
                    "circuit_breaker": {"failure_threshold": 2, "reset_timeout_ms": 500},
                    "rate_limiter": {"capacity": 2, "refill_rate_per_second": 4},
                    "retry": {"max_retries": 2, "initial_delay_ms": 20, "jitter": "full"},
                }
            }
        }
    )
    breaker = settings.build_circuit_breaker("inventory", on_state_change=print_transition)
    limiter = settings.build_rate_limiter("inventory")
    retry = settings.build_retry_handler(
        "inventory", on_retry=lambda n, e: print(f"  retry #{n} after {e}")
    )

    service = InventoryService(failure_rate=0.8)
    for i in range(4):
        try:
            await retry.execute(
                lambda: limiter.execute(lambda: breaker.execute(lambda: service.reserve("SKU-X")))
            )
            print("  reserved")
        except Exception as e:
            print(f"  gave up: {type(e).__name__}")

    signals = SignalsSnapshot.collect(breakers=[breaker], rate_limiters={"inventory": limiter})
    print()
    print(f"Degraded: {signals.is_degraded}")
    print(f"Open breakers: {signals.open_breakers}")


async def auto_refill() -> None:
    """Keep a bucket topped up in the background."""
    print("\n" + "=" * 50)
    print("Background refill...")
    print()

    limiter = RateLimiter(
        RateLimiterConfig(capacity=5, refill_rate_per_second=10, refill_interval_seconds=0.1)
    )
    limiter.try_acquire(5)
    handle = limiter.start_auto_refill()
    try:
        for _ in range(3):
            await asyncio.sleep(0.15)
            print(f"  available: {limiter.get_available_tokens()}")
    finally:
        handle.stop()


async def main() -> None:
    """Run resilience examples."""
    await layered_call()
    await from_settings()
    await auto_refill()


if __name__ == "__main__":
    asyncio.run(main())
