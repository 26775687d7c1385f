#!/usr/bin/env python3
"""
Resilience primitives performance benchmarks.

Measures per-call overhead of the breaker, limiter and retry handler on the
happy path.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from faultline import (
    CircuitBreaker,
    CircuitBreakerConfig,
    RateLimiter,
    RateLimiterConfig,
    RetryConfig,
    RetryHandler,
)


async def noop_operation() -> str:
    """No-op operation for overhead measurement."""
    return "result"


async def _measure(
    name: str, call: Callable[[], Awaitable[Any]], iterations: int
) -> dict[str, Any]:
    start = time.perf_counter()
    for _ in range(iterations):
        await call()
    elapsed = time.perf_counter() - start

    return {
        "name": name,
        "iterations": iterations,
        "elapsed_seconds": elapsed,
        "throughput_ops": iterations / elapsed,
        "latency_us": (elapsed / iterations) * 1_000_000,
    }


async def benchmark_baseline(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark baseline async operation."""
    return await _measure("Baseline (no resilience)", noop_operation, iterations)


async def benchmark_retry(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark retry handler overhead (no retries triggered)."""
    handler = RetryHandler(RetryConfig(max_retries=3))
    return await _measure(
        "RetryHandler (no retries)", lambda: handler.execute(noop_operation), iterations
    )


async def benchmark_rate_limiter(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark rate limiter overhead with a bucket that never runs dry."""
    limiter = RateLimiter(
        RateLimiterConfig(capacity=iterations, refill_rate_per_second=iterations)
    )
    return await _measure(
        "RateLimiter (ample tokens)",
        lambda: limiter.execute(noop_operation),
        iterations,
    )


async def benchmark_circuit_breaker(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark circuit breaker overhead (closed state, timeout race included)."""
    breaker = CircuitBreaker(CircuitBreakerConfig())
    return await _measure(
        "CircuitBreaker (closed)", lambda: breaker.execute(noop_operation), iterations
    )


async def benchmark_circuit_breaker_open(iterations: int = 10000) -> dict[str, Any]:
    """Benchmark fail-fast rejection cost."""
    breaker = CircuitBreaker(CircuitBreakerConfig())
    breaker.force_open()

    async def rejected() -> None:
        try:
            await breaker.execute(noop_operation)
        except Exception:
            pass

    return await _measure("CircuitBreaker (open, rejecting)", rejected, iterations)


async def benchmark_composed(iterations: int = 5000) -> dict[str, Any]:
    """Benchmark retry -> limiter -> breaker on one call path."""
    handler = RetryHandler(RetryConfig(max_retries=3))
    limiter = RateLimiter(
        RateLimiterConfig(capacity=iterations, refill_rate_per_second=iterations)
    )
    breaker = CircuitBreaker(CircuitBreakerConfig())
    return await _measure(
        "Composed (retry + limiter + breaker)",
        lambda: handler.execute(
            lambda: limiter.execute(lambda: breaker.execute(noop_operation))
        ),
        iterations,
    )


async def benchmark_concurrent_breaker(
    concurrency: int = 100, iterations: int = 1000
) -> dict[str, Any]:
    """Benchmark many tasks sharing one breaker."""
    breaker = CircuitBreaker(CircuitBreakerConfig())

    start = time.perf_counter()
    for _ in range(iterations // concurrency):
        await asyncio.gather(
            *(breaker.execute(noop_operation) for _ in range(concurrency))
        )
    elapsed = time.perf_counter() - start

    return {
        "name": f"Concurrent ({concurrency} parallel)",
        "iterations": iterations,
        "elapsed_seconds": elapsed,
        "throughput_ops": iterations / elapsed,
        "latency_us": (elapsed / iterations) * 1_000_000,
        "successful": breaker.get_stats().successful_requests,
    }


async def run_benchmarks() -> None:
    """Run all benchmarks and print results."""
    print("=" * 60)
    print("Resilience Benchmarks")
    print("=" * 60)
    print()

    benchmarks = [
        benchmark_baseline,
        benchmark_retry,
        benchmark_rate_limiter,
        benchmark_circuit_breaker,
        benchmark_circuit_breaker_open,
        benchmark_composed,
    ]

    baseline_latency = 0.0

    for bench in benchmarks:
        result = await bench()
        if bench is benchmark_baseline:
            baseline_latency = result["latency_us"]
            overhead = ""
        else:
            overhead_us = result["latency_us"] - baseline_latency
            overhead = f" (+{overhead_us:.2f}us)"

        print(f"{result['name']}:")
        print(f"  Throughput: {result['throughput_ops']:.0f} ops/sec")
        print(f"  Latency: {result['latency_us']:.2f} us/op{overhead}")
        print()

    print("Concurrent Execution:")
    for concurrency in [10, 50, 100]:
        result = await benchmark_concurrent_breaker(concurrency=concurrency)
        print(f"  {concurrency} parallel: {result['throughput_ops']:.0f} ops/sec")


if __name__ == "__main__":
    asyncio.run(run_benchmarks())
