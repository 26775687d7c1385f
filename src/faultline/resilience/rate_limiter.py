"""
Rate limiter using token bucket algorithm.

Tokens are refilled lazily from elapsed time on every access; the optional
background refill task only keeps ``get_available_tokens`` fresh between
accesses and is not needed for correctness.
"""

from __future__ import annotations

import asyncio
import math
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from faultline.clock import DEFAULT_CLOCK, Clock
from faultline.errors import ConfigurationError
from faultline.resilience.signals import RateLimiterSnapshot
from faultline.telemetry import FaultlineLogger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")


@dataclass(frozen=True)
class RateLimiterConfig:
    """Configuration for rate limiter.

    Attributes:
        capacity: Maximum tokens in the bucket (burst size)
        refill_rate_per_second: Tokens added per second
        refill_interval_seconds: Period of the optional background refill
        poll_interval_seconds: How often a waiting ``acquire`` re-checks the bucket
    """

    capacity: int
    refill_rate_per_second: float
    refill_interval_seconds: float = 1.0
    poll_interval_seconds: float = 0.1

    def __post_init__(self) -> None:
        for name in (
            "capacity",
            "refill_rate_per_second",
            "refill_interval_seconds",
            "poll_interval_seconds",
        ):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(
                    f"{name} must be positive", field=name, value=value
                )

    @classmethod
    def from_rps(cls, rps: float, burst: int | None = None) -> RateLimiterConfig:
        """Create config from requests per second.

        Args:
            rps: Requests per second
            burst: Bucket capacity (defaults to one second's worth of tokens)

        Returns:
            RateLimiterConfig instance
        """
        return cls(
            capacity=burst if burst is not None else max(1, math.ceil(rps)),
            refill_rate_per_second=rps,
        )

    @classmethod
    def from_rpm(cls, rpm: float, burst: int | None = None) -> RateLimiterConfig:
        """Create config from requests per minute.

        Args:
            rpm: Requests per minute
            burst: Bucket capacity

        Returns:
            RateLimiterConfig instance
        """
        return cls.from_rps(rpm / 60.0, burst)

    @classmethod
    def from_env(cls) -> RateLimiterConfig:
        """Create configuration from environment variables."""
        return cls(
            capacity=int(os.getenv("FAULTLINE_RATE_LIMIT_CAPACITY", "10")),
            refill_rate_per_second=float(os.getenv("FAULTLINE_RATE_LIMIT_RPS", "10")),
            refill_interval_seconds=float(
                os.getenv("FAULTLINE_RATE_LIMIT_REFILL_INTERVAL_SECS", "1")
            ),
        )


class AutoRefillHandle:
    """Owned handle to a limiter's background refill task.

    The task keeps running until ``stop`` is called; it is never cleaned up
    automatically.
    """

    def __init__(self, task: asyncio.Task[None]) -> None:
        self._task = task
        self._stopped = False

    @property
    def running(self) -> bool:
        """Check if the refill task is still active."""
        return not self._stopped and not self._task.done()

    def stop(self) -> None:
        """Cancel the refill task. Safe to call more than once."""
        self._stopped = True
        self._task.cancel()

    def __repr__(self) -> str:
        return f"AutoRefillHandle(running={self.running})"


class RateLimiter:
    """Token bucket rate limiter.

    Implements the token bucket algorithm for admission control:
    - The bucket starts full at ``capacity`` tokens
    - Tokens are added continuously at ``refill_rate_per_second``
    - Each operation consumes the tokens it asks for

    Example:
        >>> limiter = RateLimiter(RateLimiterConfig(capacity=5, refill_rate_per_second=10))
        >>> if limiter.try_acquire():
        ...     send_message()
        >>> await limiter.execute(send_message_async, tokens=2)
    """

    def __init__(
        self,
        config: RateLimiterConfig,
        *,
        clock: Clock | None = None,
        logger: FaultlineLogger | None = None,
    ) -> None:
        """Initialize rate limiter.

        Args:
            config: Rate limiter configuration
            clock: Time source (defaults to the system clock)
            logger: Logger for wait and refill events
        """
        self._config = config
        self._clock = clock or DEFAULT_CLOCK
        self._logger = logger or FaultlineLogger.for_module(__name__)

        # Token bucket state
        self._max_tokens = float(config.capacity)
        self._tokens = self._max_tokens
        self._rate = config.refill_rate_per_second
        self._last_refill = self._clock.monotonic()

        self._refill_handle: AutoRefillHandle | None = None

    @property
    def config(self) -> RateLimiterConfig:
        return self._config

    @property
    def capacity(self) -> int:
        return self._config.capacity

    @property
    def refill_rate(self) -> float:
        return self._rate

    def _refill(self) -> None:
        """Refill tokens based on elapsed time."""
        now = self._clock.monotonic()
        elapsed = max(0.0, now - self._last_refill)
        self._last_refill = now
        self._tokens = min(self._max_tokens, self._tokens + elapsed * self._rate)

    @staticmethod
    def _check_request(tokens: int) -> None:
        if tokens <= 0:
            raise ValueError(f"tokens must be positive, got {tokens}")

    def try_acquire(self, tokens: int = 1) -> bool:
        """Try to acquire tokens without waiting.

        Args:
            tokens: Number of tokens to acquire

        Returns:
            True if acquired, False if the bucket holds fewer tokens
        """
        self._check_request(tokens)
        self._refill()

        if self._tokens >= tokens:
            self._tokens -= tokens
            return True
        return False

    async def acquire(self, tokens: int = 1) -> None:
        """Acquire tokens, suspending the caller until they are available.

        There is no upper bound on the wait; wrap the call in
        ``asyncio.timeout`` or similar to impose one.

        Args:
            tokens: Number of tokens to acquire

        Raises:
            ValueError: If more tokens are requested than the bucket can hold
        """
        self._check_request(tokens)
        if tokens > self._max_tokens:
            raise ValueError(
                f"Cannot acquire {tokens} tokens from a bucket of capacity "
                f"{self._config.capacity}"
            )

        if self.try_acquire(tokens):
            return

        self._logger.debug(
            "Rate limited, waiting for tokens",
            tokens=tokens,
            available=self._tokens,
        )
        while not self.try_acquire(tokens):
            await self._clock.sleep(self._config.poll_interval_seconds)

    async def execute(
        self, operation: Callable[[], Awaitable[T]], tokens: int = 1
    ) -> T:
        """Acquire tokens, then run the operation.

        The operation's result or exception is passed through unchanged.

        Args:
            operation: Async operation to execute
            tokens: Cost of the operation in tokens

        Returns:
            Operation result
        """
        await self.acquire(tokens)
        return await operation()

    def get_available_tokens(self) -> int:
        """Get the whole number of tokens currently available."""
        self._refill()
        return math.floor(self._tokens)

    @property
    def available_tokens(self) -> float:
        """Get current available tokens, including fractions."""
        self._refill()
        return self._tokens

    def get_wait_time(self, tokens: int = 1) -> float:
        """Get estimated wait time without acquiring.

        Args:
            tokens: Number of tokens needed

        Returns:
            Estimated wait time in seconds
        """
        self._refill()
        if self._tokens >= tokens:
            return 0.0
        return (tokens - self._tokens) / self._rate

    def reset(self) -> None:
        """Refill the bucket to capacity immediately."""
        self._tokens = self._max_tokens
        self._last_refill = self._clock.monotonic()

    def start_auto_refill(self) -> AutoRefillHandle:
        """Start the background refill task on the running event loop.

        Calling this while the task is already running returns the existing
        handle. The caller owns the handle and must stop it.

        Returns:
            Handle controlling the refill task
        """
        if self._refill_handle is not None and self._refill_handle.running:
            return self._refill_handle

        task = asyncio.get_running_loop().create_task(self._auto_refill_loop())
        self._refill_handle = AutoRefillHandle(task)
        self._logger.debug(
            "Auto-refill started",
            interval_seconds=self._config.refill_interval_seconds,
        )
        return self._refill_handle

    def stop_auto_refill(self) -> None:
        """Stop the background refill task if one is running."""
        if self._refill_handle is None:
            return
        self._refill_handle.stop()
        self._refill_handle = None
        self._logger.debug("Auto-refill stopped")

    @property
    def auto_refill_running(self) -> bool:
        return self._refill_handle is not None and self._refill_handle.running

    async def _auto_refill_loop(self) -> None:
        # Paced by the event loop; token math still goes through the clock
        while True:
            await asyncio.sleep(self._config.refill_interval_seconds)
            self._refill()

    def close(self) -> None:
        """Release the background refill task."""
        self.stop_auto_refill()

    def snapshot(self) -> RateLimiterSnapshot:
        """Capture the current state for reporting."""
        return RateLimiterSnapshot(
            tokens_available=self.available_tokens,
            max_tokens=self._max_tokens,
            refill_rate=self._rate,
            auto_refill_running=self.auto_refill_running,
        )

    def __repr__(self) -> str:
        return (
            f"RateLimiter(tokens={self._tokens:.2f}/{self._config.capacity}, "
            f"rate={self._rate}/s)"
        )
