"""
Retry handler with exponential backoff.

The last failure is always re-raised as-is; callers see the operation's own
exception type and identity, never a wrapper.
"""

from __future__ import annotations

import functools
import os
import random
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from faultline.clock import DEFAULT_CLOCK, Clock
from faultline.errors import ConfigurationError
from faultline.telemetry import FaultlineLogger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")


class JitterStrategy(str, Enum):
    """Jitter strategy for retry delays."""

    NONE = "none"
    FULL = "full"
    EQUAL = "equal"


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry handler.

    Attributes:
        max_retries: Retries after the first attempt (0 = no retries)
        initial_delay_ms: Delay before the first retry in milliseconds
        max_delay_ms: Upper bound for any delay in milliseconds
        exponential_base: Growth factor applied per attempt
        jitter: Jitter strategy (none, full, equal)
        should_retry: Predicate deciding whether an error is retryable
        on_retry: Called as (attempt_number, error) before each retry
    """

    max_retries: int = 3
    initial_delay_ms: float = 1000
    max_delay_ms: float = 30000
    exponential_base: float = 2.0
    jitter: JitterStrategy = JitterStrategy.NONE
    should_retry: Callable[[Exception], bool] | None = None
    on_retry: Callable[[int, Exception], None] | None = None

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ConfigurationError(
                "max_retries must not be negative",
                field="max_retries",
                value=self.max_retries,
            )
        for name in ("initial_delay_ms", "max_delay_ms"):
            value = getattr(self, name)
            if value < 0:
                raise ConfigurationError(
                    f"{name} must not be negative", field=name, value=value
                )
        if self.exponential_base <= 0:
            raise ConfigurationError(
                "exponential_base must be positive",
                field="exponential_base",
                value=self.exponential_base,
            )

    @classmethod
    def no_retry(cls) -> RetryConfig:
        """Create a config that disables retries."""
        return cls(max_retries=0)

    @classmethod
    def from_env(cls) -> RetryConfig:
        """Create configuration from environment variables."""
        return cls(
            max_retries=int(os.getenv("FAULTLINE_RETRY_MAX_RETRIES", "3")),
            initial_delay_ms=float(os.getenv("FAULTLINE_RETRY_INITIAL_DELAY_MS", "1000")),
            max_delay_ms=float(os.getenv("FAULTLINE_RETRY_MAX_DELAY_MS", "30000")),
        )


class RetryHandler:
    """Retry handler with exponential backoff.

    Each ``execute`` call is independent; the handler keeps no state between
    calls and can be shared freely.

    Example:
        >>> handler = RetryHandler(RetryConfig(max_retries=3, initial_delay_ms=200))
        >>> order = await handler.execute(lambda: client.fetch_order(order_id))
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        *,
        clock: Clock | None = None,
        logger: FaultlineLogger | None = None,
    ) -> None:
        """Initialize retry handler.

        Args:
            config: Retry configuration
            clock: Source of backoff sleeps (defaults to the system clock)
            logger: Logger for retry events
        """
        self._config = config or RetryConfig()
        self._clock = clock or DEFAULT_CLOCK
        self._logger = logger or FaultlineLogger.for_module(__name__)

    @property
    def config(self) -> RetryConfig:
        return self._config

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay for a retry attempt.

        Args:
            attempt: Current attempt number (0-based)

        Returns:
            Delay in seconds
        """
        try:
            base_delay_ms = self._config.initial_delay_ms * (
                self._config.exponential_base ** attempt
            )
        except OverflowError:
            base_delay_ms = self._config.max_delay_ms
        base_delay_ms = min(base_delay_ms, self._config.max_delay_ms)

        if self._config.jitter == JitterStrategy.FULL:
            delay_ms = random.uniform(0, base_delay_ms)
        elif self._config.jitter == JitterStrategy.EQUAL:
            delay_ms = base_delay_ms / 2 + random.uniform(0, base_delay_ms / 2)
        else:
            delay_ms = base_delay_ms

        return delay_ms / 1000.0

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """Check if an error should trigger another attempt.

        Args:
            error: The exception that occurred
            attempt: Attempt that just failed (0-based)

        Returns:
            True if another attempt should be made
        """
        if attempt >= self._config.max_retries:
            return False
        if self._config.should_retry is None:
            return True
        return bool(self._config.should_retry(error))

    def _give_up(self, error: Exception, attempt: int) -> None:
        if attempt >= self._config.max_retries:
            self._logger.error(
                "Retries exhausted",
                attempts=attempt + 1,
                error=repr(error),
            )
        else:
            self._logger.debug(
                "Error is not retryable",
                attempts=attempt + 1,
                error=repr(error),
            )

    def _before_retry(self, error: Exception, attempt: int, delay: float) -> None:
        self._logger.warning(
            "Operation failed, retrying",
            attempt=attempt + 1,
            max_retries=self._config.max_retries,
            delay_seconds=delay,
            error=repr(error),
        )
        if self._config.on_retry is not None:
            self._config.on_retry(attempt + 1, error)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Execute an operation with retry.

        Args:
            operation: Async operation to execute

        Returns:
            Result of the first successful attempt

        Raises:
            Exception: The last failure, unchanged, once retries are exhausted
                or the error is not retryable
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if not self.should_retry(e, attempt):
                    self._give_up(e, attempt)
                    raise

                delay = self.calculate_delay(attempt)
                self._before_retry(e, attempt, delay)
                await self._clock.sleep(delay)
                attempt += 1

    def execute_sync(self, operation: Callable[[], T]) -> T:
        """Execute a synchronous operation with retry.

        Same attempt, threshold and predicate logic as ``execute``, but
        retries happen immediately: no backoff delay is applied, so the
        calling thread is never blocked.

        Args:
            operation: Sync operation to execute

        Returns:
            Result of the first successful attempt
        """
        attempt = 0
        while True:
            try:
                return operation()
            except Exception as e:
                if not self.should_retry(e, attempt):
                    self._give_up(e, attempt)
                    raise

                self._before_retry(e, attempt, 0.0)
                attempt += 1

    @staticmethod
    def wrap(
        fn: Callable[..., Awaitable[T]],
        config: RetryConfig | None = None,
        **kwargs: Any,
    ) -> Callable[..., Awaitable[T]]:
        """Create a retrying version of an async function.

        All calls to the returned function share one handler.

        Args:
            fn: Async function to decorate
            config: Retry configuration
            **kwargs: Extra RetryHandler arguments (clock, logger)

        Returns:
            Async function with the same signature as ``fn``
        """
        handler = RetryHandler(config, **kwargs)

        @functools.wraps(fn)
        async def wrapper(*args: Any, **call_kwargs: Any) -> T:
            return await handler.execute(lambda: fn(*args, **call_kwargs))

        wrapper.retry_handler = handler  # type: ignore[attr-defined]
        return wrapper


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
) -> T:
    """Execute an operation with retry, raising the last failure.

    Args:
        operation: Async operation to execute
        config: Retry configuration

    Returns:
        Operation result
    """
    return await RetryHandler(config).execute(operation)
