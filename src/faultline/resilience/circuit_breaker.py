"""
Circuit breaker for fault isolation.

Implements the circuit breaker pattern with three states:
- Closed: Normal operation, requests pass through
- Open: Circuit tripped, requests fail fast
- Half-Open: Testing if the dependency recovered

Every check-and-mutate sequence below runs without an ``await`` in between,
so state transitions are atomic under the event loop's cooperative
scheduling and no lock is needed.
"""

from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass, replace
from enum import Enum
from typing import TYPE_CHECKING, TypeVar

from faultline.clock import DEFAULT_CLOCK, Clock
from faultline.errors import CircuitOpenError, ConfigurationError, OperationTimeoutError
from faultline.resilience.signals import CircuitBreakerSnapshot
from faultline.telemetry import FaultlineLogger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuration for circuit breaker.

    Attributes:
        failure_threshold: Consecutive failures in closed state that trip the circuit
        success_threshold: Successes in half-open state needed to close
        timeout_seconds: Per-call timeout; an overrun counts as a failure
        reset_timeout_seconds: Time the circuit stays open before probing
        on_state_change: Called as (from_state, to_state) on every transition
    """

    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 60.0
    reset_timeout_seconds: float = 30.0
    on_state_change: Callable[[CircuitState, CircuitState], None] | None = None

    def __post_init__(self) -> None:
        for name in ("failure_threshold", "success_threshold"):
            value = getattr(self, name)
            if value < 1:
                raise ConfigurationError(
                    f"{name} must be a positive integer", field=name, value=value
                )
        for name in ("timeout_seconds", "reset_timeout_seconds"):
            value = getattr(self, name)
            if value <= 0:
                raise ConfigurationError(
                    f"{name} must be positive", field=name, value=value
                )

    @classmethod
    def default(cls) -> CircuitBreakerConfig:
        """Create default configuration."""
        return cls()

    @classmethod
    def from_env(cls) -> CircuitBreakerConfig:
        """Create configuration from environment variables."""
        return cls(
            failure_threshold=int(os.getenv("FAULTLINE_BREAKER_FAILURE_THRESHOLD", "5")),
            success_threshold=int(os.getenv("FAULTLINE_BREAKER_SUCCESS_THRESHOLD", "2")),
            timeout_seconds=float(os.getenv("FAULTLINE_BREAKER_TIMEOUT_SECS", "60")),
            reset_timeout_seconds=float(
                os.getenv("FAULTLINE_BREAKER_RESET_TIMEOUT_SECS", "30")
            ),
        )


@dataclass
class CircuitStats:
    """Statistics for circuit breaker."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    rejected_requests: int = 0
    timed_out_requests: int = 0
    state_changes: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None


def _discard_outcome(task: asyncio.Future[object]) -> None:
    # Mark an abandoned operation's exception as retrieved
    if not task.cancelled():
        task.exception()


class CircuitBreaker:
    """Circuit breaker for fault isolation.

    Prevents cascading failures by failing fast while a dependency is
    unhealthy, then probing it with a limited number of trial calls.

    Example:
        >>> breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=3))
        >>> try:
        ...     result = await breaker.execute(fetch_inventory)
        ... except CircuitOpenError:
        ...     print("Inventory service unavailable")
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        *,
        name: str = "default",
        clock: Clock | None = None,
        logger: FaultlineLogger | None = None,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            config: Circuit breaker configuration
            name: Name used in logs, errors and snapshots
            clock: Time source (defaults to the system clock)
            logger: Logger to report transitions on
        """
        self._config = config or CircuitBreakerConfig()
        self._name = name
        self._clock = clock or DEFAULT_CLOCK
        self._logger = logger or FaultlineLogger.for_module(__name__)

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._next_attempt = self._clock.monotonic()

        self._stats = CircuitStats()

    @property
    def name(self) -> str:
        return self._name

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    @property
    def state(self) -> CircuitState:
        """Get current circuit state."""
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def is_closed(self) -> bool:
        """Check if circuit is closed (normal operation)."""
        return self._state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        """Check if circuit is open (failing fast)."""
        return self._state == CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        """Check if circuit is half-open (probing)."""
        return self._state == CircuitState.HALF_OPEN

    def get_state(self) -> CircuitState:
        return self._state

    def get_failure_count(self) -> int:
        return self._failure_count

    def get_success_count(self) -> int:
        return self._success_count

    def _transition_to(self, new_state: CircuitState) -> None:
        """Move to a new state and notify the observer.

        Args:
            new_state: Target state
        """
        old_state = self._state
        if new_state == old_state:
            return

        self._state = new_state
        self._stats.state_changes += 1
        self._logger.info(
            "Circuit state changed",
            breaker=self._name,
            from_state=old_state.value,
            to_state=new_state.value,
        )

        if self._config.on_state_change is not None:
            self._config.on_state_change(old_state, new_state)

    def _open(self) -> None:
        """Arm the reset timer and trip the circuit."""
        self._next_attempt = self._clock.monotonic() + self._config.reset_timeout_seconds
        self._transition_to(CircuitState.OPEN)

    def _record_success(self) -> None:
        """Record a successful operation."""
        self._stats.successful_requests += 1
        self._stats.last_success_time = self._clock.monotonic()
        self._failure_count = 0

        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self._config.success_threshold:
                self._success_count = 0
                self._transition_to(CircuitState.CLOSED)

    def _record_failure(self) -> None:
        """Record a failed operation."""
        self._stats.failed_requests += 1
        self._stats.last_failure_time = self._clock.monotonic()
        self._failure_count += 1
        self._success_count = 0

        if self._state == CircuitState.HALF_OPEN:
            # Single failure while probing trips back to open
            self._open()
        elif self._failure_count >= self._config.failure_threshold:
            self._open()

    def get_time_until_retry(self) -> float | None:
        """Get time until the circuit will allow a probe.

        Returns:
            Seconds until retry, or None if not open
        """
        if self._state != CircuitState.OPEN:
            return None
        return max(0.0, self._next_attempt - self._clock.monotonic())

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Execute an operation through the circuit breaker.

        Args:
            operation: Async operation to execute

        Returns:
            Operation result

        Raises:
            CircuitOpenError: If the circuit is open
            OperationTimeoutError: If the operation exceeds the per-call timeout
            Exception: Whatever the operation itself raised
        """
        self._stats.total_requests += 1

        if self._state == CircuitState.OPEN:
            if self._clock.monotonic() < self._next_attempt:
                self._stats.rejected_requests += 1
                self._logger.debug("Circuit open, call rejected", breaker=self._name)
                raise CircuitOpenError(
                    breaker=self._name,
                    time_until_retry=self.get_time_until_retry(),
                )
            self._transition_to(CircuitState.HALF_OPEN)

        try:
            result = await self._execute_with_timeout(operation)
        except Exception:
            self._record_failure()
            raise

        self._record_success()
        return result

    async def _execute_with_timeout(
        self, operation: Callable[[], Awaitable[T]]
    ) -> T:
        """Race the operation against the per-call timeout.

        The losing operation is cancelled and its outcome discarded.

        Args:
            operation: Async operation

        Returns:
            Operation result
        """
        task = asyncio.ensure_future(operation())
        try:
            done, _ = await asyncio.wait({task}, timeout=self._config.timeout_seconds)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if task in done:
            return task.result()

        task.cancel()
        task.add_done_callback(_discard_outcome)
        self._stats.timed_out_requests += 1
        self._logger.warning(
            "Operation timed out",
            breaker=self._name,
            timeout_seconds=self._config.timeout_seconds,
        )
        raise OperationTimeoutError(
            timeout_seconds=self._config.timeout_seconds,
            breaker=self._name,
        )

    def reset(self) -> None:
        """Reset circuit breaker to closed state."""
        self._failure_count = 0
        self._success_count = 0
        self._next_attempt = self._clock.monotonic()
        self._transition_to(CircuitState.CLOSED)

    def force_open(self) -> None:
        """Trip the circuit regardless of recent outcomes."""
        self._open()

    def force_close(self) -> None:
        """Close the circuit regardless of recent outcomes."""
        self.reset()

    def get_stats(self) -> CircuitStats:
        """Get circuit breaker statistics.

        Returns:
            Copy of the current statistics
        """
        return replace(self._stats)

    def snapshot(self) -> CircuitBreakerSnapshot:
        """Capture the current state for reporting."""
        remaining = self.get_time_until_retry()
        return CircuitBreakerSnapshot(
            name=self._name,
            state=self._state.value,
            failure_count=self._failure_count,
            failure_threshold=self._config.failure_threshold,
            success_count=self._success_count,
            success_threshold=self._config.success_threshold,
            last_failure_time=self._stats.last_failure_time,
            cooldown_remaining_ms=remaining * 1000 if remaining is not None else None,
        )

    def __repr__(self) -> str:
        return (
            f"CircuitBreaker(name={self._name!r}, state={self._state.value}, "
            f"failures={self._failure_count}/{self._config.failure_threshold})"
        )
