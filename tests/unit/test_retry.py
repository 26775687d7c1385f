"""Tests for the retry handler."""

from __future__ import annotations

import json

import pytest

from faultline.clock import ManualClock
from faultline.errors import ConfigurationError
from faultline.resilience import JitterStrategy, RetryConfig, RetryHandler, with_retry


class TransientError(Exception):
    """Retryable failure."""


class PermanentError(Exception):
    """Non-retryable failure."""


class Flaky:
    """Operation that fails a fixed number of times before succeeding."""

    def __init__(self, failures: int, result: str = "success") -> None:
        self.failures = failures
        self.result = result
        self.calls = 0
        self.errors: list[Exception] = []

    def _step(self) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            error = TransientError(f"attempt {self.calls} failed")
            self.errors.append(error)
            raise error
        return self.result

    async def __call__(self) -> str:
        return self._step()

    def sync(self) -> str:
        return self._step()


class TestRetryConfig:
    """Tests for RetryConfig."""

    def test_default_config(self) -> None:
        """Test default retry configuration."""
        config = RetryConfig()
        assert config.max_retries == 3
        assert config.initial_delay_ms == 1000
        assert config.max_delay_ms == 30000
        assert config.exponential_base == 2.0
        assert config.jitter == JitterStrategy.NONE
        assert config.should_retry is None
        assert config.on_retry is None

    def test_no_retry_config(self) -> None:
        """Test no-retry configuration."""
        assert RetryConfig.no_retry().max_retries == 0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_retries": -1},
            {"initial_delay_ms": -10},
            {"max_delay_ms": -1},
            {"exponential_base": 0},
        ],
    )
    def test_rejects_invalid_values(self, kwargs: dict) -> None:
        """Test configuration validation."""
        with pytest.raises(ConfigurationError):
            RetryConfig(**kwargs)

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test creating configuration from environment variables."""
        monkeypatch.setenv("FAULTLINE_RETRY_MAX_RETRIES", "5")
        monkeypatch.setenv("FAULTLINE_RETRY_INITIAL_DELAY_MS", "250")
        config = RetryConfig.from_env()
        assert config.max_retries == 5
        assert config.initial_delay_ms == 250.0
        assert config.max_delay_ms == 30000.0


class TestCalculateDelay:
    """Tests for backoff delay calculation."""

    def test_exponential(self) -> None:
        """Test exponential backoff calculation."""
        handler = RetryHandler(RetryConfig(initial_delay_ms=1000, max_delay_ms=60000))
        assert handler.calculate_delay(0) == 1.0
        assert handler.calculate_delay(1) == 2.0
        assert handler.calculate_delay(2) == 4.0

    def test_custom_base(self) -> None:
        """Test a non-default growth factor."""
        handler = RetryHandler(RetryConfig(initial_delay_ms=100, exponential_base=3))
        assert handler.calculate_delay(2) == pytest.approx(0.9)

    def test_respects_max(self) -> None:
        """Test that delay is capped at max."""
        handler = RetryHandler(RetryConfig(initial_delay_ms=1000, max_delay_ms=5000))
        assert handler.calculate_delay(10) == 5.0

    def test_large_attempt_caps_instead_of_overflowing(self) -> None:
        """Test a huge exponent falls back to the maximum delay."""
        handler = RetryHandler(
            RetryConfig(max_retries=400, exponential_base=10.0, max_delay_ms=5000)
        )
        assert handler.calculate_delay(310) == 5.0
        assert handler.calculate_delay(399) == 5.0

    def test_full_jitter_stays_in_range(self) -> None:
        """Test full jitter never exceeds the exponential delay."""
        handler = RetryHandler(
            RetryConfig(initial_delay_ms=1000, jitter=JitterStrategy.FULL)
        )
        for _ in range(50):
            assert 0.0 <= handler.calculate_delay(1) <= 2.0

    def test_equal_jitter_keeps_half(self) -> None:
        """Test equal jitter keeps at least half of the delay."""
        handler = RetryHandler(
            RetryConfig(initial_delay_ms=1000, jitter=JitterStrategy.EQUAL)
        )
        for _ in range(50):
            assert 1.0 <= handler.calculate_delay(1) <= 2.0


class TestExecute:
    """Tests for async execute."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self, clock: ManualClock) -> None:
        """Test successful execution without retries."""
        op = Flaky(failures=0)
        result = await RetryHandler(clock=clock).execute(op)
        assert result == "success"
        assert op.calls == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_retries", [1, 3, 5])
    async def test_succeeds_on_last_allowed_attempt(
        self, clock: ManualClock, max_retries: int
    ) -> None:
        """Test max_retries failures followed by success."""
        op = Flaky(failures=max_retries)
        handler = RetryHandler(RetryConfig(max_retries=max_retries), clock=clock)

        assert await handler.execute(op) == "success"
        assert op.calls == max_retries + 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_retries", [0, 2, 4])
    async def test_exhaustion_raises_last_error(
        self, clock: ManualClock, max_retries: int
    ) -> None:
        """Test that the last failure is re-raised unchanged."""
        op = Flaky(failures=100)
        handler = RetryHandler(RetryConfig(max_retries=max_retries), clock=clock)

        with pytest.raises(TransientError) as exc_info:
            await handler.execute(op)

        assert op.calls == max_retries + 1
        assert exc_info.value is op.errors[-1]

    @pytest.mark.asyncio
    async def test_backoff_delays(self, clock: ManualClock) -> None:
        """Test the sequence of backoff sleeps."""
        op = Flaky(failures=100)
        handler = RetryHandler(
            RetryConfig(max_retries=4, initial_delay_ms=1000, max_delay_ms=5000),
            clock=clock,
        )
        with pytest.raises(TransientError):
            await handler.execute(op)

        assert clock.sleeps == [1.0, 2.0, 4.0, 5.0]

    @pytest.mark.asyncio
    async def test_should_retry_false_stops_immediately(self, clock: ManualClock) -> None:
        """Test that a non-retryable error propagates after one attempt."""
        error = PermanentError("bad request")
        calls = 0

        async def op() -> str:
            nonlocal calls
            calls += 1
            raise error

        seen = []
        handler = RetryHandler(
            RetryConfig(should_retry=lambda e: seen.append(e) or False),
            clock=clock,
        )
        with pytest.raises(PermanentError) as exc_info:
            await handler.execute(op)

        assert calls == 1
        assert exc_info.value is error
        assert seen == [error]
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_predicate_selects_errors(self, clock: ManualClock) -> None:
        """Test retrying only transient errors."""
        errors = [TransientError("a"), TransientError("b"), PermanentError("c")]
        calls = 0

        async def op() -> str:
            nonlocal calls
            error = errors[calls]
            calls += 1
            raise error

        handler = RetryHandler(
            RetryConfig(
                max_retries=10,
                should_retry=lambda e: isinstance(e, TransientError),
            ),
            clock=clock,
        )
        with pytest.raises(PermanentError):
            await handler.execute(op)
        assert calls == 3

    @pytest.mark.asyncio
    async def test_on_retry_called_before_each_retry(self, clock: ManualClock) -> None:
        """Test the retry observer receives 1-based attempt numbers."""
        retries: list[tuple[int, Exception]] = []
        op = Flaky(failures=2)
        handler = RetryHandler(
            RetryConfig(on_retry=lambda n, e: retries.append((n, e))),
            clock=clock,
        )

        await handler.execute(op)

        assert retries == [(1, op.errors[0]), (2, op.errors[1])]

    @pytest.mark.asyncio
    async def test_on_retry_not_called_on_final_failure(self, clock: ManualClock) -> None:
        """Test no retry notification once the budget is spent."""
        retries = []
        handler = RetryHandler(
            RetryConfig(max_retries=2, on_retry=lambda n, e: retries.append(n)),
            clock=clock,
        )
        with pytest.raises(TransientError):
            await handler.execute(Flaky(failures=100))
        assert retries == [1, 2]

    @pytest.mark.asyncio
    async def test_calls_are_independent(self, clock: ManualClock) -> None:
        """Test that one handler keeps no state between calls."""
        handler = RetryHandler(RetryConfig(max_retries=1), clock=clock)
        with pytest.raises(TransientError):
            await handler.execute(Flaky(failures=5))

        op = Flaky(failures=1)
        assert await handler.execute(op) == "success"
        assert op.calls == 2

    @pytest.mark.asyncio
    async def test_logs_retries_and_exhaustion(self, clock, logger, log_stream) -> None:
        """Test retry scheduling and exhaustion are logged."""
        handler = RetryHandler(
            RetryConfig(max_retries=1, initial_delay_ms=500), clock=clock, logger=logger
        )
        with pytest.raises(TransientError):
            await handler.execute(Flaky(failures=5))

        records = [json.loads(line) for line in log_stream.getvalue().splitlines()]
        assert [r["message"] for r in records] == [
            "Operation failed, retrying",
            "Retries exhausted",
        ]
        assert records[0]["delay_seconds"] == 0.5
        assert records[1]["level"] == "ERROR"
        assert records[1]["attempts"] == 2

    @pytest.mark.asyncio
    async def test_long_budget_surfaces_operation_error(self, clock, logger) -> None:
        """Test exhausting a large budget re-raises the last operation error."""
        op = Flaky(failures=1000)
        handler = RetryHandler(
            RetryConfig(max_retries=400, exponential_base=10.0, max_delay_ms=5000),
            clock=clock,
            logger=logger,
        )

        with pytest.raises(TransientError) as exc_info:
            await handler.execute(op)

        assert op.calls == 401
        assert exc_info.value is op.errors[-1]
        assert clock.sleeps[-1] == 5.0


class TestExecuteSync:
    """Tests for execute_sync."""

    def test_retries_without_sleeping(self, clock: ManualClock) -> None:
        """Test the sync variant retries immediately."""
        op = Flaky(failures=3)
        handler = RetryHandler(RetryConfig(max_retries=3), clock=clock)

        assert handler.execute_sync(op.sync) == "success"
        assert op.calls == 4
        assert clock.sleeps == []

    def test_exhaustion_raises_last_error(self) -> None:
        """Test the sync variant re-raises the last failure."""
        op = Flaky(failures=100)
        handler = RetryHandler(RetryConfig(max_retries=2))

        with pytest.raises(TransientError) as exc_info:
            handler.execute_sync(op.sync)
        assert op.calls == 3
        assert exc_info.value is op.errors[-1]

    def test_should_retry_and_on_retry(self) -> None:
        """Test the sync variant honours predicate and observer."""
        retries = []
        op = Flaky(failures=100)
        handler = RetryHandler(
            RetryConfig(
                max_retries=5,
                should_retry=lambda e: len(retries) < 2,
                on_retry=lambda n, e: retries.append(n),
            )
        )
        with pytest.raises(TransientError):
            handler.execute_sync(op.sync)
        assert retries == [1, 2]
        assert op.calls == 3


class TestWrap:
    """Tests for RetryHandler.wrap and with_retry."""

    @pytest.mark.asyncio
    async def test_wrap_retries_with_arguments(self, clock: ManualClock) -> None:
        """Test the wrapped function forwards arguments and retries."""
        calls = []

        async def fetch_order(order_id: str, *, region: str = "eu") -> str:
            """Fetch an order."""
            calls.append((order_id, region))
            if len(calls) < 2:
                raise TransientError("flaky")
            return f"{order_id}@{region}"

        wrapped = RetryHandler.wrap(fetch_order, RetryConfig(max_retries=2), clock=clock)

        assert await wrapped("A-1", region="us") == "A-1@us"
        assert calls == [("A-1", "us"), ("A-1", "us")]
        assert wrapped.__name__ == "fetch_order"
        assert wrapped.__doc__ == "Fetch an order."

    @pytest.mark.asyncio
    async def test_wrap_shares_one_handler(self, clock: ManualClock) -> None:
        """Test all invocations share the same configuration."""

        async def op() -> str:
            return "ok"

        config = RetryConfig(max_retries=7)
        wrapped = RetryHandler.wrap(op, config, clock=clock)
        handler = wrapped.retry_handler
        await wrapped()
        await wrapped()
        assert wrapped.retry_handler is handler
        assert handler.config is config

    @pytest.mark.asyncio
    async def test_with_retry(self) -> None:
        """Test with_retry helper function."""

        async def success_op() -> str:
            return "success"

        assert await with_retry(success_op) == "success"

    @pytest.mark.asyncio
    async def test_with_retry_raises(self) -> None:
        """Test with_retry surfaces the failure when retries are disabled."""
        op = Flaky(failures=1)
        with pytest.raises(TransientError):
            await with_retry(op, RetryConfig.no_retry())
        assert op.calls == 1
