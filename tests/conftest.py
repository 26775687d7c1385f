"""Root pytest fixtures for faultline tests."""

from __future__ import annotations

import io
import uuid

import pytest

from faultline.clock import ManualClock
from faultline.telemetry import FaultlineLogger, LogLevel


@pytest.fixture
def clock() -> ManualClock:
    """Deterministic clock starting at t=100s."""
    return ManualClock(start=100.0)


@pytest.fixture
def log_stream() -> io.StringIO:
    """In-memory stream capturing JSON log lines."""
    return io.StringIO()


@pytest.fixture
def logger(log_stream: io.StringIO) -> FaultlineLogger:
    """Debug-level JSON logger writing to ``log_stream``.

    Each test gets a uniquely named logger so handlers never leak between tests.
    """
    return FaultlineLogger.create(
        f"faultline.tests.{uuid.uuid4().hex}",
        level=LogLevel.DEBUG,
        format="json",
        stream=log_stream,
    )


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "slow: uses the real event loop clock with short sleeps",
    )
