"""Pytest fixtures for Notecraft tests."""

import logging
import random
from collections.abc import Generator
from datetime import UTC, datetime, timedelta

import pytest
import structlog

from notecraft.core.config import RetryConfig
from notecraft.execution.retry_policy import RetryPolicyEngine
from notecraft.monitoring.lifecycle import JobLifecycleTracker
from notecraft.monitoring.metrics import MetricsAggregator
from notecraft.state.memory import MemoryReportStore


@pytest.fixture(autouse=True)
def reset_logging_state() -> Generator[None, None, None]:
    """Reset logging state before and after each test.

    This ensures test isolation for logging configuration.
    """
    from notecraft.cli import helpers

    helpers.reset_logging_state()
    structlog.reset_defaults()

    root_logger = logging.getLogger()
    original_handlers = root_logger.handlers[:]
    original_level = root_logger.level
    for handler in original_handlers:
        root_logger.removeHandler(handler)

    yield

    helpers.reset_logging_state()
    structlog.reset_defaults()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    for handler in original_handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(original_level)


class FakeClock:
    """Deterministic clock for lifecycle tests."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 15, 10, 0, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def store() -> MemoryReportStore:
    return MemoryReportStore()


@pytest.fixture
def metrics() -> MetricsAggregator:
    return MetricsAggregator()


@pytest.fixture
def tracker(clock: FakeClock, metrics: MetricsAggregator) -> JobLifecycleTracker:
    memory = iter(float(v) for v in range(100, 10_000, 10))
    return JobLifecycleTracker(
        metrics=metrics,
        memory_probe=lambda: next(memory),
        clock=clock,
    )


@pytest.fixture
def engine(
    store: MemoryReportStore,
    tracker: JobLifecycleTracker,
    sleep: RecordingSleep,
) -> RetryPolicyEngine:
    """Engine with jitter disabled and an instant sleep."""
    return RetryPolicyEngine(
        RetryConfig(jitter_seconds=0),
        store,
        tracker,
        sleep=sleep,
        rng=random.Random(42),
    )
