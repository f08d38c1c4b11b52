"""Shared fixtures and sample builders for recovery engine tests."""

from __future__ import annotations

import asyncio
import json
from collections import Counter
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from src.recovery.base import (
    CanonicalHealthRecord,
    ConnectionRecord,
    DeviceDataProvider,
    HealthMetric,
    MetricType,
    SleepInterval,
    SleepStage,
    WorkoutSession,
)
from src.recovery.config_loader import RecoveryConfig, load_recovery_config
from src.recovery.stores import InMemoryConnectionRegistry, InMemoryProfileStore

# Fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"

TEST_USER_ID = "user-7f3a"
REFERENCE_TIME = datetime(2026, 2, 23, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Sample builders
# ---------------------------------------------------------------------------


def metric(value: float, hours_ago: float = 1, source: str = "Test") -> HealthMetric:
    return HealthMetric(
        value=value,
        timestamp=REFERENCE_TIME - timedelta(hours=hours_ago),
        source=source,
    )


def interval(stage: SleepStage, minutes: float, ends_hours_ago: float = 1) -> SleepInterval:
    end = REFERENCE_TIME - timedelta(hours=ends_hours_ago)
    return SleepInterval.from_bounds(end - timedelta(minutes=minutes), end, stage)


def workout(calories: float, ends_hours_ago: float = 2, minutes: float = 45) -> WorkoutSession:
    end = REFERENCE_TIME - timedelta(hours=ends_hours_ago)
    return WorkoutSession(
        type="Running",
        start_time=end - timedelta(minutes=minutes),
        end_time=end,
        calories_burned=calories,
    )


def record(**categories) -> CanonicalHealthRecord:
    return CanonicalHealthRecord(user_id=TEST_USER_ID, last_updated=REFERENCE_TIME, **categories)


def load_fixture(name: str) -> dict:
    return json.loads((FIXTURES_DIR / name).read_text())


# ---------------------------------------------------------------------------
# Fake provider
# ---------------------------------------------------------------------------


class FakeProvider(DeviceDataProvider):
    """In-memory provider that counts queries and can fail or stall per category.

    Categories: 'steps', 'heart_rate', 'active_calories', 'sleep', 'workouts'.
    """

    PROVIDER_TYPE = "fake"
    DISPLAY_NAME = "Fake Provider"

    def __init__(
        self,
        metrics: dict[MetricType, list[HealthMetric]] | None = None,
        sleep: list[SleepInterval] | None = None,
        workouts: list[WorkoutSession] | None = None,
        failing: set[str] | None = None,
        stalled: set[str] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.metrics = metrics or {}
        self.sleep = sleep or []
        self.workouts = workouts or []
        self.failing = failing or set()
        self.stalled = stalled or set()
        self.delay = delay
        self.calls: Counter[str] = Counter()
        self.windows: list[tuple[datetime, datetime]] = []

    async def _answer(self, category: str, start: datetime, end: datetime, result: list):
        self.calls[category] += 1
        self.windows.append((start, end))
        if self.delay:
            await asyncio.sleep(self.delay)
        if category in self.stalled:
            await asyncio.sleep(60)
        if category in self.failing:
            raise RuntimeError(f"{category} unavailable")
        return list(result)

    async def query_metric(self, metric_type, start, end):
        return await self._answer(metric_type.value, start, end, self.metrics.get(metric_type, []))

    async def query_sleep(self, start, end):
        return await self._answer("sleep", start, end, self.sleep)

    async def query_workouts(self, start, end):
        return await self._answer("workouts", start, end, self.workouts)

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def recovery_config() -> RecoveryConfig:
    """Load the real recovery config for tests."""
    return load_recovery_config()


@pytest.fixture
def clock():
    return lambda: REFERENCE_TIME


@pytest.fixture
def profile_store() -> InMemoryProfileStore:
    return InMemoryProfileStore()


@pytest.fixture
def connections() -> InMemoryConnectionRegistry:
    return InMemoryConnectionRegistry(
        [ConnectionRecord(user_id=TEST_USER_ID, provider_type=FakeProvider.PROVIDER_TYPE)]
    )


@pytest.fixture
def fake_provider() -> FakeProvider:
    return FakeProvider(
        metrics={
            MetricType.STEPS: [metric(4000, hours_ago=3), metric(3500, hours_ago=30)],
            MetricType.HEART_RATE: [metric(v, hours_ago=i) for i, v in enumerate([62, 64, 61, 63, 65])],
            MetricType.ACTIVE_CALORIES: [metric(300, hours_ago=3)],
        },
        sleep=[
            interval(SleepStage.LIGHT, 180, ends_hours_ago=5),
            interval(SleepStage.DEEP, 90, ends_hours_ago=4),
            interval(SleepStage.REM, 60, ends_hours_ago=3),
        ],
        workouts=[workout(400)],
    )
