"""Canonical data models and collaborator interfaces for the recovery engine.

Every Device Data Provider must subclass DeviceDataProvider and return the
canonical HealthMetric / SleepInterval / WorkoutSession records.  These types
are the single source of truth consumed by the sync policy, the scorers, the
profile stores and the API layer.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from src.recovery.scoring_utils import round_half_up

logger = logging.getLogger("restwell.recovery")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as a tz-aware UTC datetime (naive values are assumed UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class MetricType(str, Enum):
    """Scalar metric categories a provider can be queried for."""

    STEPS = "steps"
    HEART_RATE = "heart_rate"
    ACTIVE_CALORIES = "active_calories"


class SleepStage(str, Enum):
    """Sleep stage label attached to a SleepInterval."""

    DEEP = "deep"
    LIGHT = "light"
    REM = "rem"
    AWAKE = "awake"


class ActivitySource(str, Enum):
    """Which data source backed the activity load estimate."""

    WORKOUTS = "workouts"
    ACTIVE_CALORIES = "active_calories"
    STEPS = "steps"
    NONE = "none"


# ---------------------------------------------------------------------------
# Canonical samples
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class HealthMetric:
    """A single scalar sample (steps, heart rate or active calories).

    Attributes:
        value:     Sample value in canonical units (count, bpm, kcal).
        timestamp: UTC end timestamp of the sample.
        source:    Provider label the sample came from (e.g. 'AppleHealth').
    """

    value: float
    timestamp: datetime
    source: str

    def __post_init__(self) -> None:
        # naive timestamps are taken as UTC so window comparisons never mix kinds
        object.__setattr__(self, "timestamp", ensure_utc(self.timestamp))

    def to_dict(self) -> dict:
        return {
            "value": self.value,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HealthMetric":
        return cls(
            value=float(data.get("value") or 0),
            timestamp=ensure_utc(datetime.fromisoformat(data["timestamp"])),
            source=data.get("source", "unknown"),
        )


@dataclass(frozen=True)
class SleepInterval:
    """One staged interval of a night's sleep.

    ``duration_minutes`` is derived from the bounds at ingestion; build
    intervals with ``from_bounds()`` to keep the two consistent.
    """

    start_time: datetime
    end_time: datetime
    quality: SleepStage
    duration_minutes: int

    @classmethod
    def from_bounds(
        cls, start_time: datetime, end_time: datetime, quality: SleepStage
    ) -> "SleepInterval":
        seconds = (end_time - start_time).total_seconds()
        return cls(
            start_time=start_time,
            end_time=end_time,
            quality=quality,
            duration_minutes=round_half_up(seconds / 60.0),
        )

    def to_dict(self) -> dict:
        return {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "quality": self.quality.value,
            "duration_minutes": self.duration_minutes,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SleepInterval":
        return cls.from_bounds(
            ensure_utc(datetime.fromisoformat(data["start_time"])),
            ensure_utc(datetime.fromisoformat(data["end_time"])),
            SleepStage(data.get("quality", SleepStage.LIGHT.value)),
        )


@dataclass(frozen=True)
class WorkoutSession:
    """Canonical workout record.

    Attributes:
        type:            Human-readable activity name ('Running', 'Unknown').
        start_time:      UTC start timestamp.
        end_time:        UTC end timestamp, always after ``start_time``.
        calories_burned: Calories burned (0 when the provider has none).
        heart_rate_avg:  Average heart rate, None when not supplied.
        heart_rate_max:  Maximum heart rate, None when not supplied.
        distance:        Distance in meters, None when not supplied.
    """

    type: str
    start_time: datetime
    end_time: datetime
    calories_burned: float = 0.0
    heart_rate_avg: float | None = None
    heart_rate_max: float | None = None
    distance: float | None = None

    def __post_init__(self) -> None:
        if self.end_time <= self.start_time:
            raise ValueError(
                f"Workout end_time {self.end_time} must be after start_time {self.start_time}"
            )

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "calories_burned": self.calories_burned,
            "heart_rate_avg": self.heart_rate_avg,
            "heart_rate_max": self.heart_rate_max,
            "distance": self.distance,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "WorkoutSession":
        return cls(
            type=data.get("type") or "Unknown",
            start_time=ensure_utc(datetime.fromisoformat(data["start_time"])),
            end_time=ensure_utc(datetime.fromisoformat(data["end_time"])),
            calories_burned=float(data.get("calories_burned") or 0),
            heart_rate_avg=data.get("heart_rate_avg"),
            heart_rate_max=data.get("heart_rate_max"),
            distance=data.get("distance"),
        )


# ---------------------------------------------------------------------------
# Per-user records
# ---------------------------------------------------------------------------


@dataclass
class CanonicalHealthRecord:
    """The normalized, provider-agnostic snapshot of one user's biometrics.

    Written only by the sync policy (and manual metric entry); read by every
    scorer.  Any list may be empty, which is an expected state.
    """

    user_id: str
    steps: list[HealthMetric] = field(default_factory=list)
    heart_rate: list[HealthMetric] = field(default_factory=list)
    sleep: list[SleepInterval] = field(default_factory=list)
    calories_burned: list[HealthMetric] = field(default_factory=list)
    workouts: list[WorkoutSession] = field(default_factory=list)
    last_updated: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "steps": [m.to_dict() for m in self.steps],
            "heart_rate": [m.to_dict() for m in self.heart_rate],
            "sleep": [s.to_dict() for s in self.sleep],
            "calories_burned": [m.to_dict() for m in self.calories_burned],
            "workouts": [w.to_dict() for w in self.workouts],
            "last_updated": self.last_updated.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CanonicalHealthRecord":
        last_updated = data.get("last_updated")
        return cls(
            user_id=data["user_id"],
            steps=[HealthMetric.from_dict(m) for m in data.get("steps") or []],
            heart_rate=[HealthMetric.from_dict(m) for m in data.get("heart_rate") or []],
            sleep=[SleepInterval.from_dict(s) for s in data.get("sleep") or []],
            calories_burned=[
                HealthMetric.from_dict(m) for m in data.get("calories_burned") or []
            ],
            workouts=[WorkoutSession.from_dict(w) for w in data.get("workouts") or []],
            last_updated=(
                ensure_utc(datetime.fromisoformat(last_updated)) if last_updated else utc_now()
            ),
        )


@dataclass
class ConnectionRecord:
    """A user's authorization of one data provider.

    ``last_synced`` is None until the first sync pass completes.
    """

    user_id: str
    provider_type: str
    is_connected: bool = True
    last_synced: datetime | None = None
    permissions: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Derived outputs
# ---------------------------------------------------------------------------


@dataclass
class SleepSummary:
    """Rolling-window sleep summary shown on the sleep card."""

    date: datetime
    total_sleep_minutes: int
    deep_sleep_minutes: int
    rem_sleep_minutes: int
    light_sleep_minutes: int
    awakenings: int
    sleep_score: int


@dataclass
class ContributingFactors:
    sleep_quality: int
    resting_heart_rate: int
    recent_activity_level: int
    heart_rate_variability: float | None = None


@dataclass
class RecoveryStatus:
    """Composite recovery score, recommendation and its inputs.

    Attributes:
        score:                0–100 integer composite.
        recommendation:       Fixed-band recommendation text, annotated with the
                              activity data source when a fallback was used.
        contributing_factors: Per-signal values behind the score.
        activity_source:      Which tier of the activity fallback chain was used.
    """

    score: int
    recommendation: str
    contributing_factors: ContributingFactors
    activity_source: ActivitySource = ActivitySource.NONE


# ---------------------------------------------------------------------------
# Collaborator interfaces
# ---------------------------------------------------------------------------


class DeviceDataProvider(ABC):
    """Time-bounded, unit-normalized sample queries against one data source.

    Every method may return an empty list and may raise; the sync policy
    catches failures per category.
    """

    #: Slug matching ConnectionRecord.provider_type (e.g. 'appleHealth').
    PROVIDER_TYPE: str = "unknown"

    #: Human-readable name for logging.
    DISPLAY_NAME: str = "Unknown Provider"

    @abstractmethod
    async def query_metric(
        self, metric_type: MetricType, start: datetime, end: datetime
    ) -> list[HealthMetric]:
        """Return scalar samples of ``metric_type`` ending within [start, end]."""

    @abstractmethod
    async def query_sleep(self, start: datetime, end: datetime) -> list[SleepInterval]:
        """Return staged sleep intervals within [start, end]."""

    @abstractmethod
    async def query_workouts(self, start: datetime, end: datetime) -> list[WorkoutSession]:
        """Return workout sessions within [start, end]."""


class ConnectionRegistry(ABC):
    """Tracks which providers a user has authorized and when they last synced."""

    @abstractmethod
    async def get_connections(self, user_id: str) -> list[ConnectionRecord]:
        """Return every connection record for the user (connected or not)."""

    @abstractmethod
    async def touch_sync(self, user_id: str, provider_type: str, timestamp: datetime) -> None:
        """Set ``last_synced`` for the (user, provider) connection."""

    @abstractmethod
    async def upsert_connection(self, record: ConnectionRecord) -> None:
        """Create or replace a connection record."""

    async def disconnect(self, user_id: str, provider_type: str) -> None:
        """Mark a connection as no longer authorized.

        Default implementation rewrites the record through upsert_connection().
        """
        for record in await self.get_connections(user_id):
            if record.provider_type == provider_type:
                record.is_connected = False
                await self.upsert_connection(record)
                logger.info("Disconnected %s for user %s", provider_type, user_id)


class ProfileStore(ABC):
    """Persists the canonical per-user health record."""

    @abstractmethod
    async def get_record(self, user_id: str) -> CanonicalHealthRecord | None:
        """Return the stored record, or None when the user has never synced."""

    @abstractmethod
    async def put_record(self, user_id: str, record: CanonicalHealthRecord) -> None:
        """Replace the stored record wholesale."""
