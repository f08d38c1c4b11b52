"""Pydantic models for the recovery API: health state, recovery status, manual entry."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from src.models.base import RestwellBase
from src.recovery.base import ActivitySource, MetricType, SleepStage
from src.recovery.facade import HealthDataState


# ---------- Canonical record ----------

class HealthMetricRead(RestwellBase):
    value: float
    timestamp: datetime
    source: str


class SleepIntervalRead(RestwellBase):
    start_time: datetime
    end_time: datetime
    quality: SleepStage
    duration_minutes: int


class WorkoutSessionRead(RestwellBase):
    type: str
    start_time: datetime
    end_time: datetime
    calories_burned: float = 0.0
    heart_rate_avg: float | None = None
    heart_rate_max: float | None = None
    distance: float | None = None


class HealthRecordRead(RestwellBase):
    user_id: str
    steps: list[HealthMetricRead] = Field(default_factory=list)
    heart_rate: list[HealthMetricRead] = Field(default_factory=list)
    sleep: list[SleepIntervalRead] = Field(default_factory=list)
    calories_burned: list[HealthMetricRead] = Field(default_factory=list)
    workouts: list[WorkoutSessionRead] = Field(default_factory=list)
    last_updated: datetime


# ---------- Derived values ----------

class SleepSummaryRead(RestwellBase):
    date: datetime
    total_sleep_minutes: int
    deep_sleep_minutes: int
    rem_sleep_minutes: int
    light_sleep_minutes: int
    awakenings: int
    sleep_score: int = Field(ge=0, le=100)


class ContributingFactorsRead(RestwellBase):
    sleep_quality: int
    resting_heart_rate: int
    recent_activity_level: int
    heart_rate_variability: float | None = None


class RecoveryStatusRead(RestwellBase):
    score: int = Field(ge=0, le=100)
    recommendation: str
    contributing_factors: ContributingFactorsRead
    activity_source: ActivitySource


class HealthStatusRead(RestwellBase):
    user_id: str
    loading: bool = False
    error: str | None = None
    record: HealthRecordRead | None = None
    recovery_status: RecoveryStatusRead | None = None
    sleep_summary: SleepSummaryRead | None = None

    @classmethod
    def from_state(cls, state: HealthDataState) -> "HealthStatusRead":
        return cls(
            user_id=state.user_id,
            loading=state.loading,
            error=state.error_message,
            record=HealthRecordRead.model_validate(state.record) if state.record else None,
            recovery_status=(
                RecoveryStatusRead.model_validate(state.recovery_status)
                if state.recovery_status
                else None
            ),
            sleep_summary=(
                SleepSummaryRead.model_validate(state.sleep_summary)
                if state.sleep_summary
                else None
            ),
        )


# ---------- Manual entry ----------

class ManualMetricCreate(RestwellBase):
    value: float = Field(ge=0, allow_inf_nan=False)
    timestamp: datetime | None = None  # naive values are taken as UTC


class ManualMetricsCreate(RestwellBase):
    category: MetricType
    metrics: list[ManualMetricCreate] = Field(min_length=1)


# ---------- Connections ----------

class ConnectionCreate(RestwellBase):
    permissions: list[str] = Field(default_factory=list)


class ConnectionRead(RestwellBase):
    user_id: str
    provider_type: str
    is_connected: bool
    last_synced: datetime | None = None
    permissions: list[str] = Field(default_factory=list)
