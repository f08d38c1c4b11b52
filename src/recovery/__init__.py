"""Restwell recovery engine.

Ingests steps, heart rate, sleep stages, workouts and active calories from
wearable data providers, keeps a canonical per-user record fresh, and
derives a sleep summary, an HRV estimate and a 0–100 recovery score with a
training recommendation.

Subpackages:
    adapters/ — Device Data Providers (Apple Health, Google Fit)
    sync/     — Staleness-driven sync policy

Core modules:
    base           — Canonical data models and collaborator ABCs
    normalizer     — Provider-native samples → canonical records
    config_loader  — Load/validate recovery_config.yaml
    sleep_summary  — Rolling-window sleep summary
    hrv            — HRV proxy from heart-rate samples
    activity_load  — Workouts → calories → steps activity estimate
    recovery_score — Composite recovery score and recommendation
    facade         — Health Data Facade for presentation consumers
    stores         — In-memory profile store and connection registry
"""

from src.recovery.base import (
    CanonicalHealthRecord,
    ConnectionRecord,
    DeviceDataProvider,
    HealthMetric,
    RecoveryStatus,
    SleepInterval,
    SleepSummary,
    WorkoutSession,
)
from src.recovery.config_loader import RecoveryConfig, get_recovery_config

__all__ = [
    "CanonicalHealthRecord",
    "ConnectionRecord",
    "DeviceDataProvider",
    "HealthMetric",
    "RecoveryStatus",
    "SleepInterval",
    "SleepSummary",
    "WorkoutSession",
    "RecoveryConfig",
    "get_recovery_config",
]
