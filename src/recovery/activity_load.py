"""Activity load estimator: recent exertion → 0–100 (higher = more rested).

Sources are tried in priority order and the first one with samples in the
trailing window wins:

    workouts  → 100 - sum(workout calories) / 20
    calories  → 100 - sum(active calories) / 30
    steps     → 100 - sum(steps) / 150
    nothing   → 100

No tracked activity is treated as "well rested", not as unknown.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Sequence

from src.recovery.base import (
    ActivitySource,
    CanonicalHealthRecord,
    HealthMetric,
    WorkoutSession,
    ensure_utc,
)
from src.recovery.config_loader import ActivityLoadConfig, RecoveryConfig, get_recovery_config
from src.recovery.scoring_utils import clamp, finite_values

logger = logging.getLogger("restwell.recovery.activity")


@dataclass(frozen=True)
class ActivityLoad:
    """Activity score together with the tier that produced it."""

    score: float
    source: ActivitySource


@dataclass(frozen=True)
class ActivityTier:
    """One step of the fallback chain.

    Attributes:
        source:  Tier identifier reported back to the recovery scorer.
        select:  Returns the amounts (calories, steps) inside the window;
                 an empty list means "fall through to the next tier".
        divisor: Amount that costs one point of recovery.
    """

    source: ActivitySource
    select: Callable[[CanonicalHealthRecord, datetime], list[float]]
    divisor: float

    def score(self, amounts: Sequence[float]) -> float:
        return clamp(0, 100, 100 - sum(amounts) / self.divisor)


def _recent_workout_calories(record: CanonicalHealthRecord, since: datetime) -> list[float]:
    workouts: list[WorkoutSession] = record.workouts
    return finite_values(w.calories_burned for w in workouts if w.end_time > since)


def _recent_values(metrics: Sequence[HealthMetric], since: datetime) -> list[float]:
    return finite_values(m.value for m in metrics if m.timestamp > since)


def build_tiers(config: ActivityLoadConfig) -> list[ActivityTier]:
    """Return the fallback chain in priority order."""
    return [
        ActivityTier(
            ActivitySource.WORKOUTS,
            _recent_workout_calories,
            config.workout_calorie_divisor,
        ),
        ActivityTier(
            ActivitySource.ACTIVE_CALORIES,
            lambda record, since: _recent_values(record.calories_burned, since),
            config.active_calorie_divisor,
        ),
        ActivityTier(
            ActivitySource.STEPS,
            lambda record, since: _recent_values(record.steps, since),
            config.step_divisor,
        ),
    ]


class ActivityLoadEstimator:
    """Score recent exertion using the workouts → calories → steps chain."""

    def __init__(self, config: RecoveryConfig | None = None) -> None:
        self._config = (config or get_recovery_config()).activity_load
        self._tiers = build_tiers(self._config)

    @property
    def tiers(self) -> list[ActivityTier]:
        return list(self._tiers)

    def assess(self, record: CanonicalHealthRecord, reference_time: datetime) -> ActivityLoad:
        """Return the score and the source tier that backed it."""
        since = ensure_utc(reference_time) - timedelta(hours=self._config.window_hours)
        for tier in self._tiers:
            amounts = tier.select(record, since)
            if amounts:
                score = tier.score(amounts)
                logger.debug(
                    "Activity load from %s: %d samples → %.1f",
                    tier.source.value, len(amounts), score,
                )
                return ActivityLoad(score=score, source=tier.source)

        return ActivityLoad(score=self._config.no_data_score, source=ActivitySource.NONE)

    def estimate(self, record: CanonicalHealthRecord, reference_time: datetime) -> float:
        return self.assess(record, reference_time).score
