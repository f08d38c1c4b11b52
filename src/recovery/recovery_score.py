"""Composite 0–100 recovery score with adaptive weights.

Combines three sub-scores (each 0–100):

    - Sleep: deep-sleep share of the 3 most recent intervals * 2   (weight 0.4)
    - Heart rate: resting-rate band of the 10 latest samples       (weight 0.3)
    - Activity: fallback chain from activity_load                  (weight 0.3)

When no sleep data exists, the sleep weight is split evenly onto heart
rate and activity so the composite stays a weighted average.  With neither
sleep nor heart-rate data there is no score at all.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from src.recovery.activity_load import ActivityLoad, ActivityLoadEstimator
from src.recovery.base import (
    ActivitySource,
    CanonicalHealthRecord,
    ContributingFactors,
    HealthMetric,
    RecoveryStatus,
    SleepInterval,
    SleepStage,
    utc_now,
)
from src.recovery.config_loader import (
    RecoveryConfig,
    RecoveryScoreConfig,
    RecoveryWeights,
    get_recovery_config,
)
from src.recovery.hrv import estimate_hrv
from src.recovery.scoring_utils import (
    clamp,
    finite_values,
    mean,
    percent,
    round_half_up,
    to_score,
)

logger = logging.getLogger("restwell.recovery.scorer")


@dataclass
class SleepComponent:
    available: bool
    deep_percent: float
    score: float


@dataclass
class HeartRateComponent:
    available: bool
    resting_rate: float
    score: float


# ---------------------------------------------------------------------------
# Component scorers
# ---------------------------------------------------------------------------


def score_sleep(sleep: Sequence[SleepInterval], cfg: RecoveryScoreConfig) -> SleepComponent:
    """Score the deep-sleep share of the most recent intervals."""
    if not sleep:
        return SleepComponent(available=False, deep_percent=0.0, score=0.0)

    recent = sorted(sleep, key=lambda s: s.end_time, reverse=True)[: cfg.recent_sleep_intervals]
    total = sum(s.duration_minutes for s in recent)
    deep = sum(s.duration_minutes for s in recent if s.quality is SleepStage.DEEP)
    deep_pct = percent(deep, total)
    return SleepComponent(
        available=True,
        deep_percent=deep_pct,
        score=clamp(0, 100, deep_pct * cfg.sleep_deep_multiplier),
    )


def heart_rate_band_score(resting_rate: float, cfg: RecoveryScoreConfig) -> float:
    for band in cfg.heart_rate_bands:
        if resting_rate < band.below:
            return float(band.score)
    return cfg.heart_rate_floor_score


def score_heart_rate(
    heart_rate: Sequence[HealthMetric], cfg: RecoveryScoreConfig
) -> HeartRateComponent:
    """Estimate resting rate as the mean of the latest samples and band it."""
    if not heart_rate:
        return HeartRateComponent(
            available=False,
            resting_rate=cfg.default_resting_heart_rate,
            score=cfg.default_heart_rate_score,
        )

    recent = sorted(heart_rate, key=lambda m: m.timestamp, reverse=True)[
        : cfg.recent_heart_rate_samples
    ]
    values = finite_values(m.value for m in recent)
    if not values:
        logger.warning("No finite heart-rate samples among the latest %d", len(recent))
        return HeartRateComponent(
            available=True,
            resting_rate=cfg.default_resting_heart_rate,
            score=cfg.default_heart_rate_score,
        )
    resting = mean(values)
    return HeartRateComponent(
        available=True,
        resting_rate=resting,
        score=clamp(0, 100, heart_rate_band_score(resting, cfg)),
    )


def adaptive_weights(base: RecoveryWeights, sleep_available: bool) -> RecoveryWeights:
    """Return the weights to use given which sources are present.

    Missing sleep hands its weight to heart rate and activity in equal parts.
    """
    if sleep_available:
        return RecoveryWeights(
            sleep=base.sleep, heart_rate=base.heart_rate, activity=base.activity
        )
    share = base.sleep / 2
    return RecoveryWeights(
        sleep=0.0,
        heart_rate=base.heart_rate + share,
        activity=base.activity + share,
    )


def recommendation_for(score: int, activity_source: ActivitySource, cfg: RecoveryScoreConfig) -> str:
    text = cfg.recommendation_default
    for band in cfg.recommendations:
        if score < band.below:
            text = band.text
            break

    note = cfg.activity_source_notes.get(activity_source.value)
    if note and activity_source in (ActivitySource.ACTIVE_CALORIES, ActivitySource.STEPS):
        text = f"{text} ({note})"
    return text


# ---------------------------------------------------------------------------
# Main scorer
# ---------------------------------------------------------------------------


class RecoveryScorer:
    """Compute a RecoveryStatus from a canonical health record.

    Usage::

        scorer = RecoveryScorer()
        status = scorer.score(record)
        if status is None:
            ...  # connect a device that reports sleep or heart rate
    """

    def __init__(
        self,
        config: RecoveryConfig | None = None,
        activity_estimator: ActivityLoadEstimator | None = None,
    ) -> None:
        self._config = config or get_recovery_config()
        self._activity = activity_estimator or ActivityLoadEstimator(self._config)

    @property
    def _rs_config(self) -> RecoveryScoreConfig:
        return self._config.recovery

    def weights_for(self, record: CanonicalHealthRecord) -> RecoveryWeights:
        return adaptive_weights(self._rs_config.weights, sleep_available=bool(record.sleep))

    def score(
        self,
        record: CanonicalHealthRecord,
        reference_time: datetime | None = None,
    ) -> RecoveryStatus | None:
        """Score the record, or return None when sleep and heart rate are both absent.

        Args:
            record:         Canonical health record to score.
            reference_time: "Now" for the activity window. Defaults to current UTC time.
        """
        cfg = self._rs_config
        if not record.sleep and not record.heart_rate:
            logger.debug("No sleep or heart-rate data for %s, no recovery score", record.user_id)
            return None

        now = reference_time or utc_now()
        sleep = score_sleep(record.sleep, cfg)
        heart = score_heart_rate(record.heart_rate, cfg)
        activity: ActivityLoad = self._activity.assess(record, now)
        weights = adaptive_weights(cfg.weights, sleep.available)

        raw = (
            sleep.score * weights.sleep
            + heart.score * weights.heart_rate
            + activity.score * weights.activity
        )
        overall = to_score(raw)

        hrv = None
        if len(record.heart_rate) >= cfg.hrv_factor_min_samples:
            hrv = estimate_hrv(record.heart_rate, self._config.hrv)

        logger.debug(
            "Recovery score for %s: %d (sleep=%.1f×%.2f hr=%.1f×%.2f activity=%.1f×%.2f via %s)",
            record.user_id, overall,
            sleep.score, weights.sleep,
            heart.score, weights.heart_rate,
            activity.score, weights.activity,
            activity.source.value,
        )

        return RecoveryStatus(
            score=overall,
            recommendation=recommendation_for(overall, activity.source, cfg),
            contributing_factors=ContributingFactors(
                sleep_quality=round_half_up(sleep.deep_percent),
                resting_heart_rate=round_half_up(heart.resting_rate),
                recent_activity_level=round_half_up(activity.score),
                heart_rate_variability=hrv,
            ),
            activity_source=activity.source,
        )
