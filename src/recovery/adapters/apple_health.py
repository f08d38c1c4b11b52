"""Apple HealthKit provider.

Apple offers no server-side API: HealthKit samples are read on the phone
and uploaded.  The provider therefore reads through an injected
``HealthKitSampleSource`` that hands back samples in the shape the
HealthKit bridge produces:

    steps / heart rate / calories  {"value": 72, "startDate": "...", "endDate": "..."}
    sleep                          {"value": "DEEP", "startDate": "...", "endDate": "..."}
    workouts                       {"activityName": "Running", "start": "...", "end": "...",
                                    "calories": 420, "distance": 5000,
                                    "metadata": {"average_heart_rate": 150, ...}}

There is no OAuth flow; the upload is authorized by the user's session.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Mapping

from src.recovery.base import (
    DeviceDataProvider,
    HealthMetric,
    MetricType,
    SleepInterval,
    WorkoutSession,
)
from src.recovery.normalizer import (
    HEALTHKIT_SLEEP_STAGES,
    normalize_metrics,
    normalize_sleep_samples,
    normalize_workouts,
    parse_timestamp,
)

logger = logging.getLogger("restwell.recovery.apple_health")

SOURCE_LABEL = "AppleHealth"

# HealthKit sample type identifiers
HK_STEP_COUNT = "HKQuantityTypeIdentifierStepCount"
HK_HEART_RATE = "HKQuantityTypeIdentifierHeartRate"
HK_ACTIVE_ENERGY = "HKQuantityTypeIdentifierActiveEnergyBurned"
HK_SLEEP_ANALYSIS = "HKCategoryTypeIdentifierSleepAnalysis"
HK_WORKOUT = "HKWorkoutTypeIdentifier"

_METRIC_SAMPLE_TYPES: dict[MetricType, str] = {
    MetricType.STEPS: HK_STEP_COUNT,
    MetricType.HEART_RATE: HK_HEART_RATE,
    MetricType.ACTIVE_CALORIES: HK_ACTIVE_ENERGY,
}


class HealthKitSampleSource(ABC):
    """Where HealthKit-shaped samples come from (device bridge, upload cache)."""

    @abstractmethod
    async def fetch_samples(
        self, sample_type: str, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        """Return raw samples of ``sample_type`` inside [start, end]."""


class HealthKitExport(HealthKitSampleSource):
    """Sample source backed by an uploaded HealthKit export.

    ``samples`` maps a HealthKit type identifier to its raw samples.  The
    window filter uses each sample's end (``endDate`` or ``end``).
    """

    def __init__(self, samples: Mapping[str, list[dict[str, Any]]] | None = None) -> None:
        self._samples: dict[str, list[dict[str, Any]]] = {
            k: list(v) for k, v in (samples or {}).items()
        }

    def add_samples(self, sample_type: str, samples: list[dict[str, Any]]) -> None:
        self._samples.setdefault(sample_type, []).extend(samples)

    async def fetch_samples(
        self, sample_type: str, start: datetime, end: datetime
    ) -> list[dict[str, Any]]:
        selected = []
        for sample in self._samples.get(sample_type, []):
            ended = parse_timestamp(sample.get("endDate", sample.get("end")))
            # unparseable samples pass through so the normalizer can report them
            if ended is None or start <= ended <= end:
                selected.append(sample)
        return selected


class AppleHealthProvider(DeviceDataProvider):
    """Apple HealthKit provider (upload path).

    Usage::

        export = HealthKitExport({HK_STEP_COUNT: [...], HK_SLEEP_ANALYSIS: [...]})
        provider = AppleHealthProvider(export)
        steps = await provider.query_metric(MetricType.STEPS, start, end)
    """

    PROVIDER_TYPE = "appleHealth"
    DISPLAY_NAME = "Apple Health"

    def __init__(self, source: HealthKitSampleSource) -> None:
        self._source = source

    async def query_metric(
        self, metric_type: MetricType, start: datetime, end: datetime
    ) -> list[HealthMetric]:
        raw = await self._source.fetch_samples(_METRIC_SAMPLE_TYPES[metric_type], start, end)
        metrics = normalize_metrics(raw, SOURCE_LABEL, time_keys=("endDate", "date"))
        logger.debug("Apple Health: %d %s samples", len(metrics), metric_type.value)
        return metrics

    async def query_sleep(self, start: datetime, end: datetime) -> list[SleepInterval]:
        raw = await self._source.fetch_samples(HK_SLEEP_ANALYSIS, start, end)
        return normalize_sleep_samples(raw, HEALTHKIT_SLEEP_STAGES)

    async def query_workouts(self, start: datetime, end: datetime) -> list[WorkoutSession]:
        raw = await self._source.fetch_samples(HK_WORKOUT, start, end)
        return normalize_workouts(raw)
