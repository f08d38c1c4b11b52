"""Sample normalizer: provider-native sample dicts → canonical records.

Pure functions, no I/O.  Each provider hands over samples in its own shape
(HealthKit uses ISO strings and string stage names, Google Fit uses epoch
milliseconds and integer stage codes); this module turns them into
HealthMetric / SleepInterval / WorkoutSession.

Malformed input is never fatal:
    - unknown sleep stage codes degrade to ``light``
    - null / missing numeric fields become ``0``
    - samples with unparseable timestamps are skipped with a warning
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Iterable, Mapping

from src.recovery.base import (
    HealthMetric,
    SleepInterval,
    SleepStage,
    WorkoutSession,
)

logger = logging.getLogger("restwell.recovery.normalizer")

DEFAULT_SLEEP_STAGE = SleepStage.LIGHT

# HealthKit sleep values (react-native-health short names and HK identifiers)
HEALTHKIT_SLEEP_STAGES: dict[str, SleepStage] = {
    "ASLEEP": SleepStage.LIGHT,
    "CORE": SleepStage.LIGHT,
    "DEEP": SleepStage.DEEP,
    "REM": SleepStage.REM,
    "AWAKE": SleepStage.AWAKE,
    "INBED": SleepStage.AWAKE,
    "HKCategoryValueSleepAnalysisAsleepUnspecified": SleepStage.LIGHT,
    "HKCategoryValueSleepAnalysisAsleepCore": SleepStage.LIGHT,
    "HKCategoryValueSleepAnalysisAsleepDeep": SleepStage.DEEP,
    "HKCategoryValueSleepAnalysisAsleepREM": SleepStage.REM,
    "HKCategoryValueSleepAnalysisAwake": SleepStage.AWAKE,
    "HKCategoryValueSleepAnalysisInBed": SleepStage.AWAKE,
}

# Google Fit sleep segment codes
GOOGLE_FIT_SLEEP_STAGES: dict[int, SleepStage] = {
    1: SleepStage.AWAKE,
    2: SleepStage.LIGHT,
    3: SleepStage.DEEP,
    4: SleepStage.DEEP,
    5: SleepStage.REM,
}


# ---------------------------------------------------------------------------
# Field coercion
# ---------------------------------------------------------------------------


def safe_number(value: object, default: float = 0.0) -> float:
    """Coerce a provider value to float, returning ``default`` on None/garbage.

    NaN and infinite values count as garbage.
    """
    number = optional_number(value)
    return default if number is None else number


def optional_number(value: object) -> float | None:
    """Coerce a provider value to float, keeping absence as None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 string or epoch-milliseconds value to a UTC datetime.

    Naive ISO strings are assumed to be UTC.  Returns None when the value is
    missing or unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return parse_timestamp(int(text))
        try:
            dt = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)
    return None


def map_sleep_stage(code: object, stage_map: Mapping[Any, SleepStage]) -> SleepStage:
    """Look up a provider stage code, defaulting to ``light`` when unknown."""
    candidates: list[object] = [code]
    if isinstance(code, str):
        text = code.strip()
        candidates.append(text.upper())
        if text.isdigit():
            candidates.append(int(text))

    for candidate in candidates:
        try:
            stage = stage_map.get(candidate)
        except TypeError:  # unhashable
            stage = None
        if stage is not None:
            return stage

    logger.debug("Unrecognized sleep stage %r, defaulting to %s", code, DEFAULT_SLEEP_STAGE.value)
    return DEFAULT_SLEEP_STAGE


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


def normalize_metric(
    raw: Mapping[str, Any],
    source: str,
    value_key: str = "value",
    time_keys: tuple[str, ...] = ("endDate", "date"),
) -> HealthMetric | None:
    """Convert one scalar sample to a HealthMetric.

    The first present key in ``time_keys`` supplies the timestamp.
    Returns None when no timestamp can be parsed.
    """
    timestamp = None
    for key in time_keys:
        timestamp = parse_timestamp(raw.get(key))
        if timestamp is not None:
            break
    if timestamp is None:
        logger.warning("Skipping %s metric sample without a usable timestamp: %r", source, raw)
        return None
    return HealthMetric(value=safe_number(raw.get(value_key)), timestamp=timestamp, source=source)


def normalize_metrics(
    samples: Iterable[Mapping[str, Any]],
    source: str,
    value_key: str = "value",
    time_keys: tuple[str, ...] = ("endDate", "date"),
) -> list[HealthMetric]:
    metrics = (normalize_metric(s, source, value_key, time_keys) for s in samples or [])
    return [m for m in metrics if m is not None]


# ---------------------------------------------------------------------------
# Sleep
# ---------------------------------------------------------------------------


def normalize_sleep_sample(
    raw: Mapping[str, Any],
    stage_map: Mapping[Any, SleepStage],
    stage_key: str = "value",
    start_key: str = "startDate",
    end_key: str = "endDate",
) -> SleepInterval | None:
    """Convert one staged sleep sample to a SleepInterval.

    Returns None when either bound is missing or the interval is inverted.
    """
    start = parse_timestamp(raw.get(start_key))
    end = parse_timestamp(raw.get(end_key))
    if start is None or end is None or end < start:
        logger.warning("Skipping sleep sample with invalid bounds: %r", raw)
        return None
    return SleepInterval.from_bounds(start, end, map_sleep_stage(raw.get(stage_key), stage_map))


def normalize_sleep_samples(
    samples: Iterable[Mapping[str, Any]],
    stage_map: Mapping[Any, SleepStage],
    stage_key: str = "value",
    start_key: str = "startDate",
    end_key: str = "endDate",
) -> list[SleepInterval]:
    intervals = (
        normalize_sleep_sample(s, stage_map, stage_key, start_key, end_key)
        for s in samples or []
    )
    return [i for i in intervals if i is not None]


# ---------------------------------------------------------------------------
# Workouts
# ---------------------------------------------------------------------------


def normalize_workout(
    raw: Mapping[str, Any],
    type_key: str = "activityName",
    start_key: str = "start",
    end_key: str = "end",
) -> WorkoutSession | None:
    """Convert one provider workout to a WorkoutSession.

    Heart-rate figures are read from the top level or from a ``metadata``
    mapping (HealthKit shape).  Optional fields stay None when absent.
    """
    start = parse_timestamp(raw.get(start_key))
    end = parse_timestamp(raw.get(end_key))
    if start is None or end is None or end <= start:
        logger.warning("Skipping workout with invalid bounds: %r", raw)
        return None

    metadata = raw.get("metadata") or {}
    if not isinstance(metadata, Mapping):
        metadata = {}

    return WorkoutSession(
        type=str(raw.get(type_key) or "Unknown"),
        start_time=start,
        end_time=end,
        calories_burned=safe_number(raw.get("calories")),
        heart_rate_avg=optional_number(
            raw.get("heartRateAvg", metadata.get("average_heart_rate"))
        ),
        heart_rate_max=optional_number(raw.get("heartRateMax", metadata.get("max_heart_rate"))),
        distance=optional_number(raw.get("distance")),
    )


def normalize_workouts(
    samples: Iterable[Mapping[str, Any]],
    type_key: str = "activityName",
    start_key: str = "start",
    end_key: str = "end",
) -> list[WorkoutSession]:
    workouts = (normalize_workout(s, type_key, start_key, end_key) for s in samples or [])
    return [w for w in workouts if w is not None]
