"""Google Fit REST API provider.

API base: https://www.googleapis.com/fitness/v1/users/me

Endpoints used:
    POST /dataset:aggregate           — Step, heart-rate and calorie buckets,
                                        plus per-session workout totals
    GET  /dataSources/{id}/datasets/… — Staged sleep segments
    GET  /sessions                    — Workout sessions

Environment variables:
    RESTWELL_GOOGLE_FIT_ACCESS_TOKEN — OAuth2 bearer token (obtained on the device)
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

import httpx

from src.config import get_settings
from src.recovery.base import (
    DeviceDataProvider,
    HealthMetric,
    MetricType,
    SleepInterval,
    WorkoutSession,
)
from src.recovery.exceptions import ProviderError
from src.recovery.normalizer import (
    GOOGLE_FIT_SLEEP_STAGES,
    normalize_metrics,
    normalize_sleep_samples,
    normalize_workouts,
    safe_number,
)

logger = logging.getLogger("restwell.recovery.google_fit")

SOURCE_LABEL = "GoogleFit"

_FIT_API_BASE = "https://www.googleapis.com/fitness/v1/users/me"
_SLEEP_DATA_SOURCE = "derived:com.google.sleep.segment:com.google.android.gms:merged"

_HOUR_MS = 3_600_000
_DAY_MS = 86_400_000

# MetricType → (data type name, bucket size)
_AGGREGATES: dict[MetricType, tuple[str, int]] = {
    MetricType.STEPS: ("com.google.step_count.delta", _DAY_MS),
    MetricType.HEART_RATE: ("com.google.heart_rate.bpm", _HOUR_MS),
    MetricType.ACTIVE_CALORIES: ("com.google.calories.expended", _DAY_MS),
}

# Google Fit activity type codes with readable names
_ACTIVITY_NAMES: dict[int, str] = {
    1: "Biking",
    3: "Still",
    7: "Walking",
    8: "Running",
}
_SLEEP_ACTIVITY_TYPE = 72

# Per-session aggregate data type → workout field
_WORKOUT_TOTALS: dict[str, str] = {
    "com.google.calories.expended": "calories",
    "com.google.distance.delta": "distance",
}


def _millis(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def _nanos_to_millis(value: Any) -> int | None:
    try:
        return int(value) // 1_000_000
    except (TypeError, ValueError):
        return None


def _point_value(point: dict) -> float:
    values = point.get("value") or [{}]
    first = values[0]
    if "fpVal" in first:
        return safe_number(first["fpVal"])
    return safe_number(first.get("intVal"))


def activity_name(activity_type: Any, fallback: str | None = None) -> str:
    """Return a readable name for a Google Fit activity type code."""
    if isinstance(activity_type, int) and not isinstance(activity_type, bool):
        if activity_type in _ACTIVITY_NAMES:
            return _ACTIVITY_NAMES[activity_type]
        return fallback or f"Activity {activity_type}"
    return fallback or "Unknown"


class GoogleFitProvider(DeviceDataProvider):
    """Google Fit provider over the Fitness REST API.

    Usage::

        provider = GoogleFitProvider(access_token="ya29...")
        hr = await provider.query_metric(MetricType.HEART_RATE, start, end)
    """

    PROVIDER_TYPE = "googleFit"
    DISPLAY_NAME = "Google Fit"

    def __init__(
        self,
        access_token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Google Fit provider.

        Args:
            access_token: OAuth2 bearer token (RESTWELL_GOOGLE_FIT_ACCESS_TOKEN).
            http_client:  Optional pre-configured httpx client (for testing).
        """
        self._access_token = access_token or get_settings().google_fit_access_token
        self._http_client = http_client

    # ------------------------------------------------------------------
    # DeviceDataProvider interface
    # ------------------------------------------------------------------

    async def query_metric(
        self, metric_type: MetricType, start: datetime, end: datetime
    ) -> list[HealthMetric]:
        data_type, bucket_ms = _AGGREGATES[metric_type]
        body = {
            "aggregateBy": [{"dataTypeName": data_type}],
            "bucketByTime": {"durationMillis": bucket_ms},
            "startTimeMillis": _millis(start),
            "endTimeMillis": _millis(end),
        }
        data = await self._request("POST", f"{_FIT_API_BASE}/dataset:aggregate", json=body)

        raw = []
        for bucket in data.get("bucket", []):
            for dataset in bucket.get("dataset", []):
                for point in dataset.get("point", []):
                    raw.append(
                        {
                            "value": _point_value(point),
                            "endDate": _nanos_to_millis(point.get("endTimeNanos")),
                        }
                    )

        metrics = normalize_metrics(raw, SOURCE_LABEL, time_keys=("endDate",))
        logger.debug("Google Fit: %d %s points", len(metrics), metric_type.value)
        return metrics

    async def query_sleep(self, start: datetime, end: datetime) -> list[SleepInterval]:
        dataset_id = f"{_millis(start) * 1_000_000}-{_millis(end) * 1_000_000}"
        data = await self._request(
            "GET", f"{_FIT_API_BASE}/dataSources/{_SLEEP_DATA_SOURCE}/datasets/{dataset_id}"
        )
        raw = [
            {
                "sleepStage": (point.get("value") or [{}])[0].get("intVal"),
                "startDate": _nanos_to_millis(point.get("startTimeNanos")),
                "endDate": _nanos_to_millis(point.get("endTimeNanos")),
            }
            for point in data.get("point", [])
        ]
        return normalize_sleep_samples(raw, GOOGLE_FIT_SLEEP_STAGES, stage_key="sleepStage")

    async def query_workouts(self, start: datetime, end: datetime) -> list[WorkoutSession]:
        data = await self._request(
            "GET",
            f"{_FIT_API_BASE}/sessions",
            params={"startTime": start.isoformat(), "endTime": end.isoformat()},
        )
        sessions = [
            session
            for session in data.get("session", [])
            if session.get("activityType") != _SLEEP_ACTIVITY_TYPE
        ]
        if not sessions:
            return []

        totals = await self._session_totals(start, end)
        raw = [
            {
                "activityName": activity_name(session.get("activityType"), session.get("name")),
                "start": session.get("startTimeMillis"),
                "end": session.get("endTimeMillis"),
                **totals.get(session.get("id"), {}),
            }
            for session in sessions
        ]
        return normalize_workouts(raw)

    async def _session_totals(self, start: datetime, end: datetime) -> dict[str, dict[str, float]]:
        """Return session id → {'calories': kcal, 'distance': metres} for the window.

        One aggregate call bucketed by session; a session with no points for a
        data type simply has no entry for that field.
        """
        body = {
            "aggregateBy": [{"dataTypeName": data_type} for data_type in _WORKOUT_TOTALS],
            "bucketBySession": {"minDurationMillis": 0},
            "startTimeMillis": _millis(start),
            "endTimeMillis": _millis(end),
        }
        data = await self._request("POST", f"{_FIT_API_BASE}/dataset:aggregate", json=body)

        totals: dict[str, dict[str, float]] = {}
        for bucket in data.get("bucket", []):
            session_id = (bucket.get("session") or {}).get("id")
            if not session_id:
                continue
            fields = totals.setdefault(session_id, {})
            for dataset in bucket.get("dataset", []):
                for point in dataset.get("point", []):
                    field = _WORKOUT_TOTALS.get(point.get("dataTypeName"))
                    if field:
                        fields[field] = fields.get(field, 0.0) + _point_value(point)
        return totals

    # ------------------------------------------------------------------
    # HTTP helper
    # ------------------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs: Any) -> dict:
        """Make an authenticated request to the Fitness API.

        Raises:
            ProviderError: On transport failures and non-2xx responses.
        """
        headers = {"Authorization": f"Bearer {self._access_token}"}
        try:
            if self._http_client:
                response = await self._http_client.request(method, url, headers=headers, **kwargs)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ProviderError(f"Google Fit request to {url} failed: {exc}") from exc
        return response.json()
