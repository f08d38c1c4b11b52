"""Load, validate, and hot-reload the recovery scoring configuration.

The config lives in ``recovery_config.yaml`` alongside this module.  At
startup it is loaded once and cached.  Call ``reload_recovery_config()`` to
re-read from disk after an update; no restart required.

Usage::

    from src.recovery.config_loader import get_recovery_config

    config = get_recovery_config()
    config.recovery.weights.sleep          # 0.4
    config.activity_load.step_divisor      # 150
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("restwell.recovery.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "recovery_config.yaml"


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass
class RecoveryWeights:
    """Composite weights for the three recovery sub-scores."""

    sleep: float
    heart_rate: float
    activity: float

    @property
    def total(self) -> float:
        return math.fsum((self.sleep, self.heart_rate, self.activity))


@dataclass
class ScoreBand:
    """Threshold band: applies when the input is strictly below ``below``."""

    below: float
    score: int = 0
    text: str = ""


@dataclass
class RecoveryScoreConfig:
    """Settings for the composite recovery score."""

    weights: RecoveryWeights
    recent_sleep_intervals: int
    recent_heart_rate_samples: int
    sleep_deep_multiplier: float
    default_resting_heart_rate: float
    default_heart_rate_score: float
    heart_rate_bands: list[ScoreBand]
    heart_rate_floor_score: float
    hrv_factor_min_samples: int
    recommendations: list[ScoreBand]
    recommendation_default: str
    activity_source_notes: dict[str, str] = field(default_factory=dict)


@dataclass
class SleepSummaryConfig:
    """Coefficients for the sleep-card summary score."""

    window_hours: float = 24
    base_score: float = 50
    deep_multiplier: float = 1.25
    deep_cap: float = 25
    rem_multiplier: float = 1.0
    rem_cap: float = 25
    awakening_penalty: float = 5


@dataclass
class HRVConfig:
    min_samples: int = 5
    scale: float = 2.0
    cap: float = 100


@dataclass
class ActivityLoadConfig:
    """Divisors for each tier of the activity fallback chain."""

    window_hours: float = 24
    workout_calorie_divisor: float = 20
    active_calorie_divisor: float = 30
    step_divisor: float = 150
    no_data_score: float = 100


@dataclass
class RecoveryConfig:
    """Complete, validated scoring configuration.

    This is the single in-memory representation of recovery_config.yaml.
    Every scorer reads from this object.
    """

    version: str
    recovery: RecoveryScoreConfig
    sleep_summary: SleepSummaryConfig
    hrv: HRVConfig
    activity_load: ActivityLoadConfig
    _raw: dict = field(default_factory=dict, repr=False)


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when recovery_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Recovery config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _build_bands(
    raw_bands: Any, section: str, value_key: str, errors: list[str]
) -> list[ScoreBand]:
    bands: list[ScoreBand] = []
    if not isinstance(raw_bands, list) or not raw_bands:
        errors.append(f"{section} must be a non-empty list")
        return bands
    for i, item in enumerate(raw_bands):
        if not isinstance(item, dict) or "below" not in item or value_key not in item:
            errors.append(f"{section}[{i}] must have 'below' and '{value_key}'")
            continue
        try:
            below = float(item["below"])
        except (TypeError, ValueError):
            errors.append(f"{section}[{i}].below must be a number, got {item['below']!r}")
            continue
        if value_key == "score":
            bands.append(ScoreBand(below=below, score=int(item["score"])))
        else:
            bands.append(ScoreBand(below=below, text=str(item["text"])))
    thresholds = [b.below for b in bands]
    if thresholds != sorted(thresholds):
        errors.append(f"{section} thresholds must be ascending, got {thresholds}")
    return bands


def _validate_and_build(raw: dict) -> RecoveryConfig:
    """Validate the raw YAML dict and construct a RecoveryConfig.

    Collects every problem before raising so one edit cycle fixes them all.

    Raises:
        ConfigValidationError: If required fields are missing or invalid.
    """
    errors: list[str] = []

    version = str(raw.get("version", "1.0"))

    # ── Recovery score ──
    rs_raw = raw.get("recovery_score") or {}
    w_raw = rs_raw.get("weights") or {}
    weight_values: dict[str, float] = {}
    for key in ("sleep", "heart_rate", "activity"):
        try:
            w = float(w_raw[key])
        except KeyError:
            errors.append(f"Missing required key '{key}' in section 'recovery_score.weights'")
            continue
        except (TypeError, ValueError):
            errors.append(f"recovery_score.weights.{key} must be a number, got {w_raw[key]!r}")
            continue
        if not (0.0 <= w <= 1.0):
            errors.append(f"recovery_score.weights.{key} = {w} is out of range [0.0, 1.0]")
        weight_values[key] = w

    weights = RecoveryWeights(
        sleep=weight_values.get("sleep", 0.0),
        heart_rate=weight_values.get("heart_rate", 0.0),
        activity=weight_values.get("activity", 0.0),
    )
    if len(weight_values) == 3 and not math.isclose(weights.total, 1.0, abs_tol=1e-9):
        errors.append(f"recovery_score.weights sum to {weights.total:.3f}, expected 1.0")

    hr_bands = _build_bands(
        rs_raw.get("heart_rate_bands"), "recovery_score.heart_rate_bands", "score", errors
    )
    recommendations = _build_bands(
        rs_raw.get("recommendations"), "recovery_score.recommendations", "text", errors
    )

    recovery = RecoveryScoreConfig(
        weights=weights,
        recent_sleep_intervals=int(rs_raw.get("recent_sleep_intervals", 3)),
        recent_heart_rate_samples=int(rs_raw.get("recent_heart_rate_samples", 10)),
        sleep_deep_multiplier=float(rs_raw.get("sleep_deep_multiplier", 2.0)),
        default_resting_heart_rate=float(rs_raw.get("default_resting_heart_rate", 70)),
        default_heart_rate_score=float(rs_raw.get("default_heart_rate_score", 50)),
        heart_rate_bands=hr_bands,
        heart_rate_floor_score=float(rs_raw.get("heart_rate_floor_score", 30)),
        hrv_factor_min_samples=int(rs_raw.get("hrv_factor_min_samples", 3)),
        recommendations=recommendations,
        recommendation_default=str(
            rs_raw.get(
                "recommendation_default",
                "You are well recovered for high-intensity training.",
            )
        ),
        activity_source_notes=dict(rs_raw.get("activity_source_notes") or {}),
    )

    # ── Sleep summary ──
    ss_raw = raw.get("sleep_summary") or {}
    sleep_summary = SleepSummaryConfig(
        window_hours=float(ss_raw.get("window_hours", 24)),
        base_score=float(ss_raw.get("base_score", 50)),
        deep_multiplier=float(ss_raw.get("deep_multiplier", 1.25)),
        deep_cap=float(ss_raw.get("deep_cap", 25)),
        rem_multiplier=float(ss_raw.get("rem_multiplier", 1.0)),
        rem_cap=float(ss_raw.get("rem_cap", 25)),
        awakening_penalty=float(ss_raw.get("awakening_penalty", 5)),
    )

    # ── HRV ──
    hrv_raw = raw.get("hrv") or {}
    hrv = HRVConfig(
        min_samples=int(hrv_raw.get("min_samples", 5)),
        scale=float(hrv_raw.get("scale", 2.0)),
        cap=float(hrv_raw.get("cap", 100)),
    )
    if hrv.min_samples < 2:
        errors.append(f"hrv.min_samples must be at least 2, got {hrv.min_samples}")

    # ── Activity load ──
    al_raw = raw.get("activity_load") or {}
    activity_load = ActivityLoadConfig(
        window_hours=float(al_raw.get("window_hours", 24)),
        workout_calorie_divisor=float(al_raw.get("workout_calorie_divisor", 20)),
        active_calorie_divisor=float(al_raw.get("active_calorie_divisor", 30)),
        step_divisor=float(al_raw.get("step_divisor", 150)),
        no_data_score=float(al_raw.get("no_data_score", 100)),
    )
    for name in ("workout_calorie_divisor", "active_calorie_divisor", "step_divisor"):
        if getattr(activity_load, name) <= 0:
            errors.append(f"activity_load.{name} must be positive")

    if errors:
        raise ConfigValidationError(
            f"recovery_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return RecoveryConfig(
        version=version,
        recovery=recovery,
        sleep_summary=sleep_summary,
        hrv=hrv,
        activity_load=activity_load,
        _raw=raw,
    )


def load_recovery_config(path: Path | None = None) -> RecoveryConfig:
    """Load and validate the recovery config from disk.

    Args:
        path: Override path to YAML. Uses the bundled recovery_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded recovery config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: RecoveryConfig | None = None
_config_lock = threading.Lock()


def get_recovery_config() -> RecoveryConfig:
    """Return the global RecoveryConfig singleton, loading it on first call."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_recovery_config()
    return _config


def reload_recovery_config(path: Path | None = None) -> RecoveryConfig:
    """Reload the config from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_recovery_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded recovery config: %s → %s", old_version, new_config.version)
    return new_config
