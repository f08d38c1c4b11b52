"""Heart-rate-variability proxy from consecutive heart-rate samples.

The input is scalar bpm samples, not R-R intervals, so this is an RMS of
successive bpm differences mapped onto 0–100, not clinical RMSSD.
"""

from __future__ import annotations

import math
from typing import Sequence

from src.recovery.base import HealthMetric
from src.recovery.config_loader import HRVConfig, get_recovery_config


def estimate_hrv(
    heart_rate: Sequence[HealthMetric], config: HRVConfig | None = None
) -> float | None:
    """Return the HRV proxy (0–100), or None below the minimum sample count.

    Non-finite samples are ignored and do not count towards the minimum.

    Args:
        heart_rate: Heart-rate samples in any order.
        config:     HRV settings; defaults to the loaded recovery config.
    """
    cfg = config or get_recovery_config().hrv
    samples = [m for m in heart_rate if math.isfinite(m.value)]
    if len(samples) < cfg.min_samples:
        return None

    ordered = sorted(samples, key=lambda m: m.timestamp)
    diffs = [abs(b.value - a.value) for a, b in zip(ordered, ordered[1:])]
    rms = math.sqrt(sum(d * d for d in diffs) / len(diffs))
    return min(cfg.cap, rms * cfg.scale)
