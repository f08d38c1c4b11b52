"""Numeric helpers shared by every scorer."""

from __future__ import annotations

import math
import sys
from typing import Iterable, Sequence


def clamp(lo: float, hi: float, value: float) -> float:
    """Clamp ``value`` into [lo, hi]."""
    return max(lo, min(hi, value))


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 rounding away from zero for positives.

    NaN rounds to 0 and infinities saturate at the largest finite float.
    """
    if math.isnan(value):
        return 0
    if math.isinf(value):
        value = math.copysign(sys.float_info.max, value)
    return int(math.floor(value + 0.5))


def to_score(value: float) -> int:
    """Round and clamp a raw value into an integer 0–100 score."""
    if math.isnan(value):
        return 0
    return int(clamp(0, 100, round_half_up(clamp(0, 100, value))))


def finite_values(values: Iterable[float]) -> list[float]:
    """Drop NaN and infinite values."""
    return [v for v in values if math.isfinite(v)]


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean that cannot overflow for finite inputs of one sign."""
    n = len(values)
    return sum(v / n for v in values)


def percent(part: float, whole: float) -> float:
    """Return part/whole as a percentage, 0.0 when ``whole`` is zero."""
    if whole <= 0:
        return 0.0
    return part / whole * 100.0
