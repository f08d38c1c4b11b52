"""Sleep summarizer: raw staged intervals → rolling-window SleepSummary.

The summary feeds the sleep card.  Its score is intentionally a different
formula from the sleep sub-score used by the recovery scorer.

Score formula (from recovery_config.yaml):
    50 + min(25, deep% * 1.25) + min(25, rem% * 1.0) - awakenings * 5
where the percentages are relative to the most recent interval's duration
and stage minutes come from intervals ending in the trailing 24 hours.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Sequence

from src.recovery.base import SleepInterval, SleepStage, SleepSummary, ensure_utc
from src.recovery.config_loader import RecoveryConfig, SleepSummaryConfig, get_recovery_config
from src.recovery.scoring_utils import percent, to_score

logger = logging.getLogger("restwell.recovery.sleep_summary")


class SleepSummarizer:
    """Reduce staged sleep intervals to a SleepSummary.

    Usage::

        summary = SleepSummarizer().summarize(record.sleep, now)
        if summary is not None:
            print(summary.sleep_score)
    """

    def __init__(self, config: RecoveryConfig | None = None) -> None:
        self._config = config or get_recovery_config()

    @property
    def _ss_config(self) -> SleepSummaryConfig:
        return self._config.sleep_summary

    def summarize(
        self, intervals: Sequence[SleepInterval], reference_time: datetime
    ) -> SleepSummary | None:
        """Summarize sleep relative to ``reference_time``.

        Args:
            intervals:      All known sleep intervals, any order.
            reference_time: "Now" for the 24-hour window.

        Returns:
            SleepSummary, or None when there are no intervals at all.
        """
        if not intervals:
            return None

        cfg = self._ss_config
        ordered = sorted(intervals, key=lambda s: s.end_time, reverse=True)
        anchor = ordered[0]
        total = anchor.duration_minutes

        window_start = ensure_utc(reference_time) - timedelta(hours=cfg.window_hours)
        recent = [s for s in ordered if s.end_time > window_start]

        def minutes(stage: SleepStage) -> int:
            return sum(s.duration_minutes for s in recent if s.quality is stage)

        deep = minutes(SleepStage.DEEP)
        rem = minutes(SleepStage.REM)
        light = minutes(SleepStage.LIGHT)
        awakenings = sum(1 for s in recent if s.quality is SleepStage.AWAKE)

        deep_pct = percent(deep, total)
        rem_pct = percent(rem, total)
        raw_score = (
            cfg.base_score
            + min(cfg.deep_cap, deep_pct * cfg.deep_multiplier)
            + min(cfg.rem_cap, rem_pct * cfg.rem_multiplier)
            - awakenings * cfg.awakening_penalty
        )
        score = to_score(raw_score)

        logger.debug(
            "Sleep summary: total=%dmin deep=%d rem=%d light=%d awake=%d score=%d",
            total, deep, rem, light, awakenings, score,
        )

        return SleepSummary(
            date=anchor.end_time,
            total_sleep_minutes=total,
            deep_sleep_minutes=deep,
            rem_sleep_minutes=rem,
            light_sleep_minutes=light,
            awakenings=awakenings,
            sleep_score=score,
        )
