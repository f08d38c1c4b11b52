"""Tests for the sleep summarizer."""

from __future__ import annotations

from datetime import timedelta

import pytest

from src.recovery.base import SleepStage
from src.recovery.config_loader import RecoveryConfig
from src.recovery.sleep_summary import SleepSummarizer
from src.recovery.tests.conftest import REFERENCE_TIME, interval


@pytest.fixture
def summarizer(recovery_config: RecoveryConfig) -> SleepSummarizer:
    return SleepSummarizer(recovery_config)


class TestSleepSummarizer:
    def test_no_intervals_returns_none(self, summarizer: SleepSummarizer) -> None:
        assert summarizer.summarize([], REFERENCE_TIME) is None

    def test_single_deep_interval(self, summarizer: SleepSummarizer) -> None:
        deep = interval(SleepStage.DEEP, 120, ends_hours_ago=2)
        summary = summarizer.summarize([deep], REFERENCE_TIME)
        assert summary is not None
        assert summary.total_sleep_minutes == 120
        assert summary.deep_sleep_minutes == 120
        assert summary.rem_sleep_minutes == 0
        assert summary.awakenings == 0
        # 50 + min(25, 100 * 1.25) + 0
        assert summary.sleep_score == 75
        assert summary.date == deep.end_time

    def test_anchor_is_most_recent_interval(self, summarizer: SleepSummarizer) -> None:
        intervals = [
            interval(SleepStage.REM, 60, ends_hours_ago=4),
            interval(SleepStage.LIGHT, 30, ends_hours_ago=1),
            interval(SleepStage.DEEP, 240, ends_hours_ago=6),
        ]
        summary = summarizer.summarize(intervals, REFERENCE_TIME)
        assert summary is not None
        assert summary.total_sleep_minutes == 30
        assert summary.date == REFERENCE_TIME - timedelta(hours=1)
        assert summary.light_sleep_minutes == 30
        assert summary.deep_sleep_minutes == 240
        assert summary.rem_sleep_minutes == 60

    def test_percentages_relative_to_anchor_are_capped(self, summarizer: SleepSummarizer) -> None:
        intervals = [
            interval(SleepStage.DEEP, 60, ends_hours_ago=3),
            interval(SleepStage.REM, 30, ends_hours_ago=2),
            interval(SleepStage.AWAKE, 5, ends_hours_ago=1),
        ]
        summary = summarizer.summarize(intervals, REFERENCE_TIME)
        assert summary is not None
        assert summary.total_sleep_minutes == 5
        assert summary.awakenings == 1
        # 50 + 25 + 25 - 5
        assert summary.sleep_score == 95

    def test_mixed_night(self, summarizer: SleepSummarizer) -> None:
        intervals = [
            interval(SleepStage.LIGHT, 200, ends_hours_ago=5),
            interval(SleepStage.DEEP, 40, ends_hours_ago=4),
            interval(SleepStage.REM, 80, ends_hours_ago=3),
            interval(SleepStage.AWAKE, 10, ends_hours_ago=2.5),
            interval(SleepStage.LIGHT, 400, ends_hours_ago=2),
        ]
        summary = summarizer.summarize(intervals, REFERENCE_TIME)
        assert summary is not None
        # deep 10% * 1.25 = 12.5, rem 20% * 1.0 = 20, one awakening
        assert summary.sleep_score == 78

    def test_intervals_outside_window_are_ignored(self, summarizer: SleepSummarizer) -> None:
        old = interval(SleepStage.DEEP, 120, ends_hours_ago=30)
        summary = summarizer.summarize([old], REFERENCE_TIME)
        assert summary is not None
        assert summary.total_sleep_minutes == 120
        assert summary.deep_sleep_minutes == 0
        assert summary.sleep_score == 50

    def test_score_floors_at_zero(self, summarizer: SleepSummarizer) -> None:
        awake = [interval(SleepStage.AWAKE, 5, ends_hours_ago=h) for h in range(1, 13)]
        summary = summarizer.summarize(awake, REFERENCE_TIME)
        assert summary is not None
        assert summary.awakenings == 12
        assert summary.sleep_score == 0

    def test_zero_length_anchor_guards_division(self, summarizer: SleepSummarizer) -> None:
        instant = interval(SleepStage.DEEP, 0, ends_hours_ago=1)
        summary = summarizer.summarize([instant], REFERENCE_TIME)
        assert summary is not None
        assert summary.total_sleep_minutes == 0
        assert summary.sleep_score == 50
