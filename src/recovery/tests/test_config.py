"""Tests for recovery_config.yaml loading and validation."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from src.recovery.config_loader import (
    ConfigValidationError,
    RecoveryConfig,
    _validate_and_build,
    get_recovery_config,
    load_recovery_config,
    reload_recovery_config,
)


def _minimal_raw(**weights: float) -> dict:
    return {
        "version": "1.0",
        "recovery_score": {
            "weights": weights or {"sleep": 0.4, "heart_rate": 0.3, "activity": 0.3},
            "heart_rate_bands": [{"below": 60, "score": 100}, {"below": 90, "score": 50}],
            "recommendations": [{"below": 50, "text": "Rest."}],
        },
    }


class TestConfigLoading:
    """Tests for loading recovery_config.yaml."""

    def test_load_default_config(self, recovery_config: RecoveryConfig) -> None:
        assert recovery_config.version == "1.0"
        assert recovery_config.recovery.heart_rate_bands
        assert recovery_config.recovery.recommendations

    def test_base_weights(self, recovery_config: RecoveryConfig) -> None:
        w = recovery_config.recovery.weights
        assert (w.sleep, w.heart_rate, w.activity) == (0.4, 0.3, 0.3)
        assert w.total == 1.0

    def test_heart_rate_bands_ascending(self, recovery_config: RecoveryConfig) -> None:
        bands = recovery_config.recovery.heart_rate_bands
        assert [(b.below, b.score) for b in bands] == [(60, 100), (70, 85), (80, 70), (90, 50)]
        assert recovery_config.recovery.heart_rate_floor_score == 30

    def test_sample_thresholds(self, recovery_config: RecoveryConfig) -> None:
        assert recovery_config.hrv.min_samples == 5
        assert recovery_config.recovery.hrv_factor_min_samples == 3
        assert recovery_config.recovery.recent_sleep_intervals == 3
        assert recovery_config.recovery.recent_heart_rate_samples == 10

    def test_activity_divisors(self, recovery_config: RecoveryConfig) -> None:
        al = recovery_config.activity_load
        assert (al.workout_calorie_divisor, al.active_calorie_divisor, al.step_divisor) == (20, 30, 150)
        assert al.no_data_score == 100

    def test_singleton_is_cached(self) -> None:
        assert get_recovery_config() is get_recovery_config()


class TestConfigValidation:
    """Tests for config validation logic."""

    def test_valid_minimal_config(self) -> None:
        config = _validate_and_build(_minimal_raw())
        assert config.sleep_summary.deep_cap == 25
        assert config.recovery.recommendation_default.startswith("You are well recovered")

    def test_weights_must_sum_to_one(self) -> None:
        with pytest.raises(ConfigValidationError, match="sum to"):
            _validate_and_build(_minimal_raw(sleep=0.5, heart_rate=0.3, activity=0.3))

    def test_out_of_range_weight_raises(self) -> None:
        with pytest.raises(ConfigValidationError, match="out of range"):
            _validate_and_build(_minimal_raw(sleep=1.4, heart_rate=-0.2, activity=-0.2))

    def test_non_numeric_weight_raises(self) -> None:
        with pytest.raises(ConfigValidationError, match="must be a number"):
            _validate_and_build(_minimal_raw(sleep="most", heart_rate=0.3, activity=0.3))

    def test_missing_weight_raises(self) -> None:
        with pytest.raises(ConfigValidationError, match="activity"):
            _validate_and_build(_minimal_raw(sleep=0.5, heart_rate=0.5))

    def test_descending_bands_raise(self) -> None:
        raw = _minimal_raw()
        raw["recovery_score"]["heart_rate_bands"] = [
            {"below": 90, "score": 50},
            {"below": 60, "score": 100},
        ]
        with pytest.raises(ConfigValidationError, match="ascending"):
            _validate_and_build(raw)

    def test_all_errors_are_collected(self) -> None:
        raw = _minimal_raw(sleep=0.9, heart_rate=0.3, activity=0.3)
        raw["recovery_score"]["recommendations"] = []
        raw["activity_load"] = {"step_divisor": 0}
        raw["hrv"] = {"min_samples": 1}
        with pytest.raises(ConfigValidationError) as excinfo:
            _validate_and_build(raw)
        message = str(excinfo.value)
        assert "4 validation error(s)" in message
        assert "step_divisor" in message
        assert "hrv.min_samples" in message

    def test_hot_reload(self, tmp_path: Path) -> None:
        config_file = tmp_path / "recovery_config.yaml"
        config_file.write_text(
            textwrap.dedent(
                """
                version: "2.0-test"
                recovery_score:
                  weights:
                    sleep: 0.5
                    heart_rate: 0.25
                    activity: 0.25
                  heart_rate_bands:
                    - below: 65
                      score: 90
                  recommendations:
                    - below: 50
                      text: "Take it easy."
                """
            ).strip()
        )
        try:
            new_config = reload_recovery_config(path=config_file)
            assert new_config.version == "2.0-test"
            assert get_recovery_config() is new_config
        finally:
            reload_recovery_config()

    def test_failed_reload_keeps_previous(self, tmp_path: Path) -> None:
        before = get_recovery_config()
        bad = tmp_path / "recovery_config.yaml"
        bad.write_text("recovery_score:\n  weights: {sleep: 2}\n")
        with pytest.raises(ConfigValidationError):
            reload_recovery_config(path=bad)
        assert get_recovery_config() is before

    def test_malformed_yaml_raises(self, tmp_path: Path) -> None:
        bad = tmp_path / "recovery_config.yaml"
        bad.write_text("recovery_score: [unclosed\n")
        with pytest.raises(ConfigValidationError, match="YAML parse error"):
            load_recovery_config(path=bad)

    def test_load_nonexistent_file_raises(self) -> None:
        with pytest.raises(FileNotFoundError):
            load_recovery_config(path=Path("/nonexistent/path/config.yaml"))
