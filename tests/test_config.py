"""
Tests for shelterrisk.config -- Engine Settings.

Covers: default settings, weight validation, severity threshold ordering,
operational limits, and YAML loading.
"""

from pathlib import Path

import pytest
import yaml

from shelterrisk.config import (
    DEFAULT_SETTINGS,
    EngineSettings,
    ScoringWeights,
    SeverityThresholds,
    load_settings_from_yaml,
)
from shelterrisk.models import KennelStressLevel


# ---------------------------------------------------------------------------
# 1. Default settings
# ---------------------------------------------------------------------------

class TestDefaultSettings:
    def test_default_weights_match_published_model(self):
        weights = DEFAULT_SETTINGS.weights
        assert weights.medical_points_per_unit == 4
        assert weights.behavioral_points_per_unit == 3
        assert weights.tenure_points_per_day == 0.5
        assert weights.tenure_cap_days == 30
        assert weights.kennel_stress_points == {
            KennelStressLevel.NONE: 0,
            KennelStressLevel.MILD: 5,
            KennelStressLevel.MODERATE: 10,
            KennelStressLevel.SEVERE: 18,
            KennelStressLevel.CRITICAL: 25,
        }

    def test_default_thresholds(self):
        t = DEFAULT_SETTINGS.severity_thresholds
        assert (t.critical, t.high, t.elevated, t.moderate) == (80, 60, 40, 20)

    def test_default_dashboard_limits(self):
        assert DEFAULT_SETTINGS.top_at_risk_min_score == 60
        assert DEFAULT_SETTINGS.top_at_risk_limit == 10
        assert DEFAULT_SETTINGS.recent_changes_limit == 20
        assert DEFAULT_SETTINGS.recent_changes_window_hours == 24


# ---------------------------------------------------------------------------
# 2. Weight validation
# ---------------------------------------------------------------------------

class TestScoringWeights:
    def test_missing_kennel_level_rejected(self):
        with pytest.raises(Exception, match="missing levels"):
            ScoringWeights(kennel_stress_points={
                KennelStressLevel.NONE: 0,
                KennelStressLevel.MILD: 5,
            })

    def test_negative_kennel_points_rejected(self):
        points = {level: 0 for level in KennelStressLevel}
        points[KennelStressLevel.SEVERE] = -4
        with pytest.raises(Exception):
            ScoringWeights(kennel_stress_points=points)

    def test_negative_weight_rejected(self):
        with pytest.raises(Exception):
            ScoringWeights(medical_points_per_unit=-1)


# ---------------------------------------------------------------------------
# 3. Severity threshold ordering
# ---------------------------------------------------------------------------

class TestSeverityThresholds:
    def test_valid_thresholds(self):
        t = SeverityThresholds(critical=90, high=70, elevated=50, moderate=25)
        assert t.moderate < t.elevated < t.high < t.critical

    def test_high_at_or_above_critical_rejected(self):
        with pytest.raises(Exception):
            SeverityThresholds(critical=70, high=70, elevated=40, moderate=20)

    def test_elevated_above_high_rejected(self):
        with pytest.raises(Exception):
            SeverityThresholds(critical=80, high=60, elevated=65, moderate=20)

    def test_moderate_above_elevated_rejected(self):
        with pytest.raises(Exception):
            SeverityThresholds(critical=80, high=60, elevated=40, moderate=45)


# ---------------------------------------------------------------------------
# 4. Operational limits
# ---------------------------------------------------------------------------

class TestEngineSettings:
    def test_worker_pool_bounds(self):
        assert EngineSettings(max_workers=1).max_workers == 1
        with pytest.raises(Exception):
            EngineSettings(max_workers=0)
        with pytest.raises(Exception):
            EngineSettings(max_workers=65)

    def test_nested_dicts_coerced(self):
        settings = EngineSettings(severity_thresholds={"critical": 85})
        assert settings.severity_thresholds.critical == 85
        assert settings.severity_thresholds.high == 60


# ---------------------------------------------------------------------------
# 5. YAML loader
# ---------------------------------------------------------------------------

class TestYAMLLoader:
    def _write_yaml(self, data: dict, tmp_dir: Path) -> Path:
        path = tmp_dir / "settings.yaml"
        with open(path, "w") as f:
            yaml.dump(data, f)
        return path

    def test_load_partial_settings(self, tmp_path):
        path = self._write_yaml(
            {"scoring": {"max_workers": 8, "weights": {"tenure_cap_days": 45}}},
            tmp_path,
        )
        settings = load_settings_from_yaml(path)
        assert settings.max_workers == 8
        assert settings.weights.tenure_cap_days == 45
        assert settings.weights.medical_points_per_unit == 4

    def test_kennel_levels_loaded_by_name(self, tmp_path):
        points = {level.value: 2 * i for i, level in enumerate(KennelStressLevel)}
        path = self._write_yaml(
            {"scoring": {"weights": {"kennel_stress_points": points}}},
            tmp_path,
        )
        settings = load_settings_from_yaml(path)
        assert settings.weights.kennel_stress_points[KennelStressLevel.CRITICAL] == 8

    def test_empty_section_uses_defaults(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("scoring:\n")
        assert load_settings_from_yaml(path) == EngineSettings()

    def test_load_nonexistent_file_raises(self):
        with pytest.raises(FileNotFoundError):
            load_settings_from_yaml("/nonexistent/settings.yaml")

    def test_load_invalid_structure_raises(self, tmp_path):
        path = self._write_yaml({"not_scoring": {}}, tmp_path)
        with pytest.raises(ValueError, match="top-level 'scoring'"):
            load_settings_from_yaml(path)

    def test_non_mapping_section_raises(self, tmp_path):
        path = self._write_yaml({"scoring": [1, 2, 3]}, tmp_path)
        with pytest.raises(ValueError, match="must be a mapping"):
            load_settings_from_yaml(path)

    def test_invalid_values_rejected(self, tmp_path):
        path = self._write_yaml(
            {"scoring": {"severity_thresholds": {"critical": 50, "high": 60}}},
            tmp_path,
        )
        with pytest.raises(Exception):
            load_settings_from_yaml(path)

    def test_load_sample_settings(self):
        """Validate that the bundled example file loads successfully."""
        sample_path = Path(__file__).parent.parent / "examples" / "engine_settings.yaml"
        if sample_path.exists():
            assert load_settings_from_yaml(sample_path) == DEFAULT_SETTINGS
