"""
Engine Settings -- Scoring Weights, Thresholds and Operational Limits.

Every constant the scoring engine uses lives in a validated settings object
so it can be reviewed in one place and loaded from YAML for a deployment.
The defaults reproduce the published scoring model exactly:

* medical contributes ``4`` points per unit (0-40),
* behavioral contributes ``3`` points per unit (0-30),
* kennel stress contributes ``{NONE: 0, MILD: 5, MODERATE: 10, SEVERE: 18,
  CRITICAL: 25}``,
* time in care contributes ``0.5`` points per day, capped at 30 days (15).

Severity bands are inclusive on their lower bound and evaluated top-down,
so the thresholds must be strictly ordered for the bands to partition
``[0, 100]``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from shelterrisk.models import KennelStressLevel


# ---------------------------------------------------------------------------
# Scoring weights
# ---------------------------------------------------------------------------

def _default_kennel_points() -> dict[KennelStressLevel, int]:
    return {
        KennelStressLevel.NONE: 0,
        KennelStressLevel.MILD: 5,
        KennelStressLevel.MODERATE: 10,
        KennelStressLevel.SEVERE: 18,
        KennelStressLevel.CRITICAL: 25,
    }


class ScoringWeights(BaseModel):
    """Per-factor weights of the urgency score."""

    medical_points_per_unit: int = Field(default=4, ge=0)
    behavioral_points_per_unit: int = Field(default=3, ge=0)
    kennel_stress_points: dict[KennelStressLevel, int] = Field(
        default_factory=_default_kennel_points,
        description="Flat contribution for each kennel stress level.",
    )
    tenure_points_per_day: float = Field(default=0.5, ge=0)
    tenure_cap_days: int = Field(
        default=30,
        ge=0,
        description="Days in care beyond this add no further urgency.",
    )

    @field_validator("kennel_stress_points")
    @classmethod
    def every_level_weighted(
        cls, v: dict[KennelStressLevel, int]
    ) -> dict[KennelStressLevel, int]:
        missing = [level.value for level in KennelStressLevel if level not in v]
        if missing:
            raise ValueError(f"kennel_stress_points is missing levels: {missing}")
        if any(points < 0 for points in v.values()):
            raise ValueError("kennel_stress_points must be non-negative")
        return v


# ---------------------------------------------------------------------------
# Severity thresholds
# ---------------------------------------------------------------------------

class SeverityThresholds(BaseModel):
    """Minimum urgency score for each severity band (LOW is the remainder)."""

    critical: int = Field(default=80, ge=1, le=100)
    high: int = Field(default=60, ge=1, le=100)
    elevated: int = Field(default=40, ge=1, le=100)
    moderate: int = Field(default=20, ge=1, le=100)

    @field_validator("elevated")
    @classmethod
    def elevated_below_high(cls, v: int, info) -> int:
        high = info.data.get("high")
        if high is not None and v >= high:
            raise ValueError(f"elevated ({v}) must be < high ({high})")
        return v

    @field_validator("high")
    @classmethod
    def high_below_critical(cls, v: int, info) -> int:
        critical = info.data.get("critical")
        if critical is not None and v >= critical:
            raise ValueError(f"high ({v}) must be < critical ({critical})")
        return v

    @field_validator("moderate")
    @classmethod
    def moderate_below_elevated(cls, v: int, info) -> int:
        elevated = info.data.get("elevated")
        if elevated is not None and v >= elevated:
            raise ValueError(f"moderate ({v}) must be < elevated ({elevated})")
        return v


# ---------------------------------------------------------------------------
# Reason thresholds
# ---------------------------------------------------------------------------

class ReasonThresholds(BaseModel):
    """Level at which a factor is reported in ``risk_reasons``."""

    medical_min: int = Field(default=6, ge=0, le=10)
    behavioral_min: int = Field(default=6, ge=0, le=10)
    kennel_min: KennelStressLevel = Field(default=KennelStressLevel.MODERATE)
    tenure_min_days: int = Field(default=20, ge=0)


# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------

class EngineSettings(BaseModel):
    """Complete configuration for the scoring engine."""

    weights: ScoringWeights = Field(default_factory=ScoringWeights)
    severity_thresholds: SeverityThresholds = Field(default_factory=SeverityThresholds)
    reason_thresholds: ReasonThresholds = Field(default_factory=ReasonThresholds)
    max_workers: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Worker pool size for organization-wide recalculation.",
    )
    emit_bulk_events: bool = Field(
        default=True,
        description="Append a RISK_UPDATED event for every profile a bulk "
                    "recalculation writes.",
    )
    top_at_risk_min_score: int = Field(default=60, ge=0, le=100)
    top_at_risk_limit: int = Field(default=10, ge=1)
    recent_changes_limit: int = Field(default=20, ge=1)
    recent_changes_window_hours: int = Field(default=24, ge=1)


DEFAULT_SETTINGS = EngineSettings()
"""Built-in settings matching the published scoring model."""


# ---------------------------------------------------------------------------
# YAML loader
# ---------------------------------------------------------------------------

def load_settings_from_yaml(path: str | Path) -> EngineSettings:
    """Load engine settings from a YAML file.

    The file must contain a top-level ``scoring`` mapping.  Omitted keys
    keep their defaults.

    Example YAML structure::

        scoring:
          max_workers: 8
          severity_thresholds:
            critical: 85
          weights:
            tenure_cap_days: 45

    Args:
        path: Path to the YAML file.

    Returns:
        A validated ``EngineSettings`` instance.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML structure is invalid.
        pydantic.ValidationError: If any value fails validation.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")

    with open(path, "r") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict) or "scoring" not in raw:
        raise ValueError("YAML file must contain a top-level 'scoring' mapping.")

    section: Any = raw["scoring"]
    if section is None:
        section = {}
    if not isinstance(section, dict):
        raise ValueError("'scoring' must be a mapping of setting names to values.")

    return EngineSettings.model_validate(section)
