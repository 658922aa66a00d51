"""
Score Calculator -- Welfare Factors to Urgency Score and Severity.

Converts an animal's welfare factors into a bounded urgency score
(``0..100``), a severity tier, and an ordered list of reason tags naming
the factors that drove the score.

The calculation is a weighted, clamped sum::

    raw   = medical * 4 + behavioral * 3 + kennel_points + min(days, 30) * 0.5
    score = clamp(round(raw), 0, 100)

``compute`` is pure and deterministic: it performs no I/O, reads no clock,
and holds no shared state, so it is safe to call from any number of
worker threads.
"""

from __future__ import annotations

import math

from pydantic import BaseModel, Field

from shelterrisk.config import DEFAULT_SETTINGS, EngineSettings, SeverityThresholds
from shelterrisk.models import RiskReason, RiskSeverity, WelfareFactors


class FactorContributions(BaseModel):
    """Points contributed by each factor before clamping."""

    medical: float = 0.0
    behavioral: float = 0.0
    kennel: float = 0.0
    tenure: float = 0.0

    @property
    def total(self) -> float:
        return self.medical + self.behavioral + self.kennel + self.tenure


class ScoreResult(BaseModel):
    """Result of scoring one set of welfare factors."""

    urgency_score: int = Field(..., ge=0, le=100)
    risk_severity: RiskSeverity
    risk_reasons: list[RiskReason] = Field(default_factory=list)
    raw_score: float = Field(
        ...,
        ge=0,
        description="Unclamped, unrounded sum of contributions.",
    )
    contributions: FactorContributions


def compute(
    factors: WelfareFactors,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> ScoreResult:
    """Score a set of welfare factors.

    Args:
        factors: Validated welfare factors.
        settings: Engine settings supplying weights and thresholds.

    Returns:
        A ``ScoreResult`` with score, severity, reasons and breakdown.
    """
    weights = settings.weights
    contributions = FactorContributions(
        medical=factors.medical_score * weights.medical_points_per_unit,
        behavioral=factors.behavioral_score * weights.behavioral_points_per_unit,
        kennel=weights.kennel_stress_points[factors.kennel_stress_level],
        tenure=min(factors.days_in_shelter, weights.tenure_cap_days)
        * weights.tenure_points_per_day,
    )
    raw = contributions.total
    urgency_score = _clamp(_round_half_up(raw), 0, 100)

    return ScoreResult(
        urgency_score=urgency_score,
        risk_severity=severity_for_score(urgency_score, settings.severity_thresholds),
        risk_reasons=_reasons_for(factors, settings),
        raw_score=raw,
        contributions=contributions,
    )


def severity_for_score(
    score: int,
    thresholds: SeverityThresholds = DEFAULT_SETTINGS.severity_thresholds,
) -> RiskSeverity:
    """Map an urgency score to its severity band (first match wins)."""
    if score >= thresholds.critical:
        return RiskSeverity.CRITICAL
    if score >= thresholds.high:
        return RiskSeverity.HIGH
    if score >= thresholds.elevated:
        return RiskSeverity.ELEVATED
    if score >= thresholds.moderate:
        return RiskSeverity.MODERATE
    return RiskSeverity.LOW


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _reasons_for(factors: WelfareFactors, settings: EngineSettings) -> list[RiskReason]:
    """Reason tags in fixed order: medical, behavioral, kennel, tenure."""
    limits = settings.reason_thresholds
    reasons: list[RiskReason] = []

    if factors.medical_score >= limits.medical_min:
        reasons.append(RiskReason.MEDICAL_URGENT)
    if factors.behavioral_score >= limits.behavioral_min:
        reasons.append(RiskReason.BEHAVIORAL_DECLINE)
    if factors.kennel_stress_level.rank >= limits.kennel_min.rank:
        reasons.append(RiskReason.KENNEL_STRESS)
    if factors.days_in_shelter >= limits.tenure_min_days:
        reasons.append(RiskReason.LONG_LOS)

    return reasons


def _round_half_up(value: float) -> int:
    # Built-in round() uses banker's rounding; 52.5 must become 53.
    return int(math.floor(value + 0.5))


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))
