"""
Score Explanations for Staff Review.

Turns a risk profile into a short narrative naming the factors behind its
score, and describes the scoring model itself (factor weights and severity
bands with their recommended actions) so staff can see why an animal is
ranked where it is.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from shelterrisk.config import DEFAULT_SETTINGS, EngineSettings
from shelterrisk.models import RiskProfile, RiskReason, RiskSeverity, utc_now


_REASON_LABELS: dict[RiskReason, str] = {
    RiskReason.MEDICAL_URGENT: "urgent medical needs",
    RiskReason.BEHAVIORAL_DECLINE: "behavioral decline",
    RiskReason.KENNEL_STRESS: "kennel stress",
    RiskReason.LONG_LOS: "extended shelter stay",
}

_SEVERITY_ACTIONS: dict[RiskSeverity, str] = {
    RiskSeverity.CRITICAL: "Immediate intervention needed",
    RiskSeverity.HIGH: "Priority attention required",
    RiskSeverity.ELEVATED: "Close monitoring recommended",
    RiskSeverity.MODERATE: "Standard care protocols",
    RiskSeverity.LOW: "Routine monitoring",
}


class ScoreExplanation:
    """A structured explanation of one animal's current classification."""

    def __init__(
        self,
        animal_id: str,
        urgency_score: int,
        risk_severity: str,
        reasons: list[str],
        narrative: str,
        recommended_action: str,
        is_manual_override: bool,
        override_reason: str | None,
        generated_at: str,
    ) -> None:
        self.animal_id = animal_id
        self.urgency_score = urgency_score
        self.risk_severity = risk_severity
        self.reasons = reasons
        self.narrative = narrative
        self.recommended_action = recommended_action
        self.is_manual_override = is_manual_override
        self.override_reason = override_reason
        self.generated_at = generated_at

    def to_dict(self) -> dict[str, Any]:
        """Serialize the explanation to a dictionary."""
        return {
            "animal_id": self.animal_id,
            "urgency_score": self.urgency_score,
            "risk_severity": self.risk_severity,
            "reasons": self.reasons,
            "narrative": self.narrative,
            "recommended_action": self.recommended_action,
            "is_manual_override": self.is_manual_override,
            "override_reason": self.override_reason,
            "generated_at": self.generated_at,
        }

    def __repr__(self) -> str:
        return (
            f"ScoreExplanation(animal_id={self.animal_id}, "
            f"score={self.urgency_score}, severity={self.risk_severity})"
        )


def explain_profile(
    profile: RiskProfile,
    clock: Callable[[], datetime] = utc_now,
) -> ScoreExplanation:
    """Generate a staff-facing explanation for a risk profile.

    Args:
        profile: The profile to explain.
        clock: Source of the ``generated_at`` timestamp.

    Returns:
        A ``ScoreExplanation``.
    """
    if profile.is_manual_override:
        narrative = (
            f"{profile.risk_severity.value}: set manually by staff. "
            f"Reason: {profile.override_reason}"
        )
    else:
        narrative = _narrative(profile.risk_severity, profile.risk_reasons)

    return ScoreExplanation(
        animal_id=profile.animal_id,
        urgency_score=profile.urgency_score,
        risk_severity=profile.risk_severity.value,
        reasons=[reason.value for reason in profile.risk_reasons],
        narrative=narrative,
        recommended_action=_SEVERITY_ACTIONS[profile.risk_severity],
        is_manual_override=profile.is_manual_override,
        override_reason=profile.override_reason,
        generated_at=clock().isoformat(),
    )


def factor_catalog(settings: EngineSettings = DEFAULT_SETTINGS) -> dict[str, Any]:
    """Describe the scoring factors and severity bands.

    Args:
        settings: Settings whose weights and thresholds are described.

    Returns:
        A JSON-serializable dictionary with ``factors`` and
        ``severity_levels``.
    """
    weights = settings.weights
    limits = settings.reason_thresholds
    thresholds = settings.severity_thresholds

    factors = [
        {
            "name": "Medical condition",
            "max_points": 10 * weights.medical_points_per_unit,
            "description": f"{weights.medical_points_per_unit} points per unit of medical score (0-10).",
            "reason": RiskReason.MEDICAL_URGENT.value,
            "reported_at": f"medical score >= {limits.medical_min}",
        },
        {
            "name": "Behavioral condition",
            "max_points": 10 * weights.behavioral_points_per_unit,
            "description": f"{weights.behavioral_points_per_unit} points per unit of behavioral score (0-10).",
            "reason": RiskReason.BEHAVIORAL_DECLINE.value,
            "reported_at": f"behavioral score >= {limits.behavioral_min}",
        },
        {
            "name": "Kennel stress",
            "max_points": max(weights.kennel_stress_points.values()),
            "description": "Flat points per observed stress level: " + ", ".join(
                f"{level.value}={points}"
                for level, points in weights.kennel_stress_points.items()
            ),
            "reason": RiskReason.KENNEL_STRESS.value,
            "reported_at": f"kennel stress >= {limits.kennel_min.value}",
        },
        {
            "name": "Time in care",
            "max_points": weights.tenure_cap_days * weights.tenure_points_per_day,
            "description": (
                f"{weights.tenure_points_per_day} points per day in care, "
                f"capped at {weights.tenure_cap_days} days."
            ),
            "reason": RiskReason.LONG_LOS.value,
            "reported_at": f"{limits.tenure_min_days} or more days in care",
        },
    ]

    bands = [
        (RiskSeverity.CRITICAL, thresholds.critical),
        (RiskSeverity.HIGH, thresholds.high),
        (RiskSeverity.ELEVATED, thresholds.elevated),
        (RiskSeverity.MODERATE, thresholds.moderate),
        (RiskSeverity.LOW, 0),
    ]
    severity_levels = [
        {"level": level.value, "min_score": min_score, "action": _SEVERITY_ACTIONS[level]}
        for level, min_score in bands
    ]

    return {"factors": factors, "severity_levels": severity_levels}


def _narrative(severity: RiskSeverity, reasons: list[RiskReason]) -> str:
    readable = ", ".join(_REASON_LABELS[r] for r in reasons)

    if severity == RiskSeverity.CRITICAL:
        return (
            "CRITICAL: This animal needs immediate attention due to "
            f"{readable or 'multiple risk factors'}."
        )
    if severity == RiskSeverity.HIGH:
        return (
            "HIGH RISK: Priority placement needed. Contributing factors: "
            f"{readable or 'elevated risk indicators'}."
        )
    if severity == RiskSeverity.ELEVATED:
        return (
            "ELEVATED: Enhanced visibility recommended due to "
            f"{readable or 'moderate risk factors'}."
        )
    if severity == RiskSeverity.MODERATE:
        return (
            "MODERATE: Standard care with attention to "
            f"{readable or 'typical adoption timeline'}."
        )
    return "LOW: No immediate welfare concerns identified."
