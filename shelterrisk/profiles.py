"""
Risk Profile Write Paths.

A profile's score and severity can only change through one of three
functions, each producing the exact set of fields it is allowed to touch:

* ``computed_score_fields`` / ``apply_computed_score`` -- automatic
  scoring.  Score, severity and reasons always move in lockstep and the
  path refuses to run on an overridden profile.
* ``override_fields`` / ``apply_override`` -- staff override.  Score and
  severity are taken verbatim from the request.
* ``cleared_override_fields`` / ``clear_override`` -- lifts an override
  and returns the profile to automatic scoring with a fresh result.

The ``*_fields`` functions return partial updates for
``RiskProfileStore.update_profile``; the ``apply_*`` functions return the
updated profile itself.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from shelterrisk.errors import OverrideActiveError
from shelterrisk.models import OverrideRequest, RiskProfile, WelfareFactors
from shelterrisk.scoring import ScoreResult


# ---------------------------------------------------------------------------
# Field builders
# ---------------------------------------------------------------------------

def factor_fields(factors: WelfareFactors) -> dict[str, Any]:
    """Welfare factor fields stored on the profile."""
    return {
        "medical_score": factors.medical_score,
        "behavioral_score": factors.behavioral_score,
        "kennel_stress_level": factors.kennel_stress_level,
    }


def computed_score_fields(
    factors: WelfareFactors, result: ScoreResult, now: datetime
) -> dict[str, Any]:
    """Fields written by the automatic scoring path."""
    return {
        **factor_fields(factors),
        "urgency_score": result.urgency_score,
        "risk_severity": result.risk_severity,
        "risk_reasons": list(result.risk_reasons),
        "last_calculated": now,
    }


def override_fields(
    request: OverrideRequest, actor_id: str, now: datetime
) -> dict[str, Any]:
    """Fields written by a staff override.

    Visibility flags are only included when the request supplies them.
    Reasons are emptied: the automatic reasons no longer explain the
    score.
    """
    fields: dict[str, Any] = {
        "urgency_score": request.urgency_score,
        "risk_severity": request.risk_severity,
        "risk_reasons": [],
        "is_manual_override": True,
        "override_reason": request.reason,
        "override_by": actor_id,
        "last_calculated": now,
    }
    if request.public_visibility is not None:
        fields["public_visibility"] = request.public_visibility
    if request.rescue_visibility is not None:
        fields["rescue_visibility"] = request.rescue_visibility
    return fields


def cleared_override_fields(
    factors: WelfareFactors, result: ScoreResult, now: datetime
) -> dict[str, Any]:
    """Fields written when an override is lifted."""
    return {
        **computed_score_fields(factors, result, now),
        "is_manual_override": False,
        "override_reason": None,
        "override_by": None,
    }


# ---------------------------------------------------------------------------
# Profile transitions
# ---------------------------------------------------------------------------

def apply_computed_score(
    profile: RiskProfile,
    factors: WelfareFactors,
    result: ScoreResult,
    now: datetime,
) -> RiskProfile:
    """Return ``profile`` with an automatic score applied.

    Raises:
        OverrideActiveError: If the profile is manually overridden.
    """
    if profile.is_manual_override:
        raise OverrideActiveError(profile.animal_id)
    return with_fields(profile, computed_score_fields(factors, result, now))


def apply_override(
    profile: RiskProfile,
    request: OverrideRequest,
    actor_id: str,
    now: datetime,
) -> RiskProfile:
    """Return ``profile`` with a staff override applied.

    A fresh override replaces any previous one.
    """
    return with_fields(profile, override_fields(request, actor_id, now))


def clear_override(
    profile: RiskProfile,
    factors: WelfareFactors,
    result: ScoreResult,
    now: datetime,
) -> RiskProfile:
    """Return ``profile`` back under automatic scoring."""
    return with_fields(profile, cleared_override_fields(factors, result, now))


def with_fields(profile: RiskProfile, fields: dict[str, Any]) -> RiskProfile:
    # model_copy(update=...) skips validation; rebuild instead.
    return RiskProfile.model_validate({**profile.model_dump(), **fields})
