"""
Override Manager -- Staff Supersession of Automatic Scores.

Staff may replace an animal's automatic urgency score and severity with
their own classification.  The staff member's values are authoritative:
no recomputation happens and the severity is not checked against the
score.

Once a profile is overridden, automatic scoring (quick updates and bulk
recalculation) leaves its score, severity and reasons untouched until the
override is cleared with ``RiskService.clear_override``.  Applying a new
override simply replaces the previous one.

Validation of the request (score range, reason of at least 10
characters) happens when the ``OverrideRequest`` is built, before this
component is reached.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from shelterrisk.events import RiskEvent, RiskEventType, RiskOverriddenPayload
from shelterrisk.models import ActingContext, OverrideRequest, RiskProfile
from shelterrisk.profiles import override_fields, with_fields


class OverrideResult:
    """An overridden profile, the partial update that produced it, and the
    audit event describing the change.

    ``changes`` is what a store should persist; ``profile`` is the current
    profile with exactly those changes applied.
    """

    def __init__(
        self, profile: RiskProfile, changes: dict[str, Any], event: RiskEvent
    ) -> None:
        self.profile = profile
        self.changes = changes
        self.event = event

    def __repr__(self) -> str:
        return (
            f"OverrideResult(animal_id={self.profile.animal_id}, "
            f"score={self.profile.urgency_score}, "
            f"severity={self.profile.risk_severity.value})"
        )


class OverrideManager:
    """Applies override precedence rules to a risk profile."""

    def __init__(self, clock: Callable[[], datetime]) -> None:
        self._clock = clock

    def apply(
        self,
        profile: RiskProfile,
        request: OverrideRequest,
        context: ActingContext,
    ) -> OverrideResult:
        """Apply a staff override.

        Args:
            profile: The current risk profile.
            request: The validated override request.
            context: The acting staff member and organization.

        Returns:
            An ``OverrideResult`` holding the updated profile, the partial
            update to persist, and a ``RISK_OVERRIDDEN`` event carrying previous score, new score and
            reason.
        """
        now = self._clock()
        changes = override_fields(request, context.user_id, now)
        updated = with_fields(profile, changes)

        event = RiskEvent(
            animal_id=profile.animal_id,
            organization_id=context.organization_id,
            event_type=RiskEventType.RISK_OVERRIDDEN,
            payload=RiskOverriddenPayload(
                previous_score=profile.urgency_score,
                new_score=updated.urgency_score,
                reason=request.reason,
            ),
            actor_id=context.user_id,
            occurred_at=now,
        )
        return OverrideResult(profile=updated, changes=changes, event=event)
