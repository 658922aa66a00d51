"""
Risk Service -- Entry Points for the Route/Adapter Layer.

``RiskService`` wires the score calculator, override manager,
recalculation orchestrator and dashboard aggregator to a store and an
event sink, and exposes the operations the transport layer calls:

* ``compute_and_persist`` -- quick update of welfare factors.
* ``override``            -- staff override of score and severity.
* ``clear_override``      -- return an overridden profile to automatic
  scoring.
* ``recalculate_organization`` / ``get_dashboard`` / ``get_profile`` /
  ``explain``.

**Errors:** input is validated before anything is read or computed
(``RiskValidationError``).  Single-animal operations check that the animal
belongs to the acting organization before any write (``ForbiddenError``)
and surface store failures untouched.  Audit events are attempted once
per operation; a failed append is logged and never fails the call.

**Concurrency:** single-profile writes rely on the store serializing
updates per animal.  Automatic writes are guarded so an override that
lands between read and write is never clobbered.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, TypeVar, Union

from pydantic import BaseModel, Field, ValidationError

from shelterrisk.config import DEFAULT_SETTINGS, EngineSettings
from shelterrisk.dashboard import DashboardAggregator, DashboardView
from shelterrisk.errors import (
    ForbiddenError,
    OverrideActiveError,
    RiskValidationError,
)
from shelterrisk.events import (
    EventSink,
    OverrideClearedPayload,
    RiskEvent,
    RiskEventType,
    RiskUpdatedPayload,
    append_best_effort,
)
from shelterrisk.explanation import ScoreExplanation, explain_profile
from shelterrisk.models import (
    ActingContext,
    AnimalRecord,
    KennelStressLevel,
    OverrideRequest,
    RiskProfile,
    RiskSeverity,
    WelfareFactors,
    utc_now,
)
from shelterrisk.overrides import OverrideManager
from shelterrisk.profiles import (
    cleared_override_fields,
    computed_score_fields,
    factor_fields,
)
from shelterrisk.recalculation import RecalculationOrchestrator, RecalculationReport
from shelterrisk.scoring import compute
from shelterrisk.store import RiskProfileStore


logger = logging.getLogger(__name__)

_M = TypeVar("_M", bound=BaseModel)


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class QuickRiskUpdate(BaseModel):
    """Partial welfare factor update submitted by staff.

    Omitted factors keep their stored values.
    """

    kennel_stress_level: Optional[KennelStressLevel] = Field(default=None)
    medical_score: Optional[int] = Field(default=None, ge=0, le=10)
    behavioral_score: Optional[int] = Field(default=None, ge=0, le=10)
    notes: Optional[str] = Field(default=None, max_length=2000)


class QuickUpdateResult(BaseModel):
    """Score and severity in effect after a quick update."""

    urgency_score: int
    risk_severity: RiskSeverity
    is_manual_override: bool = False


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class RiskService:
    """Core entry points for risk scoring.

    Example::

        service = RiskService(InMemoryRiskStore(), RiskEventLog())
        ctx = ActingContext(user_id="staff_1", organization_id="org_a")
        service.compute_and_persist("a1", {"medical_score": 8}, ctx)
    """

    def __init__(
        self,
        store: RiskProfileStore,
        events: EventSink,
        settings: EngineSettings = DEFAULT_SETTINGS,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._store = store
        self._events = events
        self._settings = settings
        self._clock = clock or utc_now
        self._overrides = OverrideManager(self._clock)
        self._orchestrator = RecalculationOrchestrator(store, events, settings, self._clock)
        self._dashboard = DashboardAggregator(store, events, settings, self._clock)

    # -- single-animal operations --

    def compute_and_persist(
        self,
        animal_id: str,
        factor_updates: Union[QuickRiskUpdate, Mapping[str, Any]],
        context: ActingContext,
    ) -> QuickUpdateResult:
        """Apply a quick factor update and persist the recomputed score.

        If the profile is manually overridden the new factor values are
        stored, but score, severity and reasons keep their override
        values.

        Raises:
            RiskValidationError: If a factor value is out of range.
            NotFoundError: If the animal or profile does not exist.
            ForbiddenError: If the animal belongs to another organization.
        """
        updates = _validated(QuickRiskUpdate, factor_updates)
        animal = self._authorized_animal(animal_id, context)
        profile = self._store.get_profile(animal_id)
        factors = _merge_factors(profile, updates, animal)

        if profile.is_manual_override:
            return self._store_factors_only(profile, factors, updates, context)

        result = compute(factors, self._settings)
        now = self._clock()
        try:
            updated = self._store.update_profile(
                animal_id,
                computed_score_fields(factors, result, now),
                unless_overridden=True,
            )
        except OverrideActiveError:
            # An override landed after our read; it takes precedence.
            return self._store_factors_only(
                self._store.get_profile(animal_id), factors, updates, context
            )

        self._record(RiskEvent(
            animal_id=animal_id,
            organization_id=context.organization_id,
            event_type=RiskEventType.RISK_UPDATED,
            payload=RiskUpdatedPayload(
                previous_score=profile.urgency_score,
                new_score=updated.urgency_score,
                previous_severity=profile.risk_severity,
                new_severity=updated.risk_severity,
                reasons=updated.risk_reasons,
                source="quick_update",
                notes=updates.notes,
            ),
            actor_id=context.user_id,
            occurred_at=now,
        ))
        logger.debug(
            "Updated risk profile for animal %s: score=%d severity=%s",
            animal_id,
            updated.urgency_score,
            updated.risk_severity.value,
        )
        return QuickUpdateResult(
            urgency_score=updated.urgency_score,
            risk_severity=updated.risk_severity,
        )

    def override(
        self,
        animal_id: str,
        request: Union[OverrideRequest, Mapping[str, Any]],
        context: ActingContext,
    ) -> RiskProfile:
        """Supersede the automatic score with a staff classification.

        Raises:
            RiskValidationError: If the request is incomplete, out of range,
                or its reason is shorter than 10 characters.
            NotFoundError: If the animal or profile does not exist.
            ForbiddenError: If the animal belongs to another organization.
        """
        request = _validated(OverrideRequest, request)
        self._authorized_animal(animal_id, context)
        profile = self._store.get_profile(animal_id)

        result = self._overrides.apply(profile, request, context)
        stored = self._store.update_profile(animal_id, result.changes)
        self._record(result.event)
        logger.info(
            "Risk override for animal %s by %s: %d -> %d (%s)",
            animal_id,
            context.user_id,
            profile.urgency_score,
            stored.urgency_score,
            stored.risk_severity.value,
        )
        return stored

    def clear_override(self, animal_id: str, context: ActingContext) -> RiskProfile:
        """Lift a manual override and rescore the profile automatically.

        Clearing a profile that is not overridden is a no-op.

        Raises:
            NotFoundError: If the animal or profile does not exist.
            ForbiddenError: If the animal belongs to another organization.
        """
        animal = self._authorized_animal(animal_id, context)
        profile = self._store.get_profile(animal_id)
        if not profile.is_manual_override:
            return profile

        factors = profile.factors(animal.days_in_shelter)
        result = compute(factors, self._settings)
        now = self._clock()
        stored = self._store.update_profile(
            animal_id, cleared_override_fields(factors, result, now)
        )
        self._record(RiskEvent(
            animal_id=animal_id,
            organization_id=context.organization_id,
            event_type=RiskEventType.OVERRIDE_CLEARED,
            payload=OverrideClearedPayload(
                previous_score=profile.urgency_score,
                new_score=stored.urgency_score,
            ),
            actor_id=context.user_id,
            occurred_at=now,
        ))
        logger.info("Cleared risk override for animal %s by %s", animal_id, context.user_id)
        return stored

    def get_profile(
        self, animal_id: str, context: Optional[ActingContext] = None
    ) -> RiskProfile:
        """Return the current profile.

        When a context is given, the animal must belong to its
        organization.

        Raises:
            NotFoundError: If the animal or profile does not exist.
            ForbiddenError: If a context is given and does not match.
        """
        if context is not None:
            self._authorized_animal(animal_id, context)
        return self._store.get_profile(animal_id)

    def explain(
        self, animal_id: str, context: Optional[ActingContext] = None
    ) -> ScoreExplanation:
        """Return a staff-facing explanation of the current classification."""
        return explain_profile(self.get_profile(animal_id, context), clock=self._clock)

    # -- organization-wide operations --

    def recalculate_organization(
        self,
        organization_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Rescore every eligible profile; returns the number written."""
        return self._orchestrator.recalculate(organization_id, cancel_event)

    def recalculation_report(
        self,
        organization_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> RecalculationReport:
        """Rescore every eligible profile and return the full report."""
        return self._orchestrator.run(organization_id, cancel_event)

    def get_dashboard(self, organization_id: str) -> DashboardView:
        """Summarize the organization's current risk posture."""
        return self._dashboard.summarize(organization_id)

    # -- helpers --

    def _authorized_animal(self, animal_id: str, context: ActingContext) -> AnimalRecord:
        animal = self._store.get_animal(animal_id)
        if animal.organization_id != context.organization_id:
            logger.warning(
                "Cross-organization access to animal %s by %s (org %s)",
                animal_id,
                context.user_id,
                context.organization_id,
            )
            raise ForbiddenError(animal_id, context.organization_id)
        return animal

    def _store_factors_only(
        self,
        profile: RiskProfile,
        factors: WelfareFactors,
        updates: QuickRiskUpdate,
        context: ActingContext,
    ) -> QuickUpdateResult:
        stored = self._store.update_profile(profile.animal_id, factor_fields(factors))
        self._record(RiskEvent(
            animal_id=profile.animal_id,
            organization_id=context.organization_id,
            event_type=RiskEventType.RISK_UPDATED,
            payload=RiskUpdatedPayload(
                previous_score=profile.urgency_score,
                new_score=stored.urgency_score,
                previous_severity=profile.risk_severity,
                new_severity=stored.risk_severity,
                reasons=stored.risk_reasons,
                source="quick_update",
                notes=updates.notes,
            ),
            actor_id=context.user_id,
            occurred_at=self._clock(),
        ))
        logger.info(
            "Animal %s is manually overridden; stored factors without rescoring",
            profile.animal_id,
        )
        return QuickUpdateResult(
            urgency_score=stored.urgency_score,
            risk_severity=stored.risk_severity,
            is_manual_override=True,
        )

    def _record(self, event: RiskEvent) -> None:
        append_best_effort(self._events, event)


def _validated(model: type[_M], value: Any) -> _M:
    if isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except ValidationError as exc:
        raise RiskValidationError(str(exc)) from exc


def _merge_factors(
    profile: RiskProfile, updates: QuickRiskUpdate, animal: AnimalRecord
) -> WelfareFactors:
    stored = profile.factors(animal.days_in_shelter)
    changes = updates.model_dump(
        exclude_none=True,
        include={"kennel_stress_level", "medical_score", "behavioral_score"},
    )
    return stored.model_copy(update=changes)
