"""
Dashboard Aggregator -- Organization Risk Posture Summary.

Produces a read-only view of an organization's risk posture:

* ``summary``        -- active-care profile count per severity tier, all
  five tiers present (zero-filled).
* ``top_at_risk``    -- up to 10 active-care animals scoring 60 or more,
  highest score first, ties broken by animal ID.
* ``recent_changes`` -- up to 20 ``RISK_UPDATED`` / ``RISK_OVERRIDDEN``
  events from the trailing 24 hours, newest first.

Aggregation never mutates profiles and never emits events.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Optional

from pydantic import BaseModel, Field

from shelterrisk.config import DEFAULT_SETTINGS, EngineSettings
from shelterrisk.errors import NotFoundError
from shelterrisk.events import DASHBOARD_EVENT_TYPES, EventSink, RiskEventType
from shelterrisk.models import RiskSeverity, utc_now
from shelterrisk.store import RiskProfileStore


class AtRiskAnimal(BaseModel):
    """Denormalized snapshot of a high-urgency animal."""

    animal_id: str
    name: str
    species: str
    urgency_score: int
    risk_severity: RiskSeverity
    days_in_shelter: int
    primary_photo_url: Optional[str] = None
    is_manual_override: bool = False


class RecentChange(BaseModel):
    """A recent score-affecting event, as shown on the dashboard."""

    event_id: str
    animal_id: str
    animal_name: Optional[str] = None
    event_type: RiskEventType
    previous_score: int
    new_score: int
    actor_id: str
    occurred_at: datetime


class DashboardView(BaseModel):
    """Read-only risk posture summary for one organization."""

    organization_id: str
    summary: dict[RiskSeverity, int] = Field(
        ...,
        description="Active-care profiles per severity, all tiers present.",
    )
    total_active: int
    top_at_risk: list[AtRiskAnimal] = Field(default_factory=list)
    recent_changes: list[RecentChange] = Field(default_factory=list)
    generated_at: datetime = Field(
        ...,
        description="Time of aggregation, not of the underlying data.",
    )

    @property
    def critical_count(self) -> int:
        return self.summary[RiskSeverity.CRITICAL]

    @property
    def high_risk_count(self) -> int:
        return self.summary[RiskSeverity.CRITICAL] + self.summary[RiskSeverity.HIGH]


class DashboardAggregator:
    """Builds ``DashboardView`` objects from the store and event sink."""

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

    def summarize(self, organization_id: str) -> DashboardView:
        """Aggregate the organization's current risk posture.

        Args:
            organization_id: Organization to summarize.

        Returns:
            A ``DashboardView``.
        """
        generated_at = self._clock()
        summary = self._severity_summary(organization_id)

        return DashboardView(
            organization_id=organization_id,
            summary=summary,
            total_active=sum(summary.values()),
            top_at_risk=self._top_at_risk(organization_id),
            recent_changes=self._recent_changes(organization_id, generated_at),
            generated_at=generated_at,
        )

    # -- sections --

    def _severity_summary(self, organization_id: str) -> dict[RiskSeverity, int]:
        grouped = self._store.group_profiles_by_severity(organization_id)
        return {severity: grouped.get(severity, 0) for severity in RiskSeverity}

    def _top_at_risk(self, organization_id: str) -> list[AtRiskAnimal]:
        settings = self._settings
        rows = self._store.list_top_at_risk(
            organization_id,
            settings.top_at_risk_min_score,
            settings.top_at_risk_limit,
        )
        entries = [
            AtRiskAnimal(
                animal_id=animal.animal_id,
                name=animal.name,
                species=animal.species,
                urgency_score=profile.urgency_score,
                risk_severity=profile.risk_severity,
                days_in_shelter=animal.days_in_shelter,
                primary_photo_url=animal.primary_photo_url,
                is_manual_override=profile.is_manual_override,
            )
            for animal, profile in rows
            if profile.urgency_score >= settings.top_at_risk_min_score
        ]
        # Adapters may order ties arbitrarily.
        entries.sort(key=lambda e: (-e.urgency_score, e.animal_id))
        return entries[: settings.top_at_risk_limit]

    def _recent_changes(
        self, organization_id: str, generated_at: datetime
    ) -> list[RecentChange]:
        settings = self._settings
        since = generated_at - timedelta(hours=settings.recent_changes_window_hours)
        events = self._events.list_recent_events(
            organization_id,
            DASHBOARD_EVENT_TYPES,
            since,
            settings.recent_changes_limit,
        )

        names: dict[str, Optional[str]] = {}
        changes = []
        for event in events:
            if event.animal_id not in names:
                names[event.animal_id] = self._animal_name(event.animal_id)
            changes.append(RecentChange(
                event_id=event.event_id,
                animal_id=event.animal_id,
                animal_name=names[event.animal_id],
                event_type=event.event_type,
                previous_score=event.payload.previous_score,
                new_score=event.payload.new_score,
                actor_id=event.actor_id,
                occurred_at=event.occurred_at,
            ))
        changes.sort(key=lambda c: c.occurred_at, reverse=True)
        return changes[: settings.recent_changes_limit]

    def _animal_name(self, animal_id: str) -> Optional[str]:
        try:
            return self._store.get_animal(animal_id).name
        except NotFoundError:
            return None
