"""
Tests for shelterrisk.recalculation -- Organization-Wide Score Refresh.

Covers: overridden profiles left untouched, per-animal failure isolation,
malformed factor data, active-care filtering, cancellation, enumeration
failure, emitted events, idempotence, and an override landing mid-pass.
"""

from __future__ import annotations

import logging
import threading

import pytest

from shelterrisk.config import EngineSettings
from shelterrisk.errors import PersistenceError
from shelterrisk.events import RiskEventLog, RiskEventType
from shelterrisk.models import (
    ActingContext,
    AnimalRecord,
    AnimalStatus,
    KennelStressLevel,
    RiskProfile,
    RiskSeverity,
)
from shelterrisk.recalculation import SYSTEM_ACTOR, RecalculationOrchestrator
from shelterrisk.service import RiskService
from shelterrisk.store import InMemoryRiskStore


SETTINGS = EngineSettings(max_workers=3)


def _add(store: InMemoryRiskStore, animal_id: str, days: int = 10, **profile) -> None:
    store.add_animal(
        AnimalRecord(
            animal_id=animal_id,
            organization_id=profile.pop("organization_id", "org_a"),
            name=f"Animal {animal_id}",
            status=profile.pop("status", AnimalStatus.IN_SHELTER),
            days_in_shelter=days,
        ),
        RiskProfile(animal_id=animal_id, **profile),
    )


def _make_store(count: int = 5) -> InMemoryRiskStore:
    store = InMemoryRiskStore()
    for i in range(1, count + 1):
        _add(store, f"a{i}", medical_score=i, kennel_stress_level=KennelStressLevel.MILD)
    return store


class FailingWriteStore(InMemoryRiskStore):
    """Raises on writes for the given animals."""

    def __init__(self, failing: set[str]) -> None:
        super().__init__()
        self.failing = failing

    def update_profile(self, animal_id, fields, *, unless_overridden=False):
        if animal_id in self.failing:
            raise RuntimeError(f"write failed for {animal_id}")
        return super().update_profile(
            animal_id, fields, unless_overridden=unless_overridden
        )


class CorruptRowStore(InMemoryRiskStore):
    """Returns out-of-range factor data for one animal."""

    def list_active_animals(self, organization_id):
        rows = super().list_active_animals(organization_id)
        for row in rows:
            if row.animal_id == "a2":
                row.factors["medical_score"] = 42
        return rows


class UnreachableStore(InMemoryRiskStore):
    def list_active_animals(self, organization_id):
        raise ConnectionError("database unreachable")


class MissingFactorStore(InMemoryRiskStore):
    """Drops ``medical_score`` from the stored factors of ``a2``."""

    def list_active_animals(self, organization_id):
        rows = super().list_active_animals(organization_id)
        for row in rows:
            if row.animal_id == "a2":
                del row.factors["medical_score"]
        return rows


class CancellingStore(InMemoryRiskStore):
    """Sets the cancel event while the first write is in flight."""

    def __init__(self, cancel: threading.Event) -> None:
        super().__init__()
        self.cancel = cancel

    def update_profile(self, animal_id, fields, *, unless_overridden=False):
        self.cancel.set()
        return super().update_profile(
            animal_id, fields, unless_overridden=unless_overridden
        )


class RacingOverrideStore(InMemoryRiskStore):
    """Applies an override to ``a2`` right after the orchestrator reads it."""

    def get_profile(self, animal_id):
        profile = super().get_profile(animal_id)
        if animal_id == "a2" and not profile.is_manual_override:
            super().update_profile(animal_id, {
                "urgency_score": 5,
                "risk_severity": RiskSeverity.LOW,
                "is_manual_override": True,
                "override_reason": "Adopter meet-and-greet went well",
                "override_by": "staff_9",
            })
        return profile


# ---------------------------------------------------------------------------
# 1. Overrides survive recalculation
# ---------------------------------------------------------------------------

class TestOverridePrecedence:
    def test_overridden_profile_left_untouched(self):
        store = InMemoryRiskStore()
        _add(store, "a1", days=40, urgency_score=85,
             risk_severity=RiskSeverity.CRITICAL, medical_score=10,
             behavioral_score=8, kennel_stress_level=KennelStressLevel.SEVERE)
        _add(store, "a2", medical_score=3)
        log = RiskEventLog()
        service = RiskService(store, log, SETTINGS)
        ctx = ActingContext(user_id="staff_1", organization_id="org_a")

        service.override(
            "a1",
            {"urgency_score": 30, "risk_severity": "LOW",
             "reason": "Assessed calm by behavior team"},
            ctx,
        )
        updated = service.recalculate_organization("org_a")

        assert updated == 1
        profile = store.get_profile("a1")
        assert profile.urgency_score == 30
        assert profile.risk_severity == RiskSeverity.LOW
        assert profile.is_manual_override

    def test_report_counts_skipped_overrides(self):
        store = _make_store(3)
        store.update_profile("a2", {
            "is_manual_override": True,
            "override_reason": "Hold pending vet review",
            "override_by": "staff_1",
        })
        report = RecalculationOrchestrator(store, RiskEventLog(), SETTINGS).run("org_a")
        assert report.total == 3
        assert report.updated == 2
        assert report.skipped_overrides == 1
        assert report.failed == []

    def test_override_landing_mid_pass_wins(self):
        store = RacingOverrideStore()
        for i in range(1, 4):
            _add(store, f"a{i}", medical_score=9)
        report = RecalculationOrchestrator(store, RiskEventLog(), SETTINGS).run("org_a")
        assert report.updated == 2
        assert report.skipped_overrides == 1
        profile = store.get_profile("a2")
        assert profile.urgency_score == 5
        assert profile.override_by == "staff_9"


# ---------------------------------------------------------------------------
# 2. Partial failure
# ---------------------------------------------------------------------------

class TestPartialFailure:
    def test_one_failed_write_does_not_abort_batch(self, caplog):
        store = FailingWriteStore({"a3"})
        for i in range(1, 6):
            _add(store, f"a{i}", medical_score=i)
        orchestrator = RecalculationOrchestrator(store, RiskEventLog(), SETTINGS)

        with caplog.at_level(logging.ERROR, logger="shelterrisk.recalculation"):
            updated = orchestrator.recalculate("org_a")

        assert updated == 4
        assert any(
            "a3" in record.getMessage()
            for record in caplog.records
            if record.levelno == logging.ERROR
        )
        assert store.get_profile("a3").urgency_score == 0
        assert store.get_profile("a5").urgency_score == 25

    def test_failed_animals_listed_in_report(self):
        store = FailingWriteStore({"a1", "a4"})
        for i in range(1, 6):
            _add(store, f"a{i}")
        report = RecalculationOrchestrator(store, RiskEventLog(), SETTINGS).run("org_a")
        assert report.updated == 3
        assert sorted(report.failed) == ["a1", "a4"]

    def test_malformed_factors_skipped(self):
        store = CorruptRowStore()
        for i in range(1, 4):
            _add(store, f"a{i}", medical_score=5)
        report = RecalculationOrchestrator(store, RiskEventLog(), SETTINGS).run("org_a")
        assert report.updated == 2
        assert report.failed == ["a2"]

    def test_missing_factor_fails_without_overwriting(self, caplog):
        store = MissingFactorStore()
        _add(store, "a1", medical_score=9)
        _add(store, "a2", days=20, medical_score=9, behavioral_score=3,
             kennel_stress_level=KennelStressLevel.MODERATE)
        _add(store, "a3", medical_score=9)
        before = store.get_profile("a2")

        with caplog.at_level(logging.ERROR, logger="shelterrisk.recalculation"):
            report = RecalculationOrchestrator(store, RiskEventLog(), SETTINGS).run("org_a")

        assert report.updated == 2
        assert report.failed == ["a2"]
        assert store.get_profile("a2") == before
        assert any("a2" in record.getMessage() for record in caplog.records)

    def test_enumeration_failure_is_fatal(self):
        orchestrator = RecalculationOrchestrator(UnreachableStore(), RiskEventLog())
        with pytest.raises(PersistenceError):
            orchestrator.recalculate("org_a")


# ---------------------------------------------------------------------------
# 3. Scope
# ---------------------------------------------------------------------------

class TestScope:
    def test_only_active_care_animals_rescored(self):
        store = InMemoryRiskStore()
        _add(store, "a1", medical_score=5)
        _add(store, "a2", medical_score=5, status=AnimalStatus.IN_FOSTER)
        _add(store, "a3", medical_score=5, status=AnimalStatus.ADOPTED)
        _add(store, "a4", medical_score=5, status=AnimalStatus.TRANSFERRED)
        _add(store, "a5", medical_score=5, organization_id="org_b")

        updated = RecalculationOrchestrator(store, RiskEventLog(), SETTINGS).recalculate("org_a")

        assert updated == 2
        assert store.get_profile("a3").urgency_score == 0
        assert store.get_profile("a5").urgency_score == 0

    def test_empty_organization(self):
        report = RecalculationOrchestrator(InMemoryRiskStore(), RiskEventLog()).run("org_a")
        assert report.total == 0
        assert report.updated == 0

    def test_scores_follow_current_factors(self):
        store = InMemoryRiskStore()
        _add(store, "a1", days=10, medical_score=8, behavioral_score=2,
             kennel_stress_level=KennelStressLevel.MODERATE)
        RecalculationOrchestrator(store, RiskEventLog(), SETTINGS).recalculate("org_a")
        profile = store.get_profile("a1")
        assert profile.urgency_score == 53
        assert profile.risk_severity == RiskSeverity.ELEVATED

    def test_idempotent(self):
        store = _make_store()
        orchestrator = RecalculationOrchestrator(store, RiskEventLog(), SETTINGS)
        orchestrator.recalculate("org_a")
        first = [store.get_profile(f"a{i}").urgency_score for i in range(1, 6)]
        orchestrator.recalculate("org_a")
        second = [store.get_profile(f"a{i}").urgency_score for i in range(1, 6)]
        assert first == second


# ---------------------------------------------------------------------------
# 4. Events and cancellation
# ---------------------------------------------------------------------------

class TestEventsAndCancellation:
    def test_event_per_written_profile(self):
        store = _make_store(4)
        log = RiskEventLog()
        RecalculationOrchestrator(store, log, SETTINGS).recalculate("org_a")
        events = log.query("org_a", event_type=RiskEventType.RISK_UPDATED)
        assert len(events) == 4
        assert all(e.actor_id == SYSTEM_ACTOR for e in events)
        assert all(e.payload.source == "recalculation" for e in events)
        assert log.verify_chain() == (True, None)

    def test_bulk_events_can_be_disabled(self):
        store = _make_store(4)
        log = RiskEventLog()
        settings = EngineSettings(emit_bulk_events=False)
        assert RecalculationOrchestrator(store, log, settings).recalculate("org_a") == 4
        assert len(log) == 0

    def test_cancelled_before_start(self):
        store = _make_store()
        cancel = threading.Event()
        cancel.set()
        report = RecalculationOrchestrator(store, RiskEventLog(), SETTINGS).run(
            "org_a", cancel_event=cancel
        )
        assert report.cancelled
        assert report.updated == 0
        assert report.not_started == 5
        assert store.get_profile("a5").urgency_score == 0

    def test_cancelled_mid_pass_finishes_in_flight_write(self):
        cancel = threading.Event()
        store = CancellingStore(cancel)
        for i in range(1, 9):
            _add(store, f"a{i}", medical_score=5)
        settings = EngineSettings(max_workers=1)

        report = RecalculationOrchestrator(store, RiskEventLog(), settings).run(
            "org_a", cancel_event=cancel
        )

        assert report.cancelled
        assert report.updated == 1
        assert report.not_started == 7
        assert report.failed == []
        assert store.get_profile("a1").urgency_score == 25
        assert all(store.get_profile(f"a{i}").urgency_score == 0 for i in range(2, 9))

    def test_report_timestamps(self):
        report = RecalculationOrchestrator(_make_store(), RiskEventLog(), SETTINGS).run("org_a")
        assert report.finished_at is not None
        assert report.finished_at >= report.started_at
        assert not report.cancelled
