"""
Recalculation Orchestrator -- Organization-Wide Score Refresh.

Re-scores every animal an organization currently has in active care
(in shelter, in foster, in medical care, or available for adoption),
skipping profiles under a manual override.

**Concurrency:** a fixed-size ``ThreadPoolExecutor`` works through the
organization's animal list.  Each worker independently reads, computes
and writes one profile; animals never depend on one another and no
cross-animal transaction is taken.  A caller reading profiles mid-pass may
see a mix of old and new scores.  The pass is idempotent and safe to
re-run.

**Partial failure:** a failure for one animal (store write error,
malformed or missing factor data, animal removed mid-pass) is logged and excluded
from the updated count.  The rest of the batch still runs.  Only a
failure to enumerate the organization's animals is fatal.

**Cancellation:** setting the ``cancel_event`` stops workers from starting
new animals.  Writes already in flight complete, so no profile is left
half-written.
"""

from __future__ import annotations

import enum
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Optional

from pydantic import BaseModel, Field

from shelterrisk.config import DEFAULT_SETTINGS, EngineSettings
from shelterrisk.errors import OverrideActiveError, PersistenceError, RiskEngineError
from shelterrisk.events import (
    EventSink,
    RiskEvent,
    RiskEventType,
    RiskUpdatedPayload,
    append_best_effort,
)
from shelterrisk.models import ACTIVE_CARE_STATUSES, ActiveAnimal, WelfareFactors, utc_now
from shelterrisk.profiles import computed_score_fields
from shelterrisk.scoring import compute
from shelterrisk.store import RiskProfileStore


logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "SYSTEM"

_FACTOR_KEYS = frozenset(WelfareFactors.model_fields)


class _Outcome(str, enum.Enum):
    UPDATED = "UPDATED"
    SKIPPED_OVERRIDE = "SKIPPED_OVERRIDE"
    FAILED = "FAILED"
    NOT_STARTED = "NOT_STARTED"


class RecalculationReport(BaseModel):
    """Summary of one organization-wide recalculation pass."""

    organization_id: str
    total: int = Field(default=0, description="Active-care animals enumerated.")
    updated: int = Field(default=0, description="Profiles actually written.")
    skipped_overrides: int = Field(default=0)
    failed: list[str] = Field(
        default_factory=list,
        description="Animal IDs whose recalculation failed.",
    )
    not_started: int = Field(
        default=0,
        description="Animals never attempted because the pass was cancelled.",
    )
    cancelled: bool = False
    started_at: datetime
    finished_at: Optional[datetime] = None


class RecalculationOrchestrator:
    """Drives the score calculator across an organization's animals.

    Example::

        orchestrator = RecalculationOrchestrator(store, event_log)
        updated = orchestrator.recalculate("org_a")
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

    def recalculate(
        self,
        organization_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """Recalculate every eligible profile and return how many were written.

        Overridden profiles and failed animals do not count.

        Raises:
            PersistenceError: If the organization's animals cannot be
                enumerated at all.
        """
        return self.run(organization_id, cancel_event).updated

    def run(
        self,
        organization_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> RecalculationReport:
        """Recalculate and return a detailed ``RecalculationReport``."""
        cancel_event = cancel_event or threading.Event()
        report = RecalculationReport(
            organization_id=organization_id,
            started_at=self._clock(),
        )

        try:
            rows = self._store.list_active_animals(organization_id)
        except RiskEngineError:
            raise
        except Exception as exc:
            raise PersistenceError(
                f"Cannot enumerate animals for organization '{organization_id}'"
            ) from exc

        rows = [row for row in rows if row.status in ACTIVE_CARE_STATUSES]
        report.total = len(rows)

        with ThreadPoolExecutor(
            max_workers=self._settings.max_workers,
            thread_name_prefix="recalc",
        ) as pool:
            futures = [
                (
                    row.animal_id,
                    pool.submit(self._recalculate_one, organization_id, row, cancel_event),
                )
                for row in rows
            ]
            for animal_id, future in futures:
                outcome = future.result()
                if outcome is _Outcome.UPDATED:
                    report.updated += 1
                elif outcome is _Outcome.SKIPPED_OVERRIDE:
                    report.skipped_overrides += 1
                elif outcome is _Outcome.FAILED:
                    report.failed.append(animal_id)
                else:
                    report.not_started += 1

        report.cancelled = cancel_event.is_set()
        report.finished_at = self._clock()
        logger.info(
            "Recalculated organization %s: updated=%d total=%d skipped_overrides=%d "
            "failed=%d cancelled=%s",
            organization_id,
            report.updated,
            report.total,
            report.skipped_overrides,
            len(report.failed),
            report.cancelled,
        )
        return report

    # -- per-animal work --

    def _recalculate_one(
        self,
        organization_id: str,
        row: ActiveAnimal,
        cancel_event: threading.Event,
    ) -> _Outcome:
        if cancel_event.is_set():
            return _Outcome.NOT_STARTED
        try:
            return self._read_compute_write(organization_id, row)
        except OverrideActiveError:
            # Overridden between our read and the guarded write.
            return _Outcome.SKIPPED_OVERRIDE
        except Exception:
            logger.exception(
                "Failed to recalculate risk profile for animal %s (org %s)",
                row.animal_id,
                organization_id,
            )
            return _Outcome.FAILED

    def _read_compute_write(self, organization_id: str, row: ActiveAnimal) -> _Outcome:
        factors = _stored_factors(row)
        profile = self._store.get_profile(row.animal_id)
        if profile.is_manual_override:
            return _Outcome.SKIPPED_OVERRIDE

        result = compute(factors, self._settings)
        now = self._clock()
        updated = self._store.update_profile(
            row.animal_id,
            computed_score_fields(factors, result, now),
            unless_overridden=True,
        )

        if self._settings.emit_bulk_events:
            append_best_effort(self._events, RiskEvent(
                animal_id=row.animal_id,
                organization_id=organization_id,
                event_type=RiskEventType.RISK_UPDATED,
                payload=RiskUpdatedPayload(
                    previous_score=profile.urgency_score,
                    new_score=updated.urgency_score,
                    previous_severity=profile.risk_severity,
                    new_severity=updated.risk_severity,
                    reasons=updated.risk_reasons,
                    source="recalculation",
                ),
                actor_id=SYSTEM_ACTOR,
                occurred_at=now,
            ))
        return _Outcome.UPDATED


def _stored_factors(row: ActiveAnimal) -> WelfareFactors:
    """Validate a stored factor row; every factor must be present.

    ``WelfareFactors`` would default an omitted factor to zero and the
    rescore would then write that zero back over the stored value.

    Raises:
        PersistenceError: If any factor is missing from the row.
        pydantic.ValidationError: If a factor is out of range.
    """
    missing = _FACTOR_KEYS - set(row.factors)
    if missing:
        raise PersistenceError(
            f"Stored factors for animal '{row.animal_id}' are missing "
            f"{sorted(missing)}"
        )
    return WelfareFactors.model_validate(row.factors)
