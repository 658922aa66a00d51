"""
Risk Event Log -- Append-Only, Hash-Chained Audit Sink.

Every score-affecting action (quick update, override, override clearance,
and each profile written by a bulk recalculation) is recorded as a
``RiskEvent``.  Events are write-once from the engine's point of view: the
sink exposes ``append_event`` and read-only queries, nothing else.

Each event carries a payload whose shape is fixed by its ``event_type``.
A ``RISK_UPDATED`` event with an override payload (or vice versa) is
rejected at construction.

``RiskEventLog`` is the in-process reference sink.  Entries are linked by
a SHA-256 hash chain so ``verify_chain()`` detects after-the-fact edits.
A production deployment supplies its own ``EventSink`` backed by durable
storage and owns retry/backoff for appends.
"""

from __future__ import annotations

import enum
import hashlib
import json
import logging
import threading
import uuid
from datetime import datetime
from typing import Iterable, Optional, Protocol, Union

from pydantic import BaseModel, Field, model_validator

from shelterrisk.models import RiskReason, RiskSeverity, utc_now


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event types and payloads
# ---------------------------------------------------------------------------

class RiskEventType(str, enum.Enum):
    """Kinds of score-affecting actions recorded in the audit sink."""

    RISK_UPDATED = "RISK_UPDATED"
    RISK_OVERRIDDEN = "RISK_OVERRIDDEN"
    OVERRIDE_CLEARED = "OVERRIDE_CLEARED"


DASHBOARD_EVENT_TYPES: tuple[RiskEventType, ...] = (
    RiskEventType.RISK_UPDATED,
    RiskEventType.RISK_OVERRIDDEN,
)


class RiskUpdatedPayload(BaseModel):
    """Payload for an automatic score write."""

    previous_score: int = Field(..., ge=0, le=100)
    new_score: int = Field(..., ge=0, le=100)
    previous_severity: RiskSeverity
    new_severity: RiskSeverity
    reasons: list[RiskReason] = Field(default_factory=list)
    source: str = Field(
        default="quick_update",
        description="'quick_update' or 'recalculation'.",
    )
    notes: Optional[str] = Field(default=None, description="Staff notes on a quick update.")


class RiskOverriddenPayload(BaseModel):
    """Payload for a staff override."""

    previous_score: int = Field(..., ge=0, le=100)
    new_score: int = Field(..., ge=0, le=100)
    reason: str = Field(..., min_length=1)


class OverrideClearedPayload(BaseModel):
    """Payload for lifting an override and returning to automatic scoring."""

    previous_score: int = Field(..., ge=0, le=100)
    new_score: int = Field(..., ge=0, le=100)


RiskEventPayload = Union[RiskUpdatedPayload, RiskOverriddenPayload, OverrideClearedPayload]

_PAYLOAD_TYPES: dict[RiskEventType, type[BaseModel]] = {
    RiskEventType.RISK_UPDATED: RiskUpdatedPayload,
    RiskEventType.RISK_OVERRIDDEN: RiskOverriddenPayload,
    RiskEventType.OVERRIDE_CLEARED: OverrideClearedPayload,
}


# ---------------------------------------------------------------------------
# Event model
# ---------------------------------------------------------------------------

class RiskEvent(BaseModel):
    """A single audit entry for a score-affecting action."""

    event_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    animal_id: str = Field(..., min_length=1)
    organization_id: str = Field(
        ...,
        min_length=1,
        description="Scopes the event for multi-tenant queries.",
    )
    event_type: RiskEventType
    payload: RiskEventPayload
    actor_id: str = Field(
        ...,
        min_length=1,
        description="Staff user ID, or 'SYSTEM' for bulk recalculation.",
    )
    occurred_at: datetime = Field(default_factory=utc_now)
    previous_hash: str = Field(
        default="",
        description="SHA-256 of the previous entry; empty for the first entry.",
    )

    @model_validator(mode="before")
    @classmethod
    def payload_matches_event_type(cls, data):
        if not isinstance(data, dict):
            return data
        raw_type = data.get("event_type")
        payload = data.get("payload")
        try:
            event_type = RiskEventType(raw_type)
        except ValueError:
            return data  # field validation reports the bad event_type
        expected = _PAYLOAD_TYPES[event_type]
        if isinstance(payload, BaseModel):
            if not isinstance(payload, expected):
                raise ValueError(
                    f"{event_type.value} events require a {expected.__name__} "
                    f"payload, got {type(payload).__name__}"
                )
        elif isinstance(payload, dict):
            data = {**data, "payload": expected.model_validate(payload)}
        return data

    def canonical_bytes(self) -> bytes:
        """Deterministic byte representation used for hash chaining."""
        data = {
            "event_id": self.event_id,
            "animal_id": self.animal_id,
            "organization_id": self.organization_id,
            "event_type": self.event_type.value,
            "payload": self.payload.model_dump(mode="json"),
            "actor_id": self.actor_id,
            "occurred_at": self.occurred_at.isoformat(),
            "previous_hash": self.previous_hash,
        }
        return json.dumps(data, sort_keys=True, default=str).encode("utf-8")

    def compute_hash(self) -> str:
        return hashlib.sha256(self.canonical_bytes()).hexdigest()


# ---------------------------------------------------------------------------
# Sink contract
# ---------------------------------------------------------------------------

class EventSink(Protocol):
    """Audit collaborator consumed by the engine."""

    def append_event(self, event: RiskEvent) -> RiskEvent:
        ...

    def list_recent_events(
        self,
        organization_id: str,
        event_types: Iterable[RiskEventType],
        since: datetime,
        limit: int,
    ) -> list[RiskEvent]:
        ...


# ---------------------------------------------------------------------------
# In-memory sink
# ---------------------------------------------------------------------------

class RiskEventLog:
    """Append-only, tamper-evident event log with SHA-256 hash chaining.

    * **Append-only** -- no update or delete methods.
    * **Hash chain** -- each entry stores the hash of its predecessor;
      ``verify_chain()`` walks the log and reports the first broken link.
    * **Organization isolation** -- every query is scoped by
      ``organization_id``.

    Appends are serialized with a lock so recalculation workers can share
    one log.
    """

    def __init__(self) -> None:
        self._entries: list[RiskEvent] = []
        self._hashes: list[str] = []
        self._lock = threading.Lock()

    def append_event(self, event: RiskEvent) -> RiskEvent:
        """Append an event, linking it to the previous entry.

        Args:
            event: The event to record.

        Returns:
            The stored copy with ``previous_hash`` populated.
        """
        stored = event.model_copy(deep=True)
        with self._lock:
            stored.previous_hash = self._hashes[-1] if self._hashes else ""
            self._entries.append(stored)
            self._hashes.append(stored.compute_hash())
        return stored.model_copy(deep=True)

    def verify_chain(self) -> tuple[bool, Optional[int]]:
        """Walk the log and validate every hash link.

        Returns:
            ``(valid, broken_at)`` where ``broken_at`` is the index of the
            first broken link, or None when the chain is intact.
        """
        with self._lock:
            entries = list(self._entries)
            hashes = list(self._hashes)

        for i, entry in enumerate(entries):
            if i == 0:
                if entry.previous_hash != "":
                    return (False, 0)
            elif entry.previous_hash != entries[i - 1].compute_hash():
                return (False, i)
            if hashes[i] != entry.compute_hash():
                return (False, i)
        return (True, None)

    def query(
        self,
        organization_id: str,
        event_type: Optional[RiskEventType] = None,
        animal_id: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> list[RiskEvent]:
        """Return matching events for one organization, oldest first."""
        with self._lock:
            entries = list(self._entries)

        results = []
        for entry in entries:
            if entry.organization_id != organization_id:
                continue
            if event_type is not None and entry.event_type != event_type:
                continue
            if animal_id is not None and entry.animal_id != animal_id:
                continue
            if since is not None and entry.occurred_at < since:
                continue
            results.append(entry.model_copy(deep=True))
        return results

    def list_recent_events(
        self,
        organization_id: str,
        event_types: Iterable[RiskEventType],
        since: datetime,
        limit: int,
    ) -> list[RiskEvent]:
        """Return up to ``limit`` events at or after ``since``, newest first."""
        wanted = set(event_types)
        matches = [
            entry
            for entry in reversed(self.query(organization_id, since=since))
            if entry.event_type in wanted
        ]
        # Stable sort: same-instant events stay latest-appended first.
        matches.sort(key=lambda e: e.occurred_at, reverse=True)
        return matches[:limit]

    def __len__(self) -> int:
        return len(self._entries)


# ---------------------------------------------------------------------------
# Best-effort append
# ---------------------------------------------------------------------------

def append_best_effort(sink: EventSink, event: RiskEvent) -> bool:
    """Attempt a single append; log and swallow sink failures.

    The profile write is authoritative.  A missing audit event is a
    tolerated degradation, so sink errors never fail the scoring call.
    Retry and backoff belong to the sink.

    Returns:
        True if the event was appended.
    """
    try:
        sink.append_event(event)
    except Exception:
        logger.warning(
            "Failed to append %s event for animal %s (org %s)",
            event.event_type.value,
            event.animal_id,
            event.organization_id,
            exc_info=True,
        )
        return False
    return True
