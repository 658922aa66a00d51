"""
Risk Profile Store -- Persistence Contract and In-Memory Adapter.

The engine reads and writes risk profiles only through the
``RiskProfileStore`` contract.  A production adapter (SQL, document store,
...) implements the same methods and must serialize writes per animal,
e.g. with row-level locking or optimistic versioning, so a concurrent quick
update and override cannot interleave into an inconsistent profile.

``InMemoryRiskStore`` is the reference adapter used by the tests and the
walkthrough script.  It holds one lock per animal and hands out deep
copies so callers can never mutate stored state by accident.
"""

from __future__ import annotations

import copy
import threading
from typing import Any, Mapping, Optional, Protocol

from pydantic import ValidationError

from shelterrisk.errors import NotFoundError, OverrideActiveError, PersistenceError
from shelterrisk.models import (
    ActiveAnimal,
    AnimalRecord,
    AnimalStatus,
    RiskProfile,
    RiskSeverity,
)


# ---------------------------------------------------------------------------
# Store contract
# ---------------------------------------------------------------------------

class RiskProfileStore(Protocol):
    """Persistence collaborator consumed by the engine."""

    def get_profile(self, animal_id: str) -> RiskProfile:
        """Raises ``NotFoundError`` if no profile exists."""
        ...

    def get_animal(self, animal_id: str) -> AnimalRecord:
        """Raises ``NotFoundError`` if no animal exists."""
        ...

    def update_profile(
        self,
        animal_id: str,
        fields: Mapping[str, Any],
        *,
        unless_overridden: bool = False,
    ) -> RiskProfile:
        """Partial update; only supplied fields change.

        With ``unless_overridden`` the write is rejected with
        ``OverrideActiveError`` if the stored profile is overridden at the
        moment of writing.
        """
        ...

    def list_active_animals(self, organization_id: str) -> list[ActiveAnimal]:
        ...

    def group_profiles_by_severity(self, organization_id: str) -> dict[RiskSeverity, int]:
        ...

    def list_top_at_risk(
        self, organization_id: str, min_score: int, limit: int
    ) -> list[tuple[AnimalRecord, RiskProfile]]:
        ...


# ---------------------------------------------------------------------------
# In-memory adapter
# ---------------------------------------------------------------------------

class InMemoryRiskStore:
    """Thread-safe, in-process implementation of ``RiskProfileStore``.

    Example::

        store = InMemoryRiskStore()
        store.add_animal(
            AnimalRecord(animal_id="a1", organization_id="org_a", name="Biscuit"),
            RiskProfile(animal_id="a1", medical_score=7),
        )
    """

    def __init__(self) -> None:
        self._animals: dict[str, AnimalRecord] = {}
        self._profiles: dict[str, RiskProfile] = {}
        self._locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    # -- seeding --

    def add_animal(
        self, animal: AnimalRecord, profile: Optional[RiskProfile] = None
    ) -> None:
        """Register an animal and its risk profile.

        The profile is created alongside the animal; a default profile is
        used when none is supplied.

        Raises:
            ValueError: If the animal is already registered or the profile
                belongs to a different animal.
        """
        profile = profile or RiskProfile(animal_id=animal.animal_id)
        if profile.animal_id != animal.animal_id:
            raise ValueError(
                f"Profile animal_id '{profile.animal_id}' does not match "
                f"animal '{animal.animal_id}'."
            )
        with self._registry_lock:
            if animal.animal_id in self._animals:
                raise ValueError(f"Animal '{animal.animal_id}' already registered.")
            self._animals[animal.animal_id] = animal.model_copy(deep=True)
            self._profiles[animal.animal_id] = profile.model_copy(deep=True)
            self._locks[animal.animal_id] = threading.Lock()

    def set_animal_status(self, animal_id: str, status: AnimalStatus) -> None:
        with self._lock_for(animal_id, "Animal"):
            animal = self._require_animal(animal_id)
            self._animals[animal_id] = animal.model_copy(update={"status": status})

    # -- reads --

    def get_profile(self, animal_id: str) -> RiskProfile:
        with self._lock_for(animal_id):
            return self._require_profile(animal_id).model_copy(deep=True)

    def get_animal(self, animal_id: str) -> AnimalRecord:
        with self._lock_for(animal_id, "Animal"):
            return self._require_animal(animal_id).model_copy(deep=True)

    def list_active_animals(self, organization_id: str) -> list[ActiveAnimal]:
        rows = []
        for animal, profile in self._snapshot(organization_id):
            rows.append(ActiveAnimal(
                animal_id=animal.animal_id,
                status=animal.status,
                factors={
                    "medical_score": profile.medical_score,
                    "behavioral_score": profile.behavioral_score,
                    "kennel_stress_level": profile.kennel_stress_level.value,
                    "days_in_shelter": animal.days_in_shelter,
                },
            ))
        return rows

    def group_profiles_by_severity(self, organization_id: str) -> dict[RiskSeverity, int]:
        # Only severities that occur are present, like a SQL GROUP BY.
        counts: dict[RiskSeverity, int] = {}
        for _, profile in self._snapshot(organization_id):
            counts[profile.risk_severity] = counts.get(profile.risk_severity, 0) + 1
        return counts

    def list_top_at_risk(
        self, organization_id: str, min_score: int, limit: int
    ) -> list[tuple[AnimalRecord, RiskProfile]]:
        rows = [
            (animal, profile)
            for animal, profile in self._snapshot(organization_id)
            if profile.urgency_score >= min_score
        ]
        rows.sort(key=lambda row: (-row[1].urgency_score, row[0].animal_id))
        return rows[:limit]

    # -- writes --

    def update_profile(
        self,
        animal_id: str,
        fields: Mapping[str, Any],
        *,
        unless_overridden: bool = False,
    ) -> RiskProfile:
        rejected = set(fields) - (set(RiskProfile.model_fields) - {"animal_id"})
        if rejected:
            raise PersistenceError(
                f"Cannot update risk profile fields {sorted(rejected)}."
            )

        with self._lock_for(animal_id):
            current = self._require_profile(animal_id)
            if unless_overridden and current.is_manual_override:
                raise OverrideActiveError(animal_id)

            merged = current.model_dump()
            merged.update(copy.deepcopy(dict(fields)))
            try:
                updated = RiskProfile.model_validate(merged)
            except ValidationError as exc:
                raise PersistenceError(
                    f"Rejected write for animal '{animal_id}': {exc}"
                ) from exc
            self._profiles[animal_id] = updated
            return updated.model_copy(deep=True)

    # -- helpers --

    def _lock_for(self, animal_id: str, kind: str = "Risk profile") -> threading.Lock:
        # Locks are created only by add_animal; unknown ids never get one.
        with self._registry_lock:
            lock = self._locks.get(animal_id)
        if lock is None:
            raise NotFoundError(kind, animal_id)
        return lock

    def _require_profile(self, animal_id: str) -> RiskProfile:
        if animal_id not in self._profiles:
            raise NotFoundError("Risk profile", animal_id)
        return self._profiles[animal_id]

    def _require_animal(self, animal_id: str) -> AnimalRecord:
        if animal_id not in self._animals:
            raise NotFoundError("Animal", animal_id)
        return self._animals[animal_id]

    def _snapshot(self, organization_id: str) -> list[tuple[AnimalRecord, RiskProfile]]:
        """Active-care animals of one organization with their profiles."""
        with self._registry_lock:
            animal_ids = sorted(self._animals)

        rows = []
        for animal_id in animal_ids:
            with self._lock_for(animal_id):
                animal = self._animals[animal_id]
                if animal.organization_id != organization_id or not animal.in_active_care:
                    continue
                rows.append((
                    animal.model_copy(deep=True),
                    self._profiles[animal_id].model_copy(deep=True),
                ))
        return rows

    def __len__(self) -> int:
        return len(self._animals)
