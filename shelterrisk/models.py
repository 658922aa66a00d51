"""
Core data models for the ShelterRisk scoring engine.

A ``RiskProfile`` exists for every animal in care and is created alongside
the animal record.  Its score and severity are written by exactly two
paths: automatic scoring and staff override (see ``shelterrisk.profiles``).
"""

from __future__ import annotations

import enum
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class RiskSeverity(str, enum.Enum):
    """Five-tier urgency classification.

    * ``CRITICAL`` -- immediate intervention needed.
    * ``HIGH``     -- priority attention required.
    * ``ELEVATED`` -- close monitoring recommended.
    * ``MODERATE`` -- standard care protocols.
    * ``LOW``      -- routine monitoring.
    """

    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    ELEVATED = "ELEVATED"
    MODERATE = "MODERATE"
    LOW = "LOW"


class KennelStressLevel(str, enum.Enum):
    """Observed kennel stress, ordered from none to critical."""

    NONE = "NONE"
    MILD = "MILD"
    MODERATE = "MODERATE"
    SEVERE = "SEVERE"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _KENNEL_RANK[self]


_KENNEL_RANK = {
    KennelStressLevel.NONE: 0,
    KennelStressLevel.MILD: 1,
    KennelStressLevel.MODERATE: 2,
    KennelStressLevel.SEVERE: 3,
    KennelStressLevel.CRITICAL: 4,
}


class AnimalStatus(str, enum.Enum):
    """Lifecycle status of an animal record."""

    IN_SHELTER = "IN_SHELTER"
    IN_FOSTER = "IN_FOSTER"
    IN_MEDICAL = "IN_MEDICAL"
    AVAILABLE = "AVAILABLE"
    PENDING = "PENDING"
    ADOPTED = "ADOPTED"
    TRANSFERRED = "TRANSFERRED"
    RETURNED_TO_OWNER = "RETURNED_TO_OWNER"
    DECEASED = "DECEASED"


ACTIVE_CARE_STATUSES: frozenset[AnimalStatus] = frozenset({
    AnimalStatus.IN_SHELTER,
    AnimalStatus.IN_FOSTER,
    AnimalStatus.IN_MEDICAL,
    AnimalStatus.AVAILABLE,
})
"""Statuses counted as currently under the shelter's responsibility."""


class RiskReason(str, enum.Enum):
    """Tags explaining which welfare factors drove an automatic score."""

    MEDICAL_URGENT = "MEDICAL_URGENT"
    BEHAVIORAL_DECLINE = "BEHAVIORAL_DECLINE"
    KENNEL_STRESS = "KENNEL_STRESS"
    LONG_LOS = "LONG_LOS"


def utc_now() -> datetime:
    """Timezone-aware current UTC time; the default engine clock."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------

class ActingContext(BaseModel):
    """The acting user and organization for a core call.

    Supplied by the identity layer and trusted unchecked.
    """

    user_id: str = Field(..., min_length=1, description="Acting staff member.")
    organization_id: str = Field(
        ...,
        min_length=1,
        description="Organization the caller is acting for (isolation key).",
    )


class WelfareFactors(BaseModel):
    """Raw welfare signals fed to the score calculator."""

    medical_score: int = Field(
        default=0,
        ge=0,
        le=10,
        description="Medical urgency (0=healthy, 10=critical).",
    )
    behavioral_score: int = Field(
        default=0,
        ge=0,
        le=10,
        description="Behavioral concern (0=none, 10=severe decline).",
    )
    kennel_stress_level: KennelStressLevel = Field(
        default=KennelStressLevel.NONE,
        description="Currently observed kennel stress.",
    )
    days_in_shelter: int = Field(
        default=0,
        ge=0,
        description="Whole days since intake.",
    )


class RiskProfile(BaseModel):
    """Risk profile for a single animal (one per animal, never deleted
    while the animal record exists).

    When ``is_manual_override`` is False, ``risk_severity`` is always the
    deterministic mapping of ``urgency_score``.  When True, both were set
    by a staff member and automatic scoring must leave them alone.
    """

    animal_id: str = Field(..., min_length=1, description="Owning animal.")
    urgency_score: int = Field(default=0, ge=0, le=100)
    risk_severity: RiskSeverity = Field(default=RiskSeverity.LOW)
    kennel_stress_level: KennelStressLevel = Field(default=KennelStressLevel.NONE)
    medical_score: int = Field(default=0, ge=0, le=10)
    behavioral_score: int = Field(default=0, ge=0, le=10)
    risk_reasons: list[RiskReason] = Field(
        default_factory=list,
        description="Ordered tags for the factors that drove the score.",
    )
    is_manual_override: bool = Field(default=False)
    override_reason: Optional[str] = Field(default=None)
    override_by: Optional[str] = Field(default=None)
    public_visibility: bool = Field(
        default=False,
        description="Whether risk information is exposed publicly.",
    )
    rescue_visibility: bool = Field(
        default=True,
        description="Whether risk information is exposed to rescue partners.",
    )
    last_calculated: datetime = Field(
        default_factory=utc_now,
        description="UTC time of the most recent score-affecting write.",
    )

    @model_validator(mode="after")
    def override_fields_travel_together(self) -> "RiskProfile":
        if self.is_manual_override:
            if not self.override_reason or not self.override_by:
                raise ValueError(
                    "override_reason and override_by are required when "
                    "is_manual_override is set"
                )
        elif self.override_reason is not None or self.override_by is not None:
            raise ValueError(
                "override_reason and override_by must be cleared when "
                "is_manual_override is not set"
            )
        return self

    def factors(self, days_in_shelter: int) -> WelfareFactors:
        """Return the stored welfare factors combined with time in care."""
        return WelfareFactors(
            medical_score=self.medical_score,
            behavioral_score=self.behavioral_score,
            kennel_stress_level=self.kennel_stress_level,
            days_in_shelter=days_in_shelter,
        )


class AnimalRecord(BaseModel):
    """Denormalized animal snapshot held by the persistence collaborator."""

    animal_id: str = Field(..., min_length=1)
    organization_id: str = Field(..., min_length=1)
    name: str = Field(default="")
    species: str = Field(default="OTHER")
    status: AnimalStatus = Field(default=AnimalStatus.IN_SHELTER)
    days_in_shelter: int = Field(default=0, ge=0)
    primary_photo_url: Optional[str] = Field(default=None)

    @property
    def in_active_care(self) -> bool:
        return self.status in ACTIVE_CARE_STATUSES


class ActiveAnimal(BaseModel):
    """A row returned when enumerating an organization's active animals.

    ``factors`` is kept as the raw stored mapping; it is validated per
    animal by the recalculation pass so one malformed row cannot abort
    the batch.
    """

    animal_id: str
    status: AnimalStatus
    factors: dict[str, Any] = Field(default_factory=dict)


class OverrideRequest(BaseModel):
    """Staff request to supersede the automatic classification.

    The staff member's score and severity are authoritative: they are not
    checked against the automatic severity mapping.
    """

    urgency_score: int = Field(..., ge=0, le=100)
    risk_severity: RiskSeverity
    reason: str = Field(
        ...,
        min_length=10,
        description="Why the automatic classification is being superseded.",
    )
    public_visibility: Optional[bool] = Field(default=None)
    rescue_visibility: Optional[bool] = Field(default=None)

    @field_validator("reason", mode="before")
    @classmethod
    def strip_reason(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v
