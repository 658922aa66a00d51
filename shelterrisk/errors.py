"""
Error taxonomy for the ShelterRisk scoring engine.

* ``NotFoundError``        -- animal or risk profile does not exist.
* ``ForbiddenError``       -- animal belongs to another organization.
* ``RiskValidationError``  -- input rejected before any computation.
* ``PersistenceError``     -- store or event-sink adapter failure.
* ``OverrideActiveError``  -- automatic write attempted on an overridden
  profile.

None of these are retried by the engine.
"""

from __future__ import annotations


class RiskEngineError(Exception):
    """Base class for all scoring engine errors."""
    pass


class NotFoundError(RiskEngineError):
    """Raised when a referenced animal or risk profile does not exist."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class ForbiddenError(RiskEngineError):
    """Raised when an animal belongs to a different organization than the
    acting context."""

    def __init__(self, animal_id: str, organization_id: str) -> None:
        self.animal_id = animal_id
        self.organization_id = organization_id
        super().__init__(
            f"Animal '{animal_id}' does not belong to organization "
            f"'{organization_id}'."
        )


class RiskValidationError(RiskEngineError, ValueError):
    """Raised when factor values or override requests fail validation."""
    pass


class PersistenceError(RiskEngineError):
    """Raised when the store or event sink fails."""
    pass


class OverrideActiveError(RiskEngineError):
    """Raised when automatic scoring targets a manually overridden profile."""

    def __init__(self, animal_id: str) -> None:
        self.animal_id = animal_id
        super().__init__(
            f"Risk profile for animal '{animal_id}' is manually overridden; "
            "automatic scoring may not modify it."
        )
