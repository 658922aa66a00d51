"""
Synthetic Scenario: Shelter Risk Scoring Walkthrough
====================================================

This script demonstrates the full ShelterRisk scoring workflow using
entirely synthetic animals.  It simulates a small rescue organization
tracking the welfare of the animals in its care.

Steps demonstrated:
  1. Load engine settings from YAML
  2. Register synthetic animals
  3. Record quick welfare updates from kennel staff
  4. Apply a staff override and show it survives recalculation
  5. Run an organization-wide recalculation
  6. Print the risk dashboard
  7. Explain a score and verify the event log

Usage:
    python -m examples.synthetic_scenario
    # or: python examples/synthetic_scenario.py
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

# Ensure the project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from shelterrisk.config import DEFAULT_SETTINGS, load_settings_from_yaml
from shelterrisk.events import RiskEventLog
from shelterrisk.explanation import factor_catalog
from shelterrisk.models import (
    ActingContext,
    AnimalRecord,
    AnimalStatus,
    KennelStressLevel,
    RiskProfile,
)
from shelterrisk.service import RiskService
from shelterrisk.store import InMemoryRiskStore


def _banner(text: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    _banner("ShelterRisk Synthetic Scenario")
    print("All animals in this demo are synthetic.\n")

    # ------------------------------------------------------------------
    # Step 1: Load engine settings
    # ------------------------------------------------------------------
    _banner("Step 1: Load Engine Settings")

    sample_yaml = Path(__file__).parent / "engine_settings.yaml"
    if sample_yaml.exists():
        settings = load_settings_from_yaml(sample_yaml)
        print(f"Loaded settings from {sample_yaml.name}")
    else:
        settings = DEFAULT_SETTINGS
        print("Using built-in settings")
    print(json.dumps(factor_catalog(settings), indent=2))

    # ------------------------------------------------------------------
    # Step 2: Register animals
    # ------------------------------------------------------------------
    _banner("Step 2: Register Synthetic Animals")

    store = InMemoryRiskStore()
    event_log = RiskEventLog()
    service = RiskService(store, event_log, settings)
    ctx = ActingContext(user_id="kennel_lead_01", organization_id="demo_rescue")

    animals = [
        AnimalRecord(animal_id="dog-001", organization_id="demo_rescue",
                     name="Biscuit", species="DOG", days_in_shelter=10),
        AnimalRecord(animal_id="dog-002", organization_id="demo_rescue",
                     name="Pepper", species="DOG", days_in_shelter=60),
        AnimalRecord(animal_id="cat-001", organization_id="demo_rescue",
                     name="Miso", species="CAT", days_in_shelter=4,
                     status=AnimalStatus.IN_FOSTER),
        AnimalRecord(animal_id="cat-002", organization_id="demo_rescue",
                     name="Juniper", species="CAT", days_in_shelter=35,
                     status=AnimalStatus.ADOPTED),
    ]
    for animal in animals:
        store.add_animal(animal, RiskProfile(animal_id=animal.animal_id))
        print(f"Registered {animal.name} ({animal.animal_id}, {animal.status.value})")

    # ------------------------------------------------------------------
    # Step 3: Quick updates
    # ------------------------------------------------------------------
    _banner("Step 3: Quick Welfare Updates")

    result = service.compute_and_persist(
        "dog-001",
        {"medical_score": 8, "behavioral_score": 2,
         "kennel_stress_level": KennelStressLevel.MODERATE,
         "notes": "(Synthetic) Post-surgical recovery."},
        ctx,
    )
    print(f"Biscuit: score={result.urgency_score} severity={result.risk_severity.value}")

    result = service.compute_and_persist(
        "dog-002",
        {"medical_score": 10, "behavioral_score": 10,
         "kennel_stress_level": KennelStressLevel.CRITICAL},
        ctx,
    )
    print(f"Pepper: score={result.urgency_score} severity={result.risk_severity.value}")

    result = service.compute_and_persist("cat-001", {"behavioral_score": 3}, ctx)
    print(f"Miso: score={result.urgency_score} severity={result.risk_severity.value}")

    # ------------------------------------------------------------------
    # Step 4: Staff override
    # ------------------------------------------------------------------
    _banner("Step 4: Staff Override")

    overridden = service.override(
        "dog-002",
        {"urgency_score": 30, "risk_severity": "LOW",
         "reason": "(Synthetic) Transfer to partner rescue confirmed for tomorrow."},
        ctx,
    )
    print(f"Pepper overridden to score={overridden.urgency_score} "
          f"severity={overridden.risk_severity.value} by {overridden.override_by}")

    # ------------------------------------------------------------------
    # Step 5: Organization-wide recalculation
    # ------------------------------------------------------------------
    _banner("Step 5: Organization-Wide Recalculation")

    report = service.recalculation_report("demo_rescue")
    print(report.model_dump_json(indent=2))
    pepper = service.get_profile("dog-002", ctx)
    print(f"Pepper after recalculation: score={pepper.urgency_score} "
          f"severity={pepper.risk_severity.value} (override kept)")

    # ------------------------------------------------------------------
    # Step 6: Dashboard
    # ------------------------------------------------------------------
    _banner("Step 6: Risk Dashboard")

    view = service.get_dashboard("demo_rescue")
    print(view.model_dump_json(indent=2))
    print(f"\nCritical: {view.critical_count}  High risk: {view.high_risk_count}")

    # ------------------------------------------------------------------
    # Step 7: Explanation and event log
    # ------------------------------------------------------------------
    _banner("Step 7: Explanation and Event Log")

    for animal_id in ("dog-001", "dog-002"):
        print(json.dumps(service.explain(animal_id, ctx).to_dict(), indent=2))

    print(f"\nEvents recorded: {len(event_log)}")
    valid, broken_at = event_log.verify_chain()
    print(f"Chain verification: valid={valid}, broken_at={broken_at}")

    # ------------------------------------------------------------------
    # Step 8: Lift the override
    # ------------------------------------------------------------------
    _banner("Step 8: Clear Override")

    cleared = service.clear_override("dog-002", ctx)
    print(f"Pepper back under automatic scoring: score={cleared.urgency_score} "
          f"severity={cleared.risk_severity.value}")

    _banner("Scenario Complete")


if __name__ == "__main__":
    main()
