"""
ShelterRisk Scoring Engine
==========================

A Python library for triaging animals under shelter care.  Converts welfare
signals (medical condition, behavioral condition, kennel stress, time in
care) into a bounded urgency score and severity tier, lets staff override
the automatic classification, keeps an organization's scores current with
a bulk recalculation pass, and summarizes an organization's risk posture
for a dashboard.

NOTE: Urgency scores are triage aids for shelter staff.  They do not
replace veterinary or behavioral assessment, and every classification can
be superseded by a staff override.
"""

__version__ = "0.1.0"
