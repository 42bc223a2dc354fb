"""Import pipeline: row loading helpers and the run orchestrator."""

from .load_core import (
    DoctorAction,
    DoctorUpsert,
    NaturalKey,
    NaturalKeyKind,
    attach_specialty,
    find_doctor,
    natural_key,
    upsert_arrangement,
    upsert_doctor,
)
from .orchestrator import ImportOrchestrator, ImportRunSummary

__all__ = [
    "DoctorAction",
    "DoctorUpsert",
    "ImportOrchestrator",
    "ImportRunSummary",
    "NaturalKey",
    "NaturalKeyKind",
    "attach_specialty",
    "find_doctor",
    "natural_key",
    "upsert_arrangement",
    "upsert_doctor",
]
