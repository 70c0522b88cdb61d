"""Domain layer for clinical encounter documentation.

This module contains the clinical document aggregate, its entry variants and
the ports through which the domain reaches storage and profile lookup.
All domain models are pure Python with no external dependencies beyond Pydantic.
"""

from .clinical_entries import (
    AssessmentEntry,
    ClinicalEntry,
    DiagnosisEntry,
    ObservationEntry,
    PlanEntry,
    PrescriptionEntry,
)
from .clinical_document import ClinicalDocument
from .profiles import UserProfile
from .session import SessionContext

__all__ = [
    "AssessmentEntry",
    "ClinicalDocument",
    "ClinicalEntry",
    "DiagnosisEntry",
    "ObservationEntry",
    "PlanEntry",
    "PrescriptionEntry",
    "SessionContext",
    "UserProfile",
]
