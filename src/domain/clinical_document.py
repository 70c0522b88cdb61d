"""Clinical Document Aggregate.

This module defines the encounter-scoped aggregate that owns every clinical entry
recorded for one patient visit, and the Draft -> Completed lifecycle that guards it.

Security Impact:
    - Completed documents are immutable: entries cannot be added or changed
    - Entries are only ever soft-deleted, preserving the medical record
    - Completion is blocked while any record-keeping rule is violated

Architecture:
    - Pure domain aggregate with zero infrastructure dependencies
    - Aggregate methods raise domain exceptions as last-line guards; commands
      validate first so that these guards are not hit in normal operation
    - Typed accessors filter the entry sequence by kind tag and active flag
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.domain.clinical_entries import (
    AssessmentEntry,
    ClinicalEntry,
    DiagnosisEntry,
    ObservationEntry,
    PlanEntry,
    PrescriptionEntry,
)
from src.domain.enums import EntryKind
from src.domain.ports import (
    DocumentCompletedError,
    EntityNotFoundError,
    IncompleteDocumentError,
    InvariantViolationError,
)
from src.domain.utils import short_id

logger = logging.getLogger(__name__)

MAX_CHIEF_COMPLAINT_LENGTH = 500


class ClinicalDocument(BaseModel):
    """Clinical documentation for a single patient encounter.

    Entries are kept in insertion order and are never reordered or structurally
    removed; undo and correction happen through soft deletion.

    Parameters:
        id: Document identifier
        patient_id: Patient the encounter is about (immutable)
        physician_id: Physician who owns the documentation (immutable)
        appointment_id: Appointment the encounter belongs to (immutable)
        chief_complaint: Reason for the visit (frozen once completed)
        created_at: Creation timestamp
        completed_at: Completion timestamp; set once by `complete()`
        entries: Ordered clinical entries

    Example Usage:
        ```python
        document = ClinicalDocument.create(patient_id, physician_id, appointment_id, "Chest pain")
        document.add_entry(DiagnosisEntry(author_id=physician_id, content="Angina", code="I20.9"))
        document.complete()
        ```
    """

    id: UUID = Field(default_factory=uuid4, frozen=True, description="Document identifier")
    patient_id: UUID = Field(..., frozen=True, description="Patient profile id")
    physician_id: UUID = Field(..., frozen=True, description="Physician profile id")
    appointment_id: UUID = Field(..., frozen=True, description="Appointment id")
    chief_complaint: str = Field("", description="Reason for the visit")
    created_at: datetime = Field(default_factory=datetime.now, description="Creation timestamp")
    completed_at: Optional[datetime] = Field(None, description="Completion timestamp")
    entries: List[ClinicalEntry] = Field(default_factory=list, description="Ordered clinical entries")

    model_config = ConfigDict(validate_assignment=True)

    @field_validator("chief_complaint")
    @classmethod
    def validate_chief_complaint(cls, v: str) -> str:
        if len(v) > MAX_CHIEF_COMPLAINT_LENGTH:
            raise ValueError(f"Chief complaint cannot exceed {MAX_CHIEF_COMPLAINT_LENGTH} characters")
        return v

    @classmethod
    def create(
        cls,
        patient_id: UUID,
        physician_id: UUID,
        appointment_id: UUID,
        chief_complaint: str
    ) -> 'ClinicalDocument':
        """Create a draft document for an encounter.

        Raises:
            InvariantViolationError: If the chief complaint is empty
        """
        if not chief_complaint or not chief_complaint.strip():
            raise InvariantViolationError("Chief complaint is required")
        return cls(
            patient_id=patient_id,
            physician_id=physician_id,
            appointment_id=appointment_id,
            chief_complaint=chief_complaint.strip(),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    def ensure_draft(self) -> None:
        """Raise if the document has been completed."""
        if self.is_completed:
            raise DocumentCompletedError(
                "Document already completed",
                {"document_id": str(self.id)}
            )

    def get_completion_errors(self) -> List[str]:
        """Return every rule that currently prevents completion."""
        errors = []
        if not self.chief_complaint.strip():
            errors.append("Chief complaint is required")

        for entry in self.get_active_entries():
            for message in entry.get_validation_errors():
                errors.append(f"{message} ({entry.label} {short_id(entry.id)})")

        active_diagnoses = {d.id for d in self.get_diagnoses()}
        for prescription in self.get_prescriptions():
            if prescription.diagnosis_id is not None and prescription.diagnosis_id not in active_diagnoses:
                errors.append(
                    f"Prescription for {prescription.medication_name} references a diagnosis "
                    f"that is not active in this document"
                )
        for plan in self.get_plans():
            missing = [d for d in plan.related_diagnosis_ids if d not in active_diagnoses]
            if missing:
                errors.append(
                    f"Plan {short_id(plan.id)} references diagnoses that are not active in this document"
                )

        if len([d for d in self.get_diagnoses() if d.is_primary]) > 1:
            errors.append("Only one diagnosis may be marked primary")
        return errors

    def can_complete(self) -> bool:
        return not self.is_completed and not self.get_completion_errors()

    def complete(self) -> None:
        """Transition the document from Draft to Completed.

        Raises:
            DocumentCompletedError: If the document is already completed
            IncompleteDocumentError: If the completeness check fails
        """
        self.ensure_draft()
        errors = self.get_completion_errors()
        if errors:
            raise IncompleteDocumentError(errors)
        self.completed_at = datetime.now()
        logger.info(f"Clinical document {self.id} completed with {self.active_entry_count} active entries")

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def update_chief_complaint(self, chief_complaint: str) -> bool:
        """Replace the chief complaint; returns False when unchanged."""
        self.ensure_draft()
        if chief_complaint == self.chief_complaint:
            return False
        self.chief_complaint = chief_complaint
        return True

    def add_entry(self, entry: ClinicalEntry) -> None:
        """Append an entry, enforcing the cross-entry invariants.

        Raises:
            DocumentCompletedError: If the document is completed
            InvariantViolationError: If a prescription or plan references a
                diagnosis that is not active in this document
        """
        self.ensure_draft()
        kind = entry.entry_kind
        if self.get_entry(entry.id) is not None:
            raise InvariantViolationError(f"Entry {entry.id} already exists in document")

        if kind == EntryKind.PRESCRIPTION:
            diagnosis = self.get_active_diagnosis(entry.diagnosis_id) if entry.diagnosis_id else None
            if diagnosis is None:
                raise InvariantViolationError(
                    "Prescription must reference an active diagnosis in this document",
                    {"diagnosis_id": str(entry.diagnosis_id)}
                )
            diagnosis.link_prescription(entry.id)
        elif kind == EntryKind.PLAN:
            for diagnosis_id in entry.related_diagnosis_ids:
                if self.get_active_diagnosis(diagnosis_id) is None:
                    raise InvariantViolationError(
                        f"Related diagnosis {diagnosis_id} is not active in this document"
                    )
        elif kind == EntryKind.DIAGNOSIS and entry.is_primary:
            self._clear_primary(except_id=entry.id)

        self.entries.append(entry)

    def apply_entry_changes(self, entry_id: UUID, changes: Dict[str, Any]) -> None:
        """Write already-diffed field values onto an active entry of this draft.

        Setting `is_primary` to True goes through `set_primary_diagnosis` so that
        siblings are cleared in the same call. Prescriptions re-render their sig
        into `content` after the change.
        """
        self.ensure_draft()
        entry = self.get_entry(entry_id)
        if entry is None or not entry.is_active:
            raise EntityNotFoundError(f"Entry {entry_id} not found in document")

        pending = dict(changes)
        if pending.get("is_primary") is True:
            pending.pop("is_primary")
            self.set_primary_diagnosis(entry_id)
        entry.apply_changes(pending)

        if entry.entry_kind == EntryKind.PRESCRIPTION:
            entry.update_content(entry.generate_sig())

    def set_primary_diagnosis(self, diagnosis_id: UUID) -> List[UUID]:
        """Mark one diagnosis primary, clearing the flag on every sibling first.

        Returns:
            List[UUID]: Ids of the diagnoses whose primary flag was cleared
        """
        self.ensure_draft()
        target = self.get_active_diagnosis(diagnosis_id)
        if target is None:
            raise EntityNotFoundError(f"Diagnosis {diagnosis_id} not found in document")
        cleared = self._clear_primary(except_id=diagnosis_id)
        if not target.is_primary:
            target.is_primary = True
            target.touch()
        return cleared

    def deactivate_entry(self, entry_id: UUID) -> bool:
        """Soft-delete an entry.

        Allowed on completed documents as well, since it is the compensation
        used by undo.

        Returns:
            bool: False if the entry was already inactive

        Raises:
            EntityNotFoundError: If no entry has this id
        """
        entry = self.get_entry(entry_id)
        if entry is None:
            raise EntityNotFoundError(f"Entry {entry_id} not found in document")
        return entry.deactivate()

    def _clear_primary(self, except_id: Optional[UUID] = None) -> List[UUID]:
        cleared = []
        for diagnosis in self.get_diagnoses(include_inactive=True):
            if diagnosis.id != except_id and diagnosis.is_primary:
                diagnosis.is_primary = False
                diagnosis.touch()
                cleared.append(diagnosis.id)
        return cleared

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_entry(self, entry_id: UUID) -> Optional[ClinicalEntry]:
        for entry in self.entries:
            if entry.id == entry_id:
                return entry
        return None

    def get_entries(self, kind: EntryKind, include_inactive: bool = False) -> List[ClinicalEntry]:
        return [
            entry for entry in self.entries
            if entry.entry_kind == kind and (include_inactive or entry.is_active)
        ]

    def get_active_entries(self) -> List[ClinicalEntry]:
        return [entry for entry in self.entries if entry.is_active]

    def get_observations(self, include_inactive: bool = False) -> List[ObservationEntry]:
        return self.get_entries(EntryKind.OBSERVATION, include_inactive)

    def get_assessments(self, include_inactive: bool = False) -> List[AssessmentEntry]:
        return self.get_entries(EntryKind.ASSESSMENT, include_inactive)

    def get_diagnoses(self, include_inactive: bool = False) -> List[DiagnosisEntry]:
        return self.get_entries(EntryKind.DIAGNOSIS, include_inactive)

    def get_plans(self, include_inactive: bool = False) -> List[PlanEntry]:
        return self.get_entries(EntryKind.PLAN, include_inactive)

    def get_prescriptions(self, include_inactive: bool = False) -> List[PrescriptionEntry]:
        return self.get_entries(EntryKind.PRESCRIPTION, include_inactive)

    def get_active_diagnosis(self, diagnosis_id: UUID) -> Optional[DiagnosisEntry]:
        for diagnosis in self.get_diagnoses():
            if diagnosis.id == diagnosis_id:
                return diagnosis
        return None

    def get_primary_diagnosis(self) -> Optional[DiagnosisEntry]:
        for diagnosis in self.get_diagnoses():
            if diagnosis.is_primary:
                return diagnosis
        return None

    def get_prescriptions_for_diagnosis(self, diagnosis_id: UUID) -> List[PrescriptionEntry]:
        return [p for p in self.get_prescriptions() if p.diagnosis_id == diagnosis_id]

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    @property
    def active_entry_count(self) -> int:
        return len(self.get_active_entries())

    def entry_counts(self) -> Dict[EntryKind, int]:
        """Count active entries per kind."""
        return {kind: len(self.get_entries(kind)) for kind in EntryKind}
