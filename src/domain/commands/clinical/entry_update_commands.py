"""Commands that update existing clinical entries.

Updates use diff semantics: only parameters that are present are considered,
only values that differ from the current ones are written, and an update that
changes nothing leaves `modified_at` untouched.

Validation builds a candidate copy of the entry with the proposed values and
reports only the errors the update would introduce, so an entry that was
already incomplete can still be corrected one field at a time.
"""

from typing import Any, Dict, Optional, Tuple
from uuid import UUID

from src.domain.cdc_models import UpdateResult
from src.domain.clinical_document import ClinicalDocument
from src.domain.clinical_entries import ClinicalEntry
from src.domain.commands.clinical.base import ClinicalDocumentCommand, FieldSpec, read_fields
from src.domain.commands.clinical.entry_commands import (
    ASSESSMENT_FIELDS,
    DIAGNOSIS_FIELDS,
    OBSERVATION_FIELDS,
    PLAN_FIELDS,
    PRESCRIPTION_FIELDS,
    validate_supporting_observations,
)
from src.domain.commands.parameter_keys import (
    ASSESSMENT_ID,
    CLINICAL_IMPRESSION,
    CONTENT,
    DIAGNOSIS_DESCRIPTION,
    DIAGNOSIS_ID,
    DOCUMENT_ID,
    IS_COMPLETED,
    OBSERVATION,
    OBSERVATION_ID,
    PLAN_DESCRIPTION,
    PLAN_ID,
    PRESCRIPTION_ID,
)
from src.domain.commands.parameters import CommandParameters
from src.domain.commands.results import CommandResult, CommandValidationResult
from src.domain.enums import DiagnosisStatus, EntryKind, ErrorCode, Permission
from src.domain.services.change_detector import ChangeDetector
from src.domain.session import SessionContext


def _content_fields(key: str) -> Tuple[FieldSpec, ...]:
    return (
        FieldSpec(CONTENT, "content", str, "content", transform=str.strip),
        FieldSpec(key, "content", str, "content", transform=str.strip),
    )


class UpdateEntryCommand(ClinicalDocumentCommand):
    """Template for the five update-entry commands."""

    entry_kind: EntryKind
    entry_id_key: str
    field_specs: Tuple[FieldSpec, ...] = ()
    required_permission = Permission.UPDATE_CLINICAL_DOCUMENT

    def validate_structure(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        result = CommandValidationResult.success()
        document = self._validate_document_reference(parameters, result)
        if document is not None:
            self._validate_entry_reference(document, parameters, self.entry_id_key, self.entry_kind, result)
        return result

    def validate_business_rules(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        result = CommandValidationResult.success()
        document = self.document_store.find_by_id(parameters.get(DOCUMENT_ID, UUID))
        entry = document.get_entry(parameters.get(self.entry_id_key, UUID))
        self._validate_draft(document, result)
        self._validate_document_access(document, session, result)
        if not result.is_valid:
            return result

        proposed = self.collect_changes(parameters, entry, result)
        if not result.is_valid:
            return result
        if not proposed:
            result.add_error(
                f"No fields to update were provided for the {entry.kind} entry",
                ErrorCode.MISSING_PARAMETER
            )
            return result

        candidate = entry.model_copy(update=proposed)
        self._add_entry_issues(candidate, result, known_errors=entry.get_validation_errors())
        self.validate_update(candidate, entry, document, result)
        return result

    def collect_changes(
        self,
        parameters: CommandParameters,
        entry: ClinicalEntry,
        result: CommandValidationResult
    ) -> Dict[str, Any]:
        """Proposed field values for every update parameter that is present."""
        return read_fields(parameters, self.field_specs, result)

    def validate_update(
        self,
        candidate: ClinicalEntry,
        entry: ClinicalEntry,
        document: ClinicalDocument,
        result: CommandValidationResult
    ) -> None:
        """Kind-specific rules comparing the candidate with the current entry."""
        pass

    def execute_core(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandResult:
        document = self._load_document(parameters)
        entry = self._load_entry(document, parameters, self.entry_id_key)
        proposed = self.collect_changes(parameters, entry, CommandValidationResult())

        events = self._detector(session).detect_changes(
            entry,
            proposed,
            entity_type=entry.kind,
            document_id=str(document.id)
        )
        changes = ChangeDetector.to_changes_dict(events)
        if not changes:
            return CommandResult.ok(
                f"No changes were made to the {entry.kind} entry",
                data=UpdateResult(entity_id=entry.id, modified_at=entry.modified_at)
            )

        document.apply_entry_changes(entry.id, changes)
        self.document_store.update(document)
        self._audit(events)
        self.log.info(
            f"Updated {entry.kind} entry {entry.id}: {', '.join(changes)}",
            extra={"document_id": document.id}
        )

        return CommandResult.ok(
            f"{entry.label} entry updated ({len(changes)} field(s) changed)",
            data=UpdateResult(
                entity_id=entry.id,
                fields_updated=list(changes),
                changes=events,
                modified_at=entry.modified_at,
            )
        )


class UpdateObservationCommand(UpdateEntryCommand):
    description = "Update an observation"
    required_parameters = (DOCUMENT_ID, OBSERVATION_ID)
    entry_kind = EntryKind.OBSERVATION
    entry_id_key = OBSERVATION_ID
    field_specs = _content_fields(OBSERVATION) + OBSERVATION_FIELDS


class UpdateAssessmentCommand(UpdateEntryCommand):
    description = "Update a clinical assessment"
    required_parameters = (DOCUMENT_ID, ASSESSMENT_ID)
    entry_kind = EntryKind.ASSESSMENT
    entry_id_key = ASSESSMENT_ID
    field_specs = _content_fields(CLINICAL_IMPRESSION) + ASSESSMENT_FIELDS


class UpdateDiagnosisCommand(UpdateEntryCommand):
    """Update a diagnosis.

    Setting `is_primary` clears the flag on every other diagnosis of the
    document in the same step. Moving a diagnosis to Final without a code is
    rejected. Resolving a diagnosis that still has active prescriptions is
    allowed with a warning.
    """

    description = "Update a diagnosis"
    required_parameters = (DOCUMENT_ID, DIAGNOSIS_ID)
    entry_kind = EntryKind.DIAGNOSIS
    entry_id_key = DIAGNOSIS_ID
    field_specs = _content_fields(DIAGNOSIS_DESCRIPTION) + DIAGNOSIS_FIELDS

    def validate_update(self, candidate, entry, document: ClinicalDocument, result: CommandValidationResult) -> None:
        added = [o for o in candidate.supporting_observation_ids if o not in entry.supporting_observation_ids]
        validate_supporting_observations(document, added, result)

        if candidate.status == DiagnosisStatus.RESOLVED and entry.status != DiagnosisStatus.RESOLVED:
            prescriptions = document.get_prescriptions_for_diagnosis(entry.id)
            if prescriptions:
                result.add_warning(
                    f"Resolved diagnosis still has {len(prescriptions)} active prescription(s): "
                    + ", ".join(p.medication_name for p in prescriptions)
                )


class UpdatePlanCommand(UpdateEntryCommand):
    """Update a care plan item; `is_completed` also sets or clears the completion date."""

    description = "Update a care plan item"
    required_parameters = (DOCUMENT_ID, PLAN_ID)
    entry_kind = EntryKind.PLAN
    entry_id_key = PLAN_ID
    field_specs = (
        _content_fields(PLAN_DESCRIPTION)
        + PLAN_FIELDS
        + (FieldSpec(IS_COMPLETED, "is_completed", bool, "completion flag"),)
    )

    def collect_changes(self, parameters, entry, result) -> Dict[str, Any]:
        proposed = super().collect_changes(parameters, entry, result)
        if "is_completed" in proposed and proposed["is_completed"] != entry.is_completed:
            # Work on a copy; the change detector decides what is written
            scratch = entry.model_copy()
            if proposed["is_completed"]:
                scratch.mark_completed()
            else:
                scratch.reopen()
            proposed["completed_date"] = scratch.completed_date
        return proposed

    def validate_update(self, candidate, entry, document: ClinicalDocument, result: CommandValidationResult) -> None:
        for diagnosis_id in candidate.related_diagnosis_ids:
            if diagnosis_id in entry.related_diagnosis_ids:
                continue
            if document.get_active_diagnosis(diagnosis_id) is None:
                result.add_error(
                    f"Related diagnosis {diagnosis_id} not found or inactive in this document",
                    ErrorCode.NOT_FOUND
                )


class UpdatePrescriptionCommand(UpdateEntryCommand):
    """Update a prescription; the sig in `content` is regenerated after each change."""

    description = "Update a prescription"
    required_parameters = (DOCUMENT_ID, PRESCRIPTION_ID)
    entry_kind = EntryKind.PRESCRIPTION
    entry_id_key = PRESCRIPTION_ID
    field_specs = PRESCRIPTION_FIELDS
