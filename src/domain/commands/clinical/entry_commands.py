"""Commands that add clinical entries to a draft document.

Every add command follows the same shape: resolve the document, build the
entry from the parameters, let the entry validate itself, then append it
through the aggregate so that cross-entry invariants are enforced.

Undo is compensating: the entry is soft-deleted, never removed, so the
document's total entry count is unchanged while its active view is restored.

Security Impact:
    - Adding entries requires CreateClinicalDocument
    - Physicians may only add entries to documents they own
    - Every added field is written to the change audit trail
"""

from datetime import date, datetime
from typing import Any, Dict, Iterable, Optional, Tuple
from uuid import UUID

from pydantic import ValidationError

from src.domain.cdc_models import ChangeType
from src.domain.clinical_document import ClinicalDocument
from src.domain.clinical_entries import (
    FINAL_DIAGNOSIS_REQUIRES_CODE,
    AssessmentEntry,
    ClinicalEntry,
    DiagnosisEntry,
    ObservationEntry,
    PlanEntry,
    PrescriptionEntry,
)
from src.domain.commands.base import UndoState
from src.domain.commands.clinical.base import ClinicalDocumentCommand, FieldSpec, read_fields
from src.domain.commands.parameter_keys import (
    BODY_SYSTEM,
    CLINICAL_IMPRESSION,
    CODE,
    CONDITION,
    CONFIDENCE,
    DEA_SCHEDULE,
    DIAGNOSIS_DESCRIPTION,
    DIAGNOSIS_ID,
    DIAGNOSIS_STATUS,
    DIAGNOSIS_TYPE,
    DIFFERENTIAL_DIAGNOSES,
    DOCUMENT_ID,
    DOSAGE,
    DURATION,
    EXPIRATION_DATE,
    FOLLOW_UP_INSTRUCTIONS,
    FREQUENCY,
    GENERIC_ALLOWED,
    ICD10_CODE,
    INSTRUCTIONS,
    IS_ABNORMAL,
    IS_PRIMARY,
    LOINC_CODE,
    MEDICATION_NAME,
    NDC_CODE,
    NUMERIC_VALUE,
    OBSERVATION,
    OBSERVATION_TYPE,
    ONSET_DATE,
    PLAN_DESCRIPTION,
    PLAN_TYPE,
    PRIORITY,
    PROGNOSIS,
    REFERENCE_RANGE,
    REFILLS,
    RELATED_DIAGNOSES,
    REQUIRES_IMMEDIATE_ACTION,
    RISK_FACTORS,
    ROUTE,
    SEVERITY,
    SUPPORTING_OBSERVATIONS,
    TARGET_DATE,
    UNIT,
    VITAL_SIGNS,
)
from src.domain.commands.parameters import CommandParameters
from src.domain.commands.results import CommandResult, CommandValidationResult
from src.domain.enums import (
    BodySystem,
    ConfidenceLevel,
    DiagnosisStatus,
    DiagnosisType,
    DosageFrequency,
    EntryKind,
    EntrySeverity,
    ErrorCode,
    MedicationRoute,
    ObservationType,
    PatientCondition,
    Permission,
    PlanPriority,
    PlanType,
    Prognosis,
)
from src.domain.ports import ChangeAuditPort, DocumentStorePort, ProfileLookupPort
from src.domain.session import SessionContext
from src.domain.utils import short_id

DEFAULT_CONTROLLED_EXPIRATION_MONTHS = 6


def _normalize_code(value: str) -> str:
    return value.strip().upper()


def _strip(value: str) -> str:
    return value.strip()


def _string_map(value: Dict[Any, Any]) -> Dict[str, str]:
    return {str(name).strip(): str(reading).strip() for name, reading in value.items()}


def _string_list(value) -> list:
    return [str(item).strip() for item in value if str(item).strip()]


def validate_supporting_observations(
    document: ClinicalDocument,
    observation_ids: Iterable[UUID],
    result: CommandValidationResult
) -> None:
    """Supporting evidence must be active observations of the same document."""
    for observation_id in observation_ids:
        entry = document.get_entry(observation_id)
        if entry is None or entry.entry_kind != EntryKind.OBSERVATION or not entry.is_active:
            result.add_error(
                f"Supporting observation {observation_id} not found or inactive in this document",
                ErrorCode.NOT_FOUND
            )


SEVERITY_FIELD = FieldSpec(SEVERITY, "severity", EntrySeverity, "severity")

OBSERVATION_FIELDS: Tuple[FieldSpec, ...] = (
    SEVERITY_FIELD,
    FieldSpec(OBSERVATION_TYPE, "observation_type", ObservationType, "observation type"),
    FieldSpec(BODY_SYSTEM, "body_system", BodySystem, "body system"),
    FieldSpec(IS_ABNORMAL, "is_abnormal", bool, "abnormal flag"),
    FieldSpec(NUMERIC_VALUE, "numeric_value", float, "numeric value"),
    FieldSpec(UNIT, "unit", str, "unit", transform=_strip),
    FieldSpec(REFERENCE_RANGE, "reference_range", str, "reference range", transform=_strip),
    FieldSpec(VITAL_SIGNS, "vital_signs", dict, "vital signs", transform=_string_map),
    FieldSpec(CODE, "code", str, "LOINC code", transform=_strip),
    FieldSpec(LOINC_CODE, "code", str, "LOINC code", transform=_strip),
)

ASSESSMENT_FIELDS: Tuple[FieldSpec, ...] = (
    SEVERITY_FIELD,
    FieldSpec(CONDITION, "condition", PatientCondition, "patient condition"),
    FieldSpec(PROGNOSIS, "prognosis", Prognosis, "prognosis"),
    FieldSpec(CONFIDENCE, "confidence", ConfidenceLevel, "confidence level"),
    FieldSpec(REQUIRES_IMMEDIATE_ACTION, "requires_immediate_action", bool, "immediate action flag"),
    FieldSpec(DIFFERENTIAL_DIAGNOSES, "differential_diagnoses", list, "differential diagnoses",
              transform=_string_list),
    FieldSpec(RISK_FACTORS, "risk_factors", list, "risk factors", transform=_string_list),
)

DIAGNOSIS_FIELDS: Tuple[FieldSpec, ...] = (
    SEVERITY_FIELD,
    FieldSpec(CODE, "code", str, "ICD-10 code", transform=_normalize_code),
    FieldSpec(ICD10_CODE, "code", str, "ICD-10 code", transform=_normalize_code),
    FieldSpec(DIAGNOSIS_TYPE, "diagnosis_type", DiagnosisType, "diagnosis type"),
    FieldSpec(DIAGNOSIS_STATUS, "status", DiagnosisStatus, "diagnosis status"),
    FieldSpec(IS_PRIMARY, "is_primary", bool, "primary flag"),
    FieldSpec(ONSET_DATE, "onset_date", date, "onset date"),
    FieldSpec(SUPPORTING_OBSERVATIONS, "supporting_observation_ids", list, "supporting observations",
              item_type=UUID),
)

PLAN_FIELDS: Tuple[FieldSpec, ...] = (
    SEVERITY_FIELD,
    FieldSpec(PLAN_TYPE, "plan_type", PlanType, "plan type"),
    FieldSpec(PRIORITY, "priority", PlanPriority, "plan priority"),
    FieldSpec(TARGET_DATE, "target_date", datetime, "target date"),
    FieldSpec(FOLLOW_UP_INSTRUCTIONS, "follow_up_instructions", str, "follow-up instructions", transform=_strip),
    FieldSpec(RELATED_DIAGNOSES, "related_diagnosis_ids", list, "related diagnoses", item_type=UUID),
)

PRESCRIPTION_FIELDS: Tuple[FieldSpec, ...] = (
    SEVERITY_FIELD,
    FieldSpec(MEDICATION_NAME, "medication_name", str, "medication name", transform=_strip),
    FieldSpec(DOSAGE, "dosage", str, "dosage", transform=_strip),
    FieldSpec(FREQUENCY, "frequency", DosageFrequency, "frequency"),
    FieldSpec(ROUTE, "route", MedicationRoute, "route"),
    FieldSpec(DURATION, "duration", str, "duration", transform=_strip),
    FieldSpec(REFILLS, "refills", int, "refill count"),
    FieldSpec(GENERIC_ALLOWED, "generic_allowed", bool, "generic allowed flag"),
    FieldSpec(DEA_SCHEDULE, "dea_schedule", int, "DEA schedule"),
    FieldSpec(EXPIRATION_DATE, "expiration_date", datetime, "expiration date"),
    FieldSpec(INSTRUCTIONS, "instructions", str, "instructions", transform=_strip),
    FieldSpec(CODE, "code", str, "NDC code", transform=_strip),
    FieldSpec(NDC_CODE, "code", str, "NDC code", transform=_strip),
)


class AddEntryCommand(ClinicalDocumentCommand):
    """Template for the five add-entry commands.

    Subclasses set `entry_class`, `content_key` and `field_specs`, and may
    override `validate_entry` for kind-specific cross-entry rules.
    """

    entry_class: type
    content_key: str
    field_specs: Tuple[FieldSpec, ...] = ()
    deferred_errors: Tuple[str, ...] = ()
    required_permission = Permission.CREATE_CLINICAL_DOCUMENT
    can_undo = True

    def validate_structure(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        result = CommandValidationResult.success()
        self._validate_document_reference(parameters, result)
        return result

    def validate_business_rules(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        result = CommandValidationResult.success()
        document = self.document_store.find_by_id(parameters.get(DOCUMENT_ID, UUID))
        self._validate_draft(document, result)
        self._validate_document_access(document, session, result)
        if not result.is_valid:
            return result

        entry = self.build_entry(parameters, session, document, result)
        if entry is None:
            return result

        for issue in entry.get_validation_issues():
            if issue.message in self.deferred_errors:
                result.add_warning(f"{issue.message} before the document can be completed")
            else:
                result.add_error(issue.message, issue.code)
        for warning in entry.get_validation_warnings():
            result.add_warning(warning)
        self.validate_entry(entry, document, result)
        return result

    def validate_entry(self, entry: ClinicalEntry, document: ClinicalDocument, result: CommandValidationResult) -> None:
        """Kind-specific rules that need the rest of the document."""
        pass

    def build_entry(
        self,
        parameters: CommandParameters,
        session: Optional[SessionContext],
        document: ClinicalDocument,
        result: CommandValidationResult
    ) -> Optional[ClinicalEntry]:
        """Create the entry described by the parameters (not yet added)."""
        values = read_fields(parameters, self.field_specs, result)
        values["content"] = parameters.get(self.content_key, str, "").strip()
        values["author_id"] = session.user_id if session else document.physician_id
        try:
            entry = self.entry_class(**values)
        except ValidationError as e:
            for error in e.errors():
                location = ".".join(str(part) for part in error["loc"])
                result.add_error(f"Invalid {location}: {error['msg']}", ErrorCode.INVALID_FORMAT)
            return None
        self.finalize_entry(entry)
        return entry

    def finalize_entry(self, entry: ClinicalEntry) -> None:
        """Fill derived fields after construction."""
        pass

    def execute_core(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandResult:
        document = self._load_document(parameters)
        entry = self.build_entry(parameters, session, document, CommandValidationResult())
        if entry is None:
            return CommandResult.fail(f"Could not build {self.entry_class.__name__} from parameters")

        document.add_entry(entry)
        self.document_store.update(document)
        self._audit(self._detector(session).generate_insert_changes(
            entry,
            entity_type=entry.kind,
            document_id=str(document.id)
        ))
        self.log.info(f"Added {entry.kind} entry {entry.id}", extra={"document_id": document.id})

        return CommandResult.ok(
            f"{entry.label} added to clinical document",
            data={"document_id": document.id, "entry_id": entry.id, "entry": entry}
        )

    def capture_undo_state(self, parameters, session, result) -> Optional[UndoState]:
        return UndoState(document_id=result.data["document_id"], entry_id=result.data["entry_id"])

    def undo_core(self, state: UndoState, session: Optional[SessionContext]) -> CommandResult:
        document = self.document_store.find_by_id(state.document_id)
        if document is None:
            return CommandResult.fail(
                f"Clinical document with ID {state.document_id} no longer exists",
                error_code=ErrorCode.NOT_FOUND
            )
        self._require_document_access(document, session)
        entry = document.get_entry(state.entry_id)
        if entry is None:
            return CommandResult.fail(
                f"Entry with ID {state.entry_id} not found in document",
                error_code=ErrorCode.NOT_FOUND
            )
        if not document.deactivate_entry(entry.id):
            return CommandResult.fail(f"{entry.label} entry {short_id(entry.id)} is already inactive")

        self.document_store.update(document)
        self._audit([self._detector(session).lifecycle_change(
            entity_type=entry.kind,
            entity_id=str(entry.id),
            change_type=ChangeType.DEACTIVATE,
            field_name="is_active",
            old_value=True,
            new_value=False,
            document_id=str(document.id),
        )])
        return CommandResult.ok(
            f"{entry.label} entry deactivated",
            data={"document_id": document.id, "entry_id": entry.id}
        )


class AddObservationCommand(AddEntryCommand):
    """Record an observation (history, exam finding, vitals, lab or imaging result)."""

    description = "Add an observation to a clinical document"
    required_parameters = (DOCUMENT_ID, OBSERVATION)
    entry_class = ObservationEntry
    content_key = OBSERVATION
    field_specs = OBSERVATION_FIELDS


class AddAssessmentCommand(AddEntryCommand):
    """Record a clinical assessment; the impression becomes the entry content."""

    description = "Add a clinical assessment to a clinical document"
    required_parameters = (DOCUMENT_ID, CLINICAL_IMPRESSION)
    entry_class = AssessmentEntry
    content_key = CLINICAL_IMPRESSION
    field_specs = ASSESSMENT_FIELDS


class AddDiagnosisCommand(AddEntryCommand):
    """Record a diagnosis.

    A Final diagnosis without a code is accepted with a warning; the document
    cannot be completed until the code is supplied.
    """

    description = "Add a diagnosis to a clinical document"
    required_parameters = (DOCUMENT_ID, DIAGNOSIS_DESCRIPTION)
    entry_class = DiagnosisEntry
    content_key = DIAGNOSIS_DESCRIPTION
    field_specs = DIAGNOSIS_FIELDS
    deferred_errors = (FINAL_DIAGNOSIS_REQUIRES_CODE,)

    def validate_entry(self, entry: DiagnosisEntry, document: ClinicalDocument, result: CommandValidationResult) -> None:
        current = document.get_primary_diagnosis()
        if entry.is_primary and current is not None:
            result.add_warning(f"Diagnosis {short_id(current.id)} will no longer be primary")
        validate_supporting_observations(document, entry.supporting_observation_ids, result)


class AddPlanCommand(AddEntryCommand):
    """Record a care plan item.

    Related diagnoses must be active in the same document, and the target date
    may not precede the day the plan is created.
    """

    description = "Add a care plan item to a clinical document"
    required_parameters = (DOCUMENT_ID, PLAN_DESCRIPTION)
    entry_class = PlanEntry
    content_key = PLAN_DESCRIPTION
    field_specs = PLAN_FIELDS

    def validate_entry(self, entry: PlanEntry, document: ClinicalDocument, result: CommandValidationResult) -> None:
        for diagnosis_id in entry.related_diagnosis_ids:
            if document.get_active_diagnosis(diagnosis_id) is None:
                result.add_error(
                    f"Related diagnosis {diagnosis_id} not found or inactive in this document",
                    ErrorCode.NOT_FOUND
                )
        if entry.plan_type in (PlanType.TREATMENT, PlanType.PROCEDURE) and not entry.related_diagnosis_ids:
            result.add_warning(f"{entry.plan_type.value} plans should reference at least one diagnosis")


class AddPrescriptionCommand(AddEntryCommand):
    """Record a prescription against an active diagnosis of the same document.

    The entry content is the generated sig. Controlled substances default to
    expiring a configurable number of months after creation.
    """

    description = "Add a prescription to a clinical document"
    required_parameters = (DOCUMENT_ID, DIAGNOSIS_ID, MEDICATION_NAME, DOSAGE, FREQUENCY)
    entry_class = PrescriptionEntry
    content_key = INSTRUCTIONS
    field_specs = (FieldSpec(DIAGNOSIS_ID, "diagnosis_id", UUID, "diagnosis ID"),) + PRESCRIPTION_FIELDS

    def __init__(
        self,
        document_store: DocumentStorePort,
        profiles: Optional[ProfileLookupPort] = None,
        audit: Optional[ChangeAuditPort] = None,
        controlled_expiration_months: int = DEFAULT_CONTROLLED_EXPIRATION_MONTHS
    ):
        super().__init__(document_store, profiles, audit)
        self.controlled_expiration_months = controlled_expiration_months

    def validate_structure(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        result = super().validate_structure(parameters, session)
        if result.is_valid:
            document = self.document_store.find_by_id(parameters.get(DOCUMENT_ID, UUID))
            self._validate_entry_reference(document, parameters, DIAGNOSIS_ID, EntryKind.DIAGNOSIS, result)
        return result

    def validate_entry(self, entry: PrescriptionEntry, document: ClinicalDocument, result: CommandValidationResult) -> None:
        diagnosis = document.get_active_diagnosis(entry.diagnosis_id)
        if diagnosis is None:
            return
        if diagnosis.diagnosis_type == DiagnosisType.RULED_OUT:
            result.add_warning("Prescribing for a ruled-out diagnosis")
        elif diagnosis.status == DiagnosisStatus.RESOLVED:
            result.add_warning("Prescribing for a resolved diagnosis")

    def finalize_entry(self, entry: PrescriptionEntry) -> None:
        entry.apply_controlled_defaults(self.controlled_expiration_months)
        entry.content = entry.generate_sig()
