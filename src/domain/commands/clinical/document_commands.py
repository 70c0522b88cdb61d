"""Commands that create, update, complete and delete clinical documents.

Security Impact:
    - Creating and updating require the matching clinical-document permission
    - Deleting is a separate privileged command that cannot be undone; completed
      documents additionally require an explicit `force` flag
    - Completion surfaces every violated rule as a validation error

Architecture:
    - Completion is a single forward transition (Draft -> Completed)
    - Chief-complaint updates use diff semantics like the entry updates
"""

from typing import Optional
from uuid import UUID

from src.domain.cdc_models import ChangeType
from src.domain.clinical_document import MAX_CHIEF_COMPLAINT_LENGTH, ClinicalDocument
from src.domain.clinical_entries import ObservationEntry
from src.domain.commands.base import UndoState
from src.domain.commands.clinical.base import ClinicalDocumentCommand
from src.domain.commands.parameter_keys import (
    APPOINTMENT_ID,
    CHIEF_COMPLAINT,
    COMPLETE,
    DOCUMENT_ID,
    FORCE,
    INITIAL_OBSERVATION,
    PATIENT_ID,
    PHYSICIAN_ID,
)
from src.domain.commands.parameters import CommandParameters
from src.domain.commands.results import CommandResult, CommandValidationResult
from src.domain.enums import ErrorCode, ObservationType, Permission, UserRole
from src.domain.ports import InvariantViolationError
from src.domain.services.change_detector import ChangeDetector
from src.domain.session import SessionContext

DOCUMENT_ENTITY = "clinical_document"

_DOCUMENT_INSERT_FIELDS = ("patient_id", "physician_id", "appointment_id", "chief_complaint", "created_at")


def _validate_chief_complaint(value: Optional[str], result: CommandValidationResult) -> None:
    if value is None or not value.strip():
        result.add_error("Chief complaint cannot be empty", ErrorCode.MISSING_PARAMETER)
    elif len(value.strip()) > MAX_CHIEF_COMPLAINT_LENGTH:
        result.add_error(
            f"Chief complaint cannot exceed {MAX_CHIEF_COMPLAINT_LENGTH} characters",
            ErrorCode.INVALID_FORMAT
        )


class CreateClinicalDocumentCommand(ClinicalDocumentCommand):
    """Open a draft clinical document for an appointment.

    An optional `initial_observation` is recorded as a chief-complaint
    observation. Undo withdraws the document only while nothing else has been
    documented in it.

    Example Usage:
        ```python
        command = CreateClinicalDocumentCommand(store, profiles)
        result = command.execute(CommandParameters({
            "patient_id": patient.id,
            "physician_id": physician.id,
            "appointment_id": appointment_id,
            "chief_complaint": "Persistent cough",
        }), session)
        document_id = result.get("document_id")
        ```
    """

    description = "Create a clinical document for an appointment"
    required_parameters = (PATIENT_ID, PHYSICIAN_ID, APPOINTMENT_ID, CHIEF_COMPLAINT)
    required_permission = Permission.CREATE_CLINICAL_DOCUMENT
    allowed_roles = (UserRole.PHYSICIAN, UserRole.ADMINISTRATOR)
    can_undo = True

    def validate_structure(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        result = CommandValidationResult.success()
        self._validate_profile(parameters, PATIENT_ID, UserRole.PATIENT, result)
        self._validate_profile(parameters, PHYSICIAN_ID, UserRole.PHYSICIAN, result)
        if parameters.get(APPOINTMENT_ID, UUID) is None:
            result.add_error("Invalid appointment ID format", ErrorCode.INVALID_FORMAT)
        return result

    def validate_business_rules(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        result = CommandValidationResult.success()
        _validate_chief_complaint(parameters.get(CHIEF_COMPLAINT, str), result)

        appointment_id = parameters.get(APPOINTMENT_ID, UUID)
        if self.document_store.appointment_has_document(appointment_id):
            result.add_error(
                f"A clinical document already exists for appointment {appointment_id}",
                ErrorCode.INVARIANT_VIOLATION
            )

        physician_id = parameters.get(PHYSICIAN_ID, UUID)
        if session is not None and session.role == UserRole.PHYSICIAN and physician_id != session.user_id:
            result.add_error(
                "Physicians can only create clinical documents under their own profile",
                ErrorCode.PERMISSION_DENIED
            )

        if self.profiles is not None:
            physician = self.profiles.find_profile_by_id(physician_id)
            patient_id = parameters.get(PATIENT_ID, UUID)
            if physician is not None and physician.patient_ids and not physician.has_patient(patient_id):
                result.add_warning("Patient is not listed under the physician's care")
        return result

    def execute_core(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandResult:
        document = ClinicalDocument.create(
            patient_id=parameters.get_required(PATIENT_ID, UUID),
            physician_id=parameters.get_required(PHYSICIAN_ID, UUID),
            appointment_id=parameters.get_required(APPOINTMENT_ID, UUID),
            chief_complaint=parameters.get_required(CHIEF_COMPLAINT, str),
        )

        initial_entry_id = None
        initial_observation = parameters.get(INITIAL_OBSERVATION, str)
        if initial_observation and initial_observation.strip():
            observation = ObservationEntry(
                author_id=document.physician_id,
                content=initial_observation.strip(),
                observation_type=ObservationType.CHIEF_COMPLAINT,
            )
            document.add_entry(observation)
            initial_entry_id = observation.id

        if not self.document_store.add(document):
            raise InvariantViolationError(
                f"A clinical document already exists for appointment {document.appointment_id}"
            )

        self._audit(self._detector(session).generate_insert_changes(
            document,
            entity_type=DOCUMENT_ENTITY,
            document_id=str(document.id),
            fields=_DOCUMENT_INSERT_FIELDS
        ))
        self.log.info(
            f"Created clinical document for appointment {document.appointment_id}",
            extra={"document_id": document.id}
        )

        return CommandResult.ok(
            "Clinical document created",
            data={"document_id": document.id, "entry_id": initial_entry_id, "document": document}
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
        if document.is_completed:
            return CommandResult.fail("Cannot undo creation of a completed clinical document")
        if any(entry.id != state.entry_id for entry in document.entries):
            return CommandResult.fail("Cannot undo creation of a clinical document that already has entries")

        self.document_store.remove(document.id)
        self._audit([self._detector(session).lifecycle_change(
            entity_type=DOCUMENT_ENTITY,
            entity_id=str(document.id),
            change_type=ChangeType.DELETE,
            field_name="document",
            document_id=str(document.id),
        )])
        return CommandResult.ok("Clinical document creation undone", data={"document_id": document.id})


class UpdateClinicalDocumentCommand(ClinicalDocumentCommand):
    """Change the chief complaint and/or complete a draft document.

    Completion is validated up front: every rule that blocks it is returned as a
    validation error. A completed document rejects every further update.
    """

    description = "Update the chief complaint or complete a clinical document"
    required_parameters = (DOCUMENT_ID,)
    required_permission = Permission.UPDATE_CLINICAL_DOCUMENT

    def validate_structure(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        result = CommandValidationResult.success()
        self._validate_document_reference(parameters, result)
        if parameters.has_value(COMPLETE) and not parameters.is_convertible(COMPLETE, bool):
            result.add_error(f"Invalid complete flag: '{parameters.get(COMPLETE)}'", ErrorCode.INVALID_FORMAT)
        return result

    def validate_business_rules(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        result = CommandValidationResult.success()
        document = self.document_store.find_by_id(parameters.get(DOCUMENT_ID, UUID))
        if document.is_completed:
            return result.add_error("Document already completed", ErrorCode.INVARIANT_VIOLATION)
        self._validate_document_access(document, session, result)
        if not result.is_valid:
            return result

        has_complaint = parameters.has(CHIEF_COMPLAINT)
        complete = parameters.get(COMPLETE, bool, False)
        if not has_complaint and not complete:
            return result.add_error(
                "Nothing to update: provide a chief complaint or complete=true",
                ErrorCode.MISSING_PARAMETER
            )

        candidate = document
        if has_complaint:
            chief_complaint = parameters.get(CHIEF_COMPLAINT, str)
            _validate_chief_complaint(chief_complaint, result)
            if not result.is_valid:
                return result
            candidate = document.model_copy(update={"chief_complaint": chief_complaint.strip()})

        if complete:
            result.add_errors(candidate.get_completion_errors(), ErrorCode.INVARIANT_VIOLATION)
        return result

    def execute_core(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandResult:
        document = self._load_document(parameters)
        detector = self._detector(session)
        events = []

        if parameters.has(CHIEF_COMPLAINT):
            chief_complaint = parameters.get_required(CHIEF_COMPLAINT, str).strip()
            events.extend(detector.detect_changes(
                document,
                {"chief_complaint": chief_complaint},
                entity_type=DOCUMENT_ENTITY,
                document_id=str(document.id)
            ))
            document.update_chief_complaint(chief_complaint)

        if parameters.get(COMPLETE, bool, False):
            document.complete()
            events.append(detector.lifecycle_change(
                entity_type=DOCUMENT_ENTITY,
                entity_id=str(document.id),
                change_type=ChangeType.UPDATE,
                field_name="completed_at",
                new_value=document.completed_at,
                document_id=str(document.id),
            ))

        fields_updated = list(ChangeDetector.to_changes_dict(events))
        if not fields_updated:
            return CommandResult.ok(
                "No changes were made to the clinical document",
                data={"document_id": document.id, "fields_updated": [], "completed": False}
            )

        self.document_store.update(document)
        self._audit(events)
        message = "Clinical document completed" if document.is_completed else "Clinical document updated"
        return CommandResult.ok(
            message,
            data={
                "document_id": document.id,
                "fields_updated": fields_updated,
                "completed": document.is_completed,
            }
        )


class DeleteClinicalDocumentCommand(ClinicalDocumentCommand):
    """Permanently remove a clinical document.

    This is the only hard deletion in the system. It cannot be undone and is
    always written to the audit trail.
    """

    description = "Permanently delete a clinical document (force=true for completed documents)"
    required_parameters = (DOCUMENT_ID,)
    required_permission = Permission.DELETE_CLINICAL_DOCUMENT

    def validate_structure(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        result = CommandValidationResult.success()
        self._validate_document_reference(parameters, result)
        return result

    def validate_business_rules(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        result = CommandValidationResult.success()
        document = self.document_store.find_by_id(parameters.get(DOCUMENT_ID, UUID))
        if document.is_completed:
            if not parameters.get(FORCE, bool, False):
                result.add_error(
                    "Completed clinical documents can only be deleted with force=true",
                    ErrorCode.INVARIANT_VIOLATION
                )
            else:
                result.add_warning("Deleting a completed clinical document")
        return result

    def execute_core(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandResult:
        document = self._load_document(parameters)
        if not self.document_store.remove(document.id):
            return CommandResult.fail(
                f"Clinical document with ID {document.id} could not be removed",
                error_code=ErrorCode.NOT_FOUND
            )

        self._audit([self._detector(session).lifecycle_change(
            entity_type=DOCUMENT_ENTITY,
            entity_id=str(document.id),
            change_type=ChangeType.DELETE,
            field_name="document",
            old_value=document.completed_at,
            document_id=str(document.id),
        )])
        self.log.warning(
            f"Clinical document deleted ({document.entry_count} entries)",
            extra={"document_id": document.id}
        )
        return CommandResult.ok(
            "Clinical document deleted",
            data={"document_id": document.id, "entries_removed": document.entry_count}
        )
