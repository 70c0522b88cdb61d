"""Read-only commands over clinical documents.

Security Impact:
    - Patients only ever see their own documents
    - Physicians viewing documents of patients outside their care get a warning,
      not a denial, so that covering physicians can still read the record
"""

from datetime import datetime, time
from typing import Optional
from uuid import UUID

from src.domain.commands.clinical.base import ClinicalDocumentCommand
from src.domain.commands.parameter_keys import (
    DOCUMENT_ID,
    END_DATE,
    FORMAT,
    INCOMPLETE_ONLY,
    PATIENT_ID,
    PHYSICIAN_ID,
    START_DATE,
)
from src.domain.commands.parameters import CommandParameters
from src.domain.commands.results import CommandResult, CommandValidationResult
from src.domain.enums import ErrorCode, Permission, UserRole
from src.domain.services.clinical_note_renderer import RENDER_FORMATS, render_document
from src.domain.session import SessionContext

PATIENT_OWN_DOCUMENTS_ONLY = "Patients can only view their own clinical documents"


def _end_of_day(value: datetime) -> datetime:
    """Treat a bare date as inclusive of the whole day."""
    if value.time() == time.min:
        return datetime.combine(value.date(), time.max)
    return value


class ListClinicalDocumentsCommand(ClinicalDocumentCommand):
    """List documents, optionally filtered by patient, physician, date range or draft state."""

    description = "List clinical documents (filters: patient_id, physician_id, start_date, end_date, incomplete_only)"
    required_permission = Permission.VIEW_OWN_CLINICAL_DOCUMENTS

    def validate_structure(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        result = CommandValidationResult.success()
        for key, value_type, label in (
            (PATIENT_ID, UUID, "patient ID"),
            (PHYSICIAN_ID, UUID, "physician ID"),
            (START_DATE, datetime, "start date"),
            (END_DATE, datetime, "end date"),
            (INCOMPLETE_ONLY, bool, "incomplete_only flag"),
        ):
            if parameters.has_value(key) and not parameters.is_convertible(key, value_type):
                result.add_error(f"Invalid {label}: '{parameters.get(key)}'", ErrorCode.INVALID_FORMAT)
        return result

    def validate_business_rules(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        result = CommandValidationResult.success()
        start = parameters.get(START_DATE, datetime)
        end = parameters.get(END_DATE, datetime)
        if start is not None and end is not None and start > end:
            result.add_error("Start date must not be after end date", ErrorCode.INVALID_FORMAT)

        patient_id = parameters.get(PATIENT_ID, UUID)
        if session is not None and session.role == UserRole.PATIENT:
            if patient_id is not None and patient_id != session.user_id:
                result.add_error(PATIENT_OWN_DOCUMENTS_ONLY, ErrorCode.PERMISSION_DENIED)
        return result

    def execute_core(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandResult:
        patient_id = parameters.get(PATIENT_ID, UUID)
        physician_id = parameters.get(PHYSICIAN_ID, UUID)
        if session is not None and session.role == UserRole.PATIENT:
            patient_id = session.user_id

        start = parameters.get(START_DATE, datetime)
        end = parameters.get(END_DATE, datetime)
        if end is not None:
            end = _end_of_day(end)
        incomplete_only = parameters.get(INCOMPLETE_ONLY, bool, False)

        # Let the store narrow the set; remaining filters are applied below
        if start is not None or end is not None:
            documents = self.document_store.list_by_date_range(start or datetime.min, end or datetime.max)
        elif incomplete_only:
            documents = self.document_store.list_incomplete()
        elif patient_id is not None:
            documents = self.document_store.list_by_patient(patient_id)
        elif physician_id is not None:
            documents = self.document_store.list_by_physician(physician_id)
        else:
            documents = self.document_store.list_all()

        selected = [
            document for document in documents
            if (patient_id is None or document.patient_id == patient_id)
            and (physician_id is None or document.physician_id == physician_id)
            and not (incomplete_only and document.is_completed)
        ]
        selected.sort(key=lambda d: d.created_at)
        return CommandResult.ok(f"Found {len(selected)} clinical document(s)", data=selected)


class ViewClinicalDocumentCommand(ClinicalDocumentCommand):
    """Render a single document as a full listing, a SOAP note or a summary."""

    description = "View a clinical document (format: full, soap or summary)"
    required_parameters = (DOCUMENT_ID,)
    required_permission = Permission.VIEW_OWN_CLINICAL_DOCUMENTS

    def validate_structure(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        result = CommandValidationResult.success()
        self._validate_document_reference(parameters, result)
        format_name = parameters.get(FORMAT, str)
        if format_name is not None and format_name.strip().lower() not in RENDER_FORMATS:
            result.add_error(
                f"Invalid format. Valid values are: {', '.join(RENDER_FORMATS)}",
                ErrorCode.INVALID_FORMAT
            )
        return result

    def validate_business_rules(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandValidationResult:
        result = CommandValidationResult.success()
        if session is None:
            return result
        document = self.document_store.find_by_id(parameters.get(DOCUMENT_ID, UUID))

        if session.role == UserRole.PATIENT and document.patient_id != session.user_id:
            result.add_error(PATIENT_OWN_DOCUMENTS_ONLY, ErrorCode.PERMISSION_DENIED)
        elif session.role == UserRole.PHYSICIAN and document.physician_id != session.user_id:
            physician = self.profiles.find_profile_by_id(session.user_id) if self.profiles else None
            if physician is not None and not physician.has_patient(document.patient_id):
                result.add_warning("Viewing documentation for a patient not under your care")
        return result

    def execute_core(self, parameters: CommandParameters, session: Optional[SessionContext]) -> CommandResult:
        document = self._load_document(parameters)
        format_name = parameters.get(FORMAT, str, "full").strip().lower()
        rendered = render_document(document, format_name)
        return CommandResult.ok(
            "Clinical document retrieved",
            data={"document": document, "format": format_name, "rendered": rendered}
        )
