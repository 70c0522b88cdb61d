"""Shared plumbing for commands that operate on clinical documents.

Security Impact:
    - Physicians may only change documents they authored; administrators may
      change any document
    - Referenced ids are resolved against the injected store, never trusted

Architecture:
    - Store, profile lookup and audit port are injected through the constructor
    - Validation helpers record findings on a CommandValidationResult and
      return the resolved object (or None) so that later checks can build on it
    - Execution helpers raise domain exceptions, which the pipeline converts
"""

from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional
from uuid import UUID

from src.domain.cdc_models import ChangeEvent
from src.domain.clinical_document import ClinicalDocument
from src.domain.clinical_entries import ClinicalEntry
from src.domain.commands.base import AbstractCommand
from src.domain.commands.parameter_keys import DOCUMENT_ID
from src.domain.commands.parameters import CommandParameters
from src.domain.commands.results import CommandValidationResult
from src.domain.enums import ClinicalEnum, EntryKind, ErrorCode, UserRole
from src.domain.ports import (
    ChangeAuditPort,
    DocumentStorePort,
    EntityNotFoundError,
    PermissionDeniedError,
    ProfileLookupPort,
)
from src.domain.profiles import UserProfile
from src.domain.services.change_detector import ChangeDetector
from src.domain.session import SessionContext


class FieldSpec(NamedTuple):
    """Maps one command parameter onto one entry field.

    Attributes:
        key: Parameter key
        field_name: Entry field the value is written to
        value_type: Type the raw parameter is converted to
        label: Human-readable name used in error messages
        item_type: Item type for list parameters
        transform: Optional normalization applied after conversion
    """

    key: str
    field_name: str
    value_type: type
    label: str
    item_type: Optional[type] = None
    transform: Optional[Callable[[Any], Any]] = None


def enum_choices(enum_cls) -> str:
    return ", ".join(member.value for member in enum_cls)


def read_fields(
    parameters: CommandParameters,
    specs: Iterable[FieldSpec],
    result: CommandValidationResult
) -> Dict[str, Any]:
    """Convert every present parameter named by `specs` into entry field values.

    Parameters that are present but cannot be converted are recorded on
    `result` as InvalidFormat errors and left out of the returned mapping.
    """
    values = {}
    for spec in specs:
        if not parameters.has_value(spec.key):
            continue

        if spec.value_type is list and spec.item_type is not None:
            value = parameters.get_list(spec.key, spec.item_type)
        else:
            value = parameters.get(spec.key, spec.value_type)

        if value is None:
            if isinstance(spec.value_type, type) and issubclass(spec.value_type, ClinicalEnum):
                result.add_error(
                    f"Invalid {spec.label}. Valid values are: {enum_choices(spec.value_type)}",
                    ErrorCode.INVALID_FORMAT
                )
            else:
                result.add_error(
                    f"Invalid {spec.label}: '{parameters.get(spec.key)}'",
                    ErrorCode.INVALID_FORMAT
                )
            continue

        if spec.transform is not None:
            value = spec.transform(value)
        values[spec.field_name] = value
    return values


class ClinicalDocumentCommand(AbstractCommand):
    """Base class for commands that read or change a clinical document.

    Parameters:
        document_store: Store the documents are read from and written back to
        profiles: Read-only profile lookup (optional)
        audit: Change audit trail (optional)
    """

    def __init__(
        self,
        document_store: DocumentStorePort,
        profiles: Optional[ProfileLookupPort] = None,
        audit: Optional[ChangeAuditPort] = None
    ):
        super().__init__()
        self.document_store = document_store
        self.profiles = profiles
        self.audit = audit

    # ------------------------------------------------------------------
    # Validation helpers
    # ------------------------------------------------------------------

    def _validate_document_reference(
        self,
        parameters: CommandParameters,
        result: CommandValidationResult
    ) -> Optional[ClinicalDocument]:
        document_id = parameters.get(DOCUMENT_ID, UUID)
        if document_id is None:
            result.add_error("Invalid document ID format", ErrorCode.INVALID_FORMAT)
            return None
        document = self.document_store.find_by_id(document_id)
        if document is None:
            result.add_error(f"Clinical document with ID {document_id} not found", ErrorCode.NOT_FOUND)
        return document

    def _validate_entry_reference(
        self,
        document: ClinicalDocument,
        parameters: CommandParameters,
        key: str,
        kind: EntryKind,
        result: CommandValidationResult
    ) -> Optional[ClinicalEntry]:
        """Resolve an active entry of the expected kind from an id parameter."""
        entry_id = parameters.get(key, UUID)
        if entry_id is None:
            result.add_error(f"Invalid {kind.value} ID format", ErrorCode.INVALID_FORMAT)
            return None

        entry = document.get_entry(entry_id)
        if entry is None:
            result.add_error(f"{kind.label} with ID {entry_id} not found in this document", ErrorCode.NOT_FOUND)
            return None
        if entry.entry_kind != kind:
            result.add_error(f"Entry with ID {entry_id} is not a {kind.value} entry", ErrorCode.NOT_FOUND)
            return None
        if not entry.is_active:
            result.add_error(f"{kind.label} with ID {entry_id} is no longer active", ErrorCode.INVARIANT_VIOLATION)
            return None
        return entry

    def _validate_draft(self, document: ClinicalDocument, result: CommandValidationResult) -> None:
        if document.is_completed:
            result.add_error(
                "Cannot modify entries in a completed clinical document",
                ErrorCode.INVARIANT_VIOLATION
            )

    def _validate_document_access(
        self,
        document: ClinicalDocument,
        session: Optional[SessionContext],
        result: CommandValidationResult
    ) -> None:
        """Physicians may only change the documents they own."""
        if session is None or session.role != UserRole.PHYSICIAN:
            return
        if document.physician_id != session.user_id:
            result.add_error(
                "Only the authoring physician can modify this clinical document",
                ErrorCode.PERMISSION_DENIED
            )

    def _validate_profile(
        self,
        parameters: CommandParameters,
        key: str,
        role: UserRole,
        result: CommandValidationResult
    ) -> Optional[UserProfile]:
        """Check an id parameter refers to a profile with the expected role."""
        label = role.value.lower()
        profile_id = parameters.get(key, UUID)
        if profile_id is None:
            result.add_error(f"Invalid {label} ID format", ErrorCode.INVALID_FORMAT)
            return None
        if self.profiles is None:
            return None

        profile = self.profiles.find_profile_by_id(profile_id)
        if profile is None:
            result.add_error(f"{role.value} with ID {profile_id} not found", ErrorCode.NOT_FOUND)
            return None
        if profile.role != role:
            result.add_error(f"Profile {profile_id} is not a {label}", ErrorCode.INVARIANT_VIOLATION)
            return None
        return profile

    def _add_entry_issues(
        self,
        entry: ClinicalEntry,
        result: CommandValidationResult,
        known_errors: Iterable[str] = ()
    ) -> None:
        """Copy an entry's own validation findings, skipping already known errors."""
        known = set(known_errors)
        for issue in entry.get_validation_issues():
            if issue.message not in known:
                result.add_error(issue.message, issue.code)
        for warning in entry.get_validation_warnings():
            result.add_warning(warning)

    # ------------------------------------------------------------------
    # Execution helpers
    # ------------------------------------------------------------------

    def _load_document(self, parameters: CommandParameters) -> ClinicalDocument:
        document_id = parameters.get_required(DOCUMENT_ID, UUID)
        document = self.document_store.find_by_id(document_id)
        if document is None:
            raise EntityNotFoundError(
                f"Clinical document with ID {document_id} not found",
                {"document_id": str(document_id)}
            )
        return document

    def _require_document_access(self, document: ClinicalDocument, session: Optional[SessionContext]) -> None:
        """Execution-time counterpart of `_validate_document_access`."""
        check = CommandValidationResult.success()
        self._validate_document_access(document, session, check)
        if not check.is_valid:
            raise PermissionDeniedError(
                check.errors[0],
                {"document_id": str(document.id), "user_id": str(session.user_id)}
            )

    def _load_entry(self, document: ClinicalDocument, parameters: CommandParameters, key: str) -> ClinicalEntry:
        entry_id = parameters.get_required(key, UUID)
        entry = document.get_entry(entry_id)
        if entry is None:
            raise EntityNotFoundError(f"Entry with ID {entry_id} not found in document {document.id}")
        return entry

    def _detector(self, session: Optional[SessionContext]) -> ChangeDetector:
        return ChangeDetector(
            changed_by=str(session.user_id) if session else None,
            command_name=self.command_name
        )

    def _audit(self, events: List[ChangeEvent]) -> None:
        if self.audit is not None and events:
            self.audit.log_changes_batch(events)
