"""Domain Ports - Abstract Contracts for Clinical Documentation.

This module defines the Port interfaces (abstract contracts) that Adapters must implement,
the Result type used to communicate success or failure across them, and the domain
exception hierarchy. Following Hexagonal Architecture, the Domain Core defines what it
needs (document lookup, profile lookup), not how it's provided.

Security Impact:
    - Profile lookup is read-only: it resolves names and roles for authorization only
    - Stores receive fully validated ClinicalDocument aggregates
    - Exceptions carry an ErrorCode so callers never need to parse messages

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Adapters (in-memory, DuckDB) implement these ports
    - Commands receive port implementations through their constructors
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Generic, List, Optional, TypeVar, Union
from uuid import UUID

from src.domain.enums import ErrorCode

if TYPE_CHECKING:
    from src.domain.cdc_models import ChangeEvent
    from src.domain.clinical_document import ClinicalDocument
    from src.domain.profiles import UserProfile

# Type variable for Result generic
T = TypeVar('T')


# ============================================================================
# Result Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    Storage adapters and services return this type so that callers can react
    to failures (missing files, unreadable payloads) without try/except blocks.

    Attributes:
        success: True if the operation succeeded, False otherwise
        value: The successful result value (only present if success=True)
        error: Error information (only present if success=False)
        error_type: Type of error (StorageError, InvalidFormatError, etc.)
        error_details: Additional error context (document_id, path, etc.)

    Example:
        ```python
        result = store.save_snapshot(path)
        if result.is_failure():
            log_error(result.error, result.error_details)
        ```
    """

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict] = None

    @classmethod
    def success_result(cls, value: T) -> 'Result[T]':
        """Create a successful result.

        Parameters:
            value: The successful result value

        Returns:
            Result: Success result with the value
        """
        return cls(
            success=True,
            value=value,
            error=None,
            error_type=None,
            error_details=None
        )

    @classmethod
    def failure_result(
        cls,
        error: Union[str, Exception],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        Parameters:
            error: Error message or exception
            error_type: Type of error (e.g., "StorageError")
            error_details: Additional context (document_id, path, etc.)

        Returns:
            Result: Failure result with error information
        """
        error_message = str(error) if isinstance(error, Exception) else error
        error_type_name = error_type or (type(error).__name__ if isinstance(error, Exception) else "UnknownError")

        return cls(
            success=False,
            value=None,
            error=error_message,
            error_type=error_type_name,
            error_details=error_details or {}
        )

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class ClinicalDocumentationError(Exception):
    """Base exception for all clinical documentation errors.

    Attributes:
        error_code: Taxonomy code reported to callers
        details: Additional error context
    """

    error_code = ErrorCode.UNEXPECTED

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


class MissingParameterError(ClinicalDocumentationError):
    """Raised when a required command parameter is absent or null."""

    error_code = ErrorCode.MISSING_PARAMETER

    def __init__(self, key: str):
        super().__init__(f"Required parameter '{key}' is missing or null.", {"key": key})
        self.key = key


class EntityNotFoundError(ClinicalDocumentationError):
    """Raised when a document, entry or diagnosis reference cannot be resolved."""

    error_code = ErrorCode.NOT_FOUND


class InvalidFormatError(ClinicalDocumentationError):
    """Raised when a value does not match its expected format (codes, enums)."""

    error_code = ErrorCode.INVALID_FORMAT


class InvariantViolationError(ClinicalDocumentationError):
    """Raised when an operation would break a medical-record invariant."""

    error_code = ErrorCode.INVARIANT_VIOLATION


class DocumentCompletedError(InvariantViolationError):
    """Raised when a completed document is asked to change."""
    pass


class IncompleteDocumentError(InvariantViolationError):
    """Raised when a document fails its completeness check.

    Attributes:
        violations: Every rule the document currently violates
    """

    def __init__(self, violations: List[str]):
        super().__init__(
            "Cannot complete partial document: " + "; ".join(violations),
            {"violations": list(violations)}
        )
        self.violations = list(violations)


class PermissionDeniedError(ClinicalDocumentationError):
    """Raised when a session lacks the permission an operation requires."""

    error_code = ErrorCode.PERMISSION_DENIED


class StorageError(ClinicalDocumentationError):
    """Raised when a storage adapter cannot read or write documents.

    Attributes:
        operation: The storage operation that failed (add, update, load, etc.)
    """

    def __init__(self, message: str, operation: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message, details)
        self.operation = operation


# ============================================================================
# Ports
# ============================================================================

class DocumentStorePort(ABC):
    """Abstract contract for clinical document storage.

    The store owns persistence and any concurrency control. The domain assumes a
    single writer per document: a command fetches the aggregate, mutates it and
    hands it back through `update` before returning.

    Example Usage:
        ```python
        class InMemoryDocumentStore(DocumentStorePort):
            def find_by_id(self, document_id):
                return self._documents.get(document_id)
            ...
        ```
    """

    @abstractmethod
    def find_by_id(self, document_id: UUID) -> Optional['ClinicalDocument']:
        """Return the document with the given id, or None."""
        raise NotImplementedError

    @abstractmethod
    def exists(self, document_id: UUID) -> bool:
        """Check whether a document with the given id is stored."""
        raise NotImplementedError

    @abstractmethod
    def add(self, document: 'ClinicalDocument') -> bool:
        """Store a new document.

        Returns:
            bool: False when a document with the same id (or appointment) already exists
        """
        raise NotImplementedError

    @abstractmethod
    def remove(self, document_id: UUID) -> bool:
        """Remove a document permanently.

        Returns:
            bool: True if a document was removed
        """
        raise NotImplementedError

    @abstractmethod
    def update(self, document: 'ClinicalDocument') -> None:
        """Persist the current state of an already stored document.

        Raises:
            StorageError: If the document is not stored
        """
        raise NotImplementedError

    @abstractmethod
    def list_all(self) -> List['ClinicalDocument']:
        """Return every stored document ordered by creation time."""
        raise NotImplementedError

    @abstractmethod
    def list_by_patient(self, patient_id: UUID) -> List['ClinicalDocument']:
        """Return the documents written for a patient."""
        raise NotImplementedError

    @abstractmethod
    def list_by_physician(self, physician_id: UUID) -> List['ClinicalDocument']:
        """Return the documents authored by a physician."""
        raise NotImplementedError

    @abstractmethod
    def list_by_date_range(self, start: datetime, end: datetime) -> List['ClinicalDocument']:
        """Return documents created within [start, end]."""
        raise NotImplementedError

    @abstractmethod
    def list_incomplete(self) -> List['ClinicalDocument']:
        """Return documents still in draft."""
        raise NotImplementedError

    @abstractmethod
    def appointment_has_document(self, appointment_id: UUID) -> bool:
        """Check whether a document already exists for an appointment."""
        raise NotImplementedError


class ProfileLookupPort(ABC):
    """Abstract contract for read-only identity/profile lookup.

    Used to resolve display names and roles for authorization checks. It is
    never used to mutate clinical state.
    """

    @abstractmethod
    def find_profile_by_id(self, profile_id: UUID) -> Optional['UserProfile']:
        """Return the profile with the given id, or None."""
        raise NotImplementedError


class ChangeAuditPort(ABC):
    """Abstract contract for the append-only change audit trail.

    Commands report every field-level change (inserts, updates, deactivations,
    deletions) through this port. The infrastructure ChangeAuditLogger is the
    standard implementation.
    """

    @abstractmethod
    def log_change_event(self, change_event: 'ChangeEvent') -> None:
        """Append a single change event to the trail."""
        raise NotImplementedError

    def log_changes_batch(self, change_events: List['ChangeEvent']) -> None:
        """Append several change events in order."""
        for event in change_events:
            self.log_change_event(event)
