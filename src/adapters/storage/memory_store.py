"""In-Memory Storage Adapters.

Dictionary-backed implementations of DocumentStorePort and ProfileLookupPort.
The document store hands out the stored aggregates by reference, matching the
single-writer model of the domain: a command mutates the document it fetched
and hands it back through `update`.

Security Impact:
    - Profiles loaded from JSON are validated through the UserProfile model
    - Nothing is persisted unless explicitly saved

Architecture:
    - Implements the domain ports (Hexagonal Architecture)
    - Used by the CLI for the `memory` storage type and throughout the tests
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import ValidationError as PydanticValidationError

from src.domain.clinical_document import ClinicalDocument
from src.domain.enums import UserRole
from src.domain.ports import (
    DocumentStorePort,
    ProfileLookupPort,
    Result,
    StorageError,
)
from src.domain.profiles import UserProfile

logger = logging.getLogger(__name__)


class InMemoryDocumentStore(DocumentStorePort):
    """Document store that keeps aggregates in a dictionary.

    Example Usage:
        ```python
        store = InMemoryDocumentStore()
        store.add(ClinicalDocument.create(patient_id, physician_id, appointment_id, "Headache"))
        store.list_incomplete()
        ```
    """

    def __init__(self):
        self._documents: Dict[UUID, ClinicalDocument] = {}

    def find_by_id(self, document_id: UUID) -> Optional[ClinicalDocument]:
        return self._documents.get(document_id)

    def exists(self, document_id: UUID) -> bool:
        return document_id in self._documents

    def add(self, document: ClinicalDocument) -> bool:
        if document.id in self._documents or self.appointment_has_document(document.appointment_id):
            logger.warning(f"Rejected duplicate clinical document {document.id}")
            return False
        self._documents[document.id] = document
        return True

    def remove(self, document_id: UUID) -> bool:
        return self._documents.pop(document_id, None) is not None

    def update(self, document: ClinicalDocument) -> None:
        if document.id not in self._documents:
            raise StorageError(
                f"Clinical document {document.id} is not stored",
                operation="update",
                details={"document_id": str(document.id)}
            )
        self._documents[document.id] = document

    def list_all(self) -> List[ClinicalDocument]:
        return sorted(self._documents.values(), key=lambda d: d.created_at)

    def list_by_patient(self, patient_id: UUID) -> List[ClinicalDocument]:
        return [d for d in self.list_all() if d.patient_id == patient_id]

    def list_by_physician(self, physician_id: UUID) -> List[ClinicalDocument]:
        return [d for d in self.list_all() if d.physician_id == physician_id]

    def list_by_date_range(self, start: datetime, end: datetime) -> List[ClinicalDocument]:
        return [d for d in self.list_all() if start <= d.created_at <= end]

    def list_incomplete(self) -> List[ClinicalDocument]:
        return [d for d in self.list_all() if not d.is_completed]

    def appointment_has_document(self, appointment_id: UUID) -> bool:
        return any(d.appointment_id == appointment_id for d in self._documents.values())

    def __len__(self) -> int:
        return len(self._documents)


class InMemoryProfileDirectory(ProfileLookupPort):
    """Profile directory backed by a dictionary, loadable from a JSON file.

    The JSON file holds a list of profile objects:

        [{"id": "...", "username": "drsmith", "name": "Dr. Smith", "role": "Physician"}]
    """

    def __init__(self, profiles: Optional[List[UserProfile]] = None):
        self._profiles: Dict[UUID, UserProfile] = {}
        for profile in profiles or []:
            self.add_profile(profile)

    def add_profile(self, profile: UserProfile) -> bool:
        """Add a profile; returns False if the id or username is taken."""
        if profile.id in self._profiles or self.find_by_username(profile.username) is not None:
            return False
        self._profiles[profile.id] = profile
        return True

    def remove_profile(self, profile_id: UUID) -> bool:
        return self._profiles.pop(profile_id, None) is not None

    def find_profile_by_id(self, profile_id: UUID) -> Optional[UserProfile]:
        return self._profiles.get(profile_id)

    def find_by_username(self, username: str) -> Optional[UserProfile]:
        wanted = username.strip().lower()
        for profile in self._profiles.values():
            if profile.username.lower() == wanted:
                return profile
        return None

    def list_profiles(self, role: Optional[UserRole] = None) -> List[UserProfile]:
        profiles = sorted(self._profiles.values(), key=lambda p: p.username)
        if role is None:
            return profiles
        return [p for p in profiles if p.role == role]

    @classmethod
    def load_from_file(cls, path: str) -> Result['InMemoryProfileDirectory']:
        """Load a directory from a JSON file; a missing file yields an empty directory."""
        file_path = Path(path)
        if not file_path.exists():
            logger.info(f"Profile file {path} not found, starting with an empty directory")
            return Result.success_result(cls())

        try:
            with open(file_path, 'r') as f:
                raw_profiles = json.load(f)
            profiles = [UserProfile.model_validate(item) for item in raw_profiles]
        except (json.JSONDecodeError, PydanticValidationError, TypeError) as e:
            error_msg = f"Failed to load profiles from {path}: {str(e)}"
            logger.error(error_msg)
            return Result.failure_result(
                StorageError(error_msg, operation="load_profiles"),
                error_type="StorageError",
                error_details={"path": str(path)}
            )

        logger.info(f"Loaded {len(profiles)} profile(s) from {path}")
        return Result.success_result(cls(profiles))

    def save_to_file(self, path: str) -> Result[int]:
        """Write every profile to a JSON file."""
        try:
            payload = [json.loads(p.model_dump_json()) for p in self.list_profiles()]
            with open(path, 'w') as f:
                json.dump(payload, f, indent=2)
        except OSError as e:
            error_msg = f"Failed to save profiles to {path}: {str(e)}"
            logger.error(error_msg)
            return Result.failure_result(
                StorageError(error_msg, operation="save_profiles"),
                error_type="StorageError",
                error_details={"path": str(path)}
            )
        return Result.success_result(len(payload))

    def __len__(self) -> int:
        return len(self._profiles)
