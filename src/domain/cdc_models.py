"""Change Data Capture (CDC) Models.

This module defines models for tracking field-level changes to clinical documents
and their entries. These models feed the audit trail and report which fields an
update command actually changed.

Security Impact:
    - Change events may carry clinical free text (old/new values)
    - Change logs are immutable (append-only) for compliance
    - Every event records the user that caused it

Architecture:
    - Pure domain models with zero infrastructure dependencies
    - Produced by ChangeDetector and the clinical commands
    - Consumed by ChangeAuditLogger and storage adapters
"""

import json
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class ChangeType(str, Enum):
    """Kinds of change recorded in the audit trail."""
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DEACTIVATE = "DEACTIVATE"
    DELETE = "DELETE"


class ChangeEvent(BaseModel):
    """Represents a single field-level change to a document or entry.

    Parameters:
        entity_type: Kind of record (clinical_document, diagnosis, prescription, ...)
        entity_id: Identifier of the record that changed
        document_id: Document the record belongs to
        field_name: Name of the field that changed
        old_value: Previous value (before change)
        new_value: New value (after change)
        change_type: Type of change (INSERT, UPDATE, DEACTIVATE, DELETE)
        changed_at: Timestamp when change occurred
        changed_by: User identifier (optional)
        command_name: Command that caused the change (optional)
    """

    entity_type: str = Field(..., description="Kind of record")
    entity_id: str = Field(..., description="Identifier of the record")
    document_id: Optional[str] = Field(None, description="Owning document identifier")
    field_name: str = Field(..., description="Name of the field that changed")
    old_value: Optional[Any] = Field(None, description="Previous value (before change)")
    new_value: Optional[Any] = Field(None, description="New value (after change)")
    change_type: ChangeType = Field(ChangeType.UPDATE, description="Type of change")
    changed_at: datetime = Field(default_factory=datetime.now, description="Timestamp when change occurred")
    changed_by: Optional[str] = Field(None, description="User identifier")
    command_name: Optional[str] = Field(None, description="Command that caused the change")

    def to_audit_dict(self) -> dict:
        """Convert to dictionary for audit log insertion.

        Returns:
            Dictionary with serialized values suitable for database insertion
        """
        return {
            'change_id': str(uuid.uuid4()),
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'document_id': self.document_id,
            'field_name': self.field_name,
            'old_value': self._serialize_value(self.old_value),
            'new_value': self._serialize_value(self.new_value),
            'change_type': self.change_type.value,
            'changed_at': self.changed_at,
            'changed_by': self.changed_by,
            'command_name': self.command_name,
        }

    def _serialize_value(self, value: Any) -> Optional[str]:
        """Serialize complex types to a string for storage.

        Parameters:
            value: Value to serialize (can be None, str, list, dict, enum, etc.)

        Returns:
            Serialized string representation or None
        """
        if value is None:
            return None

        if isinstance(value, Enum):
            return str(value.value)

        if isinstance(value, (datetime, date)):
            return value.isoformat()

        # Handle complex types (lists, dicts)
        if isinstance(value, (list, dict)):
            try:
                return json.dumps(value, default=str)
            except (TypeError, ValueError):
                return str(value)

        return str(value)

    model_config = {
        'frozen': False,
        'validate_assignment': True,
    }


class UpdateResult(BaseModel):
    """Outcome of a diff-based update.

    Parameters:
        entity_id: Identifier of the updated record
        fields_updated: Names of the fields whose value changed
        changes: The change events that were applied
        modified_at: Modification timestamp after the update (None if unchanged)
    """

    entity_id: UUID = Field(..., description="Identifier of the updated record")
    fields_updated: List[str] = Field(default_factory=list, description="Fields whose value changed")
    changes: List[ChangeEvent] = Field(default_factory=list, description="Applied change events")
    modified_at: Optional[datetime] = Field(None, description="Modification timestamp after the update")

    @property
    def has_changes(self) -> bool:
        return bool(self.fields_updated)

    model_config = {
        'frozen': True,
    }
