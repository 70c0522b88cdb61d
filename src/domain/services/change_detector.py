"""Change Detection Service.

This service detects field-level changes between the current state of a clinical
record and the values proposed by an update command. Only fields whose value
actually differs are reported, which gives update commands their diff semantics:
repeating an identical update yields no change events and touches nothing.

Security Impact:
    - Compares values that may contain clinical free text
    - Change events are logged for the audit trail
    - Values are never logged by this service, only field names

Architecture:
    - Pure domain service with no infrastructure dependencies
    - Uses pandas' missing-value semantics so NaN and None compare equal
    - Returns domain models (ChangeEvent) for use by commands and the audit logger
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd
from pydantic import BaseModel

from src.domain.cdc_models import ChangeEvent, ChangeType

logger = logging.getLogger(__name__)


class ChangeDetector:
    """Service for detecting field-level changes on a single record.

    Example Usage:
        ```python
        detector = ChangeDetector(changed_by=str(session.user_id), command_name="UpdateDiagnosis")
        events = detector.detect_changes(diagnosis, {"status": DiagnosisStatus.RESOLVED}, "diagnosis")
        diagnosis.apply_changes(detector.to_changes_dict(events))
        ```
    """

    def __init__(self, changed_by: Optional[str] = None, command_name: Optional[str] = None):
        """Initialize change detector.

        Parameters:
            changed_by: User identifier stamped on every event
            command_name: Command that is proposing the changes
        """
        self.changed_by = changed_by
        self.command_name = command_name

    def detect_changes(
        self,
        record: BaseModel,
        proposed: Dict[str, Any],
        entity_type: str,
        document_id: Optional[str] = None,
        entity_id: Optional[str] = None
    ) -> List[ChangeEvent]:
        """Compare proposed values with the record's current values.

        Parameters:
            record: Current state of the record
            proposed: Field name to proposed value; fields absent here are untouched
            entity_type: Kind of record, used on the change events
            document_id: Owning document identifier
            entity_id: Record identifier (defaults to `record.id`)

        Returns:
            List of UPDATE ChangeEvents, one per field whose value differs
        """
        record_id = entity_id or str(getattr(record, "id", ""))
        events = []
        for field_name, new_value in proposed.items():
            if field_name not in type(record).model_fields:
                logger.warning(f"Ignoring unknown field '{field_name}' for {entity_type}")
                continue
            old_value = getattr(record, field_name)
            if self.values_equal(old_value, new_value):
                continue
            events.append(ChangeEvent(
                entity_type=entity_type,
                entity_id=record_id,
                document_id=document_id,
                field_name=field_name,
                old_value=old_value,
                new_value=new_value,
                change_type=ChangeType.UPDATE,
                changed_by=self.changed_by,
                command_name=self.command_name,
            ))

        logger.debug(f"Detected {len(events)} changed field(s) on {entity_type} {record_id}")
        return events

    def generate_insert_changes(
        self,
        record: BaseModel,
        entity_type: str,
        document_id: Optional[str] = None,
        fields: Optional[Iterable[str]] = None
    ) -> List[ChangeEvent]:
        """Generate INSERT events for the populated fields of a new record.

        Parameters:
            record: Newly created record
            entity_type: Kind of record
            document_id: Owning document identifier
            fields: Fields to include (defaults to every model field)

        Returns:
            List of INSERT ChangeEvents (one per non-empty field)
        """
        record_id = str(getattr(record, "id", ""))
        names = list(fields) if fields is not None else list(type(record).model_fields)
        events = []
        for field_name in names:
            value = getattr(record, field_name, None)
            if value is None or value == "" or value == [] or value == {}:
                continue
            events.append(ChangeEvent(
                entity_type=entity_type,
                entity_id=record_id,
                document_id=document_id,
                field_name=field_name,
                old_value=None,
                new_value=value,
                change_type=ChangeType.INSERT,
                changed_by=self.changed_by,
                command_name=self.command_name,
            ))
        return events

    def lifecycle_change(
        self,
        entity_type: str,
        entity_id: str,
        change_type: ChangeType,
        field_name: str,
        old_value: Any = None,
        new_value: Any = None,
        document_id: Optional[str] = None
    ) -> ChangeEvent:
        """Build a single event for a lifecycle transition (deactivate, delete, complete)."""
        return ChangeEvent(
            entity_type=entity_type,
            entity_id=entity_id,
            document_id=document_id,
            field_name=field_name,
            old_value=old_value,
            new_value=new_value,
            change_type=change_type,
            changed_by=self.changed_by,
            command_name=self.command_name,
        )

    @staticmethod
    def to_changes_dict(events: List[ChangeEvent]) -> Dict[str, Any]:
        """Collapse change events into a field name to new value mapping."""
        return {event.field_name: event.new_value for event in events}

    @staticmethod
    def values_equal(old: Any, new: Any) -> bool:
        """Compare two values accounting for NaN, None, lists and dicts.

        Parameters:
            old: Old value
            new: New value

        Returns:
            True if values are equal, False otherwise
        """
        # Handle arrays/lists first (pd.isna() doesn't work on lists)
        if isinstance(old, (list, tuple)) and isinstance(new, (list, tuple)):
            return list(old) == list(new)
        if isinstance(old, (list, tuple)) or isinstance(new, (list, tuple)):
            return False

        # Handle dicts
        if isinstance(old, dict) and isinstance(new, dict):
            return old == new
        if isinstance(old, dict) or isinstance(new, dict):
            return False

        # Handle None/NaN
        try:
            if pd.isna(old) and pd.isna(new):
                return True
            if pd.isna(old) or pd.isna(new):
                return False
        except (ValueError, TypeError):
            pass

        return old == new
