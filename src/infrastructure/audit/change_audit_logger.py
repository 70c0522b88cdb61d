"""Change Audit Logger.

This module provides a centralized logging mechanism for tracking field-level changes
to clinical documents and their entries. Each change is logged with field name,
old/new values, timestamp, user and command for audit and compliance purposes.

Security Impact:
    - Creates immutable audit trail of all field-level changes
    - Enables forensic analysis of clinical record modifications
    - Change logs are append-only for compliance

Architecture:
    - Infrastructure layer implementation of the domain ChangeAuditPort
    - Called by the clinical commands through the port
    - Buffers entries in memory; storage adapters flush them in batches
"""

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from src.domain.cdc_models import ChangeEvent, ChangeType
from src.domain.ports import ChangeAuditPort

logger = logging.getLogger(__name__)


class ChangeAuditLogger(ChangeAuditPort):
    """Logger for tracking field-level change events.

    Maintains an in-memory buffer of change entries that can be flushed to
    storage in batches.

    Example Usage:
        ```python
        audit = ChangeAuditLogger()
        audit.set_session_context(session_id=str(session.session_id), changed_by=str(session.user_id))
        audit.log_change(
            entity_type="diagnosis",
            entity_id=str(diagnosis.id),
            field_name="status",
            old_value="Active",
            new_value="Resolved",
            document_id=str(document.id),
        )
        # Later, flush to storage
        store.flush_change_logs(audit.get_logs())
        audit.clear_logs()
        ```
    """

    def __init__(self):
        """Initialize change audit logger."""
        self._logs: List[dict] = []
        self._session_id: Optional[str] = None
        self._changed_by: Optional[str] = None

    def set_session_context(
        self,
        session_id: Optional[str] = None,
        changed_by: Optional[str] = None
    ) -> None:
        """Set session context stamped on subsequent entries.

        Parameters:
            session_id: Session the changes are made in
            changed_by: Default user identifier for events without one
        """
        self._session_id = session_id
        self._changed_by = changed_by

    def log_change(
        self,
        entity_type: str,
        entity_id: str,
        field_name: str,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        change_type: str = ChangeType.UPDATE.value,
        document_id: Optional[str] = None,
        changed_by: Optional[str] = None,
        command_name: Optional[str] = None
    ) -> None:
        """Log a single change from already serialized values.

        Parameters:
            entity_type: Kind of record (clinical_document, diagnosis, ...)
            entity_id: Identifier of the record that changed
            field_name: Name of the field that changed
            old_value: Previous value (before change)
            new_value: New value (after change)
            change_type: 'INSERT', 'UPDATE', 'DEACTIVATE' or 'DELETE'
            document_id: Owning document identifier
            changed_by: User identifier (uses context, then 'system', if not provided)
            command_name: Command that caused the change
        """
        log_entry = {
            "change_id": str(uuid.uuid4()),
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "document_id": document_id,
            "field_name": field_name,
            "old_value": old_value,
            "new_value": new_value,
            "change_type": change_type,
            "changed_at": datetime.now(),
            "changed_by": changed_by or self._changed_by or "system",
            "command_name": command_name,
            "session_id": self._session_id,
        }

        self._logs.append(log_entry)
        logger.debug(f"Logged change: {entity_type}.{entity_id}.{field_name} ({change_type})")

    def log_change_event(self, change_event: ChangeEvent) -> None:
        """Log a ChangeEvent object.

        Parameters:
            change_event: ChangeEvent instance to log
        """
        audit_dict = change_event.to_audit_dict()
        audit_dict["changed_by"] = audit_dict["changed_by"] or self._changed_by or "system"
        audit_dict["session_id"] = self._session_id

        self._logs.append(audit_dict)
        logger.debug(
            f"Logged change event: {change_event.entity_type}."
            f"{change_event.entity_id}.{change_event.field_name} "
            f"({change_event.change_type.value})"
        )

    def get_logs(self) -> List[dict]:
        """Get all logged change events.

        Returns:
            List of change log entries (dictionaries ready for database insertion)
        """
        return self._logs.copy()

    def get_logs_for_document(self, document_id: str) -> List[dict]:
        return [entry for entry in self._logs if entry.get("document_id") == str(document_id)]

    def clear_logs(self) -> None:
        """Clear all logged events (after flushing to storage)."""
        self._logs.clear()
        logger.debug("Cleared change audit logs")

    def get_log_count(self) -> int:
        return len(self._logs)

    def has_logs(self) -> bool:
        return len(self._logs) > 0
