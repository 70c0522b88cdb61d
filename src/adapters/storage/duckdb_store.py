"""DuckDB Storage Adapter.

This adapter implements DocumentStorePort on top of DuckDB, an in-process
analytical database. Each clinical document is stored as a JSON payload next
to indexed patient, physician, appointment and lifecycle columns, and the
change audit trail is flushed into an append-only table.

Security Impact:
    - Only validated ClinicalDocument aggregates are persisted
    - The change audit table is append-only
    - Database path is validated to prevent writes to missing directories

Architecture:
    - Implements DocumentStorePort (Hexagonal Architecture)
    - Documents are rehydrated through the pydantic model on every read, so
      callers always work on a private copy and must `update` to persist
    - Connection is created lazily and reused
"""

import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Optional
from uuid import UUID

import duckdb
import pandas as pd

from src.domain.clinical_document import ClinicalDocument
from src.domain.ports import DocumentStorePort, Result, StorageError
from src.infrastructure.config_manager import StorageConfig

logger = logging.getLogger(__name__)

_DOCUMENT_COLUMNS = "document_id, patient_id, physician_id, appointment_id, created_at, completed_at, payload"


class DuckDBDocumentStore(DocumentStorePort):
    """DuckDB implementation of DocumentStorePort.

    Parameters:
        storage_config: StorageConfig from the configuration manager (preferred)
        db_path: Path to DuckDB database file (or ':memory:' for in-memory)

    Example Usage:
        ```python
        from src.infrastructure.config_manager import get_storage_config

        store = DuckDBDocumentStore(storage_config=get_storage_config())
        store.add(document)
        store.flush_change_logs(audit_logger.get_logs())
        ```
    """

    def __init__(
        self,
        storage_config: Optional[StorageConfig] = None,
        db_path: Optional[str] = None
    ):
        if storage_config:
            if storage_config.storage_type != "duckdb":
                raise StorageError(
                    f"Storage type '{storage_config.storage_type}' does not match DuckDB store",
                    operation="__init__"
                )
            self.db_path = storage_config.get_db_path()
        else:
            self.db_path = db_path or ":memory:"

        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._initialized = False

        if self.db_path != ":memory:":
            db_path_obj = Path(self.db_path)
            if not db_path_obj.parent.exists():
                raise StorageError(
                    f"Database directory does not exist: {db_path_obj.parent}",
                    operation="__init__"
                )

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Get or create the DuckDB connection, initializing the schema once."""
        if self._connection is None:
            try:
                self._connection = duckdb.connect(self.db_path)
                logger.info(f"Connected to DuckDB database: {self.db_path}")
            except Exception as e:
                raise StorageError(
                    f"Failed to connect to DuckDB: {str(e)}",
                    operation="connect",
                    details={"db_path": self.db_path}
                )
        if not self._initialized:
            self._initialize_schema(self._connection)
        return self._connection

    def _initialize_schema(self, conn: duckdb.DuckDBPyConnection) -> None:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS clinical_documents (
                document_id VARCHAR PRIMARY KEY,
                patient_id VARCHAR NOT NULL,
                physician_id VARCHAR NOT NULL,
                appointment_id VARCHAR NOT NULL,
                created_at TIMESTAMP NOT NULL,
                completed_at TIMESTAMP,
                payload VARCHAR NOT NULL
            )
        """)
        conn.execute("""
            CREATE TABLE IF NOT EXISTS change_audit_log (
                change_id VARCHAR PRIMARY KEY,
                entity_type VARCHAR NOT NULL,
                entity_id VARCHAR NOT NULL,
                document_id VARCHAR,
                field_name VARCHAR NOT NULL,
                old_value VARCHAR,
                new_value VARCHAR,
                change_type VARCHAR NOT NULL,
                changed_at TIMESTAMP NOT NULL,
                changed_by VARCHAR,
                command_name VARCHAR,
                session_id VARCHAR
            )
        """)
        conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_patient ON clinical_documents(patient_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_physician ON clinical_documents(physician_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_documents_appointment ON clinical_documents(appointment_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_change_audit_document ON change_audit_log(document_id)")
        self._initialized = True
        logger.info("DuckDB clinical document schema initialized")

    @staticmethod
    def _row_values(document: ClinicalDocument) -> list:
        return [
            str(document.id),
            str(document.patient_id),
            str(document.physician_id),
            str(document.appointment_id),
            document.created_at,
            document.completed_at,
            document.model_dump_json(),
        ]

    def _query_documents(self, where: str = "", params: Optional[list] = None) -> List[ClinicalDocument]:
        sql = f"SELECT payload FROM clinical_documents {where} ORDER BY created_at"
        try:
            rows = self._get_connection().execute(sql, params or []).fetchall()
        except duckdb.Error as e:
            raise StorageError(f"Failed to query clinical documents: {str(e)}", operation="query")
        return [ClinicalDocument.model_validate_json(row[0]) for row in rows]

    # ------------------------------------------------------------------
    # DocumentStorePort
    # ------------------------------------------------------------------

    def find_by_id(self, document_id: UUID) -> Optional[ClinicalDocument]:
        documents = self._query_documents("WHERE document_id = ?", [str(document_id)])
        return documents[0] if documents else None

    def exists(self, document_id: UUID) -> bool:
        row = self._get_connection().execute(
            "SELECT COUNT(*) FROM clinical_documents WHERE document_id = ?",
            [str(document_id)]
        ).fetchone()
        return row[0] > 0

    def add(self, document: ClinicalDocument) -> bool:
        if self.exists(document.id) or self.appointment_has_document(document.appointment_id):
            logger.warning(f"Rejected duplicate clinical document {document.id}")
            return False
        try:
            self._get_connection().execute(
                f"INSERT INTO clinical_documents ({_DOCUMENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                self._row_values(document)
            )
        except duckdb.Error as e:
            raise StorageError(
                f"Failed to add clinical document: {str(e)}",
                operation="add",
                details={"document_id": str(document.id)}
            )
        return True

    def remove(self, document_id: UUID) -> bool:
        if not self.exists(document_id):
            return False
        self._get_connection().execute(
            "DELETE FROM clinical_documents WHERE document_id = ?",
            [str(document_id)]
        )
        return True

    def update(self, document: ClinicalDocument) -> None:
        if not self.exists(document.id):
            raise StorageError(
                f"Clinical document {document.id} is not stored",
                operation="update",
                details={"document_id": str(document.id)}
            )
        conn = self._get_connection()
        try:
            conn.execute("BEGIN TRANSACTION")
            conn.execute("DELETE FROM clinical_documents WHERE document_id = ?", [str(document.id)])
            conn.execute(
                f"INSERT INTO clinical_documents ({_DOCUMENT_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                self._row_values(document)
            )
            conn.execute("COMMIT")
        except duckdb.Error as e:
            conn.execute("ROLLBACK")
            raise StorageError(
                f"Failed to update clinical document: {str(e)}",
                operation="update",
                details={"document_id": str(document.id)}
            )

    def list_all(self) -> List[ClinicalDocument]:
        return self._query_documents()

    def list_by_patient(self, patient_id: UUID) -> List[ClinicalDocument]:
        return self._query_documents("WHERE patient_id = ?", [str(patient_id)])

    def list_by_physician(self, physician_id: UUID) -> List[ClinicalDocument]:
        return self._query_documents("WHERE physician_id = ?", [str(physician_id)])

    def list_by_date_range(self, start: datetime, end: datetime) -> List[ClinicalDocument]:
        return self._query_documents("WHERE created_at BETWEEN ? AND ?", [start, end])

    def list_incomplete(self) -> List[ClinicalDocument]:
        return self._query_documents("WHERE completed_at IS NULL")

    def appointment_has_document(self, appointment_id: UUID) -> bool:
        row = self._get_connection().execute(
            "SELECT COUNT(*) FROM clinical_documents WHERE appointment_id = ?",
            [str(appointment_id)]
        ).fetchone()
        return row[0] > 0

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    def flush_change_logs(self, change_logs: List[dict]) -> Result[int]:
        """Persist buffered change audit entries.

        Parameters:
            change_logs: Entries from ChangeAuditLogger.get_logs()

        Returns:
            Result[int]: Number of entries persisted or error
        """
        if not change_logs:
            return Result.success_result(0)

        try:
            conn = self._get_connection()
            for log_entry in change_logs:
                conn.execute("""
                    INSERT INTO change_audit_log (
                        change_id, entity_type, entity_id, document_id, field_name,
                        old_value, new_value, change_type, changed_at, changed_by,
                        command_name, session_id
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, [
                    log_entry.get('change_id', str(uuid.uuid4())),
                    log_entry.get('entity_type'),
                    log_entry.get('entity_id'),
                    log_entry.get('document_id'),
                    log_entry.get('field_name'),
                    log_entry.get('old_value'),
                    log_entry.get('new_value'),
                    log_entry.get('change_type'),
                    log_entry.get('changed_at', datetime.now()),
                    log_entry.get('changed_by'),
                    log_entry.get('command_name'),
                    log_entry.get('session_id'),
                ])

            count = len(change_logs)
            logger.info(f"Flushed {count} change audit entries to database")
            return Result.success_result(count)

        except Exception as e:
            error_msg = f"Failed to flush change logs: {str(e)}"
            logger.error(error_msg, exc_info=True)
            return Result.failure_result(
                StorageError(error_msg, operation="flush_change_logs"),
                error_type="StorageError"
            )

    def get_change_logs(self, document_id: Optional[UUID] = None) -> pd.DataFrame:
        """Return the persisted audit trail, optionally for one document."""
        sql = "SELECT * FROM change_audit_log"
        params = []
        if document_id is not None:
            sql += " WHERE document_id = ?"
            params.append(str(document_id))
        sql += " ORDER BY changed_at"
        return self._get_connection().execute(sql, params).df()

    def close(self) -> None:
        """Close storage connection and release resources."""
        if self._connection is not None:
            try:
                self._connection.close()
                self._connection = None
                self._initialized = False
                logger.info("Closed DuckDB connection")
            except Exception as e:
                logger.warning(f"Error closing connection: {str(e)}")
