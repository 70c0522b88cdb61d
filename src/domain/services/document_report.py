"""Document Report Service.

This service flattens clinical documents into pandas DataFrames for export and
tabular review: one row per document, or one row per entry.

Security Impact:
    - Entry content is included only when explicitly requested
    - Identifiers are exported as strings

Architecture:
    - Pure domain service; writing the frame to disk is the caller's concern
    - Uses pandas for the tabular representation consumed by the CLI export
"""

import logging
from typing import Iterable, List

import pandas as pd

from src.domain.clinical_document import ClinicalDocument
from src.domain.enums import EntryKind

logger = logging.getLogger(__name__)

DOCUMENT_COLUMNS = [
    "document_id",
    "patient_id",
    "physician_id",
    "appointment_id",
    "created_at",
    "completed_at",
    "status",
    "chief_complaint",
    "primary_diagnosis",
    "primary_diagnosis_code",
] + [f"{kind.value}_count" for kind in EntryKind]

ENTRY_COLUMNS = [
    "document_id",
    "entry_id",
    "kind",
    "severity",
    "code",
    "is_active",
    "created_at",
    "modified_at",
    "author_id",
    "display",
]


class DocumentReportService:
    """Build tabular views over clinical documents.

    Example Usage:
        ```python
        report = DocumentReportService()
        df = report.documents_frame(store.list_all())
        df.to_csv("documents.csv", index=False)
        ```
    """

    def __init__(self, include_content: bool = False):
        """Initialize report service.

        Parameters:
            include_content: Include entry display text in entry frames
        """
        self.include_content = include_content

    def documents_frame(self, documents: Iterable[ClinicalDocument]) -> pd.DataFrame:
        """One row per document, with active entry counts per kind."""
        rows = []
        for document in documents:
            primary = document.get_primary_diagnosis()
            counts = document.entry_counts()
            row = {
                "document_id": str(document.id),
                "patient_id": str(document.patient_id),
                "physician_id": str(document.physician_id),
                "appointment_id": str(document.appointment_id),
                "created_at": document.created_at,
                "completed_at": document.completed_at,
                "status": "Completed" if document.is_completed else "Draft",
                "chief_complaint": document.chief_complaint,
                "primary_diagnosis": primary.content if primary else None,
                "primary_diagnosis_code": primary.code if primary else None,
            }
            for kind in EntryKind:
                row[f"{kind.value}_count"] = counts[kind]
            rows.append(row)

        logger.debug(f"Built document report with {len(rows)} row(s)")
        return pd.DataFrame(rows, columns=DOCUMENT_COLUMNS)

    def entries_frame(self, documents: Iterable[ClinicalDocument]) -> pd.DataFrame:
        """One row per entry (inactive entries included, flagged by `is_active`)."""
        rows: List[dict] = []
        for document in documents:
            for entry in document.entries:
                rows.append({
                    "document_id": str(document.id),
                    "entry_id": str(entry.id),
                    "kind": entry.entry_kind.value,
                    "severity": entry.severity.value,
                    "code": entry.code,
                    "is_active": entry.is_active,
                    "created_at": entry.created_at,
                    "modified_at": entry.modified_at,
                    "author_id": str(entry.author_id) if entry.author_id else None,
                    "display": entry.display_string() if self.include_content else None,
                })
        return pd.DataFrame(rows, columns=ENTRY_COLUMNS)

    def severity_breakdown(self, documents: Iterable[ClinicalDocument]) -> pd.DataFrame:
        """Count active entries by kind and severity."""
        entries = self.entries_frame(documents)
        if entries.empty:
            return pd.DataFrame(columns=["kind", "severity", "count"])
        active = entries[entries["is_active"].astype(bool)]
        if active.empty:
            return pd.DataFrame(columns=["kind", "severity", "count"])
        return (
            active.groupby(["kind", "severity"])
            .size()
            .reset_index(name="count")
            .sort_values(["kind", "severity"])
            .reset_index(drop=True)
        )
