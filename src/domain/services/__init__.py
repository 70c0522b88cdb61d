"""Domain Services.

This package contains domain services that implement business logic
without infrastructure dependencies.
"""

from src.domain.services.change_detector import ChangeDetector
from src.domain.services.clinical_note_renderer import (
    RENDER_FORMATS,
    render_document,
    render_full,
    render_soap_note,
    render_summary,
)
from src.domain.services.document_report import DocumentReportService

__all__ = [
    'ChangeDetector',
    'DocumentReportService',
    'RENDER_FORMATS',
    'render_document',
    'render_full',
    'render_soap_note',
    'render_summary',
]
