"""Tests for the note renderer and the tabular document report."""

from uuid import uuid4

import pytest

from src.domain.clinical_document import ClinicalDocument
from src.domain.clinical_entries import DiagnosisEntry, ObservationEntry, PlanEntry
from src.domain.enums import DiagnosisType, EntrySeverity, ObservationType
from src.domain.ports import InvalidFormatError
from src.domain.services.clinical_note_renderer import (
    render_document,
    render_full,
    render_soap_note,
    render_summary,
)
from src.domain.services.document_report import DOCUMENT_COLUMNS, DocumentReportService
from src.domain.utils import short_id


@pytest.fixture
def document():
    physician_id = uuid4()
    document = ClinicalDocument.create(uuid4(), physician_id, uuid4(), "Fatigue and thirst")
    document.add_entry(ObservationEntry(
        author_id=physician_id,
        content="Reports polyuria for two weeks",
        observation_type=ObservationType.HISTORY_OF_PRESENT_ILLNESS,
    ))
    document.add_entry(ObservationEntry(author_id=physician_id, content="Lungs clear"))
    diagnosis = DiagnosisEntry(
        author_id=physician_id,
        content="Type 2 diabetes",
        code="E11.9",
        diagnosis_type=DiagnosisType.FINAL,
        is_primary=True,
    )
    document.add_entry(diagnosis)
    document.add_entry(PlanEntry(
        author_id=physician_id,
        content="Check HbA1c",
        severity=EntrySeverity.MODERATE,
        related_diagnosis_ids=[diagnosis.id],
    ))
    return document


class TestClinicalNoteRenderer:
    """Test suite for the clinical note renderer."""

    def test_soap_sections(self, document):
        """Test observations are split into subjective and objective sections."""
        note = render_soap_note(document)
        subjective, objective = note.index("SUBJECTIVE:"), note.index("OBJECTIVE:")
        assert "  Chief Complaint: Fatigue and thirst" in note
        assert subjective < note.index("Reports polyuria for two weeks") < objective
        assert objective < note.index("Lungs clear") < note.index("ASSESSMENT:")
        assert "  - [PRIMARY] Type 2 diabetes (Code: E11.9)" in note
        assert "[Treatment] [Moderate] Check HbA1c" in note
        assert "Document completed at" not in note

    def test_soap_omits_inactive_entries(self, document):
        """Test soft-deleted entries are not part of the note."""
        observation = document.get_observations()[1]
        document.deactivate_entry(observation.id)
        assert "Lungs clear" not in render_soap_note(document)

    def test_summary(self, document):
        """Test the summary header, primary diagnosis and counts."""
        summary = render_summary(document)
        lines = summary.split("\n")
        assert lines[0] == f"Clinical Document {short_id(document.id)} [Draft]"
        assert "Primary Diagnosis: [PRIMARY] Type 2 diabetes (Code: E11.9)" in lines
        assert "Ready to complete: Yes" in lines
        assert lines[-1] == (
            "Active entries: Observation 2, Assessment 0, Diagnosis 1, Plan 1, Prescription 0"
        )

    def test_summary_completed_without_primary(self):
        """Test a completed document without diagnoses."""
        document = ClinicalDocument.create(uuid4(), uuid4(), uuid4(), "Checkup")
        document.complete()
        summary = render_summary(document)
        assert "[Completed]" in summary
        assert "Primary Diagnosis: None" in summary
        assert "Ready to complete" not in summary

    def test_summary_blocked_completion(self, document):
        """Test the summary reports when completion is blocked."""
        document.add_entry(DiagnosisEntry(
            author_id=document.physician_id,
            content="Hypertension",
            diagnosis_type=DiagnosisType.FINAL,
        ))
        assert "Ready to complete: No" in render_summary(document).split("\n")

    def test_full_marks_inactive(self, document):
        """Test the full listing keeps inactive entries and flags them."""
        observation = document.get_observations()[1]
        document.deactivate_entry(observation.id)
        full = render_full(document)
        assert f"[Observation {short_id(observation.id)}] (inactive) Lungs clear" in full
        assert full.index("Reports polyuria") < full.index("Lungs clear") < full.index("Check HbA1c")

    def test_full_without_entries(self):
        """Test an empty entry list is rendered explicitly."""
        document = ClinicalDocument.create(uuid4(), uuid4(), uuid4(), "Checkup")
        assert render_full(document).endswith("ENTRIES:\n  (none)")

    def test_render_document_dispatch(self, document):
        """Test formats are dispatched case-insensitively."""
        assert render_document(document, "SOAP") == render_soap_note(document)
        assert render_document(document, None) == render_full(document)
        with pytest.raises(InvalidFormatError):
            render_document(document, "pdf")

    def test_rendering_is_repeatable(self, document):
        """Test rendering twice produces the same text."""
        assert render_full(document) == render_full(document)


class TestDocumentReportService:
    """Test suite for DocumentReportService."""

    def test_documents_frame(self, document):
        """Test one row per document with entry counts."""
        frame = DocumentReportService().documents_frame([document])
        assert list(frame.columns) == DOCUMENT_COLUMNS
        row = frame.iloc[0]
        assert row["status"] == "Draft"
        assert row["primary_diagnosis_code"] == "E11.9"
        assert row["observation_count"] == 2
        assert row["prescription_count"] == 0

    def test_entries_frame_hides_content_by_default(self, document):
        """Test entry text is only exported on request."""
        frame = DocumentReportService().entries_frame([document])
        assert len(frame) == 4
        assert frame["display"].isna().all()

        detailed = DocumentReportService(include_content=True).entries_frame([document])
        assert detailed.iloc[1]["display"] == "Lungs clear"

    def test_severity_breakdown(self, document):
        """Test active entries are counted by kind and severity."""
        document.deactivate_entry(document.get_observations()[0].id)
        breakdown = DocumentReportService().severity_breakdown([document])
        counts = {(row.kind, row.severity): row.count for row in breakdown.itertuples()}
        assert counts == {
            ("diagnosis", "Routine"): 1,
            ("observation", "Routine"): 1,
            ("plan", "Moderate"): 1,
        }

    def test_empty_reports(self):
        """Test empty inputs produce empty frames with the expected columns."""
        service = DocumentReportService()
        assert service.documents_frame([]).empty
        assert list(service.severity_breakdown([]).columns) == ["kind", "severity", "count"]
