"""Unit tests for the ClinicalDocument aggregate."""

from uuid import uuid4

import pytest

from src.domain.clinical_document import MAX_CHIEF_COMPLAINT_LENGTH, ClinicalDocument
from src.domain.clinical_entries import (
    DiagnosisEntry,
    ObservationEntry,
    PlanEntry,
    PrescriptionEntry,
)
from src.domain.enums import DiagnosisType, DosageFrequency, EntryKind
from src.domain.ports import (
    DocumentCompletedError,
    EntityNotFoundError,
    IncompleteDocumentError,
    InvariantViolationError,
)


@pytest.fixture
def physician_id():
    return uuid4()


@pytest.fixture
def document(physician_id):
    return ClinicalDocument.create(uuid4(), physician_id, uuid4(), "Fatigue")


def _diagnosis(author_id, **overrides):
    values = {"author_id": author_id, "content": "Type 2 diabetes", "code": "E11.9"}
    values.update(overrides)
    return DiagnosisEntry(**values)


def _prescription(author_id, diagnosis_id):
    return PrescriptionEntry(
        author_id=author_id,
        content="Take 500mg by oral route twice daily.",
        diagnosis_id=diagnosis_id,
        medication_name="Metformin",
        dosage="500mg",
        frequency=DosageFrequency.TWICE_DAILY,
    )


class TestClinicalDocumentCreation:
    """Test suite for document creation."""

    def test_create_draft(self, physician_id):
        """Test a new document is an empty draft."""
        document = ClinicalDocument.create(uuid4(), physician_id, uuid4(), "  Headache  ")
        assert not document.is_completed
        assert document.chief_complaint == "Headache"
        assert document.entries == []

    def test_create_requires_chief_complaint(self, physician_id):
        """Test an empty chief complaint is rejected."""
        with pytest.raises(InvariantViolationError):
            ClinicalDocument.create(uuid4(), physician_id, uuid4(), "   ")

    def test_chief_complaint_length_limit(self, physician_id):
        """Test chief complaints longer than the limit are rejected."""
        with pytest.raises(ValueError):
            ClinicalDocument.create(uuid4(), physician_id, uuid4(), "x" * (MAX_CHIEF_COMPLAINT_LENGTH + 1))


class TestClinicalDocumentEntries:
    """Test suite for adding and querying entries."""

    def test_add_entries_in_order(self, document, physician_id):
        """Test entries keep insertion order and are queryable by kind."""
        observation = ObservationEntry(author_id=physician_id, content="Polyuria")
        diagnosis = _diagnosis(physician_id)
        document.add_entry(observation)
        document.add_entry(diagnosis)

        assert [e.id for e in document.entries] == [observation.id, diagnosis.id]
        assert document.get_observations() == [observation]
        assert document.get_diagnoses() == [diagnosis]
        assert document.entry_counts()[EntryKind.DIAGNOSIS] == 1

    def test_duplicate_entry_rejected(self, document, physician_id):
        """Test the same entry cannot be added twice."""
        diagnosis = _diagnosis(physician_id)
        document.add_entry(diagnosis)
        with pytest.raises(InvariantViolationError):
            document.add_entry(diagnosis)

    def test_prescription_requires_active_diagnosis(self, document, physician_id):
        """Test prescriptions must reference an active diagnosis of the document."""
        with pytest.raises(InvariantViolationError):
            document.add_entry(_prescription(physician_id, uuid4()))
        assert document.entries == []

    def test_prescription_links_to_diagnosis(self, document, physician_id):
        """Test adding a prescription records the link on its diagnosis."""
        diagnosis = _diagnosis(physician_id)
        document.add_entry(diagnosis)
        prescription = _prescription(physician_id, diagnosis.id)
        document.add_entry(prescription)

        assert diagnosis.related_prescription_ids == [prescription.id]
        assert document.get_prescriptions_for_diagnosis(diagnosis.id) == [prescription]

    def test_prescription_for_inactive_diagnosis_rejected(self, document, physician_id):
        """Test a deactivated diagnosis cannot be prescribed against."""
        diagnosis = _diagnosis(physician_id)
        document.add_entry(diagnosis)
        document.deactivate_entry(diagnosis.id)
        with pytest.raises(InvariantViolationError):
            document.add_entry(_prescription(physician_id, diagnosis.id))

    def test_plan_related_diagnoses_must_be_active(self, document, physician_id):
        """Test plans may only reference active diagnoses."""
        plan = PlanEntry(author_id=physician_id, content="Diet counselling", related_diagnosis_ids=[uuid4()])
        with pytest.raises(InvariantViolationError):
            document.add_entry(plan)

    def test_deactivate_keeps_entry(self, document, physician_id):
        """Test soft deletion hides the entry from active views only."""
        observation = ObservationEntry(author_id=physician_id, content="Polyuria")
        document.add_entry(observation)

        assert document.deactivate_entry(observation.id) is True
        assert document.entry_count == 1
        assert document.active_entry_count == 0
        assert document.get_observations() == []
        assert document.get_observations(include_inactive=True) == [observation]
        assert document.deactivate_entry(observation.id) is False

    def test_deactivate_unknown_entry(self, document):
        """Test deactivating an unknown id raises."""
        with pytest.raises(EntityNotFoundError):
            document.deactivate_entry(uuid4())


class TestPrimaryDiagnosis:
    """Test suite for primary diagnosis exclusivity."""

    def test_adding_primary_clears_previous(self, document, physician_id):
        """Test adding a primary diagnosis demotes the current primary."""
        first = _diagnosis(physician_id, is_primary=True)
        second = _diagnosis(physician_id, content="Hypertension", code="I10", is_primary=True)
        document.add_entry(first)
        document.add_entry(second)

        assert not first.is_primary
        assert second.is_primary
        assert document.get_primary_diagnosis() == second

    def test_set_primary_returns_cleared(self, document, physician_id):
        """Test set_primary_diagnosis reports which siblings were cleared."""
        first = _diagnosis(physician_id, is_primary=True)
        second = _diagnosis(physician_id, content="Hypertension", code="I10")
        document.add_entry(first)
        document.add_entry(second)

        cleared = document.set_primary_diagnosis(second.id)
        assert cleared == [first.id]
        assert [d.id for d in document.get_diagnoses() if d.is_primary] == [second.id]

    def test_apply_entry_changes_primary(self, document, physician_id):
        """Test setting is_primary through an update keeps exactly one primary."""
        first = _diagnosis(physician_id, is_primary=True)
        second = _diagnosis(physician_id, content="Hypertension", code="I10")
        document.add_entry(first)
        document.add_entry(second)

        document.apply_entry_changes(second.id, {"is_primary": True})
        assert sum(1 for d in document.get_diagnoses() if d.is_primary) == 1
        assert second.is_primary


class TestClinicalDocumentCompletion:
    """Test suite for the Draft to Completed lifecycle."""

    def test_complete_empty_document(self, document):
        """Test a document with a chief complaint and no entries can be completed."""
        document.complete()
        assert document.is_completed
        assert document.completed_at is not None

    def test_complete_twice_rejected(self, document):
        """Test completing a completed document raises."""
        document.complete()
        with pytest.raises(DocumentCompletedError) as exc_info:
            document.complete()
        assert str(exc_info.value) == "Document already completed"

    def test_final_diagnosis_without_code_blocks_completion(self, document, physician_id):
        """Test entry errors are reported as completion errors."""
        document.add_entry(_diagnosis(physician_id, code=None, diagnosis_type=DiagnosisType.FINAL))
        errors = document.get_completion_errors()
        assert len(errors) == 1
        assert errors[0].startswith("Final diagnosis requires an ICD-10 code")
        with pytest.raises(IncompleteDocumentError) as exc_info:
            document.complete()
        assert exc_info.value.violations == errors
        assert not document.is_completed

    def test_inactive_entries_do_not_block_completion(self, document, physician_id):
        """Test deactivated invalid entries are ignored by the completion check."""
        diagnosis = _diagnosis(physician_id, code=None, diagnosis_type=DiagnosisType.FINAL)
        document.add_entry(diagnosis)
        document.deactivate_entry(diagnosis.id)
        assert document.can_complete()

    def test_prescription_of_deactivated_diagnosis_blocks_completion(self, document, physician_id):
        """Test a prescription whose diagnosis was deactivated blocks completion."""
        diagnosis = _diagnosis(physician_id)
        document.add_entry(diagnosis)
        document.add_entry(_prescription(physician_id, diagnosis.id))
        document.deactivate_entry(diagnosis.id)

        errors = document.get_completion_errors()
        assert any("Metformin" in error for error in errors)

    def test_completed_document_is_immutable(self, document, physician_id):
        """Test a completed document rejects new entries and complaint changes."""
        document.complete()
        with pytest.raises(DocumentCompletedError):
            document.add_entry(ObservationEntry(author_id=physician_id, content="Late note"))
        with pytest.raises(DocumentCompletedError):
            document.update_chief_complaint("Changed")

    def test_deactivate_allowed_after_completion(self, document, physician_id):
        """Test soft deletion remains possible on a completed document."""
        observation = ObservationEntry(author_id=physician_id, content="Polyuria")
        document.add_entry(observation)
        document.complete()
        assert document.deactivate_entry(observation.id) is True

    def test_update_chief_complaint_unchanged(self, document):
        """Test writing the same chief complaint reports no change."""
        assert document.update_chief_complaint("Fatigue") is False
        assert document.update_chief_complaint("Polydipsia") is True


class TestClinicalDocumentSerialization:
    """Test suite for JSON round trip used by persistent stores."""

    def test_entries_keep_their_variant(self, document, physician_id):
        """Test entries deserialize back into their own variant classes."""
        diagnosis = _diagnosis(physician_id, is_primary=True)
        document.add_entry(ObservationEntry(author_id=physician_id, content="Polyuria"))
        document.add_entry(diagnosis)
        document.add_entry(_prescription(physician_id, diagnosis.id))

        restored = ClinicalDocument.model_validate_json(document.model_dump_json())
        assert [type(e) for e in restored.entries] == [ObservationEntry, DiagnosisEntry, PrescriptionEntry]
        assert restored.get_primary_diagnosis().id == diagnosis.id
        assert restored.get_prescriptions()[0].frequency == DosageFrequency.TWICE_DAILY
