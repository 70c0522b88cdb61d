"""Tests for the diff-based entry update commands."""

from uuid import uuid4

import pytest

from src.domain.clinical_entries import FINAL_DIAGNOSIS_REQUIRES_CODE
from src.domain.enums import DiagnosisType, DosageFrequency, ErrorCode


@pytest.fixture
def document_id(create_document):
    return create_document()


@pytest.fixture
def add_diagnosis(run, document_id):
    def _add(description="Type 2 diabetes mellitus", **params):
        result = run("AddDiagnosis", document_id=str(document_id), diagnosis_description=description, **params)
        assert result.success, result.get_display_message()
        return result.get("entry_id")

    return _add


class TestUpdateDiagnosis:
    """Test suite for UpdateDiagnosisCommand."""

    def test_unchanged_values_are_noop(self, run, document_id, add_diagnosis, store, audit):
        """Test writing the current values leaves modified_at and the audit trail untouched."""
        diagnosis_id = add_diagnosis(icd10_code="E11")
        before = audit.get_log_count()

        result = run(
            "UpdateDiagnosis",
            document_id=str(document_id),
            diagnosis_id=str(diagnosis_id),
            diagnosis_description="Type 2 diabetes mellitus",
            icd10_code="e11",
        )

        assert result.success
        assert result.message == "No changes were made to the diagnosis entry"
        assert not result.data.has_changes
        assert store.find_by_id(document_id).get_entry(diagnosis_id).modified_at is None
        assert audit.get_log_count() == before

    def test_changed_field(self, run, document_id, add_diagnosis, store, audit):
        """Test only the changed field is written and audited."""
        diagnosis_id = add_diagnosis()
        result = run(
            "UpdateDiagnosis",
            document_id=str(document_id),
            diagnosis_id=str(diagnosis_id),
            diagnosis_description="Type 2 diabetes mellitus",
            status="chronic",
        )

        assert result.message == "Diagnosis entry updated (1 field(s) changed)"
        assert result.data.fields_updated == ["status"]
        assert result.data.modified_at is not None

        event = audit.get_logs()[-1]
        assert event["change_type"] == "UPDATE"
        assert event["field_name"] == "status"
        assert event["old_value"] == "Active"
        assert event["new_value"] == "Chronic"
        assert event["command_name"] == "UpdateDiagnosis"

    def test_primary_exclusivity(self, run, document_id, add_diagnosis, store):
        """Test promoting a diagnosis clears the previous primary."""
        diabetes_id = add_diagnosis(is_primary=True)
        hypertension_id = add_diagnosis("Essential hypertension", icd10_code="I10")

        result = run(
            "UpdateDiagnosis",
            document_id=str(document_id),
            diagnosis_id=str(hypertension_id),
            is_primary="yes",
        )

        document = store.find_by_id(document_id)
        assert result.success
        assert [d.id for d in document.get_diagnoses() if d.is_primary] == [hypertension_id]
        assert not document.get_entry(diabetes_id).is_primary

    def test_final_without_code_rejected(self, run, document_id, add_diagnosis, store):
        """Test moving a diagnosis to Final without a code is rejected."""
        diagnosis_id = add_diagnosis()
        result = run(
            "UpdateDiagnosis",
            document_id=str(document_id),
            diagnosis_id=str(diagnosis_id),
            diagnosis_type="Final",
        )

        assert result.error_code == ErrorCode.INVARIANT_VIOLATION
        assert result.error_message == FINAL_DIAGNOSIS_REQUIRES_CODE
        assert store.find_by_id(document_id).get_entry(diagnosis_id).diagnosis_type == DiagnosisType.WORKING

    def test_final_with_code_in_same_update(self, run, document_id, add_diagnosis):
        """Test the code and the Final type may be supplied together."""
        diagnosis_id = add_diagnosis()
        result = run(
            "UpdateDiagnosis",
            document_id=str(document_id),
            diagnosis_id=str(diagnosis_id),
            diagnosis_type="Final",
            icd10_code="E11.65",
        )
        assert result.success
        assert sorted(result.data.fields_updated) == ["code", "diagnosis_type"]

    def test_inactive_entry(self, run, document_id, add_diagnosis, store):
        """Test deactivated entries cannot be updated."""
        diagnosis_id = add_diagnosis()
        store.find_by_id(document_id).deactivate_entry(diagnosis_id)

        result = run("UpdateDiagnosis", document_id=str(document_id), diagnosis_id=str(diagnosis_id), status="Resolved")
        assert result.error_code == ErrorCode.INVARIANT_VIOLATION
        assert result.error_message == f"Diagnosis with ID {diagnosis_id} is no longer active"

    def test_unknown_entry(self, run, document_id):
        """Test an unknown entry id is NotFound."""
        missing = uuid4()
        result = run("UpdateDiagnosis", document_id=str(document_id), diagnosis_id=str(missing), status="Resolved")
        assert result.error_code == ErrorCode.NOT_FOUND
        assert result.error_message == f"Diagnosis with ID {missing} not found in this document"

    def test_other_physician_denied(self, run, document_id, add_diagnosis, other_physician_session):
        """Test physicians cannot update a colleague's entries."""
        diagnosis_id = add_diagnosis()
        result = run(
            "UpdateDiagnosis",
            session=other_physician_session,
            document_id=str(document_id),
            diagnosis_id=str(diagnosis_id),
            status="Resolved",
        )
        assert result.error_code == ErrorCode.PERMISSION_DENIED

    def test_resolving_with_active_prescription_warns(self, run, document_id, add_diagnosis):
        """Test resolving a diagnosis that is still being treated names the prescriptions."""
        diagnosis_id = add_diagnosis()
        run(
            "AddPrescription",
            document_id=str(document_id),
            diagnosis_id=str(diagnosis_id),
            medication_name="Metformin",
            dosage="500mg",
            frequency="BID",
        )
        result = run("UpdateDiagnosis", document_id=str(document_id), diagnosis_id=str(diagnosis_id), status="Resolved")
        assert result.success
        assert "Resolved diagnosis still has 1 active prescription(s): Metformin" in result.warnings

    def test_new_supporting_observation_must_be_active(self, run, document_id, add_diagnosis, store):
        """Test observations linked by an update must be active in the document."""
        diagnosis_id = add_diagnosis()
        observation_id = run("AddObservation", document_id=str(document_id), observation="Lungs clear").get("entry_id")
        store.find_by_id(document_id).deactivate_entry(observation_id)

        result = run(
            "UpdateDiagnosis",
            document_id=str(document_id),
            diagnosis_id=str(diagnosis_id),
            supporting_observations=str(observation_id),
        )
        assert result.error_code == ErrorCode.NOT_FOUND
        assert result.error_message == (
            f"Supporting observation {observation_id} not found or inactive in this document"
        )

    def test_completed_document(self, run, document_id, add_diagnosis):
        """Test entries of a completed document are immutable."""
        diagnosis_id = add_diagnosis()
        run("UpdateClinicalDocument", document_id=str(document_id), complete=True)
        result = run("UpdateDiagnosis", document_id=str(document_id), diagnosis_id=str(diagnosis_id), status="Resolved")
        assert result.error_message == "Cannot modify entries in a completed clinical document"


class TestUpdateOtherEntries:
    """Test suite for the observation, assessment, plan and prescription updates."""

    def test_no_fields(self, run, create_document, store):
        """Test an update without any field is rejected."""
        document_id = create_document(initial_observation="Polyuria")
        observation_id = store.find_by_id(document_id).entries[0].id
        result = run("UpdateObservation", document_id=str(document_id), observation_id=str(observation_id))
        assert result.error_code == ErrorCode.MISSING_PARAMETER
        assert result.error_message == "No fields to update were provided for the observation entry"

    def test_observation_content_key(self, run, create_document, store):
        """Test observations accept either the generic or the specific content key."""
        document_id = create_document(initial_observation="Polyuria")
        observation_id = store.find_by_id(document_id).entries[0].id
        result = run(
            "UpdateObservation",
            document_id=str(document_id),
            observation_id=str(observation_id),
            content="Polyuria and nocturia",
        )
        assert result.success
        assert store.find_by_id(document_id).get_entry(observation_id).content == "Polyuria and nocturia"

    def test_assessment_update(self, run, document_id, store):
        """Test an assessment's prognosis can be revised."""
        assessment_id = run(
            "AddAssessment",
            document_id=str(document_id),
            clinical_impression="Poorly controlled diabetes",
        ).get("entry_id")
        result = run(
            "UpdateAssessment",
            document_id=str(document_id),
            assessment_id=str(assessment_id),
            prognosis="fair",
        )
        assert result.data.fields_updated == ["prognosis"]

    def test_wrong_entry_kind(self, run, document_id, add_diagnosis):
        """Test an id of another entry kind is NotFound."""
        diagnosis_id = add_diagnosis()
        result = run("UpdatePlan", document_id=str(document_id), plan_id=str(diagnosis_id), priority="High")
        assert result.error_code == ErrorCode.NOT_FOUND
        assert result.error_message == f"Entry with ID {diagnosis_id} is not a plan entry"

    def test_plan_completion_sets_date(self, run, document_id, add_diagnosis, store):
        """Test completing a plan item records the completion date, reopening clears it."""
        diagnosis_id = add_diagnosis()
        plan_id = run(
            "AddPlan",
            document_id=str(document_id),
            plan_description="HbA1c in 3 months",
            related_diagnoses=str(diagnosis_id),
        ).get("entry_id")

        completed = run("UpdatePlan", document_id=str(document_id), plan_id=str(plan_id), is_completed=True)
        plan = store.find_by_id(document_id).get_entry(plan_id)
        assert completed.success
        assert plan.is_completed
        assert plan.completed_date is not None

        reopened = run("UpdatePlan", document_id=str(document_id), plan_id=str(plan_id), is_completed=False)
        assert reopened.success
        assert not plan.is_completed
        assert plan.completed_date is None

    def test_plan_related_diagnosis_must_exist(self, run, document_id):
        """Test newly related diagnoses must be active in the document."""
        plan_id = run(
            "AddPlan",
            document_id=str(document_id),
            plan_description="Diet counselling",
            plan_type="PatientEducation",
        ).get("entry_id")
        missing = uuid4()
        result = run(
            "UpdatePlan",
            document_id=str(document_id),
            plan_id=str(plan_id),
            related_diagnoses=str(missing),
        )
        assert result.error_code == ErrorCode.NOT_FOUND

    def test_prescription_sig_regenerated(self, run, document_id, add_diagnosis, store):
        """Test the sig follows frequency changes."""
        diagnosis_id = add_diagnosis(icd10_code="E11")
        prescription_id = run(
            "AddPrescription",
            document_id=str(document_id),
            diagnosis_id=str(diagnosis_id),
            medication_name="Metformin",
            dosage="500mg",
            frequency="BID",
        ).get("entry_id")

        result = run(
            "UpdatePrescription",
            document_id=str(document_id),
            prescription_id=str(prescription_id),
            frequency="tid",
        )

        prescription = store.find_by_id(document_id).get_entry(prescription_id)
        assert result.data.fields_updated == ["frequency"]
        assert prescription.frequency == DosageFrequency.THREE_TIMES_DAILY
        assert prescription.content == "Take 500mg by oral route three times daily."
