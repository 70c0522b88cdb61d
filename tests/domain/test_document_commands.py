"""Tests for creating, updating, completing and deleting clinical documents."""

from uuid import uuid4

import pytest

from src.domain.commands import CommandParameters
from src.domain.enums import ErrorCode, ObservationType


@pytest.fixture
def create_params(patient, physician):
    def _params(**overrides):
        values = {
            "patient_id": str(patient.id),
            "physician_id": str(physician.id),
            "appointment_id": str(uuid4()),
            "chief_complaint": "Persistent cough",
        }
        values.update(overrides)
        return values

    return _params


class TestCreateClinicalDocument:
    """Test suite for CreateClinicalDocumentCommand."""

    def test_create_draft(self, run, create_params, store, patient, physician):
        """Test a physician opens a draft document for their patient."""
        result = run("CreateClinicalDocument", **create_params())

        assert result.success
        assert result.message == "Clinical document created"
        assert result.warnings == []
        document = store.find_by_id(result.get("document_id"))
        assert document.patient_id == patient.id
        assert document.physician_id == physician.id
        assert not document.is_completed
        assert result.get("entry_id") is None

    def test_create_writes_insert_audit(self, run, create_params, audit):
        """Test creation is written to the audit trail."""
        result = run("CreateClinicalDocument", **create_params())
        logs = audit.get_logs_for_document(str(result.get("document_id")))
        assert {log["change_type"] for log in logs} == {"INSERT"}
        assert "chief_complaint" in {log["field_name"] for log in logs}

    def test_initial_observation(self, run, create_params, store):
        """Test the initial observation becomes a chief-complaint observation."""
        result = run("CreateClinicalDocument", **create_params(initial_observation="Cough for 3 weeks"))
        document = store.find_by_id(result.get("document_id"))

        observations = document.get_observations()
        assert len(observations) == 1
        assert observations[0].id == result.get("entry_id")
        assert observations[0].observation_type == ObservationType.CHIEF_COMPLAINT

    def test_missing_required(self, run, create_params):
        """Test every required key is reported."""
        params = create_params()
        del params["chief_complaint"]
        result = run("CreateClinicalDocument", **params)
        assert result.error_code == ErrorCode.MISSING_PARAMETER
        assert result.validation_errors == ["Missing required parameter: chief_complaint"]

    def test_blank_chief_complaint(self, run, create_params):
        """Test a whitespace-only chief complaint is rejected."""
        result = run("CreateClinicalDocument", **create_params(chief_complaint="   "))
        assert result.error_code == ErrorCode.MISSING_PARAMETER

    def test_chief_complaint_too_long(self, run, create_params):
        """Test the chief complaint length limit."""
        result = run("CreateClinicalDocument", **create_params(chief_complaint="x" * 501))
        assert result.error_code == ErrorCode.INVALID_FORMAT
        assert result.error_message == "Chief complaint cannot exceed 500 characters"

    def test_unknown_patient(self, run, create_params):
        """Test the patient must exist."""
        missing = uuid4()
        result = run("CreateClinicalDocument", **create_params(patient_id=str(missing)))
        assert result.error_code == ErrorCode.NOT_FOUND
        assert result.error_message == f"Patient with ID {missing} not found"

    def test_patient_id_of_wrong_role(self, run, create_params, other_physician):
        """Test the patient id must belong to a patient profile."""
        result = run("CreateClinicalDocument", **create_params(patient_id=str(other_physician.id)))
        assert result.error_code == ErrorCode.INVARIANT_VIOLATION
        assert result.error_message == f"Profile {other_physician.id} is not a patient"

    def test_invalid_appointment_id(self, run, create_params):
        """Test a malformed appointment id is an InvalidFormat error."""
        result = run("CreateClinicalDocument", **create_params(appointment_id="appt-1"))
        assert result.error_code == ErrorCode.INVALID_FORMAT
        assert result.error_message == "Invalid appointment ID format"

    def test_one_document_per_appointment(self, run, create_params):
        """Test a second document for the same appointment is rejected."""
        params = create_params()
        assert run("CreateClinicalDocument", **params).success
        result = run("CreateClinicalDocument", **params)
        assert result.error_code == ErrorCode.INVARIANT_VIOLATION
        assert result.error_message.startswith("A clinical document already exists for appointment")

    def test_physician_cannot_create_for_colleague(self, run, create_params, other_physician):
        """Test physicians only create documents under their own profile."""
        result = run("CreateClinicalDocument", **create_params(physician_id=str(other_physician.id)))
        assert result.error_code == ErrorCode.PERMISSION_DENIED
        assert result.error_message == "Physicians can only create clinical documents under their own profile"

    def test_administrator_creates_for_physician(self, run, create_params, admin_session):
        """Test administrators may create documents for any physician."""
        assert run("CreateClinicalDocument", session=admin_session, **create_params()).success

    def test_patient_outside_care_warns(self, run, create_params, other_patient):
        """Test a patient not listed under the physician's care is a warning."""
        result = run("CreateClinicalDocument", **create_params(patient_id=str(other_patient.id)))
        assert result.success
        assert result.warnings == ["Patient is not listed under the physician's care"]

    def test_patient_cannot_create(self, run, create_params, patient_session):
        """Test patients lack the create permission."""
        result = run("CreateClinicalDocument", session=patient_session, **create_params())
        assert result.error_code == ErrorCode.PERMISSION_DENIED


class TestCreateClinicalDocumentUndo:
    """Test suite for undoing document creation."""

    def test_undo_removes_empty_document(self, factory, create_params, store, physician_session, audit):
        """Test undo withdraws a document that has nothing but its initial observation."""
        command = factory.create("CreateClinicalDocument")
        result = command.execute(CommandParameters(create_params(initial_observation="Cough")), physician_session)
        document_id = result.get("document_id")

        undo = command.undo(physician_session)
        assert undo.success
        assert store.find_by_id(document_id) is None
        assert audit.get_logs_for_document(str(document_id))[-1]["change_type"] == "DELETE"

    def test_undo_refused_after_entries(self, factory, run, create_params, physician_session, store):
        """Test undo is refused once other entries were documented."""
        command = factory.create("CreateClinicalDocument")
        document_id = command.execute(CommandParameters(create_params()), physician_session).get("document_id")
        run("AddObservation", document_id=str(document_id), observation="Wheezing")

        undo = command.undo(physician_session)
        assert not undo.success
        assert undo.error_message == "Cannot undo creation of a clinical document that already has entries"
        assert store.find_by_id(document_id) is not None

    def test_undo_refused_after_completion(self, factory, run, create_params, physician_session):
        """Test a completed document cannot be withdrawn."""
        command = factory.create("CreateClinicalDocument")
        document_id = command.execute(CommandParameters(create_params()), physician_session).get("document_id")
        assert run("UpdateClinicalDocument", document_id=str(document_id), complete=True).success

        undo = command.undo(physician_session)
        assert undo.error_message == "Cannot undo creation of a completed clinical document"


class TestUpdateClinicalDocument:
    """Test suite for UpdateClinicalDocumentCommand."""

    def test_update_chief_complaint(self, run, create_document, store):
        """Test the chief complaint is replaced and reported."""
        document_id = create_document()
        result = run("UpdateClinicalDocument", document_id=str(document_id), chief_complaint=" Polydipsia ")

        assert result.success
        assert result.message == "Clinical document updated"
        assert result.get("fields_updated") == ["chief_complaint"]
        assert store.find_by_id(document_id).chief_complaint == "Polydipsia"

    def test_same_chief_complaint_is_noop(self, run, create_document):
        """Test writing the current chief complaint changes nothing."""
        document_id = create_document(chief_complaint="Fatigue")
        result = run("UpdateClinicalDocument", document_id=str(document_id), chief_complaint="Fatigue")
        assert result.success
        assert result.message == "No changes were made to the clinical document"
        assert result.get("fields_updated") == []

    def test_nothing_to_update(self, run, create_document):
        """Test an update without a complaint or completion is rejected."""
        result = run("UpdateClinicalDocument", document_id=str(create_document()))
        assert result.error_code == ErrorCode.MISSING_PARAMETER
        assert result.error_message == "Nothing to update: provide a chief complaint or complete=true"

    def test_complete(self, run, create_document, store):
        """Test completing a valid draft."""
        document_id = create_document()
        result = run("UpdateClinicalDocument", document_id=str(document_id), complete="true")

        assert result.success
        assert result.message == "Clinical document completed"
        assert result.get("completed") is True
        assert store.find_by_id(document_id).is_completed

    def test_complete_twice(self, run, create_document):
        """Test a completed document rejects a second completion."""
        document_id = str(create_document())
        run("UpdateClinicalDocument", document_id=document_id, complete=True)
        result = run("UpdateClinicalDocument", document_id=document_id, complete=True)
        assert result.error_code == ErrorCode.INVARIANT_VIOLATION
        assert result.error_message == "Document already completed"

    def test_complete_blocked_by_entry_errors(self, run, create_document, store):
        """Test every completion violation is returned and the document stays a draft."""
        document_id = create_document()
        run(
            "AddDiagnosis",
            document_id=str(document_id),
            diagnosis_description="Type 2 diabetes",
            diagnosis_type="Final",
        )
        result = run("UpdateClinicalDocument", document_id=str(document_id), complete=True)

        assert result.error_code == ErrorCode.INVARIANT_VIOLATION
        assert len(result.validation_errors) == 1
        assert result.validation_errors[0].startswith("Final diagnosis requires an ICD-10 code")
        assert not store.find_by_id(document_id).is_completed

    def test_invalid_complete_flag(self, run, create_document):
        """Test the complete flag must be a boolean."""
        result = run("UpdateClinicalDocument", document_id=str(create_document()), complete="maybe")
        assert result.error_code == ErrorCode.INVALID_FORMAT

    def test_other_physician_denied(self, run, create_document, other_physician_session):
        """Test only the authoring physician may update the document."""
        result = run(
            "UpdateClinicalDocument",
            session=other_physician_session,
            document_id=str(create_document()),
            chief_complaint="Changed",
        )
        assert result.error_code == ErrorCode.PERMISSION_DENIED
        assert result.error_message == "Only the authoring physician can modify this clinical document"

    def test_invalid_and_unknown_document_id(self, run):
        """Test malformed and unknown document ids."""
        malformed = run("UpdateClinicalDocument", document_id="abc", complete=True)
        assert malformed.error_code == ErrorCode.INVALID_FORMAT
        assert malformed.error_message == "Invalid document ID format"

        unknown = run("UpdateClinicalDocument", document_id=str(uuid4()), complete=True)
        assert unknown.error_code == ErrorCode.NOT_FOUND


class TestDeleteClinicalDocument:
    """Test suite for DeleteClinicalDocumentCommand."""

    def test_physician_cannot_delete(self, run, create_document):
        """Test deletion is reserved to administrators."""
        result = run("DeleteClinicalDocument", document_id=str(create_document()))
        assert result.error_code == ErrorCode.PERMISSION_DENIED

    def test_administrator_deletes_draft(self, run, create_document, store, admin_session, audit):
        """Test an administrator permanently removes a draft."""
        document_id = create_document(initial_observation="Tired all the time")
        result = run("DeleteClinicalDocument", session=admin_session, document_id=str(document_id))

        assert result.success
        assert result.get("entries_removed") == 1
        assert store.find_by_id(document_id) is None
        assert audit.get_logs_for_document(str(document_id))[-1]["change_type"] == "DELETE"

    def test_completed_requires_force(self, run, create_document, admin_session, store):
        """Test completed documents need force=true and produce a warning."""
        document_id = str(create_document())
        run("UpdateClinicalDocument", document_id=document_id, complete=True)

        refused = run("DeleteClinicalDocument", session=admin_session, document_id=document_id)
        assert refused.error_message == "Completed clinical documents can only be deleted with force=true"

        forced = run("DeleteClinicalDocument", session=admin_session, document_id=document_id, force=True)
        assert forced.success
        assert forced.warnings == ["Deleting a completed clinical document"]
        assert len(store) == 0

    def test_delete_is_not_undoable(self, factory):
        """Test hard deletion has no undo."""
        assert factory.create("DeleteClinicalDocument").can_undo is False
