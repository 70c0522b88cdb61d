"""Tests for CommandFactory and CommandInvoker."""

from uuid import UUID, uuid4

import pytest

from src.domain.commands import CommandFactory, CommandParameters
from src.domain.commands.clinical import AddPrescriptionCommand, ViewClinicalDocumentCommand
from src.domain.commands.invoker import CommandInvoker
from src.domain.enums import ErrorCode


class TestCommandFactory:
    """Test suite for CommandFactory."""

    @pytest.mark.parametrize("key", ["AddDiagnosis", "add-diagnosis", "add_diagnosis", " ADDDIAGNOSIS "])
    def test_key_normalization(self, factory, key):
        """Test command keys ignore case, dashes and underscores."""
        assert factory.has_command(key)
        assert factory.create(key).command_name == "AddDiagnosis"

    def test_unknown_key(self, factory):
        """Test unknown keys raise KeyError."""
        assert not factory.has_command("prescribe-everything")
        with pytest.raises(KeyError):
            factory.create("prescribe-everything")

    def test_fresh_instances(self, factory):
        """Test every create call returns a new command."""
        first, second = factory.create("ViewClinicalDocument"), factory.create("ViewClinicalDocument")
        assert isinstance(first, ViewClinicalDocumentCommand)
        assert first is not second
        assert first.command_id != second.command_id

    def test_dependencies_injected(self, store, profiles, audit):
        """Test collaborators and limits reach the created command."""
        factory = CommandFactory(store, profiles, audit, controlled_expiration_months=3)
        command = factory.create("AddPrescription")
        assert isinstance(command, AddPrescriptionCommand)
        assert command.document_store is store
        assert command.controlled_expiration_months == 3

    def test_available_commands(self, factory):
        """Test every clinical command is listed with a description."""
        commands = dict(factory.available_commands())
        assert len(commands) == 15
        assert commands["createclinicaldocument"] == "Create a clinical document for an appointment"
        assert all(commands.values())

    def test_register_custom_command(self, factory):
        """Test hosts can register additional commands."""

        class PingCommand(ViewClinicalDocumentCommand):
            description = "Ping"

        factory.register(PingCommand)
        assert factory.has_command("ping")


class TestCommandInvoker:
    """Test suite for CommandInvoker."""

    def _add_observation(self, invoker, factory, session, document_id, text="Lungs clear"):
        params = CommandParameters({"document_id": str(document_id), "observation": text})
        return invoker.execute(factory.create("AddObservation"), params, session)

    def test_invalid_history_limit(self):
        """Test the history limit must be positive."""
        with pytest.raises(ValueError):
            CommandInvoker(history_limit=0)

    def test_nothing_to_undo_or_redo(self, physician_session):
        """Test empty stacks report failures."""
        invoker = CommandInvoker()
        assert not invoker.can_undo
        assert invoker.undo(physician_session).error_message == "Nothing to undo"
        assert invoker.redo(physician_session).error_message == "Nothing to redo"

    def test_undo_and_redo(self, factory, store, physician_session, create_document):
        """Test undo deactivates an added entry and redo records it again."""
        document_id = create_document()
        invoker = CommandInvoker()
        result = self._add_observation(invoker, factory, physician_session, document_id)
        assert result.success
        assert invoker.can_undo

        undone = invoker.undo(physician_session)
        assert undone.success
        document = store.find_by_id(UUID(str(document_id)))
        assert not document.get_entry(UUID(str(result.get("entry_id")))).is_active
        assert invoker.can_redo

        redone = invoker.redo(physician_session)
        assert redone.success
        assert redone.get("entry_id") != result.get("entry_id")
        assert [o.content for o in document.get_observations()][-1] == "Lungs clear"
        assert not invoker.can_redo

    def test_new_command_clears_redo(self, factory, physician_session, create_document):
        """Test executing a new command discards the redo stack."""
        document_id = create_document()
        invoker = CommandInvoker()
        self._add_observation(invoker, factory, physician_session, document_id)
        invoker.undo(physician_session)
        self._add_observation(invoker, factory, physician_session, document_id, "Heart regular")
        assert not invoker.can_redo

    def test_read_only_commands_not_undoable(self, factory, physician_session, create_document):
        """Test queries are recorded in history but cannot be undone."""
        document_id = create_document()
        invoker = CommandInvoker()
        result = invoker.execute(
            factory.create("ViewClinicalDocument"),
            CommandParameters({"document_id": str(document_id)}),
            physician_session,
        )
        assert result.success
        assert not invoker.can_undo
        assert invoker.get_history()[0].command_name == "ViewClinicalDocument"

    def test_failed_commands_not_undoable(self, factory, physician_session):
        """Test failures are recorded but never pushed for undo."""
        invoker = CommandInvoker()
        result = self._add_observation(invoker, factory, physician_session, uuid4())
        assert result.error_code == ErrorCode.NOT_FOUND
        assert not invoker.can_undo
        assert invoker.get_history()[0].success is False

    def test_history_most_recent_first(self, factory, physician_session, physician, create_document):
        """Test history ordering, labels and the limit."""
        document_id = create_document()
        invoker = CommandInvoker(history_limit=2)
        self._add_observation(invoker, factory, physician_session, document_id)
        self._add_observation(invoker, factory, physician_session, document_id, "Heart regular")
        invoker.undo(physician_session)

        history = invoker.get_history()
        assert [record.command_name for record in history] == ["UNDO: AddObservation", "AddObservation"]
        assert history[0].executed_by == physician.id
        assert len(invoker.get_history(limit=1)) == 1

        invoker.clear_history()
        assert invoker.get_history() == []
        assert not invoker.can_redo

    def test_batch_success(self, factory, physician_session, create_document):
        """Test a batch where every command succeeds."""
        document_id = create_document()
        invoker = CommandInvoker()
        batch = invoker.execute_batch([
            (factory.create("AddObservation"),
             CommandParameters({"document_id": str(document_id), "observation": "Lungs clear"})),
            (factory.create("AddDiagnosis"),
             CommandParameters({"document_id": str(document_id), "diagnosis_description": "Asthma"})),
        ], physician_session)
        assert batch.all_succeeded
        assert batch.success_count == 2
        assert not batch.rolled_back

    def test_batch_rolls_back_on_failure(self, factory, store, physician_session, create_document):
        """Test earlier successes are compensated when a command fails."""
        document_id = create_document()
        invoker = CommandInvoker()
        batch = invoker.execute_batch([
            (factory.create("AddObservation"),
             CommandParameters({"document_id": str(document_id), "observation": "Lungs clear"})),
            (factory.create("AddDiagnosis"),
             CommandParameters({"document_id": str(document_id), "diagnosis_description": "Asthma"})),
            (factory.create("AddPrescription"), CommandParameters({
                "document_id": str(document_id),
                "diagnosis_id": str(uuid4()),
                "medication_name": "Albuterol",
                "dosage": "90mcg",
                "frequency": "BID",
            })),
        ], physician_session)

        assert batch.rolled_back
        assert batch.success_count == 2
        assert batch.failure_count == 1
        assert batch.get_summary().endswith("(rolled back)")
        document = store.find_by_id(UUID(str(document_id)))
        assert document.get_diagnoses() == []
        assert document.get_observations() == []
        assert not invoker.can_undo

    def test_batch_keep_going(self, factory, physician_session, create_document):
        """Test failures do not stop the batch when requested."""
        document_id = create_document()
        invoker = CommandInvoker()
        batch = invoker.execute_batch([
            (factory.create("AddObservation"), CommandParameters({"document_id": str(uuid4()), "observation": "x"})),
            (factory.create("AddObservation"),
             CommandParameters({"document_id": str(document_id), "observation": "Lungs clear"})),
        ], physician_session, stop_on_first_failure=False)
        assert not batch.rolled_back
        assert [r.success for r in batch.results] == [False, True]
