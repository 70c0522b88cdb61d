"""Shared fixtures for the clinical documentation tests."""

from uuid import uuid4

import pytest

from src.adapters.storage.memory_store import InMemoryDocumentStore, InMemoryProfileDirectory
from src.domain.commands import CommandFactory, CommandParameters
from src.domain.enums import UserRole
from src.domain.profiles import UserProfile
from src.domain.session import SessionContext
from src.infrastructure.audit.change_audit_logger import ChangeAuditLogger


@pytest.fixture
def patient():
    return UserProfile(username="jdoe", name="Jane Doe", role=UserRole.PATIENT)


@pytest.fixture
def other_patient():
    return UserProfile(username="rroe", name="Richard Roe", role=UserRole.PATIENT)


@pytest.fixture
def physician(patient):
    return UserProfile(
        username="drsmith",
        name="Dr. Smith",
        role=UserRole.PHYSICIAN,
        patient_ids=[patient.id],
    )


@pytest.fixture
def other_physician():
    return UserProfile(username="drjones", name="Dr. Jones", role=UserRole.PHYSICIAN)


@pytest.fixture
def administrator():
    return UserProfile(username="admin", name="Admin", role=UserRole.ADMINISTRATOR)


@pytest.fixture
def profiles(patient, other_patient, physician, other_physician, administrator):
    return InMemoryProfileDirectory([patient, other_patient, physician, other_physician, administrator])


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def audit():
    return ChangeAuditLogger()


@pytest.fixture
def factory(store, profiles, audit):
    return CommandFactory(store, profiles, audit)


@pytest.fixture
def physician_session(physician):
    return SessionContext.for_profile(physician)


@pytest.fixture
def other_physician_session(other_physician):
    return SessionContext.for_profile(other_physician)


@pytest.fixture
def patient_session(patient):
    return SessionContext.for_profile(patient)


@pytest.fixture
def admin_session(administrator):
    return SessionContext.for_profile(administrator)


@pytest.fixture
def create_document(factory, physician_session, patient, physician):
    """Create a draft document through the command pipeline and return its id."""

    def _create(chief_complaint="Fatigue and increased thirst", **extra):
        params = CommandParameters({
            "patient_id": str(patient.id),
            "physician_id": str(physician.id),
            "appointment_id": str(uuid4()),
            "chief_complaint": chief_complaint,
        })
        for key, value in extra.items():
            params.set(key, value)
        result = factory.create("CreateClinicalDocument").execute(params, physician_session)
        assert result.success, result.get_display_message()
        return result.get("document_id")

    return _create


@pytest.fixture
def run(factory, physician_session):
    """Execute a command by key with keyword parameters (physician session by default)."""

    def _run(key, session=None, **params):
        command = factory.create(key)
        return command.execute(CommandParameters(params), session or physician_session)

    return _run
