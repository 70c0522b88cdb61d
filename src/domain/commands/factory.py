"""Command Factory.

Creates command instances by key and injects their collaborators (document
store, profile lookup, audit trail and configured limits), so that hosts never
construct commands by hand.
"""

import logging
from typing import Dict, List, Optional, Tuple, Type

from src.domain.commands.base import AbstractCommand
from src.domain.commands.clinical import (
    AddAssessmentCommand,
    AddDiagnosisCommand,
    AddObservationCommand,
    AddPlanCommand,
    AddPrescriptionCommand,
    CreateClinicalDocumentCommand,
    DeleteClinicalDocumentCommand,
    ListClinicalDocumentsCommand,
    UpdateAssessmentCommand,
    UpdateClinicalDocumentCommand,
    UpdateDiagnosisCommand,
    UpdateObservationCommand,
    UpdatePlanCommand,
    UpdatePrescriptionCommand,
    ViewClinicalDocumentCommand,
)
from src.domain.commands.clinical.entry_commands import DEFAULT_CONTROLLED_EXPIRATION_MONTHS
from src.domain.ports import ChangeAuditPort, DocumentStorePort, ProfileLookupPort

logger = logging.getLogger(__name__)

CLINICAL_COMMANDS: Tuple[Type[AbstractCommand], ...] = (
    CreateClinicalDocumentCommand,
    UpdateClinicalDocumentCommand,
    DeleteClinicalDocumentCommand,
    ListClinicalDocumentsCommand,
    ViewClinicalDocumentCommand,
    AddObservationCommand,
    AddAssessmentCommand,
    AddDiagnosisCommand,
    AddPlanCommand,
    AddPrescriptionCommand,
    UpdateObservationCommand,
    UpdateAssessmentCommand,
    UpdateDiagnosisCommand,
    UpdatePlanCommand,
    UpdatePrescriptionCommand,
)


def command_key_for(command_class: Type[AbstractCommand]) -> str:
    name = command_class.__name__
    if name.endswith("Command"):
        name = name[:-len("Command")]
    return name.lower()


def _normalize_key(key: str) -> str:
    return key.strip().lower().replace("-", "").replace("_", "")


class CommandFactory:
    """Builds commands with their dependencies injected.

    Parameters:
        document_store: Store shared by every clinical command
        profiles: Profile lookup used for role and care-relationship checks
        audit: Change audit trail (optional)
        controlled_expiration_months: Default expiry for controlled prescriptions

    Example Usage:
        ```python
        factory = CommandFactory(store, profiles, audit_logger)
        command = factory.create("add-diagnosis")
        result = command.execute(params, session)
        ```
    """

    def __init__(
        self,
        document_store: DocumentStorePort,
        profiles: Optional[ProfileLookupPort] = None,
        audit: Optional[ChangeAuditPort] = None,
        controlled_expiration_months: int = DEFAULT_CONTROLLED_EXPIRATION_MONTHS
    ):
        self.document_store = document_store
        self.profiles = profiles
        self.audit = audit
        self.controlled_expiration_months = controlled_expiration_months
        self._registry: Dict[str, Type[AbstractCommand]] = {}
        for command_class in CLINICAL_COMMANDS:
            self.register(command_class)

    def register(self, command_class: Type[AbstractCommand]) -> None:
        self._registry[command_key_for(command_class)] = command_class

    def has_command(self, key: str) -> bool:
        return _normalize_key(key) in self._registry

    def create(self, key: str) -> AbstractCommand:
        """Create a fresh command instance.

        Parameters:
            key: Command key, case-insensitive; dashes and underscores are ignored
                (`AddDiagnosis`, `add-diagnosis` and `add_diagnosis` are equivalent)

        Raises:
            KeyError: If no command is registered under the key
        """
        command_class = self._registry.get(_normalize_key(key))
        if command_class is None:
            raise KeyError(f"Unknown command '{key}'. Available commands: {', '.join(sorted(self._registry))}")

        if command_class is AddPrescriptionCommand:
            return command_class(
                self.document_store,
                self.profiles,
                self.audit,
                controlled_expiration_months=self.controlled_expiration_months
            )
        return command_class(self.document_store, self.profiles, self.audit)

    def available_commands(self) -> List[Tuple[str, str]]:
        """Return (key, description) pairs in registration order."""
        return [(key, command_class.description) for key, command_class in self._registry.items()]
