"""Clinical documentation commands."""

from src.domain.commands.clinical.base import ClinicalDocumentCommand
from src.domain.commands.clinical.document_commands import (
    CreateClinicalDocumentCommand,
    DeleteClinicalDocumentCommand,
    UpdateClinicalDocumentCommand,
)
from src.domain.commands.clinical.entry_commands import (
    AddAssessmentCommand,
    AddDiagnosisCommand,
    AddEntryCommand,
    AddObservationCommand,
    AddPlanCommand,
    AddPrescriptionCommand,
)
from src.domain.commands.clinical.entry_update_commands import (
    UpdateAssessmentCommand,
    UpdateDiagnosisCommand,
    UpdateEntryCommand,
    UpdateObservationCommand,
    UpdatePlanCommand,
    UpdatePrescriptionCommand,
)
from src.domain.commands.clinical.query_commands import (
    ListClinicalDocumentsCommand,
    ViewClinicalDocumentCommand,
)

__all__ = [
    'AddAssessmentCommand',
    'AddDiagnosisCommand',
    'AddEntryCommand',
    'AddObservationCommand',
    'AddPlanCommand',
    'AddPrescriptionCommand',
    'ClinicalDocumentCommand',
    'CreateClinicalDocumentCommand',
    'DeleteClinicalDocumentCommand',
    'ListClinicalDocumentsCommand',
    'UpdateAssessmentCommand',
    'UpdateClinicalDocumentCommand',
    'UpdateDiagnosisCommand',
    'UpdateEntryCommand',
    'UpdateObservationCommand',
    'UpdatePlanCommand',
    'UpdatePrescriptionCommand',
    'ViewClinicalDocumentCommand',
]
