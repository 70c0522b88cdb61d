"""Clinical Entry Variants.

This module defines the five closed clinical entry kinds recorded in a clinical
document: observations, assessments, diagnoses, plans and prescriptions. Each
variant embeds the shared base record (identity, author, content, severity,
timestamps, active flag) and adds its kind-specific fields and invariants.

Security Impact:
    - Entries carry clinical free text; it is rendered but never logged
    - Soft deletion (`is_active = False`) keeps the record for auditability
    - Hard validation errors block document completion

Architecture:
    - Closed tagged variant: the `kind` field is the discriminator of the
      `ClinicalEntry` union, and all dispatch is done on that tag
    - Pydantic V2 models with assignment validation
    - Validation returns issues (code + message); it never raises
"""

import re
from datetime import date, datetime, time
from typing import Annotated, Any, Dict, List, Literal, NamedTuple, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field

from src.domain.enums import (
    BodySystem,
    ConfidenceLevel,
    DiagnosisStatus,
    DiagnosisType,
    DosageFrequency,
    EntryKind,
    EntrySeverity,
    ErrorCode,
    MedicationRoute,
    ObservationType,
    PatientCondition,
    PlanPriority,
    PlanType,
    Prognosis,
)
from src.domain.utils import add_months, format_date

# Letter + two digits + optional decimal fraction (ICD-10 style)
CLASSIFICATION_CODE_PATTERN = re.compile(r"^[A-Z][0-9]{2}(\.[0-9A-Z]{1,4})?$")

FINAL_DIAGNOSIS_REQUIRES_CODE = "Final diagnosis requires an ICD-10 code"


class EntryIssue(NamedTuple):
    """A single validation finding raised by an entry."""
    code: ErrorCode
    message: str


def is_valid_classification_code(code: Optional[str]) -> bool:
    """Check a diagnosis code against the ICD-10 style pattern."""
    if not code:
        return False
    return bool(CLASSIFICATION_CODE_PATTERN.match(code.strip().upper()))


class ClinicalEntryBase(BaseModel):
    """Fields and behavior shared by every clinical entry variant.

    Parameters:
        id: Entry identifier
        author_id: Authoring physician's profile id
        content: Free-text content of the entry
        severity: Ordered clinical severity
        code: Coding-system value (LOINC, ICD-10 or NDC depending on the kind)
        created_at: Creation timestamp
        modified_at: Last modification timestamp (None until first change)
        is_active: False once the entry has been soft-deleted
    """

    id: UUID = Field(default_factory=uuid4, description="Entry identifier")
    author_id: Optional[UUID] = Field(None, description="Authoring physician id")
    content: str = Field("", description="Free-text content")
    severity: EntrySeverity = Field(EntrySeverity.ROUTINE, description="Clinical severity")
    code: Optional[str] = Field(None, description="Coding-system value")
    created_at: datetime = Field(default_factory=datetime.now, description="Creation timestamp")
    modified_at: Optional[datetime] = Field(None, description="Last modification timestamp")
    is_active: bool = Field(True, description="False once soft-deleted")

    model_config = ConfigDict(validate_assignment=True)

    @property
    def entry_kind(self) -> EntryKind:
        return EntryKind(self.kind)

    @property
    def label(self) -> str:
        return self.entry_kind.label

    def touch(self) -> None:
        """Stamp the modification time."""
        self.modified_at = datetime.now()

    def update_content(self, new_content: str) -> bool:
        """Replace the content and stamp `modified_at`.

        This is the only path through which `content` changes.

        Returns:
            bool: False when the content is unchanged (nothing is stamped)
        """
        if new_content == self.content:
            return False
        self.content = new_content
        self.touch()
        return True

    def apply_changes(self, changes: Dict[str, Any]) -> None:
        """Write already-diffed field values and stamp the modification time once."""
        if not changes:
            return
        for field_name, value in changes.items():
            if field_name == "content":
                self.update_content(value)
            else:
                setattr(self, field_name, value)
        self.touch()

    def deactivate(self) -> bool:
        """Soft-delete the entry.

        Returns:
            bool: False if the entry was already inactive
        """
        if not self.is_active:
            return False
        self.is_active = False
        self.touch()
        return True

    def get_validation_issues(self) -> List[EntryIssue]:
        issues = []
        if not self.content or not self.content.strip():
            issues.append(EntryIssue(ErrorCode.MISSING_PARAMETER, f"{self.label} entry must have content"))
        if self.author_id is None:
            issues.append(EntryIssue(ErrorCode.MISSING_PARAMETER, f"{self.label} entry must have an author"))
        issues.extend(self._kind_issues())
        return issues

    def get_validation_errors(self) -> List[str]:
        return [issue.message for issue in self.get_validation_issues()]

    def get_validation_warnings(self) -> List[str]:
        return self._kind_warnings()

    @property
    def is_valid(self) -> bool:
        return not self.get_validation_issues()

    def _kind_issues(self) -> List[EntryIssue]:
        return []

    def _kind_warnings(self) -> List[str]:
        return []

    def _base_display(self) -> str:
        text = self.content
        if self.severity != EntrySeverity.ROUTINE:
            text = f"[{self.severity.value}] {text}"
        if self.code:
            text += f" (Code: {self.code})"
        return text

    def display_string(self) -> str:
        return self._base_display()


class ObservationEntry(ClinicalEntryBase):
    """Objective or subjective finding (exam, vitals, labs, history).

    The `code` field carries a LOINC code when one is known.
    """

    kind: Literal["observation"] = "observation"
    observation_type: ObservationType = Field(ObservationType.PHYSICAL_EXAM, description="Observation category")
    body_system: Optional[BodySystem] = Field(None, description="Body system examined")
    is_abnormal: bool = Field(False, description="Finding is outside normal limits")
    numeric_value: Optional[float] = Field(None, description="Measured value")
    unit: Optional[str] = Field(None, description="Unit of the measured value")
    reference_range: Optional[str] = Field(None, description="Normal reference range")
    vital_signs: Dict[str, str] = Field(default_factory=dict, description="Vital sign name to reading")

    @property
    def loinc_code(self) -> Optional[str]:
        return self.code

    def add_vital_sign(self, name: str, value: str) -> None:
        signs = dict(self.vital_signs)
        signs[name] = value
        self.vital_signs = signs

    def vital_signs_display(self) -> str:
        if not self.vital_signs:
            return "No vital signs recorded"
        return ", ".join(f"{name}: {value}" for name, value in self.vital_signs.items())

    def _kind_warnings(self) -> List[str]:
        warnings = []
        if self.numeric_value is not None and not self.unit:
            warnings.append("Numeric value recorded without a unit")
        return warnings

    def display_string(self) -> str:
        parts = []
        if self.is_abnormal:
            parts.append("[ABNORMAL]")
        if self.body_system is not None:
            parts.append(f"[{self.body_system.value}]")
        text = self._base_display()
        if self.numeric_value is not None:
            measured = f"{self.numeric_value:g} {self.unit or ''}".strip()
            text += f": {measured}"
        if self.reference_range:
            text += f" (Ref: {self.reference_range})"
        parts.append(text)
        display = " ".join(parts)
        if self.vital_signs:
            display += f" [{self.vital_signs_display()}]"
        return display


class AssessmentEntry(ClinicalEntryBase):
    """Clinical impression of the patient's state; `content` is the impression."""

    kind: Literal["assessment"] = "assessment"
    condition: PatientCondition = Field(PatientCondition.STABLE, description="Current patient condition")
    prognosis: Prognosis = Field(Prognosis.GOOD, description="Expected outcome")
    confidence: ConfidenceLevel = Field(ConfidenceLevel.MODERATE, description="Clinician confidence")
    requires_immediate_action: bool = Field(False, description="Needs action before the encounter ends")
    differential_diagnoses: List[str] = Field(default_factory=list, description="Differentials considered")
    risk_factors: List[str] = Field(default_factory=list, description="Identified risk factors")

    @property
    def clinical_impression(self) -> str:
        return self.content

    def _kind_warnings(self) -> List[str]:
        warnings = []
        if self.requires_immediate_action and self.severity < EntrySeverity.URGENT:
            warnings.append("Assessments requiring immediate action should have Urgent or higher severity")
        if self.condition == PatientCondition.CRITICAL and self.prognosis == Prognosis.EXCELLENT:
            warnings.append("Critical condition with Excellent prognosis is unusual")
        return warnings

    def display_string(self) -> str:
        text = f"[{self.condition.value}] {self._base_display()}"
        if self.requires_immediate_action:
            text = f"[IMMEDIATE ACTION REQUIRED] {text}"
        if self.differential_diagnoses:
            text += "\nDifferential: " + ", ".join(self.differential_diagnoses)
        if self.risk_factors:
            text += "\nRisk Factors: " + ", ".join(self.risk_factors)
        return text


class DiagnosisEntry(ClinicalEntryBase):
    """Diagnostic conclusion; the `code` field carries the ICD-10 code."""

    kind: Literal["diagnosis"] = "diagnosis"
    diagnosis_type: DiagnosisType = Field(DiagnosisType.WORKING, description="Diagnostic certainty stage")
    status: DiagnosisStatus = Field(DiagnosisStatus.ACTIVE, description="Clinical status")
    is_primary: bool = Field(False, description="Chief driver of the encounter")
    onset_date: Optional[date] = Field(None, description="Date of onset")
    related_prescription_ids: List[UUID] = Field(default_factory=list, description="Prescriptions treating it")
    supporting_observation_ids: List[UUID] = Field(default_factory=list, description="Observations supporting it")

    @property
    def icd10_code(self) -> Optional[str]:
        return self.code

    def link_prescription(self, prescription_id: UUID) -> None:
        if prescription_id not in self.related_prescription_ids:
            self.related_prescription_ids = self.related_prescription_ids + [prescription_id]

    def _kind_issues(self) -> List[EntryIssue]:
        issues = []
        if self.code and not is_valid_classification_code(self.code):
            issues.append(EntryIssue(
                ErrorCode.INVALID_FORMAT,
                f"Invalid ICD-10 code format: '{self.code}'"
            ))
        if self.diagnosis_type == DiagnosisType.FINAL and not (self.code and self.code.strip()):
            issues.append(EntryIssue(ErrorCode.INVARIANT_VIOLATION, FINAL_DIAGNOSIS_REQUIRES_CODE))
        return issues

    def _kind_warnings(self) -> List[str]:
        warnings = []
        if self.onset_date is not None and self.onset_date > date.today():
            warnings.append("Onset date is in the future")
        return warnings

    def display_string(self) -> str:
        text = self._base_display()
        if self.diagnosis_type != DiagnosisType.FINAL:
            text = f"[{self.diagnosis_type.value}] {text}"
        if self.is_primary:
            text = f"[PRIMARY] {text}"
        if self.status != DiagnosisStatus.ACTIVE:
            text += f" ({self.status.value})"
        return text


class PlanEntry(ClinicalEntryBase):
    """Care plan item: treatment, diagnostics, referral, follow-up and so on."""

    kind: Literal["plan"] = "plan"
    plan_type: PlanType = Field(PlanType.TREATMENT, description="Kind of plan item")
    priority: PlanPriority = Field(PlanPriority.ROUTINE, description="Scheduling priority")
    target_date: Optional[datetime] = Field(None, description="Date the item is due")
    is_completed: bool = Field(False, description="Item has been carried out")
    completed_date: Optional[datetime] = Field(None, description="When the item was carried out")
    related_diagnosis_ids: List[UUID] = Field(default_factory=list, description="Diagnoses the item addresses")
    follow_up_instructions: Optional[str] = Field(None, description="Instructions for follow-up")

    def mark_completed(self) -> None:
        """Set the completion flag and completion date together."""
        now = datetime.now()
        self.is_completed = True
        self.completed_date = now
        self.modified_at = now

    def reopen(self) -> None:
        self.is_completed = False
        self.completed_date = None
        self.touch()

    def _kind_issues(self) -> List[EntryIssue]:
        issues = []
        if self.is_completed and self.completed_date is None:
            issues.append(EntryIssue(
                ErrorCode.INVARIANT_VIOLATION,
                "Completed plan items must have a completion date"
            ))
        if self.target_date is not None and self._target_precedes_creation():
            issues.append(EntryIssue(
                ErrorCode.INVARIANT_VIOLATION,
                "Target date cannot be before creation date"
            ))
        return issues

    def _target_precedes_creation(self) -> bool:
        target = self.target_date
        # A bare date (midnight) means "due that day", so the creation day itself is allowed
        if target.time() == time.min:
            return target.date() < self.created_at.date()
        return target < self.created_at

    def display_string(self) -> str:
        text = f"[{self.plan_type.value}] {self._base_display()}"
        if self.priority != PlanPriority.ROUTINE:
            text = f"[{self.priority.value}] {text}"
        if self.target_date is not None:
            text += f" (Due: {format_date(self.target_date)})"
        if self.is_completed:
            text += " ✓ COMPLETED"
        return text


class PrescriptionEntry(ClinicalEntryBase):
    """Medication order; must reference an active diagnosis of the same document.

    The `code` field carries the NDC code. `content` holds the generated sig.
    """

    kind: Literal["prescription"] = "prescription"
    diagnosis_id: Optional[UUID] = Field(None, description="Diagnosis the medication treats")
    medication_name: str = Field("", description="Medication name")
    dosage: Optional[str] = Field(None, description="Dose per administration")
    frequency: Optional[DosageFrequency] = Field(None, description="Administration frequency")
    route: MedicationRoute = Field(MedicationRoute.ORAL, description="Route of administration")
    duration: Optional[str] = Field(None, description="Course length")
    refills: int = Field(0, description="Number of refills")
    generic_allowed: bool = Field(True, description="Generic substitution permitted")
    dea_schedule: Optional[int] = Field(None, description="Controlled-substance schedule (1-5)")
    expiration_date: Optional[datetime] = Field(None, description="Prescription expiration")
    instructions: Optional[str] = Field(None, description="Additional patient instructions")

    @property
    def ndc_code(self) -> Optional[str]:
        return self.code

    @property
    def is_controlled(self) -> bool:
        return self.dea_schedule is not None

    def apply_controlled_defaults(self, expiration_months: int) -> None:
        """Default the expiration of a controlled substance relative to creation."""
        if self.is_controlled and self.expiration_date is None:
            self.expiration_date = add_months(self.created_at, expiration_months)

    def generate_sig(self) -> str:
        """Render the patient-facing directions ("sig") for this prescription."""
        sig = f"Take {self.dosage or 'as directed'} by {self.route.value.lower()} route"
        if self.frequency is not None:
            sig += f" {self.frequency.sig_text}"
        if self.duration:
            sig += f" for {self.duration}"
        sig += "."
        if self.instructions:
            sig += f" {self.instructions}"
        return sig

    def _kind_issues(self) -> List[EntryIssue]:
        issues = []
        if self.diagnosis_id is None:
            issues.append(EntryIssue(
                ErrorCode.INVARIANT_VIOLATION,
                "Prescription must be linked to a diagnosis"
            ))
        if not self.medication_name.strip():
            issues.append(EntryIssue(ErrorCode.MISSING_PARAMETER, "Medication name is required"))
        if not self.dosage:
            issues.append(EntryIssue(ErrorCode.MISSING_PARAMETER, "Dosage is required"))
        if self.frequency is None:
            issues.append(EntryIssue(ErrorCode.MISSING_PARAMETER, "Frequency is required"))
        if self.dea_schedule is not None and not 1 <= self.dea_schedule <= 5:
            issues.append(EntryIssue(ErrorCode.INVALID_FORMAT, "DEA Schedule must be between 1 and 5"))
        if self.refills < 0:
            issues.append(EntryIssue(ErrorCode.INVALID_FORMAT, "Refills cannot be negative"))
        if self.dea_schedule == 2 and self.refills > 5:
            issues.append(EntryIssue(
                ErrorCode.INVARIANT_VIOLATION,
                "Schedule II controlled substances cannot have more than 5 refills"
            ))
        return issues

    def display_string(self) -> str:
        text = f"{self.medication_name}: {self.generate_sig()} (Refills: {self.refills})"
        if self.dea_schedule is not None:
            text += f" [DEA Schedule {self.dea_schedule}]"
        if self.code:
            text += f" (NDC: {self.code})"
        return text


ClinicalEntry = Annotated[
    Union[ObservationEntry, AssessmentEntry, DiagnosisEntry, PlanEntry, PrescriptionEntry],
    Field(discriminator="kind"),
]
