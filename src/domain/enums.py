"""Domain Enumerations for Clinical Documentation.

This module defines the closed vocabularies used by clinical entries, sessions
and the command pipeline. All enums parse case-insensitively from either their
value or their member name so that free-form command parameters can be mapped
onto them without bespoke conversion code.

Architecture:
    - Pure domain definitions with zero infrastructure dependencies
    - String-valued enums serialize cleanly through Pydantic models
    - EntrySeverity is ordered; every other enum is nominal
"""

from enum import Enum
from typing import List, Optional


def _normalize(value: str) -> str:
    return value.replace("_", "").replace(" ", "").replace("-", "").lower()


class ClinicalEnum(str, Enum):
    """Base for string enums that accept case-insensitive values or names."""

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            wanted = _normalize(value)
            for member in cls:
                if _normalize(member.value) == wanted or _normalize(member.name) == wanted:
                    return member
        return None

    @classmethod
    def parse(cls, value) -> Optional["ClinicalEnum"]:
        """Parse a value into a member, returning None when it is not recognized.

        Integers are treated as zero-based ordinals.
        """
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return None
        if isinstance(value, int):
            members = list(cls)
            return members[value] if 0 <= value < len(members) else None
        try:
            return cls(str(value).strip())
        except ValueError:
            return None

    @classmethod
    def names(cls) -> List[str]:
        """Display names of every member, in declaration order."""
        return [member.value for member in cls]

    def __str__(self) -> str:
        return self.value


class EntrySeverity(ClinicalEnum):
    """Clinical urgency of an entry, ordered from least to most severe."""
    ROUTINE = "Routine"
    MODERATE = "Moderate"
    URGENT = "Urgent"
    CRITICAL = "Critical"
    EMERGENCY = "Emergency"

    @property
    def rank(self) -> int:
        return list(EntrySeverity).index(self)

    def __lt__(self, other):
        if isinstance(other, EntrySeverity):
            return self.rank < other.rank
        return NotImplemented

    def __le__(self, other):
        if isinstance(other, EntrySeverity):
            return self.rank <= other.rank
        return NotImplemented

    def __gt__(self, other):
        if isinstance(other, EntrySeverity):
            return self.rank > other.rank
        return NotImplemented

    def __ge__(self, other):
        if isinstance(other, EntrySeverity):
            return self.rank >= other.rank
        return NotImplemented


class EntryKind(ClinicalEnum):
    """Discriminator tag for the closed set of clinical entry variants."""
    OBSERVATION = "observation"
    ASSESSMENT = "assessment"
    DIAGNOSIS = "diagnosis"
    PLAN = "plan"
    PRESCRIPTION = "prescription"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class ObservationType(ClinicalEnum):
    CHIEF_COMPLAINT = "ChiefComplaint"
    HISTORY_OF_PRESENT_ILLNESS = "HistoryOfPresentIllness"
    PHYSICAL_EXAM = "PhysicalExam"
    VITAL_SIGNS = "VitalSigns"
    LAB_RESULT = "LabResult"
    IMAGING_RESULT = "ImagingResult"
    REVIEW_OF_SYSTEMS = "ReviewOfSystems"
    SOCIAL_HISTORY = "SocialHistory"
    FAMILY_HISTORY = "FamilyHistory"
    ALLERGY = "Allergy"


class BodySystem(ClinicalEnum):
    GENERAL = "General"
    HEENT = "HEENT"
    CARDIOVASCULAR = "Cardiovascular"
    RESPIRATORY = "Respiratory"
    GASTROINTESTINAL = "Gastrointestinal"
    GENITOURINARY = "Genitourinary"
    MUSCULOSKELETAL = "Musculoskeletal"
    NEUROLOGICAL = "Neurological"
    INTEGUMENTARY = "Integumentary"
    ENDOCRINE = "Endocrine"
    HEMATOLOGIC = "Hematologic"
    IMMUNOLOGIC = "Immunologic"
    PSYCHIATRIC = "Psychiatric"


class PatientCondition(ClinicalEnum):
    STABLE = "Stable"
    IMPROVING = "Improving"
    UNCHANGED = "Unchanged"
    WORSENING = "Worsening"
    CRITICAL = "Critical"


class Prognosis(ClinicalEnum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    GUARDED = "Guarded"
    POOR = "Poor"


class ConfidenceLevel(ClinicalEnum):
    LOW = "Low"
    MODERATE = "Moderate"
    HIGH = "High"
    CERTAIN = "Certain"


class DiagnosisType(ClinicalEnum):
    DIFFERENTIAL = "Differential"
    WORKING = "Working"
    FINAL = "Final"
    RULED_OUT = "RuledOut"


class DiagnosisStatus(ClinicalEnum):
    ACTIVE = "Active"
    RESOLVED = "Resolved"
    CHRONIC = "Chronic"
    REMISSION = "Remission"
    RECURRENCE = "Recurrence"


class PlanType(ClinicalEnum):
    TREATMENT = "Treatment"
    DIAGNOSTIC = "Diagnostic"
    REFERRAL = "Referral"
    FOLLOW_UP = "FollowUp"
    PATIENT_EDUCATION = "PatientEducation"
    PROCEDURE = "Procedure"
    MONITORING = "Monitoring"
    PREVENTION = "Prevention"


class PlanPriority(ClinicalEnum):
    ROUTINE = "Routine"
    HIGH = "High"
    URGENT = "Urgent"
    EMERGENCY = "Emergency"


# Sig abbreviations as written on prescriptions
_FREQUENCY_ABBREVIATIONS = {
    "qd": "OnceDaily",
    "daily": "OnceDaily",
    "bid": "TwiceDaily",
    "tid": "ThreeTimesDaily",
    "qid": "FourTimesDaily",
    "q4h": "EveryFourHours",
    "q6h": "EverySixHours",
    "q8h": "EveryEightHours",
    "q12h": "EveryTwelveHours",
    "qhs": "AtBedtime",
    "hs": "AtBedtime",
    "ac": "BeforeMeals",
    "pc": "AfterMeals",
    "prn": "AsNeeded",
    "qw": "Weekly",
    "q2w": "BiWeekly",
    "qm": "Monthly",
    "once": "Once",
}


class DosageFrequency(ClinicalEnum):
    ONCE_DAILY = "OnceDaily"
    TWICE_DAILY = "TwiceDaily"
    THREE_TIMES_DAILY = "ThreeTimesDaily"
    FOUR_TIMES_DAILY = "FourTimesDaily"
    EVERY_FOUR_HOURS = "EveryFourHours"
    EVERY_SIX_HOURS = "EverySixHours"
    EVERY_EIGHT_HOURS = "EveryEightHours"
    EVERY_TWELVE_HOURS = "EveryTwelveHours"
    AT_BEDTIME = "AtBedtime"
    BEFORE_MEALS = "BeforeMeals"
    AFTER_MEALS = "AfterMeals"
    AS_NEEDED = "AsNeeded"
    WEEKLY = "Weekly"
    BI_WEEKLY = "BiWeekly"
    MONTHLY = "Monthly"
    ONCE = "Once"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            expanded = _FREQUENCY_ABBREVIATIONS.get(_normalize(value).replace(".", ""))
            if expanded is not None:
                return cls(expanded)
        return super()._missing_(value)

    @property
    def sig_text(self) -> str:
        """Human-readable phrase used when generating a prescription sig."""
        words = []
        for char in self.value:
            if char.isupper() and words:
                words.append(" ")
            words.append(char.lower())
        return "".join(words)


class MedicationRoute(ClinicalEnum):
    ORAL = "Oral"
    INTRAVENOUS = "Intravenous"
    INTRAMUSCULAR = "Intramuscular"
    SUBCUTANEOUS = "Subcutaneous"
    TOPICAL = "Topical"
    SUBLINGUAL = "Sublingual"
    TRANSDERMAL = "Transdermal"
    INHALED = "Inhaled"
    RECTAL = "Rectal"
    OPHTHALMIC = "Ophthalmic"
    OTIC = "Otic"
    NASAL = "Nasal"


class UserRole(ClinicalEnum):
    PATIENT = "Patient"
    PHYSICIAN = "Physician"
    ADMINISTRATOR = "Administrator"


class Permission(ClinicalEnum):
    """Closed set of permissions checked before a command executes."""
    VIEW_OWN_PROFILE = "ViewOwnProfile"
    EDIT_OWN_PROFILE = "EditOwnProfile"
    VIEW_OWN_APPOINTMENTS = "ViewOwnAppointments"
    SCHEDULE_OWN_APPOINTMENT = "ScheduleOwnAppointment"
    VIEW_OWN_CLINICAL_DOCUMENTS = "ViewOwnClinicalDocuments"
    VIEW_ALL_PATIENTS = "ViewAllPatients"
    CREATE_PATIENT_PROFILE = "CreatePatientProfile"
    VIEW_PATIENT_PROFILE = "ViewPatientProfile"
    UPDATE_PATIENT_PROFILE = "UpdatePatientProfile"
    DELETE_PATIENT_PROFILE = "DeletePatientProfile"
    VIEW_PHYSICIAN_PROFILE = "ViewPhysicianProfile"
    CREATE_CLINICAL_DOCUMENT = "CreateClinicalDocument"
    UPDATE_CLINICAL_DOCUMENT = "UpdateClinicalDocument"
    DELETE_CLINICAL_DOCUMENT = "DeleteClinicalDocument"
    VIEW_ALL_APPOINTMENTS = "ViewAllAppointments"
    SCHEDULE_ANY_APPOINTMENT = "ScheduleAnyAppointment"
    EDIT_OWN_AVAILABILITY = "EditOwnAvailability"
    CREATE_PHYSICIAN_PROFILE = "CreatePhysicianProfile"
    UPDATE_PHYSICIAN_PROFILE = "UpdatePhysicianProfile"
    DELETE_PHYSICIAN_PROFILE = "DeletePhysicianProfile"
    VIEW_ADMINISTRATOR_PROFILE = "ViewAdministratorProfile"
    UPDATE_ADMINISTRATOR_PROFILE = "UpdateAdministratorProfile"
    VIEW_ALL_PROFILES = "ViewAllProfiles"
    VIEW_SYSTEM_REPORTS = "ViewSystemReports"
    EDIT_FACILITY_SETTINGS = "EditFacilitySettings"


class ErrorCode(ClinicalEnum):
    """Error taxonomy reported by validation and command results."""
    MISSING_PARAMETER = "MissingParameter"
    NOT_FOUND = "NotFound"
    INVALID_FORMAT = "InvalidFormat"
    INVARIANT_VIOLATION = "InvariantViolation"
    PERMISSION_DENIED = "PermissionDenied"
    UNEXPECTED = "Unexpected"
