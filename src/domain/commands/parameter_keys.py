"""Parameter keys understood by the clinical commands.

Keys are matched case-insensitively by CommandParameters.
"""

# Document
DOCUMENT_ID = "document_id"
PATIENT_ID = "patient_id"
PHYSICIAN_ID = "physician_id"
APPOINTMENT_ID = "appointment_id"
CHIEF_COMPLAINT = "chief_complaint"
INITIAL_OBSERVATION = "initial_observation"
COMPLETE = "complete"
FORCE = "force"

# Shared entry fields
CONTENT = "content"
SEVERITY = "severity"
CODE = "code"

# Observation
OBSERVATION_ID = "observation_id"
OBSERVATION = "observation"
OBSERVATION_TYPE = "observation_type"
BODY_SYSTEM = "body_system"
IS_ABNORMAL = "is_abnormal"
NUMERIC_VALUE = "numeric_value"
UNIT = "unit"
REFERENCE_RANGE = "reference_range"
VITAL_SIGNS = "vital_signs"
LOINC_CODE = "loinc_code"

# Assessment
ASSESSMENT_ID = "assessment_id"
CLINICAL_IMPRESSION = "clinical_impression"
CONDITION = "condition"
PROGNOSIS = "prognosis"
CONFIDENCE = "confidence"
REQUIRES_IMMEDIATE_ACTION = "requires_immediate_action"
DIFFERENTIAL_DIAGNOSES = "differential_diagnoses"
RISK_FACTORS = "risk_factors"

# Diagnosis
DIAGNOSIS_ID = "diagnosis_id"
DIAGNOSIS_DESCRIPTION = "diagnosis_description"
ICD10_CODE = "icd10_code"
DIAGNOSIS_TYPE = "diagnosis_type"
DIAGNOSIS_STATUS = "status"
IS_PRIMARY = "is_primary"
ONSET_DATE = "onset_date"
SUPPORTING_OBSERVATIONS = "supporting_observations"

# Plan
PLAN_ID = "plan_id"
PLAN_DESCRIPTION = "plan_description"
PLAN_TYPE = "plan_type"
PRIORITY = "priority"
TARGET_DATE = "target_date"
IS_COMPLETED = "is_completed"
FOLLOW_UP_INSTRUCTIONS = "follow_up_instructions"
RELATED_DIAGNOSES = "related_diagnoses"

# Prescription
PRESCRIPTION_ID = "prescription_id"
MEDICATION_NAME = "medication_name"
DOSAGE = "dosage"
FREQUENCY = "frequency"
ROUTE = "route"
DURATION = "duration"
REFILLS = "refills"
GENERIC_ALLOWED = "generic_allowed"
DEA_SCHEDULE = "dea_schedule"
EXPIRATION_DATE = "expiration_date"
INSTRUCTIONS = "instructions"
NDC_CODE = "ndc_code"

# Queries
START_DATE = "start_date"
END_DATE = "end_date"
INCOMPLETE_ONLY = "incomplete_only"
FORMAT = "format"
