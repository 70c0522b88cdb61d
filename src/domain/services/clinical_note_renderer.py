"""Clinical Note Renderer.

Read-only projections of a ClinicalDocument into text: the SOAP note, a short
summary and the full entry listing. Every function here is a pure function of
the document's current state, so rendering the same document twice produces
identical output.

Architecture:
    - Pure domain service, no side effects
    - Dispatches on the entry kind tag; entries render their own display line
"""

from typing import Callable, Dict, List, Optional

from src.domain.clinical_document import ClinicalDocument
from src.domain.clinical_entries import ClinicalEntry
from src.domain.enums import EntryKind, ObservationType
from src.domain.ports import InvalidFormatError
from src.domain.utils import format_timestamp, short_id

SUBJECTIVE_OBSERVATION_TYPES = (
    ObservationType.CHIEF_COMPLAINT,
    ObservationType.HISTORY_OF_PRESENT_ILLNESS,
    ObservationType.SOCIAL_HISTORY,
    ObservationType.FAMILY_HISTORY,
    ObservationType.ALLERGY,
)

OBJECTIVE_OBSERVATION_TYPES = (
    ObservationType.PHYSICAL_EXAM,
    ObservationType.VITAL_SIGNS,
    ObservationType.LAB_RESULT,
    ObservationType.IMAGING_RESULT,
    ObservationType.REVIEW_OF_SYSTEMS,
)

RENDER_FORMATS = ("full", "soap", "summary")


def _bullets(lines: List[str]) -> List[str]:
    rendered = []
    for line in lines:
        first, *rest = line.split("\n")
        rendered.append(f"  - {first}")
        rendered.extend(f"    {extra}" for extra in rest)
    return rendered


def _observations_of(document: ClinicalDocument, types) -> List[str]:
    return [
        obs.display_string()
        for obs_type in types
        for obs in document.get_observations()
        if obs.observation_type == obs_type
    ]


def render_soap_note(document: ClinicalDocument) -> str:
    """Render the document as a SOAP note.

    Sections follow the usual clinical order: Subjective (chief complaint and
    history observations), Objective (exam, vitals, labs, imaging), Assessment,
    Diagnoses, Plan and Prescriptions. Only active entries are shown.
    """
    lines = [
        "=== CLINICAL DOCUMENTATION ===",
        f"Date: {format_timestamp(document.created_at)}",
        f"Patient ID: {document.patient_id}",
        f"Physician ID: {document.physician_id}",
        "",
        "SUBJECTIVE:",
        f"  Chief Complaint: {document.chief_complaint}",
    ]
    lines.extend(_bullets(_observations_of(document, SUBJECTIVE_OBSERVATION_TYPES)))

    lines.append("")
    lines.append("OBJECTIVE:")
    lines.extend(_bullets(_observations_of(document, OBJECTIVE_OBSERVATION_TYPES)))

    lines.append("")
    lines.append("ASSESSMENT:")
    lines.extend(_bullets([a.display_string() for a in document.get_assessments()]))

    lines.append("")
    lines.append("DIAGNOSES:")
    lines.extend(_bullets([d.display_string() for d in document.get_diagnoses()]))

    lines.append("")
    lines.append("PLAN:")
    lines.extend(_bullets([p.display_string() for p in document.get_plans()]))

    lines.append("")
    lines.append("PRESCRIPTIONS:")
    lines.extend(_bullets([p.display_string() for p in document.get_prescriptions()]))

    if document.is_completed:
        lines.append("")
        lines.append(f"Document completed at: {format_timestamp(document.completed_at)}")
    return "\n".join(lines)


def render_summary(document: ClinicalDocument) -> str:
    """Render a short summary: status, chief complaint, primary diagnosis, readiness and counts."""
    status = "Completed" if document.is_completed else "Draft"
    primary = document.get_primary_diagnosis()
    counts = document.entry_counts()
    lines = [
        f"Clinical Document {short_id(document.id)} [{status}]",
        f"Created: {format_timestamp(document.created_at)}",
        f"Chief Complaint: {document.chief_complaint}",
        f"Primary Diagnosis: {primary.display_string() if primary else 'None'}",
    ]
    if not document.is_completed:
        lines.append(f"Ready to complete: {'Yes' if document.can_complete() else 'No'}")
    lines.append("Active entries: " + ", ".join(f"{kind.label} {counts[kind]}" for kind in EntryKind))
    return "\n".join(lines)


def _entry_line(entry: ClinicalEntry) -> str:
    status = "" if entry.is_active else " (inactive)"
    return f"[{entry.label} {short_id(entry.id)}]{status} {entry.display_string()}"


def render_full(document: ClinicalDocument) -> str:
    """Render every entry, inactive ones included, in insertion order."""
    lines = [render_summary(document), "", f"Appointment ID: {document.appointment_id}", "", "ENTRIES:"]
    if not document.entries:
        lines.append("  (none)")
    for entry in document.entries:
        lines.extend(_bullets([_entry_line(entry)]))
    return "\n".join(lines)


_RENDERERS: Dict[str, Callable[[ClinicalDocument], str]] = {
    "full": render_full,
    "soap": render_soap_note,
    "summary": render_summary,
}


def render_document(document: ClinicalDocument, format_name: Optional[str] = "full") -> str:
    """Render a document in one of RENDER_FORMATS.

    Raises:
        InvalidFormatError: If the format is unknown
    """
    renderer = _RENDERERS.get((format_name or "full").lower())
    if renderer is None:
        raise InvalidFormatError(f"Unknown format '{format_name}'. Valid formats: {', '.join(RENDER_FORMATS)}")
    return renderer(document)
