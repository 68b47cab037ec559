"""
NeuroNote - Template Narrative
==============================

Deterministic discharge narrative assembled directly from structured data.
Used when every provider in the chain fails; needs no I/O and always
returns a non-empty narrative. Sections without supporting data are
omitted rather than filled with placeholders.

Usage:
    narrative = TemplateNarrativeBuilder().build(result)
"""

from typing import Dict, List, Optional

from src.narrative.models import Narrative
from src.shared.enums import FieldType
from src.shared.models import DatedEvent, DosageRecord, ExtractedField, ExtractionResult, ScoreField

TEMPLATE_SOURCE = "template"

EMPTY_COURSE = "No structured clinical data was available to summarize this admission."

# Warning signs added to follow-up instructions, by diagnosis keyword
WARNING_SIGNS: Dict[str, str] = {
    "hemorrhage": "sudden severe headache or neck stiffness",
    "aneurysm": "sudden severe headache or neck stiffness",
    "glioma": "new or worsening seizures",
    "glioblastoma": "new or worsening seizures",
    "metastasis": "new or worsening seizures",
    "stenosis": "loss of bladder or bowel control or saddle numbness",
    "myelopathy": "loss of bladder or bowel control or new weakness",
}

DEFAULT_WARNING = "new weakness, confusion, fever or wound drainage"


def _join(items: List[str]) -> str:
    if len(items) <= 1:
        return "".join(items)
    if len(items) == 2:
        return f"{items[0]} and {items[1]}"
    return f"{', '.join(items[:-1])}, and {items[-1]}"


def _names(values) -> List[str]:
    seen: List[str] = []
    for item in values:
        if item.name not in seen:
            seen.append(item.name)
    return seen


def _date_text(item: Optional[ExtractedField]) -> Optional[str]:
    if isinstance(item, DatedEvent) and item.event_date is not None:
        return item.event_date.strftime("%B %d, %Y").replace(" 0", " ")
    return None


class TemplateNarrativeBuilder:
    """Builds a Narrative from an ExtractionResult; pure and total."""

    def build(self, extracted: ExtractionResult) -> Narrative:
        sections: Dict[str, str] = {}
        builders = (
            ("chief_complaint", self.chief_complaint),
            ("hospital_course", self.hospital_course),
            ("procedures", self.procedures),
            ("complications", self.complications),
            ("discharge_medications", self.discharge_medications),
            ("discharge_disposition", self.discharge_disposition),
            ("follow_up", self.follow_up),
        )
        for name, builder in builders:
            text = builder(extracted)
            if text:
                sections[name] = text

        if "hospital_course" not in sections:
            sections["hospital_course"] = EMPTY_COURSE
        return Narrative(sections=sections, source=TEMPLATE_SOURCE)

    # =========================================================================
    # Sections
    # =========================================================================

    def chief_complaint(self, extracted: ExtractionResult) -> str:
        diagnoses = _names(extracted.get(FieldType.DIAGNOSIS))
        if not diagnoses:
            return ""

        age = extracted.first(FieldType.AGE)
        gender = extracted.first(FieldType.GENDER)
        who = "Patient"
        if age is not None and gender is not None:
            who = f"{age.value}-year-old {gender.name}"
        elif age is not None:
            who = f"{age.value}-year-old patient"
        return f"{who} admitted with {_join(diagnoses)}."

    def hospital_course(self, extracted: ExtractionResult) -> str:
        paragraphs: List[str] = []

        admitted = _date_text(extracted.first(FieldType.ADMISSION_DATE))
        if admitted:
            paragraphs.append(f"The patient was admitted on {admitted}.")

        procedures = [p for p in extracted.get(FieldType.PROCEDURE)
                      if not (isinstance(p, DatedEvent) and p.is_reference)]
        if procedures:
            paragraphs.append(f"During the hospitalization the patient underwent {_join(_names(procedures))}.")

        complications = _names(extracted.get(FieldType.COMPLICATION))
        if complications:
            count = len(complications)
            noun = "complication" if count == 1 else "complications"
            paragraphs.append(
                f"The hospital course was complicated by {count} {noun}: {_join(complications)}."
            )
        elif procedures:
            paragraphs.append("The postoperative course was without documented complications.")

        scores = [s for s in extracted.get(FieldType.FUNCTIONAL_SCORE) if isinstance(s, ScoreField)]
        if scores:
            paragraphs.append(
                "Documented functional status: "
                + _join([f"{s.scale.upper()} {s.score}" for s in scores if s.score is not None])
                + "."
            )

        discharged = _date_text(extracted.first(FieldType.DISCHARGE_DATE))
        disposition = extracted.first(FieldType.DISCHARGE_DISPOSITION)
        if discharged and disposition is not None:
            paragraphs.append(f"The patient was discharged on {discharged} to {disposition.name}.")
        elif discharged:
            paragraphs.append(f"The patient was discharged on {discharged}.")

        return " ".join(paragraphs)

    def procedures(self, extracted: ExtractionResult) -> str:
        lines = []
        for index, item in enumerate(extracted.get(FieldType.PROCEDURE), start=1):
            when = _date_text(item)
            lines.append(f"{index}. {item.name}" + (f" ({when})" if when else ""))
        return "\n".join(lines)

    def complications(self, extracted: ExtractionResult) -> str:
        complications = extracted.get(FieldType.COMPLICATION)
        if not complications:
            return "None documented." if extracted.get(FieldType.PROCEDURE) else ""
        lines = []
        for item in complications:
            detail = ""
            if isinstance(item, DatedEvent) and item.pod is not None:
                detail = f" on post-operative day {item.pod}"
            lines.append(f"- {item.name}{detail}")
        return "\n".join(lines)

    def discharge_medications(self, extracted: ExtractionResult) -> str:
        lines = []
        for item in extracted.get(FieldType.MEDICATION):
            if isinstance(item, DosageRecord):
                if item.status in ("discontinued", "held"):
                    continue
                parts = [item.name, item.dose_with_unit or "", item.route or "", item.frequency or ""]
                lines.append("- " + " ".join(p for p in parts if p))
            else:
                lines.append(f"- {item.name}")
        return "\n".join(lines)

    def discharge_disposition(self, extracted: ExtractionResult) -> str:
        disposition = extracted.first(FieldType.DISCHARGE_DISPOSITION)
        if disposition is None:
            return ""
        return f"Discharged to {disposition.name}."

    def follow_up(self, extracted: ExtractionResult) -> str:
        follow_ups = [f.value for f in extracted.get(FieldType.FOLLOW_UP)]
        if not follow_ups and not extracted.get(FieldType.DIAGNOSIS):
            return ""

        lines = [f"- {text}" for text in follow_ups]
        diagnoses = " ".join(d.name for d in extracted.get(FieldType.DIAGNOSIS))
        warnings = sorted({sign for key, sign in WARNING_SIGNS.items() if key in diagnoses})
        lines.append(f"- Return for {_join(warnings or [DEFAULT_WARNING])}.")
        return "\n".join(lines)
