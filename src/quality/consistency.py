"""
Consistency Dimension
=====================

Internal agreement of the structured data and the narrative:

- admission <= surgery / procedure dates <= discharge
- length of stay within a plausible bound
- medications listed in the structured data vs. the narrative
- diagnosis agreement between the structured data and the narrative
- contradictory statements within the narrative

Inconsistencies are reported, never corrected.
"""

import re
from datetime import date
from typing import Any, Dict, List, Optional, Set, Tuple

from src.core.lexicon import MEDICATION_SYNONYMS, surface_forms
from src.quality.base import DimensionScorer, ScoringContext, normalize_for_lookup, penalty_score, sentences
from src.shared.enums import DimensionName, FieldType, IssueType, Severity
from src.shared.models import DatedEvent, DosageRecord, Issue

MAX_LENGTH_OF_STAY_DAYS = 365

INACTIVE_MEDICATION_STATUSES = frozenset({"discontinued", "held"})

# Statements that cannot both hold for the same patient
CONTRADICTION_PAIRS: List[Tuple[str, str, str]] = [
    (r"\bno (?:post-?operative )?complications\b", r"\bcomplicated by\b|\bdeveloped\b", "complications"),
    (r"\bneurologically intact\b|\bno (?:focal )?deficits?\b", r"\b(?:new|persistent) (?:focal )?deficits?\b|\bhemiparesis\b|\baphasia\b", "neurological status"),
    (r"\bimproved\b", r"\bworsened\b|\bdeteriorated\b", "clinical trajectory"),
    (r"\bafebrile\b", r"\bfebrile\b|\bfever\b", "fever"),
    (r"\bseizure-free\b|\bno seizures?\b", r"\bhad (?:a )?seizures?\b|\bbreakthrough seizures?\b", "seizures"),
]


def _phrase_in(text: str, phrase: str) -> bool:
    return re.search(rf"(?<![\w-]){re.escape(phrase)}(?![\w-])", text) is not None


class ConsistencyScorer(DimensionScorer):
    """Date ordering, cross-references and contradictions."""

    name = DimensionName.CONSISTENCY

    def __init__(self):
        self._medication_forms = surface_forms(FieldType.MEDICATION)
        self._diagnosis_forms = surface_forms(FieldType.DIAGNOSIS)

    def evaluate(self, context: ScoringContext) -> Tuple[float, List[Issue], Dict[str, Any]]:
        issues: List[Issue] = []
        issues.extend(self.check_date_order(context))
        issues.extend(self.check_length_of_stay(context))

        if context.narrative is not None:
            issues.extend(self.check_medications(context))
            issues.extend(self.check_diagnoses(context))
            issues.extend(self.check_contradictions(context))

        details = {
            "checks": ["date_order", "length_of_stay"]
            + (["medications", "diagnoses", "contradictions"] if context.narrative is not None else []),
            "issue_count": len(issues),
        }
        return penalty_score(issues), issues, details

    # =========================================================================
    # Structured Data
    # =========================================================================

    @staticmethod
    def _procedure_dates(context: ScoringContext) -> List[Tuple[str, date]]:
        dated: List[Tuple[str, date]] = []
        for item in context.extracted.get(FieldType.SURGERY_DATE):
            if isinstance(item, DatedEvent) and item.event_date is not None:
                dated.append(("surgery date", item.event_date))
        for item in context.extracted.get(FieldType.PROCEDURE):
            if isinstance(item, DatedEvent) and item.event_date is not None and not item.is_reference:
                dated.append((item.name, item.event_date))
        return dated

    def check_date_order(self, context: ScoringContext) -> List[Issue]:
        dates = context.extracted.dates()
        admission: Optional[date] = dates.get(FieldType.ADMISSION_DATE)
        discharge: Optional[date] = dates.get(FieldType.DISCHARGE_DATE)
        issues: List[Issue] = []

        if admission and discharge and discharge < admission:
            issues.append(Issue(
                type=IssueType.INCONSISTENT_STRUCTURED_DATA,
                severity=Severity.CRITICAL,
                field=FieldType.DISCHARGE_DATE.value,
                suggestion=f"Discharge date {discharge.isoformat()} precedes admission date {admission.isoformat()}",
                details={"admission": admission.isoformat(), "discharge": discharge.isoformat()},
            ))

        for label, when in self._procedure_dates(context):
            if admission and when < admission:
                issues.append(Issue(
                    type=IssueType.INCONSISTENT_STRUCTURED_DATA,
                    severity=Severity.CRITICAL,
                    field=FieldType.PROCEDURE.value,
                    suggestion=f"{label} on {when.isoformat()} precedes admission on {admission.isoformat()}",
                ))
            elif discharge and when > discharge:
                issues.append(Issue(
                    type=IssueType.INCONSISTENT_STRUCTURED_DATA,
                    severity=Severity.CRITICAL,
                    field=FieldType.PROCEDURE.value,
                    suggestion=f"{label} on {when.isoformat()} follows discharge on {discharge.isoformat()}",
                ))
        return issues

    def check_length_of_stay(self, context: ScoringContext) -> List[Issue]:
        dates = context.extracted.dates()
        admission = dates.get(FieldType.ADMISSION_DATE)
        discharge = dates.get(FieldType.DISCHARGE_DATE)
        if not (admission and discharge):
            return []
        days = (discharge - admission).days
        if days > MAX_LENGTH_OF_STAY_DAYS:
            return [Issue(
                type=IssueType.EXCESSIVE_LENGTH_OF_STAY,
                severity=Severity.MAJOR,
                field=FieldType.DISCHARGE_DATE.value,
                suggestion=f"Length of stay of {days} days is implausible; check admission and discharge dates",
                details={"days": days},
            )]
        return []

    # =========================================================================
    # Narrative Cross-References
    # =========================================================================

    def _medications_in(self, text: str) -> Set[str]:
        return {
            canonical for form, canonical in self._medication_forms.items()
            if len(form) > 3 and _phrase_in(text, form)
        }

    def check_medications(self, context: ScoringContext) -> List[Issue]:
        narrative = context.narrative
        listed = narrative.section("discharge_medications") or narrative.text
        lowered = normalize_for_lookup(listed)
        issues: List[Issue] = []

        structured: Set[str] = set()
        for item in context.extracted.get(FieldType.MEDICATION):
            if isinstance(item, DosageRecord) and item.status in INACTIVE_MEDICATION_STATUSES:
                continue
            structured.add(item.name)

        for name in sorted(structured):
            forms = MEDICATION_SYNONYMS.get(name, [name])
            if not any(_phrase_in(lowered, form) for form in forms):
                issues.append(Issue(
                    type=IssueType.MEDICATION_NOT_IN_NARRATIVE,
                    severity=Severity.MAJOR,
                    field=FieldType.MEDICATION.value,
                    suggestion=f"{name} is in the medication list but not in the narrative",
                ))

        if structured:
            for name in sorted(self._medications_in(lowered) - structured):
                issues.append(Issue(
                    type=IssueType.UNLISTED_MEDICATION_IN_NARRATIVE,
                    severity=Severity.MINOR,
                    field=FieldType.MEDICATION.value,
                    suggestion=f"Narrative mentions {name}, which is not in the structured medication list",
                ))
        return issues

    def check_diagnoses(self, context: ScoringContext) -> List[Issue]:
        structured = {item.name for item in context.extracted.get(FieldType.DIAGNOSIS)}
        if not structured:
            return []
        lowered = normalize_for_lookup(context.narrative_text)
        mentioned = {
            canonical for form, canonical in self._diagnosis_forms.items()
            if _phrase_in(lowered, form)
        }
        if mentioned and not (mentioned & structured):
            return [Issue(
                type=IssueType.DIAGNOSIS_MISMATCH,
                severity=Severity.MAJOR,
                field=FieldType.DIAGNOSIS.value,
                suggestion=(
                    f"Narrative describes {', '.join(sorted(mentioned))} but the structured "
                    f"diagnosis is {', '.join(sorted(structured))}"
                ),
            )]
        return []

    def check_contradictions(self, context: ScoringContext) -> List[Issue]:
        issues: List[Issue] = []
        statements = [s.lower() for s in sentences(context.narrative_text)]

        for positive, negative, topic in CONTRADICTION_PAIRS:
            says_a = [s for s in statements if re.search(positive, s)]
            says_b = [s for s in statements if re.search(negative, s) and not re.search(positive, s)]
            if says_a and says_b:
                issues.append(Issue(
                    type=IssueType.NARRATIVE_CONTRADICTION,
                    severity=Severity.MAJOR,
                    field=topic,
                    suggestion=f"Narrative makes contradictory statements about {topic}",
                ))

        complications = context.extracted.get(FieldType.COMPLICATION)
        if complications and any(re.search(CONTRADICTION_PAIRS[0][0], s) for s in statements):
            issues.append(Issue(
                type=IssueType.NARRATIVE_CONTRADICTION,
                severity=Severity.MAJOR,
                field=FieldType.COMPLICATION.value,
                suggestion=(
                    "Narrative states there were no complications but "
                    f"{', '.join(sorted({c.name for c in complications}))} were documented"
                ),
            ))
        return issues
