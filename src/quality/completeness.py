"""
Completeness Dimension
======================

Checks that the discharge summary covers the sections a reviewer expects.

Tiers:
    critical  - admission date, discharge date, diagnosis, procedures,
                medications, discharge disposition
    important - demographics, complications, hospital course, follow-up,
                functional status
    optional  - surgery date, presenting symptoms

A section is present when the structured data holds it or the narrative
section carries real content. Score:

    0.5 x critical coverage + 0.3 x important coverage + 0.2 x field completeness

capped at ``1 - 0.25 x missing_critical``.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Tuple

from src.quality.base import DimensionScorer, ScoringContext
from src.shared.enums import DimensionName, FieldType, IssueType, Severity
from src.shared.models import DatedEvent, DosageRecord, Issue

CRITICAL = "critical"
IMPORTANT = "important"
OPTIONAL = "optional"

TIER_SEVERITY = {
    CRITICAL: Severity.CRITICAL,
    IMPORTANT: Severity.MAJOR,
    OPTIONAL: Severity.WARNING,
}

CRITICAL_CAP_STEP = 0.25


@dataclass(frozen=True)
class SectionRequirement:
    """One expected section and where it may be found."""
    key: str
    label: str
    tier: str
    fields: Tuple[FieldType, ...] = ()
    narrative_sections: Tuple[str, ...] = ()


SECTION_REQUIREMENTS: Tuple[SectionRequirement, ...] = (
    SectionRequirement("admission_date", "admission date", CRITICAL, (FieldType.ADMISSION_DATE,)),
    SectionRequirement("discharge_date", "discharge date", CRITICAL, (FieldType.DISCHARGE_DATE,)),
    SectionRequirement("diagnosis", "diagnosis", CRITICAL, (FieldType.DIAGNOSIS,), ("chief_complaint",)),
    SectionRequirement("procedures", "procedures", CRITICAL, (FieldType.PROCEDURE,), ("procedures",)),
    SectionRequirement("medications", "medications", CRITICAL, (FieldType.MEDICATION,), ("discharge_medications",)),
    SectionRequirement(
        "discharge_disposition", "discharge disposition", CRITICAL,
        (FieldType.DISCHARGE_DISPOSITION,), ("discharge_disposition",),
    ),
    SectionRequirement("demographics", "demographics", IMPORTANT, (FieldType.AGE, FieldType.GENDER)),
    SectionRequirement("complications", "complications", IMPORTANT, (FieldType.COMPLICATION,), ("complications",)),
    SectionRequirement("hospital_course", "hospital course", IMPORTANT, (), ("hospital_course",)),
    SectionRequirement("follow_up", "follow-up", IMPORTANT, (FieldType.FOLLOW_UP,), ("follow_up",)),
    SectionRequirement("functional_status", "functional status", IMPORTANT, (FieldType.FUNCTIONAL_SCORE,)),
    SectionRequirement("surgery_date", "surgery date", OPTIONAL, (FieldType.SURGERY_DATE,)),
    SectionRequirement(
        "presenting_symptoms", "presenting symptoms", OPTIONAL,
        (), ("history_of_present_illness", "chief_complaint"),
    ),
)

# Extra important sections for specific pathologies
PATHOLOGY_REQUIREMENTS: Dict[str, Tuple[SectionRequirement, ...]] = {
    "sah": (
        SectionRequirement("ictus_date", "ictus date", IMPORTANT, (FieldType.ICTUS_DATE,)),
    ),
}


class CompletenessScorer(DimensionScorer):
    """Section coverage and per-field completeness."""

    name = DimensionName.COMPLETENESS

    CRITICAL_WEIGHT = 0.5
    IMPORTANT_WEIGHT = 0.3
    FIELD_WEIGHT = 0.2

    def requirements(self, context: ScoringContext) -> Tuple[SectionRequirement, ...]:
        pathology = (context.options.pathology_type or "").strip().lower()
        return SECTION_REQUIREMENTS + PATHOLOGY_REQUIREMENTS.get(pathology, ())

    def is_present(self, requirement: SectionRequirement, context: ScoringContext) -> bool:
        if any(context.extracted.has(ft) for ft in requirement.fields):
            return True
        narrative = context.narrative
        if narrative is None:
            return False
        return any(narrative.has_section(name) for name in requirement.narrative_sections)

    def evaluate(self, context: ScoringContext) -> Tuple[float, List[Issue], Dict[str, Any]]:
        issues: List[Issue] = []
        present: Dict[str, List[str]] = {CRITICAL: [], IMPORTANT: [], OPTIONAL: []}
        missing: Dict[str, List[str]] = {CRITICAL: [], IMPORTANT: [], OPTIONAL: []}

        for requirement in self.requirements(context):
            if self.is_present(requirement, context):
                present[requirement.tier].append(requirement.key)
                continue
            missing[requirement.tier].append(requirement.key)
            issues.append(Issue(
                type=IssueType.FIELD_NOT_FOUND,
                severity=TIER_SEVERITY[requirement.tier],
                field=requirement.key,
                suggestion=f"Document the {requirement.label} ({requirement.tier} section missing)",
            ))

        field_score, field_issues = self.field_completeness(context)
        issues.extend(field_issues)

        critical_coverage = self._coverage(present[CRITICAL], missing[CRITICAL])
        important_coverage = self._coverage(present[IMPORTANT], missing[IMPORTANT])

        score = (
            self.CRITICAL_WEIGHT * critical_coverage
            + self.IMPORTANT_WEIGHT * important_coverage
            + self.FIELD_WEIGHT * field_score
        )
        cap = max(0.0, 1.0 - CRITICAL_CAP_STEP * len(missing[CRITICAL]))
        score = min(score, cap)

        details = {
            "critical_coverage": round(critical_coverage, 4),
            "important_coverage": round(important_coverage, 4),
            "field_completeness": round(field_score, 4),
            "missing_critical": list(missing[CRITICAL]),
            "missing_important": list(missing[IMPORTANT]),
            "missing_optional": list(missing[OPTIONAL]),
            "cap": round(cap, 4),
        }
        return score, issues, details

    @staticmethod
    def _coverage(present: List[str], missing: List[str]) -> float:
        total = len(present) + len(missing)
        return len(present) / total if total else 1.0

    def field_completeness(self, context: ScoringContext) -> Tuple[float, List[Issue]]:
        """
        Fraction of detail each extracted value carries.

        Medications need dose, unit and frequency; dated events need a
        resolved date; everything else counts as complete.
        """
        scores: List[float] = []
        issues: List[Issue] = []

        for item in context.extracted.all_fields():
            if isinstance(item, DosageRecord):
                parts = [item.dose is not None and item.unit is not None, item.frequency is not None]
                completeness = sum(parts) / len(parts)
                if completeness < 1.0:
                    lacking = []
                    if not parts[0]:
                        lacking.append("dose")
                    if not parts[1]:
                        lacking.append("frequency")
                    issues.append(Issue(
                        type=IssueType.INCOMPLETE_MEDICATION,
                        severity=Severity.MINOR,
                        field=item.name,
                        suggestion=f"Add {' and '.join(lacking)} for {item.name}",
                        details={"missing": lacking},
                    ))
                scores.append(completeness)
            elif isinstance(item, DatedEvent) and item.field_type.is_date:
                scores.append(1.0 if item.event_date is not None else 0.5)
            else:
                scores.append(1.0)

        if not scores:
            return 0.0, issues
        return sum(scores) / len(scores), issues
