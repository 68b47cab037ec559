"""
Accuracy Dimension
==================

Cross-checks extracted values and narrative claims against the source notes.

- Every extracted value must appear verbatim (case-insensitive,
  whitespace-normalized) in the source, or one of its synonyms must.
- Dates are looked up in several renderings (03/15/2024, March 15, 2024...).
- Medications are checked for both name and dose.
- Drug names and dates stated in the narrative but absent from the source are
  flagged as possible hallucinations.

User overrides are trusted and not checked. Without source notes the
dimension scores 0.5 and says so.
"""

import re
from datetime import date
from typing import Any, Dict, List, Optional, Set, Tuple

from src.core.dates import date_renderings, find_dates, try_parse_date
from src.core.lexicon import MEDICATION_SYNONYMS, surface_forms
from src.quality.base import DimensionScorer, ScoringContext, normalize_for_lookup
from src.shared.enums import DimensionName, FieldType, IssueType, Severity
from src.shared.models import DatedEvent, DosageRecord, ExtractedField, Issue

NO_SOURCE_SCORE = 0.5

CRITICAL_FIELDS = frozenset({
    FieldType.MEDICATION,
    FieldType.ADMISSION_DATE,
    FieldType.DISCHARGE_DATE,
    FieldType.SURGERY_DATE,
    FieldType.ICTUS_DATE,
})


def _contains_phrase(haystack: str, needle: str) -> bool:
    if not needle:
        return False
    return re.search(rf"(?<![\w-]){re.escape(needle)}(?![\w-])", haystack) is not None


class AccuracyScorer(DimensionScorer):
    """Verbatim source verification and hallucination check."""

    name = DimensionName.ACCURACY

    def __init__(self):
        self._medication_forms = surface_forms(FieldType.MEDICATION)

    def evaluate(self, context: ScoringContext) -> Tuple[float, List[Issue], Dict[str, Any]]:
        if not context.has_source:
            return NO_SOURCE_SCORE, [Issue(
                type=IssueType.SOURCE_NOTES_UNAVAILABLE,
                severity=Severity.WARNING,
                suggestion="Provide the source notes so extracted values can be verified",
            )], {"checked": 0, "verified": 0}

        source = normalize_for_lookup(context.source_notes)
        source_dates = self._dates_in(context.source_notes)

        issues: List[Issue] = []
        checked = verified = trusted = 0

        for item in context.extracted.all_fields():
            if item.overridden:
                trusted += 1
                continue
            checked += 1
            problem = self.verify_field(item, source, source_dates)
            if problem is None:
                verified += 1
            else:
                issues.append(problem)

        claims_checked = claims_verified = 0
        if context.narrative is not None:
            hallucinations, claims_checked = self.hallucination_check(
                context.narrative_text, source, source_dates
            )
            claims_verified = claims_checked - len(hallucinations)
            issues.extend(hallucinations)

        total = checked + claims_checked
        score = (verified + claims_verified) / total if total else 1.0

        details = {
            "checked": checked,
            "verified": verified,
            "trusted_overrides": trusted,
            "narrative_claims_checked": claims_checked,
            "narrative_claims_verified": claims_verified,
        }
        return score, issues, details

    # =========================================================================
    # Field Verification
    # =========================================================================

    def verify_field(self, item: ExtractedField, source: str, source_dates: Set[date]) -> Optional[Issue]:
        """Return an Issue when the value cannot be found in the source, else None."""
        severity = Severity.CRITICAL if item.field_type in CRITICAL_FIELDS else Severity.MAJOR

        if isinstance(item, DatedEvent) and item.field_type.is_date and item.event_date is not None:
            if item.event_date in source_dates or self._date_in(item.event_date, source):
                return None
            return Issue(
                type=IssueType.VALUE_NOT_IN_SOURCE,
                severity=severity,
                field=item.field_type.value,
                suggestion=f"Date {item.event_date.isoformat()} does not appear in the source notes; verify it",
            )

        if not self._value_in(item, source):
            return Issue(
                type=IssueType.VALUE_NOT_IN_SOURCE,
                severity=severity,
                field=item.field_type.value,
                suggestion=f"'{item.value}' was not found in the source notes; verify it",
            )

        if isinstance(item, DosageRecord) and item.dose:
            dose = re.escape(item.dose)
            unit = re.escape(item.unit or "")
            if not re.search(rf"(?<![\d.]){dose}\s*{unit}", source, re.IGNORECASE):
                return Issue(
                    type=IssueType.DOSE_NOT_IN_SOURCE,
                    severity=Severity.CRITICAL,
                    field=item.field_type.value,
                    suggestion=f"Dose {item.dose_with_unit} for {item.name} does not match the source notes",
                )
        return None

    def _value_in(self, item: ExtractedField, source: str) -> bool:
        value = normalize_for_lookup(item.value)
        if value and value in source:
            return True
        if item.field_type == FieldType.MEDICATION:
            forms = MEDICATION_SYNONYMS.get(item.name, [item.name])
            return any(_contains_phrase(source, form) for form in forms)
        return _contains_phrase(source, normalize_for_lookup(item.name))

    @staticmethod
    def _date_in(value: date, source: str) -> bool:
        return any(normalize_for_lookup(r) in source for r in date_renderings(value))

    @staticmethod
    def _dates_in(text: str) -> Set[date]:
        parsed = (try_parse_date(m.group()) for m in find_dates(text))
        return {d for d in parsed if d is not None}

    # =========================================================================
    # Narrative Hallucination Check
    # =========================================================================

    def hallucination_check(
        self,
        narrative: str,
        source: str,
        source_dates: Set[date],
    ) -> Tuple[List[Issue], int]:
        """Drug names and dates stated in the narrative but absent from the source."""
        lowered = normalize_for_lookup(narrative)
        issues: List[Issue] = []
        checked = 0

        mentioned: Dict[str, str] = {}
        for form, canonical in self._medication_forms.items():
            if len(form) > 3 and _contains_phrase(lowered, form):
                mentioned.setdefault(canonical, form)

        for canonical in sorted(mentioned):
            checked += 1
            forms = MEDICATION_SYNONYMS.get(canonical, [canonical])
            if not any(_contains_phrase(source, form) for form in forms):
                issues.append(Issue(
                    type=IssueType.POSSIBLE_HALLUCINATION,
                    severity=Severity.CRITICAL,
                    field=FieldType.MEDICATION.value,
                    suggestion=f"Narrative mentions {mentioned[canonical]}, which is absent from the source notes",
                ))

        seen: Set[date] = set()
        for match in find_dates(narrative):
            parsed = try_parse_date(match.group())
            if parsed is None or parsed in seen:
                continue
            seen.add(parsed)
            checked += 1
            if parsed not in source_dates and not self._date_in(parsed, source):
                issues.append(Issue(
                    type=IssueType.POSSIBLE_HALLUCINATION,
                    severity=Severity.CRITICAL,
                    field="date",
                    suggestion=f"Narrative date {match.group()} does not appear in the source notes",
                ))

        return issues, checked
