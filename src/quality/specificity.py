"""
Specificity Dimension
=====================

Penalizes vague language where the structured data knows better, rewards
precise values.

"multiple complications" with three complications on record becomes a
``vague_quantifier`` issue whose suggestion names the count and whose
``details["exact_count"]`` carries it.
"""

import re
from typing import Any, Dict, List, Tuple

from src.core.dates import DATE_REGEX
from src.core.lexicon import MEDICATION_SYNONYMS
from src.quality.base import DimensionScorer, ScoringContext, normalize_for_lookup, penalty_score
from src.shared.enums import DimensionName, FieldType, IssueType, Severity
from src.shared.models import DosageRecord, Issue

VAGUE_QUANTIFIERS = ("several", "multiple", "numerous", "various", "a few", "some", "many")

# noun as written -> field type it counts
COUNTABLE_NOUNS: Dict[str, FieldType] = {
    "complication": FieldType.COMPLICATION,
    "complications": FieldType.COMPLICATION,
    "medication": FieldType.MEDICATION,
    "medications": FieldType.MEDICATION,
    "meds": FieldType.MEDICATION,
    "drugs": FieldType.MEDICATION,
    "procedure": FieldType.PROCEDURE,
    "procedures": FieldType.PROCEDURE,
    "surgeries": FieldType.PROCEDURE,
    "operations": FieldType.PROCEDURE,
    "diagnosis": FieldType.DIAGNOSIS,
    "diagnoses": FieldType.DIAGNOSIS,
    "appointments": FieldType.FOLLOW_UP,
}

_QUANTIFIER = "|".join(r"\s+".join(re.escape(w) for w in q.split()) for q in VAGUE_QUANTIFIERS)
_NOUN = "|".join(re.escape(n) for n in sorted(COUNTABLE_NOUNS, key=len, reverse=True))

VAGUE_QUANTIFIER_PATTERN = re.compile(
    rf"\b(?P<quantifier>{_QUANTIFIER})\s+(?:[a-z-]+\s+)?(?P<noun>{_NOUN})\b",
    re.IGNORECASE,
)

VAGUE_TEMPORAL_PATTERN = re.compile(
    r"\b(?:recently|a while ago|some time ago|at some point|eventually|soon after"
    r"|(?:a few|several|some|many) (?:days|weeks|months) (?:ago|later|after))\b",
    re.IGNORECASE,
)

PRECISE_VALUE_PATTERNS = [
    re.compile(r"\b\d+(?:\.\d+)?\s*(?:mg|mcg|g|units?|mL|mEq)\b", re.IGNORECASE),
    DATE_REGEX,
    re.compile(r"\b(?:GCS|KPS|ECOG|mRS|Hunt[- ]Hess|Fisher)(?:\s+(?:score|grade))?\s*(?:of\s+)?[IV\d]+\b", re.IGNORECASE),
    re.compile(r"\b(?:POD|post-?operative day|hospital day)\s*#?\s*\d+\b", re.IGNORECASE),
]

# Precise values for full credit
TARGET_PRECISE_VALUES = 3


class SpecificityScorer(DimensionScorer):
    """Vague quantifiers, vague timing and imprecise dosing."""

    name = DimensionName.SPECIFICITY

    PENALTY_WEIGHT = 0.7
    PRECISION_WEIGHT = 0.3

    def evaluate(self, context: ScoringContext) -> Tuple[float, List[Issue], Dict[str, Any]]:
        if context.narrative is None:
            return 0.0, [Issue(
                type=IssueType.NARRATIVE_MISSING,
                severity=Severity.MAJOR,
                suggestion="Generate or provide a discharge narrative",
            )], {}

        text = context.narrative_text
        issues: List[Issue] = []
        issues.extend(self.find_vague_quantifiers(text, context))
        issues.extend(self.find_vague_temporal(text))
        issues.extend(self.find_imprecise_medications(text, context))

        precise = self.count_precise_values(text)
        precision = min(1.0, precise / TARGET_PRECISE_VALUES)
        penalty = max(0.0, penalty_score(issues))

        score = self.PENALTY_WEIGHT * penalty + self.PRECISION_WEIGHT * precision
        details = {
            "precise_values": precise,
            "precision": round(precision, 4),
            "vague_quantifiers": sum(1 for i in issues if i.type == IssueType.VAGUE_QUANTIFIER),
        }
        return score, issues, details

    def find_vague_quantifiers(self, text: str, context: ScoringContext) -> List[Issue]:
        issues: List[Issue] = []
        for match in VAGUE_QUANTIFIER_PATTERN.finditer(text):
            phrase = re.sub(r"\s+", " ", match.group())
            noun = match.group("noun").lower()
            field_type = COUNTABLE_NOUNS[noun]
            count = context.extracted.count(field_type)

            if count:
                replacement = re.sub(
                    re.escape(match.group("quantifier")), str(count), phrase, count=1, flags=re.IGNORECASE
                )
                issues.append(Issue(
                    type=IssueType.VAGUE_QUANTIFIER,
                    severity=Severity.MINOR,
                    field=field_type.value,
                    suggestion=f"Replace '{phrase}' with '{replacement}'",
                    details={"phrase": phrase, "exact_count": count},
                ))
            else:
                issues.append(Issue(
                    type=IssueType.VAGUE_QUANTIFIER,
                    severity=Severity.WARNING,
                    field=field_type.value,
                    suggestion=f"State an exact number instead of '{phrase}'",
                    details={"phrase": phrase},
                ))
        return issues

    def find_vague_temporal(self, text: str) -> List[Issue]:
        return [
            Issue(
                type=IssueType.VAGUE_TEMPORAL,
                severity=Severity.WARNING,
                suggestion=f"Replace '{m.group()}' with a date or hospital/post-operative day",
                details={"phrase": m.group()},
            )
            for m in VAGUE_TEMPORAL_PATTERN.finditer(text)
        ]

    def find_imprecise_medications(self, text: str, context: ScoringContext) -> List[Issue]:
        """Medications named in the narrative without the dose on record."""
        lowered = normalize_for_lookup(text)
        issues: List[Issue] = []
        seen = set()

        for item in context.extracted.get(FieldType.MEDICATION):
            if not isinstance(item, DosageRecord) or not item.dose or item.name in seen:
                continue
            seen.add(item.name)
            forms = MEDICATION_SYNONYMS.get(item.name, [item.name])
            named = any(re.search(rf"(?<![\w-]){re.escape(f)}(?![\w-])", lowered) for f in forms)
            dose = rf"(?<![\d.]){re.escape(item.dose)}\s*{re.escape(item.unit or '')}"
            if named and not re.search(dose, lowered, re.IGNORECASE):
                issues.append(Issue(
                    type=IssueType.IMPRECISE_MEDICATION,
                    severity=Severity.MINOR,
                    field=FieldType.MEDICATION.value,
                    suggestion=f"Include the dose for {item.name} ({item.dose_with_unit})",
                ))
        return issues

    @staticmethod
    def count_precise_values(text: str) -> int:
        return sum(len(pattern.findall(text)) for pattern in PRECISE_VALUE_PATTERNS)
