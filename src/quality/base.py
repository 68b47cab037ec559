"""
Quality Scoring Base
====================

Shared context and base class for the six quality dimensions.

Each dimension scorer implements ``evaluate(context)`` and returns
``(score, issues, details)``; the base class clamps the score and wraps it
in a ``DimensionScore`` carrying the configured weight.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from src.core.config import QualityOptions
from src.narrative.models import Narrative
from src.shared.enums import DimensionName, FieldType, Severity
from src.shared.models import DimensionScore, ExtractionResult, Issue, clamp

NarrativeInput = Union[str, Narrative, Mapping[str, str], None]

SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")
WORD = re.compile(r"[A-Za-z][A-Za-z'-]*")

# Human-readable names used in issue suggestions
FIELD_LABELS: Dict[FieldType, str] = {
    FieldType.AGE: "age",
    FieldType.GENDER: "gender",
    FieldType.ADMISSION_DATE: "admission date",
    FieldType.DISCHARGE_DATE: "discharge date",
    FieldType.SURGERY_DATE: "surgery date",
    FieldType.ICTUS_DATE: "ictus date",
    FieldType.DIAGNOSIS: "diagnosis",
    FieldType.PROCEDURE: "procedures",
    FieldType.COMPLICATION: "complications",
    FieldType.MEDICATION: "medications",
    FieldType.FUNCTIONAL_SCORE: "functional status",
    FieldType.DISCHARGE_DISPOSITION: "discharge disposition",
    FieldType.FOLLOW_UP: "follow-up",
}

# Deduction per issue for dimensions scored by penalty
SEVERITY_PENALTY: Dict[Severity, float] = {
    Severity.CRITICAL: 0.30,
    Severity.MAJOR: 0.15,
    Severity.MINOR: 0.05,
    Severity.WARNING: 0.02,
}


def penalty_score(issues: List[Issue], base: float = 1.0) -> float:
    return base - sum(SEVERITY_PENALTY[i.severity] for i in issues)


def to_narrative(narrative: NarrativeInput) -> Optional[Narrative]:
    """Coerce any accepted narrative input; None when nothing usable was given."""
    if narrative is None:
        return None
    if isinstance(narrative, Narrative):
        result = narrative
    elif isinstance(narrative, str):
        result = Narrative.from_text(narrative)
    else:
        result = Narrative(sections={str(k): str(v) for k, v in narrative.items() if v}, source="user")
    return None if result.is_empty else result


def sentences(text: str) -> List[str]:
    return [s.strip() for s in SENTENCE_SPLIT.split(text) if s and s.strip()]


def words(text: str) -> List[str]:
    return WORD.findall(text)


def normalize_for_lookup(text: str) -> str:
    """Lowercase and collapse whitespace for verbatim comparisons."""
    return re.sub(r"\s+", " ", text.lower()).strip()


@dataclass(frozen=True)
class ScoringContext:
    """Everything a dimension may look at. Any input may be absent."""
    extracted: ExtractionResult = field(default_factory=ExtractionResult)
    narrative: Optional[Narrative] = None
    source_notes: Optional[str] = None
    perf_metrics: Optional[Mapping[str, float]] = None
    options: QualityOptions = field(default_factory=QualityOptions)

    @property
    def has_source(self) -> bool:
        return bool(self.source_notes and self.source_notes.strip())

    @property
    def has_narrative(self) -> bool:
        return self.narrative is not None

    @property
    def has_extracted(self) -> bool:
        return any(True for _ in self.extracted.all_fields())

    @property
    def has_metrics(self) -> bool:
        return bool(self.perf_metrics)

    @property
    def narrative_text(self) -> str:
        return self.narrative.text if self.narrative is not None else ""


class DimensionScorer:
    """Base class: subclasses set ``name`` and implement ``evaluate``."""

    name: DimensionName

    def evaluate(self, context: ScoringContext) -> Tuple[float, List[Issue], Dict[str, Any]]:
        raise NotImplementedError

    def score(self, context: ScoringContext) -> DimensionScore:
        raw, issues, details = self.evaluate(context)
        return DimensionScore(
            name=self.name,
            score=round(clamp(raw), 6),
            weight=context.options.weights.weight_of(self.name),
            issues=tuple(issues),
            details=details,
        )
