"""
NeuroNote Data Models
=====================

Immutable data models shared by the extraction pipeline and the quality scorer.

Key design principles:
1. Extracted values are tagged variants (text, dated event, dosage record,
   score) so consumers dispatch on type instead of probing shapes
2. Every model is frozen; pipeline stages derive new instances with
   ``dataclasses.replace`` instead of mutating earlier results
3. Every model serializes with ``to_dict`` for logging and the review UI
"""

import json
from dataclasses import dataclass, field, replace
# Issue.field shadows dataclasses.field inside its class body
from dataclasses import field as dataclass_field
from datetime import date
from typing import Any, ClassVar, Dict, Iterable, Iterator, List, Optional, Tuple

from src.shared.enums import (
    CueType,
    DimensionName,
    FieldType,
    IssueType,
    QualityGrade,
    ResolutionState,
    Severity,
    TemporalCategory,
)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp a score or confidence to [low, high]."""
    return min(high, max(low, value))


# =============================================================================
# SPANS AND TEMPORAL CONTEXT
# =============================================================================

@dataclass(frozen=True)
class SourceSpan:
    """Half-open character span ``[start, end)`` over the normalized note."""
    start: int
    end: int
    text: str = ""

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "SourceSpan") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: "SourceSpan") -> bool:
        return self.start <= other.start and other.end <= self.end

    def to_dict(self) -> Dict[str, Any]:
        return {"start": self.start, "end": self.end, "text": self.text}


@dataclass(frozen=True)
class TemporalContext:
    """Temporal category assigned to a date-bearing entity."""
    category: TemporalCategory
    confidence: float
    cue_type: CueType
    cue: str = ""
    state: ResolutionState = ResolutionState.CLASSIFIED

    @classmethod
    def unknown(cls) -> "TemporalContext":
        return cls(TemporalCategory.UNKNOWN, 0.0, CueType.NONE)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category.value,
            "confidence": self.confidence,
            "cue_type": self.cue_type.value,
            "cue": self.cue,
        }


# =============================================================================
# EXTRACTED FIELDS (tagged variants)
# =============================================================================

@dataclass(frozen=True)
class ExtractedField:
    """
    A single value pulled from a note by a pattern matcher.

    ``value`` is the mention as written; ``canonical`` is the synonym-group
    name the deduplicator compares on. Confidence is the matcher's base
    value until the source-quality assessor calibrates it.
    """
    field_type: FieldType
    value: str
    confidence: float
    span: SourceSpan
    canonical: str = ""
    matcher: str = ""
    flags: Tuple[str, ...] = ()
    overridden: bool = False

    kind: ClassVar[str] = "text"

    @property
    def name(self) -> str:
        return self.canonical or self.value

    def has_flag(self, flag: str) -> bool:
        return flag in self.flags

    def with_confidence(self, confidence: float) -> "ExtractedField":
        return replace(self, confidence=clamp(confidence))

    def with_flag(self, flag: str) -> "ExtractedField":
        if flag in self.flags:
            return self
        return replace(self, flags=tuple(sorted(self.flags + (flag,))))

    def sort_key(self) -> Tuple[Any, ...]:
        """Total order used wherever output must not depend on input order."""
        return (self.field_type.value, self.span.start, self.span.end, self.value, self.canonical)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "field_type": self.field_type.value,
            "value": self.value,
            "canonical": self.canonical,
            "confidence": round(self.confidence, 6),
            "span": self.span.to_dict(),
            "matcher": self.matcher,
            "flags": list(self.flags),
            "overridden": self.overridden,
        }


@dataclass(frozen=True)
class TextField(ExtractedField):
    """Plain string value: demographics, diagnosis, disposition, follow-up."""
    kind: ClassVar[str] = "text"


@dataclass(frozen=True)
class DatedEvent(ExtractedField):
    """An event or date that can be placed on the admission timeline."""
    event_date: Optional[date] = None
    temporal: Optional[TemporalContext] = None
    category: str = ""
    is_reference: bool = False
    pod: Optional[int] = None

    kind: ClassVar[str] = "dated_event"

    def with_temporal(self, temporal: TemporalContext) -> "DatedEvent":
        return replace(self, temporal=temporal)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "event_date": self.event_date.isoformat() if self.event_date else None,
            "temporal": self.temporal.to_dict() if self.temporal else None,
            "category": self.category,
            "is_reference": self.is_reference,
            "pod": self.pod,
        })
        return data


@dataclass(frozen=True)
class DosageRecord(ExtractedField):
    """A medication mention with whatever dosing detail accompanied it."""
    dose: Optional[str] = None
    unit: Optional[str] = None
    route: Optional[str] = None
    frequency: Optional[str] = None
    status: str = "active"

    kind: ClassVar[str] = "dosage"

    @property
    def dose_with_unit(self) -> Optional[str]:
        if not self.dose:
            return None
        return f"{self.dose}{self.unit or ''}"

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({
            "dose": self.dose,
            "unit": self.unit,
            "route": self.route,
            "frequency": self.frequency,
            "status": self.status,
        })
        return data


@dataclass(frozen=True)
class ScoreField(ExtractedField):
    """A functional or severity scale value (KPS, mRS, GCS, Hunt-Hess...)."""
    scale: str = ""
    score: Optional[int] = None

    kind: ClassVar[str] = "score"

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"scale": self.scale, "score": self.score})
        return data


# =============================================================================
# EXTRACTION RESULT
# =============================================================================

@dataclass(frozen=True)
class ExtractionResult:
    """
    Field type -> extracted values.

    Every requested field is present; an absent field is an empty tuple.
    """
    fields: Dict[FieldType, Tuple[ExtractedField, ...]] = field(default_factory=dict)

    def get(self, field_type: FieldType) -> Tuple[ExtractedField, ...]:
        return self.fields.get(field_type, ())

    def first(self, field_type: FieldType) -> Optional[ExtractedField]:
        values = self.get(field_type)
        return values[0] if values else None

    def has(self, field_type: FieldType) -> bool:
        return bool(self.get(field_type))

    def count(self, field_type: FieldType) -> int:
        return len(self.get(field_type))

    def field_types(self) -> List[FieldType]:
        return list(self.fields.keys())

    def all_fields(self) -> Iterator[ExtractedField]:
        for values in self.fields.values():
            yield from values

    def missing(self) -> List[FieldType]:
        return [ft for ft, values in self.fields.items() if not values]

    def with_field(self, field_type: FieldType, values: Iterable[ExtractedField]) -> "ExtractionResult":
        updated = dict(self.fields)
        updated[field_type] = tuple(values)
        return ExtractionResult(fields=updated)

    def map_fields(self, func) -> "ExtractionResult":
        """Apply ``func`` to every field, returning a new result."""
        return ExtractionResult(fields={
            ft: tuple(func(f) for f in values) for ft, values in self.fields.items()
        })

    def dates(self) -> Dict[FieldType, Optional[date]]:
        """First parsed date for each date field."""
        result: Dict[FieldType, Optional[date]] = {}
        for ft in (FieldType.ADMISSION_DATE, FieldType.DISCHARGE_DATE,
                   FieldType.SURGERY_DATE, FieldType.ICTUS_DATE):
            parsed = [f.event_date for f in self.get(ft)
                      if isinstance(f, DatedEvent) and f.event_date]
            result[ft] = min(parsed) if parsed else None
        return result

    def to_dict(self) -> Dict[str, Any]:
        return {
            ft.value: [f.to_dict() for f in values]
            for ft, values in sorted(self.fields.items(), key=lambda kv: kv[0].value)
        }


# =============================================================================
# DEDUPLICATION AND NEGATION RESULTS
# =============================================================================

@dataclass(frozen=True)
class EntityCluster:
    """Raw mentions judged equivalent, collapsed to one representative."""
    representative: ExtractedField
    members: Tuple[ExtractedField, ...]

    @property
    def field_type(self) -> FieldType:
        return self.representative.field_type

    @property
    def confidence(self) -> float:
        return self.representative.confidence

    @property
    def size(self) -> int:
        return len(self.members)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "representative": self.representative.to_dict(),
            "members": [m.to_dict() for m in self.members],
        }


@dataclass(frozen=True)
class NegationResult:
    """Entities split into those kept and those negated."""
    kept: Tuple[ExtractedField, ...]
    filtered: Tuple[ExtractedField, ...]


# =============================================================================
# SOURCE QUALITY
# =============================================================================

@dataclass(frozen=True)
class SourceQualityAssessment:
    """Quality of the input note, used to calibrate extraction confidence."""
    grade: QualityGrade
    score: float
    factors: Dict[str, float]
    issues: Tuple[str, ...] = ()
    strengths: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "grade": self.grade.value,
            "score": round(self.score, 6),
            "factors": {k: round(v, 6) for k, v in sorted(self.factors.items())},
            "issues": list(self.issues),
            "strengths": list(self.strengths),
            "recommendations": list(self.recommendations),
        }


# =============================================================================
# QUALITY REPORT
# =============================================================================

@dataclass(frozen=True)
class Issue:
    """One detected problem attached to a quality dimension."""
    type: IssueType
    severity: Severity
    suggestion: str
    field: Optional[str] = None
    details: Dict[str, Any] = dataclass_field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type.value,
            "severity": self.severity.value,
            "suggestion": self.suggestion,
        }
        if self.field is not None:
            data["field"] = self.field
        if self.details:
            data["details"] = dict(sorted(self.details.items()))
        return data


@dataclass(frozen=True)
class DimensionScore:
    """Score of one quality dimension."""
    name: DimensionName
    score: float
    weight: float
    issues: Tuple[Issue, ...] = ()
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def weighted(self) -> float:
        return self.score * self.weight

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "weight": self.weight,
            "issues": [i.to_dict() for i in self.issues],
            "details": dict(sorted(self.details.items())),
        }


@dataclass(frozen=True)
class OverallScore:
    score: float
    percentage: int
    rating: str
    confidence: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "percentage": self.percentage,
            "rating": self.rating,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class Recommendation:
    priority: str
    dimension: DimensionName
    action: str
    details: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "priority": self.priority,
            "dimension": self.dimension.value,
            "action": self.action,
            "details": self.details,
        }


@dataclass(frozen=True)
class QualityReport:
    """Final, immutable result handed to the caller."""
    overall: OverallScore
    dimensions: Dict[DimensionName, DimensionScore]
    recommendations: Tuple[Recommendation, ...] = ()
    summary: Dict[str, int] = field(default_factory=dict)

    def dimension(self, name: DimensionName) -> DimensionScore:
        return self.dimensions[name]

    def all_issues(self) -> List[Issue]:
        issues: List[Issue] = []
        for dim in self.dimensions.values():
            issues.extend(dim.issues)
        return issues

    def to_dict(self) -> Dict[str, Any]:
        return {
            "overall": self.overall.to_dict(),
            "dimensions": {
                name.value: dim.to_dict()
                for name, dim in self.dimensions.items()
            },
            "recommendations": [r.to_dict() for r in self.recommendations],
            "summary": dict(self.summary),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, default=str)
