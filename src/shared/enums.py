"""Shared enumerations for the extraction pipeline and quality scoring."""

from enum import Enum


class FieldType(str, Enum):
    """Field a pattern matcher extracts from a clinical note."""
    AGE = "age"
    GENDER = "gender"
    ADMISSION_DATE = "admission_date"
    DISCHARGE_DATE = "discharge_date"
    SURGERY_DATE = "surgery_date"
    ICTUS_DATE = "ictus_date"
    DIAGNOSIS = "diagnosis"
    PROCEDURE = "procedure"
    COMPLICATION = "complication"
    MEDICATION = "medication"
    FUNCTIONAL_SCORE = "functional_score"
    DISCHARGE_DISPOSITION = "discharge_disposition"
    FOLLOW_UP = "follow_up"

    @property
    def is_date(self) -> bool:
        return self in DATE_FIELDS

    @property
    def is_array_valued(self) -> bool:
        return self in ARRAY_FIELDS


DATE_FIELDS = frozenset({
    FieldType.ADMISSION_DATE,
    FieldType.DISCHARGE_DATE,
    FieldType.SURGERY_DATE,
    FieldType.ICTUS_DATE,
})

ARRAY_FIELDS = frozenset({
    FieldType.SURGERY_DATE,
    FieldType.DIAGNOSIS,
    FieldType.PROCEDURE,
    FieldType.COMPLICATION,
    FieldType.MEDICATION,
    FieldType.FUNCTIONAL_SCORE,
    FieldType.FOLLOW_UP,
})


class TemporalCategory(str, Enum):
    """Temporal placement of a date-bearing entity."""
    ADMISSION = "ADMISSION"
    DISCHARGE = "DISCHARGE"
    PAST = "PAST"
    PRESENT = "PRESENT"
    FUTURE = "FUTURE"
    UNKNOWN = "UNKNOWN"


class CueType(str, Enum):
    """How a temporal category was decided."""
    EXPLICIT = "explicit_cue"
    POSITIONAL = "positional"
    NONE = "none"


class ResolutionState(str, Enum):
    """Per-entity temporal resolution state."""
    UNCLASSIFIED = "unclassified"
    SCANNING = "scanning"
    CLASSIFIED = "classified"


class NegationDirection(str, Enum):
    """Which side of the trigger a negation scope extends to."""
    FORWARD = "forward"    # "no evidence of X"
    BACKWARD = "backward"  # "X was ruled out"


class QualityGrade(str, Enum):
    """Source-note quality grade."""
    EXCELLENT = "EXCELLENT"
    GOOD = "GOOD"
    FAIR = "FAIR"
    POOR = "POOR"
    VERY_POOR = "VERY_POOR"


class Severity(str, Enum):
    """Issue severity, most severe first."""
    CRITICAL = "critical"
    MAJOR = "major"
    MINOR = "minor"
    WARNING = "warning"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.CRITICAL: 0,
    Severity.MAJOR: 1,
    Severity.MINOR: 2,
    Severity.WARNING: 3,
}


class DimensionName(str, Enum):
    """The six quality dimensions."""
    COMPLETENESS = "completeness"
    ACCURACY = "accuracy"
    CONSISTENCY = "consistency"
    NARRATIVE_QUALITY = "narrative_quality"
    SPECIFICITY = "specificity"
    TIMELINESS = "timeliness"


class IssueType(str, Enum):
    """Machine-readable issue types emitted by the quality dimensions."""
    # Completeness
    FIELD_NOT_FOUND = "field_not_found"
    INCOMPLETE_MEDICATION = "incomplete_medication"
    LOW_CONFIDENCE_FIELD = "low_confidence_field"
    # Accuracy
    VALUE_NOT_IN_SOURCE = "value_not_in_source"
    DOSE_NOT_IN_SOURCE = "dose_not_in_source"
    POSSIBLE_HALLUCINATION = "possible_hallucination"
    SOURCE_NOTES_UNAVAILABLE = "source_notes_unavailable"
    # Consistency
    INCONSISTENT_STRUCTURED_DATA = "inconsistent_structured_data"
    EXCESSIVE_LENGTH_OF_STAY = "excessive_length_of_stay"
    MEDICATION_NOT_IN_NARRATIVE = "medication_not_in_narrative"
    UNLISTED_MEDICATION_IN_NARRATIVE = "unlisted_medication_in_narrative"
    DIAGNOSIS_MISMATCH = "diagnosis_mismatch"
    NARRATIVE_CONTRADICTION = "narrative_contradiction"
    # Narrative quality
    NARRATIVE_MISSING = "narrative_missing"
    LACKS_TRANSITIONS = "lacks_transitions"
    LAY_TERMINOLOGY = "lay_terminology"
    UNDEFINED_ABBREVIATION = "undefined_abbreviation"
    INFORMAL_TONE = "informal_tone"
    POOR_READABILITY = "poor_readability"
    SECTION_ORDER = "section_order"
    # Specificity
    VAGUE_QUANTIFIER = "vague_quantifier"
    VAGUE_TEMPORAL = "vague_temporal"
    IMPRECISE_MEDICATION = "imprecise_medication"
    # Timeliness
    SLOW_STAGE = "slow_stage"
    BOTTLENECK = "bottleneck"
    METRICS_UNAVAILABLE = "metrics_unavailable"
    # Any dimension
    DIMENSION_ERROR = "dimension_error"
