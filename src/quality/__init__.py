"""
NeuroNote quality scoring.

Six independently computable dimensions aggregated into a QualityReport.
"""

from src.quality.accuracy import AccuracyScorer
from src.quality.base import DimensionScorer, ScoringContext
from src.quality.completeness import CompletenessScorer
from src.quality.consistency import ConsistencyScorer
from src.quality.narrative_quality import NarrativeQualityScorer
from src.quality.scorer import QualityScorer, rating_for
from src.quality.specificity import SpecificityScorer
from src.quality.timeliness import TimelinessScorer

__all__ = [
    "AccuracyScorer",
    "CompletenessScorer",
    "ConsistencyScorer",
    "DimensionScorer",
    "NarrativeQualityScorer",
    "QualityScorer",
    "ScoringContext",
    "SpecificityScorer",
    "TimelinessScorer",
    "rating_for",
]
