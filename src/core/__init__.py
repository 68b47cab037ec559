"""
NeuroNote - Core Module

Extraction stages and pipeline configuration. The orchestrator lives in
``src.core.pipeline``.
"""

from src.core.config import PipelineOptions
from src.core.deduplication import Deduplicator
from src.core.negation import NegationDetector
from src.core.normalizer import NormalizedText, Normalizer, normalize
from src.core.note_extractor import PatternExtractor
from src.core.source_quality import SourceQualityAssessor
from src.core.temporal import TemporalAnchors, TemporalResolver

__all__ = [
    # Configuration
    "PipelineOptions",
    # Stages
    "Normalizer",
    "NormalizedText",
    "normalize",
    "PatternExtractor",
    "NegationDetector",
    "TemporalResolver",
    "TemporalAnchors",
    "Deduplicator",
    "SourceQualityAssessor",
]
