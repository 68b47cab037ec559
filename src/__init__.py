"""
NeuroNote - Neurosurgical Clinical Note Extraction & Quality Scoring

A pipeline for structuring free-text neurosurgical notes:
- Extraction: normalization, pattern matching, negation, temporal resolution,
  deduplication and source-quality calibration
- Narrative: provider chain with circuit breakers, caching and a template fallback
- Quality: six-dimension scoring with prioritized recommendations
"""

__version__ = "1.0.0"
__author__ = "NeuroNote Team"
