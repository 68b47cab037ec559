"""Shared models, enums, exceptions and similarity helpers."""

from .enums import DimensionName, FieldType, IssueType, QualityGrade, Severity, TemporalCategory

from .exceptions import (
    NeuroNoteException,
    EmptyNoteError,
    ProviderError,
    ConfigurationError,
)

from .models import (
    ExtractedField,
    TextField,
    DatedEvent,
    DosageRecord,
    ScoreField,
    ExtractionResult,
    QualityReport,
)

from .similarity import (
    jaccard_similarity,
    normalized_edit_distance,
    cosine_similarity,
    EmbeddingComparator,
)
