"""
NeuroNote Pipeline Configuration

Named thresholds consumed by the extraction pipeline, the quality scorer and
the narrative provider chain. Options are passed explicitly into each stage;
nothing here is module-level mutable state.

Usage:
    from src.core.config import PipelineOptions

    # Defaults
    options = PipelineOptions()

    # Tighter dedup threshold, wider negation window
    options = PipelineOptions(
        deduplication=DeduplicationConfig(merge_threshold=0.8),
        negation=NegationConfig(window_tokens=8),
    )

    # From environment (.env honoured) or YAML
    options = PipelineOptions.from_env()
    options = PipelineOptions.from_yaml(Path("config/pipeline.yaml"))
"""

import logging
import os
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from src.shared.enums import DimensionName, FieldType, QualityGrade
from src.shared.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# =============================================================================
# Stage Configuration
# =============================================================================

@dataclass
class NegationConfig:
    """
    Negation detection settings.

    Attributes:
        window_tokens: Tokens a trigger reaches before its scope ends
        possible_negation_factor: Confidence multiplier for entities whose
            negation scope is ambiguous (kept, flagged)
    """
    window_tokens: int = 6
    possible_negation_factor: float = 0.6

    pre_triggers: List[str] = field(default_factory=lambda: [
        "no evidence of",
        "no signs of",
        "no symptoms of",
        "negative for",
        "absence of",
        "free of",
        "ruled out",
        "rules out",
        "denies",
        "denied",
        "without",
        "never",
        "no",
        "not",
    ])

    post_triggers: List[str] = field(default_factory=lambda: [
        "was ruled out",
        "is ruled out",
        "ruled out",
        "unlikely",
        "not seen",
        "not present",
        "not noted",
        "not observed",
    ])

    # Look like negation but are not
    pseudo_triggers: List[str] = field(default_factory=lambda: [
        "no significant change",
        "no change",
        "no increase",
        "no longer",
        "not only",
        "not certain",
        "not sure",
    ])

    terminators: List[str] = field(default_factory=lambda: [
        "but",
        "however",
        "although",
        "though",
        "except",
        "besides",
        "yet",
        "still",
        "nevertheless",
        "aside from",
        "which",
        "who",
        "with new",
    ])

    def __post_init__(self):
        if self.window_tokens < 1:
            raise ConfigurationError(f"window_tokens must be >= 1, got {self.window_tokens}")
        if not 0.0 < self.possible_negation_factor <= 1.0:
            raise ConfigurationError(
                f"possible_negation_factor must be in (0, 1], got {self.possible_negation_factor}"
            )


@dataclass
class TemporalConfig:
    """Temporal resolution settings."""
    window_chars: int = 60

    # Explicit cue confidences (0.85-0.95)
    admission_weight: float = 0.95
    discharge_weight: float = 0.95
    past_weight: float = 0.90
    future_weight: float = 0.85
    present_weight: float = 0.85

    # Positional inference confidences (0.5-0.7)
    positional_past: float = 0.65
    positional_future: float = 0.60
    positional_present: float = 0.50

    def __post_init__(self):
        for name in ("admission_weight", "discharge_weight", "past_weight",
                     "future_weight", "present_weight", "positional_past",
                     "positional_future", "positional_present"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be in [0, 1], got {value}")


@dataclass
class DeduplicationConfig:
    """
    Hybrid similarity settings.

    similarity = jaccard_weight * Jaccard + edit_weight * (1 - edit distance)
                 + semantic_weight * semantic
    """
    merge_threshold: float = 0.75
    jaccard_weight: float = 0.4
    edit_weight: float = 0.2
    semantic_weight: float = 0.4
    # Two dated mentions with different known dates stay separate events
    respect_event_dates: bool = True

    def __post_init__(self):
        total = self.jaccard_weight + self.edit_weight + self.semantic_weight
        if abs(total - 1.0) > 1e-9:
            raise ConfigurationError(f"similarity weights must sum to 1.0, got {total}")
        if not 0.0 < self.merge_threshold <= 1.0:
            raise ConfigurationError(f"merge_threshold must be in (0, 1], got {self.merge_threshold}")


@dataclass
class CalibrationConfig:
    """Source-quality grade -> confidence multiplier (never above 1, never 0)."""
    multipliers: Dict[QualityGrade, float] = field(default_factory=lambda: {
        QualityGrade.EXCELLENT: 1.0,
        QualityGrade.GOOD: 0.95,
        QualityGrade.FAIR: 0.85,
        QualityGrade.POOR: 0.75,
        QualityGrade.VERY_POOR: 0.6,
    })

    def __post_init__(self):
        self.multipliers = {QualityGrade(k): float(v) for k, v in self.multipliers.items()}
        for grade in QualityGrade:
            value = self.multipliers.get(grade)
            if value is None or not 0.0 < value <= 1.0:
                raise ConfigurationError(f"multiplier for {grade.value} must be in (0, 1], got {value}")


# =============================================================================
# Quality Scoring Configuration
# =============================================================================

@dataclass(frozen=True)
class QualityWeights:
    """Fixed dimension weights. Overridable for testing only."""
    completeness: float = 0.30
    accuracy: float = 0.25
    consistency: float = 0.20
    narrative_quality: float = 0.15
    specificity: float = 0.05
    timeliness: float = 0.05

    def __post_init__(self):
        total = sum(self.as_dict().values())
        if abs(total - 1.0) > 1e-9:
            raise ConfigurationError(f"dimension weights must sum to 1.0, got {total}")
        if any(w < 0 for w in self.as_dict().values()):
            raise ConfigurationError("dimension weights must be non-negative")

    def as_dict(self) -> Dict[DimensionName, float]:
        return {
            DimensionName.COMPLETENESS: self.completeness,
            DimensionName.ACCURACY: self.accuracy,
            DimensionName.CONSISTENCY: self.consistency,
            DimensionName.NARRATIVE_QUALITY: self.narrative_quality,
            DimensionName.SPECIFICITY: self.specificity,
            DimensionName.TIMELINESS: self.timeliness,
        }

    def weight_of(self, name: DimensionName) -> float:
        return self.as_dict()[name]


@dataclass
class TimelinessTargets:
    """Per-stage duration targets in milliseconds."""
    stage_targets_ms: Dict[str, float] = field(default_factory=lambda: {
        "normalize": 50.0,
        "extract": 500.0,
        "negation": 100.0,
        "temporal": 100.0,
        "deduplicate": 200.0,
        "source_quality": 100.0,
        "narrative": 10000.0,
        "total": 15000.0,
    })
    default_target_ms: float = 1000.0

    def target_for(self, stage: str) -> float:
        return self.stage_targets_ms.get(stage, self.default_target_ms)


@dataclass
class QualityOptions:
    """Options for the six-dimension quality scorer."""
    weights: QualityWeights = field(default_factory=QualityWeights)
    timeliness: TimelinessTargets = field(default_factory=TimelinessTargets)
    max_recommendations: int = 5
    # Apply an extra penalty when a dimension reports critical issues
    strict_mode: bool = False
    pathology_type: Optional[str] = None


# =============================================================================
# Narrative Configuration
# =============================================================================

@dataclass
class NarrativeConfig:
    """Narrative provider chain settings."""
    timeout_seconds: float = 30.0
    cache_ttl_seconds: int = 3600
    cache_capacity: int = 100
    model: str = "claude-sonnet-4-20250514"
    max_tokens: int = 4096
    temperature: float = 0.2
    failure_threshold: int = 3
    reset_timeout: float = 60.0

    def __post_init__(self):
        if self.timeout_seconds <= 0:
            raise ConfigurationError(f"timeout_seconds must be > 0, got {self.timeout_seconds}")
        if self.cache_capacity < 1:
            raise ConfigurationError(f"cache_capacity must be >= 1, got {self.cache_capacity}")


# =============================================================================
# Pipeline Options
# =============================================================================

DEFAULT_TARGET_FIELDS = tuple(FieldType)


@dataclass
class PipelineOptions:
    """All named thresholds consumed by one pipeline invocation."""
    target_fields: tuple = DEFAULT_TARGET_FIELDS
    negation: NegationConfig = field(default_factory=NegationConfig)
    temporal: TemporalConfig = field(default_factory=TemporalConfig)
    deduplication: DeduplicationConfig = field(default_factory=DeduplicationConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    quality: QualityOptions = field(default_factory=QualityOptions)
    narrative: NarrativeConfig = field(default_factory=NarrativeConfig)
    log_level: str = "INFO"

    def __post_init__(self):
        self.target_fields = tuple(FieldType(f) for f in self.target_fields)

    @classmethod
    def from_env(cls) -> "PipelineOptions":
        """Create options from environment variables (``.env`` honoured)."""
        load_dotenv()

        return cls(
            negation=NegationConfig(
                window_tokens=int(os.getenv("NEGATION_WINDOW_TOKENS", "6")),
            ),
            deduplication=DeduplicationConfig(
                merge_threshold=float(os.getenv("DEDUP_MERGE_THRESHOLD", "0.75")),
            ),
            narrative=NarrativeConfig(
                timeout_seconds=float(os.getenv("NARRATIVE_TIMEOUT_SECONDS", "30")),
                cache_ttl_seconds=int(os.getenv("NARRATIVE_CACHE_TTL", "3600")),
                cache_capacity=int(os.getenv("NARRATIVE_CACHE_MAX_SIZE", "100")),
                model=os.getenv("NARRATIVE_MODEL", "claude-sonnet-4-20250514"),
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    @classmethod
    def from_yaml(cls, config_path: Path) -> "PipelineOptions":
        """
        Load options from a YAML file.

        Top-level keys mirror the dataclass fields (``negation``,
        ``temporal``, ``deduplication``, ``quality``, ``narrative``...).
        Unknown keys raise ConfigurationError.
        """
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(f"{config_path}: expected a mapping at top level")

        options = cls.from_dict(data)
        logger.info(f"Loaded pipeline options from {config_path}")
        return options

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PipelineOptions":
        sections = {
            "negation": NegationConfig,
            "temporal": TemporalConfig,
            "deduplication": DeduplicationConfig,
            "calibration": CalibrationConfig,
            "narrative": NarrativeConfig,
        }
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key in sections:
                kwargs[key] = _build(sections[key], value)
            elif key == "quality":
                quality = dict(value or {})
                if "weights" in quality:
                    quality["weights"] = _build(QualityWeights, quality["weights"])
                if "timeliness" in quality:
                    quality["timeliness"] = _build(TimelinessTargets, quality["timeliness"])
                kwargs[key] = _build(QualityOptions, quality)
            elif key in ("target_fields", "log_level"):
                kwargs[key] = value
            else:
                raise ConfigurationError(f"Unknown option section: {key}")
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Convert options to a dictionary for logging/serialization."""
        data = asdict(self)
        data["target_fields"] = [f.value for f in self.target_fields]
        data["calibration"] = {
            "multipliers": {g.value: m for g, m in self.calibration.multipliers.items()}
        }
        return data


def _build(config_cls, values: Optional[Dict[str, Any]]):
    """Instantiate a config dataclass, rejecting unknown keys."""
    values = values or {}
    if is_dataclass(values):
        return values
    known = {f.name for f in fields(config_cls)}
    unknown = set(values) - known
    if unknown:
        raise ConfigurationError(f"Unknown {config_cls.__name__} keys: {sorted(unknown)}")
    return config_cls(**values)
