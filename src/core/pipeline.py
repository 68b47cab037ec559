"""
NeuroNote - Note Processing Pipeline
====================================

Runs one clinical note through every stage in a fixed order:

1. Normalize (whitespace, abbreviations, sentences, sections)
2. Extract fields with the pattern matchers
3. Drop negated mentions
4. Resolve temporal categories and post-operative day offsets
5. Collapse duplicate mentions
6. Assess source quality and calibrate confidences
7. Apply user overrides (after calibration, so they keep confidence 1.0)

``run`` then generates a narrative through the provider chain and scores
the result on the six quality dimensions, feeding the stage timings into
the timeliness dimension.

Every collaborator is injectable; a pipeline instance holds no per-note
state, so ``run_many`` can process independent notes concurrently.

Usage:
    pipeline = NotePipeline(PipelineOptions.from_env())
    run = await pipeline.run(note_text)
    print(run.report.overall.percentage)
"""

import asyncio
import logging
import re
import time
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from src.core.config import PipelineOptions
from src.core.dates import try_parse_date
from src.core.deduplication import Deduplicator
from src.core.lexicon import canonical_name
from src.core.logging_config import run_context
from src.core.negation import NegationDetector
from src.core.normalizer import NormalizedText, Normalizer
from src.core.note_extractor import PatternExtractor
from src.core.patterns import DOSAGE_TAIL
from src.core.source_quality import SourceQualityAssessor
from src.core.temporal import TemporalResolver
from src.shared.enums import FieldType
from src.shared.exceptions import EmptyNoteError
from src.shared.models import (
    DatedEvent,
    DosageRecord,
    EntityCluster,
    ExtractedField,
    ExtractionResult,
    QualityReport,
    SourceQualityAssessment,
    SourceSpan,
    TextField,
)

logger = logging.getLogger(__name__)

OVERRIDE_MATCHER = "user_override"

OverrideValue = Union[str, ExtractedField]
Overrides = Mapping[Union[FieldType, str], Union[OverrideValue, Sequence[OverrideValue]]]


# =============================================================================
# Results
# =============================================================================

@dataclass(frozen=True)
class PipelineResult:
    """Output of the synchronous extraction stages for one note."""
    normalized: NormalizedText
    extracted: ExtractionResult
    negated: Tuple[ExtractedField, ...] = ()
    clusters: Tuple[EntityCluster, ...] = ()
    assessment: Optional[SourceQualityAssessment] = None
    timings: Dict[str, float] = field(default_factory=dict)
    run_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "extracted": self.extracted.to_dict(),
            "negated": [f.to_dict() for f in self.negated],
            "clusters": [c.to_dict() for c in self.clusters],
            "source_quality": self.assessment.to_dict() if self.assessment else None,
            "timings_ms": {k: round(v, 3) for k, v in self.timings.items()},
        }


@dataclass(frozen=True)
class PipelineRun:
    """Extraction, narrative and quality report for one note."""
    result: PipelineResult
    narrative: Any
    report: QualityReport

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.result.to_dict(),
            "narrative": self.narrative.to_dict(),
            "quality": self.report.to_dict(),
        }


# =============================================================================
# Overrides
# =============================================================================

def _override_field(field_type: FieldType, value: OverrideValue) -> ExtractedField:
    """Build (or re-mark) one user-corrected field."""
    if isinstance(value, ExtractedField):
        return replace(
            value,
            field_type=field_type,
            confidence=1.0,
            matcher=OVERRIDE_MATCHER,
            overridden=True,
        )

    text = str(value).strip()
    common = dict(
        field_type=field_type,
        value=text,
        confidence=1.0,
        span=SourceSpan(0, 0, ""),
        canonical=canonical_name(text, field_type),
        matcher=OVERRIDE_MATCHER,
        overridden=True,
    )

    if field_type.is_date:
        return DatedEvent(event_date=try_parse_date(text), **common)
    if field_type in (FieldType.PROCEDURE, FieldType.COMPLICATION):
        return DatedEvent(**common)
    if field_type == FieldType.MEDICATION:
        first_dose = re.search(r"\s\d", text)
        name_end = first_dose.start() if first_dose else len(text)
        tail = DOSAGE_TAIL.match(text, name_end)
        if tail and tail.group("dose"):
            common["canonical"] = canonical_name(text[:name_end], field_type)
            return DosageRecord(
                dose=tail.group("dose"),
                unit=tail.group("unit").lower(),
                route=tail.group("route"),
                frequency=tail.group("frequency"),
                **common,
            )
        return DosageRecord(**common)
    return TextField(**common)


def apply_overrides(result: ExtractionResult, overrides: Optional[Overrides]) -> ExtractionResult:
    """
    Replace the values of each overridden field with user-supplied ones.

    Overridden values carry confidence 1.0, ``overridden=True`` and matcher
    ``user_override``; calibration leaves them alone.
    """
    if not overrides:
        return result

    for key, values in overrides.items():
        field_type = FieldType(key)
        if isinstance(values, (str, ExtractedField)):
            values = [values]
        corrected = [_override_field(field_type, v) for v in values]
        result = result.with_field(field_type, sorted(corrected, key=lambda f: f.sort_key()))
        logger.info(f"Applied {len(corrected)} user override(s) to {field_type.value}")
    return result


# =============================================================================
# Pipeline
# =============================================================================

class NotePipeline:
    """Orchestrates extraction, narrative generation and quality scoring."""

    def __init__(
        self,
        options: Optional[PipelineOptions] = None,
        extractor: Optional[PatternExtractor] = None,
        negation: Optional[NegationDetector] = None,
        temporal: Optional[TemporalResolver] = None,
        deduplicator: Optional[Deduplicator] = None,
        assessor: Optional[SourceQualityAssessor] = None,
        scorer=None,
        narrative_chain=None,
        normalizer: Optional[Normalizer] = None,
    ):
        # Imported here: the quality and narrative packages import core modules
        from src.narrative.chain import ProviderChain
        from src.quality.scorer import QualityScorer

        self.options = options or PipelineOptions()
        self.normalizer = normalizer or Normalizer()
        self.extractor = extractor or PatternExtractor()
        self.negation = negation or NegationDetector(self.options.negation)
        self.temporal = temporal or TemporalResolver(self.options.temporal)
        self.deduplicator = deduplicator or Deduplicator(self.options.deduplication)
        self.assessor = assessor or SourceQualityAssessor(self.options.calibration)
        self.scorer = scorer or QualityScorer(self.options.quality)
        self.narrative_chain = narrative_chain or ProviderChain.from_config((), self.options.narrative)

    @staticmethod
    @contextmanager
    def _timed(timings: Dict[str, float], stage: str) -> Iterator[None]:
        start = time.perf_counter()
        try:
            yield
        finally:
            timings[stage] = (time.perf_counter() - start) * 1000
            logger.debug(f"Stage {stage} took {timings[stage]:.1f}ms")

    # =========================================================================
    # Extraction stages
    # =========================================================================

    def process(
        self,
        text: str,
        overrides: Optional[Overrides] = None,
        note_id: Optional[str] = None,
    ) -> PipelineResult:
        """
        Run the synchronous stages on one note.

        Raises:
            EmptyNoteError: text is empty or whitespace only
        """
        if not text or not text.strip():
            raise EmptyNoteError("Clinical note is empty")

        with run_context(note_id=note_id) as run_id:
            return self._process(text, overrides, run_id)

    def _process(self, text: str, overrides: Optional[Overrides], run_id: str) -> PipelineResult:
        timings: Dict[str, float] = {}
        total_start = time.perf_counter()

        with self._timed(timings, "normalize"):
            normalized = self.normalizer.normalize(text)
        if normalized.is_empty:
            raise EmptyNoteError("Clinical note has no text after normalization")

        with self._timed(timings, "extract"):
            extracted = self.extractor.extract(normalized, self.options.target_fields)

        with self._timed(timings, "negation"):
            extracted, negated = self.negation.filter_result(extracted, normalized.text)

        with self._timed(timings, "temporal"):
            extracted = self.temporal.resolve_all(extracted, normalized.text)

        with self._timed(timings, "deduplicate"):
            extracted, clusters = self.deduplicator.deduplicate_result(extracted)

        with self._timed(timings, "source_quality"):
            assessment = self.assessor.assess(normalized.text)
            extracted = self.assessor.calibrate_result(extracted, assessment)

        extracted = apply_overrides(extracted, overrides)
        timings["total"] = (time.perf_counter() - total_start) * 1000

        found = sum(len(v) for v in extracted.fields.values())
        logger.info(
            f"Extracted {found} fields ({len(negated)} negated, {len(clusters)} clusters), "
            f"source quality {assessment.grade.value}, {timings['total']:.1f}ms"
        )
        return PipelineResult(
            normalized=normalized,
            extracted=extracted,
            negated=negated,
            clusters=clusters,
            assessment=assessment,
            timings=timings,
            run_id=run_id,
        )

    # =========================================================================
    # Full run
    # =========================================================================

    async def run(
        self,
        text: str,
        overrides: Optional[Overrides] = None,
        note_id: Optional[str] = None,
    ) -> PipelineRun:
        """Extraction, narrative generation and quality scoring for one note."""
        from src.narrative.models import NarrativeRequest

        if not text or not text.strip():
            raise EmptyNoteError("Clinical note is empty")

        with run_context(note_id=note_id) as run_id:
            result = self._process(text, overrides, run_id)
            timings = dict(result.timings)

            request = NarrativeRequest(
                extracted=result.extracted,
                pathology=self.options.quality.pathology_type,
            )
            start = time.perf_counter()
            narrative = await self.narrative_chain.generate(request)
            timings["narrative"] = (time.perf_counter() - start) * 1000
            timings["total"] = timings["total"] + timings["narrative"]
            logger.debug(f"Narrative from {narrative.source} took {timings['narrative']:.1f}ms")

            report = self.scorer.score(
                extracted=result.extracted,
                narrative=narrative,
                source_notes=text,
                perf_metrics=timings,
            )
            logger.info(
                f"Quality {report.overall.percentage}% ({report.overall.rating}), "
                f"{len(report.all_issues())} issues"
            )
            return PipelineRun(result=replace(result, timings=timings), narrative=narrative, report=report)

    async def run_many(
        self,
        texts: Iterable[str],
        concurrency: int = 4,
    ) -> List[PipelineRun]:
        """
        Run independent notes concurrently, at most ``concurrency`` at a time.

        Results are in input order. The first failure propagates and the
        remaining runs are cancelled.
        """
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")

        semaphore = asyncio.Semaphore(concurrency)

        async def _bounded(index: int, note: str) -> PipelineRun:
            async with semaphore:
                return await self.run(note, note_id=str(index))

        tasks = [asyncio.ensure_future(_bounded(i, t)) for i, t in enumerate(texts)]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            raise
