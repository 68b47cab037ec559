"""
NeuroNote Quality Scorer
========================

Six-dimension quality report for a generated discharge summary.

Dimensions and fixed weights:
    completeness        0.30
    accuracy            0.25
    consistency         0.20
    narrative_quality   0.15
    specificity         0.05
    timeliness          0.05

``overall.score`` is the sum of ``score x weight`` over the stored dimension
scores, so the report always satisfies that identity exactly. Missing inputs
degrade the affected dimensions with explicit issues; ``score`` never
raises.

Usage:
    scorer = QualityScorer()
    report = scorer.score(
        extracted=result,
        narrative=narrative,
        source_notes=note_text,
        perf_metrics={"extract": 120.0, "narrative": 4200.0},
    )
    print(report.overall.percentage, report.overall.rating)
"""

import logging
from collections import Counter
from typing import Dict, List, Mapping, Optional, Sequence

from src.core.config import QualityOptions
from src.quality.accuracy import AccuracyScorer
from src.quality.base import DimensionScorer, NarrativeInput, ScoringContext, to_narrative
from src.quality.completeness import CompletenessScorer
from src.quality.consistency import ConsistencyScorer
from src.quality.narrative_quality import NarrativeQualityScorer
from src.quality.specificity import SpecificityScorer
from src.quality.timeliness import TimelinessScorer
from src.shared.enums import DimensionName, IssueType, Severity
from src.shared.models import (
    DimensionScore,
    ExtractionResult,
    Issue,
    OverallScore,
    QualityReport,
    Recommendation,
)

logger = logging.getLogger(__name__)

# (lower bound, rating), checked in order
RATING_BOUNDARIES = [
    (0.9, "Excellent"),
    (0.8, "Good"),
    (0.7, "Fair"),
    (0.6, "Poor"),
]

# How much each input contributes to overall confidence
INPUT_AVAILABILITY = {
    "source_notes": 0.35,
    "narrative": 0.35,
    "extracted": 0.20,
    "perf_metrics": 0.10,
}

# Extra deduction per critical issue in strict mode
STRICT_CRITICAL_PENALTY = 0.1

REMEDIATION: Dict[DimensionName, str] = {
    DimensionName.COMPLETENESS: "Document the missing critical and important sections",
    DimensionName.ACCURACY: "Verify extracted values against the source notes and remove unsupported statements",
    DimensionName.CONSISTENCY: "Reconcile dates, medications and diagnoses between the structured data and narrative",
    DimensionName.NARRATIVE_QUALITY: "Improve flow with transitions and use professional clinical terminology",
    DimensionName.SPECIFICITY: "Replace vague quantities and timing with exact counts, doses and dates",
    DimensionName.TIMELINESS: "Optimize the slowest pipeline stage",
}


def rating_for(score: float) -> str:
    for lower, rating in RATING_BOUNDARIES:
        if score >= lower:
            return rating
    return "Very Poor"


def priority_for(score: float) -> str:
    if score < 0.5:
        return "high"
    if score < 0.75:
        return "medium"
    return "low"


class QualityScorer:
    """
    Aggregates the six dimension scorers into a ``QualityReport``.

    Dimension scorers are injectable for testing; the defaults cover all six
    dimensions.
    """

    def __init__(
        self,
        options: Optional[QualityOptions] = None,
        dimensions: Optional[Sequence[DimensionScorer]] = None,
    ):
        self.options = options or QualityOptions()
        self.dimensions: List[DimensionScorer] = list(dimensions) if dimensions is not None else [
            CompletenessScorer(),
            AccuracyScorer(),
            ConsistencyScorer(),
            NarrativeQualityScorer(),
            SpecificityScorer(),
            TimelinessScorer(),
        ]

    def score(
        self,
        extracted: Optional[ExtractionResult] = None,
        narrative: NarrativeInput = None,
        source_notes: Optional[str] = None,
        perf_metrics: Optional[Mapping[str, float]] = None,
        options: Optional[QualityOptions] = None,
    ) -> QualityReport:
        """Score every dimension and aggregate."""
        options = options or self.options
        context = ScoringContext(
            extracted=extracted if extracted is not None else ExtractionResult(),
            narrative=self._coerce_narrative(narrative),
            source_notes=source_notes,
            perf_metrics=perf_metrics,
            options=options,
        )

        dimensions: Dict[DimensionName, DimensionScore] = {}
        for scorer in self.dimensions:
            dimensions[scorer.name] = self._score_dimension(scorer, context)

        if options.strict_mode:
            dimensions = {name: self._apply_strict(dim) for name, dim in dimensions.items()}

        total = sum(dim.score * dim.weight for dim in dimensions.values())
        overall = OverallScore(
            score=total,
            percentage=int(round(total * 100)),
            rating=rating_for(total),
            confidence=self.confidence(context),
        )

        report = QualityReport(
            overall=overall,
            dimensions=dimensions,
            recommendations=self.recommendations(dimensions, options.max_recommendations),
            summary=self.summarize(dimensions),
        )
        logger.info(
            f"Quality score {overall.percentage}% ({overall.rating}), "
            f"confidence {overall.confidence:.2f}, "
            f"{report.summary.get('total', 0)} issues"
        )
        return report

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _coerce_narrative(narrative: NarrativeInput):
        try:
            return to_narrative(narrative)
        except (TypeError, AttributeError, ValueError) as e:
            logger.warning(f"Unusable narrative input ignored: {e}")
            return None

    def _score_dimension(self, scorer: DimensionScorer, context: ScoringContext) -> DimensionScore:
        try:
            return scorer.score(context)
        except Exception as e:
            logger.error(f"Dimension {scorer.name.value} failed: {e}", exc_info=True)
            return DimensionScore(
                name=scorer.name,
                score=0.0,
                weight=context.options.weights.weight_of(scorer.name),
                issues=(Issue(
                    type=IssueType.DIMENSION_ERROR,
                    severity=Severity.MAJOR,
                    suggestion=f"The {scorer.name.value} check could not run: {e}",
                ),),
                details={"error": type(e).__name__},
            )

    @staticmethod
    def _apply_strict(dimension: DimensionScore) -> DimensionScore:
        critical = sum(1 for i in dimension.issues if i.severity == Severity.CRITICAL)
        if not critical:
            return dimension
        adjusted = round(max(0.0, dimension.score - STRICT_CRITICAL_PENALTY * critical), 6)
        return DimensionScore(
            name=dimension.name,
            score=adjusted,
            weight=dimension.weight,
            issues=dimension.issues,
            details={**dimension.details, "strict_penalty": critical},
        )

    @staticmethod
    def confidence(context: ScoringContext) -> float:
        """Fraction of inputs that were available to assess."""
        available = {
            "source_notes": context.has_source,
            "narrative": context.has_narrative,
            "extracted": context.has_extracted,
            "perf_metrics": context.has_metrics,
        }
        return round(sum(w for key, w in INPUT_AVAILABILITY.items() if available[key]), 6)

    @staticmethod
    def recommendations(
        dimensions: Mapping[DimensionName, DimensionScore],
        limit: int,
    ) -> tuple:
        """Weakest dimensions first (ties: heavier weight, then name)."""
        ranked = sorted(
            (d for d in dimensions.values() if d.score < 1.0),
            key=lambda d: (d.score, -d.weight, d.name.value),
        )
        recommendations = []
        for dim in ranked[:limit]:
            worst = sorted(dim.issues, key=lambda i: (i.severity.rank, i.type.value, i.suggestion))
            recommendations.append(Recommendation(
                priority=priority_for(dim.score),
                dimension=dim.name,
                action=REMEDIATION[dim.name],
                details=worst[0].suggestion if worst else "",
            ))
        return tuple(recommendations)

    @staticmethod
    def summarize(dimensions: Mapping[DimensionName, DimensionScore]) -> Dict[str, int]:
        counts = Counter(
            issue.severity.value
            for dim in dimensions.values()
            for issue in dim.issues
        )
        summary = {severity.value: counts.get(severity.value, 0) for severity in Severity}
        summary["total"] = sum(counts.values())
        return summary
