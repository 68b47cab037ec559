"""
NeuroNote Source Quality Assessment
===================================

Scores the input note and calibrates extraction confidence from the result.

Factors (0-1 each) and their weights in the overall score:

    structure     0.25  section headers, paragraph breaks
    completeness  0.25  expected clinical elements present
    formality     0.15  informal shorthand penalized, professional phrasing rewarded
    detail        0.20  measurements, dates, clinical reasoning
    consistency   0.15  no contradictory statement pairs

Grades: EXCELLENT >= 0.85, GOOD >= 0.70, FAIR >= 0.55, POOR >= 0.35,
otherwise VERY_POOR. Calibration multiplies every confidence by the grade's
multiplier (1.0 down to 0.6): it dampens, never raises, never zeroes.

Usage:
    assessor = SourceQualityAssessor()
    assessment = assessor.assess(normalized.text)
    calibrated = assessor.calibrate_result(result, assessment)
"""

import logging
import re
from typing import Dict, List, Optional, Sequence, Tuple

from src.core.config import CalibrationConfig
from src.shared.enums import QualityGrade
from src.shared.models import ExtractedField, ExtractionResult, SourceQualityAssessment, clamp

logger = logging.getLogger(__name__)

FACTOR_WEIGHTS = {
    "structure": 0.25,
    "completeness": 0.25,
    "formality": 0.15,
    "detail": 0.20,
    "consistency": 0.15,
}

GRADE_BOUNDARIES: Tuple[Tuple[float, QualityGrade], ...] = (
    (0.85, QualityGrade.EXCELLENT),
    (0.70, QualityGrade.GOOD),
    (0.55, QualityGrade.FAIR),
    (0.35, QualityGrade.POOR),
)

STRUCTURE_SECTIONS = [
    re.compile(r"(?:HISTORY|HPI|CHIEF COMPLAINT)\s*:", re.IGNORECASE),
    re.compile(r"(?:PHYSICAL EXAM|EXAMINATION|NEURO EXAM|EXAM)\s*:", re.IGNORECASE),
    re.compile(r"(?:ASSESSMENT|IMPRESSION)\s*:", re.IGNORECASE),
    re.compile(r"(?:PLAN|RECOMMENDATIONS)\s*:", re.IGNORECASE),
    re.compile(r"(?:HOSPITAL COURSE)\s*:", re.IGNORECASE),
    re.compile(r"(?:MEDICATIONS|DISCHARGE MEDICATIONS)\s*:", re.IGNORECASE),
]

EXPECTED_ELEMENTS = [
    ("age", re.compile(r"\b(?:age|yo|y/o|year[- ]old)\b", re.IGNORECASE), 0.10),
    ("diagnosis", re.compile(r"\b(?:diagnos\w*|presents? with|presented with)\b", re.IGNORECASE), 0.15),
    ("vitals", re.compile(r"\b(?:BP|blood pressure|HR|heart rate|RR|respiratory rate|afebrile|febrile)\b", re.IGNORECASE), 0.10),
    ("exam", re.compile(r"\b(?:exam\w*|physical|neuro(?:logically)?|GCS)\b", re.IGNORECASE), 0.15),
    ("imaging", re.compile(r"\b(?:CT|CTA|MRI|imaging|scan|angiogram)\b", re.IGNORECASE), 0.10),
    ("procedure", re.compile(r"\b(?:procedure|surgery|operation|intervention|underwent)\b", re.IGNORECASE), 0.10),
    ("medications", re.compile(r"\b(?:medications?|drug|therapy|treatment|mg)\b", re.IGNORECASE), 0.10),
    ("follow_up", re.compile(r"\b(?:follow[- ]?up|f/u|appointment|clinic)\b", re.IGNORECASE), 0.10),
    ("discharge", re.compile(r"\b(?:discharge\w*|disposition|plan)\b", re.IGNORECASE), 0.10),
]

INFORMAL_MARKERS = [
    (re.compile(r"\bpt\b", re.IGNORECASE), 0.05),
    (re.compile(r"\bc/o\b", re.IGNORECASE), 0.03),
    (re.compile(r"\bw/(?!o)", re.IGNORECASE), 0.03),
    (re.compile(r"\bw/o\b", re.IGNORECASE), 0.03),
    (re.compile(r"\bs/p\b", re.IGNORECASE), 0.03),
    (re.compile(r"\b(?:gonna|wanna|gotta|kinda|pretty much)\b", re.IGNORECASE), 0.10),
]

PROFESSIONAL_MARKERS = [
    re.compile(r"\b(?:presented with|admitted for|underwent)\b", re.IGNORECASE),
    re.compile(r"\b(?:examination revealed|assessment shows|demonstrated)\b", re.IGNORECASE),
    re.compile(r"\b(?:subsequently|following|during the course)\b", re.IGNORECASE),
]

MEASUREMENT_PATTERNS = [
    re.compile(r"\d+(?:\.\d+)?\s*(?:mm|cm|ml|mL|mg|mcg|units)\b", re.IGNORECASE),
    re.compile(r"\b\d{2,3}/\d{2,3}\s*(?:mmHg)?\b"),
    re.compile(r"\d+\s*bpm\b", re.IGNORECASE),
    re.compile(r"\d+\s*%"),
]

DATE_MARKERS = [
    re.compile(r"\d{1,2}/\d{1,2}/\d{2,4}"),
    re.compile(r"\d{4}-\d{2}-\d{2}"),
    re.compile(
        r"\b(?:January|February|March|April|May|June|July|August|September|October|November|December)\s+\d{1,2}",
        re.IGNORECASE,
    ),
    re.compile(r"\bPOD\s*#?\s*\d+", re.IGNORECASE),
    re.compile(r"\bHD\s*#?\s*\d+", re.IGNORECASE),
]

REASONING_PATTERNS = [
    re.compile(r"\b(?:due to|because of|secondary to|as a result of)\b", re.IGNORECASE),
    re.compile(r"\b(?:therefore|thus|consequently)\b", re.IGNORECASE),
    re.compile(r"\b(?:given|in light of|considering)\b", re.IGNORECASE),
]

CONTRADICTION_PAIRS = [
    (re.compile(r"\bimproved\b", re.IGNORECASE), re.compile(r"\bworsened\b", re.IGNORECASE)),
    (re.compile(r"\bstable\b", re.IGNORECASE), re.compile(r"\bdeteriorated\b", re.IGNORECASE)),
    (
        re.compile(r"\bno\s+(?:deficits?|weakness)\b", re.IGNORECASE),
        re.compile(r"\b(?:deficits?|weakness)\s+(?:noted|present)\b", re.IGNORECASE),
    ),
    (re.compile(r"\bafebrile\b", re.IGNORECASE), re.compile(r"\bfebrile to\b", re.IGNORECASE)),
]

FACTOR_DESCRIPTIONS = {
    "structure": (
        "Note lacks clear section headers and organization",
        "Note is well-structured with clear sections",
    ),
    "completeness": (
        "Note is missing key clinical elements",
        "Note contains comprehensive clinical information",
    ),
    "formality": (
        "Note uses informal abbreviations and language",
        "Note uses professional medical terminology",
    ),
    "detail": (
        "Note lacks specific measurements and details",
        "Note includes specific measurements and clinical details",
    ),
    "consistency": (
        "Note contains potentially contradictory information",
        "Note is internally consistent",
    ),
}


def grade_for(score: float) -> QualityGrade:
    for boundary, grade in GRADE_BOUNDARIES:
        if score >= boundary:
            return grade
    return QualityGrade.VERY_POOR


class SourceQualityAssessor:
    """Five-factor note quality scorer and confidence calibrator."""

    def __init__(self, calibration: Optional[CalibrationConfig] = None):
        self.calibration = calibration or CalibrationConfig()

    # =========================================================================
    # Assessment
    # =========================================================================

    def assess(self, text: str) -> SourceQualityAssessment:
        text = text or ""
        factors = {
            "structure": assess_structure(text),
            "completeness": assess_completeness(text),
            "formality": assess_formality(text),
            "detail": assess_detail(text),
            "consistency": assess_consistency(text),
        }
        score = clamp(sum(factors[name] * weight for name, weight in FACTOR_WEIGHTS.items()))
        grade = grade_for(score)

        issues: List[str] = []
        strengths: List[str] = []
        for name in FACTOR_WEIGHTS:
            value = factors[name]
            issue, strength = FACTOR_DESCRIPTIONS[name]
            if value < 0.5:
                issues.append(issue)
            elif value > 0.8:
                strengths.append(strength)

        recommendations = _recommendations(score, factors)

        logger.debug(f"Source quality {grade.value} ({score:.2f}): {factors}")
        return SourceQualityAssessment(
            grade=grade,
            score=score,
            factors=factors,
            issues=tuple(issues),
            strengths=tuple(strengths),
            recommendations=tuple(recommendations),
        )

    def assess_many(self, texts: Sequence[str]) -> Dict[str, object]:
        """Aggregate assessment across several notes for one patient."""
        assessments = [self.assess(t) for t in texts]
        if not assessments:
            return {"average_score": 0.0, "best_score": 0.0, "worst_score": 0.0, "grades": []}
        scores = [a.score for a in assessments]
        return {
            "average_score": sum(scores) / len(scores),
            "best_score": max(scores),
            "worst_score": min(scores),
            "grades": [a.grade.value for a in assessments],
        }

    # =========================================================================
    # Calibration
    # =========================================================================

    def multiplier(self, assessment: SourceQualityAssessment) -> float:
        return self.calibration.multipliers[assessment.grade]

    def calibrate(self, confidence: float, assessment: SourceQualityAssessment) -> float:
        """Scale a confidence by the grade multiplier, clamped to [0, original]."""
        original = clamp(confidence)
        return clamp(original * self.multiplier(assessment), 0.0, original)

    def calibrate_field(self, item: ExtractedField, assessment: SourceQualityAssessment) -> ExtractedField:
        if item.overridden:
            return item
        return item.with_confidence(self.calibrate(item.confidence, assessment))

    def calibrate_result(self, result: ExtractionResult, assessment: SourceQualityAssessment) -> ExtractionResult:
        """Calibrate every field; user overrides keep their confidence."""
        return result.map_fields(lambda item: self.calibrate_field(item, assessment))


# =============================================================================
# Factor Scorers
# =============================================================================

def assess_structure(text: str) -> float:
    score = 0.3
    found = sum(1 for pattern in STRUCTURE_SECTIONS if pattern.search(text))
    score += min(found, 4) / 4 * 0.5

    paragraphs = [p for p in re.split(r"\n\s*\n", text) if p.strip()]
    if len(paragraphs) >= 3:
        score += 0.1
    if len(text.splitlines()) >= 5:
        score += 0.1
    return clamp(score)


def assess_completeness(text: str) -> float:
    return clamp(sum(weight for _, pattern, weight in EXPECTED_ELEMENTS if pattern.search(text)))


def assess_formality(text: str) -> float:
    score = 1.0
    for pattern, penalty in INFORMAL_MARKERS:
        score -= min(0.3, len(pattern.findall(text)) * penalty)
    score += 0.05 * sum(1 for pattern in PROFESSIONAL_MARKERS if pattern.search(text))
    return clamp(score)


def assess_detail(text: str) -> float:
    score = 0.0
    words = len(text.split())
    if words > 500:
        score += 0.3
    elif words > 200:
        score += 0.2
    elif words > 100:
        score += 0.1
    elif words > 40:
        score += 0.05

    measurements = sum(len(p.findall(text)) for p in MEASUREMENT_PATTERNS)
    score += min(0.3, measurements * 0.05)

    dates = sum(len(p.findall(text)) for p in DATE_MARKERS)
    score += min(0.2, dates * 0.05)

    reasoning = sum(len(p.findall(text)) for p in REASONING_PATTERNS)
    score += min(0.2, reasoning * 0.05)
    return clamp(score)


def assess_consistency(text: str) -> float:
    score = 1.0
    for positive, negative in CONTRADICTION_PAIRS:
        if positive.search(text) and negative.search(text):
            score -= 0.15
    return clamp(score)


def _recommendations(score: float, factors: Dict[str, float]) -> List[str]:
    recommendations = []
    if score < 0.55:
        recommendations.append(
            "Source quality is below acceptable threshold; request additional documentation or manual review"
        )
    for name in FACTOR_WEIGHTS:
        if factors[name] < 0.3:
            recommendations.append(
                f"{FACTOR_DESCRIPTIONS[name][0]}; this may affect extraction accuracy"
            )
    if factors["completeness"] < 0.5:
        recommendations.append("Note is missing key clinical elements; extracted data may be incomplete")
    return recommendations
