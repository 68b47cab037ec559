"""
NeuroNote - Quality Scorer Unit Tests
=====================================

Tests for six-dimension aggregation, confidence, strict mode and
recommendations.
"""

from datetime import date

import pytest

from src.shared.enums import DimensionName, FieldType, IssueType, Severity
from tests.conftest import FULL_NOTE, dated, make_result, text_field

METRICS = {"normalize": 4.0, "extract": 180.0, "negation": 12.0, "narrative": 2500.0, "total": 2700.0}


@pytest.fixture
def scorer():
    from src.quality.scorer import QualityScorer
    return QualityScorer()


# =============================================================================
# Aggregation Tests
# =============================================================================

class TestAggregation:
    """Tests for the weighted overall score."""

    def test_overall_is_weighted_sum(self, scorer, complete_result, good_narrative):
        """overall.score equals the sum of score x weight over the stored dimensions."""
        report = scorer.score(complete_result, good_narrative, FULL_NOTE, METRICS)

        expected = sum(d.score * d.weight for d in report.dimensions.values())
        assert report.overall.score == expected
        assert report.overall.percentage == int(round(expected * 100))

    def test_all_dimensions_with_fixed_weights(self, scorer, complete_result):
        """Six dimensions, weights summing to one."""
        report = scorer.score(complete_result)

        weights = {name: d.weight for name, d in report.dimensions.items()}
        assert weights == {
            DimensionName.COMPLETENESS: 0.30,
            DimensionName.ACCURACY: 0.25,
            DimensionName.CONSISTENCY: 0.20,
            DimensionName.NARRATIVE_QUALITY: 0.15,
            DimensionName.SPECIFICITY: 0.05,
            DimensionName.TIMELINESS: 0.05,
        }
        assert sum(weights.values()) == pytest.approx(1.0)

    def test_high_quality_summary(self, scorer, complete_result, good_narrative):
        """A complete, verified, consistent summary rates well."""
        report = scorer.score(complete_result, good_narrative, FULL_NOTE, METRICS)

        assert report.dimension(DimensionName.ACCURACY).score == 1.0
        assert report.dimension(DimensionName.CONSISTENCY).score == 1.0
        assert report.overall.score >= 0.8
        assert report.overall.rating in ("Good", "Excellent")

    def test_deterministic(self, scorer, complete_result, good_narrative):
        """Identical inputs give identical serialized reports."""
        first = scorer.score(complete_result, good_narrative, FULL_NOTE, METRICS)
        second = scorer.score(complete_result, good_narrative, FULL_NOTE, METRICS)

        assert first.to_json() == second.to_json()

    def test_summary_counts_issues(self, scorer):
        """Severity counts add up to the issue total."""
        report = scorer.score(make_result())

        assert report.summary["total"] == len(report.all_issues())
        assert sum(report.summary[s.value] for s in Severity) == report.summary["total"]

    @pytest.mark.parametrize("score,rating", [
        (0.95, "Excellent"),
        (0.9, "Excellent"),
        (0.89, "Good"),
        (0.8, "Good"),
        (0.7, "Fair"),
        (0.6, "Poor"),
        (0.59, "Very Poor"),
    ])
    def test_rating_boundaries(self, score, rating):
        """Ratings follow fixed boundaries."""
        from src.quality.scorer import rating_for

        assert rating_for(score) == rating


# =============================================================================
# Missing Inputs
# =============================================================================

class TestMissingInputs:
    """Tests that absent inputs degrade, never raise."""

    def test_nothing_provided(self, scorer):
        """Scoring with no inputs returns a report with zero confidence."""
        report = scorer.score()

        assert report.overall.confidence == 0.0
        assert report.dimension(DimensionName.ACCURACY).score == 0.5
        assert report.dimension(DimensionName.TIMELINESS).score == 0.5
        assert report.dimension(DimensionName.NARRATIVE_QUALITY).score == 0.0

    def test_scenario_b(self, scorer):
        """Dates and diagnosis only, no narrative."""
        extracted = make_result(
            admission_date=[dated(FieldType.ADMISSION_DATE, "03/10/2024", date(2024, 3, 10))],
            discharge_date=[dated(FieldType.DISCHARGE_DATE, "03/24/2024", date(2024, 3, 24))],
            diagnosis=[text_field(FieldType.DIAGNOSIS, "subarachnoid hemorrhage")],
        )
        report = scorer.score(extracted)

        completeness = report.dimension(DimensionName.COMPLETENESS)
        assert completeness.score <= 0.25
        critical_missing = [
            i.field for i in completeness.issues
            if i.type == IssueType.FIELD_NOT_FOUND and i.severity == Severity.CRITICAL
        ]
        assert sorted(critical_missing) == ["discharge_disposition", "medications", "procedures"]
        for name in (DimensionName.NARRATIVE_QUALITY, DimensionName.SPECIFICITY):
            assert report.dimension(name).issues[0].type == IssueType.NARRATIVE_MISSING

    def test_confidence_reflects_inputs(self, scorer, complete_result, good_narrative):
        """Confidence is the share of inputs available."""
        full = scorer.score(complete_result, good_narrative, FULL_NOTE, METRICS)
        partial = scorer.score(complete_result, good_narrative)

        assert full.overall.confidence == 1.0
        assert partial.overall.confidence == pytest.approx(0.55)

    def test_unusable_narrative_ignored(self, scorer, complete_result):
        """A narrative of the wrong type is treated as absent."""
        report = scorer.score(complete_result, narrative=42)

        assert report.dimension(DimensionName.NARRATIVE_QUALITY).issues[0].type == IssueType.NARRATIVE_MISSING

    def test_narrative_as_plain_text(self, scorer, complete_result):
        """Headed plain text is split into sections."""
        text = "HOSPITAL COURSE: Underwent coiling on 03/11/2024.\nFOLLOW-UP: Clinic in 2 weeks."
        report = scorer.score(complete_result, narrative=text)

        assert report.dimension(DimensionName.NARRATIVE_QUALITY).score > 0.0


# =============================================================================
# Failure Isolation and Strict Mode
# =============================================================================

class TestFailureIsolation:
    """Tests for per-dimension error handling and strict mode."""

    def test_dimension_error_scores_zero(self, complete_result):
        """A failing dimension scores 0 with a dimension_error issue; others still run."""
        from src.quality.base import DimensionScorer
        from src.quality.completeness import CompletenessScorer
        from src.quality.scorer import QualityScorer

        class Broken(DimensionScorer):
            name = DimensionName.ACCURACY

            def evaluate(self, context):
                raise RuntimeError("lookup table missing")

        scorer = QualityScorer(dimensions=[CompletenessScorer(), Broken()])
        report = scorer.score(complete_result)

        accuracy = report.dimension(DimensionName.ACCURACY)
        assert accuracy.score == 0.0
        assert accuracy.issues[0].type == IssueType.DIMENSION_ERROR
        assert accuracy.details == {"error": "RuntimeError"}
        assert report.dimension(DimensionName.COMPLETENESS).score > 0.0
        assert report.overall.score == sum(d.weighted for d in report.dimensions.values())

    def test_strict_mode_penalizes_critical_issues(self):
        """Strict mode deducts 0.1 per critical issue."""
        from src.core.config import QualityOptions
        from src.quality.scorer import QualityScorer

        extracted = make_result(
            admission_date=[dated(FieldType.ADMISSION_DATE, "03/24/2024", date(2024, 3, 24))],
            discharge_date=[dated(FieldType.DISCHARGE_DATE, "03/10/2024", date(2024, 3, 10))],
        )
        lenient = QualityScorer().score(extracted)
        strict = QualityScorer(QualityOptions(strict_mode=True)).score(extracted)

        lenient_consistency = lenient.dimension(DimensionName.CONSISTENCY)
        strict_consistency = strict.dimension(DimensionName.CONSISTENCY)
        assert lenient_consistency.score == pytest.approx(0.7)
        assert strict_consistency.score == pytest.approx(0.6)
        assert strict_consistency.details["strict_penalty"] == 1
        assert strict.overall.score < lenient.overall.score


# =============================================================================
# Recommendations
# =============================================================================

class TestRecommendations:
    """Tests for remediation recommendations."""

    def test_weakest_first(self, scorer):
        """Recommendations run from the lowest dimension score up."""
        report = scorer.score(make_result())

        scores = [report.dimension(r.dimension).score for r in report.recommendations]
        assert scores == sorted(scores)
        assert len(report.recommendations) <= 5

    def test_perfect_dimensions_excluded(self, scorer, complete_result, good_narrative):
        """Dimensions at 1.0 get no recommendation."""
        report = scorer.score(complete_result, good_narrative, FULL_NOTE, METRICS)

        recommended = {r.dimension for r in report.recommendations}
        assert DimensionName.ACCURACY not in recommended
        assert DimensionName.CONSISTENCY not in recommended

    def test_priority_and_details(self, scorer):
        """Low scores are high priority; details quote the worst issue."""
        report = scorer.score(make_result())

        first = report.recommendations[0]
        assert first.priority == "high"
        assert first.details

    def test_limit(self):
        """max_recommendations caps the list."""
        from src.core.config import QualityOptions
        from src.quality.scorer import QualityScorer

        report = QualityScorer(QualityOptions(max_recommendations=2)).score(make_result())

        assert len(report.recommendations) == 2
