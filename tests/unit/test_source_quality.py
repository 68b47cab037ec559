"""
NeuroNote - Source Quality Unit Tests
=====================================

Tests for note quality factors, grading and confidence calibration.
"""

from dataclasses import replace

import pytest

from src.shared.enums import FieldType, QualityGrade
from tests.conftest import make_result, medication, text_field


@pytest.fixture
def assessor():
    from src.core.source_quality import SourceQualityAssessor
    return SourceQualityAssessor()


def assessment_with_grade(grade: QualityGrade):
    from src.shared.models import SourceQualityAssessment
    return SourceQualityAssessment(grade=grade, score=0.5, factors={})


# =============================================================================
# Assessment Tests
# =============================================================================

class TestAssessment:
    """Tests for the five-factor note score."""

    def test_factors_bounded(self, assessor, full_note, terse_note):
        """Every factor and the overall score stay in [0, 1]."""
        for text in (full_note, terse_note, "", "x" * 5000):
            assessment = assessor.assess(text)
            assert 0.0 <= assessment.score <= 1.0
            assert set(assessment.factors) == {
                "structure", "completeness", "formality", "detail", "consistency"
            }
            assert all(0.0 <= v <= 1.0 for v in assessment.factors.values())

    def test_terse_note_grades_low(self, assessor, terse_note):
        """Informal shorthand without structure grades POOR or worse."""
        assessment = assessor.assess(terse_note)

        assert assessment.grade in (QualityGrade.POOR, QualityGrade.VERY_POOR)
        assert assessment.factors["formality"] < 1.0
        assert any("below acceptable threshold" in r for r in assessment.recommendations)

    def test_structured_note_grades_higher(self, assessor, full_note, terse_note):
        """A sectioned discharge summary beats shorthand."""
        full = assessor.assess(full_note)
        terse = assessor.assess(terse_note)

        assert full.score > terse.score
        assert full.factors["structure"] > terse.factors["structure"]
        assert "Note is well-structured with clear sections" in full.strengths

    def test_contradictions_lower_consistency(self, assessor):
        """Opposing statement pairs cost consistency."""
        from src.core.source_quality import assess_consistency

        assert assess_consistency("Neurologically improved. Later worsened.") == pytest.approx(0.85)
        assert assess_consistency("Neurologically improved.") == 1.0

    def test_assess_many(self, assessor, full_note, terse_note):
        """Aggregates across notes."""
        summary = assessor.assess_many([full_note, terse_note])

        assert summary["best_score"] >= summary["average_score"] >= summary["worst_score"]
        assert len(summary["grades"]) == 2
        assert assessor.assess_many([])["grades"] == []

    @pytest.mark.parametrize("score,grade", [
        (0.85, QualityGrade.EXCELLENT),
        (0.84, QualityGrade.GOOD),
        (0.70, QualityGrade.GOOD),
        (0.55, QualityGrade.FAIR),
        (0.35, QualityGrade.POOR),
        (0.34, QualityGrade.VERY_POOR),
        (0.0, QualityGrade.VERY_POOR),
    ])
    def test_grade_boundaries(self, score, grade):
        """Grades follow fixed boundaries."""
        from src.core.source_quality import grade_for

        assert grade_for(score) == grade


# =============================================================================
# Calibration Tests
# =============================================================================

class TestCalibration:
    """Tests for grade-based confidence calibration."""

    @pytest.mark.parametrize("grade", list(QualityGrade))
    def test_never_raises_never_zeroes(self, assessor, grade):
        """Calibrated confidence is in (0, original]."""
        assessment = assessment_with_grade(grade)

        for confidence in (0.5, 0.75, 0.95, 1.0):
            calibrated = assessor.calibrate(confidence, assessment)
            assert 0.0 < calibrated <= confidence

    def test_multipliers(self, assessor):
        """EXCELLENT keeps confidence; VERY_POOR scales by 0.6."""
        assert assessor.calibrate(0.9, assessment_with_grade(QualityGrade.EXCELLENT)) == 0.9
        assert assessor.calibrate(0.9, assessment_with_grade(QualityGrade.VERY_POOR)) == pytest.approx(0.54)

    def test_out_of_range_input_clamped(self, assessor):
        """Confidence above 1 is clamped before scaling."""
        assert assessor.calibrate(1.4, assessment_with_grade(QualityGrade.EXCELLENT)) == 1.0

    def test_overrides_untouched(self, assessor):
        """User-overridden values keep confidence 1.0."""
        overridden = replace(text_field(FieldType.DIAGNOSIS, "SAH", confidence=1.0), overridden=True)
        regular = medication("Nimodipine 60mg", "nimodipine", "60", "mg", confidence=0.95)
        result = make_result(diagnosis=[overridden], medication=[regular])

        calibrated = assessor.calibrate_result(result, assessment_with_grade(QualityGrade.POOR))

        assert calibrated.first(FieldType.DIAGNOSIS).confidence == 1.0
        assert calibrated.first(FieldType.MEDICATION).confidence == pytest.approx(0.95 * 0.75)

    def test_invalid_multiplier_rejected(self):
        """Multipliers above 1 would raise confidence."""
        from src.core.config import CalibrationConfig
        from src.shared.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError):
            CalibrationConfig(multipliers={grade: 1.2 for grade in QualityGrade})
