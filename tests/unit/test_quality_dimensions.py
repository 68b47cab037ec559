"""
NeuroNote - Quality Dimension Unit Tests
========================================

Tests for the six quality dimensions scored independently.
"""

from datetime import date

import pytest

from src.shared.enums import FieldType, IssueType, Severity
from tests.conftest import FULL_NOTE, dated, make_result, medication, text_field


def context(extracted=None, narrative=None, source=None, metrics=None, options=None):
    from src.core.config import QualityOptions
    from src.quality.base import ScoringContext, to_narrative

    return ScoringContext(
        extracted=extracted if extracted is not None else make_result(),
        narrative=to_narrative(narrative),
        source_notes=source,
        perf_metrics=metrics,
        options=options or QualityOptions(),
    )


def issue_types(dimension_score):
    return [i.type for i in dimension_score.issues]


# =============================================================================
# Completeness
# =============================================================================

class TestCompleteness:
    """Tests for section coverage."""

    def test_missing_critical_sections_cap_score(self):
        """Three missing critical sections cap the score at 0.25."""
        from src.quality.completeness import CompletenessScorer

        extracted = make_result(
            admission_date=[dated(FieldType.ADMISSION_DATE, "03/10/2024", date(2024, 3, 10))],
            discharge_date=[dated(FieldType.DISCHARGE_DATE, "03/24/2024", date(2024, 3, 24))],
            diagnosis=[text_field(FieldType.DIAGNOSIS, "subarachnoid hemorrhage")],
        )
        result = CompletenessScorer().score(context(extracted))

        assert result.score <= 0.25
        assert result.details["cap"] == 0.25
        critical = [i for i in result.issues if i.severity == Severity.CRITICAL]
        assert {i.field for i in critical} == {"procedures", "medications", "discharge_disposition"}
        assert all(i.type == IssueType.FIELD_NOT_FOUND for i in critical)

    def test_complete_record(self, complete_result, good_narrative):
        """All critical and important sections present."""
        from src.quality.completeness import CompletenessScorer

        result = CompletenessScorer().score(context(complete_result, good_narrative))

        assert result.details["missing_critical"] == []
        assert result.details["missing_important"] == ["functional_status"]
        assert result.score > 0.9

    def test_narrative_section_counts_as_present(self):
        """A narrative procedures section satisfies the requirement."""
        from src.quality.completeness import CompletenessScorer

        result = CompletenessScorer().score(
            context(make_result(), {"procedures": "Right pterional craniotomy on 03/11/2024."})
        )

        assert "procedures" not in result.details["missing_critical"]

    def test_placeholder_section_is_missing(self):
        """'N/A' is not content."""
        from src.quality.completeness import CompletenessScorer

        result = CompletenessScorer().score(context(make_result(), {"procedures": "N/A", "follow_up": "PRN"}))

        assert "procedures" in result.details["missing_critical"]

    def test_incomplete_medication(self):
        """A medication without dose or frequency is flagged."""
        from src.quality.completeness import CompletenessScorer

        extracted = make_result(medication=[medication("Keppra", "levetiracetam")])
        result = CompletenessScorer().score(context(extracted))

        incomplete = [i for i in result.issues if i.type == IssueType.INCOMPLETE_MEDICATION]
        assert len(incomplete) == 1
        assert incomplete[0].details["missing"] == ["dose", "frequency"]

    def test_pathology_adds_requirements(self):
        """SAH cases also expect an ictus date."""
        from src.core.config import QualityOptions
        from src.quality.completeness import CompletenessScorer

        result = CompletenessScorer().score(
            context(make_result(), options=QualityOptions(pathology_type="SAH"))
        )

        assert "ictus_date" in result.details["missing_important"]


# =============================================================================
# Accuracy
# =============================================================================

class TestAccuracy:
    """Tests for source verification."""

    def test_without_source(self, complete_result):
        """No source notes scores 0.5 and says so."""
        from src.quality.accuracy import AccuracyScorer

        result = AccuracyScorer().score(context(complete_result))

        assert result.score == 0.5
        assert issue_types(result) == [IssueType.SOURCE_NOTES_UNAVAILABLE]

    def test_verified_against_source(self, complete_result, good_narrative):
        """Every value and narrative claim is found in the source."""
        from src.quality.accuracy import AccuracyScorer

        result = AccuracyScorer().score(context(complete_result, good_narrative, FULL_NOTE))

        assert result.score == 1.0
        assert result.issues == ()
        assert result.details["bottleneck"] == "extract"
        assert result.details["checked"] == result.details["verified"]

    def test_wrong_dose(self):
        """A dose absent from the source is a critical issue."""
        from src.quality.accuracy import AccuracyScorer

        extracted = make_result(medication=[medication("Nimodipine 30mg", "nimodipine", "30", "mg")])
        result = AccuracyScorer().score(context(extracted, source=FULL_NOTE))

        assert issue_types(result) == [IssueType.DOSE_NOT_IN_SOURCE]
        assert result.issues[0].severity == Severity.CRITICAL
        assert result.score == 0.0

    def test_date_not_in_source(self):
        """Dates are verified across renderings."""
        from src.quality.accuracy import AccuracyScorer

        extracted = make_result(
            admission_date=[dated(FieldType.ADMISSION_DATE, "March 10, 2024", date(2024, 3, 10))],
            discharge_date=[dated(FieldType.DISCHARGE_DATE, "03/25/2024", date(2024, 3, 25))],
        )
        result = AccuracyScorer().score(context(extracted, source=FULL_NOTE))

        assert [i.field for i in result.issues] == ["discharge_date"]
        assert result.score == 0.5

    def test_hallucinated_drug_and_date(self):
        """Narrative drugs and dates absent from the source are flagged."""
        from src.quality.accuracy import AccuracyScorer

        narrative = {"hospital_course": "Warfarin was started on 03/30/2024."}
        result = AccuracyScorer().score(context(make_result(), narrative, FULL_NOTE))

        hallucinations = [i for i in result.issues if i.type == IssueType.POSSIBLE_HALLUCINATION]
        assert {i.field for i in hallucinations} == {"medication", "date"}
        assert all(i.severity == Severity.CRITICAL for i in hallucinations)

    def test_overrides_trusted(self):
        """User overrides are not checked against the source."""
        from dataclasses import replace

        from src.quality.accuracy import AccuracyScorer

        override = replace(text_field(FieldType.DIAGNOSIS, "glioblastoma"), overridden=True)
        result = AccuracyScorer().score(context(make_result(diagnosis=[override]), source=FULL_NOTE))

        assert result.issues == ()
        assert result.details["trusted_overrides"] == 1


# =============================================================================
# Consistency
# =============================================================================

class TestConsistency:
    """Tests for internal agreement."""

    def test_consistent_record(self, complete_result, good_narrative):
        """Ordered dates and matching lists produce no issues."""
        from src.quality.consistency import ConsistencyScorer

        result = ConsistencyScorer().score(context(complete_result, good_narrative))

        assert result.issues == ()
        assert result.score == 1.0

    def test_discharge_before_admission(self):
        """Reversed stay dates are a critical inconsistency."""
        from src.quality.consistency import ConsistencyScorer

        extracted = make_result(
            admission_date=[dated(FieldType.ADMISSION_DATE, "03/24/2024", date(2024, 3, 24))],
            discharge_date=[dated(FieldType.DISCHARGE_DATE, "03/10/2024", date(2024, 3, 10))],
        )
        result = ConsistencyScorer().score(context(extracted))

        assert issue_types(result) == [IssueType.INCONSISTENT_STRUCTURED_DATA]
        assert result.issues[0].severity == Severity.CRITICAL
        assert result.score == pytest.approx(0.7)

    def test_procedure_after_discharge(self):
        """A new procedure dated after discharge is flagged."""
        from src.quality.consistency import ConsistencyScorer

        extracted = make_result(
            admission_date=[dated(FieldType.ADMISSION_DATE, "03/10/2024", date(2024, 3, 10))],
            discharge_date=[dated(FieldType.DISCHARGE_DATE, "03/24/2024", date(2024, 3, 24))],
            procedure=[dated(FieldType.PROCEDURE, "cranioplasty", date(2024, 4, 20))],
        )
        result = ConsistencyScorer().score(context(extracted))

        assert "follows discharge" in result.issues[0].suggestion

    def test_excessive_length_of_stay(self):
        """More than a year between admission and discharge is implausible."""
        from src.quality.consistency import ConsistencyScorer

        extracted = make_result(
            admission_date=[dated(FieldType.ADMISSION_DATE, "03/10/2022", date(2022, 3, 10))],
            discharge_date=[dated(FieldType.DISCHARGE_DATE, "03/24/2024", date(2024, 3, 24))],
        )
        result = ConsistencyScorer().score(context(extracted))

        assert IssueType.EXCESSIVE_LENGTH_OF_STAY in issue_types(result)

    def test_medication_missing_from_narrative(self, complete_result):
        """Listed medications must appear in the narrative."""
        from src.quality.consistency import ConsistencyScorer

        narrative = {"discharge_medications": "Nimodipine 60mg every 4 hours"}
        result = ConsistencyScorer().score(context(complete_result, narrative))

        missing = [i for i in result.issues if i.type == IssueType.MEDICATION_NOT_IN_NARRATIVE]
        assert len(missing) == 1
        assert "levetiracetam" in missing[0].suggestion

    def test_no_complications_contradiction(self, complete_result):
        """'No complications' contradicts documented complications."""
        from src.quality.consistency import ConsistencyScorer

        narrative = {
            "hospital_course": "The postoperative course was uneventful with no complications.",
            "discharge_medications": "Nimodipine 60mg\nLevetiracetam 500mg",
        }
        result = ConsistencyScorer().score(context(complete_result, narrative))

        assert IssueType.NARRATIVE_CONTRADICTION in issue_types(result)

    def test_diagnosis_mismatch(self, complete_result):
        """The narrative describes a different diagnosis."""
        from src.quality.consistency import ConsistencyScorer

        narrative = {
            "chief_complaint": "Admitted with a glioblastoma.",
            "discharge_medications": "Nimodipine 60mg\nLevetiracetam 500mg",
        }
        result = ConsistencyScorer().score(context(complete_result, narrative))

        assert IssueType.DIAGNOSIS_MISMATCH in issue_types(result)


# =============================================================================
# Narrative Quality
# =============================================================================

class TestNarrativeQuality:
    """Tests for lexical narrative heuristics."""

    def test_missing_narrative(self):
        """No narrative scores 0 with a major issue."""
        from src.quality.narrative_quality import NarrativeQualityScorer

        result = NarrativeQualityScorer().score(context())

        assert result.score == 0.0
        assert result.issues[0].type == IssueType.NARRATIVE_MISSING
        assert result.issues[0].severity == Severity.MAJOR

    def test_good_narrative(self, good_narrative):
        """A well-formed narrative scores high."""
        from src.quality.narrative_quality import NarrativeQualityScorer

        result = NarrativeQualityScorer().score(context(narrative=good_narrative))

        assert result.score > 0.8
        assert result.details["organization"] == 1.0

    def test_lay_terms(self):
        """Lay phrasing gets a clinical replacement."""
        from src.quality.narrative_quality import NarrativeQualityScorer

        narrative = {"hospital_course": "She presented with a brain bleed and was monitored closely in the unit."}
        result = NarrativeQualityScorer().score(context(narrative=narrative))

        lay = [i for i in result.issues if i.type == IssueType.LAY_TERMINOLOGY]
        assert lay[0].details == {"phrase": "brain bleed", "replacement": "intracranial hemorrhage"}

    def test_undefined_abbreviation(self):
        """Uncommon abbreviations must be defined."""
        from src.quality.narrative_quality import NarrativeQualityScorer

        undefined = NarrativeQualityScorer().score(
            context(narrative={"hospital_course": "She was started on LMWH for prophylaxis after surgery."})
        )
        defined = NarrativeQualityScorer().score(
            context(narrative={
                "hospital_course": "She was started on low molecular weight heparin (LMWH) after surgery."
            })
        )

        assert IssueType.UNDEFINED_ABBREVIATION in issue_types(undefined)
        assert IssueType.UNDEFINED_ABBREVIATION not in issue_types(defined)

    def test_informal_tone(self):
        """Shorthand and exclamation marks are informal."""
        from src.quality.narrative_quality import NarrativeQualityScorer

        result = NarrativeQualityScorer().score(context(narrative={"hospital_course": "pt doing ok!"}))

        tone = [i for i in result.issues if i.type == IssueType.INFORMAL_TONE]
        assert tone[0].details["markers"] == ["pt", "ok", "!"]

    def test_section_order(self):
        """Out-of-order sections cost organization."""
        from src.quality.narrative_quality import NarrativeQualityScorer

        narrative = {
            "follow_up": "Neurosurgery clinic in 2 weeks.",
            "chief_complaint": "Headache.",
        }
        result = NarrativeQualityScorer().score(context(narrative=narrative))

        assert IssueType.SECTION_ORDER in issue_types(result)


# =============================================================================
# Specificity
# =============================================================================

class TestSpecificity:
    """Tests for vague language detection."""

    def test_vague_quantifier_with_known_count(self):
        """'multiple complications' with three on record names the count."""
        from src.quality.specificity import SpecificityScorer

        extracted = make_result(complication=[
            dated(FieldType.COMPLICATION, "fever", start=0),
            dated(FieldType.COMPLICATION, "hyponatremia", start=10),
            dated(FieldType.COMPLICATION, "vasospasm", start=30),
        ])
        narrative = {"hospital_course": "The hospital course was notable for multiple complications."}
        result = SpecificityScorer().score(context(extracted, narrative))

        vague = [i for i in result.issues if i.type == IssueType.VAGUE_QUANTIFIER]
        assert len(vague) == 1
        assert vague[0].severity == Severity.MINOR
        assert vague[0].details == {"phrase": "multiple complications", "exact_count": 3}
        assert vague[0].suggestion == "Replace 'multiple complications' with '3 complications'"

    def test_vague_quantifier_without_count(self):
        """Nothing on record to count: a warning without a number."""
        from src.quality.specificity import SpecificityScorer

        result = SpecificityScorer().score(
            context(narrative={"discharge_medications": "Continue several medications."})
        )

        vague = [i for i in result.issues if i.type == IssueType.VAGUE_QUANTIFIER]
        assert vague[0].severity == Severity.WARNING
        assert "exact_count" not in vague[0].details

    def test_vague_temporal(self):
        """'recently' should be a date."""
        from src.quality.specificity import SpecificityScorer

        result = SpecificityScorer().score(
            context(narrative={"hospital_course": "She recently underwent coiling."})
        )

        assert IssueType.VAGUE_TEMPORAL in issue_types(result)

    def test_imprecise_medication(self, complete_result):
        """A dosed medication named without its dose."""
        from src.quality.specificity import SpecificityScorer

        narrative = {"discharge_medications": "Continue nimodipine. Levetiracetam 500mg twice daily."}
        result = SpecificityScorer().score(context(complete_result, narrative))

        imprecise = [i for i in result.issues if i.type == IssueType.IMPRECISE_MEDICATION]
        assert len(imprecise) == 1
        assert "60mg" in imprecise[0].suggestion

    def test_missing_narrative(self):
        """No narrative scores 0 with a major issue."""
        from src.quality.specificity import SpecificityScorer

        result = SpecificityScorer().score(context())

        assert result.score == 0.0
        assert issue_types(result) == [IssueType.NARRATIVE_MISSING]


# =============================================================================
# Timeliness
# =============================================================================

class TestTimeliness:
    """Tests for stage duration scoring."""

    def test_no_metrics(self):
        """Missing metrics score 0.5."""
        from src.quality.timeliness import TimelinessScorer

        result = TimelinessScorer().score(context())

        assert result.score == 0.5
        assert issue_types(result) == [IssueType.METRICS_UNAVAILABLE]

    def test_all_on_target(self):
        """Every stage under target scores 1.0 with no bottleneck issue."""
        from src.quality.timeliness import TimelinessScorer

        result = TimelinessScorer().score(context(metrics={"normalize": 5.0, "extract": 120.0}))

        assert result.score == 1.0
        assert result.issues == ()
        # Slowest stage is still named in details
        assert result.details["bottleneck"] == "extract"

    def test_slow_stage_and_bottleneck(self):
        """A stage at 2.4x target earns 0.3 and is the bottleneck."""
        from src.quality.timeliness import TimelinessScorer

        result = TimelinessScorer().score(context(metrics={"normalize": 10.0, "extract": 1200.0}))

        assert result.score == pytest.approx(0.65)
        slow = [i for i in result.issues if i.type == IssueType.SLOW_STAGE]
        assert slow[0].field == "extract"
        assert slow[0].severity == Severity.MAJOR
        assert result.details["bottleneck"] == "extract"
        assert IssueType.BOTTLENECK in issue_types(result)

    def test_total_not_scored_as_stage(self):
        """The aggregate total is reported, not scored."""
        from src.quality.timeliness import TimelinessScorer

        result = TimelinessScorer().score(context(metrics={"normalize": 10.0, "total": 99999.0}))

        assert result.score == 1.0
        assert "total" not in result.details["stages"]

    @pytest.mark.parametrize("ratio,points", [
        (0.5, 1.0), (1.0, 1.0), (1.2, 0.8), (1.5, 0.8), (1.8, 0.6), (2.5, 0.3), (3.5, 0.0),
    ])
    def test_points_for(self, ratio, points):
        """Ratio bands."""
        from src.quality.timeliness import points_for

        assert points_for(ratio) == points
