"""
NeuroNote - Pattern Extractor Unit Tests
========================================

Tests for field extraction, dosage parsing, dates and lexicon matching.
"""

from datetime import date

import pytest

from src.shared.enums import FieldType


@pytest.fixture
def extractor():
    from src.core.note_extractor import PatternExtractor
    return PatternExtractor()


# =============================================================================
# Demographics and Dates
# =============================================================================

class TestDemographicsAndDates:
    """Tests for regex-matched single-valued fields."""

    def test_age_and_gender(self, extractor, full_note):
        """'54-year-old female' yields age and gender."""
        result = extractor.extract(full_note)

        assert result.first(FieldType.AGE).value == "54"
        assert result.first(FieldType.GENDER).canonical == "female"

    def test_admission_and_discharge_dates(self, extractor, full_note):
        """Labelled dates are parsed."""
        result = extractor.extract(full_note)

        assert result.first(FieldType.ADMISSION_DATE).event_date == date(2024, 3, 10)
        assert result.first(FieldType.DISCHARGE_DATE).event_date == date(2024, 3, 24)

    def test_surgery_date_from_underwent_on(self, extractor, full_note):
        """'underwent ... on <date>' is a surgery date."""
        result = extractor.extract(full_note)

        assert date(2024, 3, 11) in [f.event_date for f in result.get(FieldType.SURGERY_DATE)]

    def test_malformed_date_is_flagged(self, extractor):
        """An impossible date is kept, flagged and left unparsed."""
        result = extractor.extract("Admission date: 02/30/2024")
        admission = result.first(FieldType.ADMISSION_DATE)

        assert admission is not None
        assert admission.event_date is None
        assert admission.has_flag("malformed_date")

    def test_missing_fields_are_empty(self, extractor):
        """Every requested field is present, possibly empty."""
        result = extractor.extract("Patient seen today.")

        assert set(result.fields) == set(FieldType)
        assert result.get(FieldType.MEDICATION) == ()

    def test_target_fields_limit_output(self, extractor, full_note):
        """Only requested fields are extracted."""
        result = extractor.extract(full_note, target_fields=[FieldType.AGE])

        assert list(result.fields) == [FieldType.AGE]


# =============================================================================
# Lexicon Fields
# =============================================================================

class TestLexiconFields:
    """Tests for procedures, complications, medications and diagnoses."""

    def test_dosage_record(self, extractor, full_note):
        """Dose, unit, route and frequency are parsed after the drug name."""
        result = extractor.extract(full_note)
        nimodipine = [m for m in result.get(FieldType.MEDICATION) if m.canonical == "nimodipine"]

        assert len(nimodipine) == 1
        record = nimodipine[0]
        assert record.dose == "60"
        assert record.unit == "mg"
        assert record.route == "PO"
        assert record.frequency == "q4h"
        assert record.matcher == "medication_dosage"

    def test_synonym_maps_to_canonical(self, extractor):
        """ASA is aspirin."""
        result = extractor.extract("Discharged on ASA 81mg daily.")
        med = result.first(FieldType.MEDICATION)

        assert med.canonical == "aspirin"
        assert med.value == "ASA 81mg daily"
        assert med.dose_with_unit == "81mg"

    def test_allergy_mentions_are_not_medications(self, extractor):
        """Drugs named in an allergy list are skipped."""
        result = extractor.extract("Allergic to penicillin and vancomycin.")

        assert result.get(FieldType.MEDICATION) == ()

    def test_discontinued_status(self, extractor):
        """Status cues before the drug set its status."""
        result = extractor.extract("Dexamethasone was stopped; discontinued warfarin 5mg daily.")
        statuses = {m.canonical: m.status for m in result.get(FieldType.MEDICATION)}

        assert statuses["warfarin"] == "discontinued"

    def test_procedure_with_date(self, extractor, full_note):
        """Procedure lexicon match picks up the date in its sentence."""
        result = extractor.extract(full_note)
        coiling = [p for p in result.get(FieldType.PROCEDURE) if p.canonical == "aneurysm coiling"]

        assert coiling
        assert coiling[0].event_date == date(2024, 3, 11)
        assert coiling[0].matcher == "procedure_context"

    def test_hypothetical_complication_skipped(self, extractor):
        """'monitored for vasospasm' is not a complication."""
        result = extractor.extract("She was monitored for vasospasm with daily TCDs.")

        assert result.get(FieldType.COMPLICATION) == ()

    def test_complication_category(self, extractor):
        """Complications carry their category."""
        result = extractor.extract("Course complicated by hyponatremia.")
        complication = result.first(FieldType.COMPLICATION)

        assert complication.canonical == "hyponatremia"
        assert complication.category == "metabolic"
        assert complication.confidence == 0.9

    def test_short_form_upper_case(self, extractor):
        """Upper-case short forms map to their canonical name."""
        result = extractor.extract("Course complicated by PE.")
        complication = result.first(FieldType.COMPLICATION)

        assert complication.canonical == "pulmonary embolism"
        assert complication.value == "PE"

    @pytest.mark.parametrize("text,field_type", [
        ("Course complicated by pe.", FieldType.COMPLICATION),
        ("Dex and lev were mentioned by family.", FieldType.MEDICATION),
        ("Peg was seen on the wall; lp unclear.", FieldType.PROCEDURE),
    ])
    def test_short_form_lower_case_ignored(self, extractor, text, field_type):
        """Two- and three-letter forms do not match as stray lower-case tokens."""
        assert extractor.extract(text).get(field_type) == ()

    def test_long_form_wins_over_short(self, extractor):
        """A full name overlapping a short form is extracted once."""
        result = extractor.extract("Underwent PEG placement on 03/15/2024.")
        procedures = result.get(FieldType.PROCEDURE)

        assert [p.canonical for p in procedures] == ["PEG placement"]

    def test_labelled_diagnosis(self, extractor, full_note):
        """'Diagnosis:' label wins over bare lexicon matches on the same span."""
        result = extractor.extract(full_note)
        names = [d.canonical for d in result.get(FieldType.DIAGNOSIS)]

        assert "subarachnoid hemorrhage" in names

    def test_functional_scores(self, extractor, full_note):
        """Hunt-Hess, Fisher and GCS scores are extracted with their scale."""
        result = extractor.extract(full_note)
        scores = {s.scale: s.score for s in result.get(FieldType.FUNCTIONAL_SCORE)}

        assert scores["hunt_hess"] == 2
        assert scores["fisher"] == 3
        assert scores["gcs"] == 15

    def test_out_of_range_score_discarded(self, extractor):
        """GCS 22 is not a GCS."""
        result = extractor.extract("GCS 22 recorded in error.")

        assert result.get(FieldType.FUNCTIONAL_SCORE) == ()

    def test_disposition_and_follow_up(self, extractor, full_note):
        """Labelled disposition and follow-up text."""
        result = extractor.extract(full_note)

        assert result.first(FieldType.DISCHARGE_DISPOSITION).value == "home with services"
        assert "neurosurgery clinic" in result.first(FieldType.FOLLOW_UP).value


# =============================================================================
# Determinism and Caching
# =============================================================================

class TestExtractionDeterminism:
    """Tests for repeatability."""

    def test_repeated_extraction_identical(self, full_note):
        """Two extractors give identical results."""
        from src.core.note_extractor import PatternExtractor

        first = PatternExtractor().extract(full_note)
        second = PatternExtractor().extract(full_note)

        assert first.to_dict() == second.to_dict()

    def test_cache_returns_same_object(self, extractor, full_note):
        """Identical input is served from the per-instance cache."""
        from src.core.normalizer import normalize

        normalized = normalize(full_note)

        assert extractor.extract(normalized) is extractor.extract(normalized)

    def test_spans_point_into_text(self, extractor, full_note):
        """Every span slices back to its value."""
        from src.core.normalizer import normalize

        normalized = normalize(full_note)
        result = extractor.extract(normalized)

        for item in result.all_fields():
            assert normalized.text[item.span.start:item.span.end] == item.span.text


# =============================================================================
# Matcher Table Tests
# =============================================================================

class TestMatcherTable:
    """Tests for the YAML-backed matcher table."""

    def test_yaml_round_trip(self, tmp_path):
        """A saved table reloads with the same matchers."""
        from src.core.patterns import MatcherTable

        path = tmp_path / "patterns.yaml"
        table = MatcherTable.default()
        table.save_to_yaml(path)

        reloaded = MatcherTable.from_yaml(path)

        assert reloaded.matchers == table.matchers

    def test_custom_matcher(self, tmp_path):
        """A field's matchers can be replaced from YAML."""
        from src.core.note_extractor import PatternExtractor
        from src.core.patterns import MatcherTable

        path = tmp_path / "patterns.yaml"
        path.write_text(
            "age:\n"
            "  - name: age_aged\n"
            "    pattern: '\\baged (?P<value>\\d{1,3})\\b'\n"
            "    base_confidence: 0.9\n"
        )
        extractor = PatternExtractor(matchers=MatcherTable.from_yaml(path))

        result = extractor.extract("Patient aged 61 presented with headache.", [FieldType.AGE])

        assert [a.value for a in result.get(FieldType.AGE)] == ["61"]
        assert result.first(FieldType.AGE).matcher == "age_aged"

    def test_unknown_field_rejected(self, tmp_path):
        """YAML keys must name a field type."""
        from src.core.patterns import MatcherTable
        from src.shared.exceptions import ConfigurationError

        path = tmp_path / "patterns.yaml"
        path.write_text("insurance:\n  - name: x\n    pattern: 'x'\n    base_confidence: 0.9\n")

        with pytest.raises(ConfigurationError):
            MatcherTable.from_yaml(path)

    def test_base_confidence_bounded(self):
        """Regex confidence stays within [0.5, 0.95]."""
        from src.core.patterns import Matcher
        from src.shared.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError):
            Matcher("too_sure", r"\bx\b", 0.99)
