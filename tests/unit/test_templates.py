"""
NeuroNote - Template Narrative Unit Tests
=========================================

Tests for the deterministic fallback narrative.
"""

from datetime import date

import pytest

from src.shared.enums import FieldType
from tests.conftest import dated, make_result, medication, text_field


@pytest.fixture
def builder():
    from src.narrative.templates import TemplateNarrativeBuilder
    return TemplateNarrativeBuilder()


class TestTemplateSections:
    """Tests for section content."""

    def test_complete_record(self, builder, complete_result):
        """Every supported section is filled from structured data."""
        narrative = builder.build(complete_result)

        assert narrative.source == "template"
        assert narrative.section("chief_complaint") == "54-year-old female admitted with subarachnoid hemorrhage."
        course = narrative.section("hospital_course")
        assert "admitted on March 10, 2024" in course
        assert "underwent aneurysm coiling" in course
        assert "complicated by 1 complication: fever" in course
        assert "discharged on March 24, 2024 to home with services" in course
        assert narrative.section("procedures") == "1. aneurysm coiling (March 11, 2024)"
        assert narrative.section("discharge_medications") == "- nimodipine 60mg q4h\n- levetiracetam 500mg BID"
        assert narrative.section("discharge_disposition") == "Discharged to home with services."

    def test_follow_up_warning_signs(self, builder, complete_result):
        """Follow-up adds return precautions for the diagnosis."""
        follow_up = builder.build(complete_result).section("follow_up")

        assert follow_up.splitlines() == [
            "- neurosurgery clinic in 2 weeks with CTA",
            "- Return for sudden severe headache or neck stiffness.",
        ]

    def test_empty_record(self, builder):
        """No data still yields a non-empty narrative."""
        from src.narrative.templates import EMPTY_COURSE

        narrative = builder.build(make_result())

        assert narrative.sections == {"hospital_course": EMPTY_COURSE}
        assert not narrative.is_empty

    def test_no_placeholders(self, builder):
        """Sections without data are omitted, not filled."""
        narrative = builder.build(make_result(
            diagnosis=[text_field(FieldType.DIAGNOSIS, "glioblastoma")],
        ))

        assert not narrative.has_section("procedures")
        assert not narrative.has_section("discharge_medications")
        assert narrative.section("chief_complaint") == "Patient admitted with glioblastoma."
        assert "new or worsening seizures" in narrative.section("follow_up")

    def test_uncomplicated_procedure(self, builder):
        """A procedure with no complications says so."""
        narrative = builder.build(make_result(
            procedure=[dated(FieldType.PROCEDURE, "craniotomy", date(2024, 5, 2))],
        ))

        assert narrative.section("complications") == "None documented."
        assert "without documented complications" in narrative.section("hospital_course")
        assert narrative.section("procedures") == "1. craniotomy (May 2, 2024)"

    def test_discontinued_medication_omitted(self, builder):
        """Stopped medications are not discharge medications."""
        narrative = builder.build(make_result(medication=[
            medication("Warfarin 5mg daily", "warfarin", "5", "mg", "daily", status="discontinued"),
            medication("Levetiracetam 500mg BID", "levetiracetam", "500", "mg", "BID", start=30),
        ]))

        assert narrative.section("discharge_medications") == "- levetiracetam 500mg BID"

    def test_reference_procedure_not_in_course(self, builder):
        """Prior procedures ('s/p') are listed but not narrated as this stay's events."""
        narrative = builder.build(make_result(
            procedure=[dated(FieldType.PROCEDURE, "coiling", is_reference=True)],
        ))

        assert "underwent" not in narrative.section("hospital_course")
        assert narrative.section("procedures") == "1. coiling"

    def test_complication_pod(self, builder):
        """Complications carry their post-operative day."""
        narrative = builder.build(make_result(
            complication=[dated(FieldType.COMPLICATION, "fever", pod=3)],
        ))

        assert narrative.section("complications") == "- fever on post-operative day 3"

    def test_deterministic(self, builder, complete_result):
        """Same input, same narrative."""
        assert builder.build(complete_result) == builder.build(complete_result)
