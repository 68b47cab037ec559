"""
NeuroNote - Negation Detector Unit Tests
========================================

Tests for negation scopes, pseudo-triggers, terminators and ambiguous scopes.
"""

import pytest

from src.shared.enums import FieldType
from tests.conftest import dated, medication, text_field


def complication_at(text: str, phrase: str, confidence: float = 0.9):
    return dated(FieldType.COMPLICATION, phrase, start=text.index(phrase), confidence=confidence)


@pytest.fixture
def detector():
    from src.core.negation import NegationDetector
    return NegationDetector()


# =============================================================================
# Scope Tests
# =============================================================================

class TestScopeWindow:
    """Tests for scope construction around a trigger."""

    def test_forward_scope_ends_at_sentence(self):
        """A pre-trigger reaches to the end of its sentence."""
        from src.core.negation import scope_for_trigger
        from src.shared.enums import NegationDirection

        text = "No evidence of vasospasm. Fever resolved."
        scope = scope_for_trigger(text, 0, 14, NegationDirection.FORWARD, 6)

        assert scope.start == 14
        assert scope.end == text.index(".")
        assert scope.boundary == "sentence"
        assert scope.boundary_tokens == (".",)
        assert scope.covers(text.index("vasospasm"), text.index("vasospasm") + 9)
        assert not scope.covers(text.index("Fever"), text.index("Fever") + 5)

    def test_backward_scope_ends_at_trigger(self):
        """A post-trigger reaches back to the clause start."""
        from src.core.negation import scope_for_trigger
        from src.shared.enums import NegationDirection

        text = "Admitted. Vasospasm was ruled out."
        trigger_start = text.index("was ruled out")
        scope = scope_for_trigger(
            text, trigger_start, trigger_start + 13, NegationDirection.BACKWARD, 6
        )

        assert scope.start == text.index(" Vasospasm")
        assert scope.end == trigger_start
        assert scope.covers(text.index("Vasospasm"), text.index("Vasospasm") + 9)

    def test_window_limits_scope(self):
        """Scopes stop after the configured number of tokens."""
        from src.core.negation import scope_for_trigger
        from src.shared.enums import NegationDirection

        text = "No one two three four five six seven."
        scope = scope_for_trigger(text, 0, 2, NegationDirection.FORWARD, 3)

        assert scope.boundary == "window"
        assert text[scope.start:scope.end].split() == ["one", "two", "three"]
        assert scope.boundary_tokens == ("four",)

    def test_decimal_point_is_not_a_boundary(self, detector):
        """'38.5' does not end the sentence."""
        text = "No fever above 38.5 or meningitis."
        scopes = detector.scopes(text)

        assert scopes[0].end > text.index("meningitis")


# =============================================================================
# Filtering Tests
# =============================================================================

class TestNegationFiltering:
    """Tests for splitting entities into kept and filtered."""

    def test_scenario_a(self, detector, scenario_a_note):
        """Denied and 'no evidence of' mentions are dropped; the new event stays."""
        from src.core.normalizer import normalize
        from src.core.note_extractor import PatternExtractor

        normalized = normalize(scenario_a_note)
        extracted = PatternExtractor().extract(normalized, [FieldType.COMPLICATION])
        result, negated = detector.filter_result(extracted, normalized.text)

        kept = [c.canonical for c in result.get(FieldType.COMPLICATION)]
        assert kept == ["fever"]
        assert sorted(e.canonical for e in negated) == ["headache", "vasospasm"]

    def test_every_entity_lands_in_exactly_one_bucket(self, detector):
        """kept and filtered partition the input."""
        text = "No hydrocephalus. Developed meningitis. Denies seizure."
        entities = [complication_at(text, p) for p in ("hydrocephalus", "meningitis", "seizure")]

        result = detector.filter_negated(entities, text)

        assert len(result.kept) + len(result.filtered) == len(entities)
        assert {e.value for e in result.kept} | {e.value for e in result.filtered} == {
            "hydrocephalus", "meningitis", "seizure"
        }
        assert [e.value for e in result.kept] == ["meningitis"]

    def test_pseudo_trigger_does_not_negate(self, detector):
        """'no change' is not negation."""
        text = "No change in headache since admission."
        result = detector.filter_negated([complication_at(text, "headache")], text)

        assert len(result.kept) == 1
        assert result.filtered == ()

    def test_terminator_ends_scope(self, detector):
        """'but' closes the scope; later mentions are kept unflagged."""
        text = "No fever but new headache."
        entities = [complication_at(text, "fever"), complication_at(text, "headache")]

        result = detector.filter_negated(entities, text)

        assert [e.value for e in result.filtered] == ["fever"]
        assert [e.value for e in result.kept] == ["headache"]
        assert not result.kept[0].has_flag("possible_negation")

    def test_beyond_window_is_possible_negation(self, detector):
        """Same clause but past the token window: kept, flagged, penalized."""
        text = "No fever, nausea, vomiting, dizziness, weakness, confusion or headache."
        entities = [complication_at(text, "fever"), complication_at(text, "headache")]

        result = detector.filter_negated(entities, text)

        assert [e.value for e in result.filtered] == ["fever"]
        headache = result.kept[0]
        assert headache.has_flag("possible_negation")
        assert headache.confidence == pytest.approx(0.9 * 0.6)

    def test_idempotent(self, detector):
        """Filtering kept output again changes nothing."""
        text = "No fever, nausea, vomiting, dizziness, weakness, confusion or headache. Developed seizure."
        entities = [complication_at(text, p) for p in ("fever", "headache", "seizure")]

        once = detector.filter_negated(entities, text)
        twice = detector.filter_negated(once.kept, text)

        assert twice.kept == once.kept
        assert twice.filtered == ()

    def test_non_negatable_fields_kept(self, detector):
        """Only clinical concepts are subject to negation."""
        text = "Not a 54 year old."
        age = text_field(FieldType.AGE, "54", start=text.index("54"))

        result = detector.filter_negated([age], text)

        assert result.kept == (age,)

    def test_overridden_entities_kept(self, detector):
        """User-corrected values are never filtered."""
        from dataclasses import replace

        text = "Denies aspirin use."
        entity = replace(medication("aspirin", "aspirin", start=7), overridden=True)

        result = detector.filter_negated([entity], text)

        assert result.kept == (entity,)

    def test_backward_trigger(self, detector):
        """'X was ruled out' negates X."""
        text = "Admitted for SAH. Vasospasm was ruled out."
        result = detector.filter_negated([complication_at(text, "Vasospasm")], text)

        assert len(result.filtered) == 1


# =============================================================================
# Convenience API Tests
# =============================================================================

class TestNegationHelpers:
    """Tests for is_negated and statistics."""

    def test_is_negated(self, detector):
        """Concept-level check."""
        text = "Patient denies headache. Fever present."

        assert detector.is_negated("headache", text)
        assert not detector.is_negated("fever", text)

    def test_statistics(self, detector):
        """Trigger counts by direction."""
        text = "No fever. Vasospasm was ruled out. No change in exam."
        stats = detector.negation_statistics(text)

        assert stats["pre_triggers"] >= 1
        assert stats["post_triggers"] >= 1
        assert stats["pseudo_triggers"] == 1
