"""
NeuroNote Negation Detector
===========================

NegEx-style negation filtering for extracted clinical entities.

Triggers are matched in the normalized text; each one projects a
``ScopeWindow`` forward ("no evidence of X") or backward ("X was ruled
out"). A scope ends at the first of:

- a sentence boundary (. ; : ! ? newline)
- a scope terminator ("but", "however", "although", "except", ...)
- ``window_tokens`` tokens past the trigger (default 6)

An entity is filtered only when a scope provably covers it. An entity later
in the same sentence but past the token window, with no terminator in
between, is ambiguous: it is kept, flagged ``possible_negation`` and its
confidence multiplied by ``possible_negation_factor``. Pseudo-triggers
("no change", "not only", "no longer") never negate.

Usage:
    detector = NegationDetector()
    result = detector.filter_negated(complications, normalized.text)
    result.kept      # entities that survive
    result.filtered  # entities covered by a negation scope
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from src.core.config import NegationConfig
from src.shared.enums import FieldType, NegationDirection
from src.shared.exceptions import AmbiguousNegationScope
from src.shared.models import ExtractedField, ExtractionResult, NegationResult

logger = logging.getLogger(__name__)

POSSIBLE_NEGATION_FLAG = "possible_negation"

NEGATABLE_FIELDS = frozenset({
    FieldType.COMPLICATION,
    FieldType.PROCEDURE,
    FieldType.DIAGNOSIS,
    FieldType.MEDICATION,
})

_BOUNDARY = re.compile(r"[;:!?\n]|\.(?!\d)")
_TOKEN = re.compile(r"[A-Za-z0-9][\w'/-]*")


# =============================================================================
# Scope Window
# =============================================================================

@dataclass(frozen=True)
class ScopeWindow:
    """
    Span of text a negation trigger reaches.

    Attributes:
        start, end: Half-open character span the trigger provably covers
        trigger: Trigger phrase as written
        direction: FORWARD (pre-trigger) or BACKWARD (post-trigger)
        boundary_tokens: Tokens that ended the scope (terminator word,
            boundary character) - empty when the text simply ran out
        boundary: Why the scope ended: "sentence", "terminator", "window"
        sentence_start, sentence_end: Clause the trigger sits in
    """
    start: int
    end: int
    trigger: str
    direction: NegationDirection
    boundary_tokens: Tuple[str, ...]
    boundary: str
    sentence_start: int
    sentence_end: int

    def covers(self, start: int, end: int) -> bool:
        if self.direction == NegationDirection.FORWARD:
            return self.start <= start < self.end
        return self.start < end <= self.end

    def reaches_past_window(self, start: int, end: int) -> bool:
        """Entity sits in the same clause, beyond the token window."""
        if self.boundary != "window":
            return False
        if self.direction == NegationDirection.FORWARD:
            return self.end <= start and end <= self.sentence_end
        return self.sentence_start <= start and end <= self.start


def scope_for_trigger(
    text: str,
    trigger_start: int,
    trigger_end: int,
    direction: NegationDirection,
    window_tokens: int,
    terminator_pattern: Optional[re.Pattern] = None,
) -> ScopeWindow:
    """
    Build the scope a trigger at ``[trigger_start, trigger_end)`` projects.
    """
    trigger = text[trigger_start:trigger_end]

    if direction == NegationDirection.FORWARD:
        boundary_match = _BOUNDARY.search(text, trigger_end)
        sentence_end = boundary_match.start() if boundary_match else len(text)
        sentence_start = _clause_start(text, trigger_start)
        region_start, region_end = trigger_end, sentence_end

        limit = sentence_end
        boundary = "sentence"
        boundary_tokens: Tuple[str, ...] = (boundary_match.group(),) if boundary_match else ()

        if terminator_pattern is not None:
            terminator = terminator_pattern.search(text, region_start, region_end)
            if terminator:
                limit = terminator.start()
                boundary = "terminator"
                boundary_tokens = (terminator.group().lower(),)

        tokens = list(_TOKEN.finditer(text, region_start, limit))
        if len(tokens) > window_tokens:
            limit = tokens[window_tokens - 1].end()
            boundary = "window"
            boundary_tokens = (tokens[window_tokens].group(),)

        return ScopeWindow(
            start=region_start,
            end=limit,
            trigger=trigger,
            direction=direction,
            boundary_tokens=boundary_tokens,
            boundary=boundary,
            sentence_start=sentence_start,
            sentence_end=sentence_end,
        )

    sentence_start = _clause_start(text, trigger_start)
    boundary_match = _BOUNDARY.search(text, trigger_end)
    sentence_end = boundary_match.start() if boundary_match else len(text)

    limit = sentence_start
    boundary = "sentence"
    boundary_tokens = (text[sentence_start - 1],) if sentence_start > 0 else ()

    if terminator_pattern is not None:
        terminators = list(terminator_pattern.finditer(text, sentence_start, trigger_start))
        if terminators:
            limit = terminators[-1].end()
            boundary = "terminator"
            boundary_tokens = (terminators[-1].group().lower(),)

    tokens = list(_TOKEN.finditer(text, limit, trigger_start))
    if len(tokens) > window_tokens:
        limit = tokens[-window_tokens].start()
        boundary = "window"
        boundary_tokens = (tokens[-window_tokens - 1].group(),)

    return ScopeWindow(
        start=limit,
        end=trigger_start,
        trigger=trigger,
        direction=direction,
        boundary_tokens=boundary_tokens,
        boundary=boundary,
        sentence_start=sentence_start,
        sentence_end=sentence_end,
    )


def _clause_start(text: str, position: int) -> int:
    last = None
    for match in _BOUNDARY.finditer(text, 0, position):
        last = match
    return last.end() if last else 0


def _phrase_pattern(phrases: Iterable[str]) -> Optional[re.Pattern]:
    ordered = sorted({p.strip().lower() for p in phrases if p.strip()}, key=len, reverse=True)
    if not ordered:
        return None
    alternation = "|".join(r"\s+".join(re.escape(w) for w in p.split()) for p in ordered)
    return re.compile(rf"(?<![\w-])(?:{alternation})(?![\w-])", re.IGNORECASE)


# =============================================================================
# Negation Detector
# =============================================================================

class NegationDetector:
    """
    Filters negated entity mentions.

    Re-running on already-filtered output is a no-op: kept entities are not
    covered by any scope, and entities already flagged ``possible_negation``
    are not penalized twice.
    """

    def __init__(self, config: Optional[NegationConfig] = None):
        self.config = config or NegationConfig()
        self._pre = _phrase_pattern(self.config.pre_triggers)
        self._post = _phrase_pattern(self.config.post_triggers)
        self._pseudo = _phrase_pattern(self.config.pseudo_triggers)
        self._terminators = _phrase_pattern(self.config.terminators)

    # =========================================================================
    # Scopes
    # =========================================================================

    def scopes(self, text: str) -> List[ScopeWindow]:
        """Every negation scope in ``text`` (pseudo-triggers excluded)."""
        pseudo_spans = [m.span() for m in self._pseudo.finditer(text)] if self._pseudo else []

        def is_pseudo(start: int, end: int) -> bool:
            return any(ps <= start < pe or ps < end <= pe for ps, pe in pseudo_spans)

        windows: List[ScopeWindow] = []
        for pattern, direction in (
            (self._pre, NegationDirection.FORWARD),
            (self._post, NegationDirection.BACKWARD),
        ):
            if pattern is None:
                continue
            for match in pattern.finditer(text):
                if is_pseudo(*match.span()):
                    continue
                windows.append(scope_for_trigger(
                    text,
                    match.start(),
                    match.end(),
                    direction,
                    self.config.window_tokens,
                    self._terminators,
                ))

        return windows

    def _check(self, entity: ExtractedField, scopes: Sequence[ScopeWindow]) -> bool:
        """
        True when a scope provably covers the entity.

        Raises:
            AmbiguousNegationScope: a trigger may reach the entity
        """
        start, end = entity.span.start, entity.span.end
        ambiguous: Optional[ScopeWindow] = None
        for scope in scopes:
            if scope.covers(start, end):
                return True
            if ambiguous is None and scope.reaches_past_window(start, end):
                ambiguous = scope
        if ambiguous is not None:
            raise AmbiguousNegationScope(
                ambiguous.trigger,
                entity.value,
                f"beyond {self.config.window_tokens}-token window",
            )
        return False

    # =========================================================================
    # Public API
    # =========================================================================

    def filter_negated(self, entities: Iterable[ExtractedField], text: str) -> NegationResult:
        """
        Split entities into kept and negated.

        Only complications, procedures, diagnoses and medications are
        subject to negation; other field types are always kept.
        """
        return self._filter(entities, self.scopes(text))

    def _filter(self, entities: Iterable[ExtractedField], scopes: Sequence[ScopeWindow]) -> NegationResult:
        kept: List[ExtractedField] = []
        filtered: List[ExtractedField] = []

        for entity in entities:
            if entity.field_type not in NEGATABLE_FIELDS or entity.overridden:
                kept.append(entity)
                continue
            try:
                negated = self._check(entity, scopes)
            except AmbiguousNegationScope as e:
                logger.debug(str(e))
                if not entity.has_flag(POSSIBLE_NEGATION_FLAG):
                    entity = entity.with_flag(POSSIBLE_NEGATION_FLAG).with_confidence(
                        entity.confidence * self.config.possible_negation_factor
                    )
                kept.append(entity)
                continue

            if negated:
                filtered.append(entity)
            else:
                kept.append(entity)

        if filtered:
            logger.debug(
                f"Negation filtered {len(filtered)} entities: "
                f"{', '.join(e.value for e in filtered)}"
            )
        return NegationResult(kept=tuple(kept), filtered=tuple(filtered))

    def filter_result(self, result: ExtractionResult, text: str) -> Tuple[ExtractionResult, Tuple[ExtractedField, ...]]:
        """Apply ``filter_negated`` to every field of an extraction result."""
        scopes = self.scopes(text)
        fields = {}
        filtered: List[ExtractedField] = []
        for field_type, values in result.fields.items():
            outcome = self._filter(values, scopes)
            fields[field_type] = outcome.kept
            filtered.extend(outcome.filtered)
        return ExtractionResult(fields=fields), tuple(filtered)

    def is_negated(self, concept: str, text: str) -> bool:
        """Quick check: is any mention of ``concept`` in ``text`` negated?"""
        scopes = self.scopes(text)
        pattern = re.compile(rf"(?<![\w-]){re.escape(concept)}(?![\w-])", re.IGNORECASE)
        for match in pattern.finditer(text):
            if any(scope.covers(*match.span()) for scope in scopes):
                return True
        return False

    def negation_statistics(self, text: str) -> Dict[str, int]:
        """Trigger counts for a note."""
        scopes = self.scopes(text)
        pseudo = len(self._pseudo.findall(text)) if self._pseudo else 0
        return {
            "total_scopes": len(scopes),
            "pre_triggers": sum(1 for s in scopes if s.direction == NegationDirection.FORWARD),
            "post_triggers": sum(1 for s in scopes if s.direction == NegationDirection.BACKWARD),
            "pseudo_triggers": pseudo,
            "window_bounded": sum(1 for s in scopes if s.boundary == "window"),
            "terminator_bounded": sum(1 for s in scopes if s.boundary == "terminator"),
        }
