"""
NeuroNote Pattern Extractor
===========================

Field-specific entity extraction over normalized clinical notes.

Two matching phases per field:
    Phase 1: Ordered regex matchers (demographics, dates, scores, labelled
             diagnosis / disposition, follow-up)
    Phase 2: FlashText lexicon matching (procedures, complications,
             medications, diagnoses), confidence adjusted by context cues

For any span the first matcher that fires wins; overlapping later matches
are dropped. Array-valued fields keep every non-overlapping span;
single-valued fields keep the best one. Missing fields are empty tuples.
Confidence is the matcher's base value; source-quality calibration happens
later in the pipeline.

Usage:
    extractor = PatternExtractor()
    result = extractor.extract(normalize(note_text))
    result.get(FieldType.MEDICATION)
    # (DosageRecord(value="ASA 81mg daily", canonical="aspirin", dose="81", ...),)
"""

import hashlib
import logging
import re
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from flashtext import KeywordProcessor

from src.core.dates import DATE_REGEX, parse_clinical_date
from src.core.lexicon import (
    COMPLICATION_SYNONYMS,
    DIAGNOSIS_TERMS,
    MEDICATION_SYNONYMS,
    PROCEDURE_SYNONYMS,
    canonical_name,
    complication_category,
)
from src.core.normalizer import NormalizedText, normalize
from src.core.patterns import (
    COMPLICATION_HYPOTHETICAL_CUES,
    COMPLICATION_INCLUSION_CUES,
    DIAGNOSIS_CUES,
    DOSAGE_TAIL,
    FREQUENCY_ONLY_TAIL,
    GENDER_VALUES,
    LEXICON_CONFIDENCE,
    MEDICATION_EXCLUSION_CUES,
    MEDICATION_STATUS_CUES,
    PROCEDURE_CUES,
    ROMAN_NUMERALS,
    SCORE_RANGES,
    Matcher,
    MatcherTable,
    any_cue,
)
from src.shared.enums import DATE_FIELDS, FieldType
from src.shared.exceptions import TemporalResolutionFailure
from src.shared.models import (
    DatedEvent,
    DosageRecord,
    ExtractedField,
    ExtractionResult,
    ScoreField,
    SourceSpan,
    TextField,
)

logger = logging.getLogger(__name__)

MALFORMED_DATE_FLAG = "malformed_date"

# Surface forms this short only match as upper-case tokens ("PE", not "pe")
SHORT_FORM_MAX_LEN = 3

LEXICON_FIELDS = (
    FieldType.PROCEDURE,
    FieldType.COMPLICATION,
    FieldType.MEDICATION,
    FieldType.DIAGNOSIS,
)


class PatternExtractor:
    """
    Pattern-based extractor for neurosurgical notes.

    Results for identical normalized text are memoized per instance in a
    bounded dict keyed by an md5 text hash.
    """

    def __init__(
        self,
        matchers: Optional[MatcherTable] = None,
        cache_max_size: int = 256,
    ):
        self.matchers = matchers or MatcherTable.default()
        self._processors: Dict[FieldType, KeywordProcessor] = {}
        self._short_processors: Dict[FieldType, KeywordProcessor] = {}
        self._init_lexicons()

        self._cache: Dict[str, ExtractionResult] = {}
        self._cache_max_size = cache_max_size

    def _init_lexicons(self) -> None:
        """Build one FlashText processor per lexicon field (surface form -> canonical)."""
        groups = {
            FieldType.PROCEDURE: PROCEDURE_SYNONYMS,
            FieldType.COMPLICATION: {k: v[1] for k, v in COMPLICATION_SYNONYMS.items()},
            FieldType.MEDICATION: MEDICATION_SYNONYMS,
            FieldType.DIAGNOSIS: DIAGNOSIS_TERMS,
        }
        for field_type, synonyms in groups.items():
            processor = KeywordProcessor(case_sensitive=False)
            short_processor = KeywordProcessor(case_sensitive=True)
            for canonical, forms in synonyms.items():
                processor.add_keyword(canonical, canonical)
                for form in forms:
                    if len(form) <= SHORT_FORM_MAX_LEN:
                        short_processor.add_keyword(form.upper(), canonical)
                    else:
                        processor.add_keyword(form, canonical)
            self._processors[field_type] = processor
            self._short_processors[field_type] = short_processor

        total = sum(len(p) for p in self._processors.values())
        total += sum(len(p) for p in self._short_processors.values())
        logger.debug(f"Lexicon processors initialized with {total} keywords")

    # =========================================================================
    # Public API
    # =========================================================================

    def extract(
        self,
        normalized: NormalizedText,
        target_fields: Optional[Sequence[FieldType]] = None,
    ) -> ExtractionResult:
        """
        Extract every requested field.

        Args:
            normalized: Output of the normalizer (plain strings are normalized)
            target_fields: Fields to extract (default: all)

        Returns:
            ExtractionResult with an entry (possibly empty) per requested field
        """
        if isinstance(normalized, str):
            normalized = normalize(normalized)

        targets = tuple(target_fields) if target_fields else tuple(FieldType)
        cache_key = self._cache_key(normalized.text, targets)
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        fields: Dict[FieldType, Tuple[ExtractedField, ...]] = {}
        for field_type in targets:
            values = self._extract_field(field_type, normalized)
            fields[field_type] = tuple(sorted(values, key=lambda f: f.sort_key()))

        result = ExtractionResult(fields=fields)
        self._add_to_cache(cache_key, result)

        found = sum(len(v) for v in fields.values())
        logger.debug(f"Extracted {found} values across {len(targets)} fields")
        return result

    def clear_cache(self) -> None:
        self._cache.clear()

    # =========================================================================
    # Dispatch
    # =========================================================================

    def _extract_field(self, field_type: FieldType, normalized: NormalizedText) -> List[ExtractedField]:
        text = normalized.text
        if not text:
            return []

        accepted: List[ExtractedField] = []
        builder = _REGEX_BUILDERS.get(field_type, _build_text_field)
        for matcher in self.matchers.for_field(field_type):
            for match in matcher.compiled.finditer(text):
                built = builder(self, field_type, matcher, match, normalized)
                if built is None or _overlaps_any(built.span, accepted):
                    continue
                accepted.append(built)

        if field_type in LEXICON_FIELDS:
            for built in self._extract_lexicon(field_type, normalized):
                if not _overlaps_any(built.span, accepted):
                    accepted.append(built)

        if field_type == FieldType.GENDER:
            accepted = _resolve_gender(accepted, text)

        if not field_type.is_array_valued and len(accepted) > 1:
            # Matchers are ordered most explicit first; keep the first winner
            accepted = [accepted[0]]

        return accepted

    # =========================================================================
    # Phase 2: Lexicon Matching
    # =========================================================================

    def _extract_lexicon(self, field_type: FieldType, normalized: NormalizedText) -> List[ExtractedField]:
        text = normalized.text
        results: List[ExtractedField] = []

        for canonical, start, end in self._lexicon_hits(field_type, text):
            sentence = normalized.sentence_at(start) or SourceSpan(0, len(text), text)
            before = text[sentence.start:start]
            after = text[end:sentence.end]

            if field_type == FieldType.PROCEDURE:
                built = self._build_procedure(canonical, start, end, text, before, sentence)
            elif field_type == FieldType.COMPLICATION:
                built = self._build_complication(canonical, start, end, text, before, after)
            elif field_type == FieldType.MEDICATION:
                built = self._build_medication(canonical, start, end, text, before)
            else:
                built = self._build_diagnosis(canonical, start, end, text, before, normalized)

            if built is not None:
                results.append(built)
        return results

    def _lexicon_hits(self, field_type: FieldType, text: str) -> List[Tuple[str, int, int]]:
        """Keyword hits in text order; short upper-case forms yield to overlapping long forms."""
        hits = self._processors[field_type].extract_keywords(text, span_info=True)
        for canonical, start, end in self._short_processors[field_type].extract_keywords(text, span_info=True):
            if not any(start < e and s < end for _, s, e in hits):
                hits.append((canonical, start, end))
        return sorted(hits, key=lambda hit: (hit[1], hit[2]))

    def _build_procedure(self, canonical, start, end, text, before, sentence) -> DatedEvent:
        explicit = any_cue(PROCEDURE_CUES, before) is not None
        confidence = LEXICON_CONFIDENCE[FieldType.PROCEDURE]["explicit" if explicit else "bare"]
        return DatedEvent(
            field_type=FieldType.PROCEDURE,
            value=text[start:end],
            confidence=confidence,
            span=SourceSpan(start, end, text[start:end]),
            canonical=canonical,
            matcher="procedure_context" if explicit else "procedure_lexicon",
            event_date=_nearest_date(text, sentence, start),
        )

    def _build_complication(self, canonical, start, end, text, before, after) -> Optional[DatedEvent]:
        if any_cue(COMPLICATION_HYPOTHETICAL_CUES, before) or any_cue(
            COMPLICATION_HYPOTHETICAL_CUES, after[:20]
        ):
            logger.debug(f"Skipping hypothetical complication mention: {text[start:end]}")
            return None
        explicit = any_cue(COMPLICATION_INCLUSION_CUES, before) is not None
        confidence = LEXICON_CONFIDENCE[FieldType.COMPLICATION]["explicit" if explicit else "bare"]
        return DatedEvent(
            field_type=FieldType.COMPLICATION,
            value=text[start:end],
            confidence=confidence,
            span=SourceSpan(start, end, text[start:end]),
            canonical=canonical,
            matcher="complication_context" if explicit else "complication_lexicon",
            category=complication_category(canonical),
        )

    def _build_medication(self, canonical, start, end, text, before) -> Optional[DosageRecord]:
        if any_cue(MEDICATION_EXCLUSION_CUES, before):
            return None

        dose = unit = route = frequency = None
        tail = DOSAGE_TAIL.match(text, end)
        if tail and tail.group("dose"):
            dose, unit = tail.group("dose"), tail.group("unit")
            route, frequency = tail.group("route"), tail.group("frequency")
            span_end = tail.end()
        else:
            freq_tail = FREQUENCY_ONLY_TAIL.match(text, end)
            frequency = freq_tail.group("frequency") if freq_tail else None
            span_end = freq_tail.end() if freq_tail else end

        status = "active"
        for label, pattern in MEDICATION_STATUS_CUES:
            if any_cue([pattern], before[-40:]):
                status = label
                break

        confidence = LEXICON_CONFIDENCE[FieldType.MEDICATION]["explicit" if dose else "bare"]
        value = text[start:span_end]
        return DosageRecord(
            field_type=FieldType.MEDICATION,
            value=value,
            confidence=confidence,
            span=SourceSpan(start, span_end, value),
            canonical=canonical,
            matcher="medication_dosage" if dose else "medication_name",
            dose=dose,
            unit=unit.lower() if unit else None,
            route=route,
            frequency=frequency,
            status=status,
        )

    def _build_diagnosis(self, canonical, start, end, text, before, normalized) -> TextField:
        in_section = normalized.section_of(start) == "DIAGNOSIS"
        explicit = in_section or any_cue(DIAGNOSIS_CUES, before) is not None
        confidence = LEXICON_CONFIDENCE[FieldType.DIAGNOSIS]["explicit" if explicit else "bare"]
        return TextField(
            field_type=FieldType.DIAGNOSIS,
            value=text[start:end],
            confidence=confidence,
            span=SourceSpan(start, end, text[start:end]),
            canonical=canonical,
            matcher="diagnosis_context" if explicit else "diagnosis_lexicon",
        )

    # =========================================================================
    # Caching
    # =========================================================================

    @staticmethod
    def _cache_key(text: str, targets: Tuple[FieldType, ...]) -> str:
        fields_part = ",".join(f.value for f in targets)
        return hashlib.md5(f"{text}|{fields_part}".encode()).hexdigest()

    def _add_to_cache(self, key: str, result: ExtractionResult) -> None:
        if len(self._cache) >= self._cache_max_size:
            # Remove oldest entry (FIFO)
            self._cache.pop(next(iter(self._cache)))
        self._cache[key] = result


# =============================================================================
# Phase 1: Regex Builders
# =============================================================================

def _value_span(match: re.Match) -> Tuple[int, int]:
    if "value" in match.re.groupindex and match.group("value") is not None:
        return match.span("value")
    return match.span()


def _build_text_field(extractor, field_type, matcher: Matcher, match, normalized) -> Optional[TextField]:
    text = normalized.text
    start, end = _value_span(match)
    value = text[start:end].strip()
    if not value:
        return None
    end = start + len(value)
    return TextField(
        field_type=field_type,
        value=value,
        confidence=matcher.base_confidence,
        span=SourceSpan(start, end, value),
        canonical=canonical_name(value, field_type),
        matcher=matcher.name,
    )


def _build_age(extractor, field_type, matcher, match, normalized) -> Optional[TextField]:
    built = _build_text_field(extractor, field_type, matcher, match, normalized)
    if built is None or not 0 <= int(built.value) <= 120:
        return None
    return built


def _build_gender(extractor, field_type, matcher, match, normalized) -> Optional[TextField]:
    built = _build_text_field(extractor, field_type, matcher, match, normalized)
    if built is None:
        return None
    gender = GENDER_VALUES.get(built.value.lower())
    if gender is None:
        return None
    return TextField(
        field_type=field_type,
        value=built.value,
        confidence=built.confidence,
        span=built.span,
        canonical=gender,
        matcher=built.matcher,
    )


def _build_date(extractor, field_type, matcher, match, normalized) -> Optional[DatedEvent]:
    text = normalized.text
    start, end = _value_span(match)
    raw = text[start:end]
    flags: Tuple[str, ...] = ()
    try:
        event_date = parse_clinical_date(raw)
        canonical = event_date.isoformat()
    except TemporalResolutionFailure as e:
        logger.warning(f"Malformed {field_type.value}: {e}")
        event_date = None
        canonical = raw.lower()
        flags = (MALFORMED_DATE_FLAG,)
    return DatedEvent(
        field_type=field_type,
        value=raw,
        confidence=matcher.base_confidence,
        span=SourceSpan(start, end, raw),
        canonical=canonical,
        matcher=matcher.name,
        flags=flags,
        event_date=event_date,
    )


def _build_score(extractor, field_type, matcher, match, normalized) -> Optional[ScoreField]:
    raw_score = match.group("score")
    score = ROMAN_NUMERALS.get(raw_score.upper()) if not raw_score.isdigit() else int(raw_score)
    low, high = SCORE_RANGES[matcher.name]
    if score is None or not low <= score <= high:
        logger.debug(f"Discarding out-of-range {matcher.name} value: {raw_score}")
        return None
    if matcher.name == "kps" and score % 10:
        return None

    start, end = match.span()
    value = normalized.text[start:end]
    return ScoreField(
        field_type=field_type,
        value=value,
        confidence=matcher.base_confidence,
        span=SourceSpan(start, end, value),
        canonical=f"{matcher.name} {score}",
        matcher=matcher.name,
        scale=matcher.name,
        score=score,
    )


_REGEX_BUILDERS: Dict[FieldType, Callable] = {
    FieldType.AGE: _build_age,
    FieldType.GENDER: _build_gender,
    FieldType.FUNCTIONAL_SCORE: _build_score,
}
_REGEX_BUILDERS.update({ft: _build_date for ft in DATE_FIELDS})


# =============================================================================
# Helpers
# =============================================================================

def _overlaps_any(span: SourceSpan, accepted: Iterable[ExtractedField]) -> bool:
    return any(span.overlaps(f.span) for f in accepted)


def _nearest_date(text: str, sentence: SourceSpan, position: int):
    """Closest parseable date within the sentence around ``position``."""
    best = None
    best_distance = None
    for match in DATE_REGEX.finditer(text, sentence.start, sentence.end):
        distance = abs(match.start() - position)
        if best_distance is not None and distance >= best_distance:
            continue
        try:
            parsed = parse_clinical_date(match.group())
        except TemporalResolutionFailure:
            continue
        best, best_distance = parsed, distance
    return best


def _resolve_gender(accepted: List[ExtractedField], text: str) -> List[ExtractedField]:
    """
    Pronoun matches only count when no explicit gender matched; the
    majority pronoun then wins.
    """
    explicit = [f for f in accepted if f.matcher != "gender_pronoun"]
    if explicit:
        return explicit
    pronouns = [f for f in accepted if f.matcher == "gender_pronoun"]
    if not pronouns:
        return []
    male = sum(1 for f in pronouns if f.canonical == "male")
    female = len(pronouns) - male
    if male == female:
        return []
    majority = "male" if male > female else "female"
    return [next(f for f in pronouns if f.canonical == majority)]
