"""
NeuroNote Text Normalizer
=========================

Canonicalizes raw clinical note text and splits it into addressable spans.

- Whitespace, line endings, unicode dashes and quotes are canonicalized
- Clinical abbreviations are expanded with a whole-token FlashText pass
- Sentences and section headers are located as spans over the canonical text

Extraction and every downstream span offset work on ``NormalizedText.text``;
``NormalizedText.expanded`` is the abbreviation-expanded rendering handed to
narrative generation and readers.

Usage:
    from src.core.normalizer import normalize

    normalized = normalize("pt s/p  crani on POD 3.\\r\\nASA 81mg daily")
    normalized.text       # "pt s/p crani on POD 3.\\nASA 81mg daily"
    normalized.expanded   # "patient status post crani on post-operative day 3. ..."
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from flashtext import KeywordProcessor

from src.core.lexicon import CLINICAL_ABBREVIATIONS
from src.shared.models import SourceSpan

logger = logging.getLogger(__name__)


# =============================================================================
# Canonicalization Tables
# =============================================================================

_CHAR_REPLACEMENTS = {
    "\u2010": "-", "\u2011": "-", "\u2012": "-", "\u2013": "-", "\u2014": "-",
    "\u2212": "-",
    "\u2018": "'", "\u2019": "'", "\u201b": "'",
    "\u201c": '"', "\u201d": '"',
    "\u00a0": " ", "\u2009": " ", "\u200b": "",
    "\u2022": "-", "\u00b7": "-",
}

# Tokens ending in a period that do not end a sentence
_NON_TERMINAL_ABBREVIATIONS = {
    "dr", "mr", "mrs", "ms", "vs", "st", "approx", "etc", "pt", "hx",
    "e.g", "i.e", "q.d", "b.i.d", "t.i.d", "q.i.d", "p.o", "q.h.s", "p.r.n",
    "fig", "wk", "yr", "mo",
}

SECTION_HEADERS = {
    "CHIEF COMPLAINT": "CHIEF COMPLAINT",
    "CC": "CHIEF COMPLAINT",
    "HPI": "HPI",
    "HISTORY OF PRESENT ILLNESS": "HPI",
    "HISTORY": "HPI",
    "PAST MEDICAL HISTORY": "PAST MEDICAL HISTORY",
    "PMH": "PAST MEDICAL HISTORY",
    "PHYSICAL EXAM": "EXAM",
    "EXAM": "EXAM",
    "EXAMINATION": "EXAM",
    "NEURO EXAM": "EXAM",
    "NEUROLOGICAL EXAM": "EXAM",
    "IMAGING": "IMAGING",
    "ASSESSMENT": "ASSESSMENT",
    "ASSESSMENT AND PLAN": "ASSESSMENT",
    "A/P": "ASSESSMENT",
    "PLAN": "PLAN",
    "DIAGNOSIS": "DIAGNOSIS",
    "DIAGNOSES": "DIAGNOSIS",
    "ADMISSION DIAGNOSIS": "DIAGNOSIS",
    "DISCHARGE DIAGNOSIS": "DIAGNOSIS",
    "PROCEDURES": "PROCEDURES",
    "PROCEDURE": "PROCEDURES",
    "OPERATIONS": "PROCEDURES",
    "HOSPITAL COURSE": "HOSPITAL COURSE",
    "COMPLICATIONS": "COMPLICATIONS",
    "MEDICATIONS": "MEDICATIONS",
    "DISCHARGE MEDICATIONS": "DISCHARGE MEDICATIONS",
    "DISPOSITION": "DISPOSITION",
    "DISCHARGE DISPOSITION": "DISPOSITION",
    "FOLLOW-UP": "FOLLOW-UP",
    "FOLLOW UP": "FOLLOW-UP",
    "FOLLOWUP": "FOLLOW-UP",
    "CONDITION AT DISCHARGE": "CONDITION AT DISCHARGE",
}

_HEADER_PATTERN = re.compile(r"^([A-Za-z][A-Za-z /&-]{0,40}?)\s*:", re.MULTILINE)
_SENTENCE_END = re.compile(r"[.!?]+(?=\s|$)")


# =============================================================================
# Normalized Text
# =============================================================================

@dataclass(frozen=True)
class NormalizedText:
    """
    Result of normalizing one clinical note.

    Attributes:
        original: Input text, unchanged
        text: Canonicalized text; every SourceSpan indexes into this
        expanded: ``text`` with clinical abbreviations expanded
        sentences: Sentence spans over ``text`` (newlines always split)
        sections: Canonical section name -> span from header to next header
        abbreviations: (abbreviation, expansion) pairs found, in order
    """
    original: str
    text: str
    expanded: str
    sentences: Tuple[SourceSpan, ...] = ()
    sections: Dict[str, SourceSpan] = field(default_factory=dict)
    abbreviations: Tuple[Tuple[str, str], ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.text.strip()

    def sentence_at(self, offset: int) -> Optional[SourceSpan]:
        """Sentence containing a character offset."""
        for sentence in self.sentences:
            if sentence.start <= offset < sentence.end:
                return sentence
        return None

    def section_of(self, offset: int) -> Optional[str]:
        """Name of the section containing a character offset."""
        for name, span in self.sections.items():
            if span.start <= offset < span.end:
                return name
        return None

    def section_text(self, name: str) -> str:
        span = self.sections.get(name)
        return span.text if span else ""


# =============================================================================
# Normalizer
# =============================================================================

class Normalizer:
    """
    Clinical text normalizer.

    Holds the abbreviation keyword processor; ``normalize`` is pure with
    respect to its input and never raises.
    """

    def __init__(self, abbreviations: Optional[Dict[str, str]] = None):
        self.abbreviations = dict(abbreviations if abbreviations is not None else CLINICAL_ABBREVIATIONS)
        self._processor = KeywordProcessor(case_sensitive=True)
        for abbreviation, expansion in self.abbreviations.items():
            self._processor.add_keyword(abbreviation, expansion)

    def normalize(self, text: Optional[str]) -> NormalizedText:
        original = text or ""
        canonical = canonicalize_whitespace(original)

        found = self._processor.extract_keywords(canonical, span_info=True)
        abbreviations = tuple(
            (canonical[start:end], expansion) for expansion, start, end in found
        )
        expanded = self._processor.replace_keywords(canonical) if found else canonical

        sentences = split_sentences(canonical)
        sections = find_sections(canonical)

        logger.debug(
            f"Normalized note: {len(original)} -> {len(canonical)} chars, "
            f"{len(sentences)} sentences, {len(sections)} sections, "
            f"{len(abbreviations)} abbreviations"
        )

        return NormalizedText(
            original=original,
            text=canonical,
            expanded=expanded,
            sentences=sentences,
            sections=sections,
            abbreviations=abbreviations,
        )

    def expand(self, text: str) -> str:
        """Expand abbreviations in arbitrary text."""
        return self._processor.replace_keywords(text)

    def canonical_term(self, term: str) -> str:
        """Lower-cased expansion of a term, or the term itself."""
        stripped = term.strip()
        expansion = self.abbreviations.get(stripped)
        if expansion is None:
            lowered = stripped.lower()
            for abbreviation, candidate in self.abbreviations.items():
                if abbreviation.lower() == lowered:
                    expansion = candidate
                    break
        return (expansion or stripped).lower()


_default_normalizer: Optional[Normalizer] = None


def _get_normalizer() -> Normalizer:
    global _default_normalizer
    if _default_normalizer is None:
        _default_normalizer = Normalizer()
    return _default_normalizer


def normalize(text: Optional[str]) -> NormalizedText:
    """Normalize a note with the default abbreviation table."""
    return _get_normalizer().normalize(text)


def canonical_term(term: str) -> str:
    return _get_normalizer().canonical_term(term)


# =============================================================================
# Helpers
# =============================================================================

def canonicalize_whitespace(text: str) -> str:
    """Canonical character set, line endings and whitespace runs."""
    text = unicodedata.normalize("NFKC", text)
    for source, target in _CHAR_REPLACEMENTS.items():
        text = text.replace(source, target)

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"[ \t\f\v]+", " ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def split_sentences(text: str) -> Tuple[SourceSpan, ...]:
    """
    Sentence spans over ``text``.

    Newlines always end a sentence. Periods after clinical abbreviations
    (Dr., vs., e.g., q.d.) and inside decimals do not.
    """
    spans: List[SourceSpan] = []
    offset = 0
    for line in text.split("\n"):
        line_start = offset
        offset += len(line) + 1
        if not line.strip():
            continue

        start = 0
        for match in _SENTENCE_END.finditer(line):
            token_match = re.search(r"(\S+)$", line[start:match.start()])
            token = token_match.group(1).lower() if token_match else ""
            if token.rstrip(".") in _NON_TERMINAL_ABBREVIATIONS and match.group() == ".":
                continue
            end = match.end()
            _append_span(spans, line, line_start, start, end)
            start = end
        _append_span(spans, line, line_start, start, len(line))

    return tuple(spans)


def _append_span(spans: List[SourceSpan], line: str, line_start: int, start: int, end: int) -> None:
    segment = line[start:end]
    stripped = segment.strip()
    if not stripped:
        return
    lead = len(segment) - len(segment.lstrip())
    abs_start = line_start + start + lead
    spans.append(SourceSpan(abs_start, abs_start + len(stripped), stripped))


def find_sections(text: str) -> Dict[str, SourceSpan]:
    """
    Locate known section headers ("HOSPITAL COURSE:", "Plan:").

    Each section runs from its header to the next recognized header. The
    first occurrence of a canonical section name wins.
    """
    headers: List[Tuple[str, int]] = []
    for match in _HEADER_PATTERN.finditer(text):
        raw = re.sub(r"\s+", " ", match.group(1).strip()).upper()
        name = SECTION_HEADERS.get(raw)
        if name:
            headers.append((name, match.start()))

    sections: Dict[str, SourceSpan] = {}
    for index, (name, start) in enumerate(headers):
        end = headers[index + 1][1] if index + 1 < len(headers) else len(text)
        if name not in sections:
            body = text[start:end].rstrip()
            sections[name] = SourceSpan(start, start + len(body), body)
    return sections
