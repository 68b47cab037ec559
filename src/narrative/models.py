"""
Narrative Models
================

Request/response types for discharge narrative generation.

A ``Narrative`` is a map of canonical section name -> section text. Raw
provider output, template output and user-supplied narrative text all end up
in this shape, so the quality scorer sees one representation.

Usage:
    request = NarrativeRequest(extracted=result, style="concise")
    narrative = Narrative.from_text("HOSPITAL COURSE: Uneventful.", source="user")
    narrative.section("hospital_course")
"""

import re
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from src.shared.models import ExtractionResult


CANONICAL_SECTIONS: Tuple[str, ...] = (
    "chief_complaint",
    "history_of_present_illness",
    "hospital_course",
    "procedures",
    "complications",
    "discharge_medications",
    "discharge_disposition",
    "follow_up",
)

SECTION_TITLES: Dict[str, str] = {
    "chief_complaint": "CHIEF COMPLAINT",
    "history_of_present_illness": "HISTORY OF PRESENT ILLNESS",
    "hospital_course": "HOSPITAL COURSE",
    "procedures": "PROCEDURES",
    "complications": "COMPLICATIONS",
    "discharge_medications": "DISCHARGE MEDICATIONS",
    "discharge_disposition": "DISCHARGE DISPOSITION",
    "follow_up": "FOLLOW-UP",
}

# Header spellings seen in provider and clinician output
SECTION_ALIASES: Dict[str, str] = {
    "chief complaint": "chief_complaint",
    "cc": "chief_complaint",
    "reason for admission": "chief_complaint",
    "history of present illness": "history_of_present_illness",
    "hpi": "history_of_present_illness",
    "history": "history_of_present_illness",
    "presenting symptoms": "history_of_present_illness",
    "hospital course": "hospital_course",
    "clinical course": "hospital_course",
    "course": "hospital_course",
    "procedures": "procedures",
    "procedure": "procedures",
    "procedures performed": "procedures",
    "operations": "procedures",
    "complications": "complications",
    "discharge medications": "discharge_medications",
    "medications": "discharge_medications",
    "medications at discharge": "discharge_medications",
    "discharge disposition": "discharge_disposition",
    "disposition": "discharge_disposition",
    "follow-up": "follow_up",
    "follow up": "follow_up",
    "followup": "follow_up",
    "follow-up plan": "follow_up",
}

_HEADER = re.compile(r"^\s*(?:#+\s*)?\**([A-Za-z][A-Za-z /&-]{1,40}?)\**\s*:\s*(.*)$")

# Section bodies that carry no information
_PLACEHOLDERS = frozenset({"", "n/a", "na", "none", "not applicable", "not documented", "-", "tbd"})


def canonical_section(name: str) -> Optional[str]:
    """Map a header or key to its canonical section name."""
    key = re.sub(r"[_\s]+", " ", name.strip().lower())
    if key.replace(" ", "_") in CANONICAL_SECTIONS:
        return key.replace(" ", "_")
    return SECTION_ALIASES.get(key)


def split_sections(text: str) -> Dict[str, str]:
    """
    Split headed plain text ("HOSPITAL COURSE: ...") into canonical sections.

    Lines before the first recognised header, and lines under unrecognised
    headers, are folded into the preceding section. Returns an empty dict
    when no header is recognised.
    """
    sections: Dict[str, List[str]] = {}
    current: Optional[str] = None

    for line in text.splitlines():
        match = _HEADER.match(line)
        name = canonical_section(match.group(1)) if match else None
        if name is not None:
            current = name
            sections.setdefault(current, [])
            if match.group(2).strip():
                sections[current].append(match.group(2).strip())
        elif current is not None and line.strip():
            sections[current].append(line.strip())

    return {name: "\n".join(lines).strip() for name, lines in sections.items()}


def has_content(text: Optional[str]) -> bool:
    """True when a section body holds real content, not a placeholder."""
    if not text:
        return False
    return text.strip().lower().rstrip(".") not in _PLACEHOLDERS


@dataclass(frozen=True)
class NarrativeRequest:
    """Input to narrative generation."""
    extracted: ExtractionResult
    style: str = "concise"
    pathology: Optional[str] = None


@dataclass(frozen=True)
class Narrative:
    """
    Discharge narrative split into canonical sections.

    Attributes:
        sections: canonical section name -> text
        source: Provider name, "template" or "user"
        cached: True when served from the response cache
    """
    sections: Dict[str, str] = field(default_factory=dict)
    source: str = "template"
    cached: bool = False

    @classmethod
    def from_text(cls, text: str, source: str = "user") -> "Narrative":
        """
        Build from free text. Text without recognised headers becomes a
        single hospital course section.
        """
        sections = split_sections(text)
        if not sections and text.strip():
            sections = {"hospital_course": text.strip()}
        return cls(sections=sections, source=source)

    def section(self, name: str) -> str:
        return self.sections.get(name, "")

    def has_section(self, name: str) -> bool:
        return has_content(self.sections.get(name))

    @property
    def ordered_sections(self) -> List[Tuple[str, str]]:
        """Sections in canonical order, then any extras by name."""
        known = [(n, self.sections[n]) for n in CANONICAL_SECTIONS if n in self.sections]
        extra = sorted((n, t) for n, t in self.sections.items() if n not in CANONICAL_SECTIONS)
        return known + extra

    @property
    def text(self) -> str:
        """Headed plain-text rendering."""
        blocks = []
        for name, body in self.ordered_sections:
            if has_content(body):
                title = SECTION_TITLES.get(name, name.replace("_", " ").upper())
                blocks.append(f"{title}:\n{body}")
        return "\n\n".join(blocks)

    @property
    def is_empty(self) -> bool:
        return not any(has_content(body) for body in self.sections.values())

    def as_cached(self) -> "Narrative":
        return replace(self, cached=True)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sections": dict(self.ordered_sections),
            "source": self.source,
            "cached": self.cached,
        }
