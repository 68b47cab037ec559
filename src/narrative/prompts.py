"""
NeuroNote - Narrative Prompt Templates
======================================

Prompt text for discharge narrative generation.

The prompt is a pure function of the request, so identical requests hash to
the same response-cache key.

Usage:
    from src.narrative.prompts import build_prompt, SYSTEM_PROMPT

    prompt = build_prompt(NarrativeRequest(extracted=result, style="detailed"))
"""

import json
from typing import Any, Dict, List

from src.narrative.models import CANONICAL_SECTIONS, NarrativeRequest
from src.shared.enums import FieldType
from src.shared.models import DatedEvent, DosageRecord, ExtractedField, ScoreField


# =============================================================================
# System Prompt
# =============================================================================

SYSTEM_PROMPT = """You are an experienced neurosurgery attending writing hospital discharge summaries.

Your role is to turn structured data extracted from clinical notes into a clear, professional discharge narrative.

Guidelines:
1. Use only the facts provided; never invent medications, doses, dates or events
2. Use precise clinical terminology and define uncommon abbreviations
3. State exact counts, doses and dates instead of vague quantities
4. Describe the hospital course chronologically with clear transitions
5. Omit a section rather than guessing when no data supports it"""


STYLE_INSTRUCTIONS: Dict[str, str] = {
    "concise": "Keep each section to one to three sentences.",
    "detailed": "Write complete paragraphs with relevant clinical detail.",
    "bullet": "Use short bullet-style lines within each section.",
}

PATHOLOGY_GUIDANCE: Dict[str, str] = {
    "sah": "Include Hunt-Hess and Fisher grades, vasospasm surveillance and nimodipine course.",
    "tumor": "Include extent of resection, pathology if known, and steroid taper.",
    "spine": "Include levels treated, neurological examination and activity restrictions.",
    "tbi": "Include GCS on presentation and at discharge and any intracranial pressure management.",
}


# =============================================================================
# Prompt Building
# =============================================================================

def _describe(item: ExtractedField) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"value": item.value}
    if item.canonical and item.canonical != item.value.lower():
        entry["canonical"] = item.canonical
    if isinstance(item, DatedEvent):
        if item.event_date is not None:
            entry["date"] = item.event_date.isoformat()
        if item.temporal is not None:
            entry["timing"] = item.temporal.category.value
        if item.pod is not None:
            entry["pod"] = item.pod
    elif isinstance(item, DosageRecord):
        for key in ("dose", "unit", "route", "frequency"):
            if getattr(item, key):
                entry[key] = getattr(item, key)
        entry["status"] = item.status
    elif isinstance(item, ScoreField):
        entry["scale"] = item.scale
        entry["score"] = item.score
    return entry


def structured_payload(request: NarrativeRequest) -> Dict[str, List[Dict[str, Any]]]:
    """Extracted data as plain JSON-ready values, in field order."""
    payload: Dict[str, List[Dict[str, Any]]] = {}
    for field_type in FieldType:
        values = request.extracted.get(field_type)
        if values:
            payload[field_type.value] = [_describe(v) for v in values]
    return payload


def build_prompt(request: NarrativeRequest) -> str:
    """User prompt for one narrative request."""
    data = json.dumps(structured_payload(request), indent=2, sort_keys=True)
    style = STYLE_INSTRUCTIONS.get(request.style, STYLE_INSTRUCTIONS["concise"])
    pathology = PATHOLOGY_GUIDANCE.get((request.pathology or "").lower(), "")
    sections = ", ".join(f'"{name}"' for name in CANONICAL_SECTIONS)

    lines = [
        "Write a discharge summary from the structured data below.",
        "",
        "## Structured data",
        data,
        "",
        "## Instructions",
        style,
    ]
    if pathology:
        lines.append(pathology)
    lines.extend([
        "",
        "## Output format",
        f"Respond with a single JSON object whose keys are any of: {sections}.",
        "Each value is the section text as a string. Do not add commentary outside the JSON.",
    ])
    return "\n".join(lines)
