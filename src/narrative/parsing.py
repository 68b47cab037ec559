"""
NeuroNote - Provider Output Parsing
===================================

Turns raw provider output into a ``Narrative``. Handles:

- a section map (dict) returned directly
- JSON, including markdown-fenced JSON and JSON behind a preamble
  ("Here is the summary: {...}")
- headed plain text ("HOSPITAL COURSE: ...")

Anything else raises ``MalformedProviderResponse``, which the provider
chain treats like any other provider failure.
"""

import json
import logging
import re
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from src.narrative.models import Narrative, canonical_section, has_content, split_sections
from src.shared.exceptions import MalformedProviderResponse

logger = logging.getLogger(__name__)

# Keys some providers wrap the section map in
_WRAPPER_KEYS = ("sections", "narrative", "summary", "discharge_summary")


class NarrativePayload(BaseModel):
    """Validated section map from a JSON provider response."""

    model_config = ConfigDict(extra="ignore")

    chief_complaint: Optional[str] = None
    history_of_present_illness: Optional[str] = None
    hospital_course: Optional[str] = None
    procedures: Optional[str] = None
    complications: Optional[str] = None
    discharge_medications: Optional[str] = None
    discharge_disposition: Optional[str] = None
    follow_up: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _flatten(cls, value: Any) -> Any:
        """Lists of lines become one newline-joined section."""
        if isinstance(value, (list, tuple)):
            return "\n".join(str(v).strip() for v in value if str(v).strip())
        if isinstance(value, (int, float)):
            return str(value)
        return value

    def sections(self) -> Dict[str, str]:
        return {
            name: value.strip()
            for name, value in self.model_dump().items()
            if has_content(value)
        }


def strip_markdown_fences(text: str) -> str:
    """Remove markdown code fences from text."""
    text = re.sub(r'^```(?:json|JSON)?\s*\n?', '', text, flags=re.MULTILINE)
    text = re.sub(r'\n?```\s*$', '', text, flags=re.MULTILINE)
    return text


def find_json_boundaries(text: str) -> Tuple[int, int]:
    """Start and end index of the outermost JSON object, or (-1, -1)."""
    start = text.find('{')
    end = text.rfind('}')
    if start == -1 or end == -1 or end < start:
        return -1, -1
    return start, end


def extract_json_string(text: str, provider: str = "unknown") -> str:
    """
    Extract the JSON object from provider output.

    Handles:
    - ```json ... ``` blocks
    - Preambles ("Here is the JSON: {...}")
    - Postscripts ("Let me know if...")
    """
    text = strip_markdown_fences(text)
    start_idx, end_idx = find_json_boundaries(text)
    if start_idx == -1:
        raise MalformedProviderResponse("No JSON object found in response", provider)
    return text[start_idx:end_idx + 1]


def _canonical_keys(data: Mapping[str, Any]) -> Dict[str, Any]:
    for key in _WRAPPER_KEYS:
        inner = data.get(key)
        if isinstance(inner, Mapping):
            data = inner
            break
    mapped: Dict[str, Any] = {}
    for key, value in data.items():
        name = canonical_section(str(key))
        if name is not None and name not in mapped:
            mapped[name] = value
    return mapped


def parse_section_map(data: Mapping[str, Any], provider: str = "unknown") -> Dict[str, str]:
    """Validate a section map; raises MalformedProviderResponse."""
    try:
        payload = NarrativePayload.model_validate(_canonical_keys(data))
    except ValidationError as e:
        logger.warning(f"Narrative schema validation failed for {provider}: {e}")
        raise MalformedProviderResponse(f"Schema validation failed: {e}", provider) from e
    return payload.sections()


def _looks_like_json(text: str) -> bool:
    stripped = strip_markdown_fences(text).lstrip()
    return stripped.startswith("{") or text.lstrip().startswith("```")


def parse_provider_response(raw: Any, provider: str = "unknown") -> Narrative:
    """
    Parse raw provider output into a Narrative.

    Raises:
        MalformedProviderResponse: output is empty, unparseable, or has no
            recognised section with content
    """
    if isinstance(raw, Mapping):
        sections = parse_section_map(raw, provider)
    elif isinstance(raw, str):
        text = clean_llm_text(raw)
        if not text:
            raise MalformedProviderResponse("Empty response", provider)

        if _looks_like_json(text) or (text.find("{") != -1 and not split_sections(text)):
            json_str = extract_json_string(text, provider)
            try:
                data = json.loads(json_str)
            except json.JSONDecodeError as e:
                logger.warning(f"JSON decode error from {provider}: {e}")
                raise MalformedProviderResponse(f"Invalid JSON syntax: {e}", provider) from e
            if not isinstance(data, Mapping):
                raise MalformedProviderResponse("JSON response is not an object", provider)
            sections = parse_section_map(data, provider)
        else:
            sections = {name: body for name, body in split_sections(text).items() if has_content(body)}
    else:
        raise MalformedProviderResponse(
            f"Unsupported response type {type(raw).__name__}", provider
        )

    if not sections:
        raise MalformedProviderResponse("No recognised narrative sections", provider)
    return Narrative(sections=sections, source=provider)


def clean_llm_text(text: str) -> str:
    """
    Clean up provider text.

    - Normalizes line endings
    - Removes excessive blank lines
    - Strips leading/trailing whitespace
    """
    text = text.replace('\r\n', '\n').replace('\r', '\n')
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()
