"""
NeuroNote narrative generation.

Provider chain with circuit breakers, response cache and a deterministic
template fallback.
"""

from src.narrative.cache import ResponseCache
from src.narrative.chain import ProviderChain
from src.narrative.models import CANONICAL_SECTIONS, Narrative, NarrativeRequest
from src.narrative.parsing import parse_provider_response
from src.narrative.prompts import build_prompt
from src.narrative.providers import (
    AnthropicNarrativeProvider,
    CallableNarrativeProvider,
    NarrativeProvider,
)
from src.narrative.templates import TemplateNarrativeBuilder

__all__ = [
    "AnthropicNarrativeProvider",
    "CANONICAL_SECTIONS",
    "CallableNarrativeProvider",
    "Narrative",
    "NarrativeProvider",
    "NarrativeRequest",
    "ProviderChain",
    "ResponseCache",
    "TemplateNarrativeBuilder",
    "build_prompt",
    "parse_provider_response",
]
