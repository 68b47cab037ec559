"""
NeuroNote - Narrative Providers
===============================

Provider handles for the narrative chain. A provider has a ``name`` and an
``async generate(prompt)`` returning either raw text or a section map; it
fails with ``ProviderTimeout``, ``ProviderError`` or
``MalformedProviderResponse``.

Usage:
    provider = AnthropicNarrativeProvider(api_key=os.getenv("ANTHROPIC_API_KEY"))
    raw = await provider.generate(prompt)
"""

import logging
import os
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union, runtime_checkable

import anthropic

from src.core.config import NarrativeConfig
from src.narrative.prompts import SYSTEM_PROMPT
from src.shared.exceptions import (
    APIKeyError,
    MalformedProviderResponse,
    ProviderError,
    ProviderTimeout,
)

logger = logging.getLogger(__name__)

ProviderOutput = Union[str, Dict[str, Any]]


@runtime_checkable
class NarrativeProvider(Protocol):
    """Text-completion collaborator used by the provider chain."""

    name: str

    async def generate(self, prompt: str) -> ProviderOutput:
        ...


# =============================================================================
# Anthropic
# =============================================================================

class AnthropicNarrativeProvider:
    """Claude via the Anthropic async client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        config: Optional[NarrativeConfig] = None,
        name: str = "anthropic",
        client: Optional[Any] = None,
    ):
        self.name = name
        self.config = config or NarrativeConfig()
        self.api_key = api_key or os.getenv("ANTHROPIC_API_KEY")
        self._client = client

    def _get_client(self):
        """Get async Anthropic client."""
        if self._client is None:
            if not self.api_key:
                raise APIKeyError("ANTHROPIC_API_KEY is not set", self.name)
            self._client = anthropic.AsyncAnthropic(
                api_key=self.api_key,
                timeout=self.config.timeout_seconds,
            )
        return self._client

    async def generate(self, prompt: str) -> str:
        client = self._get_client()
        try:
            response = await client.messages.create(
                model=self.config.model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APITimeoutError as e:
            raise ProviderTimeout(f"Request timed out: {e}", self.name) from e
        except anthropic.AuthenticationError as e:
            raise APIKeyError(f"Authentication failed: {e}", self.name) from e
        except anthropic.APIError as e:
            raise ProviderError(f"API error: {e}", self.name) from e

        blocks = [block.text for block in response.content if getattr(block, "type", "text") == "text"]
        text = "".join(blocks).strip()
        if not text:
            raise MalformedProviderResponse("Empty completion", self.name)

        usage = getattr(response, "usage", None)
        if usage is not None:
            logger.debug(
                f"{self.name}: {usage.input_tokens} input / {usage.output_tokens} output tokens"
            )
        return text


# =============================================================================
# Callable adapter
# =============================================================================

class CallableNarrativeProvider:
    """Wraps any ``async (prompt) -> str | dict`` function as a provider."""

    def __init__(self, name: str, func: Callable[[str], Awaitable[ProviderOutput]]):
        self.name = name
        self._func = func

    async def generate(self, prompt: str) -> ProviderOutput:
        return await self._func(prompt)
