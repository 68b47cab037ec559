"""
NeuroNote - Narrative Provider and Prompt Unit Tests
====================================================

Tests for the Anthropic provider (with a stubbed client), the callable
adapter and prompt building.
"""

from types import SimpleNamespace

import pytest

from src.shared.exceptions import APIKeyError, MalformedProviderResponse


class StubMessages:
    """Stands in for ``client.messages``."""

    def __init__(self, blocks):
        self.blocks = blocks
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        return SimpleNamespace(
            content=self.blocks,
            usage=SimpleNamespace(input_tokens=812, output_tokens=240),
        )


def stub_client(*texts):
    blocks = [SimpleNamespace(type="text", text=t) for t in texts]
    return SimpleNamespace(messages=StubMessages(blocks))


# =============================================================================
# Anthropic Provider
# =============================================================================

class TestAnthropicProvider:
    """Tests for the Anthropic narrative provider."""

    @pytest.mark.asyncio
    async def test_generate_joins_text_blocks(self):
        """Text blocks are concatenated and stripped."""
        from src.narrative.providers import AnthropicNarrativeProvider

        client = stub_client('{"hospital_course": ', '"Uneventful."}\n')
        provider = AnthropicNarrativeProvider(api_key="test-key", client=client)

        text = await provider.generate("prompt")

        assert text == '{"hospital_course": "Uneventful."}'
        assert client.messages.kwargs["messages"] == [{"role": "user", "content": "prompt"}]
        assert client.messages.kwargs["model"] == provider.config.model

    @pytest.mark.asyncio
    async def test_empty_completion(self):
        """An empty completion is malformed."""
        from src.narrative.providers import AnthropicNarrativeProvider

        provider = AnthropicNarrativeProvider(api_key="test-key", client=stub_client("  "))

        with pytest.raises(MalformedProviderResponse):
            await provider.generate("prompt")

    @pytest.mark.asyncio
    async def test_missing_key(self, monkeypatch):
        """No API key fails before any request."""
        from src.narrative.providers import AnthropicNarrativeProvider

        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        provider = AnthropicNarrativeProvider()

        with pytest.raises(APIKeyError):
            await provider.generate("prompt")

    def test_satisfies_protocol(self):
        """Both provider classes satisfy NarrativeProvider."""
        from src.narrative.providers import (
            AnthropicNarrativeProvider,
            CallableNarrativeProvider,
            NarrativeProvider,
        )

        async def echo(prompt):
            return prompt

        assert isinstance(AnthropicNarrativeProvider(api_key="k"), NarrativeProvider)
        assert isinstance(CallableNarrativeProvider("echo", echo), NarrativeProvider)

    @pytest.mark.asyncio
    async def test_callable_provider(self):
        """The adapter forwards the prompt to the wrapped function."""
        from src.narrative.providers import CallableNarrativeProvider

        async def sections(prompt):
            return {"hospital_course": f"Seen {len(prompt)} chars."}

        provider = CallableNarrativeProvider("local", sections)

        assert await provider.generate("abc") == {"hospital_course": "Seen 3 chars."}


# =============================================================================
# Prompt Building
# =============================================================================

class TestPrompts:
    """Tests for prompt construction."""

    def test_prompt_is_deterministic(self, complete_result):
        """Same request, same prompt (and cache key)."""
        from src.narrative.models import NarrativeRequest
        from src.narrative.prompts import build_prompt

        request = NarrativeRequest(extracted=complete_result)

        assert build_prompt(request) == build_prompt(request)

    def test_prompt_carries_structured_data(self, complete_result):
        """Extracted values, dates and doses appear in the prompt."""
        from src.narrative.models import NarrativeRequest
        from src.narrative.prompts import build_prompt

        prompt = build_prompt(NarrativeRequest(extracted=complete_result))

        assert '"date": "2024-03-11"' in prompt
        assert '"dose": "60"' in prompt
        assert '"hospital_course"' in prompt

    def test_style_and_pathology(self, complete_result):
        """Style and pathology guidance change the prompt."""
        from src.narrative.models import NarrativeRequest
        from src.narrative.prompts import PATHOLOGY_GUIDANCE, STYLE_INSTRUCTIONS, build_prompt

        prompt = build_prompt(NarrativeRequest(extracted=complete_result, style="bullet", pathology="SAH"))

        assert STYLE_INSTRUCTIONS["bullet"] in prompt
        assert PATHOLOGY_GUIDANCE["sah"] in prompt

    def test_structured_payload_skips_empty_fields(self, complete_result):
        """Fields without values are left out."""
        from src.narrative.models import NarrativeRequest
        from src.narrative.prompts import structured_payload

        payload = structured_payload(NarrativeRequest(extracted=complete_result))

        assert "functional_score" not in payload
        assert payload["medication"][0]["frequency"] == "q4h"
