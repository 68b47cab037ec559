"""
NeuroNote - Narrative Provider Chain
====================================

One coordinator that turns a ``NarrativeRequest`` into a ``Narrative``:

1. Build the prompt; serve from the response cache when possible
2. Try each provider in order, one at a time, each behind its own circuit
   breaker and an explicit timeout
3. The first provider whose output parses wins; its narrative is cached
4. If every provider fails, assemble the template narrative

Provider failures (timeout, API error, malformed output, open circuit) are
logged and never surface to the caller. Cancellation does: an in-flight
call is abandoned and nothing partial is returned or cached.

Usage:
    chain = ProviderChain(
        providers=[AnthropicNarrativeProvider()],
        cache=ResponseCache(ttl_seconds=3600, capacity=100),
        timeout=30.0,
    )
    narrative = await chain.generate(NarrativeRequest(extracted=result))
"""

import asyncio
import logging
from typing import Dict, List, Optional, Sequence

from src.core.config import NarrativeConfig
from src.narrative.cache import ResponseCache
from src.narrative.models import Narrative, NarrativeRequest
from src.narrative.parsing import parse_provider_response
from src.narrative.prompts import build_prompt
from src.narrative.providers import NarrativeProvider
from src.narrative.templates import TemplateNarrativeBuilder
from src.shared.exceptions import (
    ConfigurationError,
    ProviderError,
    ProviderTimeout,
    ProviderUnavailable,
)
from src.utils.circuit_breaker import CircuitBreaker, CircuitOpenError, get_circuit_health

logger = logging.getLogger(__name__)


class ProviderChain:
    """Sequential provider fallback with template narrative as last resort."""

    def __init__(
        self,
        providers: Sequence[NarrativeProvider] = (),
        template: Optional[TemplateNarrativeBuilder] = None,
        cache: Optional[ResponseCache] = None,
        timeout: Optional[float] = None,
        config: Optional[NarrativeConfig] = None,
    ):
        self.config = config or NarrativeConfig()
        self.providers: List[NarrativeProvider] = list(providers)
        self.template = template or TemplateNarrativeBuilder()
        self.cache = cache
        self.timeout = timeout if timeout is not None else self.config.timeout_seconds

        names = [p.name for p in self.providers]
        if len(names) != len(set(names)):
            raise ConfigurationError(f"Provider names must be unique: {names}")

        self._breakers: Dict[str, CircuitBreaker] = {
            p.name: CircuitBreaker(
                name=p.name,
                failure_threshold=self.config.failure_threshold,
                reset_timeout=self.config.reset_timeout,
            )
            for p in self.providers
        }

    @classmethod
    def from_config(
        cls,
        providers: Sequence[NarrativeProvider],
        config: NarrativeConfig,
    ) -> "ProviderChain":
        """Chain with a response cache sized from the config."""
        return cls(
            providers=providers,
            cache=ResponseCache(ttl_seconds=config.cache_ttl_seconds, capacity=config.cache_capacity),
            config=config,
        )

    # =========================================================================
    # Generation
    # =========================================================================

    async def generate(self, request: NarrativeRequest) -> Narrative:
        """First successful provider narrative, or the template narrative."""
        prompt = build_prompt(request)
        key = self.cache.make_key(prompt) if self.cache is not None else None

        if key is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached.as_cached()

        for provider in self.providers:
            try:
                narrative = await self._call(provider, prompt)
            except ProviderError as e:
                logger.warning(f"Narrative provider failed, trying next: {e}")
                continue

            if key is not None:
                self.cache.put(key, narrative)
            logger.info(f"Narrative generated by {provider.name} ({len(narrative.sections)} sections)")
            return narrative

        if self.providers:
            logger.warning(
                f"All {len(self.providers)} narrative providers failed; using template narrative"
            )
        return self.template.build(request.extracted)

    async def _call(self, provider: NarrativeProvider, prompt: str) -> Narrative:
        """
        One provider attempt.

        Raises:
            ProviderUnavailable: circuit open
            ProviderTimeout: no answer within ``timeout``
            MalformedProviderResponse: output did not parse
            ProviderError: any other provider failure
        """
        breaker = self._breakers[provider.name]
        try:
            async with breaker:
                raw = await asyncio.wait_for(provider.generate(prompt), timeout=self.timeout)
                return parse_provider_response(raw, provider.name)
        except CircuitOpenError as e:
            raise ProviderUnavailable(str(e), provider.name) from e
        except asyncio.TimeoutError as e:
            raise ProviderTimeout(f"No response within {self.timeout}s", provider.name) from e
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(f"Unexpected error: {e}", provider.name) from e

    # =========================================================================
    # Introspection
    # =========================================================================

    def breaker(self, name: str) -> CircuitBreaker:
        return self._breakers[name]

    def health(self) -> Dict[str, Dict]:
        """Circuit state of each provider, for health endpoints."""
        return get_circuit_health(self._breakers)
