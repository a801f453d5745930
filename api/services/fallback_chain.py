"""
Fallback chain: try generation adapters in priority order until one succeeds.
"""
import logging
from typing import List, Optional, Sequence

from core.exceptions import AllProvidersExhausted, ProviderError
from services.generation_providers import GeneratedArtifact, GenerationOptions, GenerationProvider

logger = logging.getLogger(__name__)


async def generate_with_fallback(
    providers: Sequence[GenerationProvider],
    prompt: str,
    negative_prompt: str = "",
    options: Optional[GenerationOptions] = None,
) -> GeneratedArtifact:
    """
    Call each provider once, in order, returning the first artifact produced.

    A ProviderError advances to the next provider; the same provider is never retried
    within one pass (retry with backoff belongs to the video queue).

    Raises:
        AllProvidersExhausted: when every provider failed, carrying the last error
    """
    errors: List[ProviderError] = []

    for index, provider in enumerate(providers):
        try:
            artifact = await provider.generate(prompt, negative_prompt, options)
        except ProviderError as e:
            errors.append(e)
            remaining = len(providers) - index - 1
            if remaining:
                logger.warning(f"{provider.name} failed ({e.message}); falling back to {providers[index + 1].name}")
            else:
                logger.error(f"{provider.name} failed ({e.message}); no providers left")
            continue

        if errors:
            logger.info(f"Generated with fallback provider {provider.name} after {len(errors)} failure(s)")
        return artifact

    raise AllProvidersExhausted(errors[-1] if errors else None, errors)


class FallbackChain:
    """Ordered list of adapters for one kind of generation"""

    def __init__(self, providers: Sequence[GenerationProvider]):
        self.providers = list(providers)

    @property
    def provider_names(self) -> List[str]:
        return [p.name for p in self.providers]

    async def generate(
        self,
        prompt: str,
        negative_prompt: str = "",
        options: Optional[GenerationOptions] = None,
    ) -> GeneratedArtifact:
        return await generate_with_fallback(self.providers, prompt, negative_prompt, options)
