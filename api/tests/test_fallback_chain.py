"""
Tests for the ordered provider fallback chain.
"""
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import make_artifact

from core.exceptions import AllProvidersExhausted, ProviderError
from services.fallback_chain import FallbackChain, generate_with_fallback
from services.generation_providers import GenerationOptions


def mock_provider(name, result=None, error=None):
    provider = MagicMock()
    provider.name = name
    if error is not None:
        provider.generate = AsyncMock(side_effect=error)
    else:
        provider.generate = AsyncMock(return_value=result or make_artifact(provider=name))
    return provider


class TestFallbackChain:
    @pytest.mark.asyncio
    async def test_primary_success_short_circuits(self):
        primary = mock_provider("imagen")
        secondary = mock_provider("stable_diffusion")

        artifact = await generate_with_fallback([primary, secondary], "gold ring", "blurry")

        assert artifact.provider == "imagen"
        primary.generate.assert_awaited_once_with("gold ring", "blurry", None)
        secondary.generate.assert_not_called()

    @pytest.mark.asyncio
    async def test_falls_back_after_primary_failure(self):
        primary = mock_provider("imagen", error=ProviderError("imagen", "500 internal", status_code=500))
        secondary = mock_provider("stable_diffusion")
        options = GenerationOptions(kind="image")

        artifact = await FallbackChain([primary, secondary]).generate("gold ring", "blurry", options)

        assert artifact.provider == "stable_diffusion"
        assert primary.generate.await_count == 1
        secondary.generate.assert_awaited_once_with("gold ring", "blurry", options)

    @pytest.mark.asyncio
    async def test_all_failures_raise_with_last_error(self):
        first_error = ProviderError("imagen", "quota", status_code=429)
        last_error = ProviderError("stable_diffusion", "model offline", status_code=503)
        chain = FallbackChain(
            [mock_provider("imagen", error=first_error), mock_provider("stable_diffusion", error=last_error)]
        )

        with pytest.raises(AllProvidersExhausted) as exc_info:
            await chain.generate("gold ring")

        assert exc_info.value.errors == [first_error, last_error]
        assert exc_info.value.last_error is last_error
        assert exc_info.value.details["providers"] == ["imagen", "stable_diffusion"]

    @pytest.mark.asyncio
    async def test_empty_chain_is_exhausted(self):
        with pytest.raises(AllProvidersExhausted) as exc_info:
            await FallbackChain([]).generate("gold ring")

        assert exc_info.value.last_error is None
        assert exc_info.value.errors == []
        assert "no providers configured" in exc_info.value.message

    def test_provider_names_in_priority_order(self):
        chain = FallbackChain([mock_provider("imagen"), mock_provider("stable_diffusion")])
        assert chain.provider_names == ["imagen", "stable_diffusion"]


def test_exhausted_error_keeps_given_last_error():
    quota = ProviderError("imagen", "quota", status_code=429)
    offline = ProviderError("stable_diffusion", "model offline", status_code=503)

    error = AllProvidersExhausted(offline, [quota, offline])

    assert error.last_error is offline
    assert error.errors == [quota, offline]
    assert error.message.endswith("last error: stable_diffusion: model offline")
