# tests/unit/llm/test_unit_client_factory.py — v1
"""Tests for llm/client_factory.py — provider client construction."""

from __future__ import annotations

import pytest

from polyllm.llm import client_factory
from polyllm.llm.adapters.google_adapter import GeminiClient
from polyllm.llm.adapters.grok_adapter import GrokClient
from polyllm.llm.adapters.openai_adapter import OpenAIClient
from polyllm.llm.client_factory import (
    ProviderRegistry,
    UnsupportedProviderError,
    create_provider_client,
    register_provider,
)
from polyllm.llm.model_registry import AIProvider


class TestCreateProviderClient:
    @pytest.mark.parametrize("provider,cls", [
        (AIProvider.OPENAI, OpenAIClient),
        (AIProvider.GROK, GrokClient),
        (AIProvider.GEMINI, GeminiClient),
    ])
    def test_class_per_provider(self, provider, cls, settings, fake_transport):
        client = create_provider_client(provider, settings, fake_transport)
        assert isinstance(client, cls)
        assert client.provider == provider
        assert client.has_api_key

    def test_settings_applied(self, fake_transport):
        from polyllm.config.settings import Settings

        settings = Settings(
            _env_file=None,
            openai_api_key="sk-x",
            openai_base_url="https://gateway.local/openai",
            openai_function_style="tools",
            request_timeout_s=12,
        )
        client = create_provider_client(AIProvider.OPENAI, settings, fake_transport)
        assert client._base_url == "https://gateway.local/openai"
        assert client.function_style == "tools"
        assert client._default_timeout_s == 12

    def test_kwargs_override_settings(self, settings, fake_transport):
        client = create_provider_client(
            AIProvider.GROK, settings, fake_transport, api_key="override",
        )
        assert client._api_key == "override"

    def test_unregistered_provider(self, monkeypatch):
        monkeypatch.delitem(client_factory._PROVIDER_REGISTRY, AIProvider.GROK)
        with pytest.raises(UnsupportedProviderError, match="grok"):
            create_provider_client(AIProvider.GROK)

    def test_register_provider(self, monkeypatch, fake_transport):
        monkeypatch.setitem(client_factory._PROVIDER_REGISTRY, AIProvider.GROK,
                            client_factory._PROVIDER_REGISTRY[AIProvider.GROK])
        register_provider(AIProvider.GROK, "polyllm.llm.adapters.openai_adapter.OpenAIClient")
        client = create_provider_client(AIProvider.GROK, transport=fake_transport)
        assert isinstance(client, OpenAIClient)


class TestProviderRegistry:
    def test_from_settings_covers_all_providers(self, settings, fake_transport):
        registry = ProviderRegistry.from_settings(settings, fake_transport)
        assert len(registry) == 3
        assert set(registry.providers) == set(AIProvider)

    def test_one_client_per_provider(self, fake_transport):
        registry = ProviderRegistry([
            GrokClient(api_key="a", transport=fake_transport),
            GrokClient(api_key="b", transport=fake_transport),
        ])
        assert len(registry) == 1
        assert registry.get(AIProvider.GROK)._api_key == "b"

    def test_get_or_raise(self, fake_transport):
        registry = ProviderRegistry([GrokClient(transport=fake_transport)])
        assert registry.get(AIProvider.OPENAI) is None
        with pytest.raises(UnsupportedProviderError):
            registry.get_or_raise(AIProvider.OPENAI)
