# src/llm/client_factory.py — v3
"""Provider registry: one client instance per vendor.

Client classes are resolved lazily from their import path so that custom
vendors can be plugged in with register_provider(). API keys, base URLs and
timeouts come from Settings.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, Iterable

from polyllm.config.settings import Settings
from polyllm.llm.base_client import BaseProviderClient
from polyllm.llm.model_registry import AIProvider
from polyllm.llm.transport import BaseTransport

logger = logging.getLogger(__name__)

# Provider → client class path (lazy import).
_PROVIDER_REGISTRY: dict[AIProvider, str] = {
    AIProvider.OPENAI: "polyllm.llm.adapters.openai_adapter.OpenAIClient",
    AIProvider.GROK: "polyllm.llm.adapters.grok_adapter.GrokClient",
    AIProvider.GEMINI: "polyllm.llm.adapters.google_adapter.GeminiClient",
}


class UnsupportedProviderError(ValueError):
    """Raised when no client is registered for a provider."""


def create_provider_client(
    provider: AIProvider,
    settings: Settings | None = None,
    transport: BaseTransport | None = None,
    **kwargs: Any,
) -> BaseProviderClient:
    """Instantiate the client serving provider.

    Args:
        provider: Vendor tag.
        settings: Application settings (API keys, base URLs, timeout).
        transport: HTTP primitive shared by the client. Defaults to httpx.
        **kwargs: Additional client constructor arguments.

    Returns:
        Configured BaseProviderClient instance.

    Raises:
        UnsupportedProviderError: If provider is not registered.
    """
    if provider not in _PROVIDER_REGISTRY:
        raise UnsupportedProviderError(
            f"Unsupported provider: {provider!r}. "
            f"Available: {', '.join(sorted(p.value for p in _PROVIDER_REGISTRY))}"
        )

    client_cls = _import_class(_PROVIDER_REGISTRY[provider])

    init_kwargs = dict(kwargs)
    init_kwargs.setdefault("transport", transport)
    if settings is not None:
        init_kwargs.setdefault("api_key", settings.api_key_for(provider))
        init_kwargs.setdefault("base_url", settings.base_url_for(provider))
        init_kwargs.setdefault("default_timeout_s", settings.request_timeout_s)
        if provider == AIProvider.OPENAI:
            init_kwargs.setdefault("function_style", settings.openai_function_style)

    logger.debug("Creating provider client: provider=%s", provider.value)
    return client_cls(**init_kwargs)


def register_provider(provider: AIProvider, class_path: str) -> None:
    """Register a custom client class for a provider.

    Args:
        provider: Vendor tag.
        class_path: Fully qualified class path implementing BaseProviderClient.
    """
    _PROVIDER_REGISTRY[provider] = class_path
    logger.info("Registered provider client: %s → %s", provider.value, class_path)


def _import_class(class_path: str) -> type:
    """Dynamically import a class from its fully qualified path."""
    module_path, class_name = class_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)


class ProviderRegistry:
    """Maps each provider tag to exactly one client instance."""

    def __init__(self, clients: Iterable[BaseProviderClient] = ()) -> None:
        self._clients: dict[AIProvider, BaseProviderClient] = {}
        for client in clients:
            self.register(client)

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        transport: BaseTransport | None = None,
    ) -> ProviderRegistry:
        """Build a registry holding a client for every registered provider."""
        settings = settings or Settings()
        return cls(
            create_provider_client(provider, settings, transport)
            for provider in list(_PROVIDER_REGISTRY)
        )

    def register(self, client: BaseProviderClient) -> None:
        self._clients[client.provider] = client

    def get(self, provider: AIProvider) -> BaseProviderClient | None:
        return self._clients.get(provider)

    def get_or_raise(self, provider: AIProvider) -> BaseProviderClient:
        """Return the client for provider.

        Raises:
            UnsupportedProviderError: If no client is registered.
        """
        client = self._clients.get(provider)
        if client is None:
            raise UnsupportedProviderError(
                f"No client registered for provider {provider.value!r}"
            )
        return client

    @property
    def providers(self) -> list[AIProvider]:
        return list(self._clients)

    def __len__(self) -> int:
        return len(self._clients)
