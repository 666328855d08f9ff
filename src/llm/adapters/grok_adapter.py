# src/llm/adapters/grok_adapter.py — v1
"""xAI Grok client (OpenAI-compatible chat completions, ``tools`` declarations).

Grok offers neither image generation nor embeddings here; both raise
UnsupportedOperationError through the base class.
"""

from __future__ import annotations

from polyllm.llm.adapters.chat_completions import ChatCompletionsClient, FunctionStyle
from polyllm.llm.model_registry import AIProvider


class GrokClient(ChatCompletionsClient):
    """Grok chat-completions client."""

    api_key_env = "GROK_API_KEY"
    function_style: FunctionStyle = "tools"

    @property
    def provider(self) -> AIProvider:
        return AIProvider.GROK

    @property
    def default_base_url(self) -> str:
        return "https://api.x.ai/v1"
