# src/llm/adapters/chat_completions.py — v1
"""Shared client for OpenAI-compatible chat-completions endpoints.

OpenAI and xAI Grok speak the same request and response shapes; they only
differ in endpoint, key variable and how function declarations are sent
(legacy ``functions`` versus ``tools``).
"""

from __future__ import annotations

from typing import Any, Literal

from polyllm.llm.base_client import BaseProviderClient, DeltaCallback, merge_extra_body
from polyllm.llm.model_registry import ModelSpec
from polyllm.llm.models import ChatRequestOptions, Message, RawChatResult, RawChatStreamResult
from polyllm.llm.payload_builder import build_openai_messages
from polyllm.llm.transport import BaseTransport
from polyllm.schema.definitions import FunctionDefinition

FunctionStyle = Literal["functions", "tools"]


class ChatCompletionsClient(BaseProviderClient):
    """Base for vendors exposing ``POST {base_url}/chat/completions``."""

    function_style: FunctionStyle = "tools"

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        transport: BaseTransport | None = None,
        default_timeout_s: float | None = None,
        function_style: FunctionStyle | None = None,
    ) -> None:
        super().__init__(api_key, base_url, transport, default_timeout_s)
        if function_style is not None:
            self.function_style = function_style

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    @property
    def chat_url(self) -> str:
        return f"{self._base_url}/chat/completions"

    def _base_body(self, spec: ModelSpec, messages: list[Message]) -> dict[str, Any]:
        return {"model": spec.model_id, "messages": build_openai_messages(messages)}

    def _apply_functions(self, body: dict[str, Any], functions: list[FunctionDefinition]) -> None:
        if not functions:
            return
        if self.function_style == "tools":
            body["tools"] = [function_tool(f) for f in functions]
            body["tool_choice"] = "auto"
        else:
            body["functions"] = [legacy_function(f) for f in functions]
            body["function_call"] = "auto"

    async def send_chat(
        self,
        spec: ModelSpec,
        messages: list[Message],
        options: ChatRequestOptions | None = None,
    ) -> RawChatResult:
        options = options or ChatRequestOptions()
        if not self.has_api_key:
            return self._missing_key(RawChatResult, spec)

        body = self._base_body(spec, messages)
        self._apply_functions(body, options.functions)
        merge_extra_body(body, options.extra_body)
        return await self._post(spec, self.chat_url, self._headers(), body, options)

    async def send_structured_chat(
        self,
        spec: ModelSpec,
        messages: list[Message],
        schema: dict[str, Any],
        options: ChatRequestOptions | None = None,
    ) -> RawChatResult:
        options = options or ChatRequestOptions()
        if not self.has_api_key:
            return self._missing_key(RawChatResult, spec)

        body = self._base_body(spec, messages)
        body["response_format"] = {"type": "json_schema", "json_schema": schema}
        merge_extra_body(body, options.extra_body)
        return await self._post(spec, self.chat_url, self._headers(), body, options)

    async def send_chat_stream(
        self,
        spec: ModelSpec,
        messages: list[Message],
        on_delta: DeltaCallback,
        options: ChatRequestOptions | None = None,
    ) -> RawChatStreamResult:
        options = options or ChatRequestOptions()
        if not self.has_api_key:
            return self._missing_key(RawChatStreamResult, spec)

        body = self._base_body(spec, messages)
        body["stream"] = True
        merge_extra_body(body, options.extra_body)
        return await self._stream(
            spec, self.chat_url, self._headers(), body, on_delta, options,
            chat_completion_delta,
        )


def chat_completion_delta(event: dict[str, Any]) -> str | None:
    """Text fragment of one streamed chunk (``choices[0].delta.content``)."""
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    content = delta.get("content") if isinstance(delta, dict) else None
    return content if isinstance(content, str) else None


def function_tool(definition: FunctionDefinition) -> dict[str, Any]:
    """Declaration in the current ``tools`` format."""
    schema = definition.generate_schema()
    parameters = schema.get("parameters") or schema.get("schema") or {"type": "object"}
    function: dict[str, Any] = {"name": definition.name, "parameters": parameters}
    if definition.description:
        function["description"] = definition.description
    return {"type": "function", "function": function}


def legacy_function(definition: FunctionDefinition) -> dict[str, Any]:
    """Declaration in the legacy ``functions`` format."""
    schema = definition.generate_schema()
    declaration: dict[str, Any] = {"name": definition.name}
    if definition.description:
        declaration["description"] = definition.description
    declaration["parameters"] = schema.get("parameters") or {"type": "object"}
    return declaration
