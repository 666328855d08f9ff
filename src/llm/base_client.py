# src/llm/base_client.py — v2
"""Abstract provider client interface and shared request plumbing.

Each vendor client turns provider-agnostic messages into its wire format,
sends exactly one HTTP exchange through a BaseTransport and wraps the
outcome in a Raw* result. Clients never raise for a missing API key or a
failed exchange: the raw result carries the failure instead. Operations a
vendor does not offer raise UnsupportedOperationError.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, TypeVar

from polyllm.llm.errors import UnsupportedOperationError
from polyllm.llm.model_registry import AIProvider, ModelSpec
from polyllm.llm.models import (
    ChatRequestOptions,
    FailureKind,
    Message,
    RawChatResult,
    RawChatStreamResult,
    RawEmbeddingResult,
    RawImageResult,
    RawResult,
)
from polyllm.llm.sse import SseEventParser
from polyllm.llm.transport import BaseTransport, HttpResponse, HttpxTransport

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=RawResult)

DeltaCallback = Callable[[str], None]


class BaseProviderClient(ABC):
    """Unified interface for all LLM vendors."""

    api_key_env: str = ""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        transport: BaseTransport | None = None,
        default_timeout_s: float | None = None,
    ) -> None:
        self._api_key = api_key or None
        self._base_url = (base_url or self.default_base_url).rstrip("/")
        self._transport = transport or HttpxTransport()
        self._default_timeout_s = default_timeout_s

    @property
    @abstractmethod
    def provider(self) -> AIProvider:
        """Vendor served by this client."""

    @property
    @abstractmethod
    def default_base_url(self) -> str:
        """API root used when no base_url is configured."""

    @abstractmethod
    async def send_chat(
        self,
        spec: ModelSpec,
        messages: list[Message],
        options: ChatRequestOptions | None = None,
    ) -> RawChatResult:
        """Plain chat, optionally offering options.functions to the model."""

    @abstractmethod
    async def send_structured_chat(
        self,
        spec: ModelSpec,
        messages: list[Message],
        schema: dict[str, Any],
        options: ChatRequestOptions | None = None,
    ) -> RawChatResult:
        """Chat constrained to schema (``{"name": ..., "schema": ...}``)."""

    @abstractmethod
    async def send_chat_stream(
        self,
        spec: ModelSpec,
        messages: list[Message],
        on_delta: DeltaCallback,
        options: ChatRequestOptions | None = None,
    ) -> RawChatStreamResult:
        """Streamed chat; each text delta is pushed to on_delta as it arrives."""

    async def generate_image(
        self,
        spec: ModelSpec,
        messages: list[Message],
        options: ChatRequestOptions | None = None,
    ) -> RawImageResult:
        raise UnsupportedOperationError(
            f"{self.provider.label} client does not support image generation"
        )

    async def create_embeddings(
        self,
        spec: ModelSpec,
        texts: list[str],
        options: ChatRequestOptions | None = None,
    ) -> RawEmbeddingResult:
        raise UnsupportedOperationError(
            f"{self.provider.label} client does not support embeddings"
        )

    # --- shared plumbing ---

    @property
    def has_api_key(self) -> bool:
        return self._api_key is not None

    def missing_key_hint(self) -> str:
        return (
            f"Provide a {self.provider.label} API key via the {self.api_key_env} "
            f"environment variable or the .env file."
        )

    def _missing_key(self, result_type: type[R], spec: ModelSpec) -> R:
        logger.error(
            "%s API key not configured (model %s). %s",
            self.provider.label, spec.model_id, self.missing_key_hint(),
        )
        return self._failure(
            result_type, spec, f"Missing {self.provider.label} API key",
            FailureKind.MISSING_API_KEY,
        )

    def _failure(
        self,
        result_type: type[R],
        spec: ModelSpec,
        message: str,
        failure: FailureKind,
        status_code: int = 0,
        raw_json: str = "",
    ) -> R:
        return result_type(
            provider=self.provider,
            model_id=spec.model_id,
            is_success=False,
            status_code=status_code,
            error_message=message,
            failure=failure,
            raw_json=raw_json,
        )

    def _timeout(self, options: ChatRequestOptions) -> float | None:
        return options.timeout_s if options.timeout_s is not None else self._default_timeout_s

    async def _post(
        self,
        spec: ModelSpec,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
        options: ChatRequestOptions,
        result_type: type[R] = RawChatResult,  # type: ignore[assignment]
    ) -> R:
        response = await self._transport.post_json(
            url, headers, body,
            timeout=self._timeout(options), cancel_event=options.cancel_event,
        )
        return self._to_raw(result_type, spec, response)

    def _to_raw(self, result_type: type[R], spec: ModelSpec, response: HttpResponse) -> R:
        if not response.ok:
            logger.error(
                "%s request for %s failed (status %d): %s",
                self.provider.label, spec.model_id, response.status_code,
                _truncate(response.text) or response.error,
            )
            return self._failure(
                result_type, spec, response.error or "Request failed",
                FailureKind.TRANSPORT, response.status_code, response.text,
            )
        try:
            body = json.loads(response.text)
        except json.JSONDecodeError as exc:
            logger.error("%s returned non-JSON body for %s: %s",
                         self.provider.label, spec.model_id, exc)
            return self._failure(
                result_type, spec, f"Invalid JSON response: {exc}",
                FailureKind.INVALID_RESPONSE, response.status_code, response.text,
            )
        if not isinstance(body, dict):
            return self._failure(
                result_type, spec, "Response body is not a JSON object",
                FailureKind.INVALID_RESPONSE, response.status_code, response.text,
            )
        return result_type(
            provider=self.provider,
            model_id=spec.model_id,
            is_success=True,
            status_code=response.status_code,
            raw_json=response.text,
            body=body,
        )

    async def _stream(
        self,
        spec: ModelSpec,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
        on_delta: DeltaCallback,
        options: ChatRequestOptions,
        delta_of: Callable[[dict[str, Any]], str | None],
    ) -> RawChatStreamResult:
        fragments: list[str] = []
        finished = False

        def on_event(payload: str) -> None:
            nonlocal finished
            if finished:
                return
            if payload.strip() == "[DONE]":
                finished = True
                return
            try:
                event = json.loads(payload)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed stream event: %.120s", payload)
                return
            delta = delta_of(event) if isinstance(event, dict) else None
            if delta:
                fragments.append(delta)
                on_delta(delta)

        parser = SseEventParser(on_event)
        response = await self._transport.post_stream(
            url, headers, body, parser.feed,
            timeout=self._timeout(options), cancel_event=options.cancel_event,
        )
        parser.complete()

        content = "".join(fragments)
        if not response.ok:
            logger.error(
                "%s stream for %s failed (status %d): %s",
                self.provider.label, spec.model_id, response.status_code,
                _truncate(response.text) or response.error,
            )
            return RawChatStreamResult(
                provider=self.provider,
                model_id=spec.model_id,
                is_success=False,
                status_code=response.status_code,
                error_message=response.error or "Stream failed",
                failure=FailureKind.TRANSPORT,
                raw_json=response.text,
                content=content,
            )
        return RawChatStreamResult(
            provider=self.provider,
            model_id=spec.model_id,
            is_success=True,
            status_code=response.status_code,
            raw_json=response.text,
            content=content,
        )


def merge_extra_body(body: dict[str, Any], extra: dict[str, Any] | None) -> dict[str, Any]:
    """Overlay caller-supplied fields onto a request body, in place.

    Top-level keys are overwritten; when both sides hold a mapping, the
    nested keys are merged with the caller's values winning.
    """
    for key, value in (extra or {}).items():
        current = body.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            body[key] = {**current, **value}
        else:
            body[key] = value
    return body


def _truncate(text: str, limit: int = 500) -> str:
    return text if len(text) <= limit else text[:limit] + "..."
