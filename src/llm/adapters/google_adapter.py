# src/llm/adapters/google_adapter.py — v3
"""Google Gemini client over the generativelanguage REST API.

Chat, structured output and streaming go through ``generateContent`` /
``streamGenerateContent``; image generation reuses ``generateContent`` with
IMAGE response modality; embeddings call ``embedContent`` once per text.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Callable

from polyllm.embedding.vector import Embedding
from polyllm.llm.base_client import BaseProviderClient, DeltaCallback, merge_extra_body
from polyllm.llm.model_registry import AIProvider, ModelSpec
from polyllm.llm.models import (
    DEFAULT_IMAGE_MIME,
    ChatRequestOptions,
    FailureKind,
    GeneratedImage,
    Message,
    RawChatResult,
    RawChatStreamResult,
    RawEmbeddingResult,
    RawImageResult,
)
from polyllm.llm.payload_builder import build_gemini_contents, sanitize_gemini_parameters
from polyllm.llm.result_parser import gemini_parts
from polyllm.schema.definitions import FunctionDefinition

logger = logging.getLogger(__name__)

EMBEDDING_MODEL = "gemini-embedding-001"


class GeminiClient(BaseProviderClient):
    """Gemini generateContent / embedContent client."""

    api_key_env = "GOOGLE_API_KEY"

    @property
    def provider(self) -> AIProvider:
        return AIProvider.GEMINI

    @property
    def default_base_url(self) -> str:
        return "https://generativelanguage.googleapis.com/v1beta"

    def _headers(self) -> dict[str, str]:
        return {"x-goog-api-key": self._api_key or "", "Content-Type": "application/json"}

    def _url(self, model_id: str, method: str) -> str:
        return f"{self._base_url}/models/{model_id}:{method}"

    async def send_chat(
        self,
        spec: ModelSpec,
        messages: list[Message],
        options: ChatRequestOptions | None = None,
    ) -> RawChatResult:
        options = options or ChatRequestOptions()
        if not self.has_api_key:
            return self._missing_key(RawChatResult, spec)

        body: dict[str, Any] = {"contents": build_gemini_contents(messages)}
        if options.functions:
            body["tools"] = [
                {"function_declarations": [function_declaration(f) for f in options.functions]}
            ]
            body["tool_config"] = {"function_calling_config": {"mode": "AUTO"}}
        merge_extra_body(body, options.extra_body)
        return await self._post(
            spec, self._url(spec.model_id, "generateContent"), self._headers(), body, options,
        )

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

        response_schema = schema.get("schema") if "schema" in schema else schema
        if not isinstance(response_schema, dict) or not response_schema:
            response_schema = {"type": "object"}
        body: dict[str, Any] = {
            "contents": build_gemini_contents(messages),
            "generationConfig": {
                "responseMimeType": "application/json",
                "responseSchema": response_schema,
            },
        }
        merge_extra_body(body, options.extra_body)
        return await self._post(
            spec, self._url(spec.model_id, "generateContent"), self._headers(), body, options,
        )

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

        body: dict[str, Any] = {"contents": build_gemini_contents(messages)}
        merge_extra_body(body, options.extra_body)
        url = self._url(spec.model_id, "streamGenerateContent") + "?alt=sse"
        return await self._stream(spec, url, self._headers(), body, on_delta, options, gemini_delta)

    async def generate_image(
        self,
        spec: ModelSpec,
        messages: list[Message],
        options: ChatRequestOptions | None = None,
    ) -> RawImageResult:
        options = options or ChatRequestOptions()
        if not self.has_api_key:
            return self._missing_key(RawImageResult, spec)

        body: dict[str, Any] = {"contents": build_gemini_contents(messages)}
        merge_extra_body(body, options.extra_body)
        generation_config = body.get("generationConfig")
        if not isinstance(generation_config, dict):
            body["generationConfig"] = {"responseModalities": ["IMAGE"]}
        elif "responseModalities" not in generation_config:
            body["generationConfig"] = {**generation_config, "responseModalities": ["IMAGE"]}

        raw = await self._post(
            spec, self._url(spec.model_id, "generateContent"), self._headers(), body, options,
            result_type=RawImageResult,
        )
        if not raw.is_success:
            return raw
        response_body = raw.body or {}
        return raw.model_copy(update={
            "images": extract_images(response_body),
            "prompt_feedback": prompt_feedback(response_body),
        })

    async def create_embeddings(
        self,
        spec: ModelSpec,
        texts: list[str],
        options: ChatRequestOptions | None = None,
    ) -> RawEmbeddingResult:
        """Embed texts one request at a time, skipping failed items.

        Succeeds when at least one embedding was produced.
        """
        options = options or ChatRequestOptions()
        if not self.has_api_key:
            return self._missing_key(RawEmbeddingResult, spec)
        if not any(text and text.strip() for text in texts):
            return self._failure(
                RawEmbeddingResult, spec, "No input text provided for embedding.",
                FailureKind.NO_INPUT,
            )

        url = self._url(EMBEDDING_MODEL, "embedContent")
        embeddings: list[Embedding] = []
        errors: list[str] = []
        last_status = 0
        for index, text in enumerate(texts):
            if not text or not text.strip():
                continue
            if options.cancel_event is not None and options.cancel_event.is_set():
                errors.append("Request cancelled")
                logger.warning("Gemini embedding batch cancelled at item %d", index)
                break

            body: dict[str, Any] = {
                "model": f"models/{EMBEDDING_MODEL}",
                "content": {"parts": [{"text": text}]},
            }
            if spec.output_dimensionality:
                body["outputDimensionality"] = spec.output_dimensionality

            response = await self._transport.post_json(
                url, self._headers(), body,
                timeout=self._timeout(options), cancel_event=options.cancel_event,
            )
            last_status = response.status_code
            if not response.ok:
                logger.warning(
                    "Gemini embedding %d/%d failed (status %d): %s",
                    index + 1, len(texts), response.status_code, response.error,
                )
                errors.append(response.error or f"HTTP {response.status_code}")
                continue

            values = _embedding_values(response.text)
            if values is None:
                logger.warning("Gemini embedding %d/%d had no values", index + 1, len(texts))
                errors.append("Embedding response contained no values")
                continue
            try:
                embeddings.append(Embedding(spec.model_id, values))
            except (TypeError, ValueError) as exc:
                logger.warning("Gemini embedding %d/%d malformed: %s", index + 1, len(texts), exc)
                errors.append(f"Malformed embedding values: {exc}")

        if not embeddings:
            return self._failure(
                RawEmbeddingResult, spec, "; ".join(errors) or "No embeddings produced",
                FailureKind.TRANSPORT, last_status,
            )
        return RawEmbeddingResult(
            provider=self.provider,
            model_id=spec.model_id,
            is_success=True,
            status_code=last_status,
            error_message="; ".join(errors) or None,
            embeddings=embeddings,
        )


def function_declaration(definition: FunctionDefinition) -> dict[str, Any]:
    """Gemini function declaration with enum constraints sanitized."""
    schema = definition.generate_schema()
    parameters = schema.get("parameters") or {"type": "object"}
    return {
        "name": definition.name,
        "description": definition.description,
        "parameters": sanitize_gemini_parameters(parameters),
    }


def gemini_delta(event: dict[str, Any]) -> str | None:
    """Concatenated text parts of one streamed generateContent chunk."""
    texts = [p["text"] for p in gemini_parts(event) if isinstance(p.get("text"), str)]
    return "".join(texts) or None


def prompt_feedback(body: dict[str, Any]) -> str | None:
    feedback = body.get("promptFeedback") or body.get("prompt_feedback")
    if not isinstance(feedback, dict):
        return None
    reason = feedback.get("blockReason") or feedback.get("block_reason")
    return str(reason) if reason else None


def _images_from_generated_array(body: dict[str, Any]) -> list[GeneratedImage]:
    entries = body.get("generatedImages") or body.get("generated_images")
    if not isinstance(entries, list):
        return []
    nodes = []
    for entry in entries:
        if isinstance(entry, dict):
            nodes.append(entry.get("image") or entry.get("inlineData") or entry.get("inline_data"))
    return _decode_nodes(nodes)


def _images_from_candidate_parts(body: dict[str, Any]) -> list[GeneratedImage]:
    nodes = [part.get("inline_data") or part.get("inlineData") for part in gemini_parts(body)]
    return _decode_nodes(nodes)


IMAGE_EXTRACTORS: tuple[Callable[[dict[str, Any]], list[GeneratedImage]], ...] = (
    _images_from_generated_array,
    _images_from_candidate_parts,
)


def extract_images(body: dict[str, Any]) -> list[GeneratedImage]:
    """Try each known response shape in order; the first yielding images wins."""
    for extractor in IMAGE_EXTRACTORS:
        images = extractor(body)
        if images:
            return images
    return []


def _decode_nodes(nodes: list[Any]) -> list[GeneratedImage]:
    images = []
    for node in nodes:
        if not isinstance(node, dict):
            continue
        data = node.get("data")
        if not isinstance(data, str) or not data:
            continue
        try:
            decoded = base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError):
            logger.debug("Skipping image part with invalid base64 data")
            continue
        if not decoded:
            continue
        mime_type = node.get("mimeType") or node.get("mime_type") or DEFAULT_IMAGE_MIME
        images.append(GeneratedImage(mime_type=mime_type, data=decoded))
    return images


def _embedding_values(text: str) -> list[float] | None:
    try:
        body = json.loads(text)
    except json.JSONDecodeError:
        return None
    embedding = body.get("embedding") if isinstance(body, dict) else None
    values = embedding.get("values") if isinstance(embedding, dict) else None
    return values if isinstance(values, list) and values else None
