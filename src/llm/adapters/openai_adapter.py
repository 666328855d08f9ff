# src/llm/adapters/openai_adapter.py — v3
"""OpenAI client: chat completions plus batched embeddings.

Image generation is not offered through this client.
"""

from __future__ import annotations

import logging
from typing import Any

from polyllm.embedding.vector import Embedding
from polyllm.llm.adapters.chat_completions import ChatCompletionsClient, FunctionStyle
from polyllm.llm.model_registry import AIProvider, ModelSpec
from polyllm.llm.models import ChatRequestOptions, FailureKind, RawEmbeddingResult

logger = logging.getLogger(__name__)


class OpenAIClient(ChatCompletionsClient):
    """OpenAI chat-completions and embeddings client."""

    api_key_env = "OPENAI_API_KEY"
    function_style: FunctionStyle = "functions"

    @property
    def provider(self) -> AIProvider:
        return AIProvider.OPENAI

    @property
    def default_base_url(self) -> str:
        return "https://api.openai.com/v1"

    async def create_embeddings(
        self,
        spec: ModelSpec,
        texts: list[str],
        options: ChatRequestOptions | None = None,
    ) -> RawEmbeddingResult:
        """Embed all texts in a single request; results keep input order."""
        options = options or ChatRequestOptions()
        if not self.has_api_key:
            return self._missing_key(RawEmbeddingResult, spec)
        if not texts:
            return self._failure(
                RawEmbeddingResult, spec, "No input text provided for embedding.",
                FailureKind.NO_INPUT,
            )

        body: dict[str, Any] = {"model": spec.model_id, "input": list(texts)}
        if spec.output_dimensionality:
            body["dimensions"] = spec.output_dimensionality

        raw = await self._post(
            spec, f"{self._base_url}/embeddings", self._headers(), body, options,
            result_type=RawEmbeddingResult,
        )
        if not raw.is_success:
            return raw

        embeddings = _parse_embeddings(raw.body or {}, spec.model_id)
        if not embeddings:
            logger.error("OpenAI embeddings response for %s held no vectors", spec.model_id)
            return self._failure(
                RawEmbeddingResult, spec, "Embedding response contained no data",
                FailureKind.INVALID_RESPONSE, raw.status_code, raw.raw_json,
            )
        logger.debug("Received %d embeddings from %s", len(embeddings), spec.model_id)
        return raw.model_copy(update={"embeddings": embeddings})


def _parse_embeddings(body: dict[str, Any], model_id: str) -> list[Embedding]:
    data = body.get("data")
    if not isinstance(data, list):
        return []
    items = [item for item in data if isinstance(item, dict)]
    items.sort(key=lambda item: item.get("index", 0))
    embeddings = []
    for item in items:
        values = item.get("embedding")
        if not isinstance(values, list):
            continue
        try:
            embeddings.append(Embedding(model_id, values))
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping malformed OpenAI embedding %s: %s", item.get("index"), exc)
    return embeddings
