# src/api/facade.py — v3
"""Public API facade: AIManager, the single entry point for provider calls.

Usage:
    from polyllm.api.facade import AIManager
    manager = AIManager()
    text = await manager.send_message([Message.user("hi")], AIModel.GPT4O)

Every operation resolves the model in the registry, checks the model's
capabilities (raising CapabilityMismatchError before any network access),
dispatches to the provider client and normalizes the reply. Provider call
failures (missing key, transport, unparsable reply) are logged and turn
into None, or an empty list for batch embeddings.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence, TypeVar

from pydantic import BaseModel, ValidationError

from polyllm.config.settings import Settings
from polyllm.embedding.vector import Embedding
from polyllm.llm.base_client import BaseProviderClient, DeltaCallback
from polyllm.llm.client_factory import ProviderRegistry
from polyllm.llm.errors import (
    CapabilityMismatchError,
    MissingApiKeyError,
    ProviderCallError,
    ResponseParseError,
    TransportError,
)
from polyllm.llm.model_registry import (
    DEFAULT_REGISTRY,
    AICapability,
    AIModel,
    ModelRegistry,
    ModelSpec,
)
from polyllm.llm.models import (
    ChatRequestOptions,
    FailureKind,
    GeneratedImage,
    ImageGenerationResponse,
    Message,
    RawResult,
)
from polyllm.llm.result_parser import extract_function_call, extract_text, require_json_dict
from polyllm.llm.transport import BaseTransport
from polyllm.logging.context import call_context
from polyllm.schema.definitions import FunctionDefinition, SchemaDefinition
from polyllm.schema.generator import generate_named_schema

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

ModelRef = AIModel | str


class AIManager:
    """Route chat, structured, function-calling, image and embedding requests."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: BaseTransport | None = None,
        model_registry: ModelRegistry | None = None,
        provider_registry: ProviderRegistry | None = None,
    ) -> None:
        """Create a manager.

        Args:
            settings: Global settings. Loaded from .env if None.
            transport: HTTP primitive for the default provider clients.
            model_registry: Model table. Defaults to the built-in registry.
            provider_registry: Provider clients. Built from settings if None.
        """
        self._settings = settings or Settings()
        self._models = model_registry or DEFAULT_REGISTRY
        self._providers = provider_registry or ProviderRegistry.from_settings(
            self._settings, transport
        )

    @property
    def models(self) -> ModelRegistry:
        return self._models

    # --- chat ---

    async def send_message(
        self,
        messages: Sequence[Message],
        model: ModelRef,
        extra_body: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> str | None:
        """Send a conversation and return the assistant text, or None on failure."""
        spec, client = self._resolve(model, AICapability.TEXT_CHAT, messages)
        options = ChatRequestOptions(extra_body, timeout_s=timeout, cancel_event=cancel_event)

        async def call() -> str | None:
            raw = await client.send_chat(spec, list(messages), options)
            _ensure_success(raw)
            text = extract_text(raw)
            if text is None:
                raise ResponseParseError("Response contained no assistant text")
            return text

        return await self._run("send_message", spec, call, None)

    async def send_message_stream(
        self,
        messages: Sequence[Message],
        model: ModelRef,
        on_delta: DeltaCallback,
        extra_body: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> str | None:
        """Stream a reply, pushing each text delta to on_delta.

        Returns the accumulated text, or None when the exchange failed.
        """
        spec, client = self._resolve(model, AICapability.TEXT_CHAT, messages)
        options = ChatRequestOptions(extra_body, timeout_s=timeout, cancel_event=cancel_event)

        async def call() -> str | None:
            raw = await client.send_chat_stream(spec, list(messages), on_delta, options)
            _ensure_success(raw)
            return raw.content

        return await self._run("send_message_stream", spec, call, None)

    # --- structured output ---

    async def send_structured_message(
        self,
        messages: Sequence[Message],
        result_type: type[M],
        model: ModelRef,
        extra_body: dict[str, Any] | None = None,
        *,
        schema_name: str | None = None,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> M | None:
        """Request a reply conforming to result_type's generated schema.

        Returns:
            A validated result_type instance, or None on failure.
        """
        spec, client = self._resolve(model, AICapability.JSON_SCHEMA, messages)
        options = ChatRequestOptions(extra_body, timeout_s=timeout, cancel_event=cancel_event)
        schema = generate_named_schema(result_type, schema_name)

        async def call() -> M | None:
            data = await self._structured_dict(spec, client, messages, schema, options)
            try:
                return result_type.model_validate(data)
            except ValidationError as exc:
                raise ResponseParseError(
                    f"Reply does not match {result_type.__name__}: {exc.error_count()} error(s)"
                ) from exc

        return await self._run("send_structured_message", spec, call, None)

    async def send_structured_message_into(
        self,
        target: M,
        messages: Sequence[Message],
        model: ModelRef,
        extra_body: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> M | None:
        """Populate target in place with the fields present in the reply.

        Returns target on success, None (target untouched) on failure.
        """
        result = await self.send_structured_message(
            messages, type(target), model, extra_body,
            timeout=timeout, cancel_event=cancel_event,
        )
        if result is None:
            return None
        for name in result.model_fields_set:
            setattr(target, name, getattr(result, name))
        return target

    async def send_structured_message_with_schema(
        self,
        messages: Sequence[Message],
        schema: dict[str, Any],
        model: ModelRef,
        extra_body: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> dict[str, Any] | None:
        """Request a reply conforming to a raw JSON schema.

        schema is either ``{"name": ..., "schema": {...}}`` or a bare object
        schema, which is sent under the name "schema".
        """
        spec, client = self._resolve(model, AICapability.JSON_SCHEMA, messages)
        options = ChatRequestOptions(extra_body, timeout_s=timeout, cancel_event=cancel_event)
        named = schema if "schema" in schema else {"name": "schema", "schema": schema}

        async def call() -> dict[str, Any]:
            return await self._structured_dict(spec, client, messages, named, options)

        return await self._run("send_structured_message_with_schema", spec, call, None)

    async def send_structured_message_with_definition(
        self,
        messages: Sequence[Message],
        definition: SchemaDefinition,
        model: ModelRef,
        extra_body: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> SchemaDefinition | None:
        """Send definition's schema and return a clone holding the reply values.

        The caller's definition is never modified.
        """
        spec, client = self._resolve(model, AICapability.JSON_SCHEMA, messages)
        options = ChatRequestOptions(extra_body, timeout_s=timeout, cancel_event=cancel_event)
        schema = definition.generate_schema()

        async def call() -> SchemaDefinition:
            values = await self._structured_dict(spec, client, messages, schema, options)
            return definition.clone().absorb(values)

        return await self._run("send_structured_message_with_definition", spec, call, None)

    # --- function calling ---

    async def send_function_call_message(
        self,
        messages: Sequence[Message],
        functions: Sequence[FunctionDefinition],
        model: ModelRef,
        extra_body: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> FunctionDefinition | None:
        """Offer functions to the model and return the one it invoked.

        Returns:
            A clone of the invoked candidate with its arguments absorbed, or
            None when the call failed or named no offered function.

        Raises:
            ValueError: If functions is empty.
        """
        if not functions:
            raise ValueError("send_function_call_message requires at least one function")
        spec, client = self._resolve(model, AICapability.FUNCTION_CALLING, messages)
        options = ChatRequestOptions(
            extra_body, list(functions), timeout_s=timeout, cancel_event=cancel_event,
        )

        async def call() -> FunctionDefinition | None:
            raw = await client.send_chat(spec, list(messages), options)
            _ensure_success(raw)
            return extract_function_call(raw, functions)

        return await self._run("send_function_call_message", spec, call, None)

    # --- images ---

    async def generate_images(
        self,
        messages: Sequence[Message],
        model: ModelRef,
        extra_body: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ImageGenerationResponse | None:
        """Generate images from a prompt conversation."""
        spec, client = self._resolve(model, AICapability.IMAGE_GENERATION, messages)
        options = ChatRequestOptions(extra_body, timeout_s=timeout, cancel_event=cancel_event)

        async def call() -> ImageGenerationResponse:
            raw = await client.generate_image(spec, list(messages), options)
            _ensure_success(raw)
            if not raw.images:
                logger.warning(
                    "%s returned no images (prompt feedback: %s)",
                    spec.model_id, raw.prompt_feedback or "none",
                )
            return ImageGenerationResponse(
                images=raw.images, prompt_feedback=raw.prompt_feedback, raw_json=raw.raw_json,
            )

        return await self._run("generate_images", spec, call, None)

    async def generate_image(
        self,
        messages: Sequence[Message],
        model: ModelRef,
        extra_body: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> GeneratedImage | None:
        """First generated image, or None."""
        response = await self.generate_images(
            messages, model, extra_body, timeout=timeout, cancel_event=cancel_event,
        )
        if response is None or not response.images:
            return None
        return response.images[0]

    # --- embeddings ---

    async def create_embedding(
        self,
        text: str,
        model: ModelRef,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> Embedding | None:
        embeddings = await self.create_embeddings(
            [text], model, timeout=timeout, cancel_event=cancel_event,
        )
        return embeddings[0] if embeddings else None

    async def create_embeddings(
        self,
        texts: Sequence[str],
        model: ModelRef,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[Embedding]:
        """Embed texts; failed items are skipped, order of the rest is kept."""
        spec, client = self._resolve(model, AICapability.EMBEDDING)
        options = ChatRequestOptions(timeout_s=timeout, cancel_event=cancel_event)
        inputs = [text for text in texts if text and text.strip()]

        async def call() -> list[Embedding]:
            if not inputs:
                raise ResponseParseError("No input text provided for embedding.")
            raw = await client.create_embeddings(spec, inputs, options)
            _ensure_success(raw)
            return list(raw.embeddings)

        return await self._run("create_embeddings", spec, call, [])

    # --- internals ---

    def _resolve(
        self,
        model: ModelRef,
        capability: AICapability,
        messages: Sequence[Message] = (),
    ) -> tuple[ModelSpec, BaseProviderClient]:
        spec = self._models.get(model)
        required = capability
        if any(message.has_images for message in messages):
            required |= AICapability.VISION
        missing = [
            flag.name for flag in AICapability
            if flag.value and flag in required and flag not in spec.capabilities
        ]
        if missing:
            raise CapabilityMismatchError(spec.model.value, ", ".join(missing))
        return spec, self._providers.get_or_raise(spec.provider)

    async def _structured_dict(
        self,
        spec: ModelSpec,
        client: BaseProviderClient,
        messages: Sequence[Message],
        schema: dict[str, Any],
        options: ChatRequestOptions,
    ) -> dict[str, Any]:
        raw = await client.send_structured_chat(spec, list(messages), schema, options)
        _ensure_success(raw)
        return require_json_dict(raw)

    async def _run(
        self,
        operation: str,
        spec: ModelSpec,
        call: Callable[[], Awaitable[T]],
        default: T,
    ) -> T:
        with call_context(spec.provider.value, spec.model_id, operation):
            try:
                return await call()
            except ProviderCallError as exc:
                logger.error(
                    "%s failed for %s (%s, %s): %s",
                    operation, spec.model.value, spec.provider.label, spec.model_id, exc,
                )
                return default


def _ensure_success(raw: RawResult) -> None:
    """Raise the ProviderCallError matching a failed raw result."""
    if raw.is_success:
        return
    message = raw.error_message or "Request failed"
    if raw.failure == FailureKind.MISSING_API_KEY:
        raise MissingApiKeyError(message)
    if raw.failure in (FailureKind.INVALID_RESPONSE, FailureKind.NO_INPUT):
        raise ResponseParseError(message)
    raise TransportError(message, raw.status_code)
