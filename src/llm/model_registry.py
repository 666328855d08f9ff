# src/llm/model_registry.py — v1
"""Capability-tagged model registry.

Maps a logical model identifier to the vendor that serves it, the exact
string that vendor's API expects, the operations the model supports and a
context-size hint. The table is built once at import time and is read-only
afterwards, so it may be shared between concurrent callers.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, Flag, auto
from types import MappingProxyType
from typing import Iterable, Mapping

from polyllm.llm.errors import UnknownModelError



class AIProvider(str, Enum):
    """Vendor owning a model."""

    OPENAI = "openai"
    GROK = "grok"
    GEMINI = "gemini"

    @property
    def label(self) -> str:
        return _PROVIDER_LABELS[self]


_PROVIDER_LABELS = {
    AIProvider.OPENAI: "OpenAI",
    AIProvider.GROK: "Grok",
    AIProvider.GEMINI: "Google",
}


class AICapability(Flag):
    """Operations a model supports."""

    NONE = 0
    TEXT_CHAT = auto()
    VISION = auto()
    JSON_SCHEMA = auto()
    FUNCTION_CALLING = auto()
    IMAGE_GENERATION = auto()
    EMBEDDING = auto()


class AIModel(str, Enum):
    """Logical model identifiers."""

    GPT4O = "gpt-4o"
    GPT5 = "gpt-5"
    GPT5_MINI = "gpt-5-mini"
    GPT5_PRO = "gpt-5-pro"
    GROK2 = "grok-2"
    GROK3 = "grok-3"
    GEMINI25 = "gemini-2.5"
    GEMINI25_PRO = "gemini-2.5-pro"
    GEMINI25_FLASH = "gemini-2.5-flash"
    GEMINI25_FLASH_LITE = "gemini-2.5-flash-lite"
    GEMINI3 = "gemini-3"
    GEMINI25_FLASH_IMAGE_PREVIEW = "gemini-2.5-flash-image-preview"
    GEMINI3_PRO_IMAGE_PREVIEW = "gemini-3-pro-image-preview"
    OPENAI_EMBEDDING_SMALL = "openai-embedding-small"
    OPENAI_EMBEDDING_LARGE = "openai-embedding-large"
    GEMINI_EMBEDDING = "gemini-embedding"
    GEMINI_EMBEDDING_1536 = "gemini-embedding-1536"
    GEMINI_EMBEDDING_768 = "gemini-embedding-768"


@dataclass(frozen=True)
class ModelSpec:
    """Immutable description of one registered model."""

    model: AIModel
    provider: AIProvider
    model_id: str
    capabilities: AICapability
    max_context: int
    output_dimensionality: int | None = None

    def supports(self, capability: AICapability) -> bool:
        return (self.capabilities & capability) == capability


_CHAT = (
    AICapability.TEXT_CHAT
    | AICapability.JSON_SCHEMA
    | AICapability.FUNCTION_CALLING
)
_VISION_CHAT = _CHAT | AICapability.VISION
_IMAGE = AICapability.IMAGE_GENERATION | AICapability.VISION

_OPENAI_CONTEXT = 128_000
_GROK_CONTEXT = 131_072
_GEMINI_CONTEXT = 1_048_576

_DEFAULT_SPECS: tuple[ModelSpec, ...] = (
    ModelSpec(AIModel.GPT4O, AIProvider.OPENAI, "gpt-4o", _VISION_CHAT, _OPENAI_CONTEXT),
    ModelSpec(AIModel.GPT5, AIProvider.OPENAI, "gpt-5", _VISION_CHAT, _OPENAI_CONTEXT),
    ModelSpec(AIModel.GPT5_MINI, AIProvider.OPENAI, "gpt-5-mini", _VISION_CHAT, _OPENAI_CONTEXT),
    ModelSpec(AIModel.GPT5_PRO, AIProvider.OPENAI, "gpt-5-pro", _VISION_CHAT, _OPENAI_CONTEXT),
    ModelSpec(AIModel.GROK2, AIProvider.GROK, "grok-2-latest", _CHAT, _GROK_CONTEXT),
    ModelSpec(AIModel.GROK3, AIProvider.GROK, "grok-3-latest", _CHAT, _GROK_CONTEXT),
    ModelSpec(AIModel.GEMINI25, AIProvider.GEMINI, "gemini-2.5-pro", _VISION_CHAT, _GEMINI_CONTEXT),
    ModelSpec(AIModel.GEMINI25_PRO, AIProvider.GEMINI, "gemini-2.5-pro", _VISION_CHAT, _GEMINI_CONTEXT),
    ModelSpec(AIModel.GEMINI25_FLASH, AIProvider.GEMINI, "gemini-2.5-flash", _VISION_CHAT, _GEMINI_CONTEXT),
    ModelSpec(
        AIModel.GEMINI25_FLASH_LITE, AIProvider.GEMINI, "gemini-2.5-flash-lite",
        _VISION_CHAT, _GEMINI_CONTEXT,
    ),
    ModelSpec(AIModel.GEMINI3, AIProvider.GEMINI, "gemini-3.0-pro-exp", _VISION_CHAT, _GEMINI_CONTEXT),
    ModelSpec(
        AIModel.GEMINI25_FLASH_IMAGE_PREVIEW, AIProvider.GEMINI,
        "gemini-2.5-flash-image-preview", _IMAGE, _GEMINI_CONTEXT,
    ),
    ModelSpec(
        AIModel.GEMINI3_PRO_IMAGE_PREVIEW, AIProvider.GEMINI,
        "gemini-3-pro-image-preview", _IMAGE, _GEMINI_CONTEXT,
    ),
    ModelSpec(
        AIModel.OPENAI_EMBEDDING_SMALL, AIProvider.OPENAI, "text-embedding-3-small",
        AICapability.EMBEDDING, 8191,
    ),
    ModelSpec(
        AIModel.OPENAI_EMBEDDING_LARGE, AIProvider.OPENAI, "text-embedding-3-large",
        AICapability.EMBEDDING, 8191,
    ),
    ModelSpec(
        AIModel.GEMINI_EMBEDDING, AIProvider.GEMINI, "gemini-embedding-001",
        AICapability.EMBEDDING, 2048,
    ),
    ModelSpec(
        AIModel.GEMINI_EMBEDDING_1536, AIProvider.GEMINI, "gemini-embedding-001",
        AICapability.EMBEDDING, 2048, output_dimensionality=1536,
    ),
    ModelSpec(
        AIModel.GEMINI_EMBEDDING_768, AIProvider.GEMINI, "gemini-embedding-001",
        AICapability.EMBEDDING, 2048, output_dimensionality=768,
    ),
)


class ModelRegistry:
    """Lookup table of ModelSpec by logical model id."""

    def __init__(self, specs: Iterable[ModelSpec] | None = None) -> None:
        table = {spec.model: spec for spec in (specs if specs is not None else _DEFAULT_SPECS)}
        self._specs: Mapping[AIModel, ModelSpec] = MappingProxyType(table)

    def get(self, model: AIModel | str) -> ModelSpec:
        """Resolve a model id (enum member or its string value).

        Raises:
            UnknownModelError: If the model is not registered.
        """
        key = _coerce_model(model)
        spec = self._specs.get(key) if key is not None else None
        if spec is None:
            raise UnknownModelError(
                f"Unknown model: {model!r}. "
                f"Available: {', '.join(m.value for m in self._specs)}"
            )
        return spec

    def get_all(self) -> Mapping[AIModel, ModelSpec]:
        return self._specs

    def by_provider(self, provider: AIProvider) -> list[ModelSpec]:
        return [s for s in self._specs.values() if s.provider == provider]

    def by_capability(self, capability: AICapability) -> list[ModelSpec]:
        return [s for s in self._specs.values() if s.supports(capability)]

    def __contains__(self, model: object) -> bool:
        if not isinstance(model, (AIModel, str)):
            return False
        key = _coerce_model(model)
        return key is not None and key in self._specs

    def __len__(self) -> int:
        return len(self._specs)


def _coerce_model(model: AIModel | str) -> AIModel | None:
    if isinstance(model, AIModel):
        return model
    try:
        return AIModel(model)
    except ValueError:
        pass
    try:
        return AIModel[model.upper()]
    except KeyError:
        return None


DEFAULT_REGISTRY = ModelRegistry()
