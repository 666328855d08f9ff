# src/llm/models.py — v2
"""Provider-agnostic request and response types.

Message / ContentPart describe a conversation, the Raw* results capture one
HTTP round trip per provider call, and GeneratedImage /
ImageGenerationResponse carry image-generation output back to callers.
"""

from __future__ import annotations

import asyncio
import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal

from pydantic import BaseModel, ConfigDict

from polyllm.embedding.vector import Embedding
from polyllm.llm.model_registry import AIProvider

if TYPE_CHECKING:
    from polyllm.schema.definitions import FunctionDefinition

DEFAULT_IMAGE_MIME = "image/png"


class ContentPart(BaseModel):
    """One unit of multimodal content: text, image URL or inline image bytes."""

    model_config = ConfigDict(frozen=True)

    type: Literal["text", "image_url", "image_data"]
    text: str | None = None
    uri: str | None = None
    data: bytes | None = None
    mime_type: str | None = None

    @classmethod
    def from_text(cls, text: str) -> ContentPart:
        return cls(type="text", text=text)

    @classmethod
    def from_image_url(cls, uri: str, mime_type: str | None = None) -> ContentPart:
        return cls(type="image_url", uri=uri, mime_type=mime_type)

    @classmethod
    def from_image_data(cls, data: bytes, mime_type: str = DEFAULT_IMAGE_MIME) -> ContentPart:
        return cls(type="image_data", data=data, mime_type=mime_type)

    @classmethod
    def from_image_file(cls, path: str | Path) -> ContentPart:
        """Read an image from disk, guessing its MIME type from the suffix."""
        path = Path(path)
        mime_type, _ = mimetypes.guess_type(path.name)
        return cls.from_image_data(path.read_bytes(), mime_type or DEFAULT_IMAGE_MIME)

    @property
    def is_image(self) -> bool:
        return self.type != "text"


class Message(BaseModel):
    """Single message in a conversation.

    Parts take precedence over plain content when both are present.
    """

    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant", "system"]
    content: str | None = None
    parts: list[ContentPart] | None = None

    @classmethod
    def user(cls, content: str) -> Message:
        return cls(role="user", content=content)

    @classmethod
    def system(cls, content: str) -> Message:
        return cls(role="system", content=content)

    @classmethod
    def assistant(cls, content: str) -> Message:
        return cls(role="assistant", content=content)

    def iter_parts(self) -> list[ContentPart]:
        """Effective parts: explicit parts, else a text part for non-empty content."""
        if self.parts:
            return list(self.parts)
        if self.content:
            return [ContentPart.from_text(self.content)]
        return []

    @property
    def has_images(self) -> bool:
        return any(p.is_image for p in self.parts or ())


class FailureKind(str, Enum):
    """Why a raw provider call failed."""

    MISSING_API_KEY = "missing_api_key"
    TRANSPORT = "transport"
    INVALID_RESPONSE = "invalid_response"
    NO_INPUT = "no_input"


class RawResult(BaseModel):
    """Outcome of one provider HTTP round trip."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    provider: AIProvider
    model_id: str
    is_success: bool
    status_code: int = 0
    error_message: str | None = None
    failure: FailureKind | None = None
    raw_json: str = ""
    body: dict[str, Any] | None = None


class RawChatResult(RawResult):
    """One chat or structured-chat round trip."""


class RawChatStreamResult(RawResult):
    """One streamed chat round trip; content is the accumulated deltas."""

    content: str = ""


class GeneratedImage(BaseModel):
    """Decoded image returned by an image-generation model."""

    model_config = ConfigDict(frozen=True)

    mime_type: str
    data: bytes


class RawImageResult(RawResult):
    images: list[GeneratedImage] = []
    prompt_feedback: str | None = None


class RawEmbeddingResult(RawResult):
    embeddings: list[Embedding] = []


class ImageGenerationResponse(BaseModel):
    """Typed image-generation result handed back to callers."""

    model_config = ConfigDict(frozen=True)

    images: list[GeneratedImage]
    prompt_feedback: str | None = None
    raw_json: str = ""


@dataclass
class ChatRequestOptions:
    """Per-call knobs passed from the orchestrator to a provider client."""

    extra_body: dict[str, Any] | None = None
    functions: list[FunctionDefinition] = field(default_factory=list)
    timeout_s: float | None = None
    cancel_event: asyncio.Event | None = None
