# src/llm/payload_builder.py — v1
"""Encode provider-agnostic messages into each vendor's wire format.

OpenAI and Grok share the chat-completions shape: a list of
``{"role", "content"}`` objects where content is a string or a list of typed
parts. Gemini expects ``contents[].parts[]`` with ``user``/``model`` roles
only and images as ``inline_data`` or ``file_data`` parts.
"""

from __future__ import annotations

import base64
from typing import Any, Callable, Iterable

from polyllm.llm.models import DEFAULT_IMAGE_MIME, ContentPart, Message


def build_openai_messages(messages: Iterable[Message]) -> list[dict[str, Any]]:
    """Encode messages for the OpenAI-compatible chat-completions API."""
    payload: list[dict[str, Any]] = []
    for message in messages:
        content: str | list[dict[str, Any]]
        if message.parts:
            content = _encode_all(message.parts, _openai_part)
        else:
            content = message.content or ""
        payload.append({"role": message.role, "content": content})
    return payload


def _openai_part(part: ContentPart) -> dict[str, Any] | None:
    if part.type == "text":
        return {"type": "text", "text": part.text or ""}
    if part.type == "image_url":
        if not part.uri or not part.uri.strip():
            return None
        return {"type": "image_url", "image_url": {"url": part.uri}}
    if not part.data:
        return None
    mime_type = part.mime_type or DEFAULT_IMAGE_MIME
    encoded = base64.b64encode(part.data).decode("ascii")
    return {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{encoded}"}}


def build_gemini_contents(messages: Iterable[Message]) -> list[dict[str, Any]]:
    """Encode messages for Gemini generateContent.

    Gemini has no system role in ``contents``: assistant maps to ``model``
    and everything else to ``user``.
    """
    contents: list[dict[str, Any]] = []
    for message in messages:
        parts = _encode_all(message.iter_parts(), _gemini_part)
        if not parts:
            parts = [{"text": message.content or ""}]
        contents.append({"role": gemini_role(message.role), "parts": parts})
    return contents


def gemini_role(role: str) -> str:
    return "model" if role == "assistant" else "user"


def _encode_all(
    parts: Iterable[ContentPart],
    encode: Callable[[ContentPart], dict[str, Any] | None],
) -> list[dict[str, Any]]:
    encoded = (encode(part) for part in parts)
    return [item for item in encoded if item is not None]


def _gemini_part(part: ContentPart) -> dict[str, Any] | None:
    if part.type == "text":
        return {"text": part.text or ""}
    if part.type == "image_url":
        if not part.uri or not part.uri.strip():
            return None
        parsed = parse_data_url(part.uri)
        if parsed is not None:
            mime_type, data = parsed
            return {
                "inline_data": {
                    "mime_type": mime_type or part.mime_type or DEFAULT_IMAGE_MIME,
                    "data": data,
                }
            }
        file_data: dict[str, Any] = {"file_uri": part.uri}
        if part.mime_type:
            file_data["mime_type"] = part.mime_type
        return {"file_data": file_data}
    if not part.data:
        return None
    return {
        "inline_data": {
            "mime_type": part.mime_type or DEFAULT_IMAGE_MIME,
            "data": base64.b64encode(part.data).decode("ascii"),
        }
    }


def parse_data_url(uri: str) -> tuple[str | None, str] | None:
    """Split ``data:<mime>;base64,<payload>`` into (mime, payload).

    Returns None for anything that is not a base64 data URL. The mime is
    None when the metadata segment does not name one.
    """
    if not uri or uri[:5].lower() != "data:":
        return None
    comma = uri.find(",")
    if comma < 0 or comma == len(uri) - 1:
        return None
    metadata = uri[5:comma]
    mime_type, separator, encoding = metadata.partition(";")
    if not separator or "base64" not in encoding.lower():
        return None
    return (mime_type.strip() or None), uri[comma + 1:]


def sanitize_gemini_parameters(schema: dict[str, Any]) -> dict[str, Any]:
    """Drop ``enum`` from non-string properties of an object schema, in place.

    Gemini rejects enumerations on anything but strings.
    """
    if str(schema.get("type", "")).lower() != "object":
        return schema
    properties = schema.get("properties")
    if not isinstance(properties, dict):
        return schema
    for property_schema in properties.values():
        if not isinstance(property_schema, dict):
            continue
        if str(property_schema.get("type", "")).lower() != "string":
            property_schema.pop("enum", None)
    return schema
