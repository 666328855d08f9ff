# src/llm/result_parser.py — v2
"""Normalize heterogeneous chat responses.

OpenAI and Grok answer with ``choices[0].message``; Gemini answers with
``candidates[0].content.parts[]``. The helpers here pull assistant text,
structured JSON and function invocations out of either shape. The
``extract_*`` helpers never raise on unexpected bodies: they log and return
None. ``require_json_dict`` is the raising counterpart used by the facade.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Iterator, Sequence

from polyllm.llm.errors import ResponseParseError, UnknownFunctionCallError
from polyllm.llm.model_registry import AIProvider
from polyllm.llm.models import RawChatResult
from polyllm.schema.definitions import FunctionDefinition

logger = logging.getLogger(__name__)


def extract_text(raw: RawChatResult) -> str | None:
    """Assistant text of a successful response, or None."""
    if not raw.is_success or not isinstance(raw.body, dict):
        return None
    if raw.provider == AIProvider.GEMINI:
        return gemini_text(raw.body)
    return openai_text(raw.body)


def openai_text(body: dict[str, Any]) -> str | None:
    message = _openai_message(body)
    content = message.get("content") if message else None
    return content if isinstance(content, str) else None


def gemini_text(body: dict[str, Any]) -> str | None:
    for part in gemini_parts(body):
        text = part.get("text")
        if isinstance(text, str):
            return text
    return None


def extract_json_dict(raw: RawChatResult) -> dict[str, Any] | None:
    """Parse the assistant text as a JSON object, or return None."""
    try:
        return require_json_dict(raw)
    except ResponseParseError as exc:
        logger.warning("Structured output from %s/%s unusable: %s",
                       raw.provider.value, raw.model_id, exc)
        return None


def require_json_dict(raw: RawChatResult) -> dict[str, Any]:
    """Like extract_json_dict, but raise instead of returning None.

    Raises:
        ResponseParseError: If the response has no text or the text is not a JSON object.
    """
    text = extract_text(raw)
    if text is None:
        raise ResponseParseError("Response contained no structured content")
    return parse_json_object(text)


def parse_json_object(text: str) -> dict[str, Any]:
    """Decode text (optionally wrapped in a markdown code fence) as a JSON object.

    Raises:
        ResponseParseError: If text is not a JSON object.
    """
    cleaned = _strip_code_fence(text)
    try:
        value = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"Invalid JSON: {exc}") from exc
    if not isinstance(value, dict):
        raise ResponseParseError(f"Expected a JSON object, got {type(value).__name__}")
    return value


def extract_function_call(
    raw: RawChatResult, candidates: Sequence[FunctionDefinition],
) -> FunctionDefinition | None:
    """Match the invoked function against candidates and fill in its arguments.

    Returns a clone of the matched candidate with the arguments absorbed,
    or None when nothing usable was invoked. Candidates are never mutated.
    """
    if not raw.is_success or not isinstance(raw.body, dict):
        return None
    for name, arguments in _invocations(raw):
        try:
            matched = match_function(name, candidates)
        except UnknownFunctionCallError as exc:
            logger.warning("%s (offered: %s)", exc, ", ".join(c.name for c in candidates))
            continue
        try:
            values = _decode_arguments(arguments)
        except ResponseParseError as exc:
            logger.warning("Arguments of %s call unusable: %s", name, exc)
            continue
        return matched.clone().absorb(values)
    logger.info("No matching function call in %s response for %s",
                raw.provider.value, raw.model_id)
    return None


def match_function(
    name: str, candidates: Sequence[FunctionDefinition],
) -> FunctionDefinition:
    """Find the candidate with exactly this name.

    Raises:
        UnknownFunctionCallError: If no candidate has that name.
    """
    for candidate in candidates:
        if candidate.name == name:
            return candidate
    raise UnknownFunctionCallError(name)


def gemini_parts(body: dict[str, Any]) -> list[dict[str, Any]]:
    candidates = body.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return []
    first = candidates[0]
    content = first.get("content") if isinstance(first, dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not isinstance(parts, list):
        return []
    return [p for p in parts if isinstance(p, dict)]


def _openai_message(body: dict[str, Any]) -> dict[str, Any] | None:
    choices = body.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    message = choices[0].get("message")
    return message if isinstance(message, dict) else None


def _invocations(raw: RawChatResult) -> Iterator[tuple[str, Any]]:
    body = raw.body or {}
    if raw.provider == AIProvider.GEMINI:
        for part in gemini_parts(body):
            call = part.get("functionCall")
            if isinstance(call, dict) and isinstance(call.get("name"), str):
                yield call["name"], call.get("args")
        return

    message = _openai_message(body) or {}
    tool_calls = message.get("tool_calls")
    if isinstance(tool_calls, list):
        for tool_call in tool_calls:
            function = tool_call.get("function") if isinstance(tool_call, dict) else None
            if isinstance(function, dict) and isinstance(function.get("name"), str):
                yield function["name"], function.get("arguments")
    legacy = message.get("function_call")
    if isinstance(legacy, dict) and isinstance(legacy.get("name"), str):
        yield legacy["name"], legacy.get("arguments")


def _decode_arguments(arguments: Any) -> dict[str, Any]:
    if arguments is None or arguments == "":
        return {}
    if isinstance(arguments, dict):
        return arguments
    if isinstance(arguments, str):
        return parse_json_object(arguments)
    raise ResponseParseError(f"Unexpected arguments type {type(arguments).__name__}")


def _strip_code_fence(text: str) -> str:
    stripped = text.strip()
    if not stripped.startswith("```"):
        return stripped
    lines = stripped.splitlines()[1:]
    if lines and lines[-1].strip().startswith("```"):
        lines = lines[:-1]
    return "\n".join(lines)
