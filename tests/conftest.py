# tests/conftest.py — v2
"""Shared test fixtures for all unit tests.

Provides a recording fake transport, settings with test keys and a wired
AIManager. No network access: every HTTP exchange goes through FakeTransport.
"""

from __future__ import annotations

import asyncio
import copy
import json
from typing import Any, Callable

import pytest

from polyllm.api.facade import AIManager
from polyllm.config.settings import Settings
from polyllm.llm.client_factory import ProviderRegistry
from polyllm.llm.transport import BaseTransport, HttpResponse
from polyllm.schema.definitions import FunctionDefinition, SchemaParameter
from polyllm.schema.generator import ParameterType


class FakeTransport(BaseTransport):
    """Records requests and replays queued responses in order."""

    def __init__(self) -> None:
        self.requests: list[dict[str, Any]] = []
        self._responses: list[HttpResponse] = []
        self.stream_chunks: list[str] = []
        self.stream_status = 200

    # --- scripting helpers ---

    def reply_json(self, body: Any, status_code: int = 200) -> FakeTransport:
        self._responses.append(HttpResponse(status_code=status_code, text=json.dumps(body)))
        return self

    def reply_text(self, text: str, status_code: int = 200) -> FakeTransport:
        self._responses.append(HttpResponse(status_code=status_code, text=text))
        return self

    def reply_error(self, status_code: int = 500, text: str = "boom") -> FakeTransport:
        self._responses.append(
            HttpResponse(status_code=status_code, text=text, error=f"HTTP {status_code}")
        )
        return self

    def reply_network_failure(self, error: str = "ConnectError: refused") -> FakeTransport:
        self._responses.append(HttpResponse(error=error))
        return self

    @property
    def last_request(self) -> dict[str, Any]:
        return self.requests[-1]

    # --- BaseTransport ---

    async def post_json(
        self,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> HttpResponse:
        self._record(url, headers, body, timeout, cancel_event)
        if not self._responses:
            raise AssertionError(f"Unexpected request to {url}")
        return self._responses.pop(0)

    async def post_stream(
        self,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
        on_text: Callable[[str], None],
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> HttpResponse:
        self._record(url, headers, body, timeout, cancel_event)
        for chunk in self.stream_chunks:
            on_text(chunk)
        text = "".join(self.stream_chunks)
        error = None if 200 <= self.stream_status < 300 else f"HTTP {self.stream_status}"
        return HttpResponse(status_code=self.stream_status, text=text, error=error)

    def _record(self, url, headers, body, timeout, cancel_event) -> None:
        self.requests.append({
            "url": url,
            "headers": dict(headers),
            "body": copy.deepcopy(body),
            "timeout": timeout,
            "cancel_event": cancel_event,
        })


# === FIXTURES ===


@pytest.fixture
def settings() -> Settings:
    """Settings with a key for every provider and no .env lookup."""
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        grok_api_key="xai-test",
        google_api_key="g-test",
    )


@pytest.fixture
def keyless_settings() -> Settings:
    return Settings(
        _env_file=None,
        openai_api_key="",
        grok_api_key="",
        google_api_key="",
    )


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def manager(settings: Settings, fake_transport: FakeTransport) -> AIManager:
    return AIManager(
        settings,
        provider_registry=ProviderRegistry.from_settings(settings, fake_transport),
    )


@pytest.fixture
def add_numbers() -> FunctionDefinition:
    return FunctionDefinition(
        name="addNumbers",
        description="Add two numbers",
        parameters=[
            SchemaParameter(name="a", parameter_type=ParameterType.NUMBER, description="First"),
            SchemaParameter(name="b", parameter_type=ParameterType.NUMBER, description="Second"),
        ],
    )


def openai_reply(content: str | None = None, **message: Any) -> dict[str, Any]:
    """Minimal chat-completions body."""
    return {"choices": [{"index": 0, "message": {"role": "assistant", "content": content, **message}}]}


def gemini_reply(*parts: dict[str, Any]) -> dict[str, Any]:
    """Minimal generateContent body."""
    return {"candidates": [{"content": {"role": "model", "parts": list(parts)}}]}


@pytest.fixture
def openai_body() -> Callable[..., dict[str, Any]]:
    return openai_reply


@pytest.fixture
def gemini_body() -> Callable[..., dict[str, Any]]:
    return gemini_reply


@pytest.fixture(autouse=True)
def _restore_polyllm_logger():
    """Undo handler and level changes made by setup_logging() in a test."""
    import logging

    root = logging.getLogger("polyllm")
    level, handlers = root.level, list(root.handlers)
    yield
    root.setLevel(level)
    root.handlers[:] = handlers
