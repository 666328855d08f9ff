# tests/unit/llm/test_unit_transport.py — v1
"""Tests for llm/transport.py — httpx transport, timeout and cancellation."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from polyllm.llm.transport import HttpResponse, HttpxTransport, RequestCancelled, run_cancellable

URL = "https://api.example.com/v1/chat"


def _transport(handler) -> HttpxTransport:
    return HttpxTransport(transport=httpx.MockTransport(handler))


class TestHttpResponse:
    def test_ok(self):
        assert HttpResponse(status_code=200, text="{}").ok
        assert not HttpResponse(status_code=404, error="HTTP 404").ok
        assert not HttpResponse(error="Request cancelled").ok


class TestPostJson:
    @pytest.mark.asyncio
    async def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"ok": True})

        response = await _transport(handler).post_json(
            URL, {"Authorization": "Bearer k"}, {"model": "m"},
        )
        assert response.ok
        assert json.loads(response.text) == {"ok": True}
        assert seen == {"auth": "Bearer k", "body": {"model": "m"}}

    @pytest.mark.asyncio
    async def test_non_2xx_keeps_body(self):
        transport = _transport(lambda request: httpx.Response(429, text="slow down"))
        response = await transport.post_json(URL, {}, {})
        assert response.status_code == 429
        assert response.text == "slow down"
        assert response.error == "HTTP 429"

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        response = await _transport(handler).post_json(URL, {}, {})
        assert response.status_code == 0
        assert response.error.startswith("ConnectError")

    @pytest.mark.asyncio
    async def test_timeout(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json={})

        response = await _transport(handler).post_json(URL, {}, {}, timeout=0.05)
        assert response.status_code == 0
        assert "timed out" in response.error

    @pytest.mark.asyncio
    async def test_cancel_in_flight(self):
        async def handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(5)
            return httpx.Response(200, json={})

        event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.02, event.set)
        response = await _transport(handler).post_json(URL, {}, {}, cancel_event=event)
        assert response.error == "Request cancelled"

    @pytest.mark.asyncio
    async def test_already_cancelled(self):
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200, json={})

        event = asyncio.Event()
        event.set()
        response = await _transport(handler).post_json(URL, {}, {}, cancel_event=event)
        assert response.error == "Request cancelled"
        assert calls == []


class TestPostStream:
    @pytest.mark.asyncio
    async def test_chunks_forwarded(self):
        payload = "data: a\n\ndata: b\n\n"
        transport = _transport(lambda request: httpx.Response(200, text=payload))
        received: list[str] = []
        response = await transport.post_stream(URL, {}, {}, received.append)
        assert response.ok
        assert "".join(received) == payload
        assert response.text == payload

    @pytest.mark.asyncio
    async def test_error_status_not_streamed(self):
        transport = _transport(lambda request: httpx.Response(500, text="oops"))
        received: list[str] = []
        response = await transport.post_stream(URL, {}, {}, received.append)
        assert received == []
        assert response.error == "HTTP 500"
        assert response.text == "oops"


class TestRunCancellable:
    @pytest.mark.asyncio
    async def test_without_event(self):
        async def work():
            return 7

        assert await run_cancellable(work(), None) == 7

    @pytest.mark.asyncio
    async def test_finishes_before_cancel(self):
        async def work():
            return "done"

        assert await run_cancellable(work(), asyncio.Event()) == "done"

    @pytest.mark.asyncio
    async def test_cancel_raises(self):
        async def work():
            await asyncio.sleep(5)

        event = asyncio.Event()
        asyncio.get_running_loop().call_later(0.01, event.set)
        with pytest.raises(RequestCancelled):
            await run_cancellable(work(), event)
