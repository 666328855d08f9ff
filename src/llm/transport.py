# src/llm/transport.py — v1
"""Abstract HTTP primitive used by provider clients.

Provider clients never open sockets themselves: they hand an endpoint,
headers and a JSON body to a BaseTransport and get back an HttpResponse.
Network failures, timeouts and cancellation are reported in the response
(status_code 0 plus an error text) instead of being raised.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, TypeVar

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T")

TextCallback = Callable[[str], None]


class HttpResponse(BaseModel):
    """Outcome of one HTTP exchange."""

    status_code: int = 0
    text: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and 200 <= self.status_code < 300


class RequestCancelled(Exception):
    """Raised internally when the caller's cancel event fires."""


class BaseTransport(ABC):
    """Send a JSON POST and await the response."""

    @abstractmethod
    async def post_json(
        self,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> HttpResponse:
        """Perform a request and return the full body."""

    @abstractmethod
    async def post_stream(
        self,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
        on_text: TextCallback,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> HttpResponse:
        """Perform a request, pushing each decoded text chunk to on_text.

        The returned response carries the concatenated text.
        """


class HttpxTransport(BaseTransport):
    """BaseTransport backed by httpx.AsyncClient, one client per exchange."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    def _client(self, timeout: float | None) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self._transport)

    async def post_json(
        self,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> HttpResponse:
        async def _send() -> HttpResponse:
            async with self._client(timeout) as client:
                response = await client.post(url, headers=headers, json=body)
            return _to_response(response.status_code, response.text)

        return await _guarded(_send, url, timeout, cancel_event)

    async def post_stream(
        self,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
        on_text: TextCallback,
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> HttpResponse:
        async def _send() -> HttpResponse:
            received: list[str] = []
            async with self._client(timeout) as client:
                async with client.stream("POST", url, headers=headers, json=body) as response:
                    if not 200 <= response.status_code < 300:
                        await response.aread()
                        return _to_response(response.status_code, response.text)
                    async for chunk in response.aiter_text():
                        if chunk:
                            received.append(chunk)
                            on_text(chunk)
            return _to_response(response.status_code, "".join(received))

        return await _guarded(_send, url, timeout, cancel_event)


def _to_response(status_code: int, text: str) -> HttpResponse:
    error = None if 200 <= status_code < 300 else f"HTTP {status_code}"
    return HttpResponse(status_code=status_code, text=text, error=error)


async def _guarded(
    send: Callable[[], Awaitable[HttpResponse]],
    url: str,
    timeout: float | None,
    cancel_event: asyncio.Event | None,
) -> HttpResponse:
    try:
        return await asyncio.wait_for(run_cancellable(send(), cancel_event), timeout)
    except RequestCancelled:
        logger.warning("Request to %s cancelled", url)
        return HttpResponse(error="Request cancelled")
    except asyncio.TimeoutError:
        logger.warning("Request to %s timed out after %ss", url, timeout)
        return HttpResponse(error=f"Request timed out after {timeout}s")
    except httpx.HTTPError as exc:
        logger.warning("Request to %s failed: %s", url, exc)
        return HttpResponse(error=f"{type(exc).__name__}: {exc}")


async def run_cancellable(coro: Awaitable[T], cancel_event: asyncio.Event | None) -> T:
    """Await coro, aborting it as soon as cancel_event is set.

    Raises:
        RequestCancelled: If the event fired before coro finished.
    """
    if cancel_event is None:
        return await coro
    if cancel_event.is_set():
        if asyncio.iscoroutine(coro):
            coro.close()
        raise RequestCancelled()

    work = asyncio.ensure_future(coro)
    waiter = asyncio.ensure_future(cancel_event.wait())
    try:
        await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        waiter.cancel()
    if work.done():
        return work.result()

    work.cancel()
    try:
        await work
    except asyncio.CancelledError:
        pass
    raise RequestCancelled()
