# src/llm/sse.py — v1
"""Incremental server-sent-events parser.

Text arrives in arbitrary fragments; the parser buffers partial lines and
emits the joined ``data:`` payload of every blank-line-terminated event.
"""

from __future__ import annotations

from typing import Callable


class SseEventParser:
    """Feed text fragments, receive event payloads through on_event."""

    def __init__(self, on_event: Callable[[str], None]) -> None:
        self._on_event = on_event
        self._buffer = ""
        self._data_lines: list[str] = []

    def feed(self, chunk: str) -> None:
        self._buffer += chunk
        while True:
            newline = self._buffer.find("\n")
            if newline < 0:
                break
            line = self._buffer[:newline].rstrip("\r")
            self._buffer = self._buffer[newline + 1:]
            self._process_line(line)

    def complete(self) -> None:
        """Flush any trailing line and event left without a terminator."""
        if self._buffer:
            line, self._buffer = self._buffer.rstrip("\r"), ""
            self._process_line(line)
        self._dispatch()

    def _process_line(self, line: str) -> None:
        if not line:
            self._dispatch()
            return
        if line.startswith(":"):
            return
        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if name == "data":
            self._data_lines.append(value)

    def _dispatch(self) -> None:
        if not self._data_lines:
            return
        payload = "\n".join(self._data_lines)
        self._data_lines = []
        self._on_event(payload)
