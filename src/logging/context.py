# src/logging/context.py — v3
"""Contextual logging support: attach provider, model and operation to log records.

The orchestrator sets a call context at the start of every public
operation so that adapter and transport log lines can be correlated.
"""

from __future__ import annotations

import contextvars
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Any, Iterator

_request_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)
_provider: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "provider", default=None
)
_model: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "model", default=None
)
_operation: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "operation", default=None
)


@dataclass(frozen=True)
class LogContext:
    """Immutable snapshot of current logging context."""

    request_id: str | None = None
    provider: str | None = None
    model: str | None = None
    operation: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in asdict(self).items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        request_id=_request_id.get(),
        provider=_provider.get(),
        model=_model.get(),
        operation=_operation.get(),
    )


@contextmanager
def call_context(provider: str, model: str, operation: str) -> Iterator[LogContext]:
    """Scope a call context, restoring the previous one on exit."""
    tokens = (
        _request_id.set(uuid.uuid4().hex[:12]),
        _provider.set(provider),
        _model.set(model),
        _operation.set(operation),
    )
    try:
        yield get_context()
    finally:
        for var, token in zip((_request_id, _provider, _model, _operation), tokens):
            var.reset(token)
