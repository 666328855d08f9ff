# src/llm/errors.py — v1
"""Exception taxonomy for the provider layer.

ProviderCallError subclasses describe recoverable call failures: the
orchestrator catches them, logs a diagnostic and hands back an empty result.
The remaining errors signal a programming mistake and reach the caller
unchanged.
"""

from __future__ import annotations


class LLMError(Exception):
    """Base class for every error raised by polyllm."""


class ProviderCallError(LLMError):
    """A single provider call failed and produced no usable result."""


class MissingApiKeyError(ProviderCallError):
    """No API key is configured for the provider serving the model."""


class TransportError(ProviderCallError):
    """Network failure, timeout, cancellation or non-2xx HTTP status."""

    def __init__(self, message: str, status_code: int = 0) -> None:
        super().__init__(message)
        self.status_code = status_code


class ResponseParseError(ProviderCallError):
    """The response body did not have the expected shape."""


class UnknownFunctionCallError(ProviderCallError):
    """The provider invoked a function the caller never offered."""

    def __init__(self, function_name: str) -> None:
        super().__init__(f"Provider called unknown function {function_name!r}")
        self.function_name = function_name


class CapabilityMismatchError(LLMError):
    """The model does not support the requested operation."""

    def __init__(self, model: str, capability: str) -> None:
        super().__init__(f"Model {model!r} does not support {capability}")
        self.model = model
        self.capability = capability


class UnsupportedOperationError(LLMError):
    """The provider client has no implementation for the operation."""


class UnknownModelError(LLMError):
    """The logical model id is not registered."""
