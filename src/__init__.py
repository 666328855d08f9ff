# src/__init__.py — v1
"""polyllm: one interface for chat, structured output, function calling,
image generation and embeddings across OpenAI, Grok and Gemini."""

from polyllm.api.facade import AIManager
from polyllm.config.settings import Settings
from polyllm.llm.model_registry import AICapability, AIModel, AIProvider
from polyllm.llm.models import ContentPart, Message
from polyllm.schema.definitions import FunctionDefinition, SchemaDefinition, SchemaParameter
from polyllm.version import __version__

__all__ = [
    "AICapability",
    "AIManager",
    "AIModel",
    "AIProvider",
    "ContentPart",
    "FunctionDefinition",
    "Message",
    "SchemaDefinition",
    "SchemaParameter",
    "Settings",
    "__version__",
]
