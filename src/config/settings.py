# src/config/settings.py — v2
"""Typed configuration loaded from .env via pydantic-settings.

Single source of truth for provider credentials, endpoints, request
timeout and logging. Keys are read from the environment (OPENAI_API_KEY,
GROK_API_KEY, GOOGLE_API_KEY) or the .env file; a missing key is a normal
state reported at call time, not a configuration error.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from polyllm.llm.model_registry import AIProvider


class ConfigurationError(Exception):
    """Raised when configuration is internally inconsistent."""


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === Provider API keys ===
    openai_api_key: str = ""
    grok_api_key: str = ""
    google_api_key: str = ""

    # === Endpoints ===
    openai_base_url: str = "https://api.openai.com/v1"
    grok_base_url: str = "https://api.x.ai/v1"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    # How OpenAI function declarations are sent: legacy "functions" or "tools"
    openai_function_style: Literal["functions", "tools"] = "functions"

    # Max wait per request in seconds (None = no limit)
    request_timeout_s: float | None = None

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "text"] = "text"
    log_file: Path | None = None
    log_rotation: str = "10MB"
    log_retention: int = 5

    @model_validator(mode="after")
    def validate_config_consistency(self) -> Settings:
        """Cross-field checks on endpoints, timeout and logging."""
        errors: list[str] = []

        if self.request_timeout_s is not None and self.request_timeout_s <= 0:
            errors.append("REQUEST_TIMEOUT_S must be > 0")

        for name in ("openai_base_url", "grok_base_url", "gemini_base_url"):
            url = getattr(self, name)
            if not url.startswith(("http://", "https://")):
                errors.append(f"{name.upper()} must be an http(s) URL, got {url!r}")

        if self.log_retention < 0:
            errors.append("LOG_RETENTION must be >= 0")

        if errors:
            raise ConfigurationError("; ".join(errors))

        return self

    # --- Helpers ---

    def api_key_for(self, provider: AIProvider) -> str | None:
        """Resolved key for provider, or None when not configured."""
        key = {
            AIProvider.OPENAI: self.openai_api_key,
            AIProvider.GROK: self.grok_api_key,
            AIProvider.GEMINI: self.google_api_key,
        }[provider]
        return key.strip() or None

    def base_url_for(self, provider: AIProvider) -> str:
        return {
            AIProvider.OPENAI: self.openai_base_url,
            AIProvider.GROK: self.grok_base_url,
            AIProvider.GEMINI: self.gemini_base_url,
        }[provider]


def load_settings(**overrides: object) -> Settings:
    """Load settings from .env with optional overrides.

    Args:
        **overrides: Field-level overrides (for testing or per-call config).

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If configuration is internally inconsistent.
    """
    return Settings(**overrides)  # type: ignore[arg-type]
