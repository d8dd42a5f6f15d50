"""
Application Configuration

This module provides type-safe configuration loading using Pydantic settings.
Environment variables are loaded from .env file and validated.

Provider credentials decide which LLM providers take part in a batch: a
provider without an API key is skipped entirely. Per-provider pacing policies
(intervals, concurrency, retries, backoff) live in config/default.yaml and are
loaded with load_yaml_config().

Usage:
    from notesynth.config import settings

    # Access settings
    groq_key = settings.GROQ_API_KEY
    order = settings.provider_order
"""

from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic_settings import BaseSettings, SettingsConfigDict

from notesynth.enums.dispatch import ProviderName


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    APP_NAME: str = "NoteSynth"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # LLM provider credentials (empty = provider disabled)
    GROQ_API_KEY: str = ""
    GEMINI_API_KEY: str = ""

    # Priority order of providers, comma separated. Providers without
    # credentials are dropped from this list at batch start.
    PROVIDER_ORDER: str = "groq,gemini"

    # Outer bound on lectures processed at once. When unset, the primary
    # provider's batch_concurrency policy is used.
    BATCH_CONCURRENCY: Optional[int] = None

    # Prompt template with a {{TRANSCRIPT}} marker. Empty = packaged default.
    PROMPT_TEMPLATE_PATH: str = ""

    # Outbound HTTP
    HTTP_TIMEOUT_SECONDS: float = 60.0

    # Inbound API rate limiting (SlowAPI)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "100/minute"
    RATE_LIMIT_BATCH: str = "5/minute"

    @property
    def provider_order(self) -> list[str]:
        """Configured provider priority as a list of lowercase names."""
        return [
            name.strip().lower()
            for name in self.PROVIDER_ORDER.split(",")
            if name.strip()
        ]

    @property
    def provider_credentials(self) -> dict[str, str]:
        """API key per known provider (empty string when not configured)."""
        return {
            ProviderName.GROQ.value: self.GROQ_API_KEY,
            ProviderName.GEMINI.value: self.GEMINI_API_KEY,
        }


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()


@lru_cache()
def load_yaml_config() -> dict[str, Any]:
    """Load application configuration from config/default.yaml."""
    config_path = Path(__file__).parent.parent.parent / "config" / "default.yaml"

    if not config_path.exists():
        return {}

    with open(config_path) as f:
        return yaml.safe_load(f) or {}

