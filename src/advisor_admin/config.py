"""Application configuration via Pydantic BaseSettings."""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    development = "development"
    staging = "staging"
    production = "production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment
    ENVIRONMENT: Environment = Environment.development

    # Logging
    LOG_LEVEL: str = "INFO"

    # Remote admin API
    API_BASE_URL: str = "http://localhost:5000"
    API_TOKEN: str = ""  # Bearer token; omitted from requests when empty
    GATEWAY_TIMEOUT_SECONDS: float = 10.0

    # Client cache
    CACHE_TTL_SECONDS: int = 300
    CACHE_TTL_OVERRIDES: dict[str, int] = Field(default_factory=dict)  # collection id -> seconds

    # Synthetic fallback data
    FALLBACK_ENABLED: bool = True
    FALLBACK_SEED: int | None = None  # Unset: fresh seed per generation

    # CORS
    CORS_ALLOWED_ORIGINS: str = "*"


@lru_cache
def get_settings() -> Settings:
    """Singleton settings instance."""
    return Settings()
