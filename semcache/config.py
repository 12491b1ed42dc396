# SPDX-License-Identifier: Apache-2.0
# Copyright 2024-2026 CAB Ingénierie / Christophe ABOULICAM
"""Application settings using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigurationError

DEFAULT_SIMILARITY_THRESHOLD = 0.85


class Settings(BaseSettings):
    """semcache configuration settings.

    All settings can be overridden via environment variables.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "semcache"
    app_version: str = "0.1.0"

    # Vector index
    index_backend: Literal["pgvector", "memory"] = "pgvector"
    database_url: str = "postgresql+asyncpg://semcache:@localhost:5432/semcache"
    collection_name: str = "semantic_cache"
    embedding_field_name: str = "embedding"
    ensure_schema: bool = True

    # Embeddings
    embedding_provider: Literal["voyage", "local"] = "voyage"
    voyage_api_key: str = ""
    voyage_model: str = "voyage-3.5"
    voyage_base_url: str = "https://api.voyageai.com/v1"
    local_embedding_model: str = "all-MiniLM-L6-v2"

    # Completions
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    llm_model: str = "gpt-5-mini"
    request_timeout_seconds: float = 60.0

    # Cache policy
    similarity_threshold: float = DEFAULT_SIMILARITY_THRESHOLD

    # Logging
    log_level: str = "INFO"
    log_format: Literal["json", "text"] = "json"

    @field_validator("database_url")
    @classmethod
    def use_async_driver(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg://."""
        if v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    @field_validator("similarity_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if v < 0 or v > 1:
            raise ValueError(f"Similarity threshold must be between 0 and 1, got {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper

    @property
    def safe_database_url(self) -> str:
        """Database URL with the password masked, for logs."""
        if "@" not in self.database_url:
            return self.database_url
        credentials, host = self.database_url.rsplit("@", 1)
        if credentials.count(":") < 2:
            return self.database_url
        user_part = credentials.rsplit(":", 1)[0]
        return f"{user_part}:***@{host}"

    def require_credentials(self) -> None:
        """Fail fast when the selected providers have no API key."""
        missing = []
        if self.embedding_provider == "voyage" and not self.voyage_api_key:
            missing.append("VOYAGE_API_KEY")
        if not self.openai_api_key:
            missing.append("OPENAI_API_KEY")
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                details={"missing": missing},
            )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing)."""
    get_settings.cache_clear()
