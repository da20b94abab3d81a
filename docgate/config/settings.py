"""docgate configuration via environment / .env file."""

from __future__ import annotations

from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- Cache / Redis ---
    REDIS_URL: str = "redis://localhost:6379/0"
    CACHE_ENABLED: bool = True
    CACHE_KEY_PREFIX: str = "gdoc:"
    CACHE_CONTENT_TTL_SECONDS: int = 900
    CACHE_METADATA_TTL_SECONDS: int = 300

    # --- Generation ---
    ANTHROPIC_API_KEY: str = ""
    GENERATION_MODEL: str = "claude-sonnet-4-20250514"
    GENERATION_MAX_TOKENS: int = 4096

    # --- Persisted state ---
    REVIEW_QUEUE_PATH: str = "data/review-queue.json"
    SECURITY_LOG_PATH: str = "logs/security-events.log"
    GATEWAY_CONFIG_PATH: str = ""

    # --- Logging ---
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    @field_validator("CACHE_KEY_PREFIX", mode="before")
    @classmethod
    def _ensure_prefix_separator(cls, v: str) -> str:
        if v and not v.endswith(":"):
            return f"{v}:"
        return v


settings = Settings()
