"""Application configuration management."""
from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_PLACEHOLDER_MARKERS = ("your-key", "your_api_key")


def is_placeholder_key(value: str | None) -> bool:
    """Return True for empty, bracketed, or template-looking secret values."""

    if value is None:
        return True
    normalized = value.strip().lower()
    if not normalized:
        return True
    if any(marker in normalized for marker in _PLACEHOLDER_MARKERS):
        return True
    return normalized.startswith("<") and normalized.endswith(">")


class Settings(BaseSettings):
    """Centralised application settings derived from environment variables."""

    database_url: str = Field(
        default="sqlite:///./data/workout_coach.db",
        description="SQLAlchemy-compatible database URL.",
    )
    debug: bool = Field(default=False)

    log_level: str = Field(default="INFO")
    log_dir: Path = Field(default=Path("logs"))

    encryption_key: str | None = Field(
        default=None,
        description="64 hex characters (32 bytes) used for AES-256-GCM credential encryption.",
    )

    ai_provider: str = Field(default="openrouter", description="openrouter or anthropic.")
    openrouter_api_key: str | None = None
    anthropic_api_key: str | None = None
    openrouter_api_url: str = Field(default="https://openrouter.ai/api/v1")
    openrouter_model: str = Field(default="openai/gpt-4o-mini")
    anthropic_model: str = Field(default="claude-sonnet-4-5-20250929")
    ai_request_timeout_seconds: float = Field(default=90.0, gt=0)
    ai_max_tokens: int = Field(default=8192, ge=1)
    ai_temperature: float = Field(default=0.7, ge=0, le=2)
    prompt_config_path: Path = Field(
        default=Path(__file__).resolve().parent / "prompts" / "workout_generation.yaml"
    )

    garmin_http_timeout_seconds: float = Field(default=30.0, gt=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("encryption_key", "openrouter_api_key", "anthropic_api_key")
    @classmethod
    def drop_placeholder_keys(cls, value: str | None) -> str | None:
        """Treat template values copied from .env.example as missing."""

        if is_placeholder_key(value):
            return None
        return value.strip()

    @field_validator("ai_provider")
    @classmethod
    def normalize_provider(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        valid = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
        upper = value.upper()
        if upper not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {', '.join(sorted(valid))}")
        return upper


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance so it can be reused across the app."""

    settings = Settings()
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    return settings
