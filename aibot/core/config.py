from __future__ import annotations
"""Application configuration from environment variables."""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # App
    app_name: str = "ai-tg-bot"
    debug: bool = False
    log_level: str = "INFO"

    # Telegram
    bot_token: Optional[str] = None

    # Google Gemini AI
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"

    # Storage: "sql" (SQLAlchemy) or "memory" (lost on restart)
    storage_backend: str = "sql"
    database_url: str = "sqlite+aiosqlite:///./data/bot.db"

    # Context defaults for new users
    context_max_messages: int = 20
    context_max_tokens: int = 8000

    # Default language
    default_language: str = "ru"

    # Health-check server
    port: int = 3000

    # Temporary directories for media downloads (under the system temp dir)
    temp_dir_audio: str = "tg-bot-audio"
    temp_dir_images: str = "tg-bot-images"

    # Sentry (Error Monitoring)
    sentry_dsn: Optional[str] = None


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
