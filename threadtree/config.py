from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Service settings loaded from environment variables.
    Follows 12-factor app configuration principles.
    """

    # env_file is only used as fallback, env vars take precedence
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
    )

    # Message journal replayed into the thread tree at startup
    DATABASE_URL: str = "sqlite:///./threadtree.db"

    LOG_LEVEL: str = "INFO"

    # Create boards on first use instead of rejecting unknown boards
    AUTO_CREATE_BOARDS: bool = False

    # Boards registered at startup, JSON list in the environment
    DEFAULT_BOARDS: List[str] = []


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
