"""Application configuration using Pydantic Settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./scoreline.db"

    # LiveScore API
    LIVESCORE_KEY: str = ""
    LIVESCORE_SECRET: str = ""
    LIVESCORE_API_BASE: str = "https://livescore-api.com/api-client"
    LIVESCORE_LANG: str = "en"
    LIVESCORE_TIMEOUT_SECONDS: float = 30.0

    # Pacing between external calls (seconds). Respects third-party rate limits.
    DELAY_BETWEEN_REQUESTS: float = 0.5
    DELAY_BETWEEN_DOWNLOADS: float = 0.2

    # Sync defaults
    SYNC_PAGE_SIZE: int = 30
    SYNC_MAX_REQUESTS: int = 10000
    SYNC_PROGRESS_DIR: str = "data/progress"

    # API Security
    API_KEY: str = ""  # Admin endpoints (settlement trigger)
    API_KEY_HEADER: str = "X-API-Key"

    # Maintenance worker
    MAINTENANCE_INTERVAL_MINUTES: int = 5
    TOKEN_CLEANUP_BATCH: int = 100

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
