"""Application configuration using Pydantic Settings.

This module provides type-safe environment variable management
with validation and computed properties for the store, the photo
lifecycle rules and the reaper schedule.
"""

from datetime import timedelta
from functools import lru_cache
from typing import List, Optional

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        APP_ENV: Application environment (development, staging, production).
        DEBUG: Enable debug mode.
        API_PREFIX: Prefix for all API routes.
        POSTGRES_USER: PostgreSQL username.
        POSTGRES_PASSWORD: PostgreSQL password.
        POSTGRES_DB: PostgreSQL database name.
        POSTGRES_HOST: PostgreSQL host address.
        POSTGRES_PORT: PostgreSQL port number.
        DATABASE_URL: Full async database URL, overrides the POSTGRES_* values.
        CORS_ORIGINS: Comma-separated list of allowed CORS origins.
        BASE_LIFESPAN_HOURS: Finite-life baseline, also the amount added
            per like and removed per dislike.
        ZONE_RESOLUTION: H3 resolution used to group photos into zones.
        ZONE_FINITE_THRESHOLD: Live zone population at which photos
            switch from infinite to finite life.
        PHOTO_LIST_LIMIT: Default number of photos returned to the map.
        STORAGE_PATH: Root directory for photo and thumbnail files.
        STORAGE_PUBLIC_URL: Base URL the storage directory is served from.
        THUMBNAIL_SIZE: Bounding box (pixels) for generated thumbnails.
        THUMBNAIL_QUALITY: JPEG quality for generated thumbnails.
        MAX_UPLOAD_BYTES: Largest accepted photo upload.
        REAPER_ENABLED: Run the reaper loop inside the application.
        REAPER_INTERVAL_SECONDS: Delay between two reaper sweeps.
        RATE_LIMIT_ENABLED: Apply rate limits to interaction endpoints.
        RATE_LIMIT_INTERACTIONS: slowapi limit string for interactions.
        CHANGE_FEED_QUEUE_SIZE: Per-websocket buffer of pending events.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_ENV: str = "development"
    DEBUG: bool = False
    API_PREFIX: str = "/api/v1"

    # Database
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "ephemap"
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: Optional[str] = None

    # CORS
    CORS_ORIGINS: str = "http://localhost:5173"

    # Photo lifecycle
    BASE_LIFESPAN_HOURS: float = 168.0
    ZONE_RESOLUTION: int = 7
    ZONE_FINITE_THRESHOLD: int = 8
    PHOTO_LIST_LIMIT: int = 100

    # Blob storage
    STORAGE_PATH: str = "./storage"
    STORAGE_PUBLIC_URL: str = "/storage"
    THUMBNAIL_SIZE: int = 64
    THUMBNAIL_QUALITY: int = 70
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024

    # Reaper
    REAPER_ENABLED: bool = True
    REAPER_INTERVAL_SECONDS: int = 3600

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_INTERACTIONS: str = "30/minute"

    # Realtime
    CHANGE_FEED_QUEUE_SIZE: int = 256

    @computed_field  # type: ignore[misc]
    @property
    def SQLALCHEMY_DATABASE_URI(self) -> str:
        """Construct the async database URI.

        Returns:
            Async database connection string for SQLAlchemy.
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    @property
    def base_lifespan(self) -> timedelta:
        """Return BASE_LIFESPAN_HOURS as a timedelta."""
        return timedelta(hours=self.BASE_LIFESPAN_HOURS)

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string.

        Returns:
            List of allowed origin URLs.
        """
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Returns:
        Singleton Settings instance.
    """
    return Settings()


settings = get_settings()
