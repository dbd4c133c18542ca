"""
Application configuration using Pydantic Settings.

Environment-based infrastructure switching is controlled by the ENVIRONMENT variable.
"""

from functools import lru_cache
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ===========================================
    # Environment
    # ===========================================
    ENVIRONMENT: Literal["local", "gcp"] = "local"
    DEBUG: bool = True

    # ===========================================
    # Database
    # ===========================================
    DATABASE_URL: str = "sqlite+aiosqlite:///./marketplace.db"

    # ===========================================
    # Auth
    # ===========================================
    # Only the mock provider ships: bearer token == user id
    AUTH_PROVIDER: Literal["mock"] = "mock"
    AUTH_ENABLED: bool = True
    # Profiles created for these users get the admin role
    ADMIN_USER_IDS: List[str] = Field(default=["admin_user"])

    # ===========================================
    # Server
    # ===========================================
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ALLOWED_ORIGINS: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"]
    )

    # URL for accessing the backend (for storage URLs)
    BASE_URL: str = "http://localhost:8000"

    # ===========================================
    # Storage / Images
    # ===========================================
    STORAGE_BASE_PATH: str = "./storage"
    DEFAULT_AVATAR_URL: str = "https://i.pravatar.cc/150?u={user_id}"
    IMAGE_WEBP_QUALITY: int = Field(default=80, ge=1, le=100)
    IMAGE_MAX_BYTES: int = 5 * 1024 * 1024

    # ===========================================
    # Listings
    # ===========================================
    LISTING_PAGE_LIMIT: int = 200
    LISTING_MAX_IMAGES: int = 10

    # ===========================================
    # Chat / Realtime
    # ===========================================
    CHAT_HISTORY_LIMIT: int = 500
    # Seconds between SSE keep-alive comments
    REALTIME_KEEPALIVE_SECONDS: float = 15.0

    @property
    def is_gcp(self) -> bool:
        """Check if running in GCP environment."""
        return self.ENVIRONMENT == "gcp"

    @property
    def is_local(self) -> bool:
        """Check if running in local environment."""
        return self.ENVIRONMENT == "local"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache ensures settings are loaded only once.
    """
    return Settings()
