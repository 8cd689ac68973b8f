# =============================================================================
# app/config.py - Application Settings
# =============================================================================
# This module loads configuration from environment variables using pydantic-settings.
# It provides a single Settings class with all server configuration values.
#
# Usage:
#   from app.config import settings
#   print(settings.REPLICATE_API_TOKEN)
#
# Environment variables are loaded from:
# 1. System environment variables
# 2. .env file in project root (if exists)
#
# Client-side tunables (reconnect schedule, polling) live in
# lib/realtime_config.py so scripts don't need the server's secrets.
# =============================================================================

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Server settings loaded from environment variables.

    Uses pydantic-settings to:
    - Automatically load from .env file
    - Validate types and constraints
    - Provide sensible defaults for development

    All settings are accessed via the global `settings` instance.
    """

    # -------------------------------------------------------------------------
    # Replicate Configuration
    # -------------------------------------------------------------------------
    # The token is required - the app won't start without it

    REPLICATE_API_TOKEN: str = Field(
        ...,
        description="Replicate API token"
    )

    REPLICATE_API_URL: str = Field(
        default="https://api.replicate.com/v1",
        description="Replicate HTTP API base URL"
    )

    # Pinned for reproducibility (face-to-many-kontext)
    REPLICATE_MODEL_VERSION: str = Field(
        default="ed345b52dc59cd85bfbc3ef5dded68a06513bb33be3a359e773e345f55679c3b",
        description="Model version used for portrait transformations"
    )

    # -------------------------------------------------------------------------
    # Redis Configuration (Celery broker + realtime pub/sub)
    # -------------------------------------------------------------------------

    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for Celery and update broadcasting"
    )

    # -------------------------------------------------------------------------
    # Transformation Pipeline
    # -------------------------------------------------------------------------

    TRANSFORM_TIMEOUT_SECONDS: int = Field(
        default=120,
        ge=1,
        description="Give up on a prediction after this many seconds"
    )

    TRANSFORM_POLL_INTERVAL_SECONDS: float = Field(
        default=2.0,
        gt=0,
        description="Delay between provider status checks"
    )

    TRANSFORM_ESTIMATED_SECONDS: int = Field(
        default=60,
        ge=1,
        description="Expected prediction duration, used to estimate progress"
    )

    MAX_FINISHED_OPERATIONS: int = Field(
        default=1000,
        ge=1,
        description="Completed/failed operations kept for status replay; oldest are dropped first"
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Current environment"
    )

    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (verbose logging, auto-reload)"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the API server to"
    )

    API_PORT: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port for the API server"
    )

    # -------------------------------------------------------------------------
    # Security
    # -------------------------------------------------------------------------

    SECRET_KEY: str = Field(
        default="dev-secret-key-change-in-production",
        min_length=16,
        description="Secret key for signing session tokens"
    )

    SESSION_COOKIE_NAME: str = Field(
        default="session",
        description="Cookie carrying the signed session token"
    )

    # CORS origins (comma-separated string that gets parsed)
    CORS_ORIGINS: str = Field(
        default="http://localhost:5173",
        description="Allowed CORS origins (comma-separated)"
    )

    # -------------------------------------------------------------------------
    # File Upload & Storage
    # -------------------------------------------------------------------------

    MAX_UPLOAD_SIZE_MB: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Maximum image upload size in MB"
    )

    ALLOWED_EXTENSIONS: str = Field(
        default=".png,.jpg,.jpeg,.webp",
        description="Allowed image extensions (comma-separated)"
    )

    STORAGE_DIR: str = Field(
        default="storage",
        description="Directory where result images are stored"
    )

    FILES_URL_PATH: str = Field(
        default="/files",
        description="URL path the storage directory is served under"
    )

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        # Don't fail if .env doesn't exist
        env_ignore_empty=True,
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def cors_origins_list(self) -> list[str]:
        """
        Parse CORS_ORIGINS string into a list.

        Example: "http://localhost:5173, https://studio.app" -> ["http://localhost:5173", "https://studio.app"]
        """
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def allowed_extensions_list(self) -> list[str]:
        """
        Parse ALLOWED_EXTENSIONS string into a list.

        Example: ".png, .JPG" -> [".png", ".jpg"]
        """
        return [ext.strip().lower() for ext in self.ALLOWED_EXTENSIONS.split(",")]

    @property
    def max_upload_size_bytes(self) -> int:
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance.

    Using lru_cache ensures we only parse .env and validate once,
    not on every access.

    Returns:
        Settings: The application settings instance
    """
    return Settings()


# Global settings instance for easy importing
# Usage: from app.config import settings
settings = get_settings()
