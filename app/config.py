# =============================================================================
# app/config.py - Application Settings
# =============================================================================
# This module loads configuration from environment variables using pydantic-settings.
# It provides a single Settings class with all configuration values.
#
# Usage:
#   from app.config import settings
#   print(settings.SUPABASE_URL)
#
# Environment variables are loaded from:
# 1. System environment variables
# 2. .env file in project root (if exists)
#
# Third-party secrets (Stripe, Google, internal/cron secrets) are optional here
# and checked where they are used, so a missing key only disables the feature
# that needs it.
# =============================================================================

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings are accessed via the global `settings` instance.
    """

    # -------------------------------------------------------------------------
    # Supabase Configuration
    # -------------------------------------------------------------------------
    # These are required - app won't start without them

    SUPABASE_URL: str = Field(
        ...,
        description="Supabase project URL (e.g., https://xxx.supabase.co)"
    )

    SUPABASE_ANON_KEY: str = Field(
        ...,
        description="Supabase anon/public API key"
    )

    SUPABASE_SERVICE_KEY: str = Field(
        ...,
        description="Supabase service_role key (bypasses RLS)"
    )

    SUPABASE_JWT_SECRET: str | None = Field(
        default=None,
        description="Legacy HS256 secret used to verify Supabase access tokens"
    )

    SUPABASE_AUTH_COOKIE: str = Field(
        default="sb-access-token",
        description="Cookie carrying the Supabase access token on browser navigations"
    )

    # -------------------------------------------------------------------------
    # Redis Configuration (for Celery)
    # -------------------------------------------------------------------------

    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for Celery broker"
    )

    # -------------------------------------------------------------------------
    # OpenAI Configuration
    # -------------------------------------------------------------------------

    OPENAI_API_KEY: str = Field(
        ...,
        description="OpenAI API key for thumbnail image generation"
    )

    OPENAI_IMAGE_MODEL: str = Field(
        default="gpt-image-1",
        description="Image model used to render thumbnails"
    )

    AI_REQUEST_TIMEOUT_SECONDS: float = Field(
        default=120.0,
        gt=0,
        description="Timeout for a single image generation request"
    )

    # -------------------------------------------------------------------------
    # Stripe Configuration
    # -------------------------------------------------------------------------

    STRIPE_SECRET_KEY: str | None = Field(
        default=None,
        description="Stripe secret key (sk_test_... selects test-mode product ids)"
    )

    STRIPE_WEBHOOK_SECRET: str | None = Field(
        default=None,
        description="Signing secret for the Stripe webhook endpoint"
    )

    # -------------------------------------------------------------------------
    # Google / YouTube OAuth
    # -------------------------------------------------------------------------

    GOOGLE_CLIENT_ID: str | None = Field(
        default=None,
        description="Google OAuth client id for the YouTube connection"
    )

    GOOGLE_CLIENT_SECRET: str | None = Field(
        default=None,
        description="Google OAuth client secret"
    )

    APP_URL: str = Field(
        default="http://localhost:3000",
        description="Public base URL used to build OAuth redirect URIs"
    )

    # -------------------------------------------------------------------------
    # Server-to-server Secrets
    # -------------------------------------------------------------------------

    INTERNAL_API_SECRET: str | None = Field(
        default=None,
        description="Shared secret for internal notification creation"
    )

    CRON_SECRET: str | None = Field(
        default=None,
        description="Shared secret for scheduled maintenance endpoints"
    )

    # -------------------------------------------------------------------------
    # Caching and Storage
    # -------------------------------------------------------------------------

    YOUTUBE_VIDEOS_CACHE_TTL_SECONDS: int = Field(
        default=600,
        ge=0,
        description="How long the first page of a user's video list is cached"
    )

    YOUTUBE_PLAYLIST_CACHE_TTL_SECONDS: int = Field(
        default=3600,
        ge=0,
        description="How long a user's uploads playlist id is cached"
    )

    TIERS_CACHE_TTL_SECONDS: int = Field(
        default=300,
        ge=0,
        description="How long subscription tier rows are cached"
    )

    SIGNED_URL_EXPIRY_SECONDS: int = Field(
        default=365 * 24 * 60 * 60,
        ge=60,
        description="Lifetime of generated storage signed URLs"
    )

    SIGNED_URL_REFRESH_THRESHOLD_SECONDS: int = Field(
        default=7 * 24 * 60 * 60,
        ge=0,
        description="Refresh signed URLs expiring within this window"
    )

    FREE_TIER_RETENTION_DAYS: int = Field(
        default=30,
        ge=1,
        description="Free-tier thumbnails older than this are deleted"
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
        description="Secret key for signing the OAuth state cookie"
    )

    # CORS origins (comma-separated string that gets parsed)
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=True,
    )

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def cors_origins_list(self) -> list[str]:
        """
        Parse CORS_ORIGINS string into a list.

        Example: "http://localhost:3000, https://viewbait.app" -> ["http://localhost:3000", "https://viewbait.app"]
        """
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def youtube_redirect_uri(self) -> str:
        """OAuth callback URL registered with Google."""
        return f"{self.APP_URL.rstrip('/')}/api/youtube/connect/callback"

    @property
    def stripe_mode(self) -> Literal["test", "live"]:
        """Stripe key mode, which decides between test and live product ids."""
        if self.STRIPE_SECRET_KEY and self.STRIPE_SECRET_KEY.startswith("sk_test_"):
            return "test"
        return "live"

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance.

    Returns:
        Settings: The application settings instance
    """
    return Settings()


# Global settings instance for easy importing
# Usage: from app.config import settings
settings = get_settings()
