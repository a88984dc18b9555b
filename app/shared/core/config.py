from functools import lru_cache
from typing import Optional

import structlog
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Environment Constants
ENV_PRODUCTION = "production"
ENV_STAGING = "staging"
ENV_DEVELOPMENT = "development"


@lru_cache
def get_settings() -> "Settings":
    """Returns a singleton instance of the application settings."""
    return Settings()


def reload_settings_from_environment() -> "Settings":
    """Drop the cached settings and rebuild them from the environment."""
    logger = structlog.get_logger()
    get_settings.cache_clear()
    refreshed = get_settings()
    from app.models._encryption import clear_encryption_key_cache

    clear_encryption_key_cache()
    logger.info("settings_reloaded", environment=refreshed.ENVIRONMENT)
    return refreshed


class Settings(BaseSettings):
    """
    Main configuration for Cirrus.
    Uses Pydantic-Settings for environment variable parsing from .env.
    """

    APP_NAME: str = "Cirrus"
    VERSION: str = "0.1.0"
    DEBUG: bool = False
    # ENVIRONMENT options: development, staging, production
    ENVIRONMENT: str = ENV_DEVELOPMENT
    TESTING: bool = False

    # Database
    DATABASE_URL: Optional[str] = None
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 10
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 1800
    DB_ECHO: bool = False
    DB_SLOW_QUERY_THRESHOLD_SECONDS: float = 0.5

    # Symmetric key for provider API tokens stored at rest
    ENCRYPTION_KEY: Optional[str] = None

    # Provider API (Linode / Akamai Cloud v4)
    PROVIDER_API_BASE_URL: str = "https://api.linode.com/v4"
    PROVIDER_TIMEOUT_SECONDS: float = 20.0
    PROVIDER_MAX_RETRIES: int = 3
    PROVIDER_RETRY_BACKOFF_SECONDS: float = 0.5
    PROVIDER_PAGE_SIZE: int = 500
    EVENTS_PAGE_SIZE: int = 500

    # Concurrency
    COLLECTOR_MAX_CONCURRENCY: int = 8
    ACCOUNT_MAX_CONCURRENCY: int = 4

    # Flat-rate pricing used where the provider exposes no price endpoint
    VOLUME_GB_MONTHLY_USD: float = 0.10
    LOAD_BALANCER_MONTHLY_USD: float = 10.00
    OBJECT_STORAGE_BASE_MONTHLY_USD: float = 5.00
    OBJECT_STORAGE_INCLUDED_GB: float = 250.0
    OBJECT_STORAGE_OVERAGE_GB_USD: float = 0.02

    # Scheduled refresh (5-field cron expression, empty disables the job)
    REFRESH_CRON: str = ""
    SCORE_HISTORY_DEFAULT_DAYS: int = 30

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @model_validator(mode="after")
    def validate_all_config(self) -> "Settings":
        if self.TESTING and self.ENVIRONMENT in {ENV_PRODUCTION, ENV_STAGING}:
            raise ValueError(
                "TESTING must be false in staging/production runtime environments."
            )
        if self.TESTING:
            return self

        if not self.ENCRYPTION_KEY:
            raise ValueError("ENCRYPTION_KEY must be set to store provider tokens.")
        if self.is_production and len(self.ENCRYPTION_KEY) < 32:
            raise ValueError("ENCRYPTION_KEY must be at least 32 characters in production.")
        if not self.PROVIDER_API_BASE_URL.startswith("https://") and self.is_production:
            raise ValueError("PROVIDER_API_BASE_URL must use https in production.")
        if self.PROVIDER_MAX_RETRIES < 1:
            raise ValueError("PROVIDER_MAX_RETRIES must be at least 1.")
        if self.COLLECTOR_MAX_CONCURRENCY < 1 or self.ACCOUNT_MAX_CONCURRENCY < 1:
            raise ValueError("Concurrency limits must be positive.")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT in {ENV_PRODUCTION, ENV_STAGING}
