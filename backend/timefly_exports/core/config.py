"""
Application Configuration
=========================

Centralized configuration using Pydantic Settings.
All configuration is loaded from environment variables with sensible defaults.
"""

from typing import Optional
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Settings are validated using Pydantic and cached for performance.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Application
    # -------------------------------------------------------------------------
    APP_NAME: str = "TimeFly Exports"
    APP_ENV: str = "development"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    API_PREFIX: str = ""

    # -------------------------------------------------------------------------
    # Analytical store (time entries + export audit trail)
    # -------------------------------------------------------------------------
    ANALYTICS_HOST: str | None = None
    ANALYTICS_PORT: int | None = None
    ANALYTICS_USER: str | None = None
    ANALYTICS_PASSWORD: str | None = None
    ANALYTICS_DB: str | None = None

    # Optional full DSN override
    ANALYTICS_DATABASE_URL: Optional[str] = None

    # Test-only DB override (used by pytest fixtures)
    TEST_DATABASE_URL: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        """Build the async database URL."""
        if self.APP_ENV == "test" and self.TEST_DATABASE_URL:
            return self.TEST_DATABASE_URL
        if self.ANALYTICS_DATABASE_URL:
            return self.ANALYTICS_DATABASE_URL
        return (
            f"postgresql+asyncpg://{self.ANALYTICS_USER}:{self.ANALYTICS_PASSWORD}"
            f"@{self.ANALYTICS_HOST}:{self.ANALYTICS_PORT}/{self.ANALYTICS_DB}"
        )

    @property
    def DATABASE_URL_SYNC(self) -> str:
        """Build the sync database URL (for Alembic)."""
        return self.DATABASE_URL.replace("postgresql+asyncpg://", "postgresql://", 1)

    # -------------------------------------------------------------------------
    # Exports
    # -------------------------------------------------------------------------
    EXPORT_DIR: str = "exports"
    BASE_URL: str = "http://localhost:3000"
    EXPORT_BATCH_SIZE: int = Field(1000, ge=1)
    EXPORT_RETENTION_DAYS: int = Field(7, ge=1)
    # Upper bound for a whole export job; unset means no deadline
    EXPORT_JOB_DEADLINE_SECONDS: float | None = None
    EXPORT_SHUTDOWN_GRACE_SECONDS: float = 30.0

    # -------------------------------------------------------------------------
    # E-mail delivery (Resend)
    # -------------------------------------------------------------------------
    RESEND_API_KEY: str | None = None
    RESEND_API_URL: str = "https://api.resend.com"
    EMAIL_FROM: str = "TimeFly <exports@timefly.dev>"
    EMAIL_TIMEOUT_SECONDS: float = 10.0

    # -------------------------------------------------------------------------
    # Celery
    # -------------------------------------------------------------------------
    CELERY_BROKER_URL: str | None = None
    CELERY_RESULT_BACKEND: str | None = None

    # -------------------------------------------------------------------------
    # Helper Methods
    # -------------------------------------------------------------------------

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.APP_ENV == "development"

    @property
    def email_configured(self) -> bool:
        return bool(self.RESEND_API_KEY and self.EMAIL_FROM)


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once and reused.

    Returns:
        Settings: Validated settings instance
    """
    return Settings()


# Global settings instance
settings = get_settings()
