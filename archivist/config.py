"""
Archivist - Configuration

Settings are read from the process environment (and an optional .env file)
through pydantic-settings. A single cached instance is shared by the API,
the worker and the ingestion services.

Usage:
    from archivist.config import get_settings

    settings = get_settings()
    limit = settings.INGEST_LIST_LIMIT
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

# Hard ceilings imposed by the external collaborators
MAX_LIST_LIMIT = 1000
MAX_QUEUE_BATCH_LIMIT = 100


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # =========================================================================
    # ENVIRONMENT CONTROL
    # =========================================================================

    ENVIRONMENT: Literal["dev", "staging", "prod"] = Field(
        default="dev",
        description="Deployment environment",
    )
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    LOG_JSON: bool | None = Field(
        default=None,
        description="Force JSON log output; defaults to on in prod",
    )

    # =========================================================================
    # API AUTHENTICATION
    # =========================================================================

    ARCHIVIST_AUTH_TOKEN: str | None = Field(
        default=None,
        description="Shared bearer token for trigger and upload endpoints",
    )
    ARCHIVIST_SELF_URL: str = Field(
        default="http://localhost:8787",
        description="Public base URL of this API, used for pagination re-invocation",
    )

    # =========================================================================
    # INDEX STORE (POSTGRES)
    # =========================================================================

    DATABASE_URL: str = Field(
        default="",
        description="Postgres connection string for index tables and the ingest queue",
    )
    DB_POOL_MIN_SIZE: int = Field(default=1, ge=0)
    DB_POOL_MAX_SIZE: int = Field(default=5, ge=1)

    # =========================================================================
    # OBJECT STORE (S3-COMPATIBLE)
    # =========================================================================

    OBJECT_STORE_BUCKET: str = Field(default="sr-json")
    OBJECT_STORE_ENDPOINT_URL: str | None = Field(default=None)
    OBJECT_STORE_ACCESS_KEY_ID: str | None = Field(default=None)
    OBJECT_STORE_SECRET_ACCESS_KEY: str | None = Field(default=None)
    OBJECT_STORE_REGION: str = Field(default="auto")

    # =========================================================================
    # QUEUE & INGESTION
    # =========================================================================

    QUEUE_NAME: str = Field(default="sr-queue")
    INGEST_LIST_LIMIT: int = Field(default=MAX_LIST_LIMIT, ge=1, le=MAX_LIST_LIMIT)
    INGEST_QUEUE_BATCH_LIMIT: int = Field(
        default=MAX_QUEUE_BATCH_LIMIT, ge=1, le=MAX_QUEUE_BATCH_LIMIT
    )
    INGEST_MAX_PAGES: int = Field(
        default=10_000,
        ge=1,
        description="Upper bound on pages walked by one self-paginating run",
    )

    # =========================================================================
    # WORKER
    # =========================================================================

    WORKER_POLL_INTERVAL_SECONDS: float = Field(default=1.0, gt=0)
    WORKER_VISIBILITY_TIMEOUT_SECONDS: int = Field(default=300, ge=1)
    WORKER_MAX_ATTEMPTS: int = Field(
        default=5,
        ge=1,
        description="Deliveries of a failing message before it is dead-lettered",
    )
    WORKER_SELF_INVOKE: bool = Field(
        default=False,
        description="Resume pagination through the HTTP endpoint instead of in process",
    )

    @field_validator("ARCHIVIST_SELF_URL")
    @classmethod
    def _strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "prod"

    @property
    def json_logs(self) -> bool:
        if self.LOG_JSON is not None:
            return self.LOG_JSON
        return self.is_production


# =========================================================================
# SINGLETON & FACTORY
# =========================================================================


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


def reset_settings() -> None:
    """Clear the cached settings (for testing)."""
    get_settings.cache_clear()


def configure_logging(settings: Settings | None = None) -> None:
    """Configure application logging based on settings."""
    from archivist.core.logging import configure_structured_logging

    if settings is None:
        settings = get_settings()

    configure_structured_logging(
        level=settings.LOG_LEVEL,
        json_output=settings.json_logs,
        service_name="archivist",
    )

    # Quiet noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("psycopg.pool").setLevel(logging.WARNING)
