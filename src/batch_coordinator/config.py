"""
Configuration module for the batch completion coordinator.

Defines shared-store connection settings, batch/lock timing, and the local
fallback store's eviction policy.
"""

from __future__ import annotations

from urllib.parse import quote

from dotenv import find_dotenv, load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from batch_coordinator.config_enums import Environment

# Load .env file from repository root, regardless of current working directory
load_dotenv(find_dotenv(".env"))


class Settings(BaseSettings):
    """
    Configuration settings for the batch completion coordinator.

    Settings are loaded from .env files and environment variables.
    """

    # Service Configuration
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: Environment = Environment.DEVELOPMENT
    SERVICE_NAME: str = "batch-coordinator"

    # Shared Store (Redis) Configuration
    REDIS_URL: str | None = Field(
        default=None,
        description="Redis URL for shared batch state. Unset means in-process fallback only.",
    )
    REDIS_HOST: str | None = Field(
        default=None, description="Redis host, used when REDIS_URL is not set"
    )
    REDIS_PORT: int = 6379
    REDIS_PASSWORD: str | None = None
    REDIS_DB: int = 0

    # Batch Record Configuration
    BATCH_KEY_PREFIX: str = "batch:notification:"
    BATCH_TTL_SECONDS: int = Field(
        default=3600,
        ge=1,
        description="TTL of a batch record; refreshed on every save",
    )

    # Distributed Lock Configuration
    LOCK_SUFFIX: str = ":lock"
    LOCK_TTL_SECONDS: int = Field(
        default=5,
        ge=1,
        description="Lease length of the per-batch lock; a crashed holder's lock expires after this",
    )
    LOCK_MAX_ATTEMPTS: int = Field(default=10, ge=1)
    LOCK_RETRY_BASE_MS: int = Field(default=50, ge=0)
    LOCK_RETRY_JITTER_MS: int = Field(default=100, ge=0)

    # Store operation timeout so a slow store cannot wedge a worker
    STORE_OPERATION_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)

    # Local Fallback Store Configuration
    FALLBACK_MAX_AGE_SECONDS: int = Field(
        default=86400, ge=1, description="Fallback entries older than this are swept"
    )
    FALLBACK_SWEEP_INTERVAL_SECONDS: int = Field(default=3600, ge=1)

    # Admin CLI Configuration
    NOTIFICATION_DISPATCHER: str | None = Field(
        default=None,
        description="module:attr of the dispatcher the admin CLI uses for force-trigger",
    )

    # Observability Configuration
    ENABLE_METRICS: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_prefix="BATCH_COORDINATOR_",
    )

    @property
    def redis_connection_url(self) -> str | None:
        """Return the effective Redis URL, or None when no shared store is configured."""
        if self.REDIS_URL:
            return self.REDIS_URL
        if not self.REDIS_HOST:
            return None

        auth = f":{quote(self.REDIS_PASSWORD, safe='')}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"


# Create a single instance for the application to use
settings = Settings()
