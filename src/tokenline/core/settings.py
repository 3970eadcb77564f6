"""Application settings and configuration.

This module defines all configuration options for the Tokenline service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Tokenline", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")

    # Database configuration
    database_url: str = Field(default="sqlite:///./tokenline.db", alias="DATABASE_URL")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Redis (7.0+) for rate limiting and the live queue index
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    cache_socket_timeout_seconds: float = Field(
        default=0.25,
        alias="CACHE_SOCKET_TIMEOUT_SECONDS",
    )
    cache_connect_timeout_seconds: float = Field(
        default=0.5,
        alias="CACHE_CONNECT_TIMEOUT_SECONDS",
    )
    # Per-command retry budget (a single retry)
    cache_retry_backoff_base_seconds: float = Field(
        default=0.01,
        alias="CACHE_RETRY_BACKOFF_BASE_SECONDS",
    )
    cache_retry_backoff_cap_seconds: float = Field(
        default=0.1,
        alias="CACHE_RETRY_BACKOFF_CAP_SECONDS",
    )
    # Delay between readiness probes once the cache has failed
    cache_reconnect_backoff_base_seconds: float = Field(
        default=1.0,
        alias="CACHE_RECONNECT_BACKOFF_BASE_SECONDS",
    )
    cache_reconnect_backoff_cap_seconds: float = Field(
        default=30.0,
        alias="CACHE_RECONNECT_BACKOFF_CAP_SECONDS",
    )

    # Queue join admission control
    queue_join_cooldown_seconds: int = Field(default=30, alias="QUEUE_JOIN_COOLDOWN_SECONDS")
    queue_join_rate_limit_per_min: int = Field(
        default=5,
        alias="QUEUE_JOIN_RATE_LIMIT_PER_MIN",
    )
    queue_join_rate_limit_per_hour: int = Field(
        default=20,
        alias="QUEUE_JOIN_RATE_LIMIT_PER_HOUR",
    )

    # CORS configuration for the kiosk and dashboard frontends
    cors_origins: list[str] = Field(
        default=["*"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        return url

    @property
    def rate_limits(self) -> dict[str, int]:
        """Return join admission limits as a convenience dictionary."""
        return {
            "cooldown_seconds": self.queue_join_cooldown_seconds,
            "per_minute": self.queue_join_rate_limit_per_min,
            "per_hour": self.queue_join_rate_limit_per_hour,
        }


settings = Settings()
