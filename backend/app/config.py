"""Application configuration."""
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_env: str = "development"
    app_debug: bool = True
    log_level: str = "DEBUG"

    # Database - required, read from environment
    database_url: str = Field(
        ...,
        description="Database connection URL (postgresql+asyncpg://... or sqlite+aiosqlite://...)",
    )
    db_pool_size: int = Field(
        default=20,
        description="DB connection pool size (ignored for SQLite)",
    )
    db_max_overflow: int = Field(
        default=10,
        description="Max overflow connections (ignored for SQLite)",
    )
    db_pool_recycle: int = Field(
        default=1800,
        description="Connection recycle time in seconds",
    )
    db_echo: bool = Field(
        default=False,
        description="Echo SQL statements to the log",
    )
    db_auto_create: bool = Field(
        default=False,
        description="Create missing tables on startup (development only)",
    )

    # Redis - optional; distributed locks are skipped without it
    redis_url: str | None = Field(
        default=None,
        description="Redis connection URL for distributed locks",
    )
    redis_max_connections: int = 50
    redis_socket_timeout: float = 5.0

    # JWT verification (tokens are issued by the account service)
    jwt_secret_key: str = Field(
        ...,
        description="JWT secret key (required, minimum 32 characters)",
    )
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 30

    # Sentry
    sentry_dsn: str | None = Field(
        default=None,
        description="Sentry DSN for error tracking",
    )
    sentry_traces_sample_rate: float = Field(
        default=0.05,
        description="Sentry transaction sampling rate (0.0-1.0)",
    )

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Ledger
    streak_window_days: int = Field(
        default=30,
        description="Number of recent check-ins scanned when computing a streak",
    )
    transfer_lock_ttl: int = Field(
        default=10,
        description="TTL in seconds of the per-user ledger lock",
    )
    store_retry_attempts: int = Field(
        default=3,
        description="Attempts for read queries failing with a transient store error",
    )
    pending_expiry_hours: int = Field(
        default=24,
        description="Pending records older than this are cancelled by the sweep task",
    )
    leaderboard_max_limit: int = 100

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret_key(cls, v: str) -> str:
        """Validate JWT secret key length."""
        if len(v) < 32:
            raise ValueError("jwt_secret_key must be at least 32 characters long")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings for production environment."""
        if self.app_env == "production":
            if self.app_debug:
                raise ValueError("app_debug must be False in production environment")

            origins = [o.strip() for o in self.cors_origins.split(",")]
            if "*" in origins:
                raise ValueError(
                    "CORS wildcard '*' is not allowed in production environment. "
                    "Specify explicit allowed origins."
                )

            if self.db_auto_create:
                raise ValueError("db_auto_create must be disabled in production")

        return self

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
