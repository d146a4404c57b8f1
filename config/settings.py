"""
Central configuration using Pydantic BaseSettings.

Validates all env vars at startup (fail-fast). Required secrets refuse
to start in production but get safe defaults in TESTING mode.

Usage:
    from config.settings import get_settings

    settings = get_settings()
    print(settings.auth.jwt_secret.get_secret_value())
    print(settings.database.db_type)

Lazy initialization: get_settings() creates the singleton on first call.
Tests can reset via get_settings.cache_clear().
"""

import os
from functools import lru_cache
from typing import Optional

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings


def _is_testing() -> bool:
    """Check if running in test mode."""
    return (
        os.getenv("TESTING", "").lower() in ("true", "1")
        or os.getenv("FLASK_ENV", "") == "testing"
    )


def _environment() -> str:
    return os.getenv("ENVIRONMENT", "development").lower()


# =============================================================================
# Nested Settings Groups
# =============================================================================


class AuthSettings(BaseSettings):
    """Access token and password policy configuration."""

    model_config = {"env_prefix": "", "extra": "ignore"}

    jwt_secret: SecretStr = SecretStr("")
    jwt_algorithm: str = "HS256"
    jwt_issuer: str = "abe-garage"
    jwt_audience: str = "abe-garage-users"
    access_token_expiry_seconds: int = 3600

    refresh_token_bytes: int = 64
    session_id_bytes: int = 32

    # Password policy
    password_min_length: int = 8
    password_max_length: int = 128
    password_require_uppercase: bool = True
    password_require_lowercase: bool = True
    password_require_digit: bool = True
    password_require_special: bool = True


class SessionSettings(BaseSettings):
    """Server-side session configuration."""

    model_config = {"env_prefix": "SESSION_", "extra": "ignore"}

    store: str = "memory"  # "memory" or "redis"
    timeout_minutes: int = 30
    max_per_user: int = 5
    cleanup_interval_seconds: int = 600
    redis_prefix: str = "garage:"


class RedisSettings(BaseSettings):
    """Redis connection configuration."""

    model_config = {"env_prefix": "", "extra": "ignore"}

    redis_url: str = "redis://localhost:6379/0"


class DatabaseSettings(BaseSettings):
    """Database adapter configuration.

    DB_TYPE picks the dialect; when unset, production runs PostgreSQL and
    every other environment runs MySQL.
    """

    model_config = {"env_prefix": "", "extra": "ignore"}

    db_type: Optional[str] = None
    db_host: str = "localhost"
    db_port: Optional[int] = None
    db_name: str = "garage"
    db_user: str = "garage"
    db_pass: SecretStr = SecretStr("")

    db_pool_size: int = 20
    db_pool_min: int = 2
    db_connect_timeout: int = 10

    # PostgreSQL session limits (milliseconds)
    db_statement_timeout: int = 30000
    db_idle_in_transaction_timeout: int = 60000
    db_application_name: str = "abe_garage_app"

    # Query behaviour
    slow_query_threshold: int = 1000  # ms
    db_query_retries: int = 3
    db_retry_base_delay: float = 2.0  # seconds, doubled per attempt

    # Background monitoring (seconds)
    db_health_check_interval: int = 30
    db_stats_log_interval: int = 60

    @model_validator(mode="after")
    def _resolve_type(self):
        if self.db_type is None:
            self.db_type = "postgresql" if _environment() == "production" else "mysql"
        self.db_type = self.db_type.lower()
        if self.db_type == "postgres":
            self.db_type = "postgresql"
        if self.db_port is None:
            self.db_port = 5432 if self.db_type == "postgresql" else 3306
        return self


class RateLimitSettings(BaseSettings):
    """Rate limiting configuration."""

    model_config = {"env_prefix": "RATE_LIMIT_", "extra": "ignore"}

    default: str = "100 per 15 minutes"
    auth: str = "5 per 15 minutes"
    storage: Optional[str] = None  # Falls back to in-memory


# =============================================================================
# Root Settings
# =============================================================================


class AppSettings(BaseSettings):
    """Root application settings composing all sub-settings."""

    model_config = {"env_prefix": "", "extra": "ignore", "env_file": ".env", "env_file_encoding": "utf-8"}

    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"
    log_file: str = ""

    # Server
    cors_origins: str = "http://localhost:3000,http://localhost:5173"
    shutdown_timeout: int = 30
    service_call_timeout: int = 30  # seconds a request waits on the service loop

    # Nested groups (initialized separately to support env_prefix)
    auth: AuthSettings = None  # type: ignore[assignment]
    sessions: SessionSettings = None  # type: ignore[assignment]
    redis: RedisSettings = None  # type: ignore[assignment]
    database: DatabaseSettings = None  # type: ignore[assignment]
    rate_limit: RateLimitSettings = None  # type: ignore[assignment]

    @model_validator(mode="before")
    @classmethod
    def _init_nested(cls, values):
        """Initialize nested settings from environment."""
        if values.get("auth") is None:
            values["auth"] = AuthSettings()
        if values.get("sessions") is None:
            values["sessions"] = SessionSettings()
        if values.get("redis") is None:
            values["redis"] = RedisSettings()
        if values.get("database") is None:
            values["database"] = DatabaseSettings()
        if values.get("rate_limit") is None:
            values["rate_limit"] = RateLimitSettings()
        return values

    @model_validator(mode="after")
    def _validate_required_secrets(self):
        """Require JWT_SECRET outside TESTING mode."""
        self.environment = self.environment.lower()
        if _is_testing():
            if not self.auth.jwt_secret.get_secret_value():
                self.auth.jwt_secret = SecretStr("testing-jwt-secret")
            return self

        if not self.auth.jwt_secret.get_secret_value():
            raise ValueError(
                "JWT_SECRET env var is required. "
                "Generate one with: python -c \"import secrets; print(secrets.token_hex(32))\""
            )

        return self

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    """
    Get the application settings singleton.

    Lazy-initialized on first call. Validates all env vars (fail-fast).
    Tests can reset via: get_settings.cache_clear()
    """
    return AppSettings()
