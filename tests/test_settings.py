"""Tests for central configuration settings."""

import os
from unittest.mock import patch

import pytest

from config.settings import (
    AppSettings,
    AuthSettings,
    DatabaseSettings,
    RateLimitSettings,
    SessionSettings,
    get_settings,
)


def _env_without(*keys):
    env = os.environ.copy()
    for key in keys:
        env.pop(key, None)
    return env


class TestAuthSettings:
    def test_defaults_applied(self):
        settings = AuthSettings()
        assert settings.jwt_algorithm == "HS256"
        assert settings.access_token_expiry_seconds == 3600
        assert settings.refresh_token_bytes == 64
        assert settings.password_min_length == 8
        assert settings.password_require_special is True

    def test_env_override(self):
        with patch.dict(os.environ, {
            "JWT_ISSUER": "garage-east",
            "ACCESS_TOKEN_EXPIRY_SECONDS": "900",
        }, clear=False):
            settings = AuthSettings()
            assert settings.jwt_issuer == "garage-east"
            assert settings.access_token_expiry_seconds == 900

    def test_missing_jwt_secret_raises_outside_testing(self):
        """Missing JWT_SECRET should raise ValueError in non-test mode."""
        env = _env_without("JWT_SECRET", "TESTING", "FLASK_ENV")
        with patch.dict(os.environ, env, clear=True):
            with pytest.raises(ValueError, match="JWT_SECRET"):
                AppSettings(_env_file=None)

    def test_testing_mode_gets_placeholder_secret(self):
        env = _env_without("JWT_SECRET")
        env["TESTING"] = "true"
        with patch.dict(os.environ, env, clear=True):
            settings = AppSettings(_env_file=None)
            assert settings.auth.jwt_secret.get_secret_value() == "testing-jwt-secret"


class TestSessionSettings:
    def test_defaults(self):
        with patch.dict(os.environ, _env_without("SESSION_STORE"), clear=True):
            settings = SessionSettings()
            assert settings.store == "memory"
            assert settings.timeout_minutes == 30
            assert settings.max_per_user == 5
            assert settings.cleanup_interval_seconds == 600

    def test_prefixed_env(self):
        with patch.dict(os.environ, {"SESSION_MAX_PER_USER": "3", "SESSION_STORE": "redis"}, clear=False):
            settings = SessionSettings()
            assert settings.max_per_user == 3
            assert settings.store == "redis"


class TestDatabaseSettings:
    def test_development_defaults_to_mysql(self):
        env = _env_without("DB_TYPE", "DB_PORT")
        env["ENVIRONMENT"] = "development"
        with patch.dict(os.environ, env, clear=True):
            settings = DatabaseSettings()
            assert settings.db_type == "mysql"
            assert settings.db_port == 3306

    def test_production_defaults_to_postgresql(self):
        env = _env_without("DB_TYPE", "DB_PORT")
        env["ENVIRONMENT"] = "production"
        with patch.dict(os.environ, env, clear=True):
            settings = DatabaseSettings()
            assert settings.db_type == "postgresql"
            assert settings.db_port == 5432

    def test_postgres_alias_normalized(self):
        with patch.dict(os.environ, {"DB_TYPE": "Postgres", "DB_PORT": "6543"}, clear=False):
            settings = DatabaseSettings()
            assert settings.db_type == "postgresql"
            assert settings.db_port == 6543

    def test_query_behaviour_defaults(self):
        settings = DatabaseSettings()
        assert settings.slow_query_threshold == 1000
        assert settings.db_query_retries == 3
        assert settings.db_retry_base_delay == 2.0
        assert settings.db_health_check_interval == 30
        assert settings.db_stats_log_interval == 60


class TestRateLimitSettings:
    def test_defaults(self):
        env = _env_without("RATE_LIMIT_DEFAULT", "RATE_LIMIT_AUTH", "RATE_LIMIT_STORAGE")
        with patch.dict(os.environ, env, clear=True):
            settings = RateLimitSettings()
            assert settings.default == "100 per 15 minutes"
            assert settings.auth == "5 per 15 minutes"
            assert settings.storage is None


class TestSecretStr:
    def test_secret_not_in_repr(self):
        with patch.dict(os.environ, {"JWT_SECRET": "super-secret", "DB_PASS": "db-secret"}, clear=False):
            settings = AppSettings(_env_file=None)
            repr_str = repr(settings)
            assert "super-secret" not in repr_str
            assert "db-secret" not in repr_str
            assert "**" in repr_str

    def test_secret_value_accessible(self):
        with patch.dict(os.environ, {"DB_PASS": "db-secret"}, clear=False):
            settings = DatabaseSettings()
            assert settings.db_pass.get_secret_value() == "db-secret"


class TestAppSettings:
    def test_environment_flags(self):
        with patch.dict(os.environ, {"ENVIRONMENT": "Production"}, clear=False):
            settings = AppSettings(_env_file=None)
            assert settings.environment == "production"
            assert settings.is_production is True
            assert settings.is_development is False

    def test_nested_groups_initialized(self):
        settings = AppSettings(_env_file=None)
        assert isinstance(settings.database, DatabaseSettings)
        assert isinstance(settings.sessions, SessionSettings)
        assert isinstance(settings.rate_limit, RateLimitSettings)

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
