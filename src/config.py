"""
Settings for the usage accounting service.

Every group reads the process environment (and an optional ``.env`` file)
through pydantic-settings, so a bad ``USAGE_RESET_WINDOW_DAYS`` or
``LOG_LEVEL`` fails at import time instead of halfway through a request.

    from src.config import get_settings

    window = get_settings().usage.usage_reset_window_days
"""

import os
from functools import lru_cache
from typing import List, Literal, Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

_ENV = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

LogLevelName = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
StorageBackend = Literal["auto", "postgres", "memory"]


class DatabaseSettings(BaseSettings):
    """Postgres holding the users, usage_limit_settings and activity tables."""

    model_config = _ENV

    database_url: Optional[str] = Field(None, description="Pooled Postgres URL")
    database_url_direct: Optional[str] = Field(
        None, description="Direct Postgres URL, preferred by the long-lived pool"
    )
    database_pool_min_size: int = Field(1, ge=0)
    database_pool_max_size: int = Field(5, ge=1)

    @property
    def is_configured(self) -> bool:
        return bool(self.database_url_direct or self.database_url)


class UsageSettings(BaseSettings):
    """Knobs for the limit cache, the monthly window and the storage backend."""

    model_config = _ENV

    usage_limits_cache_ttl_seconds: float = Field(
        300.0, ge=0, description="How long per-type limits stay cached"
    )
    usage_reset_window_days: int = Field(
        30, ge=1, description="Days between monthly counter resets"
    )
    usage_storage_backend: StorageBackend = Field(
        "auto", description="'auto' uses Postgres whenever a database URL is present"
    )


class AuthSettings(BaseSettings):
    model_config = _ENV

    supabase_url: Optional[str] = None
    supabase_jwt_secret: Optional[SecretStr] = Field(
        None, description="HS256 secret that signs Supabase access tokens"
    )
    supabase_jwt_audience: str = "authenticated"

    @property
    def is_configured(self) -> bool:
        """True when access tokens can be verified locally."""
        return bool(self.supabase_jwt_secret and self.supabase_jwt_secret.get_secret_value())


class SecuritySettings(BaseSettings):
    model_config = _ENV

    environment: Literal["development", "staging", "production"] = "development"
    dev_mode: bool = Field(
        False, description="Trust X-User-ID when no bearer token is sent"
    )
    allowed_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def origins_list(self) -> List[str]:
        return [part.strip() for part in self.allowed_origins.split(",") if part.strip()]


class LoggingSettings(BaseSettings):
    model_config = _ENV

    log_level: LogLevelName = "INFO"
    log_format_json: bool = Field(
        False, description="Emit JSON lines outside production as well"
    )
    request_logging_enabled: bool = Field(
        True, description="Install the per-request logging middleware"
    )


class SentrySettings(BaseSettings):
    model_config = _ENV

    sentry_dsn: Optional[str] = None
    sentry_environment: str = "development"
    sentry_traces_sample_rate: float = Field(0.1, ge=0.0, le=1.0)
    sentry_release: Optional[str] = "usage-accounting@1.0.0"

    @property
    def is_configured(self) -> bool:
        return bool(self.sentry_dsn)


class Settings(BaseSettings):
    """All setting groups, loaded together."""

    model_config = _ENV

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    usage: UsageSettings = Field(default_factory=UsageSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    sentry: SentrySettings = Field(default_factory=SentrySettings)

    @property
    def is_database_configured(self) -> bool:
        return self.database.is_configured

    @property
    def is_sentry_configured(self) -> bool:
        return self.sentry.is_configured

    @property
    def is_production(self) -> bool:
        return self.security.is_production

    @property
    def is_dev_mode(self) -> bool:
        # DEV_MODE may be flipped after the settings object was built (tests do this).
        return self.security.dev_mode or os.environ.get("DEV_MODE", "").lower() == "true"

    def get_config_summary(self) -> dict:
        """Non-secret view of the configuration, logged at startup."""
        usage = self.usage
        return {
            "environment": self.security.environment,
            "dev_mode": self.is_dev_mode,
            "database_configured": self.is_database_configured,
            "usage_storage_backend": usage.usage_storage_backend,
            "usage_limits_cache_ttl_seconds": usage.usage_limits_cache_ttl_seconds,
            "usage_reset_window_days": usage.usage_reset_window_days,
            "supabase_auth_configured": self.auth.is_configured,
            "sentry_configured": self.is_sentry_configured,
            "allowed_origins": self.security.origins_list,
            "log_level": self.logging.log_level,
        }


@lru_cache()
def get_settings() -> Settings:
    return Settings()


def reload_settings() -> Settings:
    """Drop the cached settings and read the environment again."""
    get_settings.cache_clear()
    return get_settings()
