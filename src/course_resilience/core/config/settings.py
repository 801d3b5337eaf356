#!/usr/bin/env python3
"""
Centralized Configuration Module using Pydantic Settings

This module provides type-safe, environment-based configuration for the
client resilience layer. Every value is read once at startup and falls back
to a hard-coded default, so the layer still works when the environment is
bare.

Architectural Decision: Pydantic Settings for type safety and validation
- Environment variable loading with .env support
- Type validation at startup (fail fast on misconfiguration)
- Grouped views (api, role_cache, health, analytics, logging, app)
- Easy testing with reload_settings()
"""

from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiSettings(BaseSettings):
    """
    Outbound REST API configuration.

    STAGE-0.1: HTTP client configuration

    The direct and proxy URLs default to API_BASE_URL. When they coincide the
    dual-endpoint fallback has nowhere to go and is skipped.
    """

    API_BASE_URL: str = Field(default="http://localhost:5000", description="Primary API base URL")
    API_DIRECT_URL: str | None = Field(default=None, description="Direct origin base URL")
    API_PROXY_URL: str | None = Field(default=None, description="Routed proxy base URL")
    API_USE_DIRECT: bool = Field(default=False, description="Start on the direct base URL")

    API_TIMEOUT: float = Field(default=8.0, gt=0, description="Default request timeout (seconds)")
    API_FAST_TIMEOUT: float = Field(default=3.0, gt=0, description="Timeout for quick operations")
    API_FALLBACK_TIMEOUT: float = Field(default=3.0, gt=0, description="Timeout for the fallback attempt")

    API_RETRY_ATTEMPTS: int = Field(default=2, ge=0, le=10, description="Retries in server contexts")
    API_INTERACTIVE_RETRY_ATTEMPTS: int = Field(
        default=1, ge=0, le=10, description="Retries in interactive contexts"
    )
    API_RETRY_BASE_DELAY: float = Field(default=1.0, ge=0, description="Backoff base delay (seconds)")
    API_RETRY_MAX_DELAY: float = Field(default=5.0, ge=0, description="Backoff delay cap (seconds)")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class RoleCacheSettings(BaseSettings):
    """
    Role cache windows and the critical-path lookup budget.

    STAGE-RC: Role cache configuration
    """

    ROLE_CACHE_FRESH_TTL: float = Field(default=900.0, gt=0, description="Fresh window (15 minutes)")
    ROLE_CACHE_STALE_TTL: float = Field(default=3600.0, gt=0, description="Stale-but-usable window (1 hour)")
    ROLE_LOOKUP_TIMEOUT: float = Field(default=4.5, gt=0, description="Role lookup timeout (seconds)")
    ROLE_LOOKUP_RETRIES: int = Field(default=1, ge=0, le=1, description="Role lookup retries")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class HealthCheckSettings(BaseSettings):
    """
    Health probe configuration.

    STAGE-H: Health check configuration
    """

    HEALTH_CHECK_TTL: float = Field(default=15.0, gt=0, description="Cached probe lifetime (seconds)")
    HEALTH_CHECK_TIMEOUT: float = Field(default=3.0, gt=0, description="Probe timeout (seconds)")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class AnalyticsSettings(BaseSettings):
    """
    Analytics batching configuration.

    STAGE-AN: Batching and sampling thresholds
    """

    ANALYTICS_ENABLED: bool = Field(default=True, description="Enable analytics dispatch")
    ANALYTICS_BATCH_SIZE: int = Field(default=10, ge=1, description="Max events per batch")
    ANALYTICS_BATCH_DELAY: float = Field(default=5.0, gt=0, description="Max wait before flush (seconds)")
    ANALYTICS_KEEP_RATE: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Keep probability for non-critical events"
    )

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class LoggingSettings(BaseSettings):
    """
    Logging configuration for structured logging.

    STAGE-L: Logging configuration
    """

    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class ApplicationSettings(BaseSettings):
    """
    General application settings.

    STAGE-0: Application initialization
    """

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Course Client Resilience Layer", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")

    model_config = SettingsConfigDict(env_prefix="", case_sensitive=True)


class Settings(BaseSettings):
    """
    Main settings class that aggregates all configuration sections.

    STAGE-0: Centralized configuration initialization

    Usage:
        from course_resilience.core.config.settings import get_settings

        settings = get_settings()
        timeout = settings.api.API_TIMEOUT
        fresh_ttl = settings.role_cache.ROLE_CACHE_FRESH_TTL
    """

    # API settings
    API_BASE_URL: str = Field(default="http://localhost:5000", description="Primary API base URL")
    API_DIRECT_URL: str | None = Field(default=None, description="Direct origin base URL")
    API_PROXY_URL: str | None = Field(default=None, description="Routed proxy base URL")
    API_USE_DIRECT: bool = Field(default=False, description="Start on the direct base URL")
    API_TIMEOUT: float = Field(default=8.0, gt=0, description="Default request timeout (seconds)")
    API_FAST_TIMEOUT: float = Field(default=3.0, gt=0, description="Timeout for quick operations")
    API_FALLBACK_TIMEOUT: float = Field(default=3.0, gt=0, description="Timeout for the fallback attempt")
    API_RETRY_ATTEMPTS: int = Field(default=2, ge=0, le=10, description="Retries in server contexts")
    API_INTERACTIVE_RETRY_ATTEMPTS: int = Field(
        default=1, ge=0, le=10, description="Retries in interactive contexts"
    )
    API_RETRY_BASE_DELAY: float = Field(default=1.0, ge=0, description="Backoff base delay (seconds)")
    API_RETRY_MAX_DELAY: float = Field(default=5.0, ge=0, description="Backoff delay cap (seconds)")

    # Role cache settings
    ROLE_CACHE_FRESH_TTL: float = Field(default=900.0, gt=0, description="Fresh window (15 minutes)")
    ROLE_CACHE_STALE_TTL: float = Field(default=3600.0, gt=0, description="Stale-but-usable window (1 hour)")
    ROLE_LOOKUP_TIMEOUT: float = Field(default=4.5, gt=0, description="Role lookup timeout (seconds)")
    ROLE_LOOKUP_RETRIES: int = Field(default=1, ge=0, le=1, description="Role lookup retries")

    # Health check settings
    HEALTH_CHECK_TTL: float = Field(default=15.0, gt=0, description="Cached probe lifetime (seconds)")
    HEALTH_CHECK_TIMEOUT: float = Field(default=3.0, gt=0, description="Probe timeout (seconds)")

    # Analytics settings
    ANALYTICS_ENABLED: bool = Field(default=True, description="Enable analytics dispatch")
    ANALYTICS_BATCH_SIZE: int = Field(default=10, ge=1, description="Max events per batch")
    ANALYTICS_BATCH_DELAY: float = Field(default=5.0, gt=0, description="Max wait before flush (seconds)")
    ANALYTICS_KEEP_RATE: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Keep probability for non-critical events"
    )

    # Logging settings
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_FORMAT: Literal["json", "console"] = Field(default="json", description="Log output format")

    # Application settings
    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment"
    )
    APP_NAME: str = Field(default="Course Client Resilience Layer", description="Application name")
    APP_VERSION: str = Field(default="1.0.0", description="Application version")

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}")
        return v.upper()

    @field_validator("API_BASE_URL", "API_DIRECT_URL", "API_PROXY_URL")
    @classmethod
    def strip_trailing_slash(cls, v):
        """Base URLs are joined with paths that start with '/'."""
        return v.rstrip("/") if v else v

    @model_validator(mode="after")
    def check_windows(self):
        """Stale window must cover the fresh window; backoff cap must cover the base."""
        if self.ROLE_CACHE_STALE_TTL < self.ROLE_CACHE_FRESH_TTL:
            raise ValueError("ROLE_CACHE_STALE_TTL must be >= ROLE_CACHE_FRESH_TTL")
        if self.API_RETRY_MAX_DELAY < self.API_RETRY_BASE_DELAY:
            raise ValueError("API_RETRY_MAX_DELAY must be >= API_RETRY_BASE_DELAY")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def direct_base_url(self) -> str:
        return self.API_DIRECT_URL or self.API_BASE_URL

    @property
    def proxy_base_url(self) -> str:
        return self.API_PROXY_URL or self.API_BASE_URL

    # Nested configuration objects
    @property
    def api(self) -> 'ApiSettings':
        """Get API settings."""
        return ApiSettings(
            API_BASE_URL=self.API_BASE_URL,
            API_DIRECT_URL=self.API_DIRECT_URL,
            API_PROXY_URL=self.API_PROXY_URL,
            API_USE_DIRECT=self.API_USE_DIRECT,
            API_TIMEOUT=self.API_TIMEOUT,
            API_FAST_TIMEOUT=self.API_FAST_TIMEOUT,
            API_FALLBACK_TIMEOUT=self.API_FALLBACK_TIMEOUT,
            API_RETRY_ATTEMPTS=self.API_RETRY_ATTEMPTS,
            API_INTERACTIVE_RETRY_ATTEMPTS=self.API_INTERACTIVE_RETRY_ATTEMPTS,
            API_RETRY_BASE_DELAY=self.API_RETRY_BASE_DELAY,
            API_RETRY_MAX_DELAY=self.API_RETRY_MAX_DELAY,
        )

    @property
    def role_cache(self) -> 'RoleCacheSettings':
        """Get role cache settings."""
        return RoleCacheSettings(
            ROLE_CACHE_FRESH_TTL=self.ROLE_CACHE_FRESH_TTL,
            ROLE_CACHE_STALE_TTL=self.ROLE_CACHE_STALE_TTL,
            ROLE_LOOKUP_TIMEOUT=self.ROLE_LOOKUP_TIMEOUT,
            ROLE_LOOKUP_RETRIES=self.ROLE_LOOKUP_RETRIES,
        )

    @property
    def health(self) -> 'HealthCheckSettings':
        """Get health check settings."""
        return HealthCheckSettings(
            HEALTH_CHECK_TTL=self.HEALTH_CHECK_TTL,
            HEALTH_CHECK_TIMEOUT=self.HEALTH_CHECK_TIMEOUT,
        )

    @property
    def analytics(self) -> 'AnalyticsSettings':
        """Get analytics settings."""
        return AnalyticsSettings(
            ANALYTICS_ENABLED=self.ANALYTICS_ENABLED,
            ANALYTICS_BATCH_SIZE=self.ANALYTICS_BATCH_SIZE,
            ANALYTICS_BATCH_DELAY=self.ANALYTICS_BATCH_DELAY,
            ANALYTICS_KEEP_RATE=self.ANALYTICS_KEEP_RATE,
        )

    @property
    def logging(self) -> 'LoggingSettings':
        """Get logging settings."""
        return LoggingSettings(
            LOG_LEVEL=self.LOG_LEVEL,
            LOG_FORMAT=self.LOG_FORMAT,
        )

    @property
    def app(self) -> 'ApplicationSettings':
        """Get application settings."""
        return ApplicationSettings(
            ENVIRONMENT=self.ENVIRONMENT,
            APP_NAME=self.APP_NAME,
            APP_VERSION=self.APP_VERSION,
        )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Ignore extra environment variables
    )


# Global settings instance (singleton pattern)
_settings: Settings | None = None


def get_settings() -> Settings:
    """
    Get the global settings instance (singleton).

    STAGE-0.3: Settings initialization

    Returns:
        Settings: Global settings instance
    """
    global _settings

    if _settings is None:
        _settings = Settings()

    return _settings


def reload_settings() -> Settings:
    """
    Reload settings (useful for testing).

    Returns:
        Settings: New settings instance
    """
    global _settings
    _settings = Settings()
    return _settings
