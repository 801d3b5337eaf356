"""
Unit Tests for Configuration Settings

Tests the settings loading, validation, and default values.
"""

import os
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from course_resilience.core.config.settings import Settings, get_settings, reload_settings


@pytest.mark.unit
class TestSettingsDefaults:
    """Test default values."""

    def test_api_defaults(self):
        settings = Settings()

        assert settings.api.API_TIMEOUT == 8.0
        assert settings.api.API_RETRY_ATTEMPTS == 2
        assert settings.api.API_INTERACTIVE_RETRY_ATTEMPTS == 1
        assert settings.api.API_RETRY_BASE_DELAY == 1.0
        assert settings.api.API_RETRY_MAX_DELAY == 5.0

    def test_cache_windows_defaults(self):
        settings = Settings()

        assert settings.role_cache.ROLE_CACHE_FRESH_TTL == 900
        assert settings.role_cache.ROLE_CACHE_STALE_TTL == 3600
        assert settings.health.HEALTH_CHECK_TTL == 15
        assert settings.health.HEALTH_CHECK_TTL < settings.role_cache.ROLE_CACHE_FRESH_TTL

    def test_analytics_defaults(self):
        settings = Settings()

        assert settings.analytics.ANALYTICS_BATCH_SIZE == 10
        assert settings.analytics.ANALYTICS_BATCH_DELAY == 5
        assert settings.analytics.ANALYTICS_KEEP_RATE == 0.7

    def test_direct_and_proxy_default_to_base_url(self):
        settings = Settings(API_BASE_URL="http://backend.test/")

        assert settings.direct_base_url == "http://backend.test"
        assert settings.proxy_base_url == "http://backend.test"


@pytest.mark.unit
class TestSettingsValidation:
    """Test fail-fast validation."""

    def test_stale_window_must_cover_fresh_window(self):
        with pytest.raises(ValidationError):
            Settings(ROLE_CACHE_FRESH_TTL=600, ROLE_CACHE_STALE_TTL=300)

    def test_backoff_cap_must_cover_base(self):
        with pytest.raises(ValidationError):
            Settings(API_RETRY_BASE_DELAY=3.0, API_RETRY_MAX_DELAY=1.0)

    def test_keep_rate_bounds(self):
        with pytest.raises(ValidationError):
            Settings(ANALYTICS_KEEP_RATE=1.5)

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(LOG_LEVEL="CHATTY")

    def test_production_flag(self):
        assert Settings(ENVIRONMENT="production").is_production
        assert not Settings(ENVIRONMENT="development").is_production


@pytest.mark.unit
class TestSettingsSingleton:
    """Test get_settings / reload_settings."""

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_reload_picks_up_environment(self):
        with patch.dict(os.environ, {"API_TIMEOUT": "2.5"}):
            settings = reload_settings()

        assert settings.API_TIMEOUT == 2.5
        assert get_settings() is settings
