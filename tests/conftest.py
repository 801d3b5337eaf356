"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import random
import sys
from unittest.mock import AsyncMock

import pytest

# Make the src/ layout and tests/test_fixtures importable without installing
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, os.path.join(ROOT, "src"))
sys.path.insert(0, os.path.join(ROOT, "tests"))

from test_fixtures import FakeClock, HttpTestFactory, RecordingSleep, ScriptedBackend  # noqa: E402


# ============================================================================
# Global State Isolation
# ============================================================================


@pytest.fixture(autouse=True)
def reset_singletons():
    """Drop process-wide singletons between tests."""
    from course_resilience.analytics import batcher
    from course_resilience.core import teardown
    from course_resilience.core.config import settings
    from course_resilience.core.logging.logger import clear_request_id
    from course_resilience.infrastructure.cache import role_cache
    from course_resilience.infrastructure.http import api_client
    from course_resilience.infrastructure.monitoring import health_checker

    def _reset():
        settings._settings = None
        role_cache.reset_role_cache()
        health_checker.reset_health_cache()
        batcher.reset_analytics_batcher()
        api_client._api_client = None
        teardown._registry = None
        clear_request_id()

    _reset()
    yield
    _reset()


# ============================================================================
# Time & Randomness
# ============================================================================


@pytest.fixture
def fake_clock():
    """Manually advanced clock."""
    return FakeClock()


@pytest.fixture
def recording_sleep():
    """Backoff sleep that records delays instead of waiting."""
    return RecordingSleep()


@pytest.fixture
def seeded_random():
    """Deterministic random source for sampling tests."""
    return random.Random(1234)


# ============================================================================
# HTTP Fixtures
# ============================================================================


@pytest.fixture
def backend():
    """Backend answering 200 {} to everything; tests replace the script as needed."""
    return ScriptedBackend((200, {}))


@pytest.fixture
def make_client(recording_sleep):
    """Factory: make_client(backend, **config_overrides) -> ApiClient."""

    def _make(scripted: ScriptedBackend, **overrides):
        return HttpTestFactory.client(scripted, sleep=recording_sleep, **overrides)

    return _make


# ============================================================================
# Mock Infrastructure Fixtures
# ============================================================================


@pytest.fixture
def mock_dispatcher():
    """
    Mock AnalyticsDispatcher for isolated batcher testing.

    Every send succeeds; inspect ``await_args_list`` for payloads.
    """
    dispatcher = AsyncMock()
    dispatcher.send_progress_update = AsyncMock(return_value=None)
    dispatcher.send_lecture_completion = AsyncMock(return_value=None)
    dispatcher.send_batched_analytics = AsyncMock(return_value=None)
    return dispatcher
