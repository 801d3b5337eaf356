"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .clock import FakeClock, RecordingSleep
from .http_factory import DIRECT_URL, HANG, PROXY_URL, HttpTestFactory, ScriptedBackend

__all__ = [
    "DIRECT_URL",
    "HANG",
    "PROXY_URL",
    "FakeClock",
    "HttpTestFactory",
    "RecordingSleep",
    "ScriptedBackend",
]
