"""
Configuration Module

Centralized, type-safe configuration for the client resilience layer.

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Enums, endpoint paths and default thresholds

Usage:
------
```python
from course_resilience.core.config import get_settings
from course_resilience.core.config.constants import ErrorKind, Stage

settings = get_settings()
timeout = settings.api.API_TIMEOUT
```
"""

from .settings import (
    Settings,
    get_settings,
    reload_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "reload_settings",
]
