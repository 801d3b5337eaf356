"""
Exception Module

Structured exception hierarchy for the client resilience layer.

Module Structure:
-----------------
- **base.py**: ResilienceBaseError base class + ConfigurationError
- **http.py**: Transport exceptions raised by the timeout primitive
- **cache.py**: Role cache / role lookup exceptions
- **analytics.py**: Analytics batching exceptions

Usage:
------
```python
from course_resilience.core.exceptions import RequestTimeoutError, NetworkError
```
"""

# Base exception
from course_resilience.core.exceptions.base import ConfigurationError, ResilienceBaseError

# Analytics exceptions
from course_resilience.core.exceptions.analytics import (
    AnalyticsDispatchError,
    AnalyticsError,
    BatcherClosedError,
)

# Cache exceptions
from course_resilience.core.exceptions.cache import CacheError, RoleLookupError

# HTTP exceptions
from course_resilience.core.exceptions.http import (
    HttpClientError,
    InvalidStateTransitionError,
    NetworkError,
    RequestCancelledError,
    RequestTimeoutError,
)

__all__ = [
    # Base
    "ResilienceBaseError",
    "ConfigurationError",
    # HTTP
    "HttpClientError",
    "RequestTimeoutError",
    "RequestCancelledError",
    "NetworkError",
    "InvalidStateTransitionError",
    # Cache
    "CacheError",
    "RoleLookupError",
    # Analytics
    "AnalyticsError",
    "AnalyticsDispatchError",
    "BatcherClosedError",
]
