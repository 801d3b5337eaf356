"""
Resilience Primitives

- **timeout.py**: deadline + cancellation around a single network call
- **lifecycle.py**: explicit request state machine
- **retry_policy.py**: tenacity-driven bounded retries with exponential backoff
"""

from course_resilience.core.resilience.lifecycle import RequestLifecycle
from course_resilience.core.resilience.retry_policy import (
    AttemptOutcome,
    RetryPolicy,
    classify_status_code,
)
from course_resilience.core.resilience.timeout import CancellationToken, fetch_with_timeout

__all__ = [
    "AttemptOutcome",
    "CancellationToken",
    "RequestLifecycle",
    "RetryPolicy",
    "classify_status_code",
    "fetch_with_timeout",
]
