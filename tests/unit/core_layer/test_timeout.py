"""
Unit Tests for the Timeout-Bounded Fetch

Tests deadline enforcement, caller cancellation and httpx error translation.
"""

import asyncio

import httpx
import pytest

from course_resilience.core.exceptions import (
    NetworkError,
    RequestCancelledError,
    RequestTimeoutError,
)
from course_resilience.core.resilience.timeout import CancellationToken, fetch_with_timeout


@pytest.mark.unit
class TestFetchWithTimeout:
    """Test fetch_with_timeout outcomes."""

    @pytest.mark.asyncio
    async def test_returns_result_before_deadline(self):
        async def send():
            return "ok"

        assert await fetch_with_timeout(send, timeout=1.0) == "ok"

    @pytest.mark.asyncio
    async def test_deadline_cancels_call(self):
        cancelled = asyncio.Event()

        async def send():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(RequestTimeoutError) as exc_info:
            await fetch_with_timeout(send, timeout=0.05, url="http://api.test/slow")

        assert cancelled.is_set()
        assert exc_info.value.details["url"] == "http://api.test/slow"

    @pytest.mark.asyncio
    async def test_caller_cancellation_is_distinct_from_timeout(self):
        token = CancellationToken()

        async def send():
            await asyncio.sleep(10)

        async def cancel_soon():
            await asyncio.sleep(0.01)
            token.cancel("navigated away")

        canceller = asyncio.create_task(cancel_soon())
        with pytest.raises(RequestCancelledError) as exc_info:
            await fetch_with_timeout(send, timeout=5.0, cancel_token=token)
        await canceller

        assert exc_info.value.message == "navigated away"

    @pytest.mark.asyncio
    async def test_already_cancelled_token_never_sends(self):
        token = CancellationToken()
        token.cancel()
        calls = []

        async def send():
            calls.append(1)

        with pytest.raises(RequestCancelledError):
            await fetch_with_timeout(send, timeout=1.0, cancel_token=token)
        assert calls == []

    @pytest.mark.asyncio
    async def test_transport_timeout_translated(self):
        async def send():
            raise httpx.ReadTimeout("read timed out")

        with pytest.raises(RequestTimeoutError):
            await fetch_with_timeout(send, timeout=1.0)

    @pytest.mark.asyncio
    async def test_connect_error_translated(self):
        async def send():
            raise httpx.ConnectError("connection refused")

        with pytest.raises(NetworkError) as exc_info:
            await fetch_with_timeout(send, timeout=1.0)
        assert exc_info.value.details["original_error"] == "ConnectError"

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self):
        async def send():
            raise ValueError("bad input")

        with pytest.raises(ValueError):
            await fetch_with_timeout(send, timeout=1.0)


@pytest.mark.unit
class TestCancellationToken:
    """Test CancellationToken."""

    def test_first_reason_wins(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")

        assert token.cancelled
        assert token.reason == "first"

    def test_starts_uncancelled(self):
        token = CancellationToken()
        assert not token.cancelled
        assert token.reason is None
