"""
Timeout-Bounded Fetch

Wraps a single network call with a hard deadline and an optional
caller-owned cancellation signal.

MECHANISM:
----------
The call runs as its own task and is raced (asyncio.wait, FIRST_COMPLETED)
against the deadline and, when given, the cancellation token:

- call finishes first      -> result returned, httpx errors translated
- deadline elapses first   -> call task cancelled, RequestTimeoutError (retryable)
- token fires first        -> call task cancelled, RequestCancelledError (terminal)

Either way the losing waiters are cancelled before returning, so no timer or
connection outlives the call.
"""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import httpx

from course_resilience.core.exceptions import (
    NetworkError,
    RequestCancelledError,
    RequestTimeoutError,
)

T = TypeVar("T")


class CancellationToken:
    """
    Caller-owned cancellation signal.

    Usage:
        token = CancellationToken()
        task = asyncio.create_task(client.get("/course/1", cancel_token=token))
        ...
        token.cancel("navigated away")
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "Request cancelled by caller") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


async def _discard(task: asyncio.Future) -> None:
    """Cancel a task and wait for it to unwind."""
    if not task.done():
        task.cancel()
    await asyncio.gather(task, return_exceptions=True)


async def fetch_with_timeout(
    send: Callable[[], Awaitable[T]],
    timeout: float,
    cancel_token: CancellationToken | None = None,
    *,
    url: str | None = None,
) -> T:
    """
    Run ``send()`` under a deadline.

    Args:
        send: Zero-argument coroutine factory performing the network call
        timeout: Deadline in seconds
        cancel_token: Optional caller cancellation signal
        url: Target URL, only used for error context

    Returns:
        Whatever ``send()`` returns

    Raises:
        RequestTimeoutError: Deadline elapsed or the transport timed out
        RequestCancelledError: Caller cancelled via the token
        NetworkError: Connection-level failure
    """
    if cancel_token is not None and cancel_token.cancelled:
        raise RequestCancelledError(cancel_token.reason or "Request cancelled", details={"url": url})

    call = asyncio.ensure_future(send())
    waiters: set[asyncio.Future] = {call}
    cancel_waiter = None
    if cancel_token is not None:
        cancel_waiter = asyncio.ensure_future(cancel_token.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        # Outer task cancelled: take the call down with it
        call.cancel()
        if cancel_waiter is not None:
            cancel_waiter.cancel()
        raise
    finally:
        if cancel_waiter is not None and not cancel_waiter.done():
            await _discard(cancel_waiter)

    if call in done:
        try:
            return call.result()
        except httpx.TimeoutException as e:
            raise RequestTimeoutError.from_exception(
                e, message="Request timeout", url=url, timeout=timeout
            ) from e
        except httpx.RequestError as e:
            raise NetworkError.from_exception(e, url=url) from e

    await _discard(call)

    if cancel_token is not None and cancel_token.cancelled:
        raise RequestCancelledError(
            cancel_token.reason or "Request cancelled", details={"url": url}
        )

    raise RequestTimeoutError("Request timeout", details={"url": url, "timeout": timeout})
