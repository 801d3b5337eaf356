"""
Retry Policy with Exponential Backoff

Architectural Decision: tenacity drives the attempt loop
- stop_after_attempt(budget + 1): attempts never exceed the budget plus one
- wait_exponential: delay(i) = min(max_delay, base_delay * 2**i)
- retry_if_result: failures are returned as values, not raised, so the
  outcome itself decides whether another attempt is made
- sleep is injectable, so tests can record delays without waiting
- a caller CancellationToken cuts a backoff sleep short; no attempt starts
  once the token has fired

Exceptions raised by an attempt (including CancelledError) are never retried;
tenacity re-raises them as-is.

Classification (used by the API client):
    2xx              -> success
    408 / timeout    -> TIMEOUT, retryable
    429              -> RATE_LIMIT, retryable
    other 4xx        -> CLIENT, terminal
    5xx              -> SERVER, retryable
    no response      -> NETWORK, retryable
"""

import asyncio
import functools
from collections.abc import Awaitable, Callable
from typing import Protocol, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from course_resilience.core.config.constants import (
    RETRY_BASE_DELAY,
    RETRY_MAX_DELAY,
    RETRYABLE_CLIENT_STATUS_CODES,
    ErrorKind,
    RequestState,
    Stage,
)
from course_resilience.core.logging.logger import get_logger
from course_resilience.core.resilience.lifecycle import RequestLifecycle
from course_resilience.core.resilience.timeout import CancellationToken

logger = get_logger(__name__)


class AttemptOutcome(Protocol):
    """Anything an attempt returns: success flag plus retryability."""

    @property
    def success(self) -> bool: ...

    @property
    def retryable(self) -> bool: ...


O = TypeVar("O", bound=AttemptOutcome)


def classify_status_code(status_code: int) -> tuple[ErrorKind, bool]:
    """
    Map a non-2xx status to (kind, retryable).

    Returns:
        Tuple of error kind and whether another attempt may be made
    """
    if status_code == 429:
        return ErrorKind.RATE_LIMIT, True
    if status_code in RETRYABLE_CLIENT_STATUS_CODES:
        return ErrorKind.TIMEOUT, True
    if status_code >= 500:
        return ErrorKind.SERVER, True
    return ErrorKind.CLIENT, False


def _should_retry(outcome: AttemptOutcome) -> bool:
    return not outcome.success and outcome.retryable


class RetryPolicy:
    """
    Bounded retry loop for one logical request.

    Example:
        policy = RetryPolicy(max_retries=2, base_delay=1.0, max_delay=5.0)
        outcome = await policy.execute(lambda attempt: send_once(), lifecycle)
    """

    def __init__(
        self,
        max_retries: int,
        base_delay: float = RETRY_BASE_DELAY,
        max_delay: float = RETRY_MAX_DELAY,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def backoff_delay(self, retry_index: int) -> float:
        """Delay before retry number ``retry_index`` (0-based)."""
        return min(self.max_delay, self.base_delay * (2**retry_index))

    def _retrying(
        self,
        lifecycle: RequestLifecycle,
        sleep: Callable[[float], Awaitable[None]],
    ) -> AsyncRetrying:
        def before_sleep(retry_state: RetryCallState) -> None:
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            lifecycle.record_delay(delay)
            outcome = retry_state.outcome.result()
            error = getattr(outcome, "error", None)
            logger.warning(
                "Retrying request",
                stage=Stage.HTTP_RETRY.value,
                request=lifecycle.description,
                attempt=retry_state.attempt_number,
                max_attempts=self.max_attempts,
                delay_seconds=delay,
                error_kind=error.kind.value if error is not None else None,
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.base_delay, exp_base=2, max=self.max_delay),
            retry=retry_if_result(_should_retry),
            sleep=sleep,
            before_sleep=before_sleep,
            # Budget exhausted: hand back the last failed outcome instead of RetryError
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
        )

    async def _sleep_until_cancelled(self, delay: float, cancel_token: CancellationToken) -> None:
        """Backoff sleep that returns early once ``cancel_token`` fires."""
        sleeper = asyncio.ensure_future(self._sleep(delay))
        waiter = asyncio.ensure_future(cancel_token.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            sleeper.cancel()
            waiter.cancel()
            await asyncio.gather(sleeper, waiter, return_exceptions=True)
        if not sleeper.cancelled():
            sleeper.result()

    async def execute(
        self,
        operation: Callable[[int], Awaitable[O]],
        lifecycle: RequestLifecycle | None = None,
        *,
        cancel_token: CancellationToken | None = None,
        on_cancel: Callable[[], O] | None = None,
    ) -> O:
        """
        Run ``operation`` until it succeeds, fails terminally or the budget is spent.

        Args:
            operation: Coroutine factory taking the 1-based attempt number
            lifecycle: State holder updated on every attempt
            cancel_token: Caller cancellation; checked before every attempt and
                raced against every backoff sleep
            on_cancel: Builds the terminal outcome returned once the token has
                fired; required with ``cancel_token``

        Returns:
            The outcome of the last attempt made, or ``on_cancel()``
        """
        if cancel_token is not None and on_cancel is None:
            raise ValueError("on_cancel is required together with cancel_token")
        lifecycle = lifecycle or RequestLifecycle()

        async def attempt() -> O:
            if cancel_token is not None and cancel_token.cancelled:
                # Not an attempt: nothing is sent and the count stays put
                lifecycle.transition(RequestState.TERMINAL_FAILURE)
                return on_cancel()
            lifecycle.transition(RequestState.ATTEMPTING)
            outcome = await operation(lifecycle.attempts)
            if outcome.success:
                lifecycle.transition(RequestState.SUCCESS)
            elif outcome.retryable:
                lifecycle.transition(RequestState.RETRYABLE_FAILURE)
            else:
                lifecycle.transition(RequestState.TERMINAL_FAILURE)
            return outcome

        sleep = self._sleep
        if cancel_token is not None:
            sleep = functools.partial(self._sleep_until_cancelled, cancel_token=cancel_token)

        outcome = await self._retrying(lifecycle, sleep)(attempt)

        if lifecycle.state is RequestState.RETRYABLE_FAILURE:
            lifecycle.transition(RequestState.TERMINAL_FAILURE)
        return outcome
