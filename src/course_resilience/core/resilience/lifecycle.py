"""
Request Lifecycle State Machine

Tracks one logical request (all attempts plus an optional fallback) through
an explicit set of states. Illegal transitions raise immediately instead of
leaving the client in an ambiguous state.

    ATTEMPTING -> SUCCESS
    ATTEMPTING -> RETRYABLE_FAILURE -> ATTEMPTING
    ATTEMPTING -> TERMINAL_FAILURE
    (start) -> TERMINAL_FAILURE                  (cancelled before the first attempt)
    RETRYABLE_FAILURE -> TERMINAL_FAILURE        (budget exhausted)
    TERMINAL_FAILURE -> FALLBACK -> (SUCCESS | TERMINAL_FAILURE)
    SUCCESS | TERMINAL_FAILURE -> DONE
"""

from course_resilience.core.config.constants import RequestState
from course_resilience.core.exceptions import InvalidStateTransitionError

_TRANSITIONS: dict[RequestState | None, frozenset[RequestState]] = {
    None: frozenset({RequestState.ATTEMPTING, RequestState.TERMINAL_FAILURE}),
    RequestState.ATTEMPTING: frozenset(
        {RequestState.SUCCESS, RequestState.RETRYABLE_FAILURE, RequestState.TERMINAL_FAILURE}
    ),
    RequestState.RETRYABLE_FAILURE: frozenset(
        {RequestState.ATTEMPTING, RequestState.TERMINAL_FAILURE}
    ),
    RequestState.TERMINAL_FAILURE: frozenset({RequestState.FALLBACK, RequestState.DONE}),
    RequestState.FALLBACK: frozenset({RequestState.SUCCESS, RequestState.TERMINAL_FAILURE}),
    RequestState.SUCCESS: frozenset({RequestState.DONE}),
    RequestState.DONE: frozenset(),
}


class RequestLifecycle:
    """State holder for a single logical request."""

    def __init__(self, description: str = ""):
        self.description = description
        self.state: RequestState | None = None
        self.history: list[RequestState] = []
        self.attempts = 0
        self.delays: list[float] = []
        self.fallback_used = False

    def transition(self, new_state: RequestState) -> None:
        allowed = _TRANSITIONS[self.state]
        if new_state not in allowed:
            raise InvalidStateTransitionError(
                f"Illegal request state transition {self.state} -> {new_state}",
                details={
                    "request": self.description,
                    "history": [s.value for s in self.history],
                },
            )
        if new_state is RequestState.ATTEMPTING:
            self.attempts += 1
        elif new_state is RequestState.FALLBACK:
            if self.fallback_used:
                raise InvalidStateTransitionError(
                    "Fallback already attempted", details={"request": self.description}
                )
            self.fallback_used = True
            self.attempts += 1
        self.state = new_state
        self.history.append(new_state)

    def record_delay(self, delay: float) -> None:
        self.delays.append(delay)

    @property
    def is_done(self) -> bool:
        return self.state is RequestState.DONE
