from __future__ import annotations

from enum import Enum


class SessionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# Terminal states have no outgoing transitions; expiry is deletion, not a state.
ALLOWED_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.RUNNING: {SessionStatus.COMPLETED, SessionStatus.FAILED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.FAILED: set(),
}


class IllegalTransitionError(ValueError):
    pass


def is_terminal(status: SessionStatus) -> bool:
    return not ALLOWED_TRANSITIONS[status]


def transition(*, current: SessionStatus, to: SessionStatus) -> SessionStatus:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to
