"""Session state, transition table and the snapshot published to views."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional

from attendance_kiosk.errors import InvalidTransitionError


class SessionState(Enum):
    """The five states of a kiosk attendance session."""

    INACTIVE = "inactive"
    STARTING = "starting"
    ACTIVE = "active"
    MARKED = "marked"
    ERROR = "error"

    @property
    def is_running(self) -> bool:
        """True while the camera may be held and ticks may fire."""
        return self in RUNNING_STATES

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES

    def can_transition(self, target: "SessionState") -> bool:
        return target in TRANSITIONS.get(self, frozenset())


RUNNING_STATES = frozenset({SessionState.STARTING, SessionState.ACTIVE})
TERMINAL_STATES = frozenset({SessionState.MARKED, SessionState.ERROR})

TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.INACTIVE: frozenset({SessionState.STARTING}),
    SessionState.STARTING: frozenset({SessionState.ACTIVE, SessionState.ERROR, SessionState.INACTIVE}),
    SessionState.ACTIVE: frozenset({SessionState.MARKED, SessionState.ERROR, SessionState.INACTIVE}),
    # Terminal for the session; reset begins a new one.
    SessionState.MARKED: frozenset({SessionState.INACTIVE}),
    SessionState.ERROR: frozenset({SessionState.INACTIVE}),
}


def check_transition(current: SessionState, target: SessionState) -> None:
    if not current.can_transition(target):
        raise InvalidTransitionError(f"cannot go from {current.value} to {target.value}")


IDLE_MESSAGE = 'Press "Start Attendance" to begin.'


@dataclass(frozen=True, slots=True)
class SessionSnapshot:
    """Everything a view needs to render one moment of the session."""

    state: SessionState = SessionState.INACTIVE
    message: str = IDLE_MESSAGE
    debug_info: str = ""
    backend_status: Optional[str] = None
    frames_sent: int = 0
    faces_detected: int = 0
    ticks: int = 0
    transport_failures: int = 0
    last_error: Optional[str] = None

    def evolve(self, **changes) -> "SessionSnapshot":
        return replace(self, **changes)


__all__ = [
    "IDLE_MESSAGE",
    "RUNNING_STATES",
    "SessionSnapshot",
    "SessionState",
    "TERMINAL_STATES",
    "TRANSITIONS",
    "check_transition",
]
