"""Attendance session state machine and transport strategies."""

from .controller import AttendanceSession, RetryPolicy
from .state import IDLE_MESSAGE, SessionSnapshot, SessionState, check_transition
from .strategies import (
    MjpegStrategy,
    StatusPollStrategy,
    TickOutcome,
    TransportStrategy,
    UploadStrategy,
    build_strategy,
)

__all__ = [
    "AttendanceSession",
    "IDLE_MESSAGE",
    "MjpegStrategy",
    "RetryPolicy",
    "SessionSnapshot",
    "SessionState",
    "StatusPollStrategy",
    "TickOutcome",
    "TransportStrategy",
    "UploadStrategy",
    "build_strategy",
    "check_transition",
]
