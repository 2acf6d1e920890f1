"""Exception hierarchy for the attendance kiosk."""

from __future__ import annotations

from typing import Optional


class KioskError(Exception):
    """Base class for kiosk errors."""

    @property
    def name(self) -> str:
        return type(self).__name__

    def user_message(self) -> str:
        return f"{self.name} - {self}"


class CameraError(KioskError):
    """Camera acquisition failed. Terminal for the session."""

    def user_message(self) -> str:
        return f"Camera Error: {self.name} - {self}"


class CameraPermissionError(CameraError):
    """The camera exists but this process may not open it."""


class CameraDeviceError(CameraError):
    """No usable camera: missing, busy, or unable to deliver frames."""


class TransportError(KioskError):
    """Network failure, timeout, non-2xx status, or undecodable body."""

    def __init__(self, message: str, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class BackendError(KioskError):
    """The backend reported ``status: "error"`` for the session."""


class ConfigError(KioskError, ValueError):
    """Invalid kiosk configuration."""


class InvalidTransitionError(KioskError, RuntimeError):
    """A session state change not allowed by the transition table."""


__all__ = [
    "BackendError",
    "CameraDeviceError",
    "CameraError",
    "CameraPermissionError",
    "ConfigError",
    "InvalidTransitionError",
    "KioskError",
    "TransportError",
]
