"""Pure view model: what the kiosk screen shows for a session snapshot."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from attendance_kiosk.config import MODE_MJPEG
from attendance_kiosk.session.state import SessionSnapshot, SessionState

BUTTON_START = "start"
BUTTON_STOP = "stop"

BODY_LIVE_CAMERA = "live_camera"
BODY_LIVE_STREAM = "live_stream"
BODY_MARKED = "marked_banner"
BODY_ERROR = "error_banner"
BODY_PLACEHOLDER = "inactive_placeholder"

INSTRUCTIONS = (
    "1. Position your face in the center",
    "2. Look at the camera",
    "3. BLINK naturally several times",
    "4. Wait for verification",
)

MARKED_HEADLINE = "ATTENDANCE MARKED!"
MARKED_SUBTITLE = "Thank you! You may close this window."
ERROR_HEADLINE = "SESSION ENDED"
PLACEHOLDER_HEADLINE = "Camera Inactive"
PLACEHOLDER_SUBTITLE = 'Click "Start Attendance" to begin'


@dataclass(frozen=True, slots=True)
class Palette:
    background: str
    border: str
    text: str


PALETTES = {
    SessionState.MARKED: Palette("#d4edda", "#28a745", "#155724"),
    SessionState.ERROR: Palette("#f8d7da", "#dc3545", "#721c24"),
    SessionState.ACTIVE: Palette("#d1ecf1", "#17a2b8", "#0c5460"),
}
DEFAULT_PALETTE = Palette("#ffffff", "#dddddd", "#666666")


@dataclass(frozen=True, slots=True)
class PanelModel:
    title: str
    palette: Palette
    message: str
    debug_info: str
    show_instructions: bool
    button: Optional[str]
    body: str
    overlay: Optional[str]
    banner: Optional[str] = None


def _body_for(snapshot: SessionSnapshot, mode: str, has_camera: bool) -> str:
    state = snapshot.state
    if state is SessionState.MARKED:
        return BODY_MARKED
    if state is SessionState.ERROR:
        return BODY_ERROR
    if state.is_running:
        if mode == MODE_MJPEG:
            return BODY_LIVE_STREAM
        return BODY_LIVE_CAMERA if has_camera else BODY_PLACEHOLDER
    return BODY_PLACEHOLDER


def build_panel(snapshot: SessionSnapshot, mode: str, *, has_camera: bool = True) -> PanelModel:
    """Map a snapshot to the panel the kiosk renders.

    ``has_camera`` is False for deployments that run without a local
    preview; such sessions show the placeholder instead of a live body.
    """
    state = snapshot.state

    if state is SessionState.MARKED:
        button = None
    elif state.is_running:
        button = BUTTON_STOP
    else:
        button = BUTTON_START

    body = _body_for(snapshot, mode, has_camera)
    overlay = None
    if body in (BODY_LIVE_CAMERA, BODY_LIVE_STREAM):
        overlay = f"Frames: {snapshot.frames_sent} | Faces Detected: {snapshot.faces_detected}"

    banner = None
    if body == BODY_MARKED:
        banner = MARKED_HEADLINE
    elif body == BODY_ERROR:
        banner = ERROR_HEADLINE

    return PanelModel(
        title=f"Status: {state.value.upper()}",
        palette=PALETTES.get(state, DEFAULT_PALETTE),
        message=snapshot.message,
        debug_info=snapshot.debug_info,
        show_instructions=state is SessionState.ACTIVE,
        button=button,
        body=body,
        overlay=overlay,
        banner=banner,
    )


__all__ = [
    "BODY_ERROR",
    "BODY_LIVE_CAMERA",
    "BODY_LIVE_STREAM",
    "BODY_MARKED",
    "BODY_PLACEHOLDER",
    "BUTTON_START",
    "BUTTON_STOP",
    "DEFAULT_PALETTE",
    "ERROR_HEADLINE",
    "INSTRUCTIONS",
    "MARKED_HEADLINE",
    "MARKED_SUBTITLE",
    "PLACEHOLDER_HEADLINE",
    "PLACEHOLDER_SUBTITLE",
    "PALETTES",
    "Palette",
    "PanelModel",
    "build_panel",
]
