"""Headless renderer: logs every visible change of the kiosk panel."""

from __future__ import annotations

from typing import Optional

from attendance_kiosk.core.logging_utils import LoggerLike, ensure_structured_logger
from attendance_kiosk.session.controller import AttendanceSession
from attendance_kiosk.session.state import SessionSnapshot, SessionState

from .panel import PanelModel, build_panel


class ConsoleView:
    """Follows a session and logs the panel whenever its text changes.

    Counter-only updates (ticks, frames) are logged at debug level so a
    long session does not flood the console.
    """

    def __init__(self, session: AttendanceSession, *, has_camera: bool = True, logger: LoggerLike = None) -> None:
        self._session = session
        self._has_camera = has_camera
        self._logger = ensure_structured_logger(logger, fallback_name="ConsoleView")
        self._last: Optional[PanelModel] = None
        self._unsubscribe = None

    @property
    def panel(self) -> Optional[PanelModel]:
        return self._last

    def attach(self) -> None:
        if self._unsubscribe is None:
            self._unsubscribe = self._session.add_listener(self.render)
        self.render(self._session.snapshot)

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def render(self, snapshot: SessionSnapshot) -> None:
        panel = build_panel(snapshot, self._session.strategy.mode, has_camera=self._has_camera)
        previous, self._last = self._last, panel

        if previous is not None and (previous.title, previous.message) == (panel.title, panel.message):
            if panel.debug_info != previous.debug_info:
                self._logger.debug("%s", panel.debug_info)
            return

        level_log = self._logger.error if snapshot.state is SessionState.ERROR else self._logger.info
        level_log("%s | %s", panel.title, panel.message)
        if panel.banner:
            level_log("%s", panel.banner)
        if panel.debug_info:
            self._logger.debug("%s", panel.debug_info)


__all__ = ["ConsoleView"]
