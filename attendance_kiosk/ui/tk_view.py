"""Tk kiosk window: status box, start/stop button and the live preview."""

from __future__ import annotations

import asyncio
import io
from typing import Any, Optional

import numpy as np
from async_tkinter_loop import async_handler
from PIL import Image, ImageTk

from attendance_kiosk.config import UISettings
from attendance_kiosk.core.logging_utils import LoggerLike, ensure_structured_logger
from attendance_kiosk.session.controller import AttendanceSession
from attendance_kiosk.session.state import SessionSnapshot

from .panel import (
    BODY_ERROR,
    BODY_LIVE_CAMERA,
    BODY_LIVE_STREAM,
    BODY_MARKED,
    BUTTON_START,
    BUTTON_STOP,
    INSTRUCTIONS,
    MARKED_SUBTITLE,
    PLACEHOLDER_HEADLINE,
    PLACEHOLDER_SUBTITLE,
    PanelModel,
    build_panel,
)

try:
    import tkinter as tk  # type: ignore
except Exception as exc:  # pragma: no cover - Tk missing on the host
    tk = None  # type: ignore
    TK_IMPORT_ERROR = exc
else:
    TK_IMPORT_ERROR = None

PREVIEW_SIZE = (640, 480)
PREVIEW_REFRESH_MS = 50
GUIDE_SIZE = (200, 250)
DEFAULT_GEOMETRY = "720x860"


def tk_available() -> bool:
    return tk is not None


class KioskWindow:
    """Single-window kiosk UI bound to one :class:`AttendanceSession`."""

    def __init__(
        self,
        session: AttendanceSession,
        settings: UISettings,
        *,
        has_camera: bool = True,
        logger: LoggerLike = None,
    ) -> None:
        if tk is None:
            raise RuntimeError(f"Tk is unavailable: {TK_IMPORT_ERROR}")
        self._session = session
        self._settings = settings
        self._has_camera = has_camera
        self._logger = ensure_structured_logger(logger, fallback_name="KioskWindow")

        self._panel: Optional[PanelModel] = None
        self._photo: Optional[Any] = None
        self._stream_jpeg: Optional[bytes] = None
        self._close_requested = False
        self._frame_errors = 0
        self._unsubscribers: list = []

        self.root = tk.Tk()
        self.root.title("Attendance Kiosk")
        self.root.geometry(settings.geometry or DEFAULT_GEOMETRY)
        self.root.protocol("WM_DELETE_WINDOW", self._on_close)
        self._build_layout()

    # ------------------------------------------------------------------
    # Layout

    def _build_layout(self) -> None:
        root = self.root
        root.columnconfigure(0, weight=1)
        root.rowconfigure(2, weight=1)

        self._status_box = tk.Frame(root, highlightthickness=2, padx=12, pady=10)
        self._status_box.grid(row=0, column=0, sticky="ew", padx=16, pady=(16, 8))
        self._status_box.columnconfigure(0, weight=1)

        self._title_label = tk.Label(self._status_box, font=("", 16, "bold"), anchor="w")
        self._title_label.grid(row=0, column=0, sticky="ew")
        self._message_label = tk.Label(self._status_box, font=("", 13), anchor="w", justify="left", wraplength=640)
        self._message_label.grid(row=1, column=0, sticky="ew", pady=(4, 0))
        self._instructions_label = tk.Label(
            self._status_box,
            text="Instructions:\n" + "\n".join(INSTRUCTIONS),
            font=("", 11),
            anchor="w",
            justify="left",
            bg="#ffffff",
            padx=8,
            pady=6,
        )

        controls = tk.Frame(root)
        controls.grid(row=1, column=0, sticky="ew", padx=16)
        controls.columnconfigure(1, weight=1)

        self._button = tk.Button(controls, font=("", 13, "bold"), width=18, fg="white")
        self._button.grid(row=0, column=0, sticky="w")
        self._debug_label = tk.Label(controls, font=("TkFixedFont", 10), anchor="w", fg="#666666")
        self._debug_label.grid(row=0, column=1, sticky="ew", padx=(12, 0))

        width, height = PREVIEW_SIZE
        self._canvas = tk.Canvas(root, width=width, height=height, bg="black", highlightthickness=0)
        self._canvas.grid(row=2, column=0, padx=16, pady=16)

    # ------------------------------------------------------------------
    # Session binding

    def attach(self) -> None:
        self._unsubscribers.append(self._session.add_listener(self._on_snapshot))
        self._unsubscribers.append(self._session.add_frame_listener(self._on_stream_frame))
        self._on_snapshot(self._session.snapshot)
        self.root.after(PREVIEW_REFRESH_MS, self._refresh_preview)
        self._logger.info("Kiosk window attached (mode=%s)", self._session.strategy.mode)

    def _on_snapshot(self, snapshot: SessionSnapshot) -> None:
        self._panel = build_panel(snapshot, self._session.strategy.mode, has_camera=self._has_camera)
        if not snapshot.state.is_running:
            self._stream_jpeg = None
        self._apply_panel(self._panel)

    def _on_stream_frame(self, jpeg: bytes) -> None:
        self._stream_jpeg = jpeg

    def _apply_panel(self, panel: PanelModel) -> None:
        palette = panel.palette
        self._status_box.configure(bg=palette.background, highlightbackground=palette.border)
        self._title_label.configure(text=panel.title, bg=palette.background, fg=palette.text)
        self._message_label.configure(text=panel.message, bg=palette.background, fg=palette.text)
        if panel.show_instructions:
            self._instructions_label.grid(row=2, column=0, sticky="ew", pady=(8, 0))
        else:
            self._instructions_label.grid_remove()

        self._debug_label.configure(text=panel.debug_info)

        if panel.button == BUTTON_STOP:
            self._button.configure(text="Stop Attendance", bg="#dc3545", state="normal", command=self._on_stop_clicked)
            self._button.grid()
        elif panel.button == BUTTON_START:
            self._button.configure(text="Start Attendance", bg="#28a745", state="normal", command=self._on_start_clicked)
            self._button.grid()
        else:
            self._button.grid_remove()

        if panel.body not in (BODY_LIVE_CAMERA, BODY_LIVE_STREAM):
            self._draw_static_body(panel)

    # ------------------------------------------------------------------
    # Preview

    def _refresh_preview(self) -> None:
        if self._close_requested:
            return
        panel = self._panel
        try:
            if panel is not None and panel.body == BODY_LIVE_CAMERA:
                self._draw_camera_frame(panel)
            elif panel is not None and panel.body == BODY_LIVE_STREAM:
                self._draw_stream_frame(panel)
        except (OSError, ValueError) as exc:
            self._frame_errors += 1
            if self._frame_errors <= 3:
                self._logger.debug("Frame render error: %s", exc)
        self.root.after(PREVIEW_REFRESH_MS, self._refresh_preview)

    def _draw_camera_frame(self, panel: PanelModel) -> None:
        camera = self._session.camera
        frame = camera.latest_frame() if camera is not None else None
        if frame is None or not frame.is_valid:
            self._draw_waiting(panel)
            return
        data = frame.data
        if data.ndim == 3 and data.shape[2] == 3:
            data = data[:, :, ::-1]
        if self._settings.mirror_preview and camera.constraints.mirrored:
            data = data[:, ::-1]
        self._draw_image(Image.fromarray(np.ascontiguousarray(data)), panel)

    def _draw_stream_frame(self, panel: PanelModel) -> None:
        jpeg = self._stream_jpeg
        if jpeg is None:
            self._draw_waiting(panel)
            return
        self._draw_image(Image.open(io.BytesIO(jpeg)), panel)

    def _draw_image(self, image: "Image.Image", panel: PanelModel) -> None:
        width, height = PREVIEW_SIZE
        if image.size != PREVIEW_SIZE:
            image = image.resize(PREVIEW_SIZE, Image.Resampling.BILINEAR)
        self._photo = ImageTk.PhotoImage(image)
        canvas = self._canvas
        canvas.delete("all")
        canvas.create_image(width // 2, height // 2, image=self._photo, anchor="center")
        self._draw_guides(panel)

    def _draw_waiting(self, panel: PanelModel) -> None:
        width, height = PREVIEW_SIZE
        self._canvas.delete("all")
        self._canvas.configure(bg="black")
        self._canvas.create_text(width // 2, height // 2, text="Waiting for video...", fill="white", font=("", 14))
        self._draw_guides(panel)

    def _draw_guides(self, panel: PanelModel) -> None:
        width, height = PREVIEW_SIZE
        guide_w, guide_h = GUIDE_SIZE
        cx, cy = width // 2, height // 2
        self._canvas.create_oval(
            cx - guide_w // 2,
            cy - guide_h // 2,
            cx + guide_w // 2,
            cy + guide_h // 2,
            outline="#dddddd",
            dash=(6, 4),
            width=3,
        )
        if panel.overlay:
            self._canvas.create_rectangle(10, height - 40, width - 10, height - 10, fill="black", stipple="gray75", outline="")
            self._canvas.create_text(20, height - 25, text=panel.overlay, anchor="w", fill="white", font=("TkFixedFont", 11))

    def _draw_static_body(self, panel: PanelModel) -> None:
        width, height = PREVIEW_SIZE
        canvas = self._canvas
        canvas.delete("all")
        self._photo = None
        if panel.body == BODY_MARKED:
            canvas.configure(bg="#d4edda")
            canvas.create_text(width // 2, height // 2 - 20, text=panel.banner, fill="#155724", font=("", 24, "bold"))
            canvas.create_text(width // 2, height // 2 + 25, text=MARKED_SUBTITLE, fill="#155724", font=("", 14))
        elif panel.body == BODY_ERROR:
            canvas.configure(bg="#f8d7da")
            canvas.create_text(width // 2, height // 2 - 20, text=panel.banner, fill="#721c24", font=("", 24, "bold"))
            canvas.create_text(
                width // 2,
                height // 2 + 25,
                text=panel.message,
                fill="#721c24",
                font=("", 13),
                width=width - 80,
            )
        else:
            canvas.configure(bg="#e2e3e5")
            canvas.create_text(width // 2, height // 2 - 15, text=PLACEHOLDER_HEADLINE, fill="#6c757d", font=("", 22, "bold"))
            canvas.create_text(width // 2, height // 2 + 25, text=PLACEHOLDER_SUBTITLE, fill="#6c757d", font=("", 13))

    # ------------------------------------------------------------------
    # Handlers

    @async_handler
    async def _on_start_clicked(self) -> None:
        self._button.configure(state="disabled")
        if self._session.state.is_terminal:
            self._session.reset()
        await self._session.start()

    def _on_stop_clicked(self) -> None:
        self._session.stop()

    def _on_close(self) -> None:
        self._logger.info("Window close requested")
        self.request_close()

    def request_close(self) -> None:
        self._close_requested = True

    # ------------------------------------------------------------------
    # Lifecycle

    async def run(self) -> None:
        """Pump Tk events on the asyncio loop until the window closes."""
        self._logger.info("Kiosk window run loop starting")
        try:
            while not self._close_requested:
                try:
                    self.root.update()
                except tk.TclError as exc:
                    self._logger.error("Tk root.update() raised: %s", exc, exc_info=exc)
                    break
                await asyncio.sleep(0.01)
        finally:
            self._logger.info("Kiosk window run loop finished")

    def destroy(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self._close_requested = True
        try:
            self.root.destroy()
        except tk.TclError:
            self._logger.debug("Tk root already destroyed")


__all__ = ["KioskWindow", "tk_available"]
