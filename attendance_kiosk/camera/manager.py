"""Camera lifecycle: acquire one handle at a time, release idempotently."""

from __future__ import annotations

import asyncio
import os
import sys
import time
from pathlib import Path
from typing import Optional

from attendance_kiosk.core.logging_utils import LoggerLike, ensure_structured_logger
from attendance_kiosk.errors import CameraDeviceError, CameraError, CameraPermissionError

from .device import CameraConstraints, CameraHandle, CaptureFactory, Device, open_video_capture


class CameraManager:
    """Owns the single camera handle used by a kiosk session."""

    def __init__(
        self,
        capture_factory: Optional[CaptureFactory] = None,
        *,
        logger: LoggerLike = None,
    ) -> None:
        self._factory = capture_factory or open_video_capture
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)
        self._handle: Optional[CameraHandle] = None
        self._opening: Optional["asyncio.Future[CameraHandle]"] = None

    @property
    def handle(self) -> Optional[CameraHandle]:
        return self._handle

    @property
    def active_tracks(self) -> int:
        return self._handle.track_count if self._handle is not None else 0

    async def acquire(self, constraints: CameraConstraints) -> CameraHandle:
        """Open the camera described by ``constraints``.

        Raises CameraPermissionError or CameraDeviceError. The device is
        opened in a worker thread since VideoCapture can block for seconds.
        An open still running for an earlier caller is awaited first so its
        device is released before this one is opened.
        """
        while self._opening is not None:
            self._logger.debug("Waiting for the previous camera open to finish")
            await asyncio.wait({self._opening})
            # Let the previous caller adopt or drop its handle.
            await asyncio.sleep(0)
        if self._handle is not None:
            raise CameraDeviceError("Camera already in use by this kiosk")

        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self._open_blocking, constraints)
        self._opening = future
        try:
            handle = await asyncio.shield(future)
        except asyncio.CancelledError:
            # The open keeps running in its thread; release whatever it yields.
            future.add_done_callback(self._release_orphan)
            raise
        except BaseException:
            self._opening = None
            raise

        self._opening = None
        self._handle = handle
        handle.start()
        return handle

    def release(self, handle: Optional[CameraHandle] = None) -> None:
        """Release ``handle`` (default: the current one). Safe to call repeatedly."""
        target = handle or self._handle
        if target is None:
            return
        target.release()
        if target is self._handle:
            self._handle = None

    # ------------------------------------------------------------------
    # Internal helpers

    def _release_orphan(self, future: "asyncio.Future[CameraHandle]") -> None:
        if future is self._opening:
            self._opening = None
        if future.cancelled() or future.exception() is not None:
            return
        future.result().release()

    def _open_blocking(self, constraints: CameraConstraints) -> CameraHandle:
        device = constraints.device
        started = time.perf_counter()
        try:
            capture = self._factory(device)
        except CameraError:
            raise
        except Exception as exc:
            raise CameraDeviceError(f"Camera {device} could not be opened: {exc}") from exc

        self._logger.debug("Opening camera %s took %.2fs", device, time.perf_counter() - started)

        if capture is None or not capture.isOpened():
            if capture is not None:
                capture.release()
            raise self._classify_open_failure(device)

        handle = CameraHandle(capture, constraints)
        width, height = handle.configure()
        if not handle.prime():
            handle.release()
            raise CameraDeviceError(f"Camera {device} opened but cannot capture")

        self._logger.info(
            "Camera opened: device=%s, resolution=%dx%d, facing=%s",
            device,
            width,
            height,
            constraints.facing_mode,
        )
        return handle

    def _classify_open_failure(self, device: Device):
        """Tell permission denial apart from a missing or broken device."""
        path = _device_path(device)
        if path is None:
            return CameraDeviceError(f"Camera {device} cannot be opened")
        if not path.exists():
            return CameraDeviceError(f"No camera found at {path}")
        if not os.access(path, os.R_OK | os.W_OK):
            return CameraPermissionError(f"Permission denied for {path}; add this user to the 'video' group")
        return CameraDeviceError(f"Camera {path} cannot be opened (busy or unsupported)")


def _device_path(device: Device) -> Optional[Path]:
    if isinstance(device, int):
        if sys.platform.startswith("linux"):
            return Path(f"/dev/video{device}")
        return None
    if "://" in device:
        return None
    return Path(device)


__all__ = ["CameraManager"]
