"""Camera capture using OpenCV."""

from __future__ import annotations

import os
import sys

# Disable MSMF hardware transforms on Windows to fix slow camera initialization.
# See: https://github.com/opencv/opencv/issues/17687
if sys.platform == "win32":
    os.environ.setdefault("OPENCV_VIDEOIO_MSMF_ENABLE_HW_TRANSFORMS", "0")

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

import cv2

from attendance_kiosk.core.logging_utils import get_module_logger

from .frame import CapturedFrame

logger = get_module_logger(__name__)

Device = Union[int, str]
CaptureFactory = Callable[[Device], Any]

RELEASE_JOIN_TIMEOUT_S = 0.2


@dataclass(frozen=True, slots=True)
class CameraConstraints:
    """Requested camera properties.

    ``width``/``height`` are hints: the driver may pick the closest mode.
    ``facing_mode`` is "user" for a selfie camera, "environment" otherwise.
    """

    device: Device = 0
    facing_mode: str = "user"
    width: Optional[int] = 640
    height: Optional[int] = 480

    @property
    def mirrored(self) -> bool:
        return self.facing_mode == "user"


def open_video_capture(device: Device) -> Any:
    """Default capture factory."""
    if sys.platform == "win32" and isinstance(device, int):
        # MSMF gets better FPS than DSHOW on Windows.
        return cv2.VideoCapture(device, cv2.CAP_MSMF)
    return cv2.VideoCapture(device)


class CameraHandle:
    """An open camera plus the thread that keeps its latest frame.

    The capture thread overwrites a single slot, so readers always get the
    most recent frame and never a backlog of stale ones.
    """

    def __init__(self, capture: Any, constraints: CameraConstraints) -> None:
        self._cap = capture
        self._constraints = constraints
        self._lock = threading.Lock()
        self._latest: Optional[CapturedFrame] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._frame_number = 0
        self._resolution = (0, 0)

    # ------------------------------------------------------------------
    # Lifecycle

    def configure(self) -> tuple[int, int]:
        """Apply constraints and return the resolution the driver settled on."""
        cap = self._cap
        if self._constraints.width:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, self._constraints.width)
        if self._constraints.height:
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self._constraints.height)
        # Reduce internal buffer to minimize latency
        cap.set(cv2.CAP_PROP_BUFFERSIZE, 1)
        self._resolution = (
            int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0),
            int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0),
        )
        return self._resolution

    def prime(self) -> bool:
        """Read one frame synchronously; False when the device delivers nothing."""
        ret, data = self._cap.read()
        if not ret or data is None:
            return False
        self._store(data)
        return True

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(target=self._capture_loop, name="camera-capture", daemon=True)
        self._thread.start()
        logger.debug("Capture thread started")

    def release(self) -> None:
        """Stop the capture thread and release the device. Idempotent.

        Waits briefly for the capture thread; if it is stuck in ``read()``
        the thread releases the device itself once the read returns.
        """
        self._running = False
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=RELEASE_JOIN_TIMEOUT_S)
            if thread.is_alive():
                logger.warning(
                    "Capture thread for camera %s still reading; device released when it returns",
                    self._constraints.device,
                )
                with self._lock:
                    self._latest = None
                return
        self._close_device()

    def _close_device(self) -> None:
        with self._lock:
            cap, self._cap = self._cap, None
            self._latest = None
        if cap is not None:
            cap.release()
            logger.info("Camera %s released", self._constraints.device)

    # ------------------------------------------------------------------
    # Capture

    def _capture_loop(self) -> None:
        logger.debug("Capture loop started")
        try:
            while self._running:
                cap = self._cap
                if cap is None:
                    break
                ret, data = cap.read()
                if not self._running:
                    break
                if not ret or data is None:
                    time.sleep(0.005)
                    continue
                self._store(data)
        finally:
            if not self._running:
                self._close_device()
        logger.debug("Capture loop ended: frames=%d", self._frame_number)

    def _store(self, data) -> None:
        with self._lock:
            self._frame_number += 1
            self._latest = CapturedFrame(
                data=data,
                frame_number=self._frame_number,
                monotonic_time=time.perf_counter(),
                wall_time=time.time(),
            )

    def latest_frame(self) -> Optional[CapturedFrame]:
        with self._lock:
            return self._latest

    # ------------------------------------------------------------------
    # Introspection

    @property
    def constraints(self) -> CameraConstraints:
        return self._constraints

    @property
    def resolution(self) -> tuple[int, int]:
        return self._resolution

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    @property
    def track_count(self) -> int:
        """1 while the device is held, 0 once released."""
        return 1 if self._cap is not None else 0


__all__ = ["CameraConstraints", "CameraHandle", "CaptureFactory", "Device", "open_video_capture"]
