"""Stand-in for ``cv2.VideoCapture``."""

from __future__ import annotations

import threading
import time
from typing import Any, Dict, List, Optional, Tuple

import numpy as np


class FakeCapture:
    """Implements the slice of the VideoCapture API the kiosk uses."""

    def __init__(
        self,
        device: Any = 0,
        *,
        opened: bool = True,
        deliver_frames: bool = True,
        size: Tuple[int, int] = (64, 48),
        read_delay: float = 0.002,
    ) -> None:
        self.device = device
        self._opened = opened
        self.deliver_frames = deliver_frames
        self.size = size
        self.read_delay = read_delay
        self.props: Dict[int, float] = {}
        self.reads = 0
        self.released = False
        self._lock = threading.Lock()

    def isOpened(self) -> bool:
        return self._opened and not self.released

    def set(self, prop: int, value: float) -> bool:
        self.props[prop] = float(value)
        return True

    def get(self, prop: int) -> float:
        return self.props.get(prop, 0.0)

    def read(self):
        time.sleep(self.read_delay)
        with self._lock:
            if self.released or not self.deliver_frames:
                return False, None
            self.reads += 1
        width, height = self.size
        frame = np.zeros((height, width, 3), dtype=np.uint8)
        frame[:, : width // 2] = (255, 0, 0)
        return True, frame

    def release(self) -> None:
        with self._lock:
            self.released = True


class FakeCaptureFactory:
    """Callable capture factory that records every capture it creates."""

    def __init__(self, *, open_delay: float = 0.0, error: Optional[Exception] = None, **capture_kwargs: Any) -> None:
        self.open_delay = open_delay
        self.error = error
        self.capture_kwargs = capture_kwargs
        self.created: List[FakeCapture] = []

    def __call__(self, device: Any) -> FakeCapture:
        if self.open_delay:
            time.sleep(self.open_delay)
        if self.error is not None:
            raise self.error
        capture = FakeCapture(device, **self.capture_kwargs)
        self.created.append(capture)
        return capture

    @property
    def last(self) -> Optional[FakeCapture]:
        return self.created[-1] if self.created else None
