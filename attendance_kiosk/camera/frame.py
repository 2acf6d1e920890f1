"""Captured frame data and JPEG encoding."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np


@dataclass(frozen=True, slots=True)
class CapturedFrame:
    """Immutable video frame from the camera."""

    data: np.ndarray  # BGR image data
    frame_number: int
    monotonic_time: float  # time.perf_counter()
    wall_time: float  # time.time()

    @property
    def size(self) -> tuple[int, int]:
        """(width, height) of the image; (0, 0) for an empty buffer."""
        if self.data is None or self.data.ndim < 2:
            return (0, 0)
        return (int(self.data.shape[1]), int(self.data.shape[0]))

    @property
    def is_valid(self) -> bool:
        width, height = self.size
        return width > 0 and height > 0


def encode_jpeg(image: np.ndarray, quality: int = 80) -> bytes:
    """Encode a BGR image as JPEG bytes.

    Raises ValueError when the image is empty or OpenCV refuses to encode it.
    """
    if image is None or image.size == 0:
        raise ValueError("cannot encode an empty frame")
    ok, buffer = cv2.imencode(".jpg", image, [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)])
    if not ok:
        raise ValueError("JPEG encoding failed")
    return buffer.tobytes()


def decode_jpeg(payload: bytes) -> Optional[np.ndarray]:
    """Decode JPEG bytes to a BGR image, or None when undecodable."""
    if not payload:
        return None
    array = np.frombuffer(payload, dtype=np.uint8)
    return cv2.imdecode(array, cv2.IMREAD_COLOR)


__all__ = ["CapturedFrame", "decode_jpeg", "encode_jpeg"]
