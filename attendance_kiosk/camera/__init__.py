"""Local camera acquisition and frame capture."""

from .device import CameraConstraints, CameraHandle, open_video_capture
from .frame import CapturedFrame, decode_jpeg, encode_jpeg
from .manager import CameraManager

__all__ = [
    "CameraConstraints",
    "CameraHandle",
    "CameraManager",
    "CapturedFrame",
    "decode_jpeg",
    "encode_jpeg",
    "open_video_capture",
]
