"""Transport strategies: one way of talking to the backend per deployment."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Union

from attendance_kiosk.camera.device import CameraHandle
from attendance_kiosk.camera.frame import encode_jpeg
from attendance_kiosk.config import MODE_MJPEG, MODE_POLL, MODE_UPLOAD, KioskConfig
from attendance_kiosk.errors import ConfigError
from attendance_kiosk.transport.client import BackendClient, StatusResponse

WAITING_FOR_VIDEO = "Waiting for video to load..."

FrameSink = Callable[[bytes], Union[None, Awaitable[None]]]


@dataclass(frozen=True, slots=True)
class TickOutcome:
    """Result of one tick: a backend response, or the reason it was skipped."""

    response: Optional[StatusResponse] = None
    skipped: Optional[str] = None
    uploaded: bool = False

    @classmethod
    def skip(cls, reason: str) -> "TickOutcome":
        return cls(skipped=reason)


class TransportStrategy(ABC):
    """Drives one tick of backend communication.

    ``tick`` may raise TransportError; the session treats that as a
    recoverable failure. Strategies hold no session state of their own.
    """

    mode: str = ""
    active_message: str = "Session active."
    requires_camera: bool = True
    has_push_stream: bool = False

    def __init__(self, client: BackendClient) -> None:
        self.client = client

    @abstractmethod
    async def tick(self, camera: Optional[CameraHandle]) -> TickOutcome:
        """Perform one request and return what the backend said."""

    async def stream(self, on_frame: FrameSink) -> None:
        """Consume push events until the stream ends. No-op for pull modes."""
        return None


class UploadStrategy(TransportStrategy):
    """Snapshot the latest camera frame and POST it to ``/process_frame``."""

    mode = MODE_UPLOAD
    active_message = "Camera active! Position your face and BLINK naturally."

    def __init__(self, client: BackendClient, *, jpeg_quality: int = 80) -> None:
        super().__init__(client)
        self.jpeg_quality = jpeg_quality

    async def tick(self, camera: Optional[CameraHandle]) -> TickOutcome:
        frame = camera.latest_frame() if camera is not None else None
        if frame is None or not frame.is_valid:
            return TickOutcome.skip(WAITING_FOR_VIDEO)

        jpeg = await asyncio.to_thread(encode_jpeg, frame.data, self.jpeg_quality)
        response = await self.client.process_frame(jpeg)
        return TickOutcome(response=response, uploaded=True)


class StatusPollStrategy(TransportStrategy):
    """GET ``/status`` each tick; the backend does the processing itself.

    The local camera is only used for the on-screen preview and can be
    switched off with ``requires_camera=False``.
    """

    mode = MODE_POLL
    active_message = "Look at the kiosk camera and BLINK naturally."

    def __init__(self, client: BackendClient, *, requires_camera: bool = True) -> None:
        super().__init__(client)
        self.requires_camera = requires_camera

    async def tick(self, camera: Optional[CameraHandle]) -> TickOutcome:
        return TickOutcome(response=await self.client.fetch_status())


class MjpegStrategy(StatusPollStrategy):
    """Show the server's ``/video_feed`` and poll ``/status`` to learn the verdict.

    Only the status poll can end the session; stream frames are display-only.
    """

    mode = MODE_MJPEG
    active_message = "Streaming from the kiosk camera. Look at it and BLINK naturally."
    has_push_stream = True

    def __init__(self, client: BackendClient) -> None:
        super().__init__(client, requires_camera=False)

    async def stream(self, on_frame: FrameSink) -> None:
        async for jpeg in self.client.video_feed():
            result = on_frame(jpeg)
            if asyncio.iscoroutine(result):
                await result


def build_strategy(config: KioskConfig, client: BackendClient) -> TransportStrategy:
    """Pick the strategy named by ``transport.mode``."""
    mode = config.transport.mode
    if mode == MODE_UPLOAD:
        return UploadStrategy(client, jpeg_quality=config.transport.jpeg_quality)
    if mode == MODE_POLL:
        return StatusPollStrategy(client, requires_camera=config.camera.preview)
    if mode == MODE_MJPEG:
        return MjpegStrategy(client)
    raise ConfigError(f"unknown transport mode {mode!r}")


__all__ = [
    "MjpegStrategy",
    "StatusPollStrategy",
    "TickOutcome",
    "TransportStrategy",
    "UploadStrategy",
    "WAITING_FOR_VIDEO",
    "build_strategy",
]
