"""Fakes for kiosk tests: an OpenCV capture stand-in and a scripted backend.

Usage:
    from tests.infrastructure.kiosk import FakeCaptureFactory, ScriptedBackend, serve

    backend = ScriptedBackend(upload=[reply({"status": "marked"})])
    async with serve(backend) as base_url:
        ...
"""

from tests.infrastructure.kiosk.backend import RecordedRequest, ScriptedBackend, reply, serve
from tests.infrastructure.kiosk.camera import FakeCapture, FakeCaptureFactory
from tests.infrastructure.kiosk.waiting import eventually

__all__ = [
    "FakeCapture",
    "FakeCaptureFactory",
    "RecordedRequest",
    "ScriptedBackend",
    "eventually",
    "reply",
    "serve",
]
