"""Unit test fixtures for isolated, fast test execution.

Provides:
- capture_factory / cameras: a CameraManager backed by fake OpenCV captures
- debug_logging: caplog capturing the attendance_kiosk namespace at DEBUG
"""

from __future__ import annotations

import logging

import pytest

from attendance_kiosk.camera.manager import CameraManager
from tests.infrastructure.kiosk import FakeCaptureFactory


@pytest.fixture
def capture_factory() -> FakeCaptureFactory:
    return FakeCaptureFactory()


@pytest.fixture
def cameras(capture_factory: FakeCaptureFactory):
    manager = CameraManager(capture_factory)
    yield manager
    manager.release()


@pytest.fixture
def debug_logging(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    caplog.set_level(logging.DEBUG, logger="attendance_kiosk")
    return caplog
