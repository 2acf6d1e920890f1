"""Status-poll and MJPEG session tests."""

import asyncio

import pytest

from attendance_kiosk.config import MODE_MJPEG, MODE_POLL, MODE_UPLOAD, load_config
from attendance_kiosk.errors import ConfigError
from attendance_kiosk.session.controller import AttendanceSession, RetryPolicy
from attendance_kiosk.session.state import SessionState
from attendance_kiosk.session.strategies import (
    MjpegStrategy,
    StatusPollStrategy,
    UploadStrategy,
    build_strategy,
)
from attendance_kiosk.transport.client import BackendClient
from attendance_kiosk.ui.panel import BODY_LIVE_STREAM, BODY_MARKED, build_panel
from tests.infrastructure.kiosk import ScriptedBackend, eventually, reply, serve

ACTIVE = reply({"status": "active", "message": "Look at the camera"})
MARKED = reply({"status": "marked", "message": "Welcome, Bob"})


class TestStatusPoll:

    @pytest.mark.asyncio
    async def test_poll_without_camera(self, cameras, capture_factory):
        backend = ScriptedBackend(status=[ACTIVE, ACTIVE, MARKED])

        async with serve(backend) as base_url, BackendClient(base_url) as client:
            strategy = StatusPollStrategy(client, requires_camera=False)
            async with AttendanceSession(strategy, cameras, interval=0.02, warmup=1.0) as session:
                await session.start()
                assert session.snapshot.debug_info == "Connected"
                state = await session.wait_until_settled(timeout=5)

        assert state is SessionState.MARKED
        assert session.snapshot.message == "Welcome, Bob"
        assert session.snapshot.debug_info == "Backend status: marked"
        assert len(backend.requests_for("/status")) == 3
        assert backend.requests_for("/process_frame") == []
        assert capture_factory.created == []

    @pytest.mark.asyncio
    async def test_poll_with_preview_camera(self, cameras, capture_factory):
        backend = ScriptedBackend(status=[ACTIVE, MARKED])

        async with serve(backend) as base_url, BackendClient(base_url) as client:
            async with AttendanceSession(StatusPollStrategy(client), cameras, interval=0.02) as session:
                await session.start()
                assert cameras.active_tracks == 1
                await session.wait_until_settled(timeout=5)

        assert len(capture_factory.created) == 1
        assert cameras.active_tracks == 0
        assert session.snapshot.frames_sent == 0

    @pytest.mark.asyncio
    async def test_unknown_status_keeps_session_active(self, cameras):
        backend = ScriptedBackend(status=[reply({"status": "processing", "message": "Hold still"})])

        async with serve(backend) as base_url, BackendClient(base_url) as client:
            strategy = StatusPollStrategy(client, requires_camera=False)
            async with AttendanceSession(strategy, cameras, interval=0.02) as session:
                await session.start()
                await eventually(lambda: session.snapshot.backend_status == "processing")

                assert session.state is SessionState.ACTIVE
                assert session.snapshot.message == "Hold still"

    @pytest.mark.asyncio
    async def test_payload_without_status_changes_nothing(self, cameras):
        backend = ScriptedBackend(status=[reply({"faces_detected": 2})])

        async with serve(backend) as base_url, BackendClient(base_url) as client:
            strategy = StatusPollStrategy(client, requires_camera=False)
            async with AttendanceSession(strategy, cameras, interval=0.02) as session:
                await session.start()
                message = session.snapshot.message
                await eventually(lambda: session.snapshot.ticks >= 2)

                assert session.state is SessionState.ACTIVE
                assert session.snapshot.message == message
                assert session.snapshot.faces_detected == 2
                assert session.snapshot.backend_status is None


class TestMjpeg:

    @pytest.mark.asyncio
    async def test_stream_frames_reach_listeners_and_status_ends_session(self, cameras, capture_factory):
        backend = ScriptedBackend(
            status=[ACTIVE] * 8 + [MARKED],
            stream_frames=[b"\xff\xd8frame-1", b"\xff\xd8frame-2"],
        )
        frames = []
        bodies = []

        async with serve(backend) as base_url, BackendClient(base_url) as client:
            strategy = MjpegStrategy(client)
            session = AttendanceSession(strategy, cameras, interval=0.05, stream_retry=0.05)
            session.add_frame_listener(frames.append)
            session.add_listener(lambda snap: bodies.append(build_panel(snap, MODE_MJPEG).body))
            async with session:
                await session.start()
                await eventually(lambda: len(frames) >= 2)
                state = await session.wait_until_settled(timeout=5)
                await asyncio.sleep(0.1)

                assert state is SessionState.MARKED
                assert session.active_task_names() == []

        assert frames[:2] == [b"\xff\xd8frame-1", b"\xff\xd8frame-2"]
        assert session.stream_frames >= 2
        assert capture_factory.created == []
        assert BODY_LIVE_STREAM in bodies
        assert bodies[-1] == BODY_MARKED

    @pytest.mark.asyncio
    async def test_stream_reconnects_after_it_ends(self, cameras):
        backend = ScriptedBackend(stream_frames=[b"\xff\xd8only"])

        async with serve(backend) as base_url, BackendClient(base_url) as client:
            session = AttendanceSession(MjpegStrategy(client), cameras, interval=0.05, stream_retry=0.02)
            async with session:
                await session.start()
                await eventually(lambda: len(backend.requests_for("/video_feed")) >= 2)

                assert session.state is SessionState.ACTIVE

    @pytest.mark.asyncio
    async def test_stream_frames_after_stop_are_dropped(self, cameras):
        backend = ScriptedBackend(stream_frames=[b"\xff\xd8x"])
        frames = []

        async with serve(backend) as base_url, BackendClient(base_url) as client:
            session = AttendanceSession(MjpegStrategy(client), cameras, interval=0.05, stream_retry=0.02)
            session.add_frame_listener(frames.append)
            async with session:
                await session.start()
                await eventually(lambda: frames)
                session.stop()
                received = len(frames)
                await asyncio.sleep(0.1)

                assert len(frames) == received
                assert session.active_task_names() == []


class TestBuildStrategy:

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "mode, preview, expected, needs_camera",
        [
            (MODE_UPLOAD, True, UploadStrategy, True),
            (MODE_POLL, True, StatusPollStrategy, True),
            (MODE_POLL, False, StatusPollStrategy, False),
            (MODE_MJPEG, True, MjpegStrategy, False),
        ],
    )
    async def test_selects_by_mode(self, mode, preview, expected, needs_camera):
        config = load_config({"transport.mode": mode, "camera.preview": preview, "transport.jpeg_quality": 70}, environ={})

        async with BackendClient(config.backend.url) as client:
            strategy = build_strategy(config, client)

        assert type(strategy) is expected
        assert strategy.mode == mode
        assert strategy.requires_camera is needs_camera
        if expected is UploadStrategy:
            assert strategy.jpeg_quality == 70

    @pytest.mark.asyncio
    async def test_unknown_mode_raises(self):
        config = load_config({}, environ={})
        config.transport.mode = "smoke-signals"

        async with BackendClient(config.backend.url) as client:
            with pytest.raises(ConfigError):
                build_strategy(config, client)

    @pytest.mark.asyncio
    async def test_session_from_config(self, cameras):
        config = load_config(
            {
                "transport.mode": "poll",
                "transport.poll_interval_ms": 250,
                "transport.warmup_ms": 0,
                "retry.backoff_multiplier": 1.5,
                "retry.max_backoff_ms": 3000,
                "camera.device": "2",
                "camera.resolution": "320x240",
            },
            environ={},
        )

        async with BackendClient(config.backend.url) as client:
            session = AttendanceSession.from_config(config, build_strategy(config, client), cameras)

        assert session._interval == pytest.approx(0.25)
        assert session._retry == RetryPolicy(multiplier=1.5, max_delay=3.0)
        assert session._constraints.device == 2
        assert (session._constraints.width, session._constraints.height) == (320, 240)
