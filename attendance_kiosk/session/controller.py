"""Attendance session: owns the camera, the tick loop and the session state.

All state changes happen on the event loop in a single synchronous call,
so a listener never observes a half-applied tick. Every start, stop and
terminal transition bumps ``generation``; work started under an older
generation (a late HTTP response, a stream frame) is discarded.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, List, Optional

from attendance_kiosk.camera.device import CameraConstraints, CameraHandle
from attendance_kiosk.camera.manager import CameraManager
from attendance_kiosk.config import KioskConfig
from attendance_kiosk.core.logging_utils import LoggerLike, ensure_structured_logger
from attendance_kiosk.core.task_manager import AsyncTaskManager
from attendance_kiosk.errors import BackendError, CameraError, TransportError

from .state import IDLE_MESSAGE, SessionSnapshot, SessionState, check_transition
from .strategies import TickOutcome, TransportStrategy

TICK_TASK = "tick_loop"
STREAM_TASK = "video_feed"

SnapshotListener = Callable[[SessionSnapshot], None]
FrameListener = Callable[[bytes], None]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Exponential backoff applied to the tick interval after transport failures."""

    multiplier: float = 2.0
    max_delay: float = 5.0

    def delay(self, interval: float, consecutive_failures: int) -> float:
        if consecutive_failures <= 0 or self.multiplier <= 1.0:
            return interval
        backoff = interval * (self.multiplier ** consecutive_failures)
        return max(interval, min(self.max_delay, backoff))


class AttendanceSession:
    """One kiosk attendance session driven by a :class:`TransportStrategy`."""

    def __init__(
        self,
        strategy: TransportStrategy,
        cameras: CameraManager,
        *,
        constraints: Optional[CameraConstraints] = None,
        interval: float = 0.5,
        warmup: float = 0.0,
        retry: Optional[RetryPolicy] = None,
        stream_retry: float = 2.0,
        logger: LoggerLike = None,
    ) -> None:
        self._strategy = strategy
        self._cameras = cameras
        self._constraints = constraints or CameraConstraints()
        self._interval = interval
        self._warmup = warmup
        self._retry = retry or RetryPolicy()
        self._stream_retry = stream_retry
        self._logger = ensure_structured_logger(logger, fallback_name="AttendanceSession")
        self._tasks = AsyncTaskManager("AttendanceSession", logger=self._logger)

        self._snapshot = SessionSnapshot()
        self._generation = 0
        self._consecutive_failures = 0
        self._stream_frames = 0
        self._listeners: List[SnapshotListener] = []
        self._frame_listeners: List[FrameListener] = []
        self._settled = asyncio.Event()
        self._settled.set()

    @classmethod
    def from_config(
        cls,
        config: KioskConfig,
        strategy: TransportStrategy,
        cameras: CameraManager,
        *,
        logger: LoggerLike = None,
    ) -> "AttendanceSession":
        width, height = config.camera.resolution
        return cls(
            strategy,
            cameras,
            constraints=CameraConstraints(
                device=config.camera.device,
                facing_mode=config.camera.facing_mode,
                width=width,
                height=height,
            ),
            interval=config.transport.interval_s,
            warmup=config.transport.warmup_ms / 1000.0,
            retry=RetryPolicy(
                multiplier=config.retry.backoff_multiplier,
                max_delay=config.retry.max_backoff_ms / 1000.0,
            ),
            stream_retry=config.transport.stream_retry_ms / 1000.0,
            logger=logger,
        )

    # ------------------------------------------------------------------
    # Introspection

    @property
    def state(self) -> SessionState:
        return self._snapshot.state

    @property
    def snapshot(self) -> SessionSnapshot:
        return self._snapshot

    @property
    def strategy(self) -> TransportStrategy:
        return self._strategy

    @property
    def camera(self) -> Optional[CameraHandle]:
        return self._cameras.handle

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def stream_frames(self) -> int:
        return self._stream_frames

    def active_task_names(self) -> list[str]:
        return self._tasks.active_names()

    def add_listener(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call ``listener`` with every new snapshot. Returns an unsubscribe function."""
        return _subscribe(self._listeners, listener)

    def add_frame_listener(self, listener: FrameListener) -> Callable[[], None]:
        """Receive JPEG frames pushed by the backend stream (MJPEG mode)."""
        return _subscribe(self._frame_listeners, listener)

    # ------------------------------------------------------------------
    # User actions

    async def start(self) -> SessionState:
        """Begin a session: acquire the camera if needed, then start ticking."""
        if self.state.is_running:
            self._logger.debug("Start ignored; session already %s", self.state.value)
            return self.state
        check_transition(self.state, SessionState.STARTING)

        self._tasks.reopen()
        self._generation += 1
        generation = self._generation
        self._consecutive_failures = 0
        self._stream_frames = 0
        needs_camera = self._strategy.requires_camera
        self._publish(
            SessionSnapshot(
                state=SessionState.STARTING,
                message="Starting camera..." if needs_camera else "Connecting to attendance service...",
                debug_info="Requesting camera access..." if needs_camera else f"Backend mode: {self._strategy.mode}",
            )
        )
        self._logger.info("Session %d starting (mode=%s)", generation, self._strategy.mode)

        if needs_camera:
            try:
                handle = await self._cameras.acquire(self._constraints)
            except CameraError as exc:
                if not self._is_current(generation):
                    return self.state
                self._logger.error("Camera acquisition failed: %s", exc)
                self._enter_terminal(
                    SessionState.ERROR,
                    message=exc.user_message(),
                    debug_info=f"Error: {exc.name}",
                    last_error=str(exc),
                )
                return self.state
            if not self._is_current(generation):
                # Stopped while the device was opening.
                self._cameras.release(handle)
                return self.state

        self._update(
            state=SessionState.ACTIVE,
            message=self._strategy.active_message,
            debug_info="Camera started successfully" if needs_camera else "Connected",
        )
        self._tasks.create(self._run_loop(generation), name=TICK_TASK)
        if self._strategy.has_push_stream:
            self._tasks.create(self._run_stream(generation), name=STREAM_TASK)
        return self.state

    def stop(self) -> None:
        """User stop: cancel ticking, release the camera, go inactive."""
        if not self.state.is_running:
            return
        self._release_resources()
        self._update(
            state=SessionState.INACTIVE,
            message=IDLE_MESSAGE,
            debug_info="Camera stopped",
        )
        self._logger.info("Session stopped by user")

    def reset(self) -> None:
        """Leave a finished session so a new one can start."""
        if self.state.is_running:
            self.stop()
        elif self.state.is_terminal:
            self._update(state=SessionState.INACTIVE, message=IDLE_MESSAGE, debug_info="")

    async def close(self) -> None:
        """Teardown: stop, release everything and wait for background tasks."""
        self.stop()
        self._release_resources()
        await self._tasks.shutdown()

    async def wait_until_settled(self, timeout: Optional[float] = None) -> SessionState:
        """Wait until the session is no longer starting or active."""
        await asyncio.wait_for(self._settled.wait(), timeout=timeout)
        return self.state

    async def __aenter__(self) -> "AttendanceSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Tick loop

    async def _run_loop(self, generation: int) -> None:
        loop = asyncio.get_running_loop()
        try:
            if self._warmup > 0 and self._strategy.requires_camera:
                await asyncio.sleep(self._warmup)
            while self._is_current(generation):
                started = loop.time()
                await self._drive_tick(generation)
                if not self._is_current(generation):
                    break
                delay = self._retry.delay(self._interval, self._consecutive_failures)
                await asyncio.sleep(max(0.0, delay - (loop.time() - started)))
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._logger.exception("Tick loop crashed: %s", exc)
            if self._is_current(generation):
                self._enter_terminal(
                    SessionState.ERROR,
                    message=f"Unexpected error: {exc}",
                    debug_info=f"Error: {exc.__class__.__name__}",
                    last_error=str(exc),
                )

    async def _drive_tick(self, generation: int) -> None:
        ticks = self._snapshot.ticks + 1
        try:
            outcome = await self._strategy.tick(self.camera)
        except TransportError as exc:
            if not self._is_current(generation):
                self._logger.debug("Discarding failure from a finished session: %s", exc)
                return
            self._consecutive_failures += 1
            self._logger.warning(
                "Tick %d failed (%d in a row): %s",
                ticks,
                self._consecutive_failures,
                exc,
            )
            self._update(
                ticks=ticks,
                transport_failures=self._snapshot.transport_failures + 1,
                last_error=str(exc),
                debug_info=f"{'Upload' if self._strategy.requires_camera else 'Status'} error: {exc}",
            )
            return

        if not self._is_current(generation):
            self._logger.debug("Ignoring response that arrived after the session ended")
            return

        if outcome.skipped:
            self._update(ticks=ticks, debug_info=outcome.skipped)
            return

        self._consecutive_failures = 0
        self._apply_outcome(outcome, ticks)

    def _apply_outcome(self, outcome: TickOutcome, ticks: int) -> None:
        response = outcome.response
        snap = self._snapshot
        changes = {"ticks": ticks}

        if outcome.uploaded:
            changes["frames_sent"] = snap.frames_sent + 1
        if response is None:
            self._update(**changes)
            return
        if response.faces_detected is not None:
            changes["faces_detected"] = response.faces_detected
        if outcome.uploaded:
            changes["debug_info"] = (
                f"Frames sent: {changes['frames_sent']} | Faces: {response.faces_detected or 0}"
            )

        if response.status is None:
            # Payloads without a status carry no verdict.
            self._update(**changes)
            return

        changes["backend_status"] = response.status
        changes["last_error"] = None
        if response.message:
            changes["message"] = response.message
        if not outcome.uploaded:
            changes["debug_info"] = f"Backend status: {response.status}"

        if response.status == SessionState.MARKED.value:
            self._logger.info("Attendance marked: %s", response.message or "(no message)")
            changes.setdefault("message", "Attendance marked!")
            self._enter_terminal(SessionState.MARKED, **changes)
        elif response.status == SessionState.ERROR.value:
            error = BackendError(response.message or "backend reported an error")
            self._logger.error("Backend ended the session: %s", error)
            changes["message"] = response.message or str(error)
            changes["last_error"] = str(error)
            self._enter_terminal(SessionState.ERROR, **changes)
        else:
            self._update(**changes)

    # ------------------------------------------------------------------
    # Push stream

    async def _run_stream(self, generation: int) -> None:
        def on_frame(jpeg: bytes) -> None:
            if not self._is_current(generation):
                return
            self._stream_frames += 1
            for listener in list(self._frame_listeners):
                try:
                    listener(jpeg)
                except Exception:
                    self._logger.exception("Frame listener failed")

        while self._is_current(generation):
            try:
                await self._strategy.stream(on_frame)
                if self._is_current(generation):
                    self._logger.info("Video feed ended; reconnecting in %.1fs", self._stream_retry)
            except TransportError as exc:
                if not self._is_current(generation):
                    return
                self._logger.warning("Video feed failed: %s; retrying in %.1fs", exc, self._stream_retry)
            await asyncio.sleep(self._stream_retry)

    # ------------------------------------------------------------------
    # State plumbing

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._snapshot.state.is_running

    def _release_resources(self) -> None:
        self._generation += 1
        self._tasks.cancel_now(TICK_TASK)
        self._tasks.cancel_now(STREAM_TASK)
        self._cameras.release()

    def _enter_terminal(self, state: SessionState, **changes) -> None:
        check_transition(self.state, state)
        self._release_resources()
        self._update(state=state, **changes)

    def _update(self, **changes) -> None:
        self._publish(self._snapshot.evolve(**changes))

    def _publish(self, snapshot: SessionSnapshot) -> None:
        previous = self._snapshot
        if snapshot.state is not previous.state:
            check_transition(previous.state, snapshot.state)
            self._logger.debug("State %s -> %s", previous.state.value, snapshot.state.value)
        self._snapshot = snapshot
        if snapshot.state.is_running:
            self._settled.clear()
        else:
            self._settled.set()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                self._logger.exception("Session listener failed")


def _subscribe(listeners: list, listener: Callable) -> Callable[[], None]:
    listeners.append(listener)

    def unsubscribe() -> None:
        if listener in listeners:
            listeners.remove(listener)

    return unsubscribe


__all__ = ["AttendanceSession", "RetryPolicy", "STREAM_TASK", "TICK_TASK"]
