"""Kiosk entry point: load config, wire the session, run a view."""

from __future__ import annotations

import asyncio
from typing import Optional

from attendance_kiosk.camera.manager import CameraManager
from attendance_kiosk.cli.common import (
    args_to_overrides,
    install_exception_handlers,
    install_signal_handlers,
    log_shutdown,
    log_startup,
    parse_args,
)
from attendance_kiosk.config import DEFAULTS, KioskConfig, as_dict, load_config
from attendance_kiosk.core.config_loader import ConfigLoader
from attendance_kiosk.core.logging_config import configure_logging
from attendance_kiosk.core.logging_utils import get_module_logger
from attendance_kiosk.core.paths import DEFAULT_CONFIG_PATH
from attendance_kiosk.errors import ConfigError
from attendance_kiosk.session.controller import AttendanceSession
from attendance_kiosk.session.state import SessionState
from attendance_kiosk.session.strategies import build_strategy
from attendance_kiosk.transport.client import BackendClient
from attendance_kiosk.ui.console_view import ConsoleView

logger = get_module_logger("KioskMain")

EXIT_OK = 0
EXIT_SESSION_ERROR = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130


async def run_headless(session: AttendanceSession, stop_event: asyncio.Event) -> int:
    """Run a single session without a window and map its outcome to an exit code."""
    view = ConsoleView(session, has_camera=session.strategy.requires_camera, logger=logger.getChild("Console"))
    view.attach()
    try:
        await session.start()
        settled = asyncio.create_task(session.wait_until_settled(), name="wait_settled")
        stopped = asyncio.create_task(stop_event.wait(), name="wait_stop")
        done, pending = await asyncio.wait({settled, stopped}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        if stopped in done:
            logger.info("Stop requested; ending session")
            session.stop()
            return EXIT_INTERRUPTED
    finally:
        view.detach()

    state = session.state
    if state is SessionState.MARKED:
        return EXIT_OK
    if state is SessionState.ERROR:
        return EXIT_SESSION_ERROR
    return EXIT_OK


async def run_window(session: AttendanceSession, config: KioskConfig) -> int:
    from attendance_kiosk.ui.tk_view import KioskWindow

    window = KioskWindow(
        session,
        config.ui,
        has_camera=session.strategy.requires_camera,
        logger=logger.getChild("Window"),
    )
    window.attach()
    install_signal_handlers(asyncio.get_running_loop(), window.request_close)
    try:
        await window.run()
    finally:
        session.stop()
        window.destroy()
    return EXIT_OK


def _window_supported() -> bool:
    try:
        from attendance_kiosk.ui.tk_view import tk_available
    except ImportError as exc:
        logger.warning("Tk view unavailable: %s", exc)
        return False
    return tk_available()


async def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level or "info", force=True, log_file=args.log_file)

    config_path = args.config or DEFAULT_CONFIG_PATH
    raw = await ConfigLoader.load_async(config_path, defaults=DEFAULTS)
    try:
        config = load_config(raw, args_to_overrides(args), logger=logger)
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return EXIT_CONFIG_ERROR

    configure_logging(config.logging.level, force=True, log_file=config.logging.file)
    loop = asyncio.get_running_loop()
    install_exception_handlers(logger.logger, loop)
    log_startup(logger, as_dict(config), config_path)

    cameras = CameraManager(logger=logger.getChild("Camera"))
    headless = config.ui.headless or not _window_supported()
    try:
        async with BackendClient.from_settings(config.backend, logger=logger.getChild("Backend")) as client:
            strategy = build_strategy(config, client)
            async with AttendanceSession.from_config(
                config, strategy, cameras, logger=logger.getChild("Session")
            ) as session:
                if headless:
                    stop_event = asyncio.Event()
                    install_signal_handlers(loop, stop_event.set)
                    return await run_headless(session, stop_event)
                return await run_window(session, config)
    finally:
        cameras.release()
        log_shutdown(logger)


def cli(argv: Optional[list[str]] = None) -> int:
    try:
        return asyncio.run(main(argv))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    raise SystemExit(cli())
