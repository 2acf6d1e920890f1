from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from attendance_kiosk.config import MODES


LOG_LEVELS: dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="attendance-kiosk",
        description="Attendance kiosk - camera client for the face-recognition attendance service",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Configuration file (key = value lines; default: bundled config.txt)",
    )
    parser.add_argument(
        "--backend-url",
        dest="backend_url",
        type=str,
        default=None,
        help="Base URL of the attendance backend (overrides ATTENDANCE_BACKEND_URL)",
    )
    parser.add_argument(
        "--mode",
        choices=MODES,
        default=None,
        help="Transport mode: upload frames, poll status, or show the server's MJPEG stream",
    )
    parser.add_argument(
        "--api-token",
        dest="api_token",
        type=str,
        default=None,
        help="Bearer token sent with every backend request",
    )
    parser.add_argument(
        "--headless",
        action="store_true",
        default=None,
        help="Run without a window: start one session immediately and log progress",
    )
    parser.add_argument(
        "--log-level",
        choices=sorted(LOG_LEVELS.keys()),
        default=None,
        help="Logging verbosity (default: from config, else info)",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Optional path to write logs to (rotated)",
    )
    return parser


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def args_to_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Map CLI flags to dotted config keys; unset flags map to None."""
    return {
        "backend.url": args.backend_url,
        "backend.api_token": args.api_token,
        "transport.mode": args.mode,
        "ui.headless": args.headless,
        "logging.level": args.log_level,
        "logging.file": args.log_file,
    }


def install_exception_handlers(
    logger: logging.Logger,
    loop: Optional[asyncio.AbstractEventLoop] = None
) -> None:
    def handle_exception(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logger.critical(
            "Uncaught exception",
            exc_info=(exc_type, exc_value, exc_traceback)
        )

    sys.excepthook = handle_exception

    if loop is not None:
        def handle_asyncio_exception(loop, context):
            exception = context.get('exception')
            message = context.get('message', 'Unhandled asyncio exception')
            if exception:
                logger.error("Asyncio exception: %s", message, exc_info=exception)
            else:
                logger.error("Asyncio error: %s, context: %s", message, context)

        loop.set_exception_handler(handle_asyncio_exception)


def install_signal_handlers(loop: asyncio.AbstractEventLoop, on_signal: Callable[[], None]) -> None:
    """Route SIGINT/SIGTERM to ``on_signal``."""

    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, on_signal)


def log_startup(logger: Any, config_dict: Dict[str, Any], config_path: Path) -> None:
    logger.info("=" * 60)
    logger.info("Attendance Kiosk Starting")
    logger.info("=" * 60)
    logger.info("Config file: %s", config_path)
    for section, values in config_dict.items():
        logger.info("%s: %s", section.title(), values)
    logger.info("=" * 60)


def log_shutdown(logger: Any) -> None:
    logger.info("=" * 60)
    logger.info("Attendance Kiosk Stopped")
    logger.info("=" * 60)
