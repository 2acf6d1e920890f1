"""Attendance kiosk: camera client for a face-recognition attendance backend."""

from __future__ import annotations

import asyncio
from importlib import metadata
from typing import Optional, Sequence

from .app.main import main

try:
    __version__ = metadata.version("attendance-kiosk")
except metadata.PackageNotFoundError:  # pragma: no cover - local dev
    __version__ = "0.0.0"


def run(argv: Optional[Sequence[str]] = None) -> int:
    """Convenience wrapper that runs the async entry point and returns its exit code."""
    try:
        return asyncio.run(main(list(argv) if argv is not None else None))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130


__all__ = ["__version__", "main", "run"]
