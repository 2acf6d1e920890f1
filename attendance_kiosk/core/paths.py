"""Centralized path constants for the kiosk."""

from __future__ import annotations

from pathlib import Path

PACKAGE_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_CONFIG_PATH = PACKAGE_ROOT / "config.txt"


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "PACKAGE_ROOT",
]
