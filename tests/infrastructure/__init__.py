"""Test infrastructure - fakes and helpers.

This package contains test support code, NOT actual tests.
"""

from pathlib import Path

INFRASTRUCTURE_DIR = Path(__file__).parent
KIOSK_FAKES_DIR = INFRASTRUCTURE_DIR / "kiosk"
