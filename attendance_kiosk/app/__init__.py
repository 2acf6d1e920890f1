"""Application entry points."""

from .main import cli, main, run_headless

__all__ = ["cli", "main", "run_headless"]
