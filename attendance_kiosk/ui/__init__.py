"""Kiosk rendering: the panel model and its console and Tk views.

``tk_view`` is imported on demand so headless hosts without Tk can still
use the panel model and the console view.
"""

from .console_view import ConsoleView
from .panel import PanelModel, build_panel

__all__ = ["ConsoleView", "PanelModel", "build_panel"]
