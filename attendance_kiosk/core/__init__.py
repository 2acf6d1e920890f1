"""Core infrastructure shared across the kiosk: logging, config files, tasks."""

from .config_loader import ConfigLoader
from .logging_config import configure_logging
from .logging_utils import LoggerLike, StructuredLogger, ensure_structured_logger, get_module_logger
from .task_manager import AsyncTaskManager

__all__ = [
    "AsyncTaskManager",
    "ConfigLoader",
    "LoggerLike",
    "StructuredLogger",
    "configure_logging",
    "ensure_structured_logger",
    "get_module_logger",
]
