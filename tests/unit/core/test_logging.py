"""Unit tests for the structured logger and logging configuration."""

import logging

import pytest

from attendance_kiosk.core.logging_config import coerce_level, configure_logging
from attendance_kiosk.core.logging_utils import (
    StructuredLogger,
    ensure_structured_logger,
    get_module_logger,
)


class TestStructuredLogger:

    def test_module_logger_uses_namespace_and_component(self):
        log = get_module_logger("attendance_kiosk.session.controller")

        assert log.name == "attendance_kiosk.session.controller"
        assert log.component == "controller"

    def test_bare_name_is_namespaced(self):
        log = get_module_logger("KioskMain")

        assert log.name == "attendance_kiosk.KioskMain"
        assert log.component == "KioskMain"

    def test_messages_are_prefixed(self, caplog):
        log = get_module_logger("Camera")

        with caplog.at_level(logging.INFO, logger="attendance_kiosk"):
            log.info("opened %s", "/dev/video0")

        assert "[Camera] opened /dev/video0" in caplog.messages

    def test_bad_format_args_do_not_raise(self, caplog):
        log = get_module_logger("Camera")

        with caplog.at_level(logging.INFO, logger="attendance_kiosk"):
            log.info("value %d", "not-a-number")

        assert "args=not-a-number" in caplog.text

    def test_child_component(self):
        child = get_module_logger("KioskMain").getChild("Session")

        assert child.component == "KioskMain.Session"
        assert child.name == "attendance_kiosk.KioskMain.Session"

    def test_ensure_structured_logger_wraps_plain_logger(self):
        plain = logging.getLogger("attendance_kiosk.tests")

        wrapped = ensure_structured_logger(plain, component="Tests")

        assert isinstance(wrapped, StructuredLogger)
        assert wrapped.logger is plain
        assert wrapped.component == "Tests"
        assert ensure_structured_logger(wrapped) is wrapped

    def test_ensure_structured_logger_fallback(self):
        assert ensure_structured_logger(None, fallback_name="Fallback").component == "Fallback"


class TestConfigureLogging:

    def test_coerce_level(self):
        assert coerce_level("debug") == logging.DEBUG
        assert coerce_level(logging.WARNING) == logging.WARNING
        with pytest.raises(ValueError):
            coerce_level("chatty")

    def test_file_handler_and_suppressed_loggers(self, tmp_path):
        root = logging.getLogger()
        saved_handlers = list(root.handlers)
        saved_level = root.level
        log_file = tmp_path / "logs" / "kiosk.log"
        try:
            configure_logging("debug", force=True, console=False, log_file=log_file)
            get_module_logger("Tests").info("hello file")
            for handler in root.handlers:
                handler.flush()

            assert log_file.exists()
            assert "[Tests] hello file" in log_file.read_text()
            assert logging.getLogger("aiohttp.access").level == logging.WARNING
        finally:
            for handler in list(root.handlers):
                root.removeHandler(handler)
                handler.close()
            for handler in saved_handlers:
                root.addHandler(handler)
            root.setLevel(saved_level)
