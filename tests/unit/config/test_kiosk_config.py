"""Unit tests for typed kiosk configuration."""

import logging
from pathlib import Path

import pytest

from attendance_kiosk.config import (
    BACKEND_URL_ENV,
    DEFAULTS,
    MODE_MJPEG,
    MODE_POLL,
    MODE_UPLOAD,
    as_dict,
    load_config,
)
from attendance_kiosk.core.config_loader import ConfigLoader
from attendance_kiosk.core.paths import DEFAULT_CONFIG_PATH
from attendance_kiosk.errors import ConfigError


class TestDefaults:

    def test_defaults_match_documented_values(self):
        config = load_config({}, environ={})

        assert config.backend.url == "http://localhost:5000"
        assert config.backend.api_token is None
        assert config.backend.verify_tls is True
        assert config.transport.mode == MODE_UPLOAD
        assert config.transport.upload_interval_ms == 500
        assert config.transport.poll_interval_ms == 1000
        assert config.transport.warmup_ms == 1000
        assert config.transport.jpeg_quality == 80
        assert config.retry.backoff_multiplier == pytest.approx(2.0)
        assert config.retry.max_backoff_ms == 5000
        assert config.camera.device == 0
        assert config.camera.facing_mode == "user"
        assert config.camera.resolution == (640, 480)

    def test_bundled_config_file_loads(self):
        raw = ConfigLoader.load(DEFAULT_CONFIG_PATH, DEFAULTS)

        config = load_config(raw, environ={})

        assert config.transport.mode == MODE_UPLOAD
        assert config.logging.level == "INFO"
        assert config.logging.file is None
        assert config.ui.geometry is None

    def test_interval_follows_mode(self):
        upload = load_config({"transport.mode": "upload"}, environ={})
        poll = load_config({"transport.mode": "POLL"}, environ={})
        mjpeg = load_config({"transport.mode": "mjpeg"}, environ={})

        assert upload.transport.interval_s == pytest.approx(0.5)
        assert poll.transport.mode == MODE_POLL
        assert poll.transport.interval_s == pytest.approx(1.0)
        assert mjpeg.transport.mode == MODE_MJPEG
        assert mjpeg.transport.interval_s == pytest.approx(1.0)


class TestLayering:

    def test_environment_overrides_file(self):
        raw = {"backend.url": "http://file-host:5000"}

        config = load_config(raw, environ={BACKEND_URL_ENV: "https://env-host"})

        assert config.backend.url == "https://env-host"

    def test_cli_overrides_environment(self):
        config = load_config(
            {},
            {"backend.url": "https://cli-host/", "transport.mode": None},
            environ={BACKEND_URL_ENV: "https://env-host"},
        )

        assert config.backend.url == "https://cli-host"
        assert config.transport.mode == MODE_UPLOAD

    def test_blank_environment_is_ignored(self):
        config = load_config({"backend.url": "http://localhost:8000"}, environ={BACKEND_URL_ENV: "  "})

        assert config.backend.url == "http://localhost:8000"

    def test_process_environment_used_by_default(self, monkeypatch):
        monkeypatch.setenv(BACKEND_URL_ENV, "https://from-process-env")

        assert load_config({}).backend.url == "https://from-process-env"


class TestCoercion:

    def test_device_path_and_resolution(self):
        config = load_config(
            {"camera.device": "/dev/video2", "camera.resolution": "1280x720", "camera.facing_mode": "Environment"},
            environ={},
        )

        assert config.camera.device == "/dev/video2"
        assert config.camera.resolution == (1280, 720)
        assert config.camera.facing_mode == "environment"

    def test_bad_resolution_falls_back_with_warning(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = load_config({"camera.resolution": "huge"}, environ={})

        assert config.camera.resolution == (640, 480)
        assert "resolution" in caplog.text

    def test_paths_and_token(self, tmp_path):
        config = load_config(
            {"backend.api_token": " secret ", "backend.ca_file": str(tmp_path / "ca.pem"), "logging.file": "~/kiosk.log"},
            environ={},
        )

        assert config.backend.api_token == "secret"
        assert config.backend.ca_file == tmp_path / "ca.pem"
        assert config.logging.file == Path("~/kiosk.log").expanduser()

    def test_as_dict_redacts_token(self):
        config = load_config({"backend.api_token": "secret"}, environ={})

        data = as_dict(config)

        assert data["backend"]["api_token"] == "***"
        assert "secret" not in repr(data)


class TestValidation:

    @pytest.mark.parametrize(
        "raw",
        [
            {"backend.url": "ftp://host"},
            {"backend.url": "localhost:5000"},
            {"transport.mode": "carrier-pigeon"},
            {"transport.jpeg_quality": 0},
            {"transport.jpeg_quality": 101},
            {"transport.upload_interval_ms": 0},
            {"transport.poll_interval_ms": "soon"},
            {"retry.backoff_multiplier": 0.5},
            {"logging.level": "chatty"},
        ],
    )
    def test_invalid_values_raise_config_error(self, raw):
        with pytest.raises(ConfigError):
            load_config(raw, environ={})

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            load_config({"transport.mode": "nope"}, environ={})


class TestSecurityWarnings:

    def test_plain_http_to_remote_host_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            load_config({"backend.url": "http://10.1.2.3:5000"}, environ={})

        assert "plain HTTP" in caplog.text

    def test_localhost_http_does_not_warn(self, caplog):
        with caplog.at_level(logging.WARNING):
            load_config({"backend.url": "http://localhost:5000"}, environ={})

        assert "plain HTTP" not in caplog.text

    def test_disabled_tls_verification_warns(self, caplog):
        with caplog.at_level(logging.WARNING):
            config = load_config({"backend.url": "https://kiosk.example.org", "backend.verify_tls": False}, environ={})

        assert config.backend.verify_tls is False
        assert "TLS verification disabled" in caplog.text
