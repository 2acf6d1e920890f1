"""Typed configuration for the kiosk.

Values come from three layers, later layers winning: the ``config.txt`` file,
the ``ATTENDANCE_BACKEND_URL`` environment variable, and CLI overrides.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union
from urllib.parse import urlparse

from attendance_kiosk.core.logging_utils import LoggerLike, ensure_structured_logger
from attendance_kiosk.errors import ConfigError

Resolution = Tuple[int, int]

BACKEND_URL_ENV = "ATTENDANCE_BACKEND_URL"

MODE_UPLOAD = "upload"
MODE_POLL = "poll"
MODE_MJPEG = "mjpeg"
MODES = (MODE_UPLOAD, MODE_POLL, MODE_MJPEG)

DEFAULT_BACKEND_URL = "http://localhost:5000"
DEFAULT_TIMEOUT_S = 10.0
DEFAULT_UPLOAD_INTERVAL_MS = 500
DEFAULT_POLL_INTERVAL_MS = 1000
DEFAULT_WARMUP_MS = 1000
DEFAULT_JPEG_QUALITY = 80
DEFAULT_STREAM_RETRY_MS = 2000
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_MAX_BACKOFF_MS = 5000
DEFAULT_CAMERA_DEVICE = "0"
DEFAULT_FACING_MODE = "user"
DEFAULT_RESOLUTION: Resolution = (640, 480)
DEFAULT_LOG_LEVEL = "INFO"
LOG_LEVEL_NAMES = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")

# Typed defaults handed to ConfigLoader so file values are coerced on load.
DEFAULTS: Dict[str, Any] = {
    "backend.url": DEFAULT_BACKEND_URL,
    "backend.api_token": "",
    "backend.verify_tls": True,
    "backend.ca_file": "",
    "backend.timeout_s": DEFAULT_TIMEOUT_S,
    "transport.mode": MODE_UPLOAD,
    "transport.upload_interval_ms": DEFAULT_UPLOAD_INTERVAL_MS,
    "transport.poll_interval_ms": DEFAULT_POLL_INTERVAL_MS,
    "transport.warmup_ms": DEFAULT_WARMUP_MS,
    "transport.jpeg_quality": DEFAULT_JPEG_QUALITY,
    "transport.stream_retry_ms": DEFAULT_STREAM_RETRY_MS,
    "retry.backoff_multiplier": DEFAULT_BACKOFF_MULTIPLIER,
    "retry.max_backoff_ms": DEFAULT_MAX_BACKOFF_MS,
    "camera.device": DEFAULT_CAMERA_DEVICE,
    "camera.facing_mode": DEFAULT_FACING_MODE,
    "camera.resolution": f"{DEFAULT_RESOLUTION[0]}x{DEFAULT_RESOLUTION[1]}",
    "camera.preview": True,
    "ui.headless": False,
    "ui.mirror_preview": True,
    "ui.geometry": "",
    "logging.level": DEFAULT_LOG_LEVEL,
    "logging.file": "",
}


@dataclass(slots=True)
class BackendSettings:
    url: str
    api_token: Optional[str]
    verify_tls: bool
    ca_file: Optional[Path]
    timeout_s: float


@dataclass(slots=True)
class TransportSettings:
    mode: str
    upload_interval_ms: int
    poll_interval_ms: int
    warmup_ms: int
    jpeg_quality: int
    stream_retry_ms: int

    @property
    def interval_s(self) -> float:
        """Tick interval for the configured mode, in seconds."""
        if self.mode == MODE_UPLOAD:
            return self.upload_interval_ms / 1000.0
        return self.poll_interval_ms / 1000.0


@dataclass(slots=True)
class RetrySettings:
    backoff_multiplier: float
    max_backoff_ms: int


@dataclass(slots=True)
class CameraSettings:
    device: Union[int, str]
    facing_mode: str
    resolution: Resolution
    preview: bool


@dataclass(slots=True)
class UISettings:
    headless: bool
    mirror_preview: bool
    geometry: Optional[str]


@dataclass(slots=True)
class LoggingSettings:
    level: str
    file: Optional[Path]


@dataclass(slots=True)
class KioskConfig:
    backend: BackendSettings
    transport: TransportSettings
    retry: RetrySettings
    camera: CameraSettings
    ui: UISettings
    logging: LoggingSettings


# ---------------------------------------------------------------------------
# Public API


def load_config(
    raw: Mapping[str, Any],
    overrides: Optional[Mapping[str, Any]] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    logger: LoggerLike = None,
) -> KioskConfig:
    """Build a validated :class:`KioskConfig` from parsed file values.

    ``overrides`` uses the same dotted keys as the file; ``None`` values are
    ignored so argparse namespaces can be passed through unfiltered.
    Raises :class:`ConfigError` for values that cannot work.
    """

    log = ensure_structured_logger(logger, fallback_name=__name__)
    merged: Dict[str, Any] = dict(DEFAULTS)
    merged.update(raw)

    env = os.environ if environ is None else environ
    env_url = (env.get(BACKEND_URL_ENV) or "").strip()
    if env_url:
        merged["backend.url"] = env_url

    if overrides:
        for key, value in overrides.items():
            if value is not None:
                merged[key] = value

    backend = BackendSettings(
        url=_validate_url(_coerce_str(merged, "backend.url", DEFAULT_BACKEND_URL)),
        api_token=_coerce_optional_str(merged, "backend.api_token"),
        verify_tls=_coerce_bool(merged, "backend.verify_tls", True),
        ca_file=_coerce_optional_path(merged, "backend.ca_file"),
        timeout_s=_coerce_positive(merged, "backend.timeout_s", DEFAULT_TIMEOUT_S, float),
    )

    mode = _coerce_str(merged, "transport.mode", MODE_UPLOAD).lower()
    if mode not in MODES:
        raise ConfigError(f"transport.mode must be one of {', '.join(MODES)}; got {mode!r}")

    jpeg_quality = _coerce_int(merged, "transport.jpeg_quality", DEFAULT_JPEG_QUALITY)
    if not 1 <= jpeg_quality <= 100:
        raise ConfigError(f"transport.jpeg_quality must be within 1..100; got {jpeg_quality}")

    transport = TransportSettings(
        mode=mode,
        upload_interval_ms=_coerce_positive(merged, "transport.upload_interval_ms", DEFAULT_UPLOAD_INTERVAL_MS, int),
        poll_interval_ms=_coerce_positive(merged, "transport.poll_interval_ms", DEFAULT_POLL_INTERVAL_MS, int),
        warmup_ms=max(0, _coerce_int(merged, "transport.warmup_ms", DEFAULT_WARMUP_MS)),
        jpeg_quality=jpeg_quality,
        stream_retry_ms=_coerce_positive(merged, "transport.stream_retry_ms", DEFAULT_STREAM_RETRY_MS, int),
    )

    multiplier = _coerce_float(merged, "retry.backoff_multiplier", DEFAULT_BACKOFF_MULTIPLIER)
    if multiplier < 1.0:
        raise ConfigError(f"retry.backoff_multiplier must be >= 1.0; got {multiplier}")
    retry = RetrySettings(
        backoff_multiplier=multiplier,
        max_backoff_ms=max(0, _coerce_int(merged, "retry.max_backoff_ms", DEFAULT_MAX_BACKOFF_MS)),
    )

    camera = CameraSettings(
        device=_coerce_device(merged.get("camera.device", DEFAULT_CAMERA_DEVICE)),
        facing_mode=_coerce_str(merged, "camera.facing_mode", DEFAULT_FACING_MODE).lower(),
        resolution=_coerce_resolution(merged, "camera.resolution", DEFAULT_RESOLUTION, logger=log),
        preview=_coerce_bool(merged, "camera.preview", True),
    )

    ui = UISettings(
        headless=_coerce_bool(merged, "ui.headless", False),
        mirror_preview=_coerce_bool(merged, "ui.mirror_preview", True),
        geometry=_coerce_optional_str(merged, "ui.geometry"),
    )

    level = _coerce_str(merged, "logging.level", DEFAULT_LOG_LEVEL).upper()
    if level not in LOG_LEVEL_NAMES:
        raise ConfigError(f"logging.level must be one of {', '.join(LOG_LEVEL_NAMES)}; got {level!r}")
    logging_settings = LoggingSettings(
        level=level,
        file=_coerce_optional_path(merged, "logging.file"),
    )

    config = KioskConfig(
        backend=backend,
        transport=transport,
        retry=retry,
        camera=camera,
        ui=ui,
        logging=logging_settings,
    )
    _warn_insecure(config, log)
    return config


def as_dict(config: KioskConfig) -> Dict[str, Any]:
    """Return a nested dict representation with the API token redacted."""

    backend = asdict(config.backend)
    backend["api_token"] = "***" if config.backend.api_token else None
    backend["ca_file"] = str(config.backend.ca_file) if config.backend.ca_file else None
    return {
        "backend": backend,
        "transport": asdict(config.transport),
        "retry": asdict(config.retry),
        "camera": asdict(config.camera),
        "ui": asdict(config.ui),
        "logging": {
            "level": config.logging.level,
            "file": str(config.logging.file) if config.logging.file else None,
        },
    }


# ---------------------------------------------------------------------------
# Internal helpers


def _warn_insecure(config: KioskConfig, log) -> None:
    parsed = urlparse(config.backend.url)
    if parsed.scheme == "http" and parsed.hostname not in ("localhost", "127.0.0.1", "::1"):
        log.warning("Backend %s uses plain HTTP; frames will travel unencrypted", config.backend.url)
    if parsed.scheme == "https" and not config.backend.verify_tls:
        log.warning("TLS verification disabled for %s", config.backend.url)


def _validate_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"backend.url must be an http(s) URL; got {url!r}")
    return url.rstrip("/")


def _coerce_bool(data: Mapping[str, Any], key: str, default: bool) -> bool:
    raw = data.get(key)
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    return str(raw).strip().lower() in {"1", "true", "yes", "on"}


def _coerce_str(data: Mapping[str, Any], key: str, default: str) -> str:
    raw = data.get(key)
    if raw is None:
        return default
    text = str(raw).strip()
    return text or default


def _coerce_optional_str(data: Mapping[str, Any], key: str) -> Optional[str]:
    raw = data.get(key)
    if raw is None:
        return None
    text = str(raw).strip()
    return text or None


def _coerce_optional_path(data: Mapping[str, Any], key: str) -> Optional[Path]:
    text = _coerce_optional_str(data, key)
    return Path(text).expanduser() if text else None


def _coerce_int(data: Mapping[str, Any], key: str, default: int) -> int:
    raw = data.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be an integer; got {raw!r}") from None


def _coerce_float(data: Mapping[str, Any], key: str, default: float) -> float:
    raw = data.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number; got {raw!r}") from None


def _coerce_positive(data: Mapping[str, Any], key: str, default, kind):
    value = _coerce_float(data, key, default) if kind is float else _coerce_int(data, key, default)
    if value <= 0:
        raise ConfigError(f"{key} must be positive; got {value}")
    return value


def _coerce_device(raw: Any) -> Union[int, str]:
    if isinstance(raw, bool):
        raise ConfigError(f"camera.device must be an index or a path; got {raw!r}")
    if isinstance(raw, int):
        return raw
    text = str(raw).strip()
    if text.isdigit():
        return int(text)
    if not text:
        return 0
    return text


def _coerce_resolution(data: Mapping[str, Any], key: str, default: Resolution, *, logger) -> Resolution:
    raw = data.get(key)
    if raw is None or raw == "":
        return default
    try:
        return _parse_resolution(raw)
    except ValueError:
        logger.warning("Failed to parse resolution from %r, using default %s", raw, default)
        return default


def _parse_resolution(raw: Any) -> Resolution:
    if isinstance(raw, (list, tuple)) and len(raw) == 2:
        return int(raw[0]), int(raw[1])
    if isinstance(raw, str):
        text = raw.lower()
        for sep in ("x", ","):
            if sep in text:
                width, height = text.split(sep, 1)
                return int(width.strip()), int(height.strip())
    raise ValueError(f"Unsupported resolution value: {raw!r}")


__all__ = [
    "BACKEND_URL_ENV",
    "BackendSettings",
    "CameraSettings",
    "DEFAULTS",
    "KioskConfig",
    "LoggingSettings",
    "MODES",
    "MODE_MJPEG",
    "MODE_POLL",
    "MODE_UPLOAD",
    "RetrySettings",
    "TransportSettings",
    "UISettings",
    "as_dict",
    "load_config",
]
