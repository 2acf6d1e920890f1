"""Async HTTP client for the attendance backend."""

from __future__ import annotations

import asyncio
import json
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Mapping, Optional

import aiohttp

from attendance_kiosk.config import BackendSettings
from attendance_kiosk.core.logging_utils import LoggerLike, ensure_structured_logger
from attendance_kiosk.errors import TransportError

from .mjpeg import iter_mjpeg_parts

PROCESS_FRAME_PATH = "/process_frame"
STATUS_PATH = "/status"
VIDEO_FEED_PATH = "/video_feed"


@dataclass(frozen=True, slots=True)
class StatusResponse:
    """Backend verdict for one request."""

    status: Optional[str]
    message: str = ""
    faces_detected: Optional[int] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "StatusResponse":
        raw_status = payload.get("status")
        status = str(raw_status).strip().lower() if raw_status not in (None, "") else None

        message = payload.get("message")
        faces = payload.get("faces_detected", payload.get("faceCount"))
        try:
            faces_detected = int(faces) if faces is not None else None
        except (TypeError, ValueError):
            faces_detected = None

        return cls(
            status=status,
            message="" if message is None else str(message),
            faces_detected=faces_detected,
        )


class BackendClient:
    """Thin wrapper over an aiohttp session bound to one backend base URL.

    Every failure (connection error, timeout, non-2xx status, body that is
    not a JSON object) surfaces as :class:`TransportError`.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_token: Optional[str] = None,
        verify_tls: bool = True,
        ca_file: Optional[Path] = None,
        timeout_s: float = 10.0,
        session: Optional[aiohttp.ClientSession] = None,
        logger: LoggerLike = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._verify_tls = verify_tls
        self._ca_file = ca_file
        self._timeout_s = timeout_s
        self._session = session
        self._owns_session = session is None
        self._logger = ensure_structured_logger(logger, fallback_name=__name__)

    @classmethod
    def from_settings(cls, settings: BackendSettings, *, logger: LoggerLike = None) -> "BackendClient":
        return cls(
            settings.url,
            api_token=settings.api_token,
            verify_tls=settings.verify_tls,
            ca_file=settings.ca_file,
            timeout_s=settings.timeout_s,
            logger=logger,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> "BackendClient":
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        session = self._session
        if session is not None and self._owns_session:
            self._session = None
            await session.close()

    # ------------------------------------------------------------------
    # Endpoints

    async def process_frame(self, jpeg: bytes) -> StatusResponse:
        """POST one JPEG frame as the multipart field ``frame``."""
        form = aiohttp.FormData()
        form.add_field("frame", jpeg, filename="frame.jpg", content_type="image/jpeg")
        payload = await self._request_json("POST", PROCESS_FRAME_PATH, data=form)
        return StatusResponse.from_payload(payload)

    async def fetch_status(self) -> StatusResponse:
        payload = await self._request_json("GET", STATUS_PATH)
        return StatusResponse.from_payload(payload)

    async def video_feed(self) -> AsyncIterator[bytes]:
        """Yield JPEG frames from the server-pushed stream until it ends."""
        session = self._ensure_session()
        url = self._url(VIDEO_FEED_PATH)
        timeout = aiohttp.ClientTimeout(total=None, sock_connect=self._timeout_s, sock_read=self._timeout_s)
        try:
            async with session.get(url, timeout=timeout) as response:
                self._raise_for_status(response, VIDEO_FEED_PATH)
                self._logger.info("Video feed connected: %s", url)
                async for frame in iter_mjpeg_parts(response):
                    yield frame
        except asyncio.TimeoutError as exc:
            raise TransportError(f"{VIDEO_FEED_PATH}: no data for {self._timeout_s:.0f}s") from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"{VIDEO_FEED_PATH}: {_describe(exc)}") from exc

    # ------------------------------------------------------------------
    # Internal helpers

    def _url(self, path: str) -> str:
        return f"{self._base_url}{path}"

    def _headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            connector_kwargs: Dict[str, Any] = {}
            if not self._verify_tls:
                connector_kwargs["ssl"] = False
            elif self._ca_file is not None:
                connector_kwargs["ssl"] = ssl.create_default_context(cafile=str(self._ca_file))
            self._session = aiohttp.ClientSession(
                headers=self._headers(),
                connector=aiohttp.TCPConnector(**connector_kwargs),
            )
            self._owns_session = True
        return self._session

    @staticmethod
    def _raise_for_status(response: aiohttp.ClientResponse, path: str) -> None:
        if not 200 <= response.status < 300:
            raise TransportError(f"{path}: HTTP {response.status}", status=response.status)

    async def _request_json(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        session = self._ensure_session()
        timeout = aiohttp.ClientTimeout(total=self._timeout_s)
        try:
            async with session.request(
                method,
                self._url(path),
                timeout=timeout,
                headers={"Accept": "application/json"},
                **kwargs,
            ) as response:
                self._raise_for_status(response, path)
                try:
                    payload = await response.json(content_type=None)
                except (json.JSONDecodeError, UnicodeDecodeError) as exc:
                    raise TransportError(f"{path}: invalid JSON body ({exc})") from exc
        except asyncio.TimeoutError as exc:
            raise TransportError(f"{path}: timed out after {self._timeout_s:.1f}s") from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"{path}: {_describe(exc)}") from exc

        if not isinstance(payload, dict):
            raise TransportError(f"{path}: expected a JSON object, got {type(payload).__name__}")
        return payload


def _describe(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


__all__ = [
    "BackendClient",
    "PROCESS_FRAME_PATH",
    "STATUS_PATH",
    "StatusResponse",
    "VIDEO_FEED_PATH",
]
