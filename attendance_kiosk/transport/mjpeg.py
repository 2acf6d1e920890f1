"""Reader for multipart/x-mixed-replace (MJPEG) HTTP responses."""

from __future__ import annotations

from typing import AsyncIterator

import aiohttp
from aiohttp import hdrs

from attendance_kiosk.errors import TransportError


async def iter_mjpeg_parts(response: aiohttp.ClientResponse) -> AsyncIterator[bytes]:
    """Yield the body of every part of an MJPEG response as JPEG bytes.

    The iterator ends when the server sends the closing boundary or closes
    the connection. A response that is not multipart, or whose parts do not
    follow the announced boundary, raises TransportError.
    """
    content_type = response.headers.get(hdrs.CONTENT_TYPE, "")
    if not content_type.lower().startswith("multipart/") or "boundary=" not in content_type:
        raise TransportError(f"expected a multipart stream, got {content_type or 'no content type'!r}")

    reader = aiohttp.MultipartReader(response.headers, response.content)
    try:
        while True:
            part = await reader.next()
            if part is None:
                return
            if isinstance(part, aiohttp.MultipartReader):
                # Nested multipart bodies carry no frames we can show.
                await part.release()
                continue
            payload = await part.read()
            if payload:
                yield bytes(payload)
    except ValueError as exc:
        raise TransportError(f"malformed MJPEG stream: {exc}") from exc


__all__ = ["iter_mjpeg_parts"]
