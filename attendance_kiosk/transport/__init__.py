"""HTTP transport to the attendance backend."""

from .client import BackendClient, StatusResponse
from .mjpeg import iter_mjpeg_parts

__all__ = ["BackendClient", "StatusResponse", "iter_mjpeg_parts"]
