from __future__ import annotations

import logging
from typing import Any

from ..config.settings import TrackerSettings
from .base import CaptureBackend
from .platform_camera import PlatformCameraCapture
from .serial_camera import SerialCameraCapture
from .uvc_camera import UvcCameraCapture

logger = logging.getLogger(__name__)

# First match wins when no preference is given.
BACKENDS: tuple[type[CaptureBackend], ...] = (
    UvcCameraCapture,
    SerialCameraCapture,
    PlatformCameraCapture,
)

_ALIASES = {
    "uvc": "uvc",
    "libuvc": "uvc",
    "usb": "uvc",
    "serial": "serial",
    "serialcamera": "serial",
    "opencv": "opencv",
    "platform": "opencv",
}


def backend_by_name(name: str | None) -> type[CaptureBackend] | None:
    if not name:
        return None
    key = _ALIASES.get(name.strip().lower().replace(" ", "").replace("_", ""))
    for backend in BACKENDS:
        if backend.name == key:
            return backend
    return None


def candidates(address: str, preferred: str | None = None) -> list[type[CaptureBackend]]:
    """Backends able to open ``address``, preferred kind first."""
    if not address or not address.strip():
        return []
    matching = [backend for backend in BACKENDS if backend.can_connect(address)]
    preferred_backend = backend_by_name(preferred)
    if preferred_backend in matching:
        matching.remove(preferred_backend)
        matching.insert(0, preferred_backend)
    return matching


def backend_options(backend: type[CaptureBackend], settings: TrackerSettings | None) -> dict[str, Any]:
    if settings is None:
        return {}
    if backend is SerialCameraCapture:
        return {"baud_rate": settings.serial_baud_rate, "read_timeout": settings.serial_read_timeout}
    if backend is PlatformCameraCapture:
        return {"open_timeout": settings.camera_open_timeout}
    return {}


def create_and_start(
    address: str,
    preferred: str | None = None,
    settings: TrackerSettings | None = None,
) -> CaptureBackend | None:
    """Start the first candidate backend that accepts ``address``; ``None`` if none does."""
    options = candidates(address, preferred)
    if not options:
        logger.warning(
            "No capture backend accepts address",
            extra={"event": "no_backend", "address": address, "preferred": preferred},
        )
        return None

    for backend_type in options:
        backend = backend_type(address, **backend_options(backend_type, settings))
        if backend.start_capture():
            return backend
        backend.dispose()
        logger.info(
            "Capture backend could not start, trying next",
            extra={"event": "backend_fallback", "backend": backend_type.name, "address": address},
        )

    logger.error(
        "Unable to start any capture backend",
        extra={"event": "capture_unavailable", "address": address, "tried": [b.name for b in options]},
    )
    return None
