from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from ..exceptions import CaptureOpenError, DeviceNotFoundError, StreamFaultError
from ..utils.types import CaptureState
from .base import ThreadedCaptureBackend

try:
    import uvc
except ImportError:  # pragma: no cover - handled at runtime.
    uvc = None

USB_PREFIX = "USB:"
FRAME_TIMEOUT = 0.5
PREFERRED_FORMAT = "MJPEG"


@dataclass(frozen=True)
class StreamControl:
    format_name: str
    width: int
    height: int
    fps: int


def stream_control_from_mode(mode: Any) -> StreamControl:
    # pyuvc exposes CameraMode namedtuples; older releases used (w, h, fps) tuples.
    width = int(getattr(mode, "width", mode[0]))
    height = int(getattr(mode, "height", mode[1]))
    fps = int(getattr(mode, "fps", mode[2]))
    format_name = str(getattr(mode, "format_name", PREFERRED_FORMAT)).upper()
    return StreamControl(format_name=format_name, width=width, height=height, fps=fps)


def select_frame_mode(
    modes: Sequence[Any],
    width: int | None = None,
    height: int | None = None,
    fps: int | None = None,
) -> Any:
    """Pick the best mode: MJPEG first, then closest resolution, then closest frame rate.

    Without a requested size the largest resolution wins; without a requested
    rate the fastest one wins.
    """
    usable = [mode for mode in modes if getattr(mode, "supported", True)]
    if not usable:
        raise CaptureOpenError("Camera reports no supported frame modes")

    controls = [(mode, stream_control_from_mode(mode)) for mode in usable]
    mjpeg = [item for item in controls if item[1].format_name == PREFERRED_FORMAT]
    pool = mjpeg or controls

    def _key(item: tuple[Any, StreamControl]) -> tuple[int, int, int]:
        control = item[1]
        if width is None or height is None:
            size_cost = -(control.width * control.height)
        else:
            size_cost = abs(control.width - width) + abs(control.height - height)
        fps_cost = -control.fps if fps is None else abs(control.fps - fps)
        return (size_cost, fps_cost, -control.fps)

    return min(pool, key=_key)[0]


def product_name(address: str) -> str | None:
    if not address.startswith(USB_PREFIX):
        return None
    return address[len(USB_PREFIX):]


def find_device(devices: Iterable[dict], address: str) -> dict | None:
    wanted = product_name(address)
    if wanted is None:
        return None
    wanted_bytes = wanted.encode("utf-8")
    for device in devices:
        name = device.get("name") or ""
        if isinstance(name, bytes):
            candidate = name
        else:
            candidate = str(name).encode("utf-8")
        if candidate == wanted_bytes:
            return device
    return None


def _close_native(capture: Any) -> None:
    try:
        capture.close()
    except Exception as exc:  # pragma: no cover - native teardown failures are not recoverable.
        logging.getLogger(__name__).warning(
            "Failed to close USB camera handle", extra={"event": "uvc_close_failed", "error": str(exc)}
        )


class UvcDeviceHandle:
    """Owns one native capture handle; ``release`` closes it exactly once."""

    def __init__(self, uid: str) -> None:
        if uvc is None:
            raise CaptureOpenError("pupil-labs-uvc is required for USB cameras. Install with: pip install pupil-labs-uvc")
        self.uid = uid
        try:
            self._capture = uvc.Capture(uid)
        except Exception as exc:
            raise CaptureOpenError(f"Unable to open USB camera {uid}: {exc}") from exc
        self._finalizer = weakref.finalize(self, _close_native, self._capture)

    @property
    def capture(self) -> Any:
        if not self._finalizer.alive:
            raise StreamFaultError(f"USB camera {self.uid} handle already released")
        return self._capture

    @property
    def released(self) -> bool:
        return not self._finalizer.alive

    def release(self) -> None:
        self._finalizer()

    def __enter__(self) -> "UvcDeviceHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()


class UvcCameraCapture(ThreadedCaptureBackend):
    """USB video-class cameras addressed as ``USB:<product name>``."""

    name = "uvc"

    _device_list: list[dict] | None = None
    _device_list_lock = threading.Lock()

    def __init__(
        self,
        source: str,
        logger: logging.Logger | None = None,
        frame_size: tuple[int, int] | None = None,
        fps: int | None = None,
    ) -> None:
        super().__init__(source, logger)
        self.frame_size = frame_size
        self.fps = fps
        self.stream_control: StreamControl | None = None
        self._handle: UvcDeviceHandle | None = None
        self._handle_lock = threading.Lock()

    @classmethod
    def can_connect(cls, address: str) -> bool:
        return address.startswith(USB_PREFIX) and len(address) > len(USB_PREFIX)

    @classmethod
    def update_cameras(cls) -> list[dict]:
        devices: list[dict] = []
        if uvc is not None:
            devices = [dict(device) for device in uvc.device_list()]
        with cls._device_list_lock:
            cls._device_list = devices
        return list(devices)

    @classmethod
    def devices(cls) -> list[dict]:
        with cls._device_list_lock:
            cached = cls._device_list
        if cached is None:
            return cls.update_cameras()
        return list(cached)

    @classmethod
    def addresses(cls) -> list[str]:
        return [f"{USB_PREFIX}{device.get('name', '')}" for device in cls.devices() if device.get("name")]

    def start_capture(self) -> bool:
        if self.state is CaptureState.STREAMING:
            return True
        if self.disposed:
            return False

        self._set_state(CaptureState.OPENING)
        handle: UvcDeviceHandle | None = None
        try:
            if uvc is None:
                raise CaptureOpenError("pupil-labs-uvc is not installed")
            device = find_device(self.devices(), self.source)
            if device is None:
                raise DeviceNotFoundError(f"No USB camera named {product_name(self.source)!r}")
            handle = UvcDeviceHandle(device["uid"])
            width, height = self.frame_size if self.frame_size is not None else (None, None)
            mode = select_frame_mode(handle.capture.available_modes, width, height, self.fps)
            handle.capture.frame_mode = mode
            self.stream_control = stream_control_from_mode(mode)
        except (CaptureOpenError, DeviceNotFoundError) as exc:
            if handle is not None:
                handle.release()
            self.logger.error(
                "Failed to start capture",
                extra={"event": "capture_open_failed", "backend": self.name, "source": self.source, "error": str(exc)},
            )
            self._set_state(CaptureState.ERROR)
            return False
        except Exception as exc:
            if handle is not None:
                handle.release()
            self.logger.exception(
                "Failed to start capture",
                extra={"event": "capture_open_failed", "backend": self.name, "source": self.source, "error": str(exc)},
            )
            self._set_state(CaptureState.ERROR)
            return False

        with self._handle_lock:
            self._handle = handle
        self._set_state(CaptureState.STREAMING)
        self._start_reader()
        self.logger.info(
            "USB camera streaming",
            extra={
                "event": "capture_started",
                "backend": self.name,
                "source": self.source,
                "mode": f"{self.stream_control.width}x{self.stream_control.height}@{self.stream_control.fps}",
            },
        )
        return True

    def _read_loop(self, stop_event: threading.Event) -> None:
        stream_error = getattr(uvc, "StreamError", OSError)
        while not stop_event.is_set():
            with self._handle_lock:
                handle = self._handle
            if handle is None or handle.released:
                return
            try:
                frame = handle.capture.get_frame(timeout=FRAME_TIMEOUT)
            except TimeoutError:
                continue
            except stream_error as exc:
                if stop_event.is_set():
                    return
                raise StreamFaultError(f"USB camera {self.source!r} stream failed: {exc}") from exc

            image = getattr(frame, "bgr", None)
            if image is None or getattr(image, "size", 0) == 0:
                continue
            # The native buffer is reused by libuvc once get_frame is called again.
            self.set_raw_frame(image)

    def _close_device(self) -> None:
        with self._handle_lock:
            handle = self._handle
            self._handle = None
        if handle is not None:
            handle.release()
        self.stream_control = None
