from __future__ import annotations

import logging
import os
import sys
import threading
import time
from typing import List, Tuple
from urllib.parse import urlparse

import cv2

from ..exceptions import CaptureOpenError, CaptureTimeoutError, StreamFaultError
from ..utils.types import CaptureState
from .base import ThreadedCaptureBackend

DEFAULT_OPEN_TIMEOUT = 15.0
PROBE_READS = 6
MAX_CONSECUTIVE_FAILURES = 120

# Serial ports must never be claimed by OpenCV; opening them stalls some builds.
_SERIAL_LIKE = ("com", "/dev/tty", "/dev/cu", "/dev/ttyacm", "/dev/serial/")

_API_NAMES = {
    "auto": "Auto",
    "any": "Auto",
    "dshow": "DirectShow",
    "directshow": "DirectShow",
    "msmf": "Media Foundation",
    "mediafoundation": "Media Foundation",
    "media foundation": "Media Foundation",
    "v4l2": "V4L2",
    "gstreamer": "GStreamer",
    "avfoundation": "AVFoundation",
    "ffmpeg": "FFmpeg",
}


def _api_constant(name: str) -> int | None:
    return {
        "Auto": getattr(cv2, "CAP_ANY", None),
        "DirectShow": getattr(cv2, "CAP_DSHOW", None),
        "Media Foundation": getattr(cv2, "CAP_MSMF", None),
        "V4L2": getattr(cv2, "CAP_V4L2", None),
        "GStreamer": getattr(cv2, "CAP_GSTREAMER", None),
        "AVFoundation": getattr(cv2, "CAP_AVFOUNDATION", None),
        "FFmpeg": getattr(cv2, "CAP_FFMPEG", None),
    }.get(name)


def _default_api_order() -> list[str]:
    if os.name == "nt":
        # DirectShow allows two processes to share a camera; MSMF does not.
        return ["DirectShow", "Media Foundation", "Auto"]
    if sys.platform == "darwin":
        return ["AVFoundation", "Auto"]
    return ["V4L2", "GStreamer", "Auto"]


def preferred_api_order() -> list[str]:
    raw = os.getenv("TRACKER_CAMERA_BACKEND_ORDER", "").strip()
    if not raw:
        return _default_api_order()
    result: list[str] = []
    for item in raw.split(","):
        name = _API_NAMES.get(item.strip().lower())
        if name and name not in result:
            result.append(name)
    return result or _default_api_order()


def capture_apis(source: int | str) -> List[Tuple[str, int | None]]:
    if isinstance(source, str):
        if source.lower().endswith("appsink"):
            names = ["GStreamer"]
        else:
            names = ["Auto", "FFmpeg"]
    else:
        names = preferred_api_order()
        if "Auto" not in names:
            names.append("Auto")

    candidates: List[Tuple[str, int | None]] = []
    seen: set[int | None] = set()
    for name in names:
        api = _api_constant(name)
        if api is None and name != "Auto":
            continue
        if api in seen:
            continue
        seen.add(api)
        candidates.append((name, api))
    return candidates


def parse_camera_index(address: str) -> int | None:
    try:
        return int(address.strip())
    except ValueError:
        return None


def is_absolute_uri(address: str) -> bool:
    parsed = urlparse(address.strip())
    # Single-letter schemes are Windows drive letters, not URIs.
    return len(parsed.scheme) > 1 and bool(parsed.netloc or parsed.path)


def open_video_capture(source: int | str) -> tuple[cv2.VideoCapture, str]:
    attempted: list[str] = []
    for api_name, api in capture_apis(source):
        attempted.append(api_name)
        if api is None:
            cap = cv2.VideoCapture(source)
        else:
            cap = cv2.VideoCapture(source, api)

        if cap.isOpened():
            # Some APIs report opened=True but never deliver frames.
            for _ in range(PROBE_READS):
                ok, frame = cap.read()
                if ok and frame is not None:
                    return cap, api_name
                time.sleep(0.03)
        cap.release()

    tried = ", ".join(attempted) if attempted else "default backend"
    raise CaptureOpenError(f"Unable to open camera {source!r}. Tried backends: {tried}.")


def open_video_capture_with_timeout(source: int | str, timeout: float) -> tuple[cv2.VideoCapture, str]:
    """Runs ``open_video_capture`` on a helper thread, giving up after ``timeout`` seconds.

    A capture that finishes opening after the deadline is released by the
    helper thread itself.
    """
    lock = threading.Lock()
    outcome: dict[str, object] = {}
    abandoned = threading.Event()

    def _worker() -> None:
        try:
            result = open_video_capture(source)
        except Exception as exc:
            with lock:
                outcome["error"] = exc
            return
        with lock:
            if abandoned.is_set():
                result[0].release()
                return
            outcome["result"] = result

    worker = threading.Thread(target=_worker, name=f"camera-open-{source}", daemon=True)
    worker.start()
    worker.join(timeout)

    with lock:
        if "result" in outcome:
            return outcome["result"]  # type: ignore[return-value]
        if "error" in outcome:
            error = outcome["error"]
            if isinstance(error, CaptureOpenError):
                raise error
            raise CaptureOpenError(f"Unable to open camera {source!r}: {error}") from error  # type: ignore[misc]
        abandoned.set()
    raise CaptureTimeoutError(f"Opening camera {source!r} timed out after {timeout:.0f}s")


class PlatformCameraCapture(ThreadedCaptureBackend):
    """Cameras reachable through OpenCV: device indices, V4L2 nodes, URLs and GStreamer pipelines."""

    name = "opencv"

    def __init__(
        self,
        source: str,
        logger: logging.Logger | None = None,
        open_timeout: float = DEFAULT_OPEN_TIMEOUT,
        frame_size: tuple[int, int] | None = None,
        fps: int | None = None,
    ) -> None:
        super().__init__(source, logger)
        self.open_timeout = open_timeout
        self.frame_size = frame_size
        self.fps = fps
        self.api_name: str | None = None
        self._capture: cv2.VideoCapture | None = None
        self._capture_lock = threading.Lock()

    @classmethod
    def can_connect(cls, address: str) -> bool:
        lowered = address.strip().lower()
        if lowered.startswith(_SERIAL_LIKE):
            return False
        return (
            lowered.startswith("/dev/video")
            or lowered.endswith("appsink")
            or parse_camera_index(address) is not None
            or is_absolute_uri(address)
        )

    def _open_target(self) -> int | str:
        index = parse_camera_index(self.source)
        return index if index is not None else self.source

    def start_capture(self) -> bool:
        if self.state is CaptureState.STREAMING:
            return True
        if self.disposed:
            return False

        self._set_state(CaptureState.OPENING)
        try:
            capture, api_name = open_video_capture_with_timeout(self._open_target(), self.open_timeout)
        except CaptureOpenError as exc:
            self.logger.error(
                "Failed to open camera",
                extra={"event": "capture_open_failed", "backend": self.name, "source": self.source, "error": str(exc)},
            )
            self._set_state(CaptureState.ERROR)
            return False

        # Some headsets deliver YUV; force OpenCV to hand back BGR.
        capture.set(cv2.CAP_PROP_CONVERT_RGB, 1)
        if self.frame_size is not None:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.frame_size[0])
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.frame_size[1])
        if self.fps is not None:
            capture.set(cv2.CAP_PROP_FPS, self.fps)

        if not capture.isOpened():
            capture.release()
            self._set_state(CaptureState.ERROR)
            return False

        with self._capture_lock:
            self._capture = capture
        self.api_name = api_name
        self._set_state(CaptureState.STREAMING)
        self._start_reader()
        self.logger.info(
            "Camera stream opened",
            extra={"event": "capture_started", "backend": self.name, "source": self.source, "api": api_name},
        )
        return True

    def _read_loop(self, stop_event: threading.Event) -> None:
        failures = 0
        while not stop_event.is_set():
            with self._capture_lock:
                capture = self._capture
            if capture is None:
                return
            try:
                ok, frame = capture.read()
            except cv2.error as exc:
                ok, frame = False, None
                self.logger.debug("Camera read raised", extra={"event": "read_error", "error": str(exc)})

            if ok and frame is not None:
                failures = 0
                self.set_raw_frame(frame)
                continue

            failures += 1
            # Unplugged V4L2 and DirectShow devices stay "opened" while every read fails.
            if failures >= MAX_CONSECUTIVE_FAILURES:
                raise StreamFaultError(f"Camera {self.source!r} stopped delivering frames")
            time.sleep(0.01)

    def _close_device(self) -> None:
        with self._capture_lock:
            capture = self._capture
            self._capture = None
        if capture is not None:
            capture.release()
