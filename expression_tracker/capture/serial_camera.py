from __future__ import annotations

import logging
import threading

import cv2
import numpy as np
import serial

from ..exceptions import CaptureOpenError, StreamFaultError
from ..utils.types import CaptureState
from .base import ThreadedCaptureBackend
from .framing import FrameParser

DEFAULT_BAUD_RATE = 3_000_000
DEFAULT_READ_TIMEOUT = 0.5
MAX_READ_CHUNK = 65536

SERIAL_PREFIXES = ("com", "/dev/tty", "/dev/cu", "/dev/serial/")


def looks_like_serial_port(address: str) -> bool:
    return address.strip().lower().startswith(SERIAL_PREFIXES)


def decode_jpeg(payload: bytes) -> np.ndarray | None:
    buffer = np.frombuffer(payload, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if image is None or image.size == 0 or image.shape[0] <= 0 or image.shape[1] <= 0:
        return None
    return image


class SerialCameraCapture(ThreadedCaptureBackend):
    """Eye-tracking boards streaming framed JPEG images over a serial link."""

    name = "serial"

    def __init__(
        self,
        source: str,
        logger: logging.Logger | None = None,
        baud_rate: int = DEFAULT_BAUD_RATE,
        read_timeout: float = DEFAULT_READ_TIMEOUT,
    ) -> None:
        super().__init__(source, logger)
        self.baud_rate = baud_rate
        self.read_timeout = read_timeout
        self.parser = FrameParser()
        self._port: serial.Serial | None = None
        self._port_lock = threading.Lock()

    @classmethod
    def can_connect(cls, address: str) -> bool:
        return looks_like_serial_port(address)

    def start_capture(self) -> bool:
        if self.state is CaptureState.STREAMING:
            return True
        if self.disposed:
            return False

        self._set_state(CaptureState.OPENING)
        self.logger.debug("Opening serial port", extra={"event": "serial_opening", "port": self.source})
        try:
            self._open_port()
        except CaptureOpenError as exc:
            self.logger.error(
                "Failed to start serial camera capture",
                extra={"event": "capture_open_failed", "backend": self.name, "port": self.source, "error": str(exc)},
            )
            self._set_state(CaptureState.ERROR)
            return False

        self.parser.reset()
        self._set_state(CaptureState.STREAMING)
        self._start_reader()
        self.logger.info(
            "Serial camera capture started",
            extra={"event": "capture_started", "backend": self.name, "port": self.source, "baud": self.baud_rate},
        )
        return True

    def _open_port(self) -> None:
        try:
            port = serial.Serial(
                port=self.source,
                baudrate=self.baud_rate,
                timeout=self.read_timeout,
            )
        except (serial.SerialException, OSError, ValueError) as exc:
            raise CaptureOpenError(f"Unable to open serial port {self.source}: {exc}") from exc
        with self._port_lock:
            self._port = port

    def _read_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            with self._port_lock:
                port = self._port
            if port is None:
                return
            try:
                waiting = port.in_waiting
                data = port.read(min(max(1, waiting), MAX_READ_CHUNK))
            except (serial.SerialException, OSError, TypeError, AttributeError) as exc:
                if stop_event.is_set():
                    return
                # Port closed under us or device unplugged.
                raise StreamFaultError(f"Serial stream on {self.source} failed: {exc}") from exc

            if not data:
                continue

            for payload in self.parser.feed(data):
                image = decode_jpeg(payload)
                if image is None:
                    self.logger.debug(
                        "Dropping undecodable serial frame",
                        extra={"event": "frame_invalid", "port": self.source, "size": len(payload)},
                    )
                    continue
                self.set_raw_frame(image)

    def _close_device(self) -> None:
        with self._port_lock:
            port = self._port
            self._port = None
        if port is None:
            return
        try:
            port.close()
        except (serial.SerialException, OSError) as exc:
            self.logger.warning(
                "Error closing serial port",
                extra={"event": "serial_close_failed", "port": self.source, "error": str(exc)},
            )
        else:
            self.logger.debug("Serial port closed", extra={"event": "serial_closed", "port": self.source})
