from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from queue import Empty, Queue

import numpy as np

from ..exceptions import StreamFaultError
from ..utils.queueing import clear_queue, put_latest
from ..utils.types import CaptureState, Frame


class CaptureBackend(ABC):
    """One physical or virtual camera feeding a single-slot frame mailbox.

    Subclasses own their device handle and reader thread. Public operations
    never raise: faults are logged and reported through ``start_capture`` /
    ``stop_capture`` return values and the ``state`` property.
    """

    name: str = "base"

    def __init__(self, source: str, logger: logging.Logger | None = None) -> None:
        self.source = source
        self.logger = logger or logging.getLogger(f"{__name__}.{type(self).__name__}")
        self._state = CaptureState.CLOSED
        self._state_lock = threading.Lock()
        self._mailbox: Queue[Frame] = Queue(maxsize=1)
        self._latest: Frame | None = None
        self._latest_lock = threading.Lock()
        self._sequence = 0
        self._disposed = False

    @classmethod
    @abstractmethod
    def can_connect(cls, address: str) -> bool:
        ...

    @abstractmethod
    def start_capture(self) -> bool:
        ...

    @abstractmethod
    def stop_capture(self) -> bool:
        ...

    @property
    def state(self) -> CaptureState:
        with self._state_lock:
            return self._state

    def _set_state(self, state: CaptureState) -> None:
        with self._state_lock:
            self._state = state

    @property
    def is_ready(self) -> bool:
        return self.state is CaptureState.STREAMING

    @property
    def frame_count(self) -> int:
        return self._sequence

    def set_raw_frame(self, image: np.ndarray) -> None:
        """Publish a frame produced by the reader thread.

        ``image`` is copied so the caller may reuse its buffer immediately.
        """
        self._sequence += 1
        frame = Frame(image=np.array(image, copy=True), sequence=self._sequence, timestamp=time.perf_counter())
        dropped = put_latest(self._mailbox, frame)
        if dropped is not None:
            dropped.release()

    def get_frame(self) -> Frame | None:
        if self.state is not CaptureState.STREAMING:
            return None
        with self._latest_lock:
            try:
                newest = self._mailbox.get_nowait()
            except Empty:
                newest = None
            if newest is not None:
                if self._latest is not None:
                    self._latest.release()
                self._latest = newest
            if self._latest is None:
                return None
            return self._latest.copy()

    def _clear_frames(self) -> None:
        for frame in clear_queue(self._mailbox):
            frame.release()
        with self._latest_lock:
            if self._latest is not None:
                self._latest.release()
            self._latest = None

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self.stop_capture()
        self._clear_frames()

    @property
    def disposed(self) -> bool:
        return self._disposed

    def __enter__(self) -> "CaptureBackend":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(source={self.source!r}, state={self.state.value})"


class ThreadedCaptureBackend(CaptureBackend):
    """Backend whose frames come from a blocking read loop on a private thread."""

    join_timeout: float = 2.0

    def __init__(self, source: str, logger: logging.Logger | None = None) -> None:
        super().__init__(source, logger)
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def _start_reader(self) -> None:
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._reader_main,
            name=f"capture-{self.name}-{self.source}",
            daemon=True,
        )
        self._thread.start()

    def _reader_main(self) -> None:
        try:
            self._read_loop(self._stop_event)
        except StreamFaultError as exc:
            self.logger.warning(
                "Capture stream lost, device likely unplugged",
                extra={"event": "stream_fault", "backend": self.name, "source": self.source, "error": str(exc)},
            )
            self._teardown_after_fault()
        except Exception as exc:
            self.logger.exception(
                "Capture read loop failed",
                extra={"event": "stream_fault", "backend": self.name, "source": self.source, "error": str(exc)},
            )
            self._teardown_after_fault()

    def _teardown_after_fault(self) -> None:
        self._set_state(CaptureState.ERROR)
        try:
            self._close_device()
        finally:
            self._clear_frames()

    @abstractmethod
    def _read_loop(self, stop_event: threading.Event) -> None:
        ...

    @abstractmethod
    def _close_device(self) -> None:
        ...

    def _stop_reader(self) -> None:
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout=self.join_timeout)
        if thread.is_alive():
            self.logger.warning(
                "Capture thread did not exit in time",
                extra={"event": "reader_join_timeout", "backend": self.name, "source": self.source},
            )

    def stop_capture(self) -> bool:
        try:
            self._stop_reader()
            self._close_device()
        except Exception as exc:
            self.logger.error(
                "Failed to stop capture",
                extra={"event": "stop_failed", "backend": self.name, "source": self.source, "error": str(exc)},
            )
            self._set_state(CaptureState.ERROR)
            return False
        finally:
            self._clear_frames()
        self._set_state(CaptureState.CLOSED)
        return True
