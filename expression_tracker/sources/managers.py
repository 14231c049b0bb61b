from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from ..capture.base import CaptureBackend
from ..capture.registry import create_and_start
from ..config.settings import TrackerSettings
from .video_source import DualCameraSource, SingleCameraSource, VideoSource

logger = logging.getLogger(__name__)

BackendFactory = Callable[[str, "str | None", "TrackerSettings | None"], "CaptureBackend | None"]


class EyeSourceManager:
    """The only place that changes the eye pipeline's video source.

    Keeps the invariant that a device address is never opened twice: binding
    one side to the address the other side already uses swaps to a
    ``SingleCameraSource`` sharing that backend.
    """

    def __init__(
        self,
        pipeline: Any,
        settings: TrackerSettings | None = None,
        factory: BackendFactory = create_and_start,
    ) -> None:
        self.pipeline = pipeline
        self.settings = settings
        self.factory = factory
        self.left_address: str | None = None
        self.right_address: str | None = None
        self._lock = threading.RLock()

    @property
    def source(self) -> VideoSource | None:
        return self.pipeline.video_source

    def _set_source(self, source: VideoSource | None) -> None:
        self.pipeline.video_source = source

    def _create(self, address: str, preferred: str | None) -> CaptureBackend | None:
        return self.factory(address, preferred, self.settings)

    def bind_left(self, address: str, preferred: str | None = None) -> bool:
        return self._bind("left", address, preferred)

    def bind_right(self, address: str, preferred: str | None = None) -> bool:
        return self._bind("right", address, preferred)

    def _bind(self, side: str, address: str, preferred: str | None) -> bool:
        other = "right" if side == "left" else "left"
        with self._lock:
            source = self.source
            own_address = getattr(self, f"{side}_address")
            other_address = getattr(self, f"{other}_address")

            if source is None:
                backend = self._create(address, preferred)
                if backend is None:
                    return False
                dual = DualCameraSource()
                setattr(dual, side, backend)
                self._set_source(dual)
                setattr(self, f"{side}_address", address)
                self._log_bound(side, address, "started")
                return True

            if isinstance(source, SingleCameraSource):
                if own_address == address:
                    return True
                backend = self._create(address, preferred)
                if backend is None:
                    return False
                # The running backend keeps streaming and now only serves the other side.
                dual = DualCameraSource()
                setattr(dual, side, backend)
                setattr(dual, other, source.backend)
                self._set_source(dual)
                setattr(self, f"{side}_address", address)
                self._log_bound(side, address, "promoted")
                return True

            assert isinstance(source, DualCameraSource)
            current = getattr(source, side)
            if other_address is not None and other_address == address:
                shared = getattr(source, other)
                if current is not None and current is not shared:
                    current.dispose()
                setattr(source, side, None)
                self._set_source(SingleCameraSource(shared))
                setattr(self, f"{side}_address", address)
                self._log_bound(side, address, "shared")
                return True

            if own_address == address and current is not None:
                return True

            if current is not None:
                current.dispose()
                setattr(source, side, None)
                setattr(self, f"{side}_address", None)

            backend = self._create(address, preferred)
            if backend is None:
                if source.empty:
                    self._set_source(None)
                return False
            setattr(source, side, backend)
            setattr(self, f"{side}_address", address)
            self._log_bound(side, address, "replaced")
            return True

    def _log_bound(self, side: str, address: str, how: str) -> None:
        logger.info(
            "Eye camera bound",
            extra={"event": "eye_source_bound", "side": side, "address": address, "mode": how},
        )

    def try_start_left_if_not_running(self, address: str, preferred: str | None = None) -> bool:
        with self._lock:
            source = self.source
            if isinstance(source, SingleCameraSource):
                return True
            if isinstance(source, DualCameraSource) and source.left is not None:
                return True
            return self.bind_left(address, preferred)

    def try_start_right_if_not_running(self, address: str, preferred: str | None = None) -> bool:
        with self._lock:
            source = self.source
            if isinstance(source, SingleCameraSource):
                return True
            if isinstance(source, DualCameraSource) and source.right is not None:
                return True
            return self.bind_right(address, preferred)

    def stop_left(self) -> None:
        self._stop("left")

    def stop_right(self) -> None:
        self._stop("right")

    def _stop(self, side: str) -> None:
        with self._lock:
            setattr(self, f"{side}_address", None)
            source = self.source
            if isinstance(source, DualCameraSource):
                backend = getattr(source, side)
                if backend is not None:
                    backend.dispose()
                    setattr(source, side, None)
                if source.empty:
                    self._set_source(None)
            elif isinstance(source, SingleCameraSource):
                # One device feeds both sides, so both go down together.
                source.dispose()
                self._set_source(None)
                self.left_address = None
                self.right_address = None
            logger.info("Eye camera stopped", extra={"event": "eye_source_stopped", "side": side})

    def stop_all(self) -> None:
        with self._lock:
            self.left_address = None
            self.right_address = None
            source = self.source
            self._set_source(None)
            if source is not None:
                source.dispose()

    def is_using_same_camera(self) -> bool:
        return self.left_address is not None and self.left_address == self.right_address

    @property
    def left_backend(self) -> CaptureBackend | None:
        source = self.source
        if isinstance(source, SingleCameraSource):
            return source.backend
        if isinstance(source, DualCameraSource):
            return source.left
        return None

    @property
    def right_backend(self) -> CaptureBackend | None:
        source = self.source
        if isinstance(source, SingleCameraSource):
            return source.backend
        if isinstance(source, DualCameraSource):
            return source.right
        return None


class FaceSourceManager:
    def __init__(
        self,
        pipeline: Any,
        settings: TrackerSettings | None = None,
        factory: BackendFactory = create_and_start,
    ) -> None:
        self.pipeline = pipeline
        self.settings = settings
        self.factory = factory
        self.address: str | None = None
        self._lock = threading.RLock()

    @property
    def source(self) -> VideoSource | None:
        return self.pipeline.video_source

    @property
    def backend(self) -> CaptureBackend | None:
        source = self.source
        return source.backend if isinstance(source, SingleCameraSource) else None

    def bind(self, address: str, preferred: str | None = None) -> bool:
        with self._lock:
            if self.source is not None and self.address == address:
                return True
            self.stop()
            backend = self.factory(address, preferred, self.settings)
            if backend is None:
                return False
            self.pipeline.video_source = SingleCameraSource(backend)
            self.address = address
            logger.info("Face camera bound", extra={"event": "face_source_bound", "address": address})
            return True

    def try_start_if_not_running(self, address: str, preferred: str | None = None) -> bool:
        with self._lock:
            if self.source is not None:
                return True
            return self.bind(address, preferred)

    def stop(self) -> None:
        with self._lock:
            self.address = None
            source = self.source
            self.pipeline.video_source = None
            if source is not None:
                source.dispose()
