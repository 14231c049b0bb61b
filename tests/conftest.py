from __future__ import annotations

import time

import numpy as np
import pytest

from expression_tracker.capture.base import CaptureBackend
from expression_tracker.utils.types import CaptureState


class FakeBackend(CaptureBackend):
    name = "fake"

    def __init__(self, source: str, logger=None, fail: bool = False) -> None:
        super().__init__(source, logger)
        self.fail = fail
        self.starts = 0
        self.stops = 0

    @classmethod
    def can_connect(cls, address: str) -> bool:
        return True

    def start_capture(self) -> bool:
        if self.state is CaptureState.STREAMING:
            return True
        self.starts += 1
        if self.fail:
            self._set_state(CaptureState.ERROR)
            return False
        self._set_state(CaptureState.STREAMING)
        return True

    def stop_capture(self) -> bool:
        self.stops += 1
        self._clear_frames()
        self._set_state(CaptureState.CLOSED)
        return True


class BackendFactory:
    """Stands in for ``create_and_start``; remembers every backend it made."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.created: list[FakeBackend] = []

    def __call__(self, address, preferred=None, settings=None):
        if address in self.failing:
            return None
        backend = FakeBackend(address)
        backend.start_capture()
        self.created.append(backend)
        return backend

    def live(self) -> list[FakeBackend]:
        return [backend for backend in self.created if not backend.disposed]


class SourceHolder:
    def __init__(self) -> None:
        self.video_source = None


class FakeRunner:
    def __init__(self, outputs, channels: int = 2, size: int = 8) -> None:
        self.outputs = [np.asarray(values, dtype=np.float32) for values in outputs]
        self.input_shape = (1, channels, size, size)
        self.input_tensor = np.zeros(self.input_shape, dtype=np.float32)
        self.calls = 0
        self.closed = False
        self.error: Exception | None = None

    @property
    def input_channels(self) -> int:
        return self.input_shape[1]

    @property
    def input_size(self) -> tuple[int, int]:
        return self.input_shape[3], self.input_shape[2]

    def run(self) -> np.ndarray:
        if self.error is not None:
            raise self.error
        values = self.outputs[min(self.calls, len(self.outputs) - 1)]
        self.calls += 1
        return values.copy()

    def close(self) -> None:
        self.closed = True


def noise_image(height: int = 32, width: int = 64, seed: int = 7) -> np.ndarray:
    return np.random.default_rng(seed).integers(0, 256, size=(height, width), dtype=np.uint8)


def wait_for(predicate, timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def factory() -> BackendFactory:
    return BackendFactory()


@pytest.fixture
def holder() -> SourceHolder:
    return SourceHolder()
