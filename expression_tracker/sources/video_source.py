from __future__ import annotations

from abc import ABC, abstractmethod

import cv2
import numpy as np

from ..capture.base import CaptureBackend
from ..utils.types import ColorType, Frame


class VideoSource(ABC):
    """A logical camera for one tracked region, backed by one or two backends."""

    @abstractmethod
    def get_frame(self, color: ColorType = ColorType.GRAY8) -> Frame | None:
        ...

    @abstractmethod
    def backends(self) -> list[CaptureBackend]:
        ...

    @abstractmethod
    def dispose(self) -> None:
        ...

    @property
    def complete(self) -> bool:
        """Whether every region this source covers has a camera bound."""
        return True

    def __enter__(self) -> "VideoSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.dispose()


def _fetch(backend: CaptureBackend | None, color: ColorType) -> Frame | None:
    if backend is None:
        return None
    raw = backend.get_frame()
    if raw is None or raw.image is None:
        return None
    converted = raw.to_color(color)
    raw.release()
    return converted


def compose_side_by_side(left: np.ndarray, right: np.ndarray) -> np.ndarray:
    """Left image then right image, the right resized to the left's shape.

    Both halves are the same width so the midpoint split recovers each camera.
    """
    if right.ndim != left.ndim:
        right = right.reshape(right.shape[0], right.shape[1], *left.shape[2:])
    if right.shape[:2] != left.shape[:2]:
        right = cv2.resize(right, (left.shape[1], left.shape[0]), interpolation=cv2.INTER_LINEAR)
    return cv2.hconcat([left, right])


class SingleCameraSource(VideoSource):
    """One backend serving both sides, e.g. a dual-sensor headset on one stream."""

    def __init__(self, backend: CaptureBackend) -> None:
        self.backend = backend

    def get_frame(self, color: ColorType = ColorType.GRAY8) -> Frame | None:
        return _fetch(self.backend, color)

    def backends(self) -> list[CaptureBackend]:
        return [self.backend]

    def dispose(self) -> None:
        self.backend.dispose()

    def __repr__(self) -> str:
        return f"SingleCameraSource({self.backend!r})"


class DualCameraSource(VideoSource):
    """Two independent backends; frames are joined without timestamp alignment."""

    def __init__(self, left: CaptureBackend | None = None, right: CaptureBackend | None = None) -> None:
        self.left = left
        self.right = right

    @property
    def empty(self) -> bool:
        return self.left is None and self.right is None

    @property
    def complete(self) -> bool:
        return self.left is not None and self.right is not None

    def get_frame(self, color: ColorType = ColorType.GRAY8) -> Frame | None:
        left = _fetch(self.left, color)
        right = _fetch(self.right, color)
        if left is None:
            return right
        if right is None:
            return left

        image = compose_side_by_side(left.image, right.image)
        frame = Frame(
            image=image,
            sequence=max(left.sequence, right.sequence),
            timestamp=max(left.timestamp, right.timestamp),
        )
        left.release()
        right.release()
        return frame

    def backends(self) -> list[CaptureBackend]:
        result: list[CaptureBackend] = []
        for backend in (self.left, self.right):
            if backend is not None and all(backend is not existing for existing in result):
                result.append(backend)
        return result

    def dispose(self) -> None:
        for backend in self.backends():
            backend.dispose()
        self.left = None
        self.right = None

    def __repr__(self) -> str:
        return f"DualCameraSource(left={self.left!r}, right={self.right!r})"
