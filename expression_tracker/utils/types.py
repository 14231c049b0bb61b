from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum

import cv2
import numpy as np


class ColorType(Enum):
    GRAY8 = "gray8"
    BGR24 = "bgr24"
    RGB24 = "rgb24"


class CaptureState(Enum):
    CLOSED = "closed"
    OPENING = "opening"
    STREAMING = "streaming"
    ERROR = "error"


@dataclass
class Frame:
    image: np.ndarray | None
    sequence: int = 0
    timestamp: float = field(default_factory=time.perf_counter)

    @property
    def width(self) -> int:
        return 0 if self.image is None else int(self.image.shape[1])

    @property
    def height(self) -> int:
        return 0 if self.image is None else int(self.image.shape[0])

    @property
    def channels(self) -> int:
        if self.image is None:
            return 0
        return 1 if self.image.ndim == 2 else int(self.image.shape[2])

    @property
    def released(self) -> bool:
        return self.image is None

    def copy(self) -> "Frame":
        image = None if self.image is None else self.image.copy()
        return Frame(image=image, sequence=self.sequence, timestamp=self.timestamp)

    def release(self) -> None:
        self.image = None

    def to_color(self, color: ColorType) -> "Frame":
        """Returns a new frame in ``color``; the receiver is left untouched."""
        if self.image is None:
            return Frame(image=None, sequence=self.sequence, timestamp=self.timestamp)
        return Frame(image=convert_color(self.image, color), sequence=self.sequence, timestamp=self.timestamp)


def convert_color(image: np.ndarray, color: ColorType) -> np.ndarray:
    channels = 1 if image.ndim == 2 else image.shape[2]
    if color is ColorType.GRAY8:
        if channels == 1:
            return image.reshape(image.shape[0], image.shape[1]).copy()
        if channels == 4:
            return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    if channels == 1:
        code = cv2.COLOR_GRAY2BGR if color is ColorType.BGR24 else cv2.COLOR_GRAY2RGB
        return cv2.cvtColor(image, code)
    if channels == 4:
        code = cv2.COLOR_BGRA2BGR if color is ColorType.BGR24 else cv2.COLOR_BGRA2RGB
        return cv2.cvtColor(image, code)
    if color is ColorType.RGB24:
        return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)
    return image.copy()


@dataclass
class TransformedFrame:
    images: list[np.ndarray | None] = field(default_factory=list)
    sequence: int = 0

    @property
    def complete(self) -> bool:
        return bool(self.images) and all(image is not None for image in self.images)

    def release(self) -> None:
        self.images = [None] * len(self.images)


@dataclass
class ExpressionUpdate:
    domain: str
    sequence: int
    timestamp: float
    values: np.ndarray
