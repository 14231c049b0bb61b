from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any

import cv2
import numpy as np

from ..utils.types import Frame, TransformedFrame


@dataclass
class CameraSettings:
    """Per-camera crop and orientation, persisted under the camera's name."""

    roi_x: int = 0
    roi_y: int = 0
    roi_width: int = 0
    roi_height: int = 0
    rotation_radians: float = 0.0
    gamma: float = 1.0
    flip_horizontal: bool = False
    flip_vertical: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "CameraSettings":
        if not data:
            return cls()
        known = {name: data[name] for name in cls.__dataclass_fields__ if name in data}
        return cls(**known)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def crop_to_roi(image: np.ndarray, settings: CameraSettings) -> np.ndarray:
    if settings.roi_width <= 0 or settings.roi_height <= 0:
        return image
    height, width = image.shape[:2]
    x0 = min(max(settings.roi_x, 0), width)
    y0 = min(max(settings.roi_y, 0), height)
    x1 = min(x0 + settings.roi_width, width)
    y1 = min(y0 + settings.roi_height, height)
    if x1 <= x0 or y1 <= y0:
        return image
    return image[y0:y1, x0:x1]


@dataclass
class ImageTransformer:
    target_size: tuple[int, int] = (128, 128)
    settings: CameraSettings = field(default_factory=CameraSettings)
    _lut_gamma: float | None = field(default=None, init=False, repr=False)
    _lut: np.ndarray | None = field(default=None, init=False, repr=False)

    def transform(self, image: np.ndarray | None) -> np.ndarray | None:
        if image is None or image.size == 0:
            return None
        if image.ndim == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

        settings = self.settings
        image = crop_to_roi(image, settings)

        if settings.rotation_radians:
            height, width = image.shape[:2]
            matrix = cv2.getRotationMatrix2D((width / 2.0, height / 2.0), math.degrees(settings.rotation_radians), 1.0)
            image = cv2.warpAffine(image, matrix, (width, height), flags=cv2.INTER_LINEAR, borderMode=cv2.BORDER_CONSTANT)

        if settings.flip_horizontal and settings.flip_vertical:
            image = cv2.flip(image, -1)
        elif settings.flip_horizontal:
            image = cv2.flip(image, 1)
        elif settings.flip_vertical:
            image = cv2.flip(image, 0)

        width, height = self.target_size
        if image.shape[1] != width or image.shape[0] != height:
            image = cv2.resize(image, (width, height), interpolation=cv2.INTER_AREA)

        if settings.gamma > 0 and not math.isclose(settings.gamma, 1.0):
            image = cv2.LUT(image, self._gamma_table(settings.gamma))
        return np.ascontiguousarray(image)

    def _gamma_table(self, gamma: float) -> np.ndarray:
        if self._lut is None or self._lut_gamma != gamma:
            levels = np.arange(256, dtype=np.float32) / 255.0
            self._lut = np.clip(np.power(levels, 1.0 / gamma) * 255.0, 0, 255).astype(np.uint8)
            self._lut_gamma = gamma
        return self._lut

    def apply(self, frame: Frame) -> TransformedFrame | None:
        image = self.transform(frame.image)
        if image is None:
            return None
        return TransformedFrame(images=[image], sequence=frame.sequence)


@dataclass
class DualImageTransformer:
    """Splits a side-by-side frame into left and right halves."""

    left: ImageTransformer = field(default_factory=ImageTransformer)
    right: ImageTransformer = field(default_factory=ImageTransformer)

    def set_target_size(self, size: tuple[int, int]) -> None:
        self.left.target_size = size
        self.right.target_size = size

    def apply(self, frame: Frame) -> TransformedFrame | None:
        image = frame.image
        if image is None or image.size == 0 or image.shape[1] < 2:
            return None
        middle = image.shape[1] // 2
        left = self.left.transform(image[:, :middle])
        right = self.right.transform(image[:, middle:])
        return TransformedFrame(images=[left, right], sequence=frame.sequence)
