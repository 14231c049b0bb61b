from __future__ import annotations

from dataclasses import dataclass

import cv2
import numpy as np

from ..utils.types import Frame


@dataclass
class CorruptionThresholds:
    min_contrast: float = 2.0
    band_fraction: float = 0.1
    band_contrast: float = 0.5
    row_jump: float = 40.0
    row_jump_ratio: float = 8.0
    sample_step: int = 2


class FastCorruptionDetector:
    """Cheap checks for frames mangled in transit, run before any real work.

    Flags empty buffers, flat frames, a uniform band at the bottom (a JPEG
    cut short and padded by the decoder) and rows that jump far more than
    their neighbours (shifted scanlines).
    """

    def __init__(self, thresholds: CorruptionThresholds | None = None) -> None:
        self.thresholds = thresholds or CorruptionThresholds()

    def is_corrupted(self, frame: Frame | None) -> tuple[bool, str | None]:
        if frame is None or frame.image is None or frame.image.size == 0:
            return True, "empty"

        image = frame.image
        if image.ndim == 3:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY) if image.shape[2] == 3 else image[:, :, 0]

        t = self.thresholds
        step = max(1, t.sample_step)
        sample = image[::step, ::step].astype(np.float32)
        if sample.shape[0] < 4 or sample.shape[1] < 2:
            return False, None

        if float(sample.std()) < t.min_contrast:
            return True, "flat"

        band_rows = max(2, int(sample.shape[0] * t.band_fraction))
        band = sample[-band_rows:]
        body = sample[:-band_rows]
        if float(band.std()) < t.band_contrast and float(body.std()) >= t.min_contrast:
            return True, "truncated"

        row_diffs = np.abs(np.diff(sample, axis=0)).mean(axis=1)
        typical = float(np.median(row_diffs))
        worst = float(row_diffs.max())
        if worst > t.row_jump and worst > typical * t.row_jump_ratio:
            return True, "row_shift"

        return False, None
