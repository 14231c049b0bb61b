from __future__ import annotations

from collections import deque

import numpy as np

from ..utils.types import TransformedFrame


class ImageCollector:
    """Joins per-region images and keeps a short history of them.

    The output stack is ordered newest cycle first, regions in order within a
    cycle: ``[L(t), R(t), L(t-1), R(t-1), ...]``.
    """

    def __init__(self, history: int = 1) -> None:
        self.history = max(1, int(history))
        self._cycles: deque[list[np.ndarray]] = deque(maxlen=self.history)

    def configure(self, history: int) -> None:
        history = max(1, int(history))
        if history != self.history:
            self.history = history
            self._cycles = deque(self._cycles, maxlen=history)

    def apply(self, transformed: TransformedFrame | None) -> np.ndarray | None:
        if transformed is None or not transformed.complete:
            return None
        images = [image.copy() for image in transformed.images]
        if self._cycles and not _same_layout(self._cycles[0], images):
            self._cycles.clear()
        self._cycles.appendleft(images)
        if len(self._cycles) < self.history:
            return None
        return np.stack([image for cycle in self._cycles for image in cycle], axis=0)

    def reset(self) -> None:
        self._cycles.clear()


def _same_layout(previous: list[np.ndarray], current: list[np.ndarray]) -> bool:
    return len(previous) == len(current) and all(a.shape == b.shape for a, b in zip(previous, current))
