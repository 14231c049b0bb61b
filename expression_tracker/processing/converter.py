from __future__ import annotations

import numpy as np

from ..exceptions import FrameInvalidError


class TensorConverter:
    """Writes a uint8 image stack into a float32 input tensor scaled to [0, 1]."""

    scale: float = 1.0 / 255.0

    def convert(self, stack: np.ndarray, tensor: np.ndarray) -> np.ndarray:
        if stack.size != tensor.size:
            raise FrameInvalidError(f"image stack {stack.shape} does not fit input tensor {tensor.shape}")
        np.multiply(stack.reshape(tensor.shape), self.scale, out=tensor, casting="unsafe")
        return tensor
