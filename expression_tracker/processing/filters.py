from __future__ import annotations

import math

import numpy as np


def smoothing_factor(t_e: float, cutoff: np.ndarray | float) -> np.ndarray | float:
    r = 2 * math.pi * cutoff * t_e
    return r / (r + 1)


def exponential_smoothing(a, x, x_prev):
    return a * x + (1 - a) * x_prev


class OneEuroFilter:
    """One-Euro low-pass filter over a vector of channels.

    Samples are assumed to arrive at a fixed period, so no timestamps are
    needed. min_cutoff: lower means smoother and laggier. beta: higher
    reacts faster to quick movement.
    """

    def __init__(
        self,
        x0: np.ndarray,
        min_cutoff: float = 1.0,
        beta: float = 0.0,
        d_cutoff: float = 1.0,
        sample_period: float = 1.0,
    ) -> None:
        self.min_cutoff = float(min_cutoff)
        self.beta = float(beta)
        self.d_cutoff = float(d_cutoff)
        self.sample_period = float(sample_period)
        self._x0 = np.asarray(x0, dtype=np.float32).copy()
        self.x_prev = self._x0.copy()
        self.dx_prev = np.zeros_like(self._x0)

    def filter(self, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=np.float32)
        if x.shape != self.x_prev.shape:
            # Model output size changed; restart from the new sample.
            self._x0 = np.zeros_like(x)
            self.x_prev = x.copy()
            self.dx_prev = np.zeros_like(x)
            return x.copy()

        t_e = self.sample_period
        a_d = smoothing_factor(t_e, self.d_cutoff)
        dx = (x - self.x_prev) / t_e
        dx_hat = exponential_smoothing(a_d, dx, self.dx_prev)

        cutoff = self.min_cutoff + self.beta * np.abs(dx_hat)
        a = smoothing_factor(t_e, cutoff)
        x_hat = exponential_smoothing(a, x, self.x_prev)

        self.x_prev = x_hat.astype(np.float32)
        self.dx_prev = dx_hat.astype(np.float32)
        return self.x_prev.copy()

    __call__ = filter

    def reset(self) -> None:
        self.x_prev = self._x0.copy()
        self.dx_prev = np.zeros_like(self._x0)
