from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from threading import Lock


@dataclass
class StagePerf:
    frames: int = 0
    dropped: int = 0
    latency_ema_ms: float = 0.0
    latency_samples: int = 0
    events: deque[float] = field(default_factory=lambda: deque(maxlen=240))


class PerformanceTracker:
    def __init__(self, alpha: float = 0.2) -> None:
        self._lock = Lock()
        self._alpha = alpha
        self._stats: dict[str, StagePerf] = {}

    def update(self, stage: str, latency_ms: float) -> None:
        now = time.perf_counter()
        with self._lock:
            stat = self._stats.setdefault(stage, StagePerf())
            stat.frames += 1
            stat.events.append(now)
            stat.latency_samples += 1
            if stat.latency_samples == 1:
                stat.latency_ema_ms = latency_ms
            else:
                stat.latency_ema_ms = (self._alpha * latency_ms) + ((1.0 - self._alpha) * stat.latency_ema_ms)

    def mark_dropped(self, stage: str) -> None:
        with self._lock:
            self._stats.setdefault(stage, StagePerf()).dropped += 1

    def snapshot(self) -> dict[str, dict[str, float]]:
        with self._lock:
            output: dict[str, dict[str, float]] = {}
            now = time.perf_counter()
            for stage, stat in self._stats.items():
                output[stage] = {
                    "fps": self._compute_fps(stat.events, now),
                    "latency_ms": stat.latency_ema_ms,
                    "frames": float(stat.frames),
                    "dropped": float(stat.dropped),
                }
            return output

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()

    @staticmethod
    def _compute_fps(events: deque[float], now: float) -> float:
        if len(events) < 2:
            return 0.0
        window_seconds = max(1e-6, now - events[0])
        return len(events) / window_seconds
