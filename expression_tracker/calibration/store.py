from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Sequence

import numpy as np

from ..config.local_settings import LocalSettings

logger = logging.getLogger(__name__)

EYE_EXPRESSION_INDEX = {
    "LeftEyeX": 0,
    "LeftEyeY": 1,
    "LeftEyeLid": 2,
    "RightEyeX": 3,
    "RightEyeY": 4,
    "RightEyeLid": 5,
}

FACE_EXPRESSIONS = (
    "CheekPuffLeft",
    "CheekPuffRight",
    "CheekSuckLeft",
    "CheekSuckRight",
    "JawOpen",
    "JawForward",
    "JawLeft",
    "JawRight",
    "NoseSneerLeft",
    "NoseSneerRight",
    "MouthFunnel",
    "MouthPucker",
    "MouthLeft",
    "MouthRight",
    "MouthRollUpper",
    "MouthRollLower",
    "MouthShrugUpper",
    "MouthShrugLower",
    "MouthClose",
    "MouthSmileLeft",
    "MouthSmileRight",
    "MouthFrownLeft",
    "MouthFrownRight",
    "MouthDimpleLeft",
    "MouthDimpleRight",
    "MouthUpperUpLeft",
    "MouthUpperUpRight",
    "MouthLowerDownLeft",
    "MouthLowerDownRight",
    "MouthPressLeft",
    "MouthPressRight",
    "MouthStretchLeft",
    "MouthStretchRight",
    "TongueOut",
    "TongueUp",
    "TongueDown",
    "TongueLeft",
    "TongueRight",
    "TongueRoll",
    "TongueBendDown",
    "TongueCurlUp",
    "TongueSquish",
    "TongueFlat",
    "TongueTwistLeft",
    "TongueTwistRight",
)

FACE_EXPRESSION_INDEX = {name: index for index, name in enumerate(FACE_EXPRESSIONS)}

# Gaze axes are signed and pass through untouched.
EYE_CALIBRATED = ("LeftEyeLid", "RightEyeLid")

DEFAULT_LOWER = 0.0
DEFAULT_UPPER = 1.0
DEFAULT_MIN = 0.0
DEFAULT_MAX = 1.0

_SUFFIXES = ("Lower", "Upper", "Min", "Max")

Listener = Callable[[str | None], None]


@dataclass(frozen=True)
class CalibrationEntry:
    name: str
    lower: float = DEFAULT_LOWER
    upper: float = DEFAULT_UPPER
    min: float = DEFAULT_MIN
    max: float = DEFAULT_MAX

    def remap(self, value: float) -> float:
        """Map [lower, upper] onto [min, max], clamped to [min, max]."""
        span = self.upper - self.lower
        if span == 0:
            return self.min
        mapped = self.min + (value - self.lower) * (self.max - self.min) / span
        low, high = (self.min, self.max) if self.min <= self.max else (self.max, self.min)
        return min(max(mapped, low), high)


def split_setting_key(key: str) -> tuple[str, str] | None:
    for suffix in _SUFFIXES:
        if key.endswith(suffix) and len(key) > len(suffix):
            return key[: -len(suffix)], suffix.lower()
    return None


class CalibrationStore:
    """Per-expression calibration bounds, optionally persisted as ``<Name>Lower`` / ``<Name>Upper`` settings."""

    def __init__(self, settings: LocalSettings | None = None, names: Iterable[str] | None = None) -> None:
        self.settings = settings
        self._lock = threading.Lock()
        self._entries: dict[str, CalibrationEntry] = {}
        self._listeners: list[Listener] = []
        known = list(names) if names is not None else list(EYE_CALIBRATED) + list(FACE_EXPRESSIONS)
        for name in known:
            self._entries[name] = self._load_entry(name)

    def _load_entry(self, name: str) -> CalibrationEntry:
        if self.settings is None:
            return CalibrationEntry(name)
        return CalibrationEntry(
            name=name,
            lower=float(self.settings.read_setting(f"{name}Lower", DEFAULT_LOWER)),
            upper=float(self.settings.read_setting(f"{name}Upper", DEFAULT_UPPER)),
            min=float(self.settings.read_setting(f"{name}Min", DEFAULT_MIN)),
            max=float(self.settings.read_setting(f"{name}Max", DEFAULT_MAX)),
        )

    def add_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def _notify(self, name: str | None) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(name)
            except Exception:
                logger.exception("Calibration listener failed", extra={"event": "listener_failure", "expression": name})

    def get(self, name: str) -> CalibrationEntry:
        with self._lock:
            entry = self._entries.get(name)
        return entry if entry is not None else CalibrationEntry(name)

    def names(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def set_expression(self, key: str, value: float) -> bool:
        """Update one bound addressed as ``<Name>Lower``, ``<Name>Upper``, ``<Name>Min`` or ``<Name>Max``."""
        parsed = split_setting_key(key)
        if parsed is None:
            logger.warning("Unknown calibration key", extra={"event": "calibration_key_invalid", "key": key})
            return False
        name, field_name = parsed
        with self._lock:
            entry = self._entries.get(name, CalibrationEntry(name))
            self._entries[name] = replace(entry, **{field_name: float(value)})
        if self.settings is not None:
            self.settings.save_setting(key, float(value))
        self._notify(name)
        return True

    def _reset(self, range_field: str, output_field: str, range_value: float, output_value: float) -> None:
        with self._lock:
            for name, entry in list(self._entries.items()):
                self._entries[name] = replace(entry, **{range_field: range_value, output_field: output_value})
            names = list(self._entries)
        if self.settings is not None:
            range_suffix = range_field.capitalize()
            output_suffix = output_field.capitalize()
            for name in names:
                self.settings.save_setting(f"{name}{range_suffix}", range_value)
                self.settings.save_setting(f"{name}{output_suffix}", output_value)
        self._notify(None)

    def reset_minimums(self) -> None:
        self._reset("lower", "min", DEFAULT_LOWER, DEFAULT_MIN)
        logger.info("Calibration minimums reset", extra={"event": "calibration_reset", "bound": "minimum"})

    def reset_maximums(self) -> None:
        self._reset("upper", "max", DEFAULT_UPPER, DEFAULT_MAX)
        logger.info("Calibration maximums reset", extra={"event": "calibration_reset", "bound": "maximum"})

    def remap(self, name: str, value: float) -> float:
        return self.get(name).remap(value)

    def _apply(self, values: Sequence[float], index: dict[str, int]) -> np.ndarray:
        result = np.asarray(values, dtype=np.float32).copy()
        with self._lock:
            calibrated = set(self._entries)
        for name, position in index.items():
            if name in calibrated and position < result.size:
                result[position] = self.remap(name, float(result[position]))
        return result

    def apply_eye(self, values: Sequence[float]) -> np.ndarray:
        return self._apply(values, EYE_EXPRESSION_INDEX)

    def apply_face(self, values: Sequence[float]) -> np.ndarray:
        return self._apply(values, FACE_EXPRESSION_INDEX)
