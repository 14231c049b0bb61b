from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

# Keys shared with the desktop application's settings file.
EYE_MODEL_KEY = "EyeHome_EyeModel"
FACE_MODEL_KEY = "FaceHome_FaceModel"
ONE_EURO_ENABLED_KEY = "AppSettings_OneEuroEnabled"
ONE_EURO_MIN_CUTOFF_KEY = "AppSettings_OneEuroMinFreqCutoff"
ONE_EURO_SPEED_CUTOFF_KEY = "AppSettings_OneEuroSpeedCutoff"
STABILIZE_EYES_KEY = "AppSettings_StabilizeEyes"
USE_GPU_KEY = "AppSettings_UseGPU"


def last_opened_key(camera_name: str) -> str:
    return f"LastOpened{camera_name}"


def preferred_capture_key(camera_name: str) -> str:
    return f"LastOpenedPreferredCapture{camera_name}"


def autostart_key(camera_name: str) -> str:
    return f"ShouldAutostart{camera_name}"


class LocalSettings:
    """Typed key/value store persisted as a flat JSON object.

    Reads never raise: a missing key, an unreadable file or a value of the
    wrong type all fall back to the caller's default.
    """

    def __init__(self, path: Path | None = None, autosave: bool = True) -> None:
        self.path = path
        self.autosave = autosave
        self._lock = threading.Lock()
        self._values: dict[str, Any] = self._load()

    def _load(self) -> dict[str, Any]:
        if self.path is None or not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.error(
                "Could not read settings file",
                extra={"event": "settings_load_failed", "path": str(self.path), "error": str(exc)},
            )
            return {}
        if not isinstance(data, dict):
            return {}
        return data

    def read_setting(self, key: str, default: T | None = None) -> T | Any:
        with self._lock:
            if key not in self._values:
                return default
            value = self._values[key]
        if default is None or value is None:
            return value if value is not None else default
        return _coerce(key, value, default)

    def save_setting(self, key: str, value: Any) -> None:
        if not key:
            return
        try:
            json.dumps(value)
        except (TypeError, ValueError) as exc:
            logger.error(
                "Cannot save setting",
                extra={"event": "settings_save_rejected", "key": key, "error": str(exc)},
            )
            return
        with self._lock:
            self._values[key] = value
        if self.autosave:
            self.flush()

    def contains(self, key: str) -> bool:
        with self._lock:
            return key in self._values

    def flush(self) -> None:
        if self.path is None:
            return
        with self._lock:
            body = json.dumps(self._values, indent=2, sort_keys=True)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(body, encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as exc:
            logger.error(
                "Could not save settings file",
                extra={"event": "settings_save_failed", "path": str(self.path), "error": str(exc)},
            )


def _coerce(key: str, value: Any, default: T) -> T | Any:
    expected = type(default)
    if isinstance(value, expected):
        return value
    try:
        if expected is bool:
            if isinstance(value, str):
                return value.strip().lower() not in {"0", "false", "no", "off", ""}
            return bool(value)
        if expected in (int, float, str):
            return expected(value)
    except (TypeError, ValueError):
        pass
    logger.error(
        "Cannot load setting key",
        extra={"event": "settings_type_mismatch", "key": key, "expected": expected.__name__},
    )
    return default
