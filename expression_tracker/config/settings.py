from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() not in {"0", "false", "no", "off"}


@dataclass
class TrackerSettings:
    project_root: Path
    data_dir: Path | None = None
    log_level: str = "INFO"
    target_fps: int = 60
    eye_input_size: int = 128
    face_input_size: int = 256
    serial_baud_rate: int = 3_000_000
    serial_read_timeout: float = 0.5
    camera_open_timeout: float = 15.0
    use_gpu: bool = True
    metrics_interval: float = 5.0
    benchmark_seconds: int = 0

    @property
    def base_dir(self) -> Path:
        return self.data_dir if self.data_dir is not None else self.project_root / "data"

    @property
    def log_dir(self) -> Path:
        return self.base_dir / "logs"

    @property
    def model_dir(self) -> Path:
        return self.base_dir / "models"

    @property
    def settings_file(self) -> Path:
        return self.base_dir / "LocalSettings.json"

    def ensure_directories(self) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.model_dir.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(cls, project_root: Path) -> "TrackerSettings":
        data_dir = os.getenv("TRACKER_DATA_DIR")
        return cls(
            project_root=project_root,
            data_dir=Path(data_dir.strip()).expanduser() if data_dir and data_dir.strip() else None,
            log_level=os.getenv("TRACKER_LOG_LEVEL", "INFO").strip().upper() or "INFO",
            target_fps=max(1, _env_int("TRACKER_TARGET_FPS", 60)),
            eye_input_size=max(16, _env_int("TRACKER_EYE_INPUT_SIZE", 128)),
            face_input_size=max(16, _env_int("TRACKER_FACE_INPUT_SIZE", 256)),
            serial_baud_rate=_env_int("TRACKER_SERIAL_BAUD", 3_000_000),
            serial_read_timeout=max(0.05, _env_float("TRACKER_SERIAL_READ_TIMEOUT", 0.5)),
            camera_open_timeout=max(1.0, _env_float("TRACKER_CAMERA_OPEN_TIMEOUT", 15.0)),
            use_gpu=_env_bool("TRACKER_USE_GPU", True),
            metrics_interval=max(0.5, _env_float("TRACKER_METRICS_INTERVAL", 5.0)),
            benchmark_seconds=max(0, _env_int("TRACKER_BENCHMARK_SECONDS", 0)),
        )
