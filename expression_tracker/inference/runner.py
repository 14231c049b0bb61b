from __future__ import annotations

import logging
import threading
from pathlib import Path

import numpy as np
import onnxruntime as ort

from ..config.local_settings import LocalSettings
from ..exceptions import InferenceError, ModelMissingError

logger = logging.getLogger(__name__)

GPU_PROVIDERS = ("CUDAExecutionProvider", "DmlExecutionProvider", "CoreMLExecutionProvider")
CPU_PROVIDER = "CPUExecutionProvider"


def select_providers(use_gpu: bool = True) -> list[str]:
    available = ort.get_available_providers()
    providers: list[str] = []
    if use_gpu:
        providers.extend(name for name in GPU_PROVIDERS if name in available)
    providers.append(CPU_PROVIDER)
    return providers


def _concrete_shape(shape: list) -> tuple[int, ...]:
    # Symbolic batch dimensions come back as strings or None.
    return tuple(dim if isinstance(dim, int) and dim > 0 else 1 for dim in shape)


class InferenceRunner:
    """One ONNX session with a reusable float32 input buffer."""

    def __init__(self, model_path: Path, use_gpu: bool = True) -> None:
        self.model_path = Path(model_path)
        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        try:
            self.session = ort.InferenceSession(
                str(self.model_path),
                sess_options=options,
                providers=select_providers(use_gpu),
            )
        except Exception as exc:
            raise InferenceError(f"Could not load model {self.model_path}: {exc}") from exc

        model_input = self.session.get_inputs()[0]
        self.input_name = model_input.name
        self.input_shape = _concrete_shape(list(model_input.shape))
        self.input_tensor = np.zeros(self.input_shape, dtype=np.float32)
        self._lock = threading.Lock()

    @property
    def input_channels(self) -> int:
        return self.input_shape[1] if len(self.input_shape) >= 4 else 1

    @property
    def input_size(self) -> tuple[int, int]:
        """(width, height) expected by the model."""
        return self.input_shape[-1], self.input_shape[-2]

    @property
    def providers(self) -> list[str]:
        return list(self.session.get_providers())

    def run(self) -> np.ndarray:
        with self._lock:
            try:
                outputs = self.session.run(None, {self.input_name: self.input_tensor})
            except Exception as exc:
                raise InferenceError(f"Inference failed for {self.model_path.name}: {exc}") from exc
        return np.asarray(outputs[0], dtype=np.float32).reshape(-1)

    def close(self) -> None:
        self.session = None


class InferenceFactory:
    def __init__(self, use_gpu: bool = True) -> None:
        self.use_gpu = use_gpu

    def create(self, model_path: Path) -> InferenceRunner:
        runner = InferenceRunner(model_path, use_gpu=self.use_gpu)
        logger.info(
            "Model loaded",
            extra={
                "event": "model_loaded",
                "model": str(model_path),
                "input_shape": list(runner.input_shape),
                "providers": runner.providers,
            },
        )
        return runner


def load_runner(
    settings: LocalSettings,
    key: str,
    default_name: str,
    model_dir: Path,
    factory: InferenceFactory,
) -> InferenceRunner:
    """Load the model named by ``key``, falling back once to ``default_name``."""
    name = settings.read_setting(key, default_name) or default_name
    path = Path(model_dir) / name
    if path.is_file():
        return factory.create(path)

    logger.error(
        "Model file does not exist, loading default",
        extra={"event": "model_missing", "model": str(path), "fallback": default_name},
    )
    fallback = Path(model_dir) / default_name
    if not fallback.is_file():
        raise ModelMissingError(f"Neither {path} nor default model {fallback} exists")
    return factory.create(fallback)
