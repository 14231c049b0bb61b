import pytest

from expression_tracker.config import LocalSettings
from expression_tracker.config.local_settings import EYE_MODEL_KEY
from expression_tracker.exceptions import InferenceError, ModelMissingError
from expression_tracker.inference import InferenceRunner, load_runner, select_providers
from expression_tracker.inference import runner as runner_module


class RecordingFactory:
    def __init__(self) -> None:
        self.paths = []

    def create(self, path):
        self.paths.append(path)
        return path


def _models(tmp_path, *names):
    for name in names:
        (tmp_path / name).write_bytes(b"onnx")
    return tmp_path


def test_configured_model_is_loaded(tmp_path):
    settings = LocalSettings()
    settings.save_setting(EYE_MODEL_KEY, "custom.onnx")
    factory = RecordingFactory()
    load_runner(settings, EYE_MODEL_KEY, "eyeModel.onnx", _models(tmp_path, "custom.onnx", "eyeModel.onnx"), factory)
    assert factory.paths == [tmp_path / "custom.onnx"]


def test_missing_model_falls_back_to_default(tmp_path):
    settings = LocalSettings()
    settings.save_setting(EYE_MODEL_KEY, "gone.onnx")
    factory = RecordingFactory()
    load_runner(settings, EYE_MODEL_KEY, "eyeModel.onnx", _models(tmp_path, "eyeModel.onnx"), factory)
    assert factory.paths == [tmp_path / "eyeModel.onnx"]


def test_missing_default_raises(tmp_path):
    with pytest.raises(ModelMissingError):
        load_runner(LocalSettings(), EYE_MODEL_KEY, "eyeModel.onnx", tmp_path, RecordingFactory())


def test_unloadable_model_raises_inference_error(tmp_path):
    path = _models(tmp_path, "broken.onnx") / "broken.onnx"
    with pytest.raises(InferenceError):
        InferenceRunner(path, use_gpu=False)


def test_gpu_providers_come_before_cpu(monkeypatch):
    monkeypatch.setattr(
        runner_module.ort,
        "get_available_providers",
        lambda: ["CPUExecutionProvider", "CUDAExecutionProvider"],
    )
    assert select_providers(True) == ["CUDAExecutionProvider", "CPUExecutionProvider"]
    assert select_providers(False) == ["CPUExecutionProvider"]
