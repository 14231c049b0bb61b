import numpy as np
import pytest

from conftest import FakeBackend, FakeRunner, noise_image
from expression_tracker.calibration import FACE_EXPRESSIONS
from expression_tracker.config import LocalSettings
from expression_tracker.config.local_settings import ONE_EURO_ENABLED_KEY
from expression_tracker.events import (
    EventBus,
    ExceptionEvent,
    NewFilteredResultEvent,
    NewFrameEvent,
    NewTransformedFrameEvent,
)
from expression_tracker.exceptions import InferenceError
from expression_tracker.processing import EyeProcessingPipeline, FaceProcessingPipeline, build_filter
from expression_tracker.sources import DualCameraSource, SingleCameraSource
from expression_tracker.utils.metrics import PerformanceTracker

OPEN_EYES = [0.5, 0.5, 0.0, 0.5, 0.5, 0.0]


def _source(image):
    backend = FakeBackend("fake")
    backend.start_capture()
    backend.set_raw_frame(image)
    return SingleCameraSource(backend)


def _eye_pipeline(outputs, image=None, tracker=None):
    bus = EventBus()
    pipeline = EyeProcessingPipeline(bus, tracker)
    pipeline.video_source = _source(noise_image() if image is None else image)
    pipeline.set_runner(FakeRunner(outputs))
    return pipeline, bus


def _record(bus):
    seen = []
    for event_type in (NewFrameEvent, NewTransformedFrameEvent, NewFilteredResultEvent, ExceptionEvent):
        bus.subscribe(event_type, lambda event, name=event_type.__name__: seen.append((name, event)))
    return seen


def test_eye_update_publishes_stages_in_order():
    tracker = PerformanceTracker()
    pipeline, bus = _eye_pipeline([OPEN_EYES], tracker=tracker)
    seen = _record(bus)

    result = pipeline.run_update()
    assert result == pytest.approx([0.0, 0.0, 1.0, 0.0, 0.0, 1.0])
    assert [name for name, _ in seen] == ["NewFrameEvent", "NewTransformedFrameEvent", "NewFilteredResultEvent"]
    transformed = seen[1][1].frame
    assert len(transformed.images) == 2
    assert tracker.snapshot()["eye"]["frames"] == 1.0


def test_set_runner_sizes_stages_to_model_input():
    pipeline, _ = _eye_pipeline([OPEN_EYES])
    pipeline.set_runner(FakeRunner([OPEN_EYES], channels=4, size=16))
    assert pipeline.transformer.left.target_size == (16, 16)
    assert pipeline.collector.history == 2
    assert pipeline.run_update() is None
    assert pipeline.run_update() is not None


def test_replacing_runner_closes_previous():
    pipeline, _ = _eye_pipeline([OPEN_EYES])
    first = pipeline.runner
    pipeline.set_runner(FakeRunner([OPEN_EYES]))
    assert first.closed


def test_corrupted_frame_is_dropped_before_transform():
    tracker = PerformanceTracker()
    pipeline, bus = _eye_pipeline([OPEN_EYES], image=np.full((32, 64), 90, dtype=np.uint8), tracker=tracker)
    seen = _record(bus)

    assert pipeline.run_update() is None
    assert seen == []
    assert pipeline.runner.calls == 0
    assert tracker.snapshot()["capture"]["dropped"] == 1.0


def test_inference_failure_is_published_and_skipped():
    pipeline, bus = _eye_pipeline([OPEN_EYES])
    pipeline.runner.error = InferenceError("session lost")
    seen = _record(bus)

    assert pipeline.run_update() is None
    name, event = seen[-1]
    assert name == "ExceptionEvent"
    assert event.stage == "inference"
    assert isinstance(event.error, InferenceError)

    pipeline.runner.error = None
    assert pipeline.run_update() is not None


def test_closed_lids_hold_last_vertical_gaze():
    looking_up = [0.75, 0.5, 0.0, 0.75, 0.5, 0.0]
    closed = [0.1, 0.5, 1.0, 0.1, 0.5, 1.0]
    pipeline, _ = _eye_pipeline([looking_up, closed])

    first = pipeline.run_update()
    second = pipeline.run_update()
    assert first[1] == pytest.approx(0.5)
    assert second[1] == pytest.approx(0.5)
    assert second[4] == pytest.approx(0.5)
    assert second[2] == 0.0


def test_closed_lids_before_any_gaze_hold_zero():
    pipeline, _ = _eye_pipeline([[0.9, 0.5, 1.0, 0.9, 0.5, 1.0]])
    assert pipeline.run_update()[1] == 0.0


def test_no_source_or_runner_yields_nothing():
    pipeline = EyeProcessingPipeline()
    assert pipeline.run_update() is None
    pipeline.video_source = _source(noise_image())
    assert pipeline.run_update() is None


def test_face_pipeline_passes_filtered_values_through():
    values = np.linspace(0.0, 1.0, len(FACE_EXPRESSIONS))
    pipeline = FaceProcessingPipeline()
    pipeline.video_source = _source(noise_image(48, 48))
    pipeline.set_runner(FakeRunner([values], channels=1, size=16))
    pipeline.filter = build_filter(LocalSettings(), len(FACE_EXPRESSIONS))

    assert pipeline.transformer.target_size == (16, 16)
    result = pipeline.run_update()
    assert result.shape == (len(FACE_EXPRESSIONS),)
    assert float(result[-1]) < 1.0


def test_filter_can_be_disabled():
    settings = LocalSettings()
    settings.save_setting(ONE_EURO_ENABLED_KEY, False)
    assert build_filter(settings, 6) is None


def test_dispose_releases_source_and_runner():
    pipeline, _ = _eye_pipeline([OPEN_EYES])
    backend = pipeline.video_source.backend
    runner = pipeline.runner
    pipeline.dispose()
    assert backend.disposed
    assert runner.closed
    assert pipeline.video_source is None


def test_dual_source_with_one_eye_does_not_run_inference():
    bus = EventBus()
    seen = _record(bus)
    backend = FakeBackend("left")
    backend.start_capture()
    backend.set_raw_frame(noise_image(32, 32))
    pipeline = EyeProcessingPipeline(bus)
    pipeline.video_source = DualCameraSource(backend, None)
    pipeline.set_runner(FakeRunner([OPEN_EYES]))

    assert pipeline.run_update() is None
    assert pipeline.runner.calls == 0
    assert [name for name, _ in seen] == ["NewFrameEvent"]
