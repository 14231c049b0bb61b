from __future__ import annotations

import logging
import math
import time
from typing import Any

import numpy as np

from ..config.local_settings import (
    ONE_EURO_ENABLED_KEY,
    ONE_EURO_MIN_CUTOFF_KEY,
    ONE_EURO_SPEED_CUTOFF_KEY,
    LocalSettings,
)
from ..events import EventBus, ExceptionEvent, NewFilteredResultEvent, NewFrameEvent, NewTransformedFrameEvent
from ..exceptions import FrameInvalidError, InferenceError
from ..inference.runner import InferenceRunner
from ..sources.video_source import VideoSource
from ..utils.metrics import PerformanceTracker
from ..utils.types import ColorType
from .collector import ImageCollector
from .converter import TensorConverter
from .corruption import FastCorruptionDetector
from .expressions import process_eye_expressions
from .filters import OneEuroFilter
from .transformer import CameraSettings, DualImageTransformer, ImageTransformer


class ProcessingPipeline:
    """Source -> corruption check -> transform -> collect -> tensor -> inference -> filter.

    ``run_update`` is synchronous and returns ``None`` whenever a stage has
    nothing to offer. Frames published in events are only valid for the
    duration of the handler call.
    """

    domain = "base"
    regions = 1

    def __init__(self, event_bus: EventBus | None = None, tracker: PerformanceTracker | None = None) -> None:
        self.event_bus = event_bus or EventBus()
        self.tracker = tracker
        self.logger = logging.getLogger(f"{__name__}.{type(self).__name__}")
        self.video_source: VideoSource | None = None
        self.transformer: Any = None
        self.converter = TensorConverter()
        self.runner: InferenceRunner | None = None
        self.filter: OneEuroFilter | None = None
        self.detector = FastCorruptionDetector()
        self.collector = ImageCollector()

    def set_runner(self, runner: InferenceRunner | None) -> None:
        """Install a model and size the transform/collect stages to its input."""
        previous = self.runner
        self.runner = runner
        if previous is not None and previous is not runner:
            previous.close()
        if runner is None:
            return
        self._set_target_size(runner.input_size)
        self.collector.configure(max(1, runner.input_channels // self.regions))
        self.collector.reset()

    def _set_target_size(self, size: tuple[int, int]) -> None:
        if isinstance(self.transformer, ImageTransformer):
            self.transformer.target_size = size

    def _record(self, stage: str, started: float) -> None:
        if self.tracker is not None:
            self.tracker.update(stage, (time.perf_counter() - started) * 1000.0)

    def _drop(self, stage: str) -> None:
        if self.tracker is not None:
            self.tracker.mark_dropped(stage)

    def run_update(self) -> np.ndarray | None:
        started = time.perf_counter()
        source = self.video_source
        if source is None:
            return None

        frame = source.get_frame(ColorType.GRAY8)
        if frame is None:
            return None

        corrupted, reason = self.detector.is_corrupted(frame)
        if corrupted:
            self.logger.debug("Dropping corrupted frame", extra={"event": "frame_corrupted", "reason": reason})
            frame.release()
            self._drop("capture")
            return None

        self.event_bus.publish(NewFrameEvent(self.domain, frame))

        if not source.complete:
            # One eye camera alone cannot fill both model regions.
            frame.release()
            self._drop("collect")
            return None

        transformed = self.transformer.apply(frame) if self.transformer is not None else None
        frame.release()
        if transformed is None:
            return None

        self.event_bus.publish(NewTransformedFrameEvent(self.domain, transformed))

        collected = self.collector.apply(transformed)
        transformed.release()
        if collected is None:
            return None

        runner = self.runner
        if runner is None:
            return None

        try:
            self.converter.convert(collected, runner.input_tensor)
            raw = runner.run()
        except (FrameInvalidError, InferenceError) as exc:
            stage = "inference" if isinstance(exc, InferenceError) else "convert"
            self.logger.error(
                "Pipeline stage failed",
                extra={"event": "pipeline_failure", "domain": self.domain, "stage": stage, "error": str(exc)},
            )
            self.event_bus.publish(ExceptionEvent(self.domain, stage, exc))
            self._drop("inference")
            return None

        if self.filter is not None:
            raw = self.filter.filter(raw)

        result = self._post_process(raw)
        if result is None:
            return None

        self.event_bus.publish(NewFilteredResultEvent(self.domain, frame.sequence, result))
        self._record(self.domain, started)
        return result

    def _post_process(self, values: np.ndarray) -> np.ndarray | None:
        return values

    def reset_filter(self) -> None:
        if self.filter is not None:
            self.filter.reset()

    def dispose(self) -> None:
        source = self.video_source
        self.video_source = None
        if source is not None:
            source.dispose()
        self.set_runner(None)
        self.reset_filter()
        self.filter = None
        self.collector.reset()


class EyeProcessingPipeline(ProcessingPipeline):
    domain = "eye"
    regions = 2

    def __init__(self, event_bus: EventBus | None = None, tracker: PerformanceTracker | None = None) -> None:
        super().__init__(event_bus, tracker)
        self.transformer = DualImageTransformer()
        self.stabilize_eyes = True
        self._last_vertical_gaze = 0.0

    def _set_target_size(self, size: tuple[int, int]) -> None:
        self.transformer.set_target_size(size)

    def set_left_transformation(self, settings: CameraSettings) -> None:
        self.transformer.left.settings = settings

    def set_right_transformation(self, settings: CameraSettings) -> None:
        self.transformer.right.settings = settings

    def _post_process(self, values: np.ndarray) -> np.ndarray | None:
        result = process_eye_expressions(values, stabilize=self.stabilize_eyes)
        if result is None:
            self.logger.warning(
                "Eye model returned too few values",
                extra={"event": "short_output", "size": int(np.asarray(values).size)},
            )
            return None
        vertical = float(result[1])
        if math.isnan(vertical):
            self.logger.debug("Both lids closed, holding vertical gaze", extra={"event": "gaze_hold"})
            result[1] = result[4] = self._last_vertical_gaze
        else:
            self._last_vertical_gaze = vertical
        return result


class FaceProcessingPipeline(ProcessingPipeline):
    domain = "face"
    regions = 1

    def __init__(self, event_bus: EventBus | None = None, tracker: PerformanceTracker | None = None) -> None:
        super().__init__(event_bus, tracker)
        self.transformer = ImageTransformer(target_size=(256, 256))

    def set_transformation(self, settings: CameraSettings) -> None:
        self.transformer.settings = settings


def build_filter(settings: LocalSettings, channels: int) -> OneEuroFilter | None:
    """One-Euro filter from the user's settings, or ``None`` when disabled."""
    if not settings.read_setting(ONE_EURO_ENABLED_KEY, True):
        return None
    return OneEuroFilter(
        np.zeros(channels, dtype=np.float32),
        min_cutoff=settings.read_setting(ONE_EURO_MIN_CUTOFF_KEY, 1.0),
        beta=settings.read_setting(ONE_EURO_SPEED_CUTOFF_KEY, 1.0),
    )
