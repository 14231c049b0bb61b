from __future__ import annotations

import argparse
import logging
import sys
import threading
import time
from pathlib import Path
from queue import Empty, Queue

if __package__ in {None, ""}:
    sys.path.append(str(Path(__file__).resolve().parent.parent))

from expression_tracker.utils.runtime import configure_runtime_environment

configure_runtime_environment()

from expression_tracker.calibration import FACE_EXPRESSIONS, CalibrationStore
from expression_tracker.config import LocalSettings, TrackerSettings
from expression_tracker.config.local_settings import (
    EYE_MODEL_KEY,
    FACE_MODEL_KEY,
    STABILIZE_EYES_KEY,
    USE_GPU_KEY,
    autostart_key,
    last_opened_key,
    preferred_capture_key,
)
from expression_tracker.events import EventBus, ExceptionEvent
from expression_tracker.exceptions import InferenceError
from expression_tracker.inference import InferenceFactory, load_runner
from expression_tracker.processing import CameraSettings, EyeProcessingPipeline, FaceProcessingPipeline, build_filter
from expression_tracker.processing.expressions import EYE_EXPRESSION_COUNT
from expression_tracker.sources import EyeSourceManager, FaceSourceManager
from expression_tracker.utils import (
    PerformanceTracker,
    configure_logger,
    put_latest,
    take_latest,
)
from expression_tracker.utils.types import ExpressionUpdate

DEFAULT_EYE_MODEL = "eyeModel.onnx"
DEFAULT_FACE_MODEL = "faceModel.onnx"

LEFT_CAMERA = "LeftCamera"
RIGHT_CAMERA = "RightCamera"
FACE_CAMERA = "FaceCamera"


class TrackingRuntime:
    def __init__(self, settings: TrackerSettings, local_settings: LocalSettings | None = None) -> None:
        self.settings = settings
        self.settings.ensure_directories()
        self.logger = configure_logger(settings.log_dir, level=settings.log_level)
        self.local_settings = local_settings or LocalSettings(settings.settings_file)
        self.metrics = PerformanceTracker()
        self.stop_event = threading.Event()
        self.event_bus = EventBus()
        self.calibration = CalibrationStore(self.local_settings)

        self.eye_pipeline = EyeProcessingPipeline(self.event_bus, self.metrics)
        self.face_pipeline = FaceProcessingPipeline(self.event_bus, self.metrics)
        size = settings.eye_input_size
        self.eye_pipeline.transformer.set_target_size((size, size))
        self.face_pipeline.transformer.target_size = (settings.face_input_size, settings.face_input_size)

        self.eye_sources = EyeSourceManager(self.eye_pipeline, settings)
        self.face_sources = FaceSourceManager(self.face_pipeline, settings)

        self.eye_results: Queue[ExpressionUpdate] = Queue(maxsize=1)
        self.face_results: Queue[ExpressionUpdate] = Queue(maxsize=1)
        self.event_bus.subscribe(ExceptionEvent, self._on_pipeline_exception)
        self._worker: threading.Thread | None = None
        self._cycles = {"eye": 0, "face": 0}

    def _on_pipeline_exception(self, event: ExceptionEvent) -> None:
        self.metrics.mark_dropped(event.domain)

    def load_models(self) -> None:
        use_gpu = self.settings.use_gpu and self.local_settings.read_setting(USE_GPU_KEY, True)
        factory = InferenceFactory(use_gpu=use_gpu)
        for pipeline, key, default in (
            (self.eye_pipeline, EYE_MODEL_KEY, DEFAULT_EYE_MODEL),
            (self.face_pipeline, FACE_MODEL_KEY, DEFAULT_FACE_MODEL),
        ):
            try:
                pipeline.set_runner(load_runner(self.local_settings, key, default, self.settings.model_dir, factory))
            except InferenceError as exc:
                # Without a model the pipeline idles until reconfigured.
                self.logger.error(
                    "Model unavailable",
                    extra={"event": "model_unavailable", "domain": pipeline.domain, "error": str(exc)},
                )

    def load_pipeline_options(self) -> None:
        self.eye_pipeline.filter = build_filter(self.local_settings, EYE_EXPRESSION_COUNT)
        self.face_pipeline.filter = build_filter(self.local_settings, len(FACE_EXPRESSIONS))
        self.eye_pipeline.stabilize_eyes = self.local_settings.read_setting(STABILIZE_EYES_KEY, True)
        self.eye_pipeline.set_left_transformation(
            CameraSettings.from_dict(self.local_settings.read_setting(LEFT_CAMERA, {}))
        )
        self.eye_pipeline.set_right_transformation(
            CameraSettings.from_dict(self.local_settings.read_setting(RIGHT_CAMERA, {}))
        )
        self.face_pipeline.set_transformation(
            CameraSettings.from_dict(self.local_settings.read_setting(FACE_CAMERA, {}))
        )

    def start_cameras(
        self,
        left: str | None = None,
        right: str | None = None,
        face: str | None = None,
        backend: str | None = None,
    ) -> dict[str, bool]:
        """Start the requested cameras, falling back to the last opened ones marked for autostart."""
        started: dict[str, bool] = {}
        for name, address in ((FACE_CAMERA, face), (LEFT_CAMERA, left), (RIGHT_CAMERA, right)):
            preferred = backend
            if address is None:
                if not self.local_settings.read_setting(autostart_key(name), False):
                    continue
                address = self.local_settings.read_setting(last_opened_key(name), "")
                preferred = preferred or self.local_settings.read_setting(preferred_capture_key(name), "") or None
            if not address:
                continue

            if name == FACE_CAMERA:
                ok = self.face_sources.try_start_if_not_running(address, preferred)
            elif name == LEFT_CAMERA:
                ok = self.eye_sources.bind_left(address, preferred)
            else:
                ok = self.eye_sources.bind_right(address, preferred)

            started[name] = ok
            if ok:
                self.local_settings.save_setting(last_opened_key(name), address)
                self.local_settings.save_setting(autostart_key(name), True)
                if preferred:
                    self.local_settings.save_setting(preferred_capture_key(name), preferred)
            self.logger.info(
                "Camera start requested",
                extra={"event": "camera_start", "camera": name, "address": address, "ok": ok},
            )
        return started

    def start(self) -> None:
        if self._worker is not None:
            return
        self.stop_event.clear()
        self._worker = threading.Thread(target=self._processing_loop, name="processing-thread", daemon=True)
        self._worker.start()

    def stop(self) -> None:
        self.stop_event.set()
        worker = self._worker
        self._worker = None
        if worker is not None:
            worker.join(timeout=2.0)
        self.eye_sources.stop_all()
        self.face_sources.stop()
        self.eye_pipeline.dispose()
        self.face_pipeline.dispose()
        self.local_settings.flush()

    def _processing_loop(self) -> None:
        period = 1.0 / max(1, self.settings.target_fps)
        started = time.perf_counter()
        last_metrics_log = started
        while not self.stop_event.is_set():
            cycle_started = time.perf_counter()
            for pipeline, results, apply in (
                (self.eye_pipeline, self.eye_results, self.calibration.apply_eye),
                (self.face_pipeline, self.face_results, self.calibration.apply_face),
            ):
                try:
                    values = pipeline.run_update()
                except Exception as exc:
                    self.logger.exception(
                        "Pipeline cycle failed",
                        extra={"event": "worker_failure", "domain": pipeline.domain, "error": str(exc)},
                    )
                    continue
                if values is None:
                    continue
                self._cycles[pipeline.domain] += 1
                put_latest(
                    results,
                    ExpressionUpdate(
                        domain=pipeline.domain,
                        sequence=self._cycles[pipeline.domain],
                        timestamp=time.perf_counter(),
                        values=apply(values),
                    ),
                )

            now = time.perf_counter()
            if now - last_metrics_log >= self.settings.metrics_interval:
                self.logger.info("Performance snapshot", extra={"event": "metrics", "snapshot": self.metrics.snapshot()})
                last_metrics_log = now

            if self.settings.benchmark_seconds > 0 and now - started >= self.settings.benchmark_seconds:
                self.stop_event.set()
                break

            remaining = period - (time.perf_counter() - cycle_started)
            if remaining > 0:
                self.stop_event.wait(remaining)

    def latest(self, domain: str) -> ExpressionUpdate | None:
        return take_latest(self.eye_results if domain == "eye" else self.face_results)

    def run(self, duration: float | None = None) -> dict[str, dict[str, float]]:
        self.start()
        deadline = None if duration is None else time.perf_counter() + duration
        try:
            while not self.stop_event.is_set():
                if deadline is not None and time.perf_counter() >= deadline:
                    break
                try:
                    update = self.eye_results.get(timeout=0.2)
                except Empty:
                    continue
                self.logger.debug(
                    "Eye expressions",
                    extra={"event": "eye_update", "values": [round(float(v), 4) for v in update.values]},
                )
        finally:
            snapshot = self.metrics.snapshot()
            self.stop()
        return snapshot


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Eye and face expression tracker")
    subparsers = parser.add_subparsers(dest="command")

    run = subparsers.add_parser("run", help="Start cameras and run the tracking pipelines")
    run.add_argument("--left", default=None, help="Left eye camera address")
    run.add_argument("--right", default=None, help="Right eye camera address")
    run.add_argument("--face", default=None, help="Face camera address")
    run.add_argument("--backend", default=None, help="Preferred capture backend: uvc, serial or opencv")
    run.add_argument("--fps", type=int, default=None, help="Processing loop rate")
    run.add_argument("--seconds", type=float, default=None, help="Stop after this many seconds")
    run.add_argument("--no-gpu", action="store_true", help="Disable GPU inference providers")

    devices = subparsers.add_parser("devices", help="List camera addresses that can be opened")
    devices.add_argument("--max-index", type=int, default=4, help="Highest OpenCV camera index to probe")
    devices.add_argument("--no-probe", action="store_true", help="Skip probing OpenCV camera indices")
    return parser


def _run_command(args: argparse.Namespace, project_root: Path) -> int:
    settings = TrackerSettings.from_env(project_root=project_root)
    if args.fps is not None:
        settings.target_fps = max(1, args.fps)
    if args.no_gpu:
        settings.use_gpu = False

    runtime = TrackingRuntime(settings)
    runtime.load_models()
    runtime.load_pipeline_options()
    started = runtime.start_cameras(left=args.left, right=args.right, face=args.face, backend=args.backend)
    if not any(started.values()):
        print("No camera could be started.")
        runtime.stop()
        return 1

    snapshot = runtime.run(duration=args.seconds)
    for stage, stats in sorted(snapshot.items()):
        print(f"{stage}: {stats['fps']:.2f}fps/{stats['latency_ms']:.1f}ms, dropped={int(stats['dropped'])}")
    return 0


def _devices_command(args: argparse.Namespace) -> int:
    from expression_tracker.capture.discovery import discover_devices

    for device in discover_devices(max_index=args.max_index, probe_platform=not args.no_probe):
        print(f"{device.backend:7} {device.address}  {device.description}")
    return 0


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()
    project_root = Path(__file__).resolve().parent.parent
    try:
        if args.command == "run":
            return _run_command(args, project_root)
        if args.command == "devices":
            return _devices_command(args)
    except KeyboardInterrupt:
        print("\nStopped by user.")
        return 1
    except Exception as exc:
        logging.getLogger("expression_tracker").error("Command failed", extra={"event": "command_failed", "error": str(exc)})
        print(f"Error: {exc}")
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
