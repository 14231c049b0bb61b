import time
from collections import namedtuple
from types import SimpleNamespace

import numpy as np
import pytest

from conftest import wait_for
from expression_tracker.capture import uvc_camera
from expression_tracker.capture.uvc_camera import UvcCameraCapture, UvcDeviceHandle, select_frame_mode
from expression_tracker.exceptions import CaptureOpenError
from expression_tracker.utils.types import CaptureState

CameraMode = namedtuple("CameraMode", "width height fps format_native format_name supported")


def _mode(width, height, fps, name="MJPEG", supported=True):
    return CameraMode(width, height, fps, 0, name, supported)


MODES = [
    _mode(640, 480, 30),
    _mode(320, 240, 120),
    _mode(320, 240, 60),
    _mode(240, 240, 90, name="YUYV"),
    _mode(1280, 720, 30, supported=False),
]


def test_mode_policy_prefers_closest_resolution_then_rate():
    assert select_frame_mode(MODES, 300, 240, 90) == _mode(320, 240, 120)
    assert select_frame_mode(MODES, 320, 240, 60) == _mode(320, 240, 60)
    assert select_frame_mode(MODES, 600, 500, 30) == _mode(640, 480, 30)


def test_mode_policy_prefers_mjpeg_over_exact_raw_match():
    assert select_frame_mode(MODES, 240, 240, 90).format_name == "MJPEG"


def test_mode_policy_defaults_to_largest_and_fastest():
    assert select_frame_mode(MODES) == _mode(640, 480, 30)
    assert select_frame_mode(MODES[1:3]) == _mode(320, 240, 120)


def test_mode_policy_rejects_empty_mode_list():
    with pytest.raises(CaptureOpenError):
        select_frame_mode([_mode(640, 480, 30, supported=False)])


class FakeCapture:
    closes = 0

    def __init__(self, uid) -> None:
        self.uid = uid
        self.available_modes = MODES
        self.frame_mode = None

    def get_frame(self, timeout=0.5):
        time.sleep(0.005)
        return SimpleNamespace(bgr=np.full((240, 320, 3), 90, dtype=np.uint8))

    def close(self) -> None:
        FakeCapture.closes += 1


@pytest.fixture
def fake_uvc(monkeypatch):
    FakeCapture.closes = 0
    module = SimpleNamespace(
        device_list=lambda: [{"name": "Babble Eye", "uid": "1:4", "manufacturer": "Babble"}],
        Capture=FakeCapture,
        StreamError=RuntimeError,
    )
    monkeypatch.setattr(uvc_camera, "uvc", module)
    monkeypatch.setattr(UvcCameraCapture, "_device_list", None)
    return module


def test_unknown_usb_camera_fails_to_start(fake_uvc):
    backend = UvcCameraCapture("USB:Some Other Camera")
    assert backend.start_capture() is False
    assert backend.state is CaptureState.ERROR
    assert FakeCapture.closes == 0


def test_usb_camera_streams_and_releases_handle_once(fake_uvc):
    backend = UvcCameraCapture("USB:Babble Eye", frame_size=(320, 240), fps=60)
    assert backend.start_capture()
    assert backend.stream_control.fps == 60
    assert wait_for(lambda: backend.get_frame() is not None)
    assert backend.get_frame().image.shape == (240, 320, 3)

    backend.dispose()
    backend.dispose()
    assert FakeCapture.closes == 1
    assert not backend.is_ready


def test_device_handle_guard_releases_exactly_once(fake_uvc):
    with UvcDeviceHandle("1:4") as handle:
        assert not handle.released
    assert handle.released
    handle.release()
    assert FakeCapture.closes == 1


def test_missing_library_reports_failure(monkeypatch):
    monkeypatch.setattr(uvc_camera, "uvc", None)
    monkeypatch.setattr(UvcCameraCapture, "_device_list", None)
    assert UvcCameraCapture.update_cameras() == []
    assert UvcCameraCapture("USB:Babble Eye").start_capture() is False
