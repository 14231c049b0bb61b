import numpy as np
import pytest

from expression_tracker.calibration import FACE_EXPRESSIONS, CalibrationEntry, CalibrationStore
from expression_tracker.config import LocalSettings


def test_remap_hits_bounds_and_clamps():
    entry = CalibrationEntry("JawOpen", lower=0.2, upper=0.6, min=0.0, max=1.0)
    assert entry.remap(0.2) == pytest.approx(0.0)
    assert entry.remap(0.6) == pytest.approx(1.0)
    assert entry.remap(0.4) == pytest.approx(0.5)
    assert entry.remap(-3.0) == 0.0
    assert entry.remap(7.0) == 1.0


def test_degenerate_range_maps_to_minimum():
    entry = CalibrationEntry("JawOpen", lower=0.5, upper=0.5, min=0.1, max=0.9)
    assert entry.remap(0.5) == pytest.approx(0.1)


def test_set_expression_updates_bound_and_notifies():
    store = CalibrationStore()
    seen = []
    store.add_listener(seen.append)

    assert store.set_expression("MouthCloseUpper", 0.5)
    assert store.get("MouthClose").upper == 0.5
    assert store.remap("MouthClose", 0.25) == pytest.approx(0.5)
    assert seen == ["MouthClose"]
    assert store.set_expression("MouthClose", 0.1) is False


def test_reset_restores_defaults_and_reaches_cached_copies():
    store = CalibrationStore()
    store.set_expression("JawOpenLower", 0.3)
    store.set_expression("JawOpenUpper", 0.7)
    cached = {}
    store.add_listener(lambda name: cached.update(jaw=store.get("JawOpen")))

    store.reset_minimums()
    assert cached["jaw"].lower == 0.0
    assert cached["jaw"].upper == 0.7
    store.reset_maximums()
    assert cached["jaw"].upper == 1.0


def test_bounds_persist_through_settings(tmp_path):
    path = tmp_path / "LocalSettings.json"
    store = CalibrationStore(LocalSettings(path))
    store.set_expression("TongueOutLower", 0.25)

    reloaded = CalibrationStore(LocalSettings(path))
    assert reloaded.get("TongueOut").lower == 0.25


def test_apply_eye_only_touches_lids():
    store = CalibrationStore()
    store.set_expression("LeftEyeLidUpper", 0.5)
    values = np.array([-0.5, 0.2, 0.25, 0.3, 0.2, 0.9], dtype=np.float32)
    result = store.apply_eye(values)
    assert result[0] == pytest.approx(-0.5)
    assert result[2] == pytest.approx(0.5)
    assert result[5] == pytest.approx(0.9)
    assert values[2] == pytest.approx(0.25)


def test_apply_face_uses_expression_order():
    store = CalibrationStore()
    store.set_expression("TongueTwistRightLower", 0.5)
    values = np.full(len(FACE_EXPRESSIONS), 0.75, dtype=np.float32)
    result = store.apply_face(values)
    assert result[-1] == pytest.approx(0.5)
    assert result[0] == pytest.approx(0.75)
