import numpy as np

from conftest import BackendFactory, FakeBackend, SourceHolder
from expression_tracker.processing.transformer import DualImageTransformer
from expression_tracker.sources.managers import EyeSourceManager, FaceSourceManager
from expression_tracker.sources.video_source import DualCameraSource, SingleCameraSource
from expression_tracker.utils.types import ColorType


def _manager(failing=None):
    factory = BackendFactory(failing)
    holder = SourceHolder()
    return EyeSourceManager(holder, factory=factory), factory, holder


def test_binding_both_sides_to_same_address_shares_one_backend():
    manager, factory, holder = _manager()
    assert manager.bind_left("COM3")
    assert manager.bind_right("COM3")

    assert len(factory.created) == 1
    assert factory.live() == factory.created
    assert isinstance(holder.video_source, SingleCameraSource)
    assert manager.left_backend is manager.right_backend is factory.created[0]
    assert manager.is_using_same_camera()


def test_swap_disposes_previous_backend_of_that_side():
    manager, factory, holder = _manager()
    manager.bind_left("COM3")
    manager.bind_right("COM4")
    manager.bind_right("COM3")

    left, right = factory.created
    assert right.disposed
    assert not left.disposed
    assert factory.live() == [left]


def test_promotion_keeps_running_stream():
    manager, factory, holder = _manager()
    manager.bind_left("/dev/video0")
    manager.bind_right("/dev/video0")
    shared = factory.created[0]

    assert manager.bind_left("/dev/video2")
    assert isinstance(holder.video_source, DualCameraSource)
    assert manager.right_backend is shared
    assert shared.starts == 1
    assert not shared.disposed
    assert manager.left_backend is factory.created[1]
    assert not manager.is_using_same_camera()


def test_rebinding_a_side_elsewhere_replaces_its_backend():
    manager, factory, holder = _manager()
    manager.bind_left("0")
    manager.bind_left("1")

    first, second = factory.created
    assert first.disposed
    assert manager.left_backend is second
    assert manager.left_address == "1"


def test_rebinding_same_address_is_a_no_op():
    manager, factory, holder = _manager()
    manager.bind_left("0")
    assert manager.bind_left("0")
    assert len(factory.created) == 1


def test_failed_start_leaves_side_unbound():
    manager, factory, holder = _manager(failing={"COM9"})
    assert manager.bind_left("COM9") is False
    assert holder.video_source is None
    assert manager.left_address is None

    manager.bind_right("COM3")
    assert manager.bind_left("COM9") is False
    assert manager.left_backend is None
    assert manager.right_backend is factory.created[0]


def test_stopping_one_side_of_shared_camera_stops_everything():
    manager, factory, holder = _manager()
    manager.bind_left("COM3")
    manager.bind_right("COM3")

    manager.stop_left()
    assert holder.video_source is None
    assert manager.left_address is None and manager.right_address is None
    assert factory.created[0].disposed


def test_stopping_one_side_of_dual_source_keeps_the_other():
    manager, factory, holder = _manager()
    manager.bind_left("COM3")
    manager.bind_right("COM4")

    manager.stop_right()
    assert factory.created[1].disposed
    assert manager.left_backend is factory.created[0]
    manager.stop_left()
    assert holder.video_source is None


def test_try_start_does_not_replace_running_side():
    manager, factory, holder = _manager()
    manager.bind_left("COM3")
    assert manager.try_start_left_if_not_running("COM5")
    assert len(factory.created) == 1
    assert manager.try_start_right_if_not_running("COM5")
    assert len(factory.created) == 2


def test_stop_all_disposes_every_backend():
    manager, factory, holder = _manager()
    manager.bind_left("COM3")
    manager.bind_right("COM4")
    manager.stop_all()
    assert factory.live() == []
    assert holder.video_source is None


def test_dual_source_composes_side_by_side():
    left, right = FakeBackend("a"), FakeBackend("b")
    left.start_capture()
    right.start_capture()
    left.set_raw_frame(np.full((20, 30), 10, dtype=np.uint8))
    right.set_raw_frame(np.full((40, 30), 200, dtype=np.uint8))

    source = DualCameraSource(left, right)
    frame = source.get_frame(ColorType.GRAY8)
    assert frame.image.shape == (20, 60)
    assert frame.image[:, :30].max() == 10
    assert frame.image[:, 30:].min() == 200


def test_dual_source_with_one_side_returns_that_side():
    right = FakeBackend("b")
    right.start_capture()
    right.set_raw_frame(np.zeros((8, 8, 3), dtype=np.uint8))
    frame = DualCameraSource(None, right).get_frame(ColorType.GRAY8)
    assert frame.image.shape == (8, 8)
    assert DualCameraSource(None, None).get_frame() is None


def test_face_manager_replaces_camera():
    factory = BackendFactory()
    holder = SourceHolder()
    manager = FaceSourceManager(holder, factory=factory)
    assert manager.bind("0")
    assert manager.try_start_if_not_running("1")
    assert len(factory.created) == 1
    assert manager.bind("1")
    assert factory.created[0].disposed
    assert manager.backend is factory.created[1]
    manager.stop()
    assert factory.live() == []


def test_cameras_with_different_aspect_ratios_split_cleanly():
    left, right = FakeBackend("a"), FakeBackend("b")
    left.start_capture()
    right.start_capture()
    left.set_raw_frame(np.full((30, 60), 10, dtype=np.uint8))
    right.set_raw_frame(np.full((30, 20), 200, dtype=np.uint8))

    frame = DualCameraSource(left, right).get_frame(ColorType.GRAY8)
    transformer = DualImageTransformer()
    transformer.set_target_size((8, 8))
    left_eye, right_eye = transformer.apply(frame).images
    assert int(left_eye.max()) == 10
    assert int(right_eye.min()) == 200


def test_dual_source_reports_missing_side():
    assert DualCameraSource(FakeBackend("a"), FakeBackend("b")).complete
    assert not DualCameraSource(FakeBackend("a"), None).complete
    assert SingleCameraSource(FakeBackend("a")).complete
