from .base import CaptureBackend, ThreadedCaptureBackend
from .framing import FrameParser, encode_frame
from .platform_camera import PlatformCameraCapture
from .registry import BACKENDS, candidates, create_and_start
from .serial_camera import SerialCameraCapture
from .uvc_camera import UvcCameraCapture

__all__ = [
    "BACKENDS",
    "CaptureBackend",
    "FrameParser",
    "PlatformCameraCapture",
    "SerialCameraCapture",
    "ThreadedCaptureBackend",
    "UvcCameraCapture",
    "candidates",
    "create_and_start",
    "encode_frame",
]
