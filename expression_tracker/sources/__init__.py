from .managers import EyeSourceManager, FaceSourceManager
from .video_source import DualCameraSource, SingleCameraSource, VideoSource

__all__ = [
    "DualCameraSource",
    "EyeSourceManager",
    "FaceSourceManager",
    "SingleCameraSource",
    "VideoSource",
]
