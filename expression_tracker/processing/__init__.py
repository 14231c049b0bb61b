from .collector import ImageCollector
from .converter import TensorConverter
from .corruption import FastCorruptionDetector
from .expressions import EYE_EXPRESSION_COUNT, process_eye_expressions
from .filters import OneEuroFilter
from .pipeline import EyeProcessingPipeline, FaceProcessingPipeline, ProcessingPipeline, build_filter
from .transformer import CameraSettings, DualImageTransformer, ImageTransformer

__all__ = [
    "CameraSettings",
    "DualImageTransformer",
    "EYE_EXPRESSION_COUNT",
    "EyeProcessingPipeline",
    "FaceProcessingPipeline",
    "FastCorruptionDetector",
    "ImageCollector",
    "ImageTransformer",
    "OneEuroFilter",
    "ProcessingPipeline",
    "TensorConverter",
    "build_filter",
    "process_eye_expressions",
]
