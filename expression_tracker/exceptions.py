class TrackerError(Exception):
    """Base exception for the expression tracker."""


class CaptureError(TrackerError):
    """Raised when a capture backend cannot deliver frames."""


class DeviceNotFoundError(CaptureError):
    """Raised when no device matches the requested address."""


class CaptureOpenError(CaptureError):
    """Raised when a device exists but cannot be opened."""


class CaptureTimeoutError(CaptureOpenError):
    """Raised when opening a device does not finish in time."""


class StreamFaultError(CaptureError):
    """Raised when a running stream fails mid-read."""


class FrameInvalidError(TrackerError):
    """Raised when a frame is corrupted or cannot be decoded."""


class InferenceError(TrackerError):
    """Raised when model loading or execution fails."""


class ModelMissingError(InferenceError):
    """Raised when neither the configured nor the default model exists."""
