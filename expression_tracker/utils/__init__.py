from .logger import configure_logger
from .metrics import PerformanceTracker
from .queueing import clear_queue, put_latest, take_latest
from .runtime import configure_runtime_environment

__all__ = [
    "PerformanceTracker",
    "clear_queue",
    "configure_logger",
    "configure_runtime_environment",
    "put_latest",
    "take_latest",
]
