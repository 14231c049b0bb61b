from .local_settings import LocalSettings
from .settings import TrackerSettings

__all__ = ["LocalSettings", "TrackerSettings"]
