from __future__ import annotations

import os


def configure_runtime_environment() -> None:
    # Must run before cv2 is imported to take effect.
    os.environ.setdefault("OPENCV_LOG_LEVEL", "ERROR")
    os.environ.setdefault("OPENCV_VIDEOIO_DEBUG", "0")
    if os.name == "nt":
        # MSMF takes seconds to open some UVC devices; DirectShow is tried first anyway.
        os.environ.setdefault("OPENCV_VIDEOIO_MSMF_ENABLE_HW_TRANSFORMS", "0")
    # onnxruntime spins every core by default, starving the capture threads.
    os.environ.setdefault("OMP_NUM_THREADS", str(max(1, (os.cpu_count() or 2) // 2)))
