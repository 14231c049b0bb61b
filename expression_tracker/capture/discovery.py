from __future__ import annotations

from dataclasses import dataclass
from typing import List, Set

import cv2
from serial.tools import list_ports

from ..exceptions import CaptureOpenError
from .platform_camera import open_video_capture
from .serial_camera import looks_like_serial_port
from .uvc_camera import UvcCameraCapture


@dataclass
class DeviceCandidate:
    address: str
    backend: str
    description: str = ""


@dataclass
class CameraProbeResult:
    index: int
    width: int
    height: int
    fps: float
    api: str = "unknown"


def discover_serial_ports() -> List[DeviceCandidate]:
    result: List[DeviceCandidate] = []
    for port in sorted(list_ports.comports(), key=lambda item: item.device):
        if not looks_like_serial_port(port.device):
            continue
        result.append(DeviceCandidate(address=port.device, backend="serial", description=port.description or ""))
    return result


def discover_uvc_cameras() -> List[DeviceCandidate]:
    return [
        DeviceCandidate(address=address, backend="uvc", description="USB video class")
        for address in UvcCameraCapture.addresses()
    ]


def probe_camera_indices(max_index: int = 4, exclude_indices: Set[int] | None = None) -> List[CameraProbeResult]:
    """Indices that open and deliver a frame, using the same backend order as capture."""
    excluded = exclude_indices or set()
    cameras: List[CameraProbeResult] = []
    for camera_index in range(max_index + 1):
        if camera_index in excluded:
            continue
        try:
            cap, api_name = open_video_capture(camera_index)
        except CaptureOpenError:
            continue
        try:
            cameras.append(
                CameraProbeResult(
                    index=camera_index,
                    width=int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0),
                    height=int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0),
                    fps=float(cap.get(cv2.CAP_PROP_FPS) or 0.0),
                    api=api_name,
                )
            )
        finally:
            cap.release()
    return cameras


def discover_devices(max_index: int = 4, probe_platform: bool = True) -> List[DeviceCandidate]:
    devices = discover_uvc_cameras() + discover_serial_ports()
    if probe_platform:
        for probe in probe_camera_indices(max_index):
            devices.append(
                DeviceCandidate(
                    address=str(probe.index),
                    backend="opencv",
                    description=f"{probe.width}x{probe.height}@{probe.fps:.0f} via {probe.api}",
                )
            )
    return devices
