from __future__ import annotations

import numpy as np

EYE_EXPRESSION_COUNT = 6

# Output slots, after the left/right swap.
EYE_OUTPUT_NAMES = ("LeftEyeX", "LeftEyeY", "LeftEyeLid", "RightEyeX", "RightEyeY", "RightEyeLid")


def rescale(value: float) -> float:
    return value * 2.0 - 1.0


def process_eye_expressions(raw: np.ndarray, stabilize: bool = True) -> np.ndarray | None:
    """Turn raw eye model output into the published eye vector.

    ``raw`` is ``[leftPitch, leftYaw, leftLidClosure, rightPitch, rightYaw,
    rightLidClosure]`` in [0, 1]. The result swaps eyes and puts the shared
    vertical gaze in both eyes' second slot. The vertical gaze is NaN when
    both lids are fully closed.
    """
    if raw is None or len(raw) < EYE_EXPRESSION_COUNT:
        return None
    values = np.asarray(raw, dtype=np.float32)

    left_pitch = rescale(float(values[0]))
    left_yaw = rescale(float(values[1]))
    left_lid = 1.0 - float(values[2])
    right_pitch = rescale(float(values[3]))
    right_yaw = rescale(float(values[4]))
    right_lid = 1.0 - float(values[5])

    lid_sum = left_lid + right_lid
    eye_y = (left_pitch * left_lid + right_pitch * right_lid) / lid_sum if lid_sum != 0 else float("nan")

    left_yaw_corrected = right_yaw * (1.0 - left_lid) + left_yaw * left_lid
    right_yaw_corrected = left_yaw * (1.0 - right_lid) + right_yaw * right_lid

    if stabilize:
        # Never let the eyes diverge.
        convergence = max((right_yaw_corrected - left_yaw_corrected) / 2.0, 0.0)
        averaged_yaw = (right_yaw_corrected + left_yaw_corrected) / 2.0
        left_yaw_corrected = averaged_yaw - convergence
        right_yaw_corrected = averaged_yaw + convergence

    return np.array(
        [right_yaw_corrected, eye_y, right_lid, left_yaw_corrected, eye_y, left_lid],
        dtype=np.float32,
    )
