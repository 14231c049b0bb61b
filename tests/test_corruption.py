import numpy as np

from conftest import noise_image
from expression_tracker.processing.corruption import FastCorruptionDetector
from expression_tracker.utils.types import Frame


def test_natural_frame_passes():
    assert FastCorruptionDetector().is_corrupted(Frame(noise_image(64, 64))) == (False, None)


def test_empty_frames_are_corrupt():
    detector = FastCorruptionDetector()
    assert detector.is_corrupted(None) == (True, "empty")
    assert detector.is_corrupted(Frame(None)) == (True, "empty")
    assert detector.is_corrupted(Frame(np.zeros((0, 0), dtype=np.uint8))) == (True, "empty")


def test_flat_frame_is_corrupt():
    frame = Frame(np.full((64, 64), 128, dtype=np.uint8))
    assert FastCorruptionDetector().is_corrupted(frame) == (True, "flat")


def test_padded_bottom_band_is_corrupt():
    image = noise_image(64, 64)
    image[-16:] = 128
    assert FastCorruptionDetector().is_corrupted(Frame(image)) == (True, "truncated")


def test_shifted_rows_are_corrupt():
    row = np.linspace(0, 255, 128).astype(np.uint8)
    image = np.tile(row, (64, 1))
    image[40:] = np.roll(row, 40)
    assert FastCorruptionDetector().is_corrupted(Frame(image)) == (True, "row_shift")


def test_color_frames_are_checked_in_gray():
    image = np.stack([noise_image(32, 32, seed=1)] * 3, axis=2)
    assert FastCorruptionDetector().is_corrupted(Frame(image)) == (False, None)
