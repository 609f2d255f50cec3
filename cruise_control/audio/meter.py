"""Loudness metering for the volume feedback shown to the user."""

import numpy as np

MAX_LEVEL = 100.0


def level(frame) -> float:
    """
    Perceptual loudness of a frame: RMS scaled to [0, 100].

    Args:
        frame: Sequence of float samples in [-1, 1]

    Returns:
        float: 0 for an empty or silent frame, capped at 100
    """
    samples = np.asarray(frame, dtype=np.float64)
    if samples.size == 0:
        return 0.0
    rms = float(np.sqrt(np.mean(np.square(samples))))
    return min(rms * MAX_LEVEL, MAX_LEVEL)
