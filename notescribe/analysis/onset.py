"""Spectral-flux onset detection."""

from typing import Optional

import numpy as np


def spectral_flux(magnitude: np.ndarray, previous: Optional[np.ndarray]) -> float:
    """Sum of positive bin-wise magnitude increases over the previous frame."""
    if previous is None:
        return 0.0
    diff = np.asarray(magnitude) - np.asarray(previous)
    return float(np.sum(np.maximum(diff, 0.0)))


def detect_onsets(
    flux: np.ndarray,
    factor: float = 1.2,
    percentile: float = 60.0,
    window: int = 16,
) -> np.ndarray:
    """
    Flag frames whose flux exceeds a local adaptive threshold.

    The threshold of frame i is ``factor`` times the ``percentile`` of the
    flux in frames [i - window, i + window].

    Args:
        flux: Spectral flux per frame
        factor: Multiplier on the local percentile
        percentile: Percentile of the surrounding flux
        window: Frames on each side of the current frame

    Returns:
        Boolean array, True at onset frames
    """
    flux = np.asarray(flux, dtype=np.float64)
    n = len(flux)
    onsets = np.zeros(n, dtype=bool)
    for i in range(n):
        lo = max(0, i - window)
        hi = min(n, i + window + 1)
        local = np.percentile(flux[lo:hi], percentile)
        onsets[i] = flux[i] > factor * local
    return onsets
