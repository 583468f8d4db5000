"""Band limiting applied to chunks before framing."""

import numpy as np
from scipy.signal import butter, sosfiltfilt


def design_band_filter(sample_rate: int, high_pass_hz: float = 0.0, low_pass_hz: float = 0.0, order: int = 4):
    """
    Butterworth second-order sections for the configured band.

    Args:
        sample_rate: Sample rate in Hz
        high_pass_hz: Lower edge, 0 disables
        low_pass_hz: Upper edge, 0 disables
        order: Filter order

    Returns:
        SOS array, or None when both edges are disabled
    """
    nyquist = sample_rate / 2.0
    if high_pass_hz > 0 and low_pass_hz > 0:
        return butter(order, [high_pass_hz / nyquist, low_pass_hz / nyquist], btype="bandpass", output="sos")
    if high_pass_hz > 0:
        return butter(order, high_pass_hz / nyquist, btype="highpass", output="sos")
    if low_pass_hz > 0:
        return butter(order, low_pass_hz / nyquist, btype="lowpass", output="sos")
    return None


def apply_band_filter(samples: np.ndarray, sos) -> np.ndarray:
    """Zero-phase filtering; returns the input unchanged when sos is None."""
    if sos is None:
        return np.asarray(samples, dtype=np.float64)
    # sosfiltfilt needs more samples than its edge padding
    padlen = 3 * (2 * len(sos) + 1)
    if len(samples) <= padlen:
        return np.asarray(samples, dtype=np.float64)
    return sosfiltfilt(sos, np.asarray(samples, dtype=np.float64))
