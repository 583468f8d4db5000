"""Monophonic pitch estimation (YIN)."""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy.signal import correlate

from ..core.constants import PIANO_MAX, PIANO_MIN
from ..core.note import Note


@dataclass
class PitchEstimate:
    """Result of a single-frame pitch estimate."""

    frequency: float
    pitch: int
    confidence: float  # 1 - CMNDF at the chosen lag


def difference_function(x: np.ndarray, tau_max: int) -> np.ndarray:
    """
    YIN difference function for lags 0..tau_max.

    d(tau) = sum_{j<W} (x[j] - x[j+tau])^2 with W = len(x) - tau_max,
    expanded as E(0) + E(tau) - 2 r(tau) so it vectorizes.
    """
    x = np.asarray(x, dtype=np.float64)
    w = len(x) - tau_max
    head = x[:w]
    energy_head = float(np.dot(head, head))
    squares = np.concatenate([[0.0], np.cumsum(x * x)])
    lags = np.arange(tau_max + 1)
    energy_shifted = squares[lags + w] - squares[lags]
    r = correlate(x[: w + tau_max], head, mode="valid")
    d = energy_head + energy_shifted - 2.0 * r
    d[0] = 0.0
    return np.maximum(d, 0.0)


def cumulative_mean_normalized_difference(d: np.ndarray) -> np.ndarray:
    """CMNDF: d'(0) = 1, d'(tau) = d(tau) * tau / sum_{j=1..tau} d(j)."""
    cmndf = np.ones_like(d)
    running = np.cumsum(d[1:])
    taus = np.arange(1, len(d))
    with np.errstate(divide="ignore", invalid="ignore"):
        values = d[1:] * taus / running
    cmndf[1:] = np.where(running > 0, values, 1.0)
    return cmndf


def parabolic_offset(values: np.ndarray, index: int) -> float:
    """Vertex offset of the parabola through values[index-1..index+1]."""
    if index <= 0 or index >= len(values) - 1:
        return 0.0
    s0, s1, s2 = values[index - 1], values[index], values[index + 1]
    denom = 2.0 * (s0 - 2.0 * s1 + s2)
    if abs(denom) < 1e-12:
        return 0.0
    return float(np.clip((s0 - s2) / denom, -1.0, 1.0))


def lag_range(sample_rate: int, frame_size: int, fmin: float, fmax: float) -> Tuple[int, int]:
    """Lags searched for [fmin, fmax], limited to half the frame."""
    tau_min = max(2, int(sample_rate / fmax))
    tau_max = min(int(np.ceil(sample_rate / fmin)), frame_size // 2)
    return tau_min, tau_max


def yin_pitch(
    frame: np.ndarray,
    sample_rate: int,
    fmin: float = 40.0,
    fmax: float = 5000.0,
    threshold: float = 0.15,
) -> Optional[PitchEstimate]:
    """
    Single-frame YIN pitch detection.

    Args:
        frame: Raw (unwindowed) samples
        sample_rate: Sample rate in Hz
        fmin: Lowest detectable frequency
        fmax: Highest detectable frequency
        threshold: CMNDF dip threshold

    Returns:
        PitchEstimate, or None when no pitch in the piano range is found
    """
    tau_min, tau_max = lag_range(sample_rate, len(frame), fmin, fmax)
    if tau_max <= tau_min + 1:
        return None

    cmndf = cumulative_mean_normalized_difference(difference_function(frame, tau_max))

    # First dip below threshold, walked down to its local minimum
    search = cmndf[tau_min:tau_max]
    below = np.flatnonzero(search < threshold)
    if len(below) > 0:
        tau = tau_min + int(below[0])
        while tau + 1 < tau_max and cmndf[tau + 1] < cmndf[tau]:
            tau += 1
    else:
        tau = tau_min + int(np.argmin(search))

    period = tau + parabolic_offset(cmndf, tau)
    if period <= 0:
        return None

    frequency = sample_rate / period
    pitch = Note.freq_to_midi(frequency)
    if pitch < PIANO_MIN or pitch > PIANO_MAX:
        return None

    confidence = float(np.clip(1.0 - cmndf[tau], 0.0, 1.0))
    return PitchEstimate(frequency=frequency, pitch=pitch, confidence=confidence)


class PitchAnalyzer:
    """Frame-level monophonic pitch tracker."""

    def __init__(
        self,
        sr: int = 44100,
        fmin: float = 40.0,
        fmax: float = 5000.0,
        threshold: float = 0.15,
    ):
        self.sr = sr
        self.fmin = fmin
        self.fmax = fmax
        self.threshold = threshold

    def estimate(self, frame: np.ndarray) -> Optional[PitchEstimate]:
        """Estimate the pitch of one raw frame."""
        return yin_pitch(frame, self.sr, self.fmin, self.fmax, self.threshold)

    def track(self, audio: np.ndarray, frame_size: int, hop_size: int) -> np.ndarray:
        """
        Pitch contour over a signal.

        Returns:
            MIDI pitch per frame (NaN where unvoiced)
        """
        num_frames = max(0, (len(audio) - frame_size) // hop_size)
        contour = np.full(num_frames, np.nan)
        for i in range(num_frames):
            start = i * hop_size
            estimate = self.estimate(audio[start:start + frame_size])
            if estimate is not None:
                contour[i] = estimate.pitch
        return contour
