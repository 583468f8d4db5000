"""Harmonic salience from a bank of Goertzel resonators.

Each candidate pitch 21..108 owns one resonator per harmonic of its
fundamental (harmonics at or above Nyquist are skipped). Salience is the
1/h-weighted sum of resonator powers, so upper partials cannot outweigh the
fundamental that produced them.
"""

from functools import lru_cache

import numpy as np
from scipy.ndimage import median_filter

from ..core.constants import NUM_PITCHES, PIANO_MIN
from ..core.note import Note


def goertzel_power(samples: np.ndarray, target_freq: float, sample_rate: float) -> float:
    """
    Power at one frequency using the Goertzel recurrence.

    Args:
        samples: Input signal (real-valued)
        target_freq: Frequency to detect (Hz)
        sample_rate: Sampling rate (Hz)

    Returns:
        Power (magnitude squared) at target frequency
    """
    omega = 2.0 * np.pi * target_freq / sample_rate
    coeff = 2.0 * np.cos(omega)

    s1 = 0.0
    s2 = 0.0
    for sample in samples:
        s0 = float(sample) + coeff * s1 - s2
        s2 = s1
        s1 = s0

    return s1 * s1 + s2 * s2 - coeff * s1 * s2


class GoertzelBank:
    """
    Resonator bank for all 88 piano pitches and their harmonics.

    Running N samples through a Goertzel resonator tuned to w leaves it in a
    state whose power equals |sum x[n] exp(-j w n)|^2. The bank stores that
    closed form as a kernel matrix so a whole frame is one matrix product
    instead of 88 x harmonics Python loops. ``goertzel_power`` is the scalar
    recurrence it must agree with.
    """

    def __init__(self, sample_rate: int, frame_size: int, num_harmonics: int = 8):
        self.sample_rate = sample_rate
        self.frame_size = frame_size
        self.num_harmonics = num_harmonics

        nyquist = sample_rate / 2.0
        pitches = np.arange(PIANO_MIN, PIANO_MIN + NUM_PITCHES)
        fundamentals = np.array([Note.midi_to_freq(p) for p in pitches])

        freqs = []
        weights = []
        rows = []
        for i, f0 in enumerate(fundamentals):
            for h in range(1, num_harmonics + 1):
                freq = f0 * h
                if freq >= nyquist:
                    break
                freqs.append(freq)
                weights.append(1.0 / h)
                rows.append(i)

        self.frequencies = np.array(freqs)
        n = np.arange(frame_size)
        omega = 2.0 * np.pi * self.frequencies / sample_rate
        self._cos = np.cos(np.outer(omega, n))
        self._sin = np.sin(np.outer(omega, n))

        # Sparse (pitch x resonator) weighting matrix
        self._weights = np.zeros((NUM_PITCHES, len(freqs)))
        self._weights[rows, np.arange(len(freqs))] = weights

    def resonator_powers(self, frame: np.ndarray) -> np.ndarray:
        """Power of every resonator in the bank after one frame."""
        x = np.asarray(frame, dtype=np.float64)
        if len(x) != self.frame_size:
            padded = np.zeros(self.frame_size)
            count = min(len(x), self.frame_size)
            padded[:count] = x[:count]
            x = padded
        real = self._cos @ x
        imag = self._sin @ x
        return real * real + imag * imag

    def salience(self, frame: np.ndarray) -> np.ndarray:
        """Harmonic salience for pitches 21..108 (length 88, unnormalized)."""
        return self._weights @ self.resonator_powers(frame)


@lru_cache(maxsize=8)
def get_bank(sample_rate: int, frame_size: int, num_harmonics: int = 8) -> GoertzelBank:
    """Shared bank per (sample_rate, frame_size)."""
    return GoertzelBank(sample_rate, frame_size, num_harmonics)


def whiten(salience: np.ndarray, factor: float = 0.8, span: int = 2) -> np.ndarray:
    """
    Subtract a fraction of the local median across neighbouring pitches.

    Args:
        salience: Raw salience per pitch
        factor: Fraction of the (2*span+1)-point median to subtract
        span: Half-width of the median in semitones

    Returns:
        Whitened salience, clamped at zero
    """
    local_median = median_filter(
        np.asarray(salience, dtype=np.float64), size=2 * span + 1, mode="nearest"
    )
    return np.maximum(salience - factor * local_median, 0.0)


def quantize_row(values: np.ndarray) -> np.ndarray:
    """Scale by the row maximum into 0..255 (truncating) as uint8."""
    peak = float(np.max(values)) if len(values) else 0.0
    if peak <= 0 or not np.isfinite(peak):
        return np.zeros(len(values), dtype=np.uint8)
    scaled = np.clip(values / peak * 255.0, 0.0, 255.0)
    return scaled.astype(np.uint8)
