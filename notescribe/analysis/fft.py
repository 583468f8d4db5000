"""Windowing and an iterative radix-2 FFT for frame analysis."""

from functools import lru_cache
from typing import Optional

import numpy as np


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n."""
    if n <= 1:
        return 1
    return 1 << (int(n) - 1).bit_length()


@lru_cache(maxsize=16)
def hann_window(size: int) -> np.ndarray:
    """Symmetric Hann window of the given length."""
    if size <= 1:
        return np.ones(max(size, 0))
    i = np.arange(size)
    window = 0.5 - 0.5 * np.cos(2 * np.pi * i / (size - 1))
    window.setflags(write=False)
    return window


@lru_cache(maxsize=16)
def _bit_reverse_indices(n: int) -> np.ndarray:
    bits = n.bit_length() - 1
    indices = np.arange(n)
    reversed_indices = np.zeros(n, dtype=np.int64)
    for b in range(bits):
        reversed_indices |= ((indices >> b) & 1) << (bits - 1 - b)
    reversed_indices.setflags(write=False)
    return reversed_indices


def fft(data: np.ndarray, size: Optional[int] = None) -> np.ndarray:
    """
    Iterative in-place radix-2 Cooley-Tukey FFT.

    The input is zero-padded to the next power of two, or truncated/padded to
    ``size`` when given (``size`` must itself be a power of two).

    Args:
        data: Real or complex input samples
        size: Optional transform length

    Returns:
        Complex spectrum of length ``size`` (or the padded length)
    """
    x = np.asarray(data)
    n = size if size is not None else next_power_of_two(len(x))
    if not is_power_of_two(n):
        raise ValueError(f"FFT size must be a power of two, got {n}")

    buf = np.zeros(n, dtype=np.complex128)
    count = min(n, len(x))
    buf[:count] = x[:count]

    # Bit-reversal permutation, then butterflies of doubling span
    buf = buf[_bit_reverse_indices(n)]
    span = 2
    while span <= n:
        half = span // 2
        twiddle = np.exp(-2j * np.pi * np.arange(half) / span)
        blocks = buf.reshape(-1, span)
        even = blocks[:, :half].copy()
        odd = blocks[:, half:] * twiddle
        blocks[:, :half] = even + odd
        blocks[:, half:] = even - odd
        span *= 2
    return buf


def magnitude_spectrum(frame: np.ndarray, size: Optional[int] = None) -> np.ndarray:
    """
    Magnitude of the first N/2 bins of the frame's FFT.

    Args:
        frame: Windowed time-domain frame
        size: Optional power-of-two transform length

    Returns:
        Non-negative array of length N/2
    """
    spectrum = fft(frame, size)
    half = len(spectrum) // 2
    return np.hypot(spectrum.real[:half], spectrum.imag[:half])
