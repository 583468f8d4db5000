"""Polyphonic candidate estimators.

Two estimators produce per-frame pitch candidates, each a mapping
``{midi_pitch: strength}`` with strength in [0, 1]:

- salience peak picking on a whitened SalienceRow, with harmonic-image
  suppression after every pick
- harmonic product spectrum on a harmonic/percussive-masked magnitude
  spectrum, confirmed against and merged with the strongest salience peaks
"""

from collections import deque
from typing import Deque, Dict, Optional, Sequence

import numpy as np
from scipy.signal import medfilt

from ..core.config import DetectionParams
from ..core.constants import PIANO_MAX, PIANO_MIN
from ..core.note import Note

Candidates = Dict[int, float]


def merge_candidates(*groups: Candidates) -> Candidates:
    """Union of candidate maps, keeping the highest strength per pitch."""
    merged: Candidates = {}
    for group in groups:
        for pitch, strength in group.items():
            if strength > merged.get(pitch, -1.0):
                merged[pitch] = strength
    return merged


def harmonic_image_offsets(ratios: Sequence[int]) -> np.ndarray:
    """Semitone offsets of integer harmonic ratios (1 -> 0, 2 -> 12, 3 -> 19...)."""
    return np.array([int(round(12 * np.log2(r))) for r in ratios])


def _is_local_peak(row: np.ndarray, i: int) -> bool:
    left = row[i - 1] if i > 0 else -np.inf
    right = row[i + 1] if i < len(row) - 1 else -np.inf
    return row[i] >= left and row[i] >= right


def pick_salience_peaks(
    row: np.ndarray,
    params: Optional[DetectionParams] = None,
    max_peaks: Optional[int] = None,
) -> Candidates:
    """
    Iterative peak picking on a whitened salience row.

    The threshold is half the row's own maximum, fixed before picking.
    After each pick the peak bin and its harmonic images are attenuated so
    overtones of an accepted note are not picked as new notes.

    Args:
        row: Whitened salience row (88 values, any scale)
        params: Detection constants
        max_peaks: Optional cap below the polyphony limit

    Returns:
        Candidate map of picked pitches
    """
    params = params or DetectionParams()
    work = np.asarray(row, dtype=np.float64).copy()
    peak_max = float(work.max()) if len(work) else 0.0
    if peak_max <= 0:
        return {}

    threshold = params.peak_threshold * peak_max
    offsets = harmonic_image_offsets(params.suppression_ratios)
    limit = params.max_polyphony if max_peaks is None else min(max_peaks, params.max_polyphony)

    candidates: Candidates = {}
    while len(candidates) < limit:
        order = np.argsort(work)[::-1]
        best = None
        for i in order:
            if work[i] <= threshold:
                break
            if _is_local_peak(work, i):
                best = int(i)
                break
        if best is None:
            break

        candidates[PIANO_MIN + best] = float(row[best]) / peak_max
        for offset in offsets:
            j = best + offset
            if j < len(work):
                work[j] *= params.suppression_factor

    return candidates


def strongest_salience_peak(row: np.ndarray) -> Candidates:
    """The single highest salience bin as a candidate."""
    row = np.asarray(row, dtype=np.float64)
    if len(row) == 0 or row.max() <= 0:
        return {}
    best = int(np.argmax(row))
    return {PIANO_MIN + best: 1.0}


def confirm_candidates(
    extra: Candidates,
    peaks: Candidates,
    row: np.ndarray,
    params: Optional[DetectionParams] = None,
) -> Candidates:
    """
    Keep the secondary-estimator candidates that the salience row supports.

    A candidate already among the salience peaks is kept. Any other must be
    a local salience peak above the picking threshold and must not land
    within a semitone of a peak's fundamental, or of the peak's
    fundamental divided by one of the suppression ratios. Leakage
    subharmonics from HPS and the common subharmonic YIN reports on a chord
    are dropped this way.

    Args:
        extra: Candidates from HPS or the monophonic tracker
        peaks: Candidates picked from the salience row
        row: Salience row the peaks were picked from
        params: Detection constants

    Returns:
        The confirmed subset of ``extra``
    """
    params = params or DetectionParams()
    row = np.asarray(row, dtype=np.float64)
    peak_max = float(row.max()) if len(row) else 0.0
    if peak_max <= 0:
        return {}

    threshold = params.peak_threshold * peak_max
    offsets = harmonic_image_offsets(params.suppression_ratios)
    confirmed: Candidates = {}
    for pitch, strength in extra.items():
        if pitch in peaks:
            confirmed[pitch] = strength
            continue
        i = pitch - PIANO_MIN
        if not 0 <= i < len(row) or row[i] < threshold or not _is_local_peak(row, i):
            continue
        if any(abs(pitch + offset - peak) <= 1 for peak in peaks for offset in offsets):
            continue
        confirmed[pitch] = strength
    return confirmed


def drop_octave_duplicates(candidates: Candidates) -> Candidates:
    """Where two candidates are exactly an octave apart keep only the lower."""
    pitches = set(candidates)
    return {
        pitch: strength
        for pitch, strength in candidates.items()
        if (pitch - 12) not in pitches
    }


def harmonic_product_spectrum(spectrum: np.ndarray, factors: Sequence[int] = (2, 3, 4)) -> np.ndarray:
    """
    Multiply the spectrum with copies of itself downsampled by each factor.

    Returns:
        HPS of length len(spectrum) // max(factors)
    """
    spectrum = np.asarray(spectrum, dtype=np.float64)
    length = len(spectrum) // max(factors)
    hps = spectrum[:length].copy()
    for factor in factors:
        hps *= spectrum[::factor][:length]
    return hps


class HarmonicPercussiveMask:
    """
    Soft harmonic mask from median filtering of recent magnitude spectra.

    The harmonic estimate of a bin is the median across neighbouring bins of
    the current frame; the percussive estimate is the median of the same bin
    over the last few frames. The mask is harmonic / (harmonic + percussive).
    One instance follows one chunk; history starts empty at each chunk.
    """

    def __init__(self, history: int = 9, freq_kernel: int = 17):
        self.history = history
        self.freq_kernel = freq_kernel if freq_kernel % 2 == 1 else freq_kernel + 1
        self._frames: Deque[np.ndarray] = deque(maxlen=history)

    def reset(self) -> None:
        self._frames.clear()

    def apply(self, magnitude: np.ndarray) -> np.ndarray:
        """Push a frame into the history and return the masked spectrum."""
        magnitude = np.asarray(magnitude, dtype=np.float64)
        self._frames.append(magnitude)

        harmonic = medfilt(magnitude, kernel_size=self.freq_kernel)
        percussive = np.median(np.stack(self._frames), axis=0)

        total = harmonic + percussive
        with np.errstate(divide="ignore", invalid="ignore"):
            mask = np.where(total > 0, harmonic / total, 0.0)
        return magnitude * mask


def hps_candidates(
    masked_spectrum: np.ndarray,
    sample_rate: int,
    frame_size: int,
    params: Optional[DetectionParams] = None,
) -> Candidates:
    """
    Local maxima of the HPS above a fraction of its maximum.

    Args:
        masked_spectrum: Harmonic-masked magnitude spectrum (frame_size/2 bins)
        sample_rate: Sample rate in Hz
        frame_size: FFT length used for the spectrum
        params: Detection constants

    Returns:
        Candidate map with strengths relative to the HPS maximum
    """
    params = params or DetectionParams()
    hps = harmonic_product_spectrum(masked_spectrum, params.hps_factors)
    if len(hps) < 3:
        return {}
    peak = float(hps.max())
    if peak <= 0:
        return {}

    threshold = params.hps_threshold * peak
    candidates: Candidates = {}
    for k in range(1, len(hps) - 1):
        if hps[k] > threshold and hps[k] >= hps[k - 1] and hps[k] > hps[k + 1]:
            freq = k * sample_rate / frame_size
            pitch = Note.freq_to_midi(freq)
            if PIANO_MIN <= pitch <= PIANO_MAX:
                strength = float(hps[k] / peak)
                if strength > candidates.get(pitch, 0.0):
                    candidates[pitch] = strength
    return candidates

