"""Analysis layer - Frame-level signal analysis.

This layer turns raw samples into per-frame detections:
- Windowing and FFT magnitude spectra
- Harmonic salience from a Goertzel resonator bank
- Monophonic (YIN) and polyphonic (salience, HPS) pitch candidates
- Harmonic rejection and spectral-flux onsets
- Tempo estimation from onsets
"""

from .fft import fft, magnitude_spectrum, hann_window
from .salience import GoertzelBank, goertzel_power
from .pitch import PitchAnalyzer, yin_pitch
from .harmonics import reject_harmonics
from .frame_analyzer import FrameAnalyzer, ChunkResult
from .tempo import TempoEstimator, TempoInfo

__all__ = [
    "fft",
    "magnitude_spectrum",
    "hann_window",
    "GoertzelBank",
    "goertzel_power",
    "PitchAnalyzer",
    "yin_pitch",
    "reject_harmonics",
    "FrameAnalyzer",
    "ChunkResult",
    "TempoEstimator",
    "TempoInfo",
]
