"""Input layer - Audio decoding.

This layer turns audio files into mono float waveforms for analysis.
"""

from .loader import AudioLoader, AudioInfo

__all__ = [
    "AudioLoader",
    "AudioInfo",
]
