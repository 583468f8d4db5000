"""Audio loading and preprocessing utilities."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import librosa
import numpy as np
import soundfile as sf

from ..core import DecodeError, Waveform
from ..core.constants import MAX_FILE_SIZE_MB, WARNING_SIZE_MB

logger = logging.getLogger(__name__)


@dataclass
class AudioInfo:
    """Header information of an audio file."""

    path: str
    sample_rate: int
    channels: int
    frames: int
    duration: float
    format: str


class AudioLoader:
    """Decode audio files into mono float waveforms."""

    SUPPORTED_FORMATS = {".wav", ".mp3", ".flac", ".ogg", ".m4a", ".aiff", ".aif"}

    def __init__(
        self,
        target_sr: Optional[int] = None,
        normalize: bool = False,
        max_size_mb: float = MAX_FILE_SIZE_MB,
        warn_size_mb: float = WARNING_SIZE_MB,
    ):
        """
        Initialize AudioLoader.

        Args:
            target_sr: Resample to this rate; None keeps the file's rate
            normalize: Peak-normalize to [-1, 1] if True
            max_size_mb: Files larger than this are rejected
            warn_size_mb: Files larger than this load with a warning
        """
        self.target_sr = target_sr
        self.normalize = normalize
        self.max_size_mb = max_size_mb
        self.warn_size_mb = warn_size_mb

    def load(self, path: str) -> Tuple[np.ndarray, int]:
        """
        Load an audio file as mono float32 samples.

        Args:
            path: Path to audio file

        Returns:
            Tuple of (audio array, sample rate)

        Raises:
            DecodeError: If the file is missing, too large, unsupported or
                undecodable
        """
        path = Path(path)

        if not path.exists():
            raise DecodeError(f"Audio file not found: {path}")

        if path.suffix.lower() not in self.SUPPORTED_FORMATS:
            raise DecodeError(
                f"Unsupported format: {path.suffix}. "
                f"Supported: {sorted(self.SUPPORTED_FORMATS)}"
            )

        self._check_size(path)

        try:
            # Multi-channel input is averaged to one channel here
            audio, sr = librosa.load(str(path), sr=self.target_sr, mono=True)
        except Exception as exc:
            raise DecodeError(f"Could not decode {path}: {exc}") from exc

        if audio.size == 0:
            raise DecodeError(f"No audio samples in {path}")

        audio = np.clip(audio.astype(np.float32), -1.0, 1.0)
        if self.normalize:
            audio = self._normalize(audio)

        logger.info("Loaded %s: %.2fs at %d Hz", path.name, self.get_duration(audio, sr), sr)
        return audio, int(sr)

    def load_waveform(self, path: str) -> Waveform:
        """Load an audio file as a Waveform."""
        audio, sr = self.load(path)
        return Waveform(audio, sr)

    def _check_size(self, path: Path) -> None:
        size_mb = path.stat().st_size / (1024 * 1024)
        if size_mb > self.max_size_mb:
            raise DecodeError(
                f"File size ({size_mb:.1f} MB) exceeds the limit of {self.max_size_mb} MB: {path}"
            )
        if size_mb > self.warn_size_mb:
            logger.warning("Large file (%.1f MB): %s may take a while to analyze", size_mb, path.name)

    def _normalize(self, audio: np.ndarray) -> np.ndarray:
        """Normalize audio to [-1, 1] range using peak normalization."""
        peak = np.abs(audio).max()
        if peak > 0:
            audio = audio / peak
        return audio

    def info(self, path: str) -> AudioInfo:
        """
        Read header information without decoding the samples.

        Raises:
            DecodeError: If the file is missing or unreadable
        """
        path = Path(path)
        if not path.exists():
            raise DecodeError(f"Audio file not found: {path}")
        try:
            header = sf.info(str(path))
        except RuntimeError as exc:
            raise DecodeError(f"Could not read {path}: {exc}") from exc
        return AudioInfo(
            path=str(path),
            sample_rate=header.samplerate,
            channels=header.channels,
            frames=header.frames,
            duration=header.duration,
            format=header.format,
        )

    def get_duration(self, audio: np.ndarray, sr: int) -> float:
        """Get duration in seconds."""
        return len(audio) / sr
