"""Per-chunk frame analysis: spectra, salience rows and raw note events."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import numpy as np

from ..core.config import AnalysisConfig
from ..core.constants import NUM_PITCHES, PIANO_MIN, VELOCITY_MAX, VELOCITY_MIN
from ..core.errors import AnalysisCancelled
from ..core.note import Chunk, Note, RawEvent
from .fft import hann_window, magnitude_spectrum
from .filters import apply_band_filter, design_band_filter
from .harmonics import reject_harmonics
from .onset import detect_onsets, spectral_flux
from .pitch import yin_pitch
from .polyphonic import (
    Candidates,
    HarmonicPercussiveMask,
    confirm_candidates,
    drop_octave_duplicates,
    hps_candidates,
    merge_candidates,
    pick_salience_peaks,
    strongest_salience_peak,
)
from .salience import get_bank, quantize_row, whiten

logger = logging.getLogger(__name__)


@dataclass
class ChunkResult:
    """Everything one chunk contributes to a run."""

    index: int
    events: List[RawEvent] = field(default_factory=list)
    salience: np.ndarray = field(
        default_factory=lambda: np.zeros((0, NUM_PITCHES), dtype=np.uint8)
    )
    frame_times: np.ndarray = field(default_factory=lambda: np.zeros(0))
    frames: int = 0
    gated_frames: int = 0


def strength_to_velocity(strength: float, floor: int = 16) -> int:
    """Map a detection strength in [0, 1] to a MIDI velocity above the floor."""
    strength = float(np.clip(strength, 0.0, 1.0))
    velocity = int(round(floor + strength * (VELOCITY_MAX - floor)))
    return max(VELOCITY_MIN, min(VELOCITY_MAX, velocity))


class FrameAnalyzer:
    """
    Frame-level analysis of one chunk at a time.

    The analyzer is stateless between chunks, so any backend that runs it on
    the same chunk produces the same result.
    """

    def __init__(self, config: AnalysisConfig, sample_rate: int):
        """
        Initialize FrameAnalyzer.

        Args:
            config: Validated analysis configuration
            sample_rate: Sample rate of the waveform
        """
        self.config = config
        self.params = config.params
        self.sample_rate = sample_rate
        self.frame_size = config.frame_size
        self.hop_size = config.hop_size
        self.algorithm = config.detection_algorithm
        self.window = hann_window(self.frame_size)
        self.bank = get_bank(sample_rate, self.frame_size, self.params.salience_harmonics)
        self.sos = design_band_filter(sample_rate, config.high_pass_hz, config.low_pass_hz)
        self.band_mask = self._build_band_mask()

    @property
    def hop_duration(self) -> float:
        return self.hop_size / self.sample_rate

    def _build_band_mask(self) -> np.ndarray:
        freqs = np.array([Note.midi_to_freq(PIANO_MIN + i) for i in range(NUM_PITCHES)])
        mask = np.ones(NUM_PITCHES, dtype=bool)
        if self.config.high_pass_hz > 0:
            mask &= freqs >= self.config.high_pass_hz
        if self.config.low_pass_hz > 0:
            mask &= freqs <= self.config.low_pass_hz
        return mask

    def num_frames(self, num_samples: int) -> int:
        """Frames analyzed in a chunk of the given length."""
        return max(0, (num_samples - self.frame_size) // self.hop_size)

    def analyze_chunk(
        self,
        chunk: Chunk,
        should_abort: Optional[Callable[[], bool]] = None,
    ) -> ChunkResult:
        """
        Analyze every frame of a chunk.

        Args:
            chunk: The chunk to analyze
            should_abort: Polled once per frame; when it returns True the
                chunk is abandoned

        Returns:
            ChunkResult with raw events, salience rows and frame times

        Raises:
            AnalysisCancelled: If should_abort returned True
        """
        samples = apply_band_filter(chunk.samples, self.sos)
        n_frames = self.num_frames(len(samples))

        rows = np.zeros((n_frames, NUM_PITCHES), dtype=np.uint8)
        times = np.zeros(n_frames)
        events: List[RawEvent] = []
        gated = 0

        hpss = HarmonicPercussiveMask(self.params.hpss_history, self.params.hpss_freq_kernel)
        flux = np.zeros(n_frames)
        previous_magnitude = None
        rms_gate = self.config.rms_gate

        for i in range(n_frames):
            if should_abort is not None and should_abort():
                raise AnalysisCancelled(f"Chunk {chunk.index} abandoned at frame {i}")

            start = i * self.hop_size
            raw = samples[start:start + self.frame_size]
            windowed = raw * self.window
            time = chunk.time_offset + start / self.sample_rate
            times[i] = time

            magnitude = magnitude_spectrum(windowed, self.frame_size)

            if self.algorithm == "rhythm":
                flux[i] = spectral_flux(magnitude, previous_magnitude)
                previous_magnitude = magnitude

            masked = hpss.apply(magnitude) if self.algorithm == "poly_hps" else None

            rms = float(np.sqrt(np.mean(raw * raw))) if len(raw) else 0.0
            if rms < rms_gate:
                gated += 1
                continue

            salience = np.where(self.band_mask, self.bank.salience(windowed), 0.0)
            whitened = whiten(salience, self.params.whitening_factor, self.params.whitening_span)
            row = quantize_row(whitened)
            rows[i] = row

            if self.algorithm == "rhythm":
                continue

            candidates = self._detect(raw, row, masked)
            candidates = {p: s for p, s in candidates.items() if self.band_mask[p - PIANO_MIN]}
            if candidates:
                candidates = reject_harmonics(
                    candidates, self.config.harmonic_rejection_strength, self.params
                )

            for pitch in sorted(candidates):
                events.append(
                    RawEvent(
                        time=time,
                        pitch=pitch,
                        velocity=strength_to_velocity(candidates[pitch], self.params.velocity_floor),
                        duration=self.hop_duration,
                    )
                )

        if self.algorithm == "rhythm" and n_frames > 0:
            events = self._onset_events(flux, times)

        logger.debug(
            "Chunk %d: %d frames (%d gated), %d events",
            chunk.index, n_frames, gated, len(events),
        )
        return ChunkResult(
            index=chunk.index,
            events=events,
            salience=rows,
            frame_times=times,
            frames=n_frames,
            gated_frames=gated,
        )

    def _detect(self, raw: np.ndarray, row: np.ndarray, masked: Optional[np.ndarray]) -> Candidates:
        params = self.params
        if self.algorithm == "mono":
            return self._mono(raw)
        if self.algorithm == "poly_salience":
            return pick_salience_peaks(row, params)
        if self.algorithm == "poly_hps":
            peaks = pick_salience_peaks(row, params, max_peaks=params.hps_salience_peaks)
            hps = hps_candidates(masked, self.sample_rate, self.frame_size, params)
            merged = merge_candidates(peaks, confirm_candidates(hps, peaks, row, params))
            return drop_octave_duplicates(merged)
        if self.algorithm == "hybrid":
            peaks = pick_salience_peaks(row, params)
            return merge_candidates(
                peaks,
                confirm_candidates(self._mono(raw), peaks, row, params),
                strongest_salience_peak(row),
            )
        return {}

    def _mono(self, raw: np.ndarray) -> Dict[int, float]:
        estimate = yin_pitch(
            raw,
            self.sample_rate,
            self.params.yin_fmin,
            self.params.yin_fmax,
            self.params.yin_threshold,
        )
        if estimate is None:
            return {}
        return {estimate.pitch: estimate.confidence}

    def _onset_events(self, flux: np.ndarray, times: np.ndarray) -> List[RawEvent]:
        onsets = detect_onsets(
            flux,
            self.params.onset_factor,
            self.params.onset_percentile,
            self.params.onset_window,
        )
        peak = float(flux.max()) if len(flux) else 0.0
        events = []
        for i in np.flatnonzero(onsets):
            strength = flux[i] / peak if peak > 0 else 0.0
            events.append(
                RawEvent(
                    time=float(times[i]),
                    pitch=self.params.rhythm_pitch,
                    velocity=strength_to_velocity(strength, self.params.velocity_floor),
                    duration=self.hop_duration,
                )
            )
        return events
