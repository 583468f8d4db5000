"""Analysis configuration and detection parameters."""

import logging
import math
import numbers
from dataclasses import dataclass, field, fields, replace, asdict
from typing import Any, Dict, Tuple

from .constants import (
    ANALYSIS_MODES,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_TOTAL_TIMEOUT,
    DETECTION_ALGORITHMS,
)
from .errors import ConfigError

logger = logging.getLogger(__name__)

_MODE_ALIASES = {
    "highres": "high_res",
    "high-res": "high_res",
}

_ALGORITHM_ALIASES = {
    "monophonic": "mono",
    "polysalience": "poly_salience",
    "poly-salience": "poly_salience",
    "polyhps": "poly_hps",
    "poly-hps": "poly_hps",
    "polyphonic": "poly_salience",
    "onset": "rhythm",
}

_CAMEL_FIELDS = {
    "chunkSizeSamples": "chunk_size_samples",
    "analysisMode": "analysis_mode",
    "sensitivityThreshold": "sensitivity_threshold",
    "detectionAlgorithm": "detection_algorithm",
    "harmonicRejectionStrength": "harmonic_rejection_strength",
    "highPassHz": "high_pass_hz",
    "lowPassHz": "low_pass_hz",
    "minVelocity": "min_velocity",
    "minDurationSeconds": "min_duration_seconds",
    "perChunkTimeoutMs": "per_chunk_timeout_ms",
    "totalTimeoutSeconds": "total_timeout_seconds",
    "useWorker": "use_worker",
}

_NUMERIC_FIELDS = (
    "chunk_size_samples",
    "sensitivity_threshold",
    "harmonic_rejection_strength",
    "high_pass_hz",
    "low_pass_hz",
    "min_velocity",
    "min_duration_seconds",
    "per_chunk_timeout_ms",
    "total_timeout_seconds",
)


@dataclass(frozen=True)
class DetectionParams:
    """Empirical constants used by the detection kernels.

    Values are tuned together; change them one at a time.

    Attributes:
        salience_harmonics: Harmonics summed per candidate pitch
        whitening_factor: Fraction of the local median subtracted per bin
        whitening_span: Half-width (semitones) of the whitening median
        peak_threshold: Peak-picking threshold relative to the row maximum
        suppression_factor: Gain applied to a picked bin and its harmonic images
        suppression_ratios: Harmonic ratios suppressed after each pick
        max_polyphony: Maximum candidates per frame
        hps_threshold: HPS peak threshold relative to the HPS maximum
        hps_factors: Downsampling factors multiplied into the HPS
        hps_salience_peaks: Top salience peaks merged into HPS candidates
        hpss_history: Frames of magnitude history for the percussive median
        hpss_freq_kernel: Bins in the harmonic (frequency) median
        yin_threshold: CMNDF dip threshold for the monophonic tracker
        yin_fmin: Lowest frequency searched by the tracker (Hz)
        yin_fmax: Highest frequency searched by the tracker (Hz)
        onset_factor: Flux must exceed this multiple of the local percentile
        onset_percentile: Percentile of flux in the surrounding window
        onset_window: Frames on each side of the onset window
        rhythm_pitch: Placeholder pitch for onset events
        velocity_floor: Lowest velocity produced from a detection strength
        velocity_exponent: Power curve applied during velocity refinement
        velocity_norm_floor: Normalized level given to the quietest note
        rejection_ratios: Integer ratios checked by harmonic rejection
        rejection_base_cents: Tolerance at full rejection strength
        rejection_span_cents: Extra tolerance added as strength drops to 0
        merge_gap_hops: Largest gap (in hops) bridged when merging events
        fallback_median_weight: Median weight of the adaptive threshold
        fallback_percentile_weight: Upper-percentile weight of the threshold
        fallback_percentile: Upper percentile of the adaptive threshold
        fallback_threshold_range: Clamp for the adaptive threshold
        fallback_bridge_frames: Below-threshold frames tolerated inside a run
        silence_rms: Frame RMS gate at the default sensitivity
        default_sensitivity: Sensitivity at which the gate equals silence_rms
    """

    salience_harmonics: int = 8
    whitening_factor: float = 0.8
    whitening_span: int = 2
    peak_threshold: float = 0.5
    suppression_factor: float = 0.1
    suppression_ratios: Tuple[int, ...] = (1, 2, 3, 4, 5, 6, 7, 8)
    max_polyphony: int = 16
    hps_threshold: float = 0.35
    hps_factors: Tuple[int, ...] = (2, 3, 4)
    hps_salience_peaks: int = 4
    hpss_history: int = 9
    hpss_freq_kernel: int = 17
    yin_threshold: float = 0.15
    yin_fmin: float = 40.0
    yin_fmax: float = 5000.0
    onset_factor: float = 1.2
    onset_percentile: float = 60.0
    onset_window: int = 16
    rhythm_pitch: int = 60
    velocity_floor: int = 16
    velocity_exponent: float = 0.7
    velocity_norm_floor: float = 0.25
    rejection_ratios: Tuple[int, ...] = (2, 3, 4, 5, 6)
    rejection_base_cents: float = 20.0
    rejection_span_cents: float = 80.0
    merge_gap_hops: float = 2.0
    fallback_median_weight: float = 0.6
    fallback_percentile_weight: float = 0.4
    fallback_percentile: float = 80.0
    fallback_threshold_range: Tuple[float, float] = (10.0, 220.0)
    fallback_bridge_frames: int = 2
    silence_rms: float = 0.01
    default_sensitivity: float = 30.0


@dataclass
class AnalysisConfig:
    """Configuration for a transcription run.

    Attributes:
        chunk_size_samples: Samples per dispatched chunk (default: 131072)
        analysis_mode: Frame/hop preset: full, fast, fallback, high_res
        sensitivity_threshold: 10-1000, higher needs louder frames (default: 30)
        detection_algorithm: mono, poly_salience, poly_hps, hybrid, rhythm
        harmonic_rejection_strength: 0-1, 0 disables rejection (default: 0.5)
        high_pass_hz: Lower band edge in Hz, 0 disables (default: 0)
        low_pass_hz: Upper band edge in Hz, 0 disables (default: 0)
        min_velocity: Post-filter minimum velocity (default: 25)
        min_duration_seconds: Post-filter minimum duration (default: 0.06)
        per_chunk_timeout_ms: Worker round-trip timeout (default: 30000)
        total_timeout_seconds: Run-wide wall-clock limit (default: 900)
        use_worker: Try the parallel worker backend first (default: True)
        params: Detection constants
    """

    chunk_size_samples: int = DEFAULT_CHUNK_SIZE
    analysis_mode: str = "full"
    sensitivity_threshold: float = 30.0
    detection_algorithm: str = "mono"
    harmonic_rejection_strength: float = 0.5
    high_pass_hz: float = 0.0
    low_pass_hz: float = 0.0
    min_velocity: int = 25
    min_duration_seconds: float = 0.06
    per_chunk_timeout_ms: int = 30000
    total_timeout_seconds: float = DEFAULT_TOTAL_TIMEOUT
    use_worker: bool = True
    params: DetectionParams = field(default_factory=DetectionParams)

    @property
    def frame_size(self) -> int:
        return ANALYSIS_MODES[self.analysis_mode][0]

    @property
    def hop_size(self) -> int:
        return ANALYSIS_MODES[self.analysis_mode][1]

    @property
    def per_chunk_timeout(self) -> float:
        """Per-chunk timeout in seconds."""
        return self.per_chunk_timeout_ms / 1000.0

    @property
    def rms_gate(self) -> float:
        """Minimum frame RMS for candidate detection."""
        return self.params.silence_rms * (
            self.sensitivity_threshold / self.params.default_sensitivity
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisConfig":
        """Build a config from snake_case or camelCase keys."""
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            name = _CAMEL_FIELDS.get(key, key)
            if name not in known:
                raise ConfigError(f"Unknown configuration key: {key}")
            kwargs[name] = value
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("params")
        return data

    def validated(self, sample_rate: int = 0) -> "AnalysisConfig":
        """Return a copy with enums normalized and numbers clamped.

        Args:
            sample_rate: When given, band edges are clamped below Nyquist

        Raises:
            ConfigError: Unknown mode/algorithm, a non-finite number, a
                non-positive total timeout, or an empty pass band
        """
        mode = _normalize_choice(
            self.analysis_mode, ANALYSIS_MODES.keys(), _MODE_ALIASES, "analysis mode"
        )
        algorithm = _normalize_choice(
            self.detection_algorithm,
            DETECTION_ALGORITHMS,
            _ALGORITHM_ALIASES,
            "detection algorithm",
        )

        for name in _NUMERIC_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, numbers.Real) or not math.isfinite(value):
                raise ConfigError(f"{name} must be a finite number, got {value!r}")

        if self.total_timeout_seconds <= 0:
            raise ConfigError(
                f"total_timeout_seconds must be positive, got {self.total_timeout_seconds}"
            )

        high_pass = _clamp("high_pass_hz", float(self.high_pass_hz), 0.0, None)
        low_pass = _clamp("low_pass_hz", float(self.low_pass_hz), 0.0, None)
        if sample_rate > 0:
            nyquist_edge = sample_rate / 2.0 * 0.99
            high_pass = _clamp("high_pass_hz", high_pass, 0.0, nyquist_edge)
            low_pass = _clamp("low_pass_hz", low_pass, 0.0, nyquist_edge)
        if high_pass > 0 and low_pass > 0 and high_pass >= low_pass:
            raise ConfigError(
                f"high_pass_hz ({high_pass}) must be below low_pass_hz ({low_pass})"
            )

        return replace(
            self,
            analysis_mode=mode,
            detection_algorithm=algorithm,
            chunk_size_samples=int(
                _clamp("chunk_size_samples", int(self.chunk_size_samples), 4096, 1 << 22)
            ),
            sensitivity_threshold=_clamp(
                "sensitivity_threshold", float(self.sensitivity_threshold), 10.0, 1000.0
            ),
            harmonic_rejection_strength=_clamp(
                "harmonic_rejection_strength",
                float(self.harmonic_rejection_strength),
                0.0,
                1.0,
            ),
            high_pass_hz=high_pass,
            low_pass_hz=low_pass,
            min_velocity=int(_clamp("min_velocity", int(self.min_velocity), 1, 127)),
            min_duration_seconds=_clamp(
                "min_duration_seconds", float(self.min_duration_seconds), 0.001, None
            ),
            per_chunk_timeout_ms=int(
                _clamp("per_chunk_timeout_ms", int(self.per_chunk_timeout_ms), 20000, 45000)
            ),
            total_timeout_seconds=float(self.total_timeout_seconds),
        )


def _normalize_choice(value, choices, aliases, label: str) -> str:
    key = str(value).strip()
    if key in choices:
        return key
    lowered = key.lower().replace(" ", "")
    if lowered in choices:
        return lowered
    if lowered in aliases:
        return aliases[lowered]
    raise ConfigError(f"Unknown {label} '{value}'. Supported: {', '.join(choices)}")


def _clamp(name: str, value, lo, hi):
    clamped = value
    if lo is not None and clamped < lo:
        clamped = lo
    if hi is not None and clamped > hi:
        clamped = hi
    if clamped != value:
        logger.warning("Clamped %s from %s to %s", name, value, clamped)
    return clamped
