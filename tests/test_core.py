"""Tests for core types, configuration and errors."""

import logging

import numpy as np
import pytest

from notescribe.core import (
    AnalysisConfig,
    BackendError,
    ChunkTimeoutError,
    ConfigError,
    Note,
    NoteScribeError,
    RunTimeoutError,
    Waveform,
    sort_notes,
)


class TestNote:
    """Tests for Note dataclass."""

    def test_note_creation(self):
        note = Note(time=0.5, pitch=60, velocity=80, duration=1.0)
        assert note.time == 0.5
        assert note.pitch == 60
        assert note.velocity == 80
        assert note.offset == 1.5

    def test_pitch_name(self):
        assert Note(time=0, pitch=60, duration=1).pitch_name == "C4"
        assert Note(time=0, pitch=69, duration=1).pitch_name == "A4"
        assert Note(time=0, pitch=61, duration=1).pitch_name == "C#4"
        assert Note(time=0, pitch=21, duration=1).pitch_name == "A0"

    def test_freq_to_midi(self):
        assert Note.freq_to_midi(440.0) == 69  # A4
        assert Note.freq_to_midi(261.63) == 60  # C4 (approx)
        assert Note.freq_to_midi(220.0) == 57  # A3

    def test_midi_to_freq(self):
        assert Note.midi_to_freq(69) == 440.0
        assert abs(Note.midi_to_freq(60) - 261.63) < 0.01
        assert Note(time=0, pitch=57).frequency == pytest.approx(220.0)

    def test_sort_notes_by_time_then_pitch(self):
        notes = [
            Note(time=1.0, pitch=60, duration=0.5),
            Note(time=0.0, pitch=64, duration=0.5),
            Note(time=0.0, pitch=60, duration=0.5),
        ]
        ordered = sort_notes(notes)
        assert [(n.time, n.pitch) for n in ordered] == [(0.0, 60), (0.0, 64), (1.0, 60)]


class TestWaveform:
    """Tests for the immutable waveform."""

    def test_samples_are_read_only_copy(self):
        source = np.zeros(100)
        waveform = Waveform(source, 8000)
        source[0] = 1.0
        assert waveform.samples[0] == 0.0
        assert waveform.samples.dtype == np.float32
        with pytest.raises(ValueError):
            waveform.samples[0] = 1.0

    def test_duration(self):
        waveform = Waveform(np.zeros(44100), 22050)
        assert len(waveform) == 44100
        assert waveform.duration == 2.0


class TestAnalysisConfig:
    """Tests for configuration validation."""

    def test_defaults(self):
        config = AnalysisConfig().validated()
        assert config.chunk_size_samples == 131072
        assert config.analysis_mode == "full"
        assert config.detection_algorithm == "mono"
        assert config.frame_size == 2048
        assert config.hop_size == 1024
        assert config.per_chunk_timeout == 30.0
        assert config.rms_gate == pytest.approx(0.01)

    @pytest.mark.parametrize(
        "mode,frame,hop",
        [("full", 2048, 1024), ("fast", 1024, 512), ("fallback", 512, 256), ("highRes", 4096, 1024)],
    )
    def test_analysis_modes(self, mode, frame, hop):
        config = AnalysisConfig(analysis_mode=mode).validated()
        assert (config.frame_size, config.hop_size) == (frame, hop)

    def test_camel_case_algorithm_names(self):
        assert AnalysisConfig(detection_algorithm="polySalience").validated().detection_algorithm == "poly_salience"
        assert AnalysisConfig(detection_algorithm="polyHPS").validated().detection_algorithm == "poly_hps"

    def test_unknown_enum_raises(self):
        with pytest.raises(ConfigError, match="detection algorithm"):
            AnalysisConfig(detection_algorithm="neural").validated()
        with pytest.raises(ConfigError, match="analysis mode"):
            AnalysisConfig(analysis_mode="turbo").validated()

    def test_config_error_is_value_error(self):
        with pytest.raises(ValueError):
            AnalysisConfig(analysis_mode="turbo").validated()

    def test_out_of_range_values_are_clamped(self, caplog):
        config = AnalysisConfig(
            chunk_size_samples=10,
            sensitivity_threshold=5000,
            harmonic_rejection_strength=1.5,
            min_velocity=0,
            per_chunk_timeout_ms=1000,
        )
        with caplog.at_level(logging.WARNING, logger="notescribe.core.config"):
            clamped = config.validated()

        assert clamped.chunk_size_samples == 4096
        assert clamped.sensitivity_threshold == 1000
        assert clamped.harmonic_rejection_strength == 1.0
        assert clamped.min_velocity == 1
        assert clamped.per_chunk_timeout_ms == 20000
        assert len(caplog.records) == 5

    def test_band_edges_clamped_below_nyquist(self):
        config = AnalysisConfig(low_pass_hz=30000).validated(sample_rate=44100)
        assert config.low_pass_hz < 22050

    def test_empty_band_raises(self):
        with pytest.raises(ConfigError):
            AnalysisConfig(high_pass_hz=2000, low_pass_hz=500).validated(44100)

    def test_non_positive_total_timeout_raises(self):
        with pytest.raises(ConfigError):
            AnalysisConfig(total_timeout_seconds=0).validated()

    @pytest.mark.parametrize(
        "field_name, value",
        [
            ("total_timeout_seconds", float("nan")),
            ("total_timeout_seconds", float("inf")),
            ("sensitivity_threshold", float("nan")),
            ("harmonic_rejection_strength", float("nan")),
            ("min_duration_seconds", float("-inf")),
            ("high_pass_hz", float("nan")),
        ],
    )
    def test_non_finite_values_raise(self, field_name, value):
        with pytest.raises(ConfigError, match=field_name):
            AnalysisConfig(**{field_name: value}).validated()

    def test_missing_total_timeout_raises(self):
        with pytest.raises(ConfigError):
            AnalysisConfig(total_timeout_seconds=None).validated()

    def test_sensitivity_scales_rms_gate(self):
        assert AnalysisConfig(sensitivity_threshold=60).validated().rms_gate == pytest.approx(0.02)

    def test_from_dict_accepts_camel_case(self):
        config = AnalysisConfig.from_dict(
            {"analysisMode": "fast", "detectionAlgorithm": "hybrid", "min_velocity": 30}
        )
        assert config.analysis_mode == "fast"
        assert config.detection_algorithm == "hybrid"
        assert config.min_velocity == 30

    def test_from_dict_rejects_unknown_keys(self):
        with pytest.raises(ConfigError, match="Unknown configuration key"):
            AnalysisConfig.from_dict({"tempo": 120})

    def test_to_dict_round_trip(self):
        config = AnalysisConfig(analysis_mode="fast", use_worker=False)
        assert AnalysisConfig.from_dict(config.to_dict()) == config


class TestErrors:
    """Tests for the error taxonomy."""

    def test_chunk_timeout_is_backend_error(self):
        error = ChunkTimeoutError(3, 30.0)
        assert isinstance(error, BackendError)
        assert error.chunk_index == 3
        assert "Chunk 3" in str(error)

    def test_run_timeout_message(self):
        error = RunTimeoutError(901.0, 900.0)
        assert isinstance(error, NoteScribeError)
        assert "Analysis timeout after" in str(error)
