"""Tests for the transcriber and audio loading."""

import logging
import threading

import numpy as np
import pytest
import soundfile as sf

from generate_test_audio import generate_chord, generate_clicks, generate_sine_wave
from notescribe.core import (
    AnalysisCancelled,
    AnalysisConfig,
    BackendError,
    DecodeError,
    Waveform,
)
from notescribe.input.loader import AudioLoader
from notescribe.output import read_midi_notes
from notescribe.scheduling import InlineBackend, RunState
from notescribe.transcriber import Transcriber

INLINE = {"use_worker": False}


class HookedBackend(InlineBackend):
    """Inline backend that calls a hook before each chunk."""

    def __init__(self, config, sample_rate, hook):
        super().__init__(config, sample_rate)
        self.hook = hook

    def analyze(self, chunk, timeout, should_abort=None):
        self.hook(chunk)
        return super().analyze(chunk, timeout, should_abort)


def hooked(hook):
    return lambda config, sr: HookedBackend(config, sr, hook)


@pytest.fixture
def long_waveform():
    # Eight default-size chunks of A3
    return Waveform(generate_sine_wave(220.0, 8 * 131072 / 22050), 22050)


class TestTranscriptionScenarios:
    """End-to-end transcriptions of synthetic audio."""

    def test_sine_a3_mono(self):
        waveform = Waveform(generate_sine_wave(220.0, 2.0, sr=44100), 44100)
        result = Transcriber().run(waveform, AnalysisConfig(**INLINE))

        assert len(result.notes) == 1
        note = result.notes[0]
        assert note.pitch == 57
        assert note.time < 0.05
        assert note.duration == pytest.approx(1.95, abs=0.1)
        assert 25 <= note.velocity <= 127
        assert result.bpm == 120.0
        assert result.backend == "inline"
        assert result.raw_event_count > 0

    @pytest.mark.parametrize("algorithm", ["poly_salience", "poly_hps", "hybrid"])
    def test_major_third_polyphonic(self, algorithm):
        waveform = Waveform(generate_chord([60, 64], 2.0), 22050)
        config = AnalysisConfig(detection_algorithm=algorithm, **INLINE)
        result = Transcriber().run(waveform, config)

        assert {n.pitch for n in result.notes} == {60, 64}
        assert result.algorithm == algorithm

    @pytest.mark.parametrize("mode", ["full", "fast", "fallback", "high_res"])
    def test_sustained_tone_spans_chunks(self, mode):
        chunk_size = 16384
        samples = generate_sine_wave(220.0, 3 * chunk_size / 22050)[: 3 * chunk_size]
        config = AnalysisConfig(chunk_size_samples=chunk_size, analysis_mode=mode, **INLINE)
        result = Transcriber().run(Waveform(samples, 22050), config)

        assert [n.pitch for n in result.notes] == [57]
        assert result.notes[0].duration > 1.8

    def test_clicks_rhythm(self):
        waveform = Waveform(generate_clicks(0.5, 4.0, 16384, offset=2048), 16384)
        config = AnalysisConfig(detection_algorithm="rhythm", **INLINE)
        result = Transcriber().run(waveform, config)

        assert result.notes == []
        assert len(result.onset_times) == 8
        assert np.allclose(np.diff(result.onset_times), 0.5)
        assert result.bpm == 120.0
        assert read_midi_notes(result.midi) == []

    def test_midi_matches_notes(self):
        waveform = Waveform(generate_sine_wave(220.0, 2.0), 22050)
        result = Transcriber().run(waveform, AnalysisConfig(**INLINE))
        decoded = read_midi_notes(result.midi)

        assert [n.pitch for n in decoded] == [n.pitch for n in result.notes]
        assert [n.velocity for n in decoded] == [n.velocity for n in result.notes]

    def test_silence_yields_no_notes(self):
        result = Transcriber().run(Waveform(np.zeros(44100), 22050), AnalysisConfig(**INLINE))
        assert result.notes == []
        assert result.bpm == 120.0
        assert result.midi.startswith(b"MThd")

    def test_to_dict(self):
        waveform = Waveform(generate_sine_wave(220.0, 1.0), 22050)
        data = Transcriber().run(waveform, AnalysisConfig(**INLINE)).to_dict()
        assert set(data) >= {"notes", "bpm", "midi_bytes", "backend", "onset_times", "raw_note_count"}
        assert data["notes"][0]["pitch"] == 57


class TestRefilter:
    """Tests for re-applying post-filters to a finished result."""

    @pytest.fixture
    def result(self):
        waveform = Waveform(generate_sine_wave(220.0, 2.0), 22050)
        return Transcriber().run(waveform, AnalysisConfig(**INLINE))

    def test_raw_notes_include_filtered_notes(self, result):
        assert len(result.raw_notes) >= len(result.notes)
        assert all(n in result.raw_notes for n in result.notes)

    def test_strict_filter_drops_notes(self, result):
        strict = result.refilter(min_velocity=127, min_duration=10.0)

        assert strict.notes == []
        assert read_midi_notes(strict.midi) == []
        assert strict.bpm == result.bpm
        assert strict.raw_notes == result.raw_notes
        assert result.notes != []

    def test_loose_filter_keeps_raw_notes(self, result):
        loose = result.refilter(min_velocity=0, min_duration=0.0)

        assert loose.notes == result.raw_notes
        assert sorted(n.pitch for n in read_midi_notes(loose.midi)) == sorted(n.pitch for n in result.raw_notes)


class TestTranscriberLifecycle:
    """Tests for start, cancel, wait and reset."""

    def test_progress_reports(self):
        reports = []
        waveform = Waveform(generate_sine_wave(220.0, 2.0), 22050)
        Transcriber(progress_callback=reports.append).run(waveform, AnalysisConfig(**INLINE))

        percents = [r.percent for r in reports]
        assert reports[0].stage == "Initializing"
        assert percents[0] == 0.0
        assert percents == sorted(percents)
        assert percents[-1] == 100.0
        assert reports[-1].stage == "Complete"

    def test_states_after_completion_and_reset(self):
        transcriber = Transcriber()
        assert transcriber.state == RunState.IDLE
        transcriber.run(Waveform(generate_sine_wave(220.0, 1.0), 22050), AnalysisConfig(**INLINE))

        assert transcriber.state == RunState.COMPLETED
        assert transcriber.result is not None
        transcriber.reset()
        assert transcriber.state == RunState.IDLE
        assert transcriber.result is None

    def test_cancel_mid_run(self, long_waveform):
        transcriber = None

        def cancel_at_third_chunk(chunk):
            if chunk.index == 2:
                transcriber.cancel()

        transcriber = Transcriber(backend_factory=hooked(cancel_at_third_chunk))
        transcriber.start(long_waveform, AnalysisConfig(**INLINE))
        with pytest.raises(AnalysisCancelled) as excinfo:
            transcriber.wait(timeout=60)

        assert excinfo.value.chunks_completed == 2
        assert transcriber.state == RunState.CANCELLED
        assert transcriber.result is None

    def test_double_start_and_wait_timeout(self, long_waveform):
        release = threading.Event()
        transcriber = Transcriber(backend_factory=hooked(lambda chunk: release.wait(30)))
        transcriber.start(long_waveform, AnalysisConfig(**INLINE))
        try:
            assert transcriber.is_running
            with pytest.raises(RuntimeError, match="already running"):
                transcriber.start(long_waveform, AnalysisConfig(**INLINE))
            with pytest.raises(TimeoutError):
                transcriber.wait(timeout=0.05)
        finally:
            release.set()
        assert transcriber.wait(timeout=60).notes

    def test_reset_cancels_running_job(self, long_waveform):
        started = threading.Event()

        def block_until_cancelled(chunk):
            started.set()

        transcriber = Transcriber(backend_factory=hooked(block_until_cancelled))
        transcriber.start(long_waveform, AnalysisConfig(**INLINE))
        assert started.wait(30)
        transcriber.reset()

        assert not transcriber.is_running
        assert transcriber.state == RunState.IDLE
        assert transcriber.result is None

    def test_backend_failure_fails_run(self):
        def fail(chunk):
            raise BackendError("analyzer crashed")

        transcriber = Transcriber(backend_factory=hooked(fail))
        transcriber.start(Waveform(generate_sine_wave(220.0, 1.0), 22050), AnalysisConfig(**INLINE))
        with pytest.raises(BackendError):
            transcriber.wait(timeout=60)
        assert transcriber.state == RunState.FAILED
        assert transcriber.result is None

    def test_wait_before_start(self):
        with pytest.raises(RuntimeError):
            Transcriber().wait()

    @pytest.mark.parametrize(
        "waveform",
        [
            Waveform(np.zeros(0), 22050),
            Waveform(np.array([0.0, np.nan, 0.0]), 22050),
            Waveform(np.zeros(100), 0),
        ],
    )
    def test_unusable_waveform(self, waveform):
        transcriber = Transcriber()
        with pytest.raises(DecodeError):
            transcriber.start(waveform, AnalysisConfig(**INLINE))
        assert transcriber.state == RunState.IDLE


class TestAudioLoader:
    """Tests for AudioLoader."""

    def test_normalize(self):
        loader = AudioLoader()
        audio = np.array([0.5, -0.5, 0.25, -0.25])
        normalized = loader._normalize(audio)

        assert np.abs(normalized).max() == 1.0

    def test_unsupported_format(self, tmp_path):
        # Create a dummy file with unsupported extension
        dummy_file = tmp_path / "test.xyz"
        dummy_file.write_text("dummy content")

        loader = AudioLoader()
        with pytest.raises(DecodeError, match="Unsupported format"):
            loader.load(str(dummy_file))

    def test_missing_file(self, tmp_path):
        with pytest.raises(DecodeError, match="not found"):
            AudioLoader().load(str(tmp_path / "missing.wav"))

    def test_oversized_file_rejected(self, tmp_path):
        path = tmp_path / "a3.wav"
        sf.write(str(path), generate_sine_wave(220.0, 1.0), 22050)

        with pytest.raises(DecodeError, match="exceeds the limit"):
            AudioLoader(max_size_mb=0.01).load(str(path))

    def test_large_file_warns(self, tmp_path, caplog):
        path = tmp_path / "a3.wav"
        sf.write(str(path), generate_sine_wave(220.0, 1.0), 22050)

        with caplog.at_level(logging.WARNING, logger="notescribe.input.loader"):
            audio, sr = AudioLoader(warn_size_mb=0.01).load(str(path))
        assert len(audio) == 22050
        assert any("Large file" in r.getMessage() for r in caplog.records)

    def test_normalize_on_load(self, tmp_path):
        path = tmp_path / "quiet.wav"
        sf.write(str(path), generate_sine_wave(220.0, 1.0, amplitude=0.1), 22050)

        audio, _ = AudioLoader(normalize=True).load(str(path))
        assert np.abs(audio).max() == pytest.approx(1.0)

    def test_stereo_is_mixed_to_mono(self, tmp_path):
        path = tmp_path / "stereo.wav"
        left = generate_sine_wave(220.0, 1.0)
        sf.write(str(path), np.stack([left, left], axis=1), 22050)

        audio, sr = AudioLoader().load(str(path))
        assert sr == 22050
        assert audio.ndim == 1
        assert AudioLoader().get_duration(audio, sr) == pytest.approx(1.0)

    def test_resample_to_target(self, tmp_path):
        path = tmp_path / "a3.wav"
        sf.write(str(path), generate_sine_wave(220.0, 1.0, sr=44100), 44100)

        waveform = AudioLoader(target_sr=22050).load_waveform(str(path))
        assert waveform.sample_rate == 22050
        assert waveform.duration == pytest.approx(1.0, abs=0.01)

    def test_info(self, tmp_path):
        path = tmp_path / "a3.wav"
        sf.write(str(path), generate_sine_wave(220.0, 2.0), 22050)

        info = AudioLoader().info(str(path))
        assert info.sample_rate == 22050
        assert info.channels == 1
        assert info.frames == 44100
        assert info.duration == pytest.approx(2.0)
