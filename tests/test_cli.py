"""Tests for the command-line interface."""

import mido
import pytest
import soundfile as sf
from typer.testing import CliRunner

from generate_test_audio import generate_sine_wave
from notescribe.cli import app
from notescribe.core import Note
from notescribe.output import MIDIEncoder, read_midi_notes

runner = CliRunner()


@pytest.fixture
def a3_wav(tmp_path):
    path = tmp_path / "a3.wav"
    sf.write(str(path), generate_sine_wave(220.0, 2.0), 22050)
    return path


class TestInfoCommand:
    def test_shows_header(self, a3_wav):
        result = runner.invoke(app, ["info", str(a3_wav)])
        assert result.exit_code == 0
        assert "Sample rate: 22050 Hz" in result.stdout
        assert "Channels: 1" in result.stdout

    def test_missing_file(self, tmp_path):
        result = runner.invoke(app, ["info", str(tmp_path / "missing.wav")])
        assert result.exit_code == 1


class TestTranscribeCommand:
    def test_writes_midi(self, a3_wav, tmp_path):
        output = tmp_path / "out" / "a3.mid"
        result = runner.invoke(app, ["transcribe", str(a3_wav), "--inline", "-o", str(output)])

        assert result.exit_code == 0, result.stdout
        assert "Detected 1 notes" in result.stdout
        assert [n.pitch for n in read_midi_notes(output)] == [57]

    def test_default_output_path(self, a3_wav):
        result = runner.invoke(app, ["transcribe", str(a3_wav), "--inline"])
        assert result.exit_code == 0, result.stdout
        assert a3_wav.with_suffix(".mid").exists()

    def test_tempo_override(self, a3_wav, tmp_path):
        output = tmp_path / "a3.mid"
        result = runner.invoke(
            app, ["transcribe", str(a3_wav), "--inline", "-t", "90", "-o", str(output)]
        )
        assert result.exit_code == 0, result.stdout
        assert "Tempo: 90 BPM" in result.stdout

        midi = mido.MidiFile(str(output))
        tempos = [m.tempo for m in midi.tracks[0] if m.type == "set_tempo"]
        assert tempos == [666667]

    def test_json_output(self, a3_wav, tmp_path):
        result = runner.invoke(
            app, ["transcribe", str(a3_wav), "--inline", "--json", "-o", str(tmp_path / "a3.mid")]
        )
        assert result.exit_code == 0, result.stdout
        assert '"algorithm": "mono"' in result.stdout
        assert '"backend": "inline"' in result.stdout

    def test_normalize_lifts_quiet_input(self, tmp_path):
        path = tmp_path / "quiet.wav"
        sf.write(str(path), generate_sine_wave(220.0, 2.0, amplitude=0.005), 22050)
        output = tmp_path / "quiet.mid"

        gated = runner.invoke(app, ["transcribe", str(path), "--inline", "-o", str(output)])
        assert gated.exit_code == 0, gated.stdout
        assert read_midi_notes(output) == []

        result = runner.invoke(
            app, ["transcribe", str(path), "--inline", "--normalize", "-o", str(output)]
        )
        assert result.exit_code == 0, result.stdout
        assert [n.pitch for n in read_midi_notes(output)] == [57]

    def test_unknown_algorithm(self, a3_wav):
        result = runner.invoke(app, ["transcribe", str(a3_wav), "--inline", "-a", "neural"])
        assert result.exit_code == 1
        assert "Unknown detection algorithm" in result.stdout

    def test_undecodable_input(self, tmp_path):
        path = tmp_path / "broken.wav"
        path.write_bytes(b"not audio at all")
        result = runner.invoke(app, ["transcribe", str(path), "--inline"])
        assert result.exit_code == 1


class TestInspectCommand:
    def test_lists_notes(self, tmp_path):
        path = MIDIEncoder(bpm=120).write(
            [
                Note(time=0.0, pitch=60, velocity=80, duration=0.5),
                Note(time=0.5, pitch=64, velocity=80, duration=0.5),
            ],
            tmp_path / "two.mid",
        )
        result = runner.invoke(app, ["inspect", str(path)])
        assert result.exit_code == 0
        assert "2 notes" in result.stdout
        assert "C4" in result.stdout
