"""Tests for the MIDI encoder."""

import io

import mido
import numpy as np
import pytest

from notescribe.core import EncodeError, Note
from notescribe.output import MIDIEncoder, decode_vlq, encode_vlq, read_midi_notes


class TestVLQ:
    """Tests for variable-length quantities."""

    @pytest.mark.parametrize(
        "value,encoded",
        [
            (0, b"\x00"),
            (0x40, b"\x40"),
            (0x7F, b"\x7f"),
            (0x80, b"\x81\x00"),
            (0x2000, b"\xc0\x00"),
            (0x3FFF, b"\xff\x7f"),
            (0x4000, b"\x81\x80\x00"),
            (0x0FFFFFFF, b"\xff\xff\xff\x7f"),
        ],
    )
    def test_known_encodings(self, value, encoded):
        assert encode_vlq(value) == encoded
        assert decode_vlq(encoded) == (value, len(encoded))

    def test_round_trip_sample(self):
        values = np.random.default_rng(7).integers(0, 1 << 28, size=500)
        for value in values:
            assert decode_vlq(encode_vlq(int(value)))[0] == value

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            encode_vlq(1 << 28)
        with pytest.raises(ValueError):
            encode_vlq(-1)

    def test_decode_at_offset(self):
        data = b"\x00\x81\x00\x7f"
        assert decode_vlq(data, 1) == (128, 3)


class TestMIDIEncoder:
    """Tests for byte-exact encoding."""

    def test_exact_bytes_single_note(self):
        data = MIDIEncoder(bpm=120).encode([Note(time=0.0, pitch=60, velocity=100, duration=0.5)])
        expected = (
            b"MThd\x00\x00\x00\x06\x00\x00\x00\x01\x01\xe0"
            b"MTrk\x00\x00\x00\x14"
            b"\x00\xff\x51\x03\x07\xa1\x20"  # 500000 us per quarter
            b"\x00\x90\x3c\x64"
            b"\x83\x60\x80\x3c\x40"  # 480 ticks later
            b"\x00\xff\x2f\x00"
        )
        assert data == expected

    def test_empty_note_list(self):
        data = MIDIEncoder(bpm=120).encode([])
        assert data.endswith(b"\x00\xff\x2f\x00")
        assert data[18:22] == b"\x00\x00\x00\x0b"

    def test_note_off_before_note_on_at_same_tick(self):
        notes = [
            Note(time=0.5, pitch=60, velocity=90, duration=0.5),
            Note(time=0.0, pitch=60, velocity=90, duration=0.5),
        ]
        data = MIDIEncoder(bpm=120).encode(notes)
        track = data[22:]
        off_at = track.index(b"\x80\x3c\x40")
        on_again = track.index(b"\x90\x3c\x5a", off_at)
        assert off_at < on_again

    def test_deterministic(self):
        notes = [Note(time=i * 0.25, pitch=60 + i, velocity=80, duration=0.2) for i in range(8)]
        assert MIDIEncoder(100).encode(notes) == MIDIEncoder(100).encode(list(reversed(notes)))

    def test_minimum_note_length(self):
        data = MIDIEncoder(bpm=120).encode([Note(time=0.0, pitch=60, velocity=80, duration=0.0)])
        # Note-off 10 ticks after the note-on
        assert b"\x00\x90\x3c\x50\x0a\x80\x3c\x40" in data

    def test_clamps_out_of_range_values(self):
        data = MIDIEncoder(bpm=120).encode([Note(time=-1.0, pitch=130, velocity=0, duration=0.5)])
        assert b"\x00\x90\x7f\x01" in data

    def test_nan_raises(self):
        with pytest.raises(EncodeError):
            MIDIEncoder(bpm=120).encode([Note(time=float("nan"), pitch=60, velocity=80, duration=0.5)])

    def test_invalid_tempo_raises(self):
        with pytest.raises(EncodeError):
            MIDIEncoder(bpm=0)

    def test_slow_tempo_is_clamped(self):
        assert MIDIEncoder(bpm=1).microseconds_per_quarter == 0xFFFFFF

    def test_write_creates_directories(self, tmp_path):
        path = tmp_path / "nested" / "out.mid"
        MIDIEncoder(bpm=120).write([Note(time=0.0, pitch=60, velocity=80, duration=0.5)], path)
        assert path.read_bytes().startswith(b"MThd")


class TestMIDIRoundTrip:
    """Tests against reference MIDI readers."""

    @pytest.fixture
    def notes(self):
        rng = np.random.default_rng(11)
        return [
            Note(
                time=float(rng.uniform(0, 10)),
                pitch=21 + 2 * i,
                velocity=int(rng.integers(1, 128)),
                duration=float(rng.uniform(0.05, 1.0)),
            )
            for i in range(40)
        ]

    @pytest.mark.parametrize("bpm", [60.0, 120.0, 137.0])
    def test_mido_reads_pairs_at_expected_ticks(self, notes, bpm):
        data = MIDIEncoder(bpm=bpm).encode(notes)
        midi = mido.MidiFile(file=io.BytesIO(data))
        assert midi.type == 0
        assert midi.ticks_per_beat == 480

        tick = 0
        ons, offs = [], []
        for message in midi.tracks[0]:
            tick += message.time
            if message.type == "note_on" and message.velocity > 0:
                ons.append((tick, message.note))
            elif message.type == "note_off":
                offs.append((tick, message.note))
            elif message.type == "set_tempo":
                assert message.tempo == round(60_000_000 / bpm)

        assert len(ons) == len(offs) == len(notes)
        expected = sorted((round(n.time * 480 * bpm / 60), n.pitch) for n in notes)
        assert sorted(ons) == expected

    def test_pretty_midi_reads_notes_back(self, notes):
        data = MIDIEncoder(bpm=120).encode(notes)
        decoded = read_midi_notes(data)
        assert len(decoded) == len(notes)
        by_pitch = {note.pitch: note for note in decoded}
        for original in notes:
            parsed = by_pitch[original.pitch]
            assert parsed.velocity == original.velocity
            assert parsed.time == pytest.approx(original.time, abs=1 / 960)

    def test_read_from_path(self, tmp_path):
        path = MIDIEncoder(bpm=120).write([Note(time=1.0, pitch=64, velocity=70, duration=0.5)], tmp_path / "a.mid")
        (note,) = read_midi_notes(path)
        assert (note.pitch, note.velocity) == (64, 70)
        assert note.time == pytest.approx(1.0)
        assert note.duration == pytest.approx(0.5)
