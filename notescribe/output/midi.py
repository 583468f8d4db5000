"""MIDI export functionality.

Notes are written as a format 0 Standard MIDI File with one track:

    MThd | len 6 | format 0 | 1 track | 480 ticks per quarter
    MTrk | len   | tempo meta | note on/off events | end of track

The byte layout is fully determined by the notes and the tempo.
"""

import io
import math
import struct
from pathlib import Path
from typing import List, Tuple, Union

import pretty_midi

from ..core import Note, EncodeError
from ..core.constants import (
    DEFAULT_TEMPO,
    MIDI_MAX,
    MIDI_MIN,
    NOTE_OFF_VELOCITY,
    TICKS_PER_QUARTER,
    VELOCITY_MAX,
    VELOCITY_MIN,
)

VLQ_LIMIT = 1 << 28
MIN_NOTE_TICKS = 10
MAX_TEMPO_MICROSECONDS = 0xFFFFFF

NOTE_ON = 0x90
NOTE_OFF = 0x80
META = 0xFF
META_TEMPO = 0x51
META_END_OF_TRACK = 0x2F


def encode_vlq(value: int) -> bytes:
    """
    Encode a variable-length quantity.

    Seven bits per byte, most significant group first, high bit set on
    every byte except the last.

    Args:
        value: Integer in [0, 2^28)

    Returns:
        1 to 4 bytes
    """
    value = int(value)
    if value < 0 or value >= VLQ_LIMIT:
        raise ValueError(f"VLQ value out of range: {value}")
    groups = [value & 0x7F]
    value >>= 7
    while value:
        groups.append((value & 0x7F) | 0x80)
        value >>= 7
    return bytes(reversed(groups))


def decode_vlq(data: bytes, offset: int = 0) -> Tuple[int, int]:
    """
    Decode a variable-length quantity.

    Args:
        data: Buffer containing the quantity
        offset: Position of its first byte

    Returns:
        Tuple of (value, offset just past the quantity)
    """
    value = 0
    for i in range(4):
        if offset + i >= len(data):
            raise ValueError("Truncated VLQ")
        byte = data[offset + i]
        value = (value << 7) | (byte & 0x7F)
        if not byte & 0x80:
            return value, offset + i + 1
    raise ValueError("VLQ longer than 4 bytes")


def seconds_to_ticks(seconds: float, bpm: float) -> int:
    return int(round(seconds * TICKS_PER_QUARTER * bpm / 60.0))


class MIDIEncoder:
    """Encode notes and tempo into Standard MIDI File bytes."""

    def __init__(self, bpm: float = DEFAULT_TEMPO, channel: int = 0):
        """
        Initialize MIDIEncoder.

        Args:
            bpm: Tempo in BPM
            channel: MIDI channel (0-15) for all note events
        """
        if not math.isfinite(bpm) or bpm <= 0:
            raise EncodeError(f"Invalid tempo: {bpm}")
        self.bpm = float(bpm)
        self.channel = channel & 0x0F

    @property
    def microseconds_per_quarter(self) -> int:
        return max(1, min(MAX_TEMPO_MICROSECONDS, int(round(60_000_000 / self.bpm))))

    def encode(self, notes: List[Note]) -> bytes:
        """
        Encode notes to MIDI bytes.

        Args:
            notes: Notes to encode; order does not matter

        Returns:
            Complete MIDI file contents

        Raises:
            EncodeError: A note has a non-finite time or duration
        """
        events = []
        for note in notes:
            start, end, pitch, velocity = self._note_ticks(note)
            events.append((end, 0, pitch, NOTE_OFF | self.channel, NOTE_OFF_VELOCITY))
            events.append((start, 1, pitch, NOTE_ON | self.channel, velocity))
        # Note-off sorts before note-on at the same tick.
        events.sort(key=lambda e: (e[0], e[1], e[2]))

        track = bytearray()
        track += encode_vlq(0)
        track += bytes([META, META_TEMPO, 0x03])
        track += self.microseconds_per_quarter.to_bytes(3, "big")

        last_tick = 0
        for tick, _, pitch, status, data in events:
            track += encode_vlq(tick - last_tick)
            track += bytes([status, pitch, data])
            last_tick = tick

        track += encode_vlq(0)
        track += bytes([META, META_END_OF_TRACK, 0x00])

        header = b"MThd" + struct.pack(">IHHH", 6, 0, 1, TICKS_PER_QUARTER)
        return header + b"MTrk" + struct.pack(">I", len(track)) + bytes(track)

    def _note_ticks(self, note: Note) -> Tuple[int, int, int, int]:
        if not (math.isfinite(note.time) and math.isfinite(note.duration)):
            raise EncodeError(f"Cannot encode note with time={note.time}, duration={note.duration}")
        time = max(0.0, note.time)
        start = seconds_to_ticks(time, self.bpm)
        end = max(start + MIN_NOTE_TICKS, seconds_to_ticks(time + max(0.0, note.duration), self.bpm))
        if end >= VLQ_LIMIT:
            raise EncodeError(f"Note at {note.time:.2f}s is beyond the encodable range")
        pitch = max(MIDI_MIN, min(MIDI_MAX, int(note.pitch)))
        velocity = max(VELOCITY_MIN, min(VELOCITY_MAX, int(note.velocity)))
        return start, end, pitch, velocity

    def write(self, notes: List[Note], output_path: Union[str, Path]) -> Path:
        """
        Encode notes and write them to a MIDI file.

        Args:
            notes: Notes to encode
            output_path: Path to output MIDI file

        Returns:
            The written path
        """
        data = self.encode(notes)

        # Ensure output directory exists
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path


def read_midi_notes(source: Union[bytes, str, Path]) -> List[Note]:
    """
    Read notes back from a MIDI file.

    Args:
        source: MIDI bytes or a path to a MIDI file

    Returns:
        Notes from all instruments, sorted by (time, pitch)
    """
    if isinstance(source, (bytes, bytearray)):
        midi = pretty_midi.PrettyMIDI(io.BytesIO(bytes(source)))
    else:
        midi = pretty_midi.PrettyMIDI(str(source))

    notes = []
    for instrument in midi.instruments:
        for midi_note in instrument.notes:
            notes.append(
                Note(
                    time=midi_note.start,
                    pitch=midi_note.pitch,
                    velocity=midi_note.velocity,
                    duration=midi_note.end - midi_note.start,
                )
            )
    notes.sort(key=lambda n: (n.time, n.pitch))
    return notes
