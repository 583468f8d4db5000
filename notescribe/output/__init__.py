"""Output layer - Export to Standard MIDI Files.

This layer handles:
- Encoding notes and tempo to MIDI bytes
- Variable-length quantities
- Reading MIDI files back into notes
"""

from .midi import MIDIEncoder, encode_vlq, decode_vlq, read_midi_notes

__all__ = [
    "MIDIEncoder",
    "encode_vlq",
    "decode_vlq",
    "read_midi_notes",
]
