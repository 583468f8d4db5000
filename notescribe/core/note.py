"""Note data classes - the units of musical transcription."""

from dataclasses import dataclass
from typing import List
import numpy as np

from .constants import A4_FREQUENCY, A4_MIDI, PITCH_NAMES


@dataclass
class Note:
    """Represents a transcribed musical note."""

    time: float  # Start time in seconds
    pitch: int  # MIDI pitch (21-108)
    velocity: int = 64  # MIDI velocity (1-127)
    duration: float = 0.0  # Length in seconds

    @property
    def offset(self) -> float:
        """End time in seconds."""
        return self.time + self.duration

    @property
    def pitch_name(self) -> str:
        """Get note name (e.g., 'C4', 'A#3')."""
        octave = (self.pitch // 12) - 1
        name = PITCH_NAMES[self.pitch % 12]
        return f"{name}{octave}"

    @property
    def pitch_class(self) -> int:
        """Get pitch class (0-11, where 0=C)."""
        return self.pitch % 12

    @property
    def frequency(self) -> float:
        """Fundamental frequency of the pitch in Hz."""
        return Note.midi_to_freq(self.pitch)

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "pitch": self.pitch,
            "velocity": self.velocity,
            "duration": self.duration,
        }

    @staticmethod
    def freq_to_midi(freq: float) -> int:
        """Convert frequency (Hz) to MIDI pitch."""
        if freq <= 0:
            return 0
        return int(round(A4_MIDI + 12 * np.log2(freq / A4_FREQUENCY)))

    @staticmethod
    def midi_to_freq(midi: float) -> float:
        """Convert MIDI pitch to frequency (Hz)."""
        return A4_FREQUENCY * (2 ** ((midi - A4_MIDI) / 12.0))


@dataclass
class RawEvent:
    """A single per-frame detection, before merging into notes."""

    time: float
    pitch: int
    velocity: int
    duration: float


@dataclass(frozen=True)
class Waveform:
    """Mono PCM samples in [-1, 1] and their sample rate.

    The samples array is copied to float32 and flagged read-only, so one
    Waveform can be shared by every stage of a run.
    """

    samples: np.ndarray
    sample_rate: int

    def __post_init__(self):
        samples = np.array(self.samples, dtype=np.float32, copy=True).reshape(-1)
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)
        object.__setattr__(self, "sample_rate", int(self.sample_rate))

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def duration(self) -> float:
        """Duration in seconds."""
        if self.sample_rate <= 0:
            return 0.0
        return len(self.samples) / self.sample_rate


@dataclass
class Chunk:
    """A contiguous block of samples dispatched as one unit of work.

    ``samples`` may begin with ``lead`` samples carried over from the end of
    the previous chunk, so frames keep a single hop grid across chunk
    boundaries. ``start`` is the first sample the chunk owns.
    """

    index: int
    total: int
    start: int  # First sample index within the waveform
    samples: np.ndarray
    sample_rate: int
    lead: int = 0

    @property
    def time_offset(self) -> float:
        """Time of the first sample in ``samples``, in seconds."""
        return (self.start - self.lead) / self.sample_rate

    def __len__(self) -> int:
        return len(self.samples)


def sort_notes(notes: List[Note]) -> List[Note]:
    """Sort notes by (time, pitch), the canonical output order."""
    return sorted(notes, key=lambda n: (n.time, n.pitch))
