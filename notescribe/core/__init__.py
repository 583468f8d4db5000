"""Core types and constants for NoteScribe."""

from .note import Note, RawEvent, Waveform, Chunk, sort_notes
from .config import AnalysisConfig, DetectionParams
from .errors import (
    NoteScribeError,
    DecodeError,
    ConfigError,
    BackendError,
    ChunkTimeoutError,
    RunTimeoutError,
    AnalysisCancelled,
    EncodeError,
)
from .constants import (
    PITCH_NAMES,
    PIANO_MIN,
    PIANO_MAX,
    NUM_PITCHES,
    TICKS_PER_QUARTER,
    DEFAULT_TEMPO,
)

__all__ = [
    "Note",
    "RawEvent",
    "Waveform",
    "Chunk",
    "sort_notes",
    "AnalysisConfig",
    "DetectionParams",
    "NoteScribeError",
    "DecodeError",
    "ConfigError",
    "BackendError",
    "ChunkTimeoutError",
    "RunTimeoutError",
    "AnalysisCancelled",
    "EncodeError",
    "PITCH_NAMES",
    "PIANO_MIN",
    "PIANO_MAX",
    "NUM_PITCHES",
    "TICKS_PER_QUARTER",
    "DEFAULT_TEMPO",
]
