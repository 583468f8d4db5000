"""NoteScribe - Audio to MIDI Transcription.

Architecture Layers:
    1. core/       - Note types, configuration, errors, constants
    2. input/      - Audio decoding
    3. analysis/   - Frame-level signal analysis (FFT, salience, pitch, onsets, tempo)
    4. scheduling/ - Chunked, cancellable runs over worker/inline backends
    5. processing/ - Note assembly and post-filters
    6. output/     - Standard MIDI File encoding
"""

__version__ = "0.1.0"

# Core types
from .core import (
    Note,
    Waveform,
    AnalysisConfig,
    NoteScribeError,
    DecodeError,
    ConfigError,
    BackendError,
    ChunkTimeoutError,
    RunTimeoutError,
    AnalysisCancelled,
    EncodeError,
)

# Input layer
from .input import AudioLoader

# Analysis layer
from .analysis import FrameAnalyzer, PitchAnalyzer, TempoEstimator

# Scheduling layer
from .scheduling import ChunkScheduler, InlineBackend, WorkerBackend, RunState, ProgressReport

# Processing layer
from .processing import NoteAssembler, PostFilter

# Output layer
from .output import MIDIEncoder, read_midi_notes

# Control surface
from .transcriber import Transcriber, TranscriptionResult

__all__ = [
    # Core
    "Note",
    "Waveform",
    "AnalysisConfig",
    "NoteScribeError",
    "DecodeError",
    "ConfigError",
    "BackendError",
    "ChunkTimeoutError",
    "RunTimeoutError",
    "AnalysisCancelled",
    "EncodeError",
    # Input
    "AudioLoader",
    # Analysis
    "FrameAnalyzer",
    "PitchAnalyzer",
    "TempoEstimator",
    # Scheduling
    "ChunkScheduler",
    "InlineBackend",
    "WorkerBackend",
    "RunState",
    "ProgressReport",
    # Processing
    "NoteAssembler",
    "PostFilter",
    # Output
    "MIDIEncoder",
    "read_midi_notes",
    # Control surface
    "Transcriber",
    "TranscriptionResult",
]
