"""Global constants for NoteScribe."""

# Pitch names
PITCH_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]

# Piano range covered by salience rows
PIANO_MIN = 21  # A0
PIANO_MAX = 108  # C8
NUM_PITCHES = PIANO_MAX - PIANO_MIN + 1  # 88

# MIDI ranges
MIDI_MIN = 0
MIDI_MAX = 127
VELOCITY_MIN = 1
VELOCITY_MAX = 127

# Tuning
A4_MIDI = 69
A4_FREQUENCY = 440.0

# SMF container
TICKS_PER_QUARTER = 480
NOTE_OFF_VELOCITY = 0x40

# Musical defaults
DEFAULT_TEMPO = 120.0

# Analysis defaults
DEFAULT_CHUNK_SIZE = 4096 * 32  # 131072 samples
DEFAULT_TOTAL_TIMEOUT = 900.0  # seconds

# Input file size limits (MB)
MAX_FILE_SIZE_MB = 200
WARNING_SIZE_MB = 50

# analysis mode -> (frame_size, hop_size)
ANALYSIS_MODES = {
    "full": (2048, 1024),
    "fast": (1024, 512),
    "fallback": (512, 256),
    "high_res": (4096, 1024),
}

DETECTION_ALGORITHMS = ("mono", "poly_salience", "poly_hps", "hybrid", "rhythm")

# Progress bands (percent)
PROGRESS_INIT = 0.0
PROGRESS_CHUNKS_START = 20.0
PROGRESS_CHUNKS_END = 90.0
PROGRESS_ASSEMBLING = 90.0
PROGRESS_TEMPO = 95.0
PROGRESS_ENCODING = 98.0
PROGRESS_COMPLETE = 100.0
