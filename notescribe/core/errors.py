"""Exception taxonomy for the transcription pipeline.

Fatal errors (DecodeError, RunTimeoutError, ConfigError) end a run with no
published notes. BackendError and ChunkTimeoutError are recovered by the
scheduler by switching to the inline backend. AnalysisCancelled marks a
user-initiated stop and is not a failure.
"""


class NoteScribeError(Exception):
    """Base class for all NoteScribe errors."""


class DecodeError(NoteScribeError):
    """The input could not be decoded to mono float PCM."""


class ConfigError(NoteScribeError, ValueError):
    """A configuration value is invalid and cannot be clamped."""


class BackendError(NoteScribeError):
    """The frame analyzer backend failed to start or answer."""


class ChunkTimeoutError(BackendError):
    """A chunk round trip exceeded the per-chunk timeout."""

    def __init__(self, chunk_index: int, timeout: float):
        super().__init__(
            f"Chunk {chunk_index} did not complete within {timeout:.1f}s"
        )
        self.chunk_index = chunk_index
        self.timeout = timeout


class RunTimeoutError(NoteScribeError):
    """The whole run exceeded its wall-clock limit."""

    def __init__(self, elapsed: float, limit: float):
        super().__init__(
            f"Analysis timeout after {elapsed:.1f}s (limit {limit:.0f}s). "
            "File may be too large or complex."
        )
        self.elapsed = elapsed
        self.limit = limit


class AnalysisCancelled(NoteScribeError):
    """The run was cancelled by the host.

    chunks_completed counts the chunks accepted before the cancellation;
    their results are discarded with the rest of the run.
    """

    def __init__(self, message: str = "Analysis cancelled", chunks_completed: int = 0):
        super().__init__(message)
        self.chunks_completed = chunks_completed


class EncodeError(NoteScribeError):
    """A note could not be serialized to MIDI."""
