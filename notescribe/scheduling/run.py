"""Run state: accumulators, cancellation and progress reports."""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

import numpy as np

from ..analysis.frame_analyzer import ChunkResult
from ..core.config import AnalysisConfig
from ..core.constants import NUM_PITCHES
from ..core.note import RawEvent


class RunState(Enum):
    """Lifecycle of a transcription run."""

    IDLE = "idle"
    INITIALIZING = "initializing"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.CANCELLED, RunState.FAILED)


@dataclass
class ProgressReport:
    """A progress update for the host."""

    percent: float
    stage: str
    elapsed_seconds: float = 0.0
    eta_seconds: Optional[float] = None


ProgressCallback = Callable[[ProgressReport], None]


class AnalysisRun:
    """
    State of one transcription run.

    Salience rows and raw events are append-only and only grow when a chunk
    result is accepted. The cancellation flag may be set from any thread.
    """

    def __init__(
        self,
        config: AnalysisConfig,
        sample_rate: int,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize AnalysisRun.

        Args:
            config: Validated configuration for the run
            sample_rate: Sample rate of the analyzed waveform
            clock: Monotonic clock in seconds
        """
        self.config = config
        self.sample_rate = sample_rate
        self.state = RunState.IDLE
        self.events: List[RawEvent] = []
        self.chunks_done = 0
        self.backend_name: Optional[str] = None
        self._clock = clock
        self._started_at = clock()
        self._cancel = threading.Event()
        self._rows: List[np.ndarray] = []
        self._times: List[np.ndarray] = []

    @property
    def hop_duration(self) -> float:
        return self.config.hop_size / self.sample_rate

    @property
    def elapsed(self) -> float:
        """Seconds since the run was created."""
        return self._clock() - self._started_at

    @property
    def timed_out(self) -> bool:
        return self.elapsed > self.config.total_timeout_seconds

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        """Request cooperative cancellation."""
        self._cancel.set()

    def should_abort(self) -> bool:
        """True once the run is cancelled or over its time limit."""
        return self.cancelled or self.timed_out

    def append(self, result: ChunkResult) -> None:
        """Accept a resolved chunk into the run accumulators."""
        self._rows.append(result.salience)
        self._times.append(result.frame_times)
        self.events.extend(result.events)
        self.chunks_done += 1

    @property
    def salience(self) -> np.ndarray:
        """All salience rows so far as (frames, 88) uint8."""
        if not self._rows:
            return np.zeros((0, NUM_PITCHES), dtype=np.uint8)
        return np.vstack(self._rows)

    @property
    def frame_times(self) -> np.ndarray:
        if not self._times:
            return np.zeros(0)
        return np.concatenate(self._times)

    @property
    def frame_count(self) -> int:
        return sum(len(rows) for rows in self._rows)

    def discard(self) -> None:
        """Drop everything accumulated so far."""
        self._rows = []
        self._times = []
        self.events = []
        self.chunks_done = 0
