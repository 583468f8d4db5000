"""Transcriber - the host-facing control surface.

A Transcriber runs one transcription at a time on a background thread:

    transcriber = Transcriber(progress_callback=print)
    transcriber.start(waveform, AnalysisConfig(detection_algorithm="poly_salience"))
    ...
    transcriber.cancel()      # cooperative, from any thread
    result = transcriber.wait()

Results are published only after assembly, tempo estimation and encoding
all succeed; cancelled or failed runs publish nothing.
"""

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional

import numpy as np

from .analysis.tempo import TempoEstimator
from .core import AnalysisCancelled, AnalysisConfig, DecodeError, Note, Waveform
from .core.constants import (
    PROGRESS_ASSEMBLING,
    PROGRESS_COMPLETE,
    PROGRESS_ENCODING,
    PROGRESS_INIT,
    PROGRESS_TEMPO,
    VELOCITY_MAX,
    VELOCITY_MIN,
)
from .output.midi import MIDIEncoder
from .processing.assembler import NoteAssembler
from .processing.cleanup import PostFilter
from .scheduling.run import AnalysisRun, ProgressCallback, ProgressReport, RunState
from .scheduling.scheduler import BackendFactory, ChunkScheduler

logger = logging.getLogger(__name__)


@dataclass
class TranscriptionResult:
    """Published output of a completed run.

    ``raw_notes`` holds the assembled notes before the velocity and duration
    post-filters, so ``refilter`` can apply new limits without re-analysis.
    """

    notes: List[Note]
    bpm: float
    midi: bytes
    raw_event_count: int = 0
    salience_frames: int = 0
    backend: str = ""
    elapsed_seconds: float = 0.0
    algorithm: str = ""
    onset_times: List[float] = field(default_factory=list)
    raw_notes: List[Note] = field(default_factory=list)

    def refilter(self, min_velocity: int, min_duration: float) -> "TranscriptionResult":
        """
        Re-apply the post-filters to the unfiltered notes.

        Args:
            min_velocity: Minimum velocity kept (clamped to 1-127)
            min_duration: Minimum duration kept in seconds (at least 0.001)

        Returns:
            A new result with filtered notes and re-encoded MIDI; the tempo
            is kept
        """
        min_velocity = max(VELOCITY_MIN, min(VELOCITY_MAX, int(min_velocity)))
        min_duration = max(0.001, float(min_duration))
        notes = PostFilter(min_velocity=min_velocity, min_duration=min_duration).cleanup(
            self.raw_notes
        )
        return replace(self, notes=notes, midi=MIDIEncoder(self.bpm).encode(notes))

    def to_dict(self) -> dict:
        return {
            "notes": [n.to_dict() for n in self.notes],
            "bpm": self.bpm,
            "midi_bytes": len(self.midi),
            "raw_event_count": self.raw_event_count,
            "salience_frames": self.salience_frames,
            "backend": self.backend,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "algorithm": self.algorithm,
            "onset_times": [round(t, 4) for t in self.onset_times],
            "raw_note_count": len(self.raw_notes),
        }


class Transcriber:
    """Run transcriptions in the background with cancel and reset."""

    def __init__(
        self,
        progress_callback: Optional[ProgressCallback] = None,
        backend_factory: Optional[BackendFactory] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize Transcriber.

        Args:
            progress_callback: Receives ProgressReports from the run thread
            backend_factory: Builds the primary frame analyzer backend
            clock: Monotonic clock used for elapsed time and the run timeout
        """
        self.progress_callback = progress_callback
        self.backend_factory = backend_factory
        self.clock = clock
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._run: Optional[AnalysisRun] = None
        self._result: Optional[TranscriptionResult] = None
        self._error: Optional[BaseException] = None

    @property
    def state(self) -> RunState:
        run = self._run
        return run.state if run is not None else RunState.IDLE

    @property
    def result(self) -> Optional[TranscriptionResult]:
        """Result of the last completed run, or None."""
        return self._result

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self, waveform: Waveform, config: Optional[AnalysisConfig] = None) -> None:
        """
        Start transcribing a waveform in the background.

        Args:
            waveform: Mono samples to transcribe
            config: Analysis configuration (defaults if None)

        Raises:
            RuntimeError: If a run is already in progress
            DecodeError: If the waveform is unusable
            ConfigError: If the configuration is invalid
        """
        with self._lock:
            if self.is_running:
                raise RuntimeError("A transcription is already running")
            _check_waveform(waveform)
            config = (config or AnalysisConfig()).validated(waveform.sample_rate)

            self._result = None
            self._error = None
            run = AnalysisRun(config, waveform.sample_rate, clock=self.clock)
            run.state = RunState.INITIALIZING
            self._run = run
            logger.info(
                "Starting transcription: %.2fs at %d Hz, %s/%s",
                waveform.duration,
                waveform.sample_rate,
                config.analysis_mode,
                config.detection_algorithm,
            )
            self._report(run, PROGRESS_INIT, "Initializing")

            self._thread = threading.Thread(
                target=self._execute,
                args=(waveform, run),
                name="notescribe-run",
                daemon=True,
            )
            self._thread.start()

    def cancel(self) -> None:
        """Request cancellation of the current run."""
        run = self._run
        if run is not None and not run.state.is_terminal:
            logger.info("Cancellation requested")
            run.cancel()

    def reset(self) -> None:
        """Cancel any run in progress and return to IDLE."""
        self.cancel()
        thread = self._thread
        if thread is not None:
            thread.join()
        with self._lock:
            self._thread = None
            self._run = None
            self._result = None
            self._error = None

    def wait(self, timeout: Optional[float] = None) -> TranscriptionResult:
        """
        Block until the current run finishes.

        Args:
            timeout: Seconds to wait, None for no limit

        Returns:
            The TranscriptionResult

        Raises:
            TimeoutError: The run is still going after timeout
            AnalysisCancelled: The run was cancelled
            NoteScribeError: The run failed
        """
        thread = self._thread
        if thread is None:
            raise RuntimeError("No transcription has been started")
        thread.join(timeout)
        if thread.is_alive():
            raise TimeoutError(f"Transcription still running after {timeout}s")
        if self._error is not None:
            raise self._error
        return self._result

    def run(self, waveform: Waveform, config: Optional[AnalysisConfig] = None) -> TranscriptionResult:
        """Transcribe synchronously."""
        self.start(waveform, config)
        return self.wait()

    def _execute(self, waveform: Waveform, run: AnalysisRun) -> None:
        try:
            result = self._transcribe(waveform, run)
        except AnalysisCancelled as exc:
            run.state = RunState.CANCELLED
            self._error = exc
        except Exception as exc:
            run.state = RunState.FAILED
            logger.error("Transcription failed: %s", exc)
            self._error = exc
        else:
            self._result = result

    def _transcribe(self, waveform: Waveform, run: AnalysisRun) -> TranscriptionResult:
        config = run.config
        scheduler = ChunkScheduler(self.backend_factory, self.progress_callback)
        scheduler.process(waveform, run)

        self._check(run)
        self._report(run, PROGRESS_ASSEMBLING, "Assembling notes")
        rhythm = config.detection_algorithm == "rhythm"
        onset_times = [e.time for e in run.events] if rhythm else []
        if rhythm:
            # Onset events carry no pitch; they only drive tempo.
            raw_notes: List[Note] = []
            notes: List[Note] = []
        else:
            assembler = NoteAssembler(run.hop_duration, config.params)
            raw_notes = assembler.assemble(run.events, run.salience, run.frame_times)
            notes, stats = PostFilter(
                min_velocity=config.min_velocity,
                min_duration=config.min_duration_seconds,
            ).cleanup(raw_notes, return_stats=True)
            logger.debug(
                "Post-filter removed %d ghost and %d short notes",
                stats.removed_ghost_notes,
                stats.removed_short_notes,
            )

        self._check(run)
        self._report(run, PROGRESS_TEMPO, "Estimating tempo")
        estimator = TempoEstimator()
        if rhythm:
            bpm = estimator.estimate_from_times(onset_times)
        else:
            bpm = estimator.estimate(notes)

        self._report(run, PROGRESS_ENCODING, "Encoding MIDI")
        midi = MIDIEncoder(bpm).encode(notes)

        self._check(run)
        run.state = RunState.COMPLETED
        result = TranscriptionResult(
            notes=notes,
            bpm=bpm,
            midi=midi,
            raw_event_count=len(run.events),
            salience_frames=run.frame_count,
            backend=run.backend_name or "",
            elapsed_seconds=run.elapsed,
            algorithm=config.detection_algorithm,
            onset_times=onset_times,
            raw_notes=raw_notes,
        )
        logger.info(
            "Transcription complete: %d notes, %.0f BPM, %.1fs (%s backend)",
            len(notes), bpm, result.elapsed_seconds, result.backend,
        )
        self._report(run, PROGRESS_COMPLETE, "Complete")
        run.discard()
        return result

    def _check(self, run: AnalysisRun) -> None:
        if run.cancelled:
            done = run.chunks_done
            run.discard()
            raise AnalysisCancelled("Analysis cancelled", chunks_completed=done)

    def _report(self, run: AnalysisRun, percent: float, stage: str) -> None:
        if self.progress_callback is not None:
            self.progress_callback(
                ProgressReport(percent=percent, stage=stage, elapsed_seconds=run.elapsed)
            )


def _check_waveform(waveform: Waveform) -> None:
    if not isinstance(waveform, Waveform):
        raise DecodeError(f"Expected a Waveform, got {type(waveform).__name__}")
    if waveform.sample_rate <= 0:
        raise DecodeError(f"Invalid sample rate: {waveform.sample_rate}")
    if len(waveform) == 0:
        raise DecodeError("Waveform has no samples")
    if not np.all(np.isfinite(waveform.samples)):
        raise DecodeError("Waveform contains non-finite samples")
