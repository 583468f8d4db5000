"""Chunk scheduler - feed chunks to a backend one at a time."""

import logging
import math
from typing import Callable, List, Optional

from ..core.config import AnalysisConfig
from ..core.constants import PROGRESS_CHUNKS_END, PROGRESS_CHUNKS_START
from ..core.errors import AnalysisCancelled, BackendError, RunTimeoutError
from ..core.note import Chunk, Waveform
from .backends import FrameAnalyzerBackend, InlineBackend, WorkerBackend
from .run import AnalysisRun, ProgressCallback, ProgressReport, RunState

logger = logging.getLogger(__name__)

BackendFactory = Callable[[AnalysisConfig, int], FrameAnalyzerBackend]


def split_waveform(waveform: Waveform, chunk_size: int, lead: int = 0) -> List[Chunk]:
    """
    Split a waveform into contiguous chunks.

    Args:
        waveform: Waveform to split
        chunk_size: Samples per chunk; the last chunk may be shorter
        lead: Samples from the end of the previous chunk prepended to each
            chunk after the first

    Returns:
        ceil(len / chunk_size) chunks in order
    """
    n = len(waveform)
    total = math.ceil(n / chunk_size) if n else 0
    chunks = []
    for i in range(total):
        start = i * chunk_size
        carried = min(lead, start)
        chunks.append(
            Chunk(
                index=i,
                total=total,
                start=start,
                samples=waveform.samples[start - carried:start + chunk_size],
                sample_rate=waveform.sample_rate,
                lead=carried,
            )
        )
    return chunks


def default_backend_factory(config: AnalysisConfig, sample_rate: int) -> FrameAnalyzerBackend:
    if config.use_worker:
        return WorkerBackend(config, sample_rate)
    return InlineBackend(config, sample_rate)


class ChunkScheduler:
    """
    Run the frame analyzer over every chunk of a waveform.

    Chunks are processed strictly in order with at most one in flight. If
    the primary backend fails to start, fails on a chunk or times out, the
    scheduler switches to the inline backend for the rest of the run and
    re-runs the failed chunk there.
    """

    def __init__(
        self,
        backend_factory: Optional[BackendFactory] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ):
        """
        Initialize ChunkScheduler.

        Args:
            backend_factory: Builds the primary backend from (config, sample_rate)
            progress_callback: Receives a ProgressReport after every chunk
        """
        self.backend_factory = backend_factory or default_backend_factory
        self.progress_callback = progress_callback

    def process(self, waveform: Waveform, run: AnalysisRun) -> AnalysisRun:
        """
        Analyze all chunks of a waveform into the run.

        Args:
            waveform: Waveform to analyze
            run: Run whose accumulators receive the chunk results

        Returns:
            The same run, with every chunk appended

        Raises:
            AnalysisCancelled: The run was cancelled
            RunTimeoutError: The run exceeded its time limit
        """
        config = run.config
        # Each chunk repeats the previous frame_size samples so no frame is
        # lost at a chunk boundary.
        chunks = split_waveform(waveform, config.chunk_size_samples, lead=config.frame_size)
        run.state = RunState.PROCESSING
        logger.info(
            "Analyzing %d chunk(s) of %d samples (%s, %s)",
            len(chunks),
            config.chunk_size_samples,
            config.analysis_mode,
            config.detection_algorithm,
        )

        backend = None
        try:
            self._check(run)
            backend = self._open_backend(config, waveform.sample_rate)
            for chunk in chunks:
                self._check(run)
                result, backend = self._analyze(backend, chunk, run)
                # A chunk that resolves after cancellation is dropped.
                self._check(run)
                run.append(result)
                self._report(run, len(chunks))
            run.backend_name = backend.name
        except AnalysisCancelled as exc:
            exc.chunks_completed = run.chunks_done
            self._finish_aborted(run)
            raise
        except Exception:
            run.state = RunState.FAILED
            run.discard()
            raise
        finally:
            if backend is not None:
                backend.close()
        return run

    def _check(self, run: AnalysisRun) -> None:
        if run.cancelled:
            raise AnalysisCancelled("Analysis cancelled")
        if run.timed_out:
            raise RunTimeoutError(run.elapsed, run.config.total_timeout_seconds)

    def _finish_aborted(self, run: AnalysisRun) -> None:
        # The frame loop aborts on both cancellation and run timeout.
        run.discard()
        if not run.cancelled and run.timed_out:
            run.state = RunState.FAILED
            raise RunTimeoutError(run.elapsed, run.config.total_timeout_seconds)
        run.state = RunState.CANCELLED
        logger.info("Analysis cancelled after %.1fs", run.elapsed)

    def _open_backend(self, config: AnalysisConfig, sample_rate: int) -> FrameAnalyzerBackend:
        backend = self.backend_factory(config, sample_rate)
        if isinstance(backend, InlineBackend):
            backend.start()
            return backend
        try:
            backend.start()
        except BackendError as exc:
            logger.warning("%s backend unavailable (%s); analyzing inline", backend.name, exc)
            backend.close()
            return self._inline(config, sample_rate)
        return backend

    def _inline(self, config: AnalysisConfig, sample_rate: int) -> InlineBackend:
        backend = InlineBackend(config, sample_rate)
        backend.start()
        return backend

    def _analyze(self, backend: FrameAnalyzerBackend, chunk: Chunk, run: AnalysisRun):
        timeout = run.config.per_chunk_timeout
        try:
            return backend.analyze(chunk, timeout, run.should_abort), backend
        except BackendError as exc:
            if isinstance(backend, InlineBackend):
                raise
            logger.warning(
                "%s backend failed on chunk %d/%d (%s); switching to inline analysis",
                backend.name, chunk.index + 1, chunk.total, exc,
            )
            backend.close()
            inline = self._inline(run.config, run.sample_rate)
            return inline.analyze(chunk, timeout, run.should_abort), inline

    def _report(self, run: AnalysisRun, total: int) -> None:
        done = run.chunks_done
        elapsed = run.elapsed
        eta = None
        if done and elapsed > 0:
            throughput = done / elapsed
            eta = (total - done) / throughput
        span = PROGRESS_CHUNKS_END - PROGRESS_CHUNKS_START
        percent = PROGRESS_CHUNKS_START + span * done / total
        logger.debug("Chunk %d/%d done at %.1fs", done, total, elapsed)
        if self.progress_callback is not None:
            self.progress_callback(
                ProgressReport(
                    percent=percent,
                    stage=f"Processing chunk {done}/{total}",
                    elapsed_seconds=elapsed,
                    eta_seconds=eta,
                )
            )
