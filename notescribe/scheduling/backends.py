"""Frame analyzer backends.

A backend runs the FrameAnalyzer on one chunk at a time:
- InlineBackend: on the calling thread
- WorkerBackend: in a separate process connected by a pipe

Both return identical ChunkResults for the same chunk.
"""

import logging
import multiprocessing
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, Tuple

from ..analysis.frame_analyzer import ChunkResult, FrameAnalyzer
from ..core.config import AnalysisConfig
from ..core.errors import AnalysisCancelled, BackendError, ChunkTimeoutError
from ..core.note import Chunk

logger = logging.getLogger(__name__)

AbortCheck = Optional[Callable[[], bool]]


class FrameAnalyzerBackend(ABC):
    """Abstract base class for frame analyzer backends."""

    name = "base"

    def __init__(self, config: AnalysisConfig, sample_rate: int):
        """
        Initialize backend.

        Args:
            config: Validated analysis configuration
            sample_rate: Sample rate of the waveform being analyzed
        """
        self.config = config
        self.sample_rate = sample_rate

    @abstractmethod
    def start(self) -> None:
        """Prepare the backend. Raises BackendError on failure."""
        pass

    @abstractmethod
    def analyze(self, chunk: Chunk, timeout: float, should_abort: AbortCheck = None) -> ChunkResult:
        """
        Analyze one chunk.

        Args:
            chunk: Chunk to analyze
            timeout: Seconds allowed for the round trip
            should_abort: Polled while the chunk is in flight

        Returns:
            ChunkResult for the chunk

        Raises:
            BackendError: The backend failed
            ChunkTimeoutError: The chunk took longer than timeout
            AnalysisCancelled: should_abort returned True
        """
        pass

    def close(self) -> None:
        """Release backend resources."""
        pass

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class InlineBackend(FrameAnalyzerBackend):
    """Run the analyzer on the calling thread."""

    name = "inline"

    def __init__(self, config: AnalysisConfig, sample_rate: int):
        super().__init__(config, sample_rate)
        self._analyzer: Optional[FrameAnalyzer] = None

    def start(self) -> None:
        self._analyzer = FrameAnalyzer(self.config, self.sample_rate)

    def analyze(self, chunk: Chunk, timeout: float, should_abort: AbortCheck = None) -> ChunkResult:
        # No preemption inline; the timeout is not enforced here.
        if self._analyzer is None:
            self.start()
        return self._analyzer.analyze_chunk(chunk, should_abort)

    def close(self) -> None:
        self._analyzer = None


def _worker_main(conn, config: AnalysisConfig, sample_rate: int) -> None:
    """Worker process loop: answer analyze requests until shutdown."""
    try:
        analyzer = FrameAnalyzer(config, sample_rate)
    except Exception as exc:
        conn.send(("error", f"{type(exc).__name__}: {exc}"))
        conn.close()
        return

    conn.send(("ready", None))
    while True:
        try:
            message, payload = conn.recv()
        except (EOFError, OSError):
            break
        if message == "shutdown":
            break
        if message != "analyze":
            conn.send(("error", f"Unknown request: {message!r}"))
            continue
        try:
            result = analyzer.analyze_chunk(payload)
        except Exception as exc:
            conn.send(("error", f"{type(exc).__name__}: {exc}"))
        else:
            conn.send(("result", result))
    conn.close()


class WorkerBackend(FrameAnalyzerBackend):
    """
    Run the analyzer in a child process.

    Chunks travel over a single pipe with one request in flight. The parent
    polls the pipe in short slices so that cancellation and timeouts are
    observed while the worker is busy. A worker that is still busy when the
    backend closes is terminated.
    """

    name = "worker"

    def __init__(
        self,
        config: AnalysisConfig,
        sample_rate: int,
        start_method: str = "spawn",
        startup_timeout: Optional[float] = None,
        poll_interval: float = 0.05,
    ):
        """
        Initialize WorkerBackend.

        Args:
            config: Validated analysis configuration
            sample_rate: Sample rate of the waveform being analyzed
            start_method: multiprocessing start method
            startup_timeout: Seconds to wait for the worker handshake
                (default: the per-chunk timeout)
            poll_interval: Seconds between pipe polls
        """
        super().__init__(config, sample_rate)
        self.start_method = start_method
        self.startup_timeout = startup_timeout or config.per_chunk_timeout
        self.poll_interval = poll_interval
        self._process = None
        self._conn = None
        self._busy = False

    @property
    def is_alive(self) -> bool:
        return self._process is not None and self._process.is_alive()

    def start(self) -> None:
        context = multiprocessing.get_context(self.start_method)
        parent_conn, child_conn = context.Pipe()
        process = context.Process(
            target=_worker_main,
            args=(child_conn, self.config, self.sample_rate),
            name="notescribe-frame-analyzer",
            daemon=True,
        )
        try:
            process.start()
        except (OSError, RuntimeError, ValueError) as exc:
            parent_conn.close()
            child_conn.close()
            raise BackendError(f"Could not start analyzer worker: {exc}") from exc
        child_conn.close()

        self._process = process
        self._conn = parent_conn
        self._busy = True
        try:
            message, payload = self._receive(self.startup_timeout, None, -1)
        except BackendError:
            self.close()
            raise
        self._busy = False

        if message != "ready":
            self.close()
            raise BackendError(f"Analyzer worker failed to initialize: {payload}")
        logger.debug("Analyzer worker started (pid %s)", process.pid)

    def analyze(self, chunk: Chunk, timeout: float, should_abort: AbortCheck = None) -> ChunkResult:
        if self._conn is None:
            raise BackendError("Analyzer worker is not running")
        if self._busy:
            raise BackendError("Analyzer worker is still busy with a previous chunk")

        try:
            self._conn.send(("analyze", chunk))
        except (OSError, ValueError) as exc:
            raise BackendError(f"Could not send chunk {chunk.index} to worker: {exc}") from exc

        self._busy = True
        message, payload = self._receive(timeout, should_abort, chunk.index)
        self._busy = False

        if message == "error":
            raise BackendError(f"Worker failed on chunk {chunk.index}: {payload}")
        if message != "result":
            raise BackendError(f"Unexpected worker reply: {message!r}")
        return payload

    def _receive(self, timeout: float, should_abort: AbortCheck, chunk_index: int) -> Tuple[str, object]:
        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise ChunkTimeoutError(chunk_index, timeout)
            try:
                ready = self._conn.poll(min(self.poll_interval, remaining))
                if ready:
                    return self._conn.recv()
            except (EOFError, OSError) as exc:
                raise BackendError(f"Analyzer worker pipe broke: {exc}") from exc
            if should_abort is not None and should_abort():
                raise AnalysisCancelled(f"Chunk {chunk_index} abandoned")
            if not self._process.is_alive():
                raise BackendError(
                    f"Analyzer worker exited with code {self._process.exitcode}"
                )

    def close(self) -> None:
        if self._process is None:
            return
        process, conn = self._process, self._conn
        self._process = None
        self._conn = None

        if process.is_alive() and not self._busy:
            try:
                conn.send(("shutdown", None))
            except (OSError, ValueError) as exc:
                logger.debug("Could not send shutdown to worker: %s", exc)
            process.join(1.0)
        if process.is_alive():
            logger.debug("Terminating analyzer worker (pid %s)", process.pid)
            process.terminate()
            process.join(1.0)
        conn.close()
        self._busy = False
