"""Scheduling layer - Chunked, cancellable analysis runs.

This layer drives the frame analyzer over a waveform:
- Splitting the waveform into chunks
- Inline and worker-process backends with inline fallback
- Run state, cancellation, timeouts and progress
"""

from .backends import FrameAnalyzerBackend, InlineBackend, WorkerBackend
from .run import AnalysisRun, ProgressReport, RunState
from .scheduler import ChunkScheduler, split_waveform

__all__ = [
    "FrameAnalyzerBackend",
    "InlineBackend",
    "WorkerBackend",
    "AnalysisRun",
    "ProgressReport",
    "RunState",
    "ChunkScheduler",
    "split_waveform",
]
