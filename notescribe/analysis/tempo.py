"""Tempo estimation from note onsets."""

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Iterable, List, Optional

import numpy as np

from ..core.constants import DEFAULT_TEMPO
from ..core.note import Note

logger = logging.getLogger(__name__)


@dataclass
class TempoInfo:
    """Container for tempo analysis results."""

    bpm: float
    onset_times: np.ndarray  # Collapsed onsets in seconds
    intervals: np.ndarray  # Valid inter-onset intervals in seconds
    confidence: float = 0.0  # Share of intervals in the winning bucket


class TempoEstimator:
    """Estimate BPM from a histogram of inter-onset intervals."""

    def __init__(
        self,
        collapse_window: float = 0.03,
        min_interval: float = 0.15,
        max_interval: float = 2.5,
        bpm_range: tuple = (60.0, 200.0),
        default_bpm: float = DEFAULT_TEMPO,
        min_onsets: int = 4,
    ):
        """
        Initialize TempoEstimator.

        Args:
            collapse_window: Onsets closer than this (seconds) count as one
            min_interval: Shortest inter-onset interval considered
            max_interval: Longest inter-onset interval considered
            bpm_range: Interval BPMs are folded by octaves into this range
            default_bpm: Returned when there is too little evidence
            min_onsets: Minimum number of onsets needed for an estimate
        """
        self.collapse_window = collapse_window
        self.min_interval = min_interval
        self.max_interval = max_interval
        self.bpm_range = bpm_range
        self.default_bpm = default_bpm
        self.min_onsets = min_onsets

    def estimate(self, notes: List[Note]) -> float:
        """Estimate tempo (BPM) from note start times."""
        return self.analyze_times([n.time for n in notes]).bpm

    def estimate_from_times(self, times: Iterable[float]) -> float:
        """Estimate tempo (BPM) from raw onset times."""
        return self.analyze_times(times).bpm

    def analyze_times(self, times: Iterable[float]) -> TempoInfo:
        """
        Perform full tempo analysis on onset times.

        Returns:
            TempoInfo with the modal BPM and the evidence behind it
        """
        raw = np.sort(np.asarray(list(times), dtype=np.float64))
        if len(raw) < self.min_onsets:
            return self._default(raw)

        onsets = self.collapse_onsets(raw)
        intervals = np.diff(onsets)
        intervals = intervals[(intervals >= self.min_interval) & (intervals <= self.max_interval)]
        if len(intervals) == 0:
            return TempoInfo(self.default_bpm, onsets, intervals)

        buckets = Counter(int(round(self.fold_bpm(60.0 / ioi))) for ioi in intervals)
        bpm = self._modal_bucket(buckets)
        confidence = buckets[bpm] / len(intervals)
        logger.debug("Tempo %d BPM from %d intervals (confidence %.2f)", bpm, len(intervals), confidence)
        return TempoInfo(float(bpm), onsets, intervals, confidence)

    def collapse_onsets(self, times: np.ndarray) -> np.ndarray:
        """Merge onsets within the collapse window into the first of the group."""
        collapsed: List[float] = []
        for t in times:
            if not collapsed or t - collapsed[-1] > self.collapse_window:
                collapsed.append(float(t))
        return np.array(collapsed)

    def fold_bpm(self, bpm: float) -> float:
        """Halve or double a BPM until it lies in the configured range."""
        lo, hi = self.bpm_range
        while bpm > hi:
            bpm /= 2.0
        while bpm < lo:
            bpm *= 2.0
        return bpm

    def _modal_bucket(self, buckets: Counter) -> int:
        # Ties: more support from neighbouring buckets, then the slower tempo
        def rank(bpm: int):
            support = buckets.get(bpm - 1, 0) + buckets.get(bpm + 1, 0)
            return (buckets[bpm], support, -bpm)

        return max(buckets, key=rank)

    def _default(self, onsets: Optional[np.ndarray]) -> TempoInfo:
        return TempoInfo(self.default_bpm, onsets if onsets is not None else np.zeros(0), np.zeros(0))
