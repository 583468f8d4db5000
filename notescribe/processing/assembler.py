"""Note assembly - turn per-frame detections into notes.

Two paths build notes:
- merging consecutive RawEvents of the same pitch (primary)
- thresholding each pitch's salience over time (fallback, when a run
  produced salience rows but no discrete events)

Either way, velocities are then re-derived from the salience under each note.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Optional

import numpy as np

from ..analysis.frame_analyzer import strength_to_velocity
from ..core import Note, RawEvent, DetectionParams, sort_notes
from ..core.constants import NUM_PITCHES, PIANO_MIN, VELOCITY_MAX, VELOCITY_MIN

logger = logging.getLogger(__name__)

_EPS = 1e-9


class NoteAssembler:
    """Assemble notes from raw events and salience rows."""

    def __init__(self, hop_duration: float, params: Optional[DetectionParams] = None):
        """
        Initialize NoteAssembler.

        Args:
            hop_duration: Seconds between consecutive frames
            params: Detection constants
        """
        self.hop_duration = hop_duration
        self.params = params or DetectionParams()

    @property
    def max_gap(self) -> float:
        """Largest gap (seconds) bridged when merging events."""
        return self.params.merge_gap_hops * self.hop_duration

    def assemble(
        self,
        events: List[RawEvent],
        salience: Optional[np.ndarray] = None,
        frame_times: Optional[np.ndarray] = None,
    ) -> List[Note]:
        """
        Build notes and refine their velocities.

        Args:
            events: Raw per-frame detections
            salience: SalienceRows stacked as (frames, 88) uint8
            frame_times: Start time of each salience row

        Returns:
            Notes sorted by (time, pitch)
        """
        has_salience = salience is not None and len(salience) > 0
        if events:
            notes = self.merge_events(events)
        elif has_salience:
            logger.info("No discrete events; reconstructing notes from salience")
            notes = self.notes_from_salience(salience, frame_times)
        else:
            notes = []

        if has_salience:
            notes = self.refine_velocities(notes, salience, frame_times)
        return sort_notes(notes)

    def merge_events(self, events: List[RawEvent]) -> List[Note]:
        """
        Merge same-pitch events separated by at most the merge gap.

        The gap is measured from the end of the current note to the start of
        the next event. Merged velocity is the maximum, and the note spans
        the union of its events.
        """
        groups: Dict[int, List[RawEvent]] = defaultdict(list)
        for event in events:
            groups[event.pitch].append(event)

        merged = []
        for pitch, group in groups.items():
            group.sort(key=lambda e: e.time)

            current = Note(
                time=group[0].time,
                pitch=pitch,
                velocity=group[0].velocity,
                duration=group[0].duration,
            )
            for event in group[1:]:
                gap = event.time - current.offset
                if gap <= self.max_gap + _EPS:
                    end = max(current.offset, event.time + event.duration)
                    current.duration = end - current.time
                    current.velocity = max(current.velocity, event.velocity)
                else:
                    merged.append(current)
                    current = Note(
                        time=event.time,
                        pitch=pitch,
                        velocity=event.velocity,
                        duration=event.duration,
                    )
            merged.append(current)

        return sort_notes(merged)

    def adaptive_threshold(self, values: np.ndarray) -> float:
        """Per-pitch threshold: 0.6 * median + 0.4 * 80th percentile, clamped."""
        params = self.params
        threshold = (
            params.fallback_median_weight * np.median(values)
            + params.fallback_percentile_weight * np.percentile(values, params.fallback_percentile)
        )
        lo, hi = params.fallback_threshold_range
        return float(np.clip(threshold, lo, hi))

    def notes_from_salience(self, salience: np.ndarray, frame_times: np.ndarray) -> List[Note]:
        """
        Reconstruct notes from salience rows alone.

        Each pitch's frames at or above its adaptive threshold form runs;
        up to ``fallback_bridge_frames`` consecutive quieter frames are
        tolerated inside a run. Velocity follows the run's peak salience.
        """
        salience = np.asarray(salience)
        frame_times = np.asarray(frame_times, dtype=np.float64)
        bridge = self.params.fallback_bridge_frames
        notes = []

        for index in range(min(salience.shape[1], NUM_PITCHES)):
            values = salience[:, index].astype(np.float64)
            if values.max() <= 0:
                continue
            active = values >= self.adaptive_threshold(values)

            run_start = None
            last_active = None
            for frame, is_active in enumerate(active):
                if is_active:
                    if run_start is None:
                        run_start = frame
                    last_active = frame
                elif run_start is not None and frame - last_active > bridge:
                    notes.append(self._salience_note(index, run_start, last_active, values, frame_times))
                    run_start = None
            if run_start is not None:
                notes.append(self._salience_note(index, run_start, last_active, values, frame_times))

        return sort_notes(notes)

    def _salience_note(self, index, start, end, values, frame_times) -> Note:
        peak = float(values[start:end + 1].max())
        time = float(frame_times[start])
        return Note(
            time=time,
            pitch=PIANO_MIN + index,
            velocity=strength_to_velocity(peak / 255.0, self.params.velocity_floor),
            duration=float(frame_times[end]) + self.hop_duration - time,
        )

    def refine_velocities(
        self,
        notes: List[Note],
        salience: np.ndarray,
        frame_times: np.ndarray,
    ) -> List[Note]:
        """
        Replace per-event velocities with salience-derived ones.

        For each note, salience within +/-1 semitone is averaged over the
        note's span. Means are normalized against the min/max over all notes
        onto [velocity_norm_floor, 1] and mapped through a power curve into
        [1, 127]. When all means are equal the mean itself (over 255) is used.
        Notes with no frames under them keep their velocity.
        """
        if not notes:
            return notes

        salience = np.asarray(salience, dtype=np.float64)
        frame_times = np.asarray(frame_times, dtype=np.float64)

        means = []
        for note in notes:
            in_span = (frame_times >= note.time - _EPS) & (frame_times < note.offset - _EPS)
            if not np.any(in_span):
                means.append(None)
                continue
            index = note.pitch - PIANO_MIN
            lo = max(0, index - 1)
            hi = min(NUM_PITCHES, index + 2)
            means.append(float(salience[in_span, lo:hi].mean()))

        known = [m for m in means if m is not None]
        if not known:
            return notes
        low, high = min(known), max(known)

        refined = []
        for note, mean in zip(notes, means):
            if mean is None:
                refined.append(note)
                continue
            if high > low:
                floor = self.params.velocity_norm_floor
                norm = floor + (1.0 - floor) * (mean - low) / (high - low)
            else:
                norm = mean / 255.0
            norm = float(np.clip(norm, 0.0, 1.0))
            velocity = int(round(VELOCITY_MIN + (VELOCITY_MAX - VELOCITY_MIN) * norm ** self.params.velocity_exponent))
            refined.append(
                Note(
                    time=note.time,
                    pitch=note.pitch,
                    velocity=max(VELOCITY_MIN, min(VELOCITY_MAX, velocity)),
                    duration=note.duration,
                )
            )
        return refined
