"""Note cleanup - post-filters applied to assembled notes.

Filters run after assembly and velocity refinement, never inside them:
- Ghost note removal (low velocity)
- Short note removal (low duration)
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from ..core import Note


@dataclass
class CleanupConfig:
    """Configuration for note post-filters.

    Attributes:
        min_velocity: Minimum velocity to keep (default: 25)
        min_duration: Minimum note duration in seconds (default: 0.06)
    """

    min_velocity: int = 25
    min_duration: float = 0.06


@dataclass
class CleanupStats:
    """Statistics from cleanup operations."""

    original_count: int = 0
    final_count: int = 0
    removed_ghost_notes: int = 0
    removed_short_notes: int = 0

    @property
    def total_removed(self) -> int:
        """Total notes removed."""
        return self.original_count - self.final_count


class PostFilter:
    """Remove notes below the configured velocity and duration."""

    def __init__(
        self,
        min_velocity: int = 25,
        min_duration: float = 0.06,
        config: Optional[CleanupConfig] = None,
    ):
        """Initialize PostFilter.

        Args:
            min_velocity: Minimum velocity to keep (filter ghost notes)
            min_duration: Minimum note duration in seconds
            config: Optional CleanupConfig overriding the keyword values
        """
        if config is not None:
            self.config = config
        else:
            self.config = CleanupConfig(
                min_velocity=min_velocity,
                min_duration=min_duration,
            )

    def cleanup(
        self,
        notes: List[Note],
        return_stats: bool = False,
    ) -> Union[List[Note], Tuple[List[Note], CleanupStats]]:
        """Apply all post-filters.

        Args:
            notes: List of notes to clean
            return_stats: Whether to return cleanup statistics

        Returns:
            Cleaned notes, optionally with statistics
        """
        stats = CleanupStats(original_count=len(notes))

        count_before = len(notes)
        notes = self.remove_ghost_notes(notes)
        stats.removed_ghost_notes = count_before - len(notes)

        count_before = len(notes)
        notes = self.remove_short_notes(notes)
        stats.removed_short_notes = count_before - len(notes)

        stats.final_count = len(notes)
        if return_stats:
            return notes, stats
        return notes

    def remove_ghost_notes(self, notes: List[Note]) -> List[Note]:
        """Remove notes quieter than min_velocity."""
        return [n for n in notes if n.velocity >= self.config.min_velocity]

    def remove_short_notes(self, notes: List[Note]) -> List[Note]:
        """Remove notes shorter than min_duration."""
        return [n for n in notes if n.duration >= self.config.min_duration]
