"""Processing layer - Note assembly and post-filtering.

This layer turns raw per-frame events into clean notes:
- Merging same-pitch events into notes
- Reconstructing notes from salience when no events were found
- Velocity refinement and post-filters
"""

from .assembler import NoteAssembler
from .cleanup import PostFilter, CleanupConfig, CleanupStats

__all__ = [
    "NoteAssembler",
    "PostFilter",
    "CleanupConfig",
    "CleanupStats",
]
