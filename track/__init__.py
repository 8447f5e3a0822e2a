"""Cross-capture feature identity."""

from .history import advance_track, apply_matches, start_track
from .reid import ReIdMatcher, appearance_distance, greedy_assignment, lost_ids, match

__all__ = [
    "ReIdMatcher",
    "advance_track",
    "appearance_distance",
    "apply_matches",
    "greedy_assignment",
    "lost_ids",
    "match",
    "start_track",
]
