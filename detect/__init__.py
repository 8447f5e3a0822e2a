"""Reference marker detection and shared image helpers."""

from .marker_detector import CircleCandidate, MarkerDetector, detect

__all__ = ["CircleCandidate", "MarkerDetector", "detect"]
