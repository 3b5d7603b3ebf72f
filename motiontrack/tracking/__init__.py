"""
Tracking module - Corner detection and optical flow.

This module provides:
- CornerDetector: Shi-Tomasi corners with quality and spacing constraints
- PyramidalLKTracker: Pyramidal Lucas-Kanade tracking for a frame pair
- Tracked / Lost: Per-point tracking outcome

Example:
    >>> from motiontrack.tracking import CornerDetector, PyramidalLKTracker
    >>> corners = CornerDetector().detect(prev_gray)
    >>> results = PyramidalLKTracker().track(prev_gray, next_gray, corners)
"""

from motiontrack.tracking.results import Point2D, CornerCandidate, Tracked, Lost, TrackResult
from motiontrack.tracking.corners import CornerDetector, detect_corners, cornerness
from motiontrack.tracking.lucas_kanade import PyramidalLKTracker, track_points

__all__ = [
    "Point2D",
    "CornerCandidate",
    "Tracked",
    "Lost",
    "TrackResult",
    "CornerDetector",
    "detect_corners",
    "cornerness",
    "PyramidalLKTracker",
    "track_points",
]
