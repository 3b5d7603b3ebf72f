"""
Assembly of detector and tracker output into response structs.

Tracking responses keep the length and order of the request's point
list so callers can correlate results by index.
"""

from typing import Sequence

from motiontrack.core.errors import TrackingError
from motiontrack.service.models import FeaturePoint, TrackedPoint
from motiontrack.tracking.results import Point2D, Tracked, TrackResult


def assemble_detection(corners: Sequence[Point2D]) -> list[FeaturePoint]:
    """Convert detected corners to response points, keeping their order."""
    return [FeaturePoint(x=p.x, y=p.y) for p in corners]


def assemble_tracking(results: Sequence[TrackResult], expected: int) -> list[TrackedPoint]:
    """
    Convert tracking results to response points.

    Args:
        results: Tracker output, one entry per requested point
        expected: Number of points in the request

    Raises:
        TrackingError: If the tracker returned a different number of results
    """
    if len(results) != expected:
        raise TrackingError(
            f"Tracker returned {len(results)} results for {expected} points"
        )

    assembled = []
    for result in results:
        if isinstance(result, Tracked):
            assembled.append(TrackedPoint(x=result.position.x, y=result.position.y, tracked=True))
        else:
            assembled.append(TrackedPoint(x=None, y=None, tracked=False))
    return assembled
