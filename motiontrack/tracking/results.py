"""
Value types produced by the detector and the tracker.
"""

from dataclasses import dataclass
from typing import NamedTuple, Union

import numpy as np


class Point2D(NamedTuple):
    """Sub-pixel image position in full resolution pixel space."""
    x: float
    y: float

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y], dtype=np.float64)

    def distance_to(self, other: "Point2D") -> float:
        return float(np.hypot(self.x - other.x, self.y - other.y))


class CornerCandidate(NamedTuple):
    """A local maximum of the cornerness map, before spacing is enforced."""
    point: Point2D
    score: float


@dataclass(frozen=True)
class Tracked:
    """A point that was followed into the next frame."""
    position: Point2D
    error: float

    tracked = True


@dataclass(frozen=True)
class Lost:
    """A point that could not be followed."""
    reason: str = ""

    tracked = False


TrackResult = Union[Tracked, Lost]
