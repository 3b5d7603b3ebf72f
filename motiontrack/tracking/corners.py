"""
Shi-Tomasi corner detection ("good features to track").

The cornerness of a pixel is the smaller eigenvalue of the gradient
covariance summed over a small block around it. Detection keeps the
local maxima that score at least ``quality_level`` times the best score,
then accepts them greedily in score order while keeping every pair at
least ``min_distance`` apart.
"""

import logging
from collections import defaultdict

import numpy as np
from scipy import ndimage

from motiontrack.core.config import DetectionParameters
from motiontrack.core.image import PixelBuffer
from motiontrack.tracking.results import CornerCandidate, Point2D

logger = logging.getLogger(__name__)


def cornerness(image: PixelBuffer, block_size: int = 3) -> np.ndarray:
    """
    Compute the Shi-Tomasi response of every pixel.

    Pixels closer to the border than the gradient plus block window
    reach score 0.

    Args:
        image: Grayscale input
        block_size: Side of the summation window (odd)

    Returns:
        float64 array of the same shape as the image, all values >= 0
    """
    data = image.data
    gx = ndimage.sobel(data, axis=1, mode="nearest")
    gy = ndimage.sobel(data, axis=0, mode="nearest")

    sxx = ndimage.uniform_filter(gx * gx, size=block_size, mode="nearest")
    syy = ndimage.uniform_filter(gy * gy, size=block_size, mode="nearest")
    sxy = ndimage.uniform_filter(gx * gy, size=block_size, mode="nearest")

    # Smaller eigenvalue of [[sxx, sxy], [sxy, syy]]
    half_trace = (sxx + syy) * 0.5
    root = np.sqrt(((sxx - syy) * 0.5) ** 2 + sxy * sxy)
    score = np.maximum(half_trace - root, 0.0)

    margin = block_size // 2 + 1
    score[:margin, :] = 0.0
    score[-margin:, :] = 0.0
    score[:, :margin] = 0.0
    score[:, -margin:] = 0.0
    return score


def collect_candidates(score: np.ndarray, quality_level: float) -> list[CornerCandidate]:
    """
    Pick the local maxima of a cornerness map that clear the quality bar.

    Returns:
        Candidates sorted by descending score, raster order among equals
    """
    best = float(score.max())
    if best <= 0.0:
        return []

    threshold = best * quality_level
    peaks = score == ndimage.maximum_filter(score, size=3, mode="nearest")
    mask = peaks & (score >= threshold) & (score > 0.0)

    ys, xs = np.nonzero(mask)
    values = score[ys, xs]
    order = np.argsort(-values, kind="stable")
    return [
        CornerCandidate(Point2D(float(xs[i]), float(ys[i])), float(values[i]))
        for i in order
    ]


def enforce_spacing(
    candidates: list[CornerCandidate],
    min_distance: float,
    max_corners: int,
) -> list[Point2D]:
    """
    Greedily accept candidates that keep at least min_distance to every
    point accepted before them.

    Accepted points are bucketed in a grid with cell size min_distance,
    so only the 3x3 neighbouring cells need checking.
    """
    if min_distance <= 0:
        return [c.point for c in candidates[:max_corners]]

    cell = float(min_distance)
    min_sq = cell * cell
    grid: dict[tuple[int, int], list[Point2D]] = defaultdict(list)
    accepted: list[Point2D] = []

    for candidate in candidates:
        p = candidate.point
        cx, cy = int(p.x // cell), int(p.y // cell)
        too_close = any(
            (p.x - q.x) ** 2 + (p.y - q.y) ** 2 < min_sq
            for i in (-1, 0, 1)
            for j in (-1, 0, 1)
            for q in grid.get((cx + i, cy + j), ())
        )
        if too_close:
            continue

        accepted.append(p)
        grid[(cx, cy)].append(p)
        if len(accepted) >= max_corners:
            break

    return accepted


class CornerDetector:
    """
    Shi-Tomasi corner detector.

    Example:
        >>> detector = CornerDetector(DetectionParameters(max_corners=50))
        >>> corners = detector.detect(gray)
    """

    def __init__(self, params: DetectionParameters | None = None):
        self.params = params or DetectionParameters()

    def detect(self, image: PixelBuffer | np.ndarray) -> list[Point2D]:
        """
        Detect corners in a grayscale image.

        Args:
            image: PixelBuffer or 2D intensity array

        Returns:
            Up to max_corners points, strongest first, pairwise at least
            min_distance apart. Empty if nothing clears the quality bar.

        Raises:
            InvalidImage: If the array is empty or not 2D
        """
        if not isinstance(image, PixelBuffer):
            image = PixelBuffer.from_array(image)

        score = cornerness(image, self.params.block_size)
        candidates = collect_candidates(score, self.params.quality_level)
        corners = enforce_spacing(candidates, self.params.min_distance, self.params.max_corners)

        logger.debug(
            "Detected %d corners from %d candidates in %r",
            len(corners), len(candidates), image,
        )
        return corners

    __call__ = detect


def detect_corners(
    image: PixelBuffer | np.ndarray,
    params: DetectionParameters | None = None,
) -> list[Point2D]:
    """Detect Shi-Tomasi corners with the given parameters."""
    return CornerDetector(params).detect(image)
