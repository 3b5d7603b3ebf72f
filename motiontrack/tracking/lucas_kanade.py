"""
Pyramidal Lucas-Kanade optical flow.

Each point is tracked independently from the coarsest usable pyramid
level down to full resolution. At every level the displacement is
refined by Gauss-Newton iterations on the windowed brightness constancy
equation, with bilinear sampling at sub-pixel positions.

Example:
    >>> tracker = PyramidalLKTracker(TrackingParameters(window_radius=7))
    >>> results = tracker.track(prev_gray, next_gray, [(20.0, 20.0)])
    >>> results[0].tracked
    True
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from functools import partial
from typing import Iterable

import numpy as np
from scipy import ndimage

from motiontrack.core.config import TrackingParameters
from motiontrack.core.errors import InvalidImage, NumericDegeneracy
from motiontrack.core.image import PixelBuffer
from motiontrack.core.pyramid import Pyramid, build_pyramid
from motiontrack.tracking.results import Lost, Point2D, Tracked, TrackResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class _TemplateLevel:
    """One level of the first frame with its intensity gradients."""
    image: np.ndarray
    grad_x: np.ndarray
    grad_y: np.ndarray


def _gradients(buffer: PixelBuffer) -> _TemplateLevel:
    # Sobel / 8 gives the derivative in intensity units per pixel
    data = buffer.data
    grad_x = ndimage.sobel(data, axis=1, mode="nearest") / 8.0
    grad_y = ndimage.sobel(data, axis=0, mode="nearest") / 8.0
    return _TemplateLevel(data, grad_x, grad_y)


def _sample(image: np.ndarray, xs: np.ndarray, ys: np.ndarray) -> np.ndarray:
    """Bilinear sampling with edge replication."""
    return ndimage.map_coordinates(image, [ys, xs], order=1, mode="nearest")


def _inside(pos: np.ndarray, width: int, height: int) -> bool:
    return 0.0 <= pos[0] <= width - 1 and 0.0 <= pos[1] <= height - 1


def _as_buffer(image: PixelBuffer | np.ndarray) -> PixelBuffer:
    if isinstance(image, PixelBuffer):
        return image
    return PixelBuffer.from_array(image)


def _as_points(points: Iterable) -> list[Point2D]:
    coords = np.asarray(list(points), dtype=np.float64).reshape(-1, 2)
    return [Point2D(float(x), float(y)) for x, y in coords]


class PyramidalLKTracker:
    """
    Sparse pyramidal Lucas-Kanade tracker for a pair of frames.

    The tracker holds no per-call state; one instance can serve
    concurrent calls.

    Attributes:
        params: Tracking parameters
    """

    def __init__(self, params: TrackingParameters | None = None):
        self.params = params or TrackingParameters()

        r = self.params.window_radius
        dy, dx = np.mgrid[-r:r + 1, -r:r + 1].astype(np.float64)
        self._dx = dx.ravel()
        self._dy = dy.ravel()
        self._dx.setflags(write=False)
        self._dy.setflags(write=False)

    def track(
        self,
        prev_image: PixelBuffer | np.ndarray,
        next_image: PixelBuffer | np.ndarray,
        points: Iterable,
    ) -> list[TrackResult]:
        """
        Track points from prev_image to next_image.

        Args:
            prev_image: First frame (grayscale)
            next_image: Second frame (grayscale), same size as the first
            points: (x, y) positions in the first frame

        Returns:
            One Tracked or Lost per input point, in input order

        Raises:
            InvalidImage: If the frames are empty or differ in size
        """
        prev_image = _as_buffer(prev_image)
        next_image = _as_buffer(next_image)
        if prev_image.shape != next_image.shape:
            raise InvalidImage(
                f"Frame sizes differ: {prev_image.width}x{prev_image.height} "
                f"vs {next_image.width}x{next_image.height}"
            )

        points = _as_points(points)
        if not points:
            return []

        levels = self.params.levels
        workers = min(self.params.max_workers, len(points))

        if workers > 1:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                prev_future = pool.submit(build_pyramid, prev_image, levels)
                next_future = pool.submit(build_pyramid, next_image, levels)
                prev_pyr, next_pyr = prev_future.result(), next_future.result()
                templates = list(pool.map(_gradients, prev_pyr))
                usable = self._usable_levels(prev_pyr, next_pyr)
                track_one = partial(self._track_point, templates, next_pyr, usable)
                # map() yields in submission order, not completion order
                results = list(pool.map(track_one, points))
        else:
            prev_pyr = build_pyramid(prev_image, levels)
            next_pyr = build_pyramid(next_image, levels)
            templates = [_gradients(level) for level in prev_pyr]
            usable = self._usable_levels(prev_pyr, next_pyr)
            results = [self._track_point(templates, next_pyr, usable, p) for p in points]

        lost = sum(1 for r in results if not r.tracked)
        logger.debug(
            "Tracked %d/%d points over %d pyramid levels",
            len(results) - lost, len(results), usable,
        )
        return results

    __call__ = track

    def _usable_levels(self, prev_pyr: Pyramid, next_pyr: Pyramid) -> int:
        """Count levels present in both pyramids and large enough for the window."""
        size = self.params.window_size
        usable = 1
        for level in range(1, min(len(prev_pyr), len(next_pyr))):
            buf = prev_pyr[level]
            if buf.width < size or buf.height < size:
                break
            usable = level + 1
        return usable

    def _track_point(
        self,
        templates: list[_TemplateLevel],
        next_pyr: Pyramid,
        usable: int,
        point: Point2D,
    ) -> TrackResult:
        r = self.params.window_radius
        height, width = templates[0].image.shape
        if not (r <= point.x <= width - 1 - r and r <= point.y <= height - 1 - r):
            logger.debug("Point %s: window outside image", point)
            return Lost("window outside image")

        origin = point.as_array()
        flow = np.zeros(2, dtype=np.float64)
        converged = False
        residual = 0.0

        try:
            for level in range(usable - 1, -1, -1):
                anchor = origin / float(2 ** level)
                flow, converged, residual = self._refine(
                    templates[level], next_pyr[level].data, anchor, flow
                )
                if level > 0:
                    flow = flow * 2.0
        except NumericDegeneracy as e:
            logger.debug("Point %s lost: %s", point, e)
            return Lost(str(e))

        if not converged:
            logger.debug("Point %s lost: no convergence", point)
            return Lost("no convergence")

        final = origin + flow
        return Tracked(Point2D(float(final[0]), float(final[1])), residual)

    def _refine(
        self,
        template: _TemplateLevel,
        target: np.ndarray,
        anchor: np.ndarray,
        flow: np.ndarray,
    ) -> tuple[np.ndarray, bool, float]:
        """
        Iterate Lucas-Kanade at one pyramid level.

        Returns:
            Refined flow, whether it converged, and the sum of squared
            intensity differences over the window at the refined position

        Raises:
            NumericDegeneracy: If the system is singular while the window
                content changed, or the estimate leaves the image
        """
        p = self.params
        height, width = target.shape
        xs = anchor[0] + self._dx
        ys = anchor[1] + self._dy

        patch = _sample(template.image, xs, ys)
        gx = _sample(template.grad_x, xs, ys)
        gy = _sample(template.grad_y, xs, ys)

        n = float(gx.size)
        gxx = float(gx @ gx) / n
        gxy = float(gx @ gy) / n
        gyy = float(gy @ gy) / n
        det = gxx * gyy - gxy * gxy
        singular = det < p.min_determinant

        flow = flow.copy()
        prev_delta = None
        converged = False

        for _ in range(p.max_iterations):
            pos = anchor + flow
            if not _inside(pos, width, height):
                raise NumericDegeneracy(f"estimate left the image at ({pos[0]:.2f}, {pos[1]:.2f})")

            diff = _sample(target, xs + flow[0], ys + flow[1]) - patch

            if singular:
                # Textureless window: only "nothing moved" is a valid answer
                if float(np.mean(np.abs(diff))) <= p.motion_tolerance:
                    return flow, True, float(diff @ diff)
                raise NumericDegeneracy(f"singular gradient matrix (det={det:.3g})")

            bx = float(gx @ diff) / n
            by = float(gy @ diff) / n
            delta = np.array([
                -(gyy * bx - gxy * by) / det,
                -(gxx * by - gxy * bx) / det,
            ])
            flow += delta

            if np.hypot(delta[0], delta[1]) < p.epsilon:
                converged = True
                break

            # Oscillating between two positions: settle in the middle
            if prev_delta is not None:
                swing = delta + prev_delta
                if np.hypot(swing[0], swing[1]) < p.epsilon:
                    flow -= delta * 0.5
                    converged = True
                    break
            prev_delta = delta

        pos = anchor + flow
        if not _inside(pos, width, height):
            raise NumericDegeneracy(f"estimate left the image at ({pos[0]:.2f}, {pos[1]:.2f})")

        diff = _sample(target, xs + flow[0], ys + flow[1]) - patch
        return flow, converged, float(diff @ diff)


def track_points(
    prev_image: PixelBuffer | np.ndarray,
    next_image: PixelBuffer | np.ndarray,
    points: Iterable,
    params: TrackingParameters | None = None,
) -> list[TrackResult]:
    """Track points between two frames with the given parameters."""
    return PyramidalLKTracker(params).track(prev_image, next_image, points)
