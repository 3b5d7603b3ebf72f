"""
motiontrack - Sparse feature tracking between video frames
===========================================================

Finds corner-like points in an image (Shi-Tomasi) and follows them into
the next frame with pyramidal Lucas-Kanade optical flow.

Main modules:
- motiontrack.core: Pixel buffers, pyramids, decoding, configuration
- motiontrack.tracking: Corner detection and optical flow
- motiontrack.service: Call channel and HTTP API for host applications

Quick start:
    >>> from motiontrack import detect_corners, track_points
    >>> corners = detect_corners(prev_gray)
    >>> results = track_points(prev_gray, next_gray, corners)
    >>> [r.position for r in results if r.tracked]
"""

__version__ = "0.1.0"

# Convenience imports
from motiontrack.core.config import Config, DetectionParameters, TrackingParameters
from motiontrack.core.image import PixelBuffer, to_grayscale
from motiontrack.core.backend import vision_backend, configure_backend, BackendState
from motiontrack.tracking import (
    CornerDetector,
    PyramidalLKTracker,
    detect_corners,
    track_points,
    Point2D,
    Tracked,
    Lost,
)

__all__ = [
    "__version__",
    "Config",
    "DetectionParameters",
    "TrackingParameters",
    "PixelBuffer",
    "to_grayscale",
    "vision_backend",
    "configure_backend",
    "BackendState",
    "CornerDetector",
    "PyramidalLKTracker",
    "detect_corners",
    "track_points",
    "Point2D",
    "Tracked",
    "Lost",
]
