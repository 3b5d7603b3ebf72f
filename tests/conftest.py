"""
Pytest configuration and shared fixtures.
"""

import cv2
import numpy as np
import pytest


def make_blob_frame(cx: float, cy: float, size: int = 64, sigma: float = 4.0) -> np.ndarray:
    """Flat background with a single Gaussian bright spot centered at (cx, cy)."""
    ys, xs = np.mgrid[0:size, 0:size].astype(np.float64)
    blob = np.exp(-((xs - cx) ** 2 + (ys - cy) ** 2) / (2.0 * sigma ** 2))
    return 30.0 + 200.0 * blob


def make_corner_image(size: int = 64, corner: int = 32) -> np.ndarray:
    """Dark image with a bright quadrant whose only corner is at (corner, corner)."""
    image = np.full((size, size), 30, dtype=np.uint8)
    image[corner:, corner:] = 230
    return image


def encode_png(image: np.ndarray) -> bytes:
    ok, encoded = cv2.imencode(".png", np.clip(np.round(image), 0, 255).astype(np.uint8))
    assert ok
    return encoded.tobytes()


@pytest.fixture
def blob_frame():
    return make_blob_frame


@pytest.fixture
def corner_image():
    return make_corner_image()


@pytest.fixture
def png():
    return encode_png


@pytest.fixture
def ready_backend():
    """A private vision backend that has finished loading OpenCV."""
    from motiontrack.core.backend import VisionBackend

    backend = VisionBackend()
    assert backend.initialize()
    return backend
