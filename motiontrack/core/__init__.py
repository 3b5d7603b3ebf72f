"""
Core module - Pixel buffers, pyramids, decoding, configuration and errors.
"""

from motiontrack.core.image import PixelBuffer, to_grayscale
from motiontrack.core.pyramid import Pyramid, build_pyramid, downsample
from motiontrack.core.config import (
    Config,
    DetectionParameters,
    TrackingParameters,
    ServerSettings,
    load_config,
    save_config,
)
from motiontrack.core.backend import (
    vision_backend,
    configure_backend,
    VisionBackend,
    BackendState,
    LoaderStatus,
)
from motiontrack.core.errors import (
    MotionTrackError,
    InvalidArguments,
    NotInitialized,
    InvalidImage,
    DetectionError,
    TrackingError,
)

__all__ = [
    "PixelBuffer",
    "to_grayscale",
    "Pyramid",
    "build_pyramid",
    "downsample",
    "Config",
    "DetectionParameters",
    "TrackingParameters",
    "ServerSettings",
    "load_config",
    "save_config",
    "vision_backend",
    "configure_backend",
    "VisionBackend",
    "BackendState",
    "LoaderStatus",
    "MotionTrackError",
    "InvalidArguments",
    "NotInitialized",
    "InvalidImage",
    "DetectionError",
    "TrackingError",
]
