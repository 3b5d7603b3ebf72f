"""
Feature service and method-channel dispatch.

FeatureService is the boundary between callers and the numeric core.
It checks backend readiness, validates arguments into typed requests,
decodes images, runs detection or tracking, and maps failures onto the
error kinds callers understand.

Example:
    >>> service = FeatureService()
    >>> service.handle_call("initializeOpenCV", {})
    True
    >>> service.handle_call("detectFeatures", {
    ...     "imageBytes": png_bytes, "width": 640, "height": 480,
    ... })
    [{'x': 312.0, 'y': 101.0}, ...]
"""

import logging
from typing import Any, Callable

from pydantic import BaseModel, ValidationError

from motiontrack.core.backend import VisionBackend, vision_backend
from motiontrack.core.config import Config, DetectionParameters
from motiontrack.core.decode import decode_image
from motiontrack.core.errors import (
    DetectionError,
    InvalidArguments,
    InvalidImage,
    MethodNotImplemented,
    MotionTrackError,
    NotInitialized,
    TrackingError,
    UnreadableImage,
)
from motiontrack.service.assembler import assemble_detection, assemble_tracking
from motiontrack.service.models import (
    DetectFeaturesRequest,
    FeaturePoint,
    TrackedPoint,
    TrackOpticalFlowRequest,
)
from motiontrack.tracking.corners import CornerDetector
from motiontrack.tracking.lucas_kanade import PyramidalLKTracker

logger = logging.getLogger(__name__)

CHANNEL_NAME = "motion_tracker/opencv"


def _validation_message(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "arguments"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def parse_request(model: type[BaseModel], arguments: Any) -> BaseModel:
    """
    Validate loosely-typed call arguments into a request struct.

    Raises:
        InvalidArguments: If fields are missing or malformed
    """
    if isinstance(arguments, model):
        return arguments
    if not isinstance(arguments, dict):
        raise InvalidArguments("Call arguments must be a mapping")
    try:
        return model.model_validate(arguments)
    except ValidationError as e:
        raise InvalidArguments(_validation_message(e)) from e


class FeatureService:
    """
    Detect and track features on behalf of a calling application.

    Attributes:
        backend: Vision backend whose readiness gates every call
        config: Default detection block size and tracking parameters
        tracker: Shared Lucas-Kanade tracker
    """

    def __init__(self, backend: VisionBackend | None = None, config: Config | None = None):
        self.backend = backend if backend is not None else vision_backend
        self.config = config or Config()
        self.tracker = PyramidalLKTracker(self.config.tracking)
        self._methods: dict[str, Callable[[Any], Any]] = {
            "initializeOpenCV": self._call_initialize,
            "detectFeatures": self._call_detect,
            "trackOpticalFlow": self._call_track,
        }

    def initialize(self, wait: bool = True, timeout: float | None = None) -> bool:
        """Start (or retry) backend initialization and report readiness."""
        return self.backend.initialize(wait=wait, timeout=timeout)

    def _require_ready(self) -> None:
        if not self.backend.is_ready:
            raise NotInitialized(
                f"Vision backend is {self.backend.state.value}; call initializeOpenCV first"
            )

    def detect_features(self, request: DetectFeaturesRequest | dict) -> list[FeaturePoint]:
        """
        Detect corners in an encoded image.

        Raises:
            NotInitialized: If the backend isn't ready
            InvalidArguments: If the request is malformed or undecodable
            DetectionError: If the image is invalid or detection fails
        """
        self._require_ready()
        request = parse_request(DetectFeaturesRequest, request)

        try:
            params = DetectionParameters(
                max_corners=request.max_corners,
                quality_level=request.quality_level,
                min_distance=request.min_distance,
                block_size=self.config.detection.block_size,
            )
            image = decode_image(request.image_bytes, request.width, request.height)
            corners = CornerDetector(params).detect(image)
        except (InvalidArguments, UnreadableImage) as e:
            raise InvalidArguments(str(e)) from e
        except InvalidImage as e:
            raise DetectionError(f"Failed to detect features: {e}") from e
        except Exception as e:
            logger.exception("Feature detection failed")
            raise DetectionError(f"Failed to detect features: {e}") from e

        return assemble_detection(corners)

    def track_optical_flow(self, request: TrackOpticalFlowRequest | dict) -> list[TrackedPoint]:
        """
        Track points from one encoded frame to the next.

        The result has one entry per requested point, in request order.

        Raises:
            NotInitialized: If the backend isn't ready
            InvalidArguments: If the request is malformed or undecodable
            TrackingError: If the frames are invalid or tracking fails
        """
        self._require_ready()
        request = parse_request(TrackOpticalFlowRequest, request)

        try:
            prev_image = decode_image(request.prev_frame, request.width, request.height)
            curr_image = decode_image(request.curr_frame, request.width, request.height)
            points = [(p.x, p.y) for p in request.prev_points]
            results = self.tracker.track(prev_image, curr_image, points)
        except UnreadableImage as e:
            raise InvalidArguments(str(e)) from e
        except InvalidImage as e:
            raise TrackingError(f"Failed to track optical flow: {e}") from e
        except Exception as e:
            logger.exception("Optical flow tracking failed")
            raise TrackingError(f"Failed to track optical flow: {e}") from e

        return assemble_tracking(results, len(request.prev_points))

    def _call_initialize(self, arguments: Any) -> bool:
        return self.initialize()

    def _call_detect(self, arguments: Any) -> list[dict]:
        return [p.model_dump(by_alias=True) for p in self.detect_features(arguments)]

    def _call_track(self, arguments: Any) -> list[dict]:
        return [p.model_dump(by_alias=True) for p in self.track_optical_flow(arguments)]

    def handle_call(self, method: str, arguments: Any = None) -> Any:
        """
        Dispatch a method call by name.

        Args:
            method: One of initializeOpenCV, detectFeatures, trackOpticalFlow
            arguments: Mapping of call arguments

        Returns:
            Plain Python result (bool, list of dicts)

        Raises:
            MethodNotImplemented: For unknown method names
            MotionTrackError: Subclasses described on the individual methods
        """
        handler = self._methods.get(method)
        if handler is None:
            raise MethodNotImplemented(f"Method not implemented: {method}")

        try:
            return handler(arguments if arguments is not None else {})
        except MotionTrackError as e:
            logger.warning("%s failed: [%s] %s", method, e.code, e.message)
            raise
