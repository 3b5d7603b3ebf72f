"""
Error kinds raised by motiontrack.

Every error carries a short ``code`` string that the transport layer hands
back to the caller unchanged (``INVALID_ARGS``, ``NOT_INITIALIZED`` ...).

Only InvalidArguments, NotInitialized, MethodNotImplemented and the two
call-level wrappers (DetectionError, TrackingError) ever leave a service
call. NumericDegeneracy is internal to the tracker and is always turned
into a lost point.
"""


class MotionTrackError(Exception):
    """Base class for all motiontrack errors."""
    code = "ERROR"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        """Convert to the error payload sent to callers."""
        return {"code": self.code, "message": self.message}


class InvalidArguments(MotionTrackError):
    """Malformed or missing caller input. Never retried."""
    code = "INVALID_ARGS"


class NotInitialized(MotionTrackError):
    """The vision backend is not ready yet. Retry after initialization."""
    code = "NOT_INITIALIZED"


class MethodNotImplemented(MotionTrackError):
    """Unknown method name on the call channel."""
    code = "NOT_IMPLEMENTED"


class InvalidImage(MotionTrackError):
    """Empty buffer or dimensions that don't match the pixel data."""
    code = "INVALID_IMAGE"


class UnreadableImage(InvalidImage):
    """Image bytes that the decoder could not parse at all."""


class NumericDegeneracy(MotionTrackError):
    """Singular tracking system or an estimate that left the image."""
    code = "NUMERIC_DEGENERACY"


class DetectionError(MotionTrackError):
    """Feature detection failed for the whole call."""
    code = "DETECTION_ERROR"


class TrackingError(MotionTrackError):
    """Optical flow tracking failed for the whole call."""
    code = "TRACKING_ERROR"
