"""
Request and response structs for the call channel and the HTTP API.

Field names are camelCase on the wire (``imageBytes``, ``maxCorners``)
and snake_case in Python; both spellings are accepted on input. Byte
fields take raw bytes in-process, or base64 text when sent as JSON.
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _decode_bytes(value: Any) -> Any:
    if isinstance(value, (bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ValueError("not valid base64 image data") from e
    return value


class FeaturePoint(WireModel):
    x: float
    y: float


class TrackedPoint(WireModel):
    """Tracking outcome for one input point. x/y are null when lost."""
    x: Optional[float] = None
    y: Optional[float] = None
    tracked: bool


class DetectFeaturesRequest(WireModel):
    image_bytes: bytes = Field(..., min_length=1)
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)
    max_corners: int = Field(100, gt=0)
    quality_level: float = Field(0.01, gt=0.0, le=1.0)
    min_distance: float = Field(10.0, ge=0.0)

    @field_validator("image_bytes", mode="before")
    @classmethod
    def _image_bytes(cls, value: Any) -> Any:
        return _decode_bytes(value)


class TrackOpticalFlowRequest(WireModel):
    prev_frame: bytes = Field(..., min_length=1)
    curr_frame: bytes = Field(..., min_length=1)
    prev_points: list[FeaturePoint]
    width: int = Field(..., gt=0)
    height: int = Field(..., gt=0)

    @field_validator("prev_frame", "curr_frame", mode="before")
    @classmethod
    def _frames(cls, value: Any) -> Any:
        return _decode_bytes(value)


class InitializeResponse(WireModel):
    initialized: bool


class CallResponse(WireModel):
    result: Any = None


class ErrorResponse(WireModel):
    code: str
    message: str
