"""
Service module - Boundary between host applications and the tracking core.

This module provides:
- FeatureService: Readiness-gated detectFeatures / trackOpticalFlow calls
- Request and response models for the call channel
- create_app: FastAPI application exposing the same calls over HTTP
"""

from motiontrack.service.channel import FeatureService, CHANNEL_NAME
from motiontrack.service.models import (
    DetectFeaturesRequest,
    TrackOpticalFlowRequest,
    FeaturePoint,
    TrackedPoint,
)

__all__ = [
    "FeatureService",
    "CHANNEL_NAME",
    "DetectFeaturesRequest",
    "TrackOpticalFlowRequest",
    "FeaturePoint",
    "TrackedPoint",
]
