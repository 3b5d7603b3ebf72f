#!/usr/bin/env python3
"""
Minimal Example: motiontrack API Usage
======================================

Shows the essential API calls without extra boilerplate.
This is the "quick reference" version.
"""

import cv2
import numpy as np

from motiontrack import Config, TrackingParameters, detect_corners, track_points
from motiontrack.service import FeatureService
from motiontrack.core.backend import VisionBackend


# =============================================================================
# STEP 1: DIRECT API
# Detect corners on a synthetic frame, then follow them into a shifted copy
# =============================================================================

ys, xs = np.mgrid[0:240, 0:320].astype(np.float64)
prev_frame = 30.0 + 200.0 * np.exp(-((xs - 120) ** 2 + (ys - 100) ** 2) / 200.0)
prev_frame[150:, 200:] = 220.0
curr_frame = np.roll(prev_frame, shift=(2, 3), axis=(0, 1))

corners = detect_corners(prev_frame)
print(f"Detected {len(corners)} corners")

results = track_points(prev_frame, curr_frame, corners, TrackingParameters(max_workers=4))
for corner, result in zip(corners, results):
    if result.tracked:
        print(f"  ({corner.x:.0f}, {corner.y:.0f}) -> "
              f"({result.position.x:.2f}, {result.position.y:.2f})  err={result.error:.3f}")
    else:
        print(f"  ({corner.x:.0f}, {corner.y:.0f}) lost: {result.reason}")


# =============================================================================
# STEP 2: METHOD CHANNEL
# Equivalent to: python -m motiontrack track prev.png curr.png
# =============================================================================

def to_png(image):
    ok, encoded = cv2.imencode(".png", np.clip(image, 0, 255).astype(np.uint8))
    return encoded.tobytes()


service = FeatureService(backend=VisionBackend(), config=Config())
print("initializeOpenCV ->", service.handle_call("initializeOpenCV"))

height, width = prev_frame.shape
points = service.handle_call("detectFeatures", {
    "imageBytes": to_png(prev_frame),
    "width": width,
    "height": height,
    "maxCorners": 10,
})
tracked = service.handle_call("trackOpticalFlow", {
    "prevFrame": to_png(prev_frame),
    "currFrame": to_png(curr_frame),
    "prevPoints": points,
    "width": width,
    "height": height,
})

for before, after in zip(points, tracked):
    print(before, "->", after)
