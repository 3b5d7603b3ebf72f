"""
HTTP API for motiontrack.

Routes:
- POST /api/initialize            -> {"initialized": bool}
- GET  /api/status                -> vision backend status
- POST /api/detect-features       -> [{"x", "y"}, ...]
- POST /api/track-optical-flow    -> [{"x", "y", "tracked"}, ...]
- POST /api/call/{method}         -> {"result": ...} (generic method channel)

Image bytes travel as base64 strings. Errors come back as
{"code": ..., "message": ...} with a matching HTTP status.

Requires:
    pip install fastapi uvicorn
"""

import asyncio
import logging
from functools import partial
from typing import Any

import uvicorn
from fastapi import Body, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from motiontrack import __version__
from motiontrack.core.config import ServerSettings
from motiontrack.core.errors import (
    DetectionError,
    InvalidArguments,
    MethodNotImplemented,
    MotionTrackError,
    NotInitialized,
    TrackingError,
)
from motiontrack.service.channel import FeatureService
from motiontrack.service.models import (
    CallResponse,
    ErrorResponse,
    FeaturePoint,
    InitializeResponse,
    TrackedPoint,
)

logger = logging.getLogger(__name__)


ERROR_STATUS = {
    InvalidArguments: 400,
    MethodNotImplemented: 404,
    NotInitialized: 503,
    DetectionError: 422,
    TrackingError: 422,
}


ERROR_RESPONSES = {
    status: {"model": ErrorResponse}
    for status in sorted(set(ERROR_STATUS.values()))
}


def status_for(error: MotionTrackError) -> int:
    for kind, status in ERROR_STATUS.items():
        if isinstance(error, kind):
            return status
    return 500


async def _run(func, *args) -> Any:
    """Run blocking work in the default thread pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args))


def create_app(service: FeatureService | None = None) -> FastAPI:
    """Create the FastAPI app around a FeatureService."""
    service = service or FeatureService()
    app = FastAPI(
        title="motiontrack",
        version=__version__,
        description="Sparse feature detection and pyramidal Lucas-Kanade tracking",
    )
    app.state.service = service

    @app.exception_handler(MotionTrackError)
    async def handle_motiontrack_error(request: Request, exc: MotionTrackError):
        return JSONResponse(exc.to_dict(), status_code=status_for(exc))

    # Malformed JSON never reaches the service
    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        error = InvalidArguments("Request body is not valid JSON")
        return JSONResponse(error.to_dict(), status_code=status_for(error))

    @app.post("/api/initialize", response_model=InitializeResponse)
    async def initialize():
        ready = await _run(service.initialize)
        return InitializeResponse(initialized=ready)

    @app.get("/api/status")
    async def status():
        return {"version": __version__, "backend": service.backend.status()}

    # Bodies are taken untyped so the service checks readiness first and
    # reports bad arguments as INVALID_ARGS
    @app.post(
        "/api/detect-features",
        response_model=list[FeaturePoint],
        responses=ERROR_RESPONSES,
    )
    async def detect_features(arguments: Any = Body(None)):
        return await _run(service.detect_features, arguments)

    @app.post(
        "/api/track-optical-flow",
        response_model=list[TrackedPoint],
        responses=ERROR_RESPONSES,
    )
    async def track_optical_flow(arguments: Any = Body(None)):
        return await _run(service.track_optical_flow, arguments)

    @app.post("/api/call/{method}", response_model=CallResponse, responses=ERROR_RESPONSES)
    async def call(method: str, arguments: Any = Body(None)):
        result = await _run(service.handle_call, method, arguments)
        return CallResponse(result=result)

    return app


def serve(service: FeatureService | None = None, settings: ServerSettings | None = None) -> None:
    """Run the HTTP API with uvicorn until interrupted."""
    settings = settings or ServerSettings()
    service = service or FeatureService()

    # Load OpenCV in the background; calls get NOT_INITIALIZED until ready
    service.initialize(wait=False)

    logger.info("motiontrack %s listening on http://%s:%d", __version__, settings.host, settings.port)
    uvicorn.run(
        create_app(service),
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )
