"""
Tests for the feature service, the method channel and the HTTP API.
"""

import base64

import pytest
import numpy as np


@pytest.fixture
def service(ready_backend):
    from motiontrack.service import FeatureService
    return FeatureService(backend=ready_backend)


@pytest.fixture
def cold_service():
    """Service whose backend has never been initialized."""
    from motiontrack.core.backend import VisionBackend
    from motiontrack.service import FeatureService
    return FeatureService(backend=VisionBackend())


class TestRequestModels:
    """Tests for request validation."""

    def test_defaults(self):
        """Test default detection arguments."""
        from motiontrack.service.models import DetectFeaturesRequest

        request = DetectFeaturesRequest.model_validate(
            {"imageBytes": b"\x89PNG", "width": 10, "height": 10}
        )
        assert request.max_corners == 100
        assert request.quality_level == 0.01
        assert request.min_distance == 10.0

    def test_base64_bytes(self):
        """Test that base64 text is decoded to bytes."""
        from motiontrack.service.models import DetectFeaturesRequest

        request = DetectFeaturesRequest.model_validate({
            "imageBytes": base64.b64encode(b"abc").decode(),
            "width": 1,
            "height": 1,
        })
        assert request.image_bytes == b"abc"

    def test_snake_case_accepted(self):
        """Test that Python field names work too."""
        from motiontrack.service.models import TrackOpticalFlowRequest

        request = TrackOpticalFlowRequest(
            prev_frame=b"a", curr_frame=b"b", prev_points=[{"x": 1, "y": 2}], width=3, height=4,
        )
        assert request.prev_points[0].x == 1.0


class TestFeatureService:
    """Tests for FeatureService."""

    def test_detect_before_initialization(self, cold_service, png, corner_image):
        """Test that detection fails with NotInitialized before the backend loads."""
        from motiontrack.core.errors import NotInitialized

        with pytest.raises(NotInitialized):
            cold_service.handle_call("detectFeatures", {
                "imageBytes": png(corner_image), "width": 64, "height": 64,
            })

    def test_track_before_initialization(self, cold_service):
        """Test that tracking fails with NotInitialized before the backend loads."""
        from motiontrack.core.errors import NotInitialized

        with pytest.raises(NotInitialized) as info:
            cold_service.track_optical_flow({})
        assert info.value.code == "NOT_INITIALIZED"

    def test_initialize_call(self, cold_service):
        """Test initializeOpenCV through the channel."""
        assert cold_service.handle_call("initializeOpenCV") is True
        assert cold_service.backend.is_ready

    def test_failed_backend_rejects_calls(self, png, corner_image):
        """Test that a failed backend keeps rejecting calls."""
        from motiontrack.core.backend import VisionBackend
        from motiontrack.core.errors import NotInitialized
        from motiontrack.service import FeatureService

        service = FeatureService(backend=VisionBackend(loader=lambda: 0xFF))
        assert service.handle_call("initializeOpenCV") is False
        with pytest.raises(NotInitialized):
            service.handle_call("detectFeatures", {
                "imageBytes": png(corner_image), "width": 64, "height": 64,
            })

    def test_detect_single_corner(self, service, png, corner_image):
        """Test the single-corner scenario through the channel."""
        result = service.handle_call("detectFeatures", {
            "imageBytes": png(corner_image),
            "width": 64,
            "height": 64,
            "maxCorners": 5,
            "qualityLevel": 0.01,
            "minDistance": 1,
        })
        assert len(result) == 1
        assert abs(result[0]["x"] - 32) <= 1.0
        assert abs(result[0]["y"] - 32) <= 1.0

    def test_detect_missing_image(self, service):
        """Test that absent image bytes are invalid arguments."""
        from motiontrack.core.errors import InvalidArguments

        with pytest.raises(InvalidArguments) as info:
            service.handle_call("detectFeatures", {"width": 64, "height": 64})
        assert info.value.code == "INVALID_ARGS"

    @pytest.mark.parametrize("width,height", [(0, 64), (64, -1)])
    def test_detect_bad_size(self, service, png, corner_image, width, height):
        """Test that non-positive sizes are invalid arguments."""
        from motiontrack.core.errors import InvalidArguments

        with pytest.raises(InvalidArguments):
            service.handle_call("detectFeatures", {
                "imageBytes": png(corner_image), "width": width, "height": height,
            })

    def test_detect_unparseable_image(self, service):
        """Test that undecodable bytes are invalid arguments."""
        from motiontrack.core.errors import InvalidArguments

        with pytest.raises(InvalidArguments):
            service.handle_call("detectFeatures", {
                "imageBytes": b"not an image", "width": 64, "height": 64,
            })

    def test_detect_size_mismatch(self, service, png, corner_image):
        """Test that a declared size not matching the image is a detection error."""
        from motiontrack.core.errors import DetectionError, InvalidImage

        with pytest.raises(DetectionError) as info:
            service.handle_call("detectFeatures", {
                "imageBytes": png(corner_image), "width": 32, "height": 64,
            })
        assert isinstance(info.value.__cause__, InvalidImage)

    def test_track_flat_frames(self, service, png):
        """Test that a point in a flat frame pair stays where it is."""
        frame = png(np.full((64, 64), 128))
        result = service.handle_call("trackOpticalFlow", {
            "prevFrame": frame,
            "currFrame": frame,
            "prevPoints": [{"x": 10, "y": 10}],
            "width": 64,
            "height": 64,
        })
        assert len(result) == 1
        assert result[0]["tracked"] is True
        assert result[0]["x"] == pytest.approx(10.0, abs=1e-6)
        assert result[0]["y"] == pytest.approx(10.0, abs=1e-6)

    def test_track_shifted_patch(self, service, png, blob_frame):
        """Test tracking a patch shifted by 3 pixels."""
        result = service.handle_call("trackOpticalFlow", {
            "prevFrame": png(blob_frame(20, 20)),
            "currFrame": png(blob_frame(23, 20)),
            "prevPoints": [{"x": 20, "y": 20}],
            "width": 64,
            "height": 64,
        })
        assert result[0]["tracked"] is True
        assert result[0]["x"] == pytest.approx(23.0, abs=0.5)
        assert result[0]["y"] == pytest.approx(20.0, abs=0.5)

    def test_track_keeps_length_and_order(self, service, png, blob_frame):
        """Test that lost points keep their slot with null coordinates."""
        frame = png(blob_frame(32, 32))
        points = [{"x": 32, "y": 32}, {"x": 0, "y": 0}, {"x": 30, "y": 34}]
        result = service.handle_call("trackOpticalFlow", {
            "prevFrame": frame,
            "currFrame": frame,
            "prevPoints": points,
            "width": 64,
            "height": 64,
        })
        assert len(result) == len(points)
        assert [r["tracked"] for r in result] == [True, False, True]
        assert result[1] == {"x": None, "y": None, "tracked": False}

    def test_track_empty_points(self, service, png, blob_frame):
        """Test that an empty point list gives an empty result."""
        frame = png(blob_frame(32, 32))
        result = service.handle_call("trackOpticalFlow", {
            "prevFrame": frame, "currFrame": frame, "prevPoints": [], "width": 64, "height": 64,
        })
        assert result == []

    def test_track_missing_points(self, service, png, blob_frame):
        """Test that missing prevPoints are invalid arguments."""
        from motiontrack.core.errors import InvalidArguments

        frame = png(blob_frame(32, 32))
        with pytest.raises(InvalidArguments):
            service.handle_call("trackOpticalFlow", {
                "prevFrame": frame, "currFrame": frame, "width": 64, "height": 64,
            })

    def test_track_size_mismatch(self, service, png, blob_frame):
        """Test that frames not matching the declared size are a tracking error."""
        from motiontrack.core.errors import TrackingError

        frame = png(blob_frame(32, 32))
        with pytest.raises(TrackingError):
            service.handle_call("trackOpticalFlow", {
                "prevFrame": frame,
                "currFrame": frame,
                "prevPoints": [{"x": 32, "y": 32}],
                "width": 48,
                "height": 64,
            })

    def test_unknown_method(self, service):
        """Test that unknown methods are reported as not implemented."""
        from motiontrack.core.errors import MethodNotImplemented

        with pytest.raises(MethodNotImplemented):
            service.handle_call("calibrateCamera", {})

    def test_non_mapping_arguments(self, service):
        """Test that arguments must be a mapping."""
        from motiontrack.core.errors import InvalidArguments

        with pytest.raises(InvalidArguments):
            service.handle_call("detectFeatures", ["not", "a", "dict"])


class TestAssembler:
    """Tests for result assembly."""

    def test_tracking_shape(self):
        """Test Tracked and Lost conversion."""
        from motiontrack.service.assembler import assemble_tracking
        from motiontrack.tracking import Lost, Point2D, Tracked

        assembled = assemble_tracking([Tracked(Point2D(1.5, 2.5), 0.1), Lost("gone")], 2)
        assert assembled[0].model_dump() == {"x": 1.5, "y": 2.5, "tracked": True}
        assert assembled[1].model_dump() == {"x": None, "y": None, "tracked": False}

    def test_length_mismatch(self):
        """Test that a result count mismatch is a tracking error."""
        from motiontrack.core.errors import TrackingError
        from motiontrack.service.assembler import assemble_tracking

        with pytest.raises(TrackingError):
            assemble_tracking([], 1)


class TestHTTPApi:
    """Tests for the FastAPI application."""

    @pytest.fixture
    def client(self, service):
        from fastapi.testclient import TestClient
        from motiontrack.service.web import create_app
        return TestClient(create_app(service))

    @pytest.fixture
    def cold_client(self, cold_service):
        from fastapi.testclient import TestClient
        from motiontrack.service.web import create_app
        return TestClient(create_app(cold_service))

    @staticmethod
    def _b64(data: bytes) -> str:
        return base64.b64encode(data).decode()

    def test_not_initialized(self, cold_client, png, corner_image):
        """Test 503 before initialization."""
        response = cold_client.post("/api/detect-features", json={
            "imageBytes": self._b64(png(corner_image)), "width": 64, "height": 64,
        })
        assert response.status_code == 503
        assert response.json()["code"] == "NOT_INITIALIZED"

    def test_initialize(self, cold_client):
        """Test the initialize endpoint."""
        response = cold_client.post("/api/initialize")
        assert response.status_code == 200
        assert response.json() == {"initialized": True}

        status = cold_client.get("/api/status").json()
        assert status["backend"]["state"] == "ready"

    def test_detect(self, client, png, corner_image):
        """Test detection over HTTP."""
        response = client.post("/api/detect-features", json={
            "imageBytes": self._b64(png(corner_image)),
            "width": 64,
            "height": 64,
            "maxCorners": 5,
            "minDistance": 1,
        })
        assert response.status_code == 200
        points = response.json()
        assert len(points) == 1
        assert abs(points[0]["x"] - 32) <= 1.0

    def test_track(self, client, png, blob_frame):
        """Test tracking over HTTP."""
        frame = self._b64(png(blob_frame(32, 32)))
        response = client.post("/api/track-optical-flow", json={
            "prevFrame": frame,
            "currFrame": frame,
            "prevPoints": [{"x": 32, "y": 32}, {"x": 2, "y": 2}],
            "width": 64,
            "height": 64,
        })
        assert response.status_code == 200
        body = response.json()
        assert [p["tracked"] for p in body] == [True, False]
        assert body[1]["x"] is None

    def test_invalid_base64(self, client):
        """Test 400 for malformed image data."""
        response = client.post("/api/detect-features", json={
            "imageBytes": "%%% not base64 %%%", "width": 64, "height": 64,
        })
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_ARGS"

    @pytest.mark.parametrize("path", [
        "/api/detect-features",
        "/api/track-optical-flow",
        "/api/call/detectFeatures",
    ])
    def test_non_object_body(self, client, path):
        """Test that a JSON list body is rejected as invalid arguments."""
        response = client.post(path, json=[1, 2])
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_ARGS"

    @pytest.mark.parametrize("path", ["/api/detect-features", "/api/track-optical-flow"])
    def test_missing_body(self, client, path):
        """Test that an absent body is rejected as invalid arguments."""
        response = client.post(path)
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_ARGS"

    def test_missing_body_before_initialization(self, cold_client):
        """Test that readiness is reported before argument problems."""
        response = cold_client.post("/api/track-optical-flow")
        assert response.status_code == 503
        assert response.json()["code"] == "NOT_INITIALIZED"

    def test_error_shape_documented(self, client):
        """Test that the error payload is part of the OpenAPI schema."""
        schema = client.get("/openapi.json").json()
        assert "ErrorResponse" in schema["components"]["schemas"]
        responses = schema["paths"]["/api/detect-features"]["post"]["responses"]
        assert {"400", "503"} <= set(responses)

    def test_malformed_json(self, client):
        """Test that unparseable JSON gets the same error shape."""
        response = client.post(
            "/api/detect-features",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert set(response.json()) == {"code", "message"}

    def test_generic_call(self, client):
        """Test the generic method channel endpoint."""
        response = client.post("/api/call/initializeOpenCV")
        assert response.status_code == 200
        assert response.json() == {"result": True}

        response = client.post("/api/call/doesNotExist", json={})
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_IMPLEMENTED"


class TestCLI:
    """Tests for the command line interface."""

    def test_version(self, capsys):
        from motiontrack import __version__
        from motiontrack.__main__ import main

        assert main(["version"]) == 0
        assert __version__ in capsys.readouterr().out

    def test_detect(self, tmp_path, capsys, png, corner_image):
        """Test the detect command on a PNG file."""
        import json
        from motiontrack.__main__ import main

        path = tmp_path / "corner.png"
        path.write_bytes(png(corner_image))

        assert main(["detect", str(path), "-n", "5", "-d", "1"]) == 0
        points = json.loads(capsys.readouterr().out)
        assert len(points) == 1
        assert abs(points[0]["x"] - 32) <= 1.0

    def test_track_given_points(self, tmp_path, capsys, png, blob_frame):
        """Test the track command with explicit points."""
        import json
        from motiontrack.__main__ import main

        prev = tmp_path / "prev.png"
        curr = tmp_path / "curr.png"
        prev.write_bytes(png(blob_frame(20, 20)))
        curr.write_bytes(png(blob_frame(23, 20)))

        assert main(["track", str(prev), str(curr), "-p", "20,20", "-p", "0,0"]) == 0
        result = json.loads(capsys.readouterr().out)
        assert [p["tracked"] for p in result] == [True, False]
        assert result[0]["x"] == pytest.approx(23.0, abs=0.5)

    def test_commands_share_global_backend(self, tmp_path, capsys, png, corner_image):
        """Test that detect and status both use the process-wide backend."""
        import json
        from motiontrack.__main__ import main
        from motiontrack.core.backend import configure_backend, vision_backend

        path = tmp_path / "corner.png"
        path.write_bytes(png(corner_image))
        configure_backend(reset=True)
        try:
            assert main(["detect", str(path)]) == 0
            assert vision_backend.is_ready
            capsys.readouterr()

            assert main(["status"]) == 0
            assert json.loads(capsys.readouterr().out)["state"] == "ready"
        finally:
            configure_backend(reset=True)

    def test_missing_file(self, tmp_path):
        """Test that an unreadable input fails with exit code 1."""
        from motiontrack.__main__ import main

        assert main(["detect", str(tmp_path / "missing.png")]) == 1

    def test_bad_point(self, tmp_path):
        """Test that malformed -p values are rejected by argparse."""
        from motiontrack.__main__ import main

        with pytest.raises(SystemExit):
            main(["track", "a.png", "b.png", "-p", "nope"])


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
