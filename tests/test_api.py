"""
API Endpoint Tests

Exercises the HTTP contract of /predict, /health and / against tiny
in-process models.
"""
import re
import threading
import uuid

import pytest
from fastapi.testclient import TestClient

from src.backend.errors import MalformedUpload
from src.backend.lifecycle import ModelManager
from src.backend.main import create_app
from src.backend.upload import UploadValidator

from conftest import ConstantModel, FailingModel, image_bytes, make_handle, make_ready_manager

SIZE_LIMIT_MESSAGE = "Payload content length greater than maximum allowed: 1000000"


def upload(data, filename="lesion.jpg", content_type="image/jpeg"):
    return {"image": (filename, data, content_type)}


# =========================================================================
# Success
# =========================================================================

def test_predict_returns_success_envelope(mean_model_client, jpeg_bytes):
    response = mean_model_client.post("/predict", files=upload(jpeg_bytes))
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("application/json")

    body = response.json()
    assert body["status"] == "success"
    assert body["message"] == "Model is predicted successfully"
    data = body["data"]
    assert data["result"] in ("Cancer", "Non-cancer")
    assert data["suggestion"] == "Consult a specialist"
    assert uuid.UUID(data["id"])
    assert re.match(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z$", data["createdAt"])


def test_dark_image_is_non_cancer(mean_model_client, dark_jpeg):
    response = mean_model_client.post("/predict", files=upload(dark_jpeg))
    assert response.status_code == 200
    assert response.json()["data"]["result"] == "Non-cancer"


def test_bright_image_is_cancer(mean_model_client, bright_jpeg):
    response = mean_model_client.post("/predict", files=upload(bright_jpeg))
    assert response.status_code == 200
    assert response.json()["data"]["result"] == "Cancer"


def test_same_image_twice_gives_same_label_new_id(mean_model_client, bright_jpeg):
    first = mean_model_client.post("/predict", files=upload(bright_jpeg)).json()["data"]
    second = mean_model_client.post("/predict", files=upload(bright_jpeg)).json()["data"]
    assert first["result"] == second["result"]
    assert first["id"] != second["id"]


def test_output_of_exactly_half_is_non_cancer(jpeg_bytes):
    app = create_app(make_ready_manager(ConstantModel(0.5)))
    with TestClient(app) as client:
        response = client.post("/predict", files=upload(jpeg_bytes))
    assert response.status_code == 200
    assert response.json()["data"]["result"] == "Non-cancer"


def test_png_with_jpeg_filename_is_accepted(mean_model_client):
    data = image_bytes(mode="RGBA", fmt="PNG", color=(250, 250, 250, 0))
    response = mean_model_client.post("/predict", files=upload(data, filename="photo.jpg"))
    assert response.status_code == 200
    assert response.json()["data"]["result"] == "Cancer"


# =========================================================================
# Upload validation
# =========================================================================

def test_missing_file_returns_400(mean_model_client):
    response = mean_model_client.post("/predict", data={"note": "no file here"})
    assert response.status_code == 400
    assert response.json() == {"status": "fail", "message": "No image file provided"}


def test_empty_body_returns_400(mean_model_client):
    response = mean_model_client.post("/predict")
    assert response.status_code == 400
    assert response.json()["status"] == "fail"


def test_two_image_files_return_400(mean_model_client, jpeg_bytes):
    files = [
        ("image", ("a.jpg", jpeg_bytes, "image/jpeg")),
        ("image", ("b.jpg", jpeg_bytes, "image/jpeg")),
    ]
    response = mean_model_client.post("/predict", files=files)
    assert response.status_code == 400
    assert response.json()["status"] == "fail"


def test_file_under_other_field_returns_400(mean_model_client, jpeg_bytes):
    response = mean_model_client.post("/predict", files={"photo": ("a.jpg", jpeg_bytes, "image/jpeg")})
    assert response.status_code == 400
    assert response.json() == {"status": "fail", "message": "Unexpected field"}


def test_multipart_without_boundary_returns_400(mean_model_client):
    response = mean_model_client.post(
        "/predict",
        content=b"garbage",
        headers={"content-type": "multipart/form-data"},
    )
    assert response.status_code == 400
    assert response.json()["status"] == "fail"


def test_file_over_limit_returns_413(mean_model_client):
    response = mean_model_client.post("/predict", files=upload(b"\xff" * 1_000_001))
    assert response.status_code == 413
    assert response.json() == {"status": "fail", "message": SIZE_LIMIT_MESSAGE}


def test_two_megabyte_upload_returns_413(mean_model_client, jpeg_bytes):
    data = jpeg_bytes + b"\x00" * 2_000_000
    response = mean_model_client.post("/predict", files=upload(data))
    assert response.status_code == 413
    assert response.json() == {"status": "fail", "message": SIZE_LIMIT_MESSAGE}


def test_image_under_limit_with_extra_text_field_succeeds(mean_model_client):
    png = image_bytes(fmt="PNG", color=(250, 250, 250))
    # Trailing bytes after IEND are ignored by the decoder
    padded = png + b"\x00" * (990_000 - len(png))
    response = mean_model_client.post(
        "/predict",
        files=upload(padded, filename="lesion.png", content_type="image/png"),
        data={"note": "n" * 30_000},
    )
    assert response.status_code == 200
    assert response.json()["data"]["result"] == "Cancer"


def test_file_at_limit_is_not_rejected_for_size(mean_model_client):
    response = mean_model_client.post("/predict", files=upload(b"x" * 1_000_000))
    assert response.status_code == 500
    assert response.json() == {"status": "fail", "message": "Error in prediction"}


# =========================================================================
# Decode and inference failures
# =========================================================================

def test_text_file_named_as_image_returns_500(mean_model_client):
    response = mean_model_client.post(
        "/predict",
        files=upload(b"just some notes, not pixels", filename="lesion.jpg"),
    )
    assert response.status_code == 500
    assert response.json() == {"status": "fail", "message": "Error in prediction"}


def test_forward_pass_error_returns_500(jpeg_bytes):
    app = create_app(make_ready_manager(FailingModel()))
    with TestClient(app) as client:
        response = client.post("/predict", files=upload(jpeg_bytes))
        assert response.status_code == 500
        assert response.json() == {"status": "fail", "message": "Error in prediction"}

        # The service keeps serving after a failed prediction
        assert client.get("/health").status_code == 200


def test_unexpected_error_returns_500(jpeg_bytes):
    class BrokenValidator(UploadValidator):
        async def validate(self, request):
            raise KeyError("boom")

    app = create_app(make_ready_manager(ConstantModel(0.1)), validator=BrokenValidator())
    with TestClient(app) as client:
        response = client.post("/predict", files=upload(jpeg_bytes))
    assert response.status_code == 500
    assert response.json() == {"status": "fail", "message": "Error in prediction"}


def test_validator_error_message_is_passed_through(jpeg_bytes):
    class RejectingValidator(UploadValidator):
        async def validate(self, request):
            raise MalformedUpload("Unexpected end of form")

    app = create_app(make_ready_manager(ConstantModel(0.1)), validator=RejectingValidator())
    with TestClient(app) as client:
        response = client.post("/predict", files=upload(jpeg_bytes))
    assert response.status_code == 400
    assert response.json() == {"status": "fail", "message": "Unexpected end of form"}


# =========================================================================
# Model readiness
# =========================================================================

def test_predict_before_model_is_loaded(jpeg_bytes):
    gate = threading.Event()
    handle = make_handle(ConstantModel(0.9))
    manager = ModelManager(lambda: gate.wait(10) and handle)
    app = create_app(manager)

    with TestClient(app) as client:
        try:
            health = client.get("/health")
            assert health.status_code == 503
            assert health.json()["status"] == "degraded"

            response = client.post("/predict", files=upload(jpeg_bytes))
            assert response.status_code == 500
            assert response.json() == {"status": "fail", "message": "Error in prediction"}
        finally:
            gate.set()

        assert manager.wait(10) is True
        response = client.post("/predict", files=upload(jpeg_bytes))
        assert response.status_code == 200
        assert response.json()["data"]["result"] == "Cancer"
        assert client.get("/health").status_code == 200


def test_failed_model_load_keeps_serving(jpeg_bytes):
    def loader():
        raise FileNotFoundError("Model file not found: models/best_model.pth")

    manager = ModelManager(loader)
    app = create_app(manager)

    with TestClient(app) as client:
        assert manager.wait(10) is True

        health = client.get("/health")
        assert health.status_code == 503
        assert health.json()["status"] == "unavailable"

        for _ in range(2):
            response = client.post("/predict", files=upload(jpeg_bytes))
            assert response.status_code == 500
            assert response.json() == {"status": "fail", "message": "Error in prediction"}


def test_root_reports_model_status(mean_model_client):
    body = mean_model_client.get("/").json()
    assert body["model_status"] == "ready"
    assert body["endpoints"]["predict"] == "/predict"


def test_get_on_predict_is_not_allowed(mean_model_client):
    assert mean_model_client.get("/predict").status_code == 405
