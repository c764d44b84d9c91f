from __future__ import annotations

import io
from datetime import datetime

import pytest

from src.attendease.attendease.attendance.punch_service import PunchOrchestrator
from src.attendease.attendease.attendance.service import AttendanceRecordManager
from src.attendease.attendease.common.http_errors import status_for
from src.attendease.attendease.container import Container
from src.attendease.attendease.core import exceptions as exc
from src.attendease.attendease.employees.model import Employee
from src.attendease.attendease.faces.service import IdentityResolver
from src.attendease.attendease.main import create_app

from conftest import FakeRecognition, InMemoryAttendance, InMemoryEmployees


@pytest.fixture
def api(local_storage, jpeg_bytes, monkeypatch):
    monkeypatch.setenv("APP_ENV", "testing")
    employees = InMemoryEmployees(Employee(1, "An", emp_code="E001"), Employee(2, "Binh"))
    attendance = InMemoryAttendance()
    recognition = FakeRecognition(similarity=50.0)
    records = AttendanceRecordManager(attendance)
    identity = IdentityResolver(employees, recognition, local_storage)
    container = Container(
        conn=None,
        employees_repo=employees,
        attendance_repo=attendance,
        storage=local_storage,
        recognition_client=recognition,
        records=records,
        identity_resolver=identity,
        punch_orchestrator=PunchOrchestrator(
            records,
            employees,
            identity,
            recognition,
            local_storage,
            clock=lambda: datetime(2026, 2, 2, 8, 30),
        ),
    )
    app = create_app(container)
    return app.test_client()


def _punch_form(jpeg_bytes, **extra) -> dict:
    form = {
        "emp_id": "1",
        "punch_type": "IN",
        "latitude": "21.0278",
        "longitude": "105.8342",
        "address": "Gate 1",
        "image": (io.BytesIO(jpeg_bytes), "photo.jpg"),
    }
    form.update(extra)
    return form


@pytest.mark.parametrize(
    "error, status",
    [
        (exc.ValidationError(), 400),
        (exc.MustPunchInFirst(), 409),
        (exc.AlreadyPunchedOut(), 409),
        (exc.EmployeeNotFound(), 404),
        (exc.FaceMismatch(similarity=40.0, threshold=90.0), 401),
        (exc.NoFaceDetected(), 422),
        (exc.RateLimited(), 429),
        (exc.RecognitionServiceUnavailable(), 503),
        (exc.StorageUnavailable(backend="local"), 503),
        (exc.InternalError(), 500),
    ],
)
def test_status_for_error_kinds(error, status):
    assert status_for(error) == status


def test_open_day_then_punch_in_and_fetch_image(api, jpeg_bytes):
    opened = api.post("/attendance", json={"emp_id": 1})
    assert opened.status_code == 200
    assert opened.get_json()["state"] == "EMPTY"

    resp = api.put("/attendance", data=_punch_form(jpeg_bytes), content_type="multipart/form-data")
    body = resp.get_json()
    assert resp.status_code == 200
    assert body["attendance"]["state"] == "PUNCHED_IN"
    assert body["attendance"]["punch_in_image"].startswith("/uploads/attendance/attendance_")

    image = api.get(f"/attendance/image?attendance_id={body['attendance']['attendance_id']}&punch_type=IN")
    assert image.status_code == 200
    assert image.mimetype == "image/jpeg"
    assert image.data == jpeg_bytes

    served = api.get(body["attendance"]["punch_in_image"])
    assert served.status_code == 200
    assert served.data == jpeg_bytes


def test_ordering_errors_map_to_conflict(api, jpeg_bytes):
    resp = api.put("/attendance", data=_punch_form(jpeg_bytes, punch_type="OUT"), content_type="multipart/form-data")

    assert resp.status_code == 409
    assert resp.get_json()["code"] == "MUST_PUNCH_IN_FIRST"
    assert resp.get_json()["retryable"] is False


def test_missing_enrollment_has_actionable_hint(api, jpeg_bytes):
    resp = api.put(
        "/attendance",
        data=_punch_form(jpeg_bytes, require_face_match="true"),
        content_type="multipart/form-data",
    )

    assert resp.status_code == 404
    body = resp.get_json()
    assert body["code"] == "ENROLLMENT_MISSING"
    assert "Capture the employee's face" in body["hint"]


def test_face_mismatch_reports_similarity(api, jpeg_bytes):
    assert api.post(
        "/faces/store-face",
        data={"emp_id": "1", "image": (io.BytesIO(jpeg_bytes), "face.jpg")},
        content_type="multipart/form-data",
    ).status_code == 200

    resp = api.put(
        "/attendance",
        data=_punch_form(jpeg_bytes, require_face_match="1"),
        content_type="multipart/form-data",
    )

    assert resp.status_code == 401
    body = resp.get_json()
    assert body["code"] == "FACE_MISMATCH"
    assert body["similarity"] == 50.0
    assert body["threshold"] == 90.0


def test_face_endpoints(api, jpeg_bytes):
    assert api.get("/faces/1").status_code == 404

    stored = api.post(
        "/faces/store-face",
        data={"employeeId": "1", "image": (io.BytesIO(jpeg_bytes), "face.jpg")},
        content_type="multipart/form-data",
    )
    assert stored.status_code == 200
    assert stored.get_json()["faceId"] == "face-1"

    again = api.post(
        "/faces/store-face",
        data={"emp_id": "1", "image": (io.BytesIO(jpeg_bytes), "face.jpg")},
        content_type="multipart/form-data",
    )
    assert again.status_code == 409
    assert again.get_json()["face"]["faceId"] == "face-1"
    assert again.get_json()["face"]["imageUrl"] == stored.get_json()["imageUrl"]

    face = api.get("/faces/1").get_json()["face"]
    assert face["employeeCode"] == "E001"
    assert face["imageExists"] is True

    assert api.delete("/faces/1").status_code == 200
    assert api.get("/faces/1").status_code == 404


def test_store_face_requires_identifier_and_file(api, jpeg_bytes):
    assert api.post("/faces/store-face", data={}, content_type="multipart/form-data").status_code == 400
    assert api.post("/faces/store-face", data={"emp_id": "1"}, content_type="multipart/form-data").status_code == 400


def test_face_attendance_without_match(api, jpeg_bytes):
    form = _punch_form(jpeg_bytes)
    form.pop("emp_id")

    resp = api.post("/attendance/face-attendance", data=form, content_type="multipart/form-data")

    assert resp.status_code == 401
    assert resp.get_json()["code"] == "EMPLOYEE_NOT_REGISTERED"


def test_unknown_employee_is_not_found(api):
    resp = api.post("/attendance", json={"emp_id": 99})

    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Employee not found", "code": "EMPLOYEE_NOT_FOUND", "retryable": False}


def test_face_gallery_lists_stored_faces(api, jpeg_bytes):
    assert api.get("/faces/gallery").get_json() == {"success": True, "prefix": "faces/", "count": 0, "images": []}

    api.post(
        "/faces/store-face",
        data={"emp_id": "2", "image": (io.BytesIO(jpeg_bytes), "face.jpg")},
        content_type="multipart/form-data",
    )

    body = api.get("/faces/gallery?maxKeys=5000").get_json()
    assert body["count"] == 1
    image = body["images"][0]
    assert image["identifier"] == "2"
    assert image["employeeId"] == 2
    assert image["url"] == f"/uploads/{image['key']}"
    assert image["lastModified"]

    assert api.get("/faces/gallery?prefix=../etc").status_code == 400
