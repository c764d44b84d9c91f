from __future__ import annotations

import io
import threading
from dataclasses import replace
from datetime import date, datetime
from typing import Optional

import pytest
import requests
from PIL import Image

from src.attendease.attendease.attendance.model import AttendanceRecord, GeoPoint
from src.attendease.attendease.core.exceptions import DuplicateRecord
from src.attendease.attendease.employees.model import Employee
from src.attendease.attendease.faces.model import FaceCandidate, FaceMatchResult, IndexedFace
from src.attendease.attendease.storage.backends.b2_backend import B2_AUTHORIZE_URL
from src.attendease.attendease.storage.backends.local_backend import LocalBackend
from src.attendease.attendease.storage.gateway import ObjectStorageGateway


def make_image(fmt: str = "JPEG", color=(200, 120, 80)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (8, 8), color).save(buf, format=fmt)
    return buf.getvalue()


class InMemoryEmployees:
    """Mirrors the conditional updates of the MySQL repository, guarded by a lock."""

    def __init__(self, *employees: Employee):
        self._lock = threading.Lock()
        self._by_id: dict[int, Employee] = {e.emp_id: e for e in employees}

    def get_by_id(self, emp_id: int) -> Optional[Employee]:
        return self._by_id.get(int(emp_id))

    def get_by_face_id(self, face_id: str) -> Optional[Employee]:
        return next((e for e in list(self._by_id.values()) if e.face_id == face_id), None)

    def _face_taken(self, emp_id: int, face_id: str) -> bool:
        return any(e.face_id == face_id and e.emp_id != emp_id for e in self._by_id.values())

    def link_face_id(self, emp_id: int, face_id: str) -> bool:
        with self._lock:
            emp = self._by_id.get(emp_id)
            if not emp or emp.face_id is not None or self._face_taken(emp_id, face_id):
                return False
            self._by_id[emp_id] = replace(emp, face_id=face_id)
            return True

    def save_enrollment(self, *, emp_id: int, face_id: str, face_image: str, confidence: float) -> bool:
        with self._lock:
            emp = self._by_id.get(emp_id)
            if not emp or emp.face_id is not None or emp.face_image is not None:
                return False
            if self._face_taken(emp_id, face_id):
                raise DuplicateRecord()
            self._by_id[emp_id] = replace(emp, face_id=face_id, face_image=face_image, face_confidence=confidence)
            return True

    def clear_enrollment(self, emp_id: int) -> bool:
        with self._lock:
            emp = self._by_id.get(emp_id)
            if not emp:
                return False
            self._by_id[emp_id] = replace(emp, face_id=None, face_image=None, face_confidence=None)
            return True


class InMemoryAttendance:
    """Unique (emp_id, work_date) plus the two conditional punch updates."""

    def __init__(self):
        self._lock = threading.Lock()
        self._rows: dict[int, AttendanceRecord] = {}
        self._next_id = 0
        self.inserts = 0

    def get_by_id(self, attendance_id: int) -> Optional[AttendanceRecord]:
        return self._rows.get(int(attendance_id))

    def get_for_employee_and_date(self, emp_id: int, work_date: date) -> Optional[AttendanceRecord]:
        return next((r for r in list(self._rows.values()) if r.emp_id == emp_id and r.work_date == work_date), None)

    def create_empty(self, *, emp_id: int, work_date: date) -> int:
        with self._lock:
            if self.get_for_employee_and_date(emp_id, work_date):
                raise DuplicateRecord()
            self._next_id += 1
            self._rows[self._next_id] = AttendanceRecord(attendance_id=self._next_id, emp_id=emp_id, work_date=work_date)
            self.inserts += 1
            return self._next_id

    def mark_punch_in(self, *, attendance_id, punched_at, image, geo: GeoPoint, actor_id) -> bool:
        with self._lock:
            rec = self._rows.get(attendance_id)
            if not rec or rec.punch_in_time is not None:
                return False
            self._rows[attendance_id] = replace(
                rec, punch_in_time=punched_at, punch_in_image=image, in_geo=geo, punched_in_by=actor_id
            )
            return True

    def mark_punch_out(self, *, attendance_id, punched_at, image, geo: GeoPoint, actor_id) -> bool:
        with self._lock:
            rec = self._rows.get(attendance_id)
            if not rec or rec.punch_in_time is None or rec.punch_out_time is not None:
                return False
            self._rows[attendance_id] = replace(
                rec, punch_out_time=punched_at, punch_out_image=image, out_geo=geo, punched_out_by=actor_id
            )
            return True


class FakeResponse:
    def __init__(self, status: int = 200, payload=None, body: bytes = b"", headers=None):
        self.status_code = status
        self._payload = payload or {}
        self.raw = io.BytesIO(body)
        self.headers = headers or {}

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code}", response=self)


class FakeB2Session:
    """Answers the native B2 calls and records every request."""

    def __init__(self, *, upload_status: int = 200):
        self.calls: list[tuple[str, str, dict]] = []
        self.upload_status = upload_status

    @property
    def authorizations(self) -> int:
        return sum(1 for _, url, _ in self.calls if url == B2_AUTHORIZE_URL)

    def get(self, url, **kwargs):
        self.calls.append(("GET", url, kwargs))
        if url == B2_AUTHORIZE_URL:
            return FakeResponse(payload={"apiUrl": "https://api005.backblazeb2.com", "authorizationToken": "acct"})
        return FakeResponse(body=b"image-bytes", headers={"Content-Type": "image/png"})

    def post(self, url, **kwargs):
        self.calls.append(("POST", url, kwargs))
        if url.endswith("/b2_get_upload_url"):
            return FakeResponse(payload={"uploadUrl": "https://pod.backblazeb2.com/upload", "authorizationToken": "up"})
        if url.endswith("/upload"):
            return FakeResponse(status=self.upload_status)
        return FakeResponse()

    def head(self, url, **kwargs):
        self.calls.append(("HEAD", url, kwargs))
        return FakeResponse(status=404)


class FakeRecognition:
    """Stand-in for FaceRecognitionClient with scripted answers and a call log."""

    def __init__(self, *, similarity: float = 99.0, candidate: Optional[FaceCandidate] = None):
        self.similarity = similarity
        self.candidate = candidate
        self.search_threshold = 90.0
        self.calls: list[str] = []
        self.indexed: list[str] = []
        self.deleted: list[str] = []
        self.index_error: Optional[Exception] = None
        self._next_face = 0

    def compare_faces(self, source, target, similarity_threshold: float) -> FaceMatchResult:
        self.calls.append("compare_faces")
        return FaceMatchResult(
            similarity=self.similarity,
            matched=self.similarity >= similarity_threshold,
            threshold=similarity_threshold,
        )

    def search_face(self, image, *, max_candidates: int = 1, match_threshold=None) -> Optional[FaceCandidate]:
        self.calls.append("search_face")
        return self.candidate

    def index_face(self, image, external_id: str) -> IndexedFace:
        self.calls.append("index_face")
        if self.index_error is not None:
            raise self.index_error
        self._next_face += 1
        face_id = f"face-{self._next_face}"
        self.indexed.append(face_id)
        return IndexedFace(face_id=face_id, confidence=99.5)

    def delete_faces(self, face_ids) -> None:
        self.calls.append("delete_faces")
        self.deleted.extend(face_ids)


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_image()


@pytest.fixture
def local_storage(tmp_path) -> ObjectStorageGateway:
    return ObjectStorageGateway([LocalBackend(tmp_path / "uploads")])


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 2, 2, 9, 15, 0)
