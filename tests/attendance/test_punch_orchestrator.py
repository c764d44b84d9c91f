from __future__ import annotations

from datetime import datetime

import pytest

from src.attendease.attendease.attendance.model import PunchRequest
from src.attendease.attendease.attendance.punch_service import PunchOrchestrator
from src.attendease.attendease.attendance.service import AttendanceRecordManager
from src.attendease.attendease.core.enums import PunchDirection, PunchState
from src.attendease.attendease.core.exceptions import (
    AlreadyPunchedIn,
    EmployeeNotFound,
    EmployeeNotRegistered,
    EnrollmentMissing,
    FaceMismatch,
    ImageNotFound,
    MustPunchInFirst,
    ValidationError,
)
from src.attendease.attendease.employees.model import Employee
from src.attendease.attendease.faces.model import FaceCandidate
from src.attendease.attendease.faces.service import IdentityResolver

from conftest import FakeRecognition, InMemoryAttendance, InMemoryEmployees


class Setup:
    def __init__(self, storage, now: datetime, *employees: Employee, similarity: float = 99.0, **options):
        self.attendance = InMemoryAttendance()
        self.employees = InMemoryEmployees(*employees)
        self.recognition = FakeRecognition(similarity=similarity)
        self.storage = storage
        self.records = AttendanceRecordManager(self.attendance)
        self.identity = IdentityResolver(self.employees, self.recognition, storage)
        self.orchestrator = PunchOrchestrator(
            self.records,
            self.employees,
            self.identity,
            self.recognition,
            storage,
            clock=lambda: now,
            **options,
        )
        self.today = now.date()

    def today_record(self, emp_id: int):
        return self.attendance.get_for_employee_and_date(emp_id, self.today)


def _request(direction="IN", **overrides) -> PunchRequest:
    fields = dict(direction=direction, latitude="21.0278", longitude="105.8342", address="Gate 1", employee_id=1)
    fields.update(overrides)
    return PunchRequest(**fields)


def test_enrolled_employee_punches_in_with_verification(local_storage, fixed_now, jpeg_bytes):
    s = Setup(
        local_storage,
        fixed_now,
        Employee(2, "E2", face_id="f-2", face_image="local:faces/2/face.jpg"),
        similarity=96.0,
    )

    result = s.orchestrator.submit_punch(
        _request(employee_id=2, photo=jpeg_bytes, require_face_match=True, actor_id="9")
    )

    assert result.record.state is PunchState.PUNCHED_IN
    assert result.face_similarity == 96.0
    assert result.face_threshold == 90.0
    assert result.record.punch_in_time == fixed_now
    assert result.record.punched_in_by == 9
    assert result.record.punch_in_image.startswith("local:attendance/attendance_1_IN_")


def test_missing_enrollment_fails_and_record_stays_empty(local_storage, fixed_now, jpeg_bytes, tmp_path):
    s = Setup(local_storage, fixed_now, Employee(1, "E1"))

    with pytest.raises(EnrollmentMissing):
        s.orchestrator.submit_punch(_request(photo=jpeg_bytes, require_face_match=True))

    assert s.today_record(1).state is PunchState.EMPTY
    assert s.recognition.calls == []
    assert not (tmp_path / "uploads").exists()


def test_face_mismatch_keeps_photo_and_record(local_storage, fixed_now, jpeg_bytes, tmp_path):
    s = Setup(
        local_storage,
        fixed_now,
        Employee(1, "E1", face_id="f-1", face_image="local:faces/1/face.jpg"),
        similarity=42.5,
    )

    with pytest.raises(FaceMismatch) as info:
        s.orchestrator.submit_punch(_request(photo=jpeg_bytes, require_face_match=True))

    assert info.value.similarity == 42.5
    assert info.value.threshold == 90.0
    assert s.today_record(1).state is PunchState.EMPTY
    assert len(list((tmp_path / "uploads" / "attendance").iterdir())) == 1


def test_ordering_error_is_raised_before_storage_or_recognition(local_storage, fixed_now, jpeg_bytes, tmp_path):
    s = Setup(local_storage, fixed_now, Employee(1, "E1", face_id="f-1", face_image="local:faces/1/face.jpg"))

    with pytest.raises(MustPunchInFirst):
        s.orchestrator.submit_punch(_request("OUT", photo=jpeg_bytes, require_face_match=True))

    assert s.recognition.calls == []
    assert not (tmp_path / "uploads").exists()


def test_second_punch_in_is_rejected(local_storage, fixed_now):
    s = Setup(local_storage, fixed_now, Employee(1, "E1"))
    s.orchestrator.submit_punch(_request())

    with pytest.raises(AlreadyPunchedIn):
        s.orchestrator.submit_punch(_request())


def test_punch_out_completes_the_day(local_storage, fixed_now):
    s = Setup(local_storage, fixed_now, Employee(1, "E1"))
    s.orchestrator.submit_punch(_request())

    result = s.orchestrator.submit_punch(_request("out", address="Gate 2"))

    assert result.direction is PunchDirection.OUT
    assert result.record.state is PunchState.COMPLETE
    assert result.record.out_geo.address == "Gate 2"
    assert result.face_similarity is None


def test_punch_against_existing_record_id(local_storage, fixed_now):
    s = Setup(local_storage, fixed_now, Employee(1, "E1"), Employee(2, "E2"))
    record = s.orchestrator.open_day(1)

    result = s.orchestrator.submit_punch(_request(employee_id=None, attendance_id=str(record.attendance_id)))
    assert result.record.attendance_id == record.attendance_id

    with pytest.raises(ValidationError):
        s.orchestrator.submit_punch(_request("OUT", employee_id=2, attendance_id=record.attendance_id))


@pytest.mark.parametrize(
    "overrides",
    [
        {"direction": "SIDEWAYS"},
        {"latitude": "north"},
        {"latitude": "91"},
        {"longitude": "-181"},
        {"address": "  "},
        {"employee_id": "abc"},
        {"photo": b"not an image"},
    ],
)
def test_malformed_requests_are_rejected(local_storage, fixed_now, overrides):
    s = Setup(local_storage, fixed_now, Employee(1, "E1"))
    fields = dict(direction="IN", latitude="21.0", longitude="105.8", address="Gate 1", employee_id=1)
    fields.update(overrides)

    with pytest.raises(ValidationError):
        s.orchestrator.submit_punch(PunchRequest(**fields))

    assert s.today_record(1) is None


def test_photo_required_by_configuration(local_storage, fixed_now):
    s = Setup(local_storage, fixed_now, Employee(1, "E1"), require_photo=True)

    with pytest.raises(ValidationError):
        s.orchestrator.submit_punch(_request())


def test_face_match_required_by_default(local_storage, fixed_now, jpeg_bytes):
    s = Setup(local_storage, fixed_now, Employee(1, "E1"), require_face_match=True)

    with pytest.raises(EnrollmentMissing):
        s.orchestrator.submit_punch(_request(photo=jpeg_bytes))

    result = s.orchestrator.submit_punch(_request(photo=jpeg_bytes, require_face_match=False))
    assert result.record.state is PunchState.PUNCHED_IN


def test_unknown_employee(local_storage, fixed_now):
    s = Setup(local_storage, fixed_now)

    with pytest.raises(EmployeeNotFound):
        s.orchestrator.submit_punch(_request(employee_id=77))


def test_face_punch_resolves_employee_from_photo(local_storage, fixed_now, jpeg_bytes):
    s = Setup(local_storage, fixed_now, Employee(12, "Lan"))
    s.recognition.candidate = FaceCandidate(face_id="f-12", external_id="12", similarity=97.25)

    result = s.orchestrator.submit_face_punch(_request(employee_id=None, photo=jpeg_bytes))

    assert result.employee_name == "Lan"
    assert result.record.emp_id == 12
    assert result.face_similarity == 97.25
    assert result.face_threshold == 90.0
    assert s.employees.get_by_id(12).face_id == "f-12"


def test_face_punch_without_match(local_storage, fixed_now, jpeg_bytes):
    s = Setup(local_storage, fixed_now, Employee(12, "Lan"))

    with pytest.raises(EmployeeNotRegistered):
        s.orchestrator.submit_face_punch(_request(employee_id=None, photo=jpeg_bytes))


def test_face_punch_needs_a_photo(local_storage, fixed_now):
    s = Setup(local_storage, fixed_now, Employee(12, "Lan"))

    with pytest.raises(ValidationError):
        s.orchestrator.submit_face_punch(_request(employee_id=None))


def test_open_day_is_idempotent(local_storage, fixed_now):
    s = Setup(local_storage, fixed_now, Employee(1, "E1"))

    first = s.orchestrator.open_day("1")
    second = s.orchestrator.open_day(1)

    assert first == second
    assert first.work_date == fixed_now.date()
    assert s.attendance.inserts == 1


def test_fetch_punch_image_round_trip(local_storage, fixed_now, jpeg_bytes):
    s = Setup(local_storage, fixed_now, Employee(1, "E1"))
    result = s.orchestrator.submit_punch(_request(photo=jpeg_bytes))

    stream = s.orchestrator.fetch_punch_image(result.record.attendance_id, "in")

    assert stream.content_type == "image/jpeg"
    assert stream.read() == jpeg_bytes
    with pytest.raises(ImageNotFound):
        s.orchestrator.fetch_punch_image(result.record.attendance_id, "OUT")
