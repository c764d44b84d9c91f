from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from ..common.boundary import domain_boundary
from ..common.datetime_utils import now_local
from ..common.validators import (
    detect_image_content_type,
    optional_int,
    require_coordinate,
    require_int,
    require_non_empty,
)
from ..core.constants import ATTENDANCE_PREFIX, DEFAULT_FACE_MATCH_THRESHOLD, DEFAULT_TIMEZONE
from ..core.enums import PunchDirection
from ..core.exceptions import EmployeeNotFound, EnrollmentMissing, FaceMismatch, ImageNotFound, ValidationError
from ..employees.model import Employee
from ..employees.repository import EmployeeRepository
from ..faces.model import FaceCandidate
from ..faces.recognition_client import FaceRecognitionClient
from ..faces.service import IdentityResolver
from ..storage.gateway import ObjectStorageGateway
from ..storage.model import ImageStream
from .model import AttendanceRecord, GeoPoint, PunchRequest, PunchResult
from .service import AttendanceRecordManager, check_punch_allowed

logger = logging.getLogger(__name__)


def parse_direction(value) -> PunchDirection:
    if isinstance(value, PunchDirection):
        return value
    try:
        return PunchDirection(str(value or "").strip().upper())
    except ValueError:
        raise ValidationError("punch_type must be IN or OUT") from None


class PunchOrchestrator:
    """Services one punch end to end.

    The record's state is checked before any photo is stored or any face is
    compared; the conditional update in the record manager stays the only
    ordering authority. A photo stored before a later failure is kept.
    """

    def __init__(
        self,
        records: AttendanceRecordManager,
        employees: EmployeeRepository,
        identity: IdentityResolver,
        recognition: FaceRecognitionClient,
        storage: ObjectStorageGateway,
        *,
        face_threshold: float = DEFAULT_FACE_MATCH_THRESHOLD,
        require_face_match: bool = False,
        require_photo: bool = False,
        timezone: str = DEFAULT_TIMEZONE,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._records = records
        self._employees = employees
        self._identity = identity
        self._recognition = recognition
        self._storage = storage
        self._face_threshold = float(face_threshold)
        self._require_face_match = require_face_match
        self._require_photo = require_photo
        self._clock = clock or (lambda: now_local(timezone))

    def _require_employee(self, employee_id) -> Employee:
        employee = self._employees.get_by_id(require_int(employee_id, "emp_id"))
        if not employee:
            raise EmployeeNotFound()
        return employee

    @staticmethod
    def _validate_geo(request: PunchRequest) -> GeoPoint:
        return GeoPoint(
            latitude=require_coordinate(request.latitude, "latitude", limit=90),
            longitude=require_coordinate(request.longitude, "longitude", limit=180),
            address=require_non_empty(request.address, "address"),
        )

    def _photo_content_type(self, request: PunchRequest, *, required: bool) -> Optional[str]:
        if not request.photo:
            if required:
                raise ValidationError("Photo is required for this punch")
            return None
        return detect_image_content_type(request.photo, "image")

    @domain_boundary
    def open_day(self, employee_id) -> AttendanceRecord:
        """Today's record for the employee, created on first access."""
        employee = self._require_employee(employee_id)
        return self._records.get_or_create(employee.emp_id, self._clock().date())

    @domain_boundary
    def submit_punch(self, request: PunchRequest) -> PunchResult:
        direction = parse_direction(request.direction)
        geo = self._validate_geo(request)
        actor_id = optional_int(request.actor_id, "userId")
        verify = self._require_face_match if request.require_face_match is None else bool(request.require_face_match)
        content_type = self._photo_content_type(request, required=verify or self._require_photo)

        record = None
        employee_id = optional_int(request.employee_id, "emp_id")
        attendance_id = optional_int(request.attendance_id, "attendance_id")
        if attendance_id is not None:
            record = self._records.get(attendance_id)
            if employee_id is not None and employee_id != record.emp_id:
                raise ValidationError("Attendance record belongs to another employee")
            employee_id = record.emp_id

        employee = self._require_employee(employee_id)
        return self._punch(employee, direction, geo, request.photo, content_type, actor_id, verify=verify, record=record)

    @domain_boundary
    def submit_face_punch(self, request: PunchRequest) -> PunchResult:
        """Punch for whoever is in the photo, found by searching the face collection."""
        direction = parse_direction(request.direction)
        geo = self._validate_geo(request)
        actor_id = optional_int(request.actor_id, "userId")
        content_type = self._photo_content_type(request, required=True)
        caller_id = optional_int(request.employee_id, "emp_id")

        employee, candidate = self._identity.identify(request.photo, caller_employee_id=caller_id)
        return self._punch(
            employee, direction, geo, request.photo, content_type, actor_id, verify=False, identified_by=candidate
        )

    def _punch(
        self,
        employee: Employee,
        direction: PunchDirection,
        geo: GeoPoint,
        photo: Optional[bytes],
        content_type: Optional[str],
        actor_id: Optional[int],
        *,
        verify: bool,
        identified_by: Optional[FaceCandidate] = None,
        record: Optional[AttendanceRecord] = None,
    ) -> PunchResult:
        now = self._clock()
        if record is None:
            record = self._records.get_or_create(employee.emp_id, now.date())
        check_punch_allowed(record, direction)

        enrollment_ref = None
        if verify:
            enrollment_ref = self._storage.parse_reference(employee.face_image)
            if enrollment_ref is None:
                raise EnrollmentMissing()

        photo_ref = None
        if photo:
            name = f"{ATTENDANCE_PREFIX}/attendance_{record.attendance_id}_{direction.value}_{uuid.uuid4().hex[:12]}"
            photo_ref = self._storage.store(photo, name, content_type)

        similarity = threshold = None
        if verify:
            match = self._recognition.compare_faces(enrollment_ref, photo_ref, self._face_threshold)
            if not match.matched:
                logger.info(
                    "Face mismatch for employee %s: similarity %.2f below %.2f (photo kept for audit)",
                    employee.emp_id,
                    match.similarity,
                    match.threshold,
                )
                raise FaceMismatch(similarity=round(match.similarity, 2), threshold=match.threshold)
            similarity, threshold = match.similarity, match.threshold
        elif identified_by is not None:
            similarity, threshold = identified_by.similarity, self._recognition.search_threshold

        updated = self._records.apply_punch(
            record.attendance_id,
            direction,
            image=photo_ref.serialize() if photo_ref else None,
            geo=geo,
            actor_id=actor_id,
            punched_at=now,
        )
        return PunchResult(
            record=updated,
            direction=direction,
            employee_name=employee.name,
            face_similarity=similarity,
            face_threshold=threshold,
        )

    @domain_boundary
    def fetch_punch_image(self, attendance_id, direction) -> ImageStream:
        record = self._records.get(require_int(attendance_id, "attendance_id"))
        ref = self._storage.parse_reference(record.image_for(parse_direction(direction)))
        if ref is None:
            raise ImageNotFound()
        return self._storage.resolve(ref)
