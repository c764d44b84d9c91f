from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from ..core.enums import PunchDirection
from ..core.exceptions import (
    AlreadyPunchedIn,
    AlreadyPunchedOut,
    AttendanceNotFound,
    DuplicateRecord,
    InternalError,
    MustPunchInFirst,
)
from .model import AttendanceRecord, GeoPoint
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)


def check_punch_allowed(record: AttendanceRecord, direction: PunchDirection) -> None:
    """Raise the ordering error for a punch the record's state does not allow.

    EMPTY --IN--> PUNCHED_IN --OUT--> COMPLETE; nothing leaves COMPLETE.
    """
    if direction is PunchDirection.IN:
        if record.punch_in_time is not None:
            raise AlreadyPunchedIn()
        return

    if record.punch_out_time is not None:
        raise AlreadyPunchedOut()
    if record.punch_in_time is None:
        raise MustPunchInFirst()


class AttendanceRecordManager:
    """Owns the daily attendance record: lookup-or-create and the two punches."""

    def __init__(self, attendance: AttendanceRepository):
        self._attendance = attendance

    def get(self, attendance_id: int) -> AttendanceRecord:
        record = self._attendance.get_by_id(attendance_id)
        if not record:
            raise AttendanceNotFound()
        return record

    def get_or_create(self, emp_id: int, work_date: date) -> AttendanceRecord:
        record = self._attendance.get_for_employee_and_date(emp_id, work_date)
        if record:
            return record

        try:
            self._attendance.create_empty(emp_id=emp_id, work_date=work_date)
        except DuplicateRecord:
            # A concurrent first punch created the row between our read and insert.
            logger.debug("Attendance for employee %s on %s created concurrently", emp_id, work_date)

        record = self._attendance.get_for_employee_and_date(emp_id, work_date)
        if not record:
            raise InternalError("Attendance record could not be created")
        return record

    def apply_punch(
        self,
        attendance_id: int,
        direction: PunchDirection,
        *,
        image: Optional[str],
        geo: GeoPoint,
        actor_id: Optional[int],
        punched_at: datetime,
    ) -> AttendanceRecord:
        mark = self._attendance.mark_punch_in if direction is PunchDirection.IN else self._attendance.mark_punch_out
        applied = mark(
            attendance_id=attendance_id,
            punched_at=punched_at,
            image=image,
            geo=geo,
            actor_id=actor_id,
        )

        current = self.get(attendance_id)
        if not applied:
            # Lost a race (or the caller skipped the pre-check): report why.
            check_punch_allowed(current, direction)
            raise InternalError("Attendance update failed")
        return current
