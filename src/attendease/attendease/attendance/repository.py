from __future__ import annotations

from datetime import date, datetime
from typing import Optional, Protocol

from .model import AttendanceRecord, GeoPoint


class AttendanceRepository(Protocol):
    def get_by_id(self, attendance_id: int) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def get_for_employee_and_date(self, emp_id: int, work_date: date) -> Optional[AttendanceRecord]:
        raise NotImplementedError

    def create_empty(self, *, emp_id: int, work_date: date) -> int:
        """Insert a record with no punches. Raises DuplicateRecord if one exists."""

        raise NotImplementedError

    def mark_punch_in(
        self,
        *,
        attendance_id: int,
        punched_at: datetime,
        image: Optional[str],
        geo: GeoPoint,
        actor_id: Optional[int],
    ) -> bool:
        """Conditional update: only applies while punch_in_time IS NULL."""

        raise NotImplementedError

    def mark_punch_out(
        self,
        *,
        attendance_id: int,
        punched_at: datetime,
        image: Optional[str],
        geo: GeoPoint,
        actor_id: Optional[int],
    ) -> bool:
        """Conditional update: only applies after punch-in and while punch_out_time IS NULL."""

        raise NotImplementedError
