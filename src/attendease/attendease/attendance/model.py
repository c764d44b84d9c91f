from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Optional

from ..core.enums import PunchDirection, PunchState


@dataclass(frozen=True)
class GeoPoint:
    latitude: float
    longitude: float
    address: str


@dataclass(frozen=True)
class AttendanceRecord:
    """Thực thể miền (domain): bản ghi chấm công của một nhân viên trong một ngày."""

    attendance_id: int
    emp_id: int
    work_date: date
    punch_in_time: Optional[datetime] = None
    punch_out_time: Optional[datetime] = None
    punch_in_image: Optional[str] = None
    punch_out_image: Optional[str] = None
    in_geo: Optional[GeoPoint] = None
    out_geo: Optional[GeoPoint] = None
    punched_in_by: Optional[int] = None
    punched_out_by: Optional[int] = None

    @property
    def state(self) -> PunchState:
        if self.punch_in_time is None:
            return PunchState.EMPTY
        if self.punch_out_time is None:
            return PunchState.PUNCHED_IN
        return PunchState.COMPLETE

    @property
    def duration(self) -> Optional[timedelta]:
        if self.punch_in_time is None or self.punch_out_time is None:
            return None
        return self.punch_out_time - self.punch_in_time

    def image_for(self, direction: PunchDirection) -> Optional[str]:
        return self.punch_in_image if direction is PunchDirection.IN else self.punch_out_image


@dataclass(frozen=True)
class PunchRequest:
    """Punch as delivered by the routing layer; fields are validated by the orchestrator."""

    direction: Any
    latitude: Any
    longitude: Any
    address: Optional[str]
    employee_id: Optional[int] = None
    attendance_id: Optional[int] = None
    photo: Optional[bytes] = None
    actor_id: Optional[int] = None
    require_face_match: Optional[bool] = None


@dataclass(frozen=True)
class PunchResult:
    record: AttendanceRecord
    direction: PunchDirection
    employee_name: str
    face_similarity: Optional[float] = None
    face_threshold: Optional[float] = None
