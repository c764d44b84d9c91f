from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from mysql.connector import Error as MySQLError

from ..core.exceptions import DuplicateRecord
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone, is_duplicate_key
from .model import AttendanceRecord, GeoPoint
from .repository import AttendanceRepository

_COLUMNS = """
    attendance_id, emp_id, work_date, punch_in_time, punch_out_time,
    punch_in_image, punch_out_image,
    latitude_in, longitude_in, in_address,
    latitude_out, longitude_out, out_address,
    punched_in_by, punched_out_by
"""


def _geo(r: dict, suffix: str) -> Optional[GeoPoint]:
    lat = r.get(f"latitude_{suffix}")
    lon = r.get(f"longitude_{suffix}")
    if lat is None or lon is None:
        return None
    return GeoPoint(latitude=float(lat), longitude=float(lon), address=r.get(f"{suffix}_address") or "")


def _to_record(r: dict) -> AttendanceRecord:
    return AttendanceRecord(
        attendance_id=int(r["attendance_id"]),
        emp_id=int(r["emp_id"]),
        work_date=r["work_date"],
        punch_in_time=r.get("punch_in_time"),
        punch_out_time=r.get("punch_out_time"),
        punch_in_image=r.get("punch_in_image"),
        punch_out_image=r.get("punch_out_image"),
        in_geo=_geo(r, "in"),
        out_geo=_geo(r, "out"),
        punched_in_by=r.get("punched_in_by"),
        punched_out_by=r.get("punched_out_by"),
    )


class MySQLAttendanceRepository(AttendanceRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, attendance_id: int) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM attendance WHERE attendance_id=%s", (int(attendance_id),))
            r = fetchone(cur)
            return _to_record(r) if r else None

    def get_for_employee_and_date(self, emp_id: int, work_date: date) -> Optional[AttendanceRecord]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM attendance WHERE emp_id=%s AND work_date=%s",
                (int(emp_id), work_date),
            )
            r = fetchone(cur)
            return _to_record(r) if r else None

    def create_empty(self, *, emp_id: int, work_date: date) -> int:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    "INSERT INTO attendance(emp_id, work_date) VALUES(%s,%s)",
                    (int(emp_id), work_date),
                )
                return int(cur.lastrowid)
        except MySQLError as exc:
            if is_duplicate_key(exc):
                raise DuplicateRecord() from exc
            raise

    def mark_punch_in(
        self,
        *,
        attendance_id: int,
        punched_at: datetime,
        image: Optional[str],
        geo: GeoPoint,
        actor_id: Optional[int],
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendance
                SET punch_in_time=%s, punch_in_image=%s,
                    latitude_in=%s, longitude_in=%s, in_address=%s,
                    punched_in_by=%s
                WHERE attendance_id=%s AND punch_in_time IS NULL
                """,
                (punched_at, image, geo.latitude, geo.longitude, geo.address, actor_id, int(attendance_id)),
            )
            return cur.rowcount > 0

    def mark_punch_out(
        self,
        *,
        attendance_id: int,
        punched_at: datetime,
        image: Optional[str],
        geo: GeoPoint,
        actor_id: Optional[int],
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE attendance
                SET punch_out_time=%s, punch_out_image=%s,
                    latitude_out=%s, longitude_out=%s, out_address=%s,
                    punched_out_by=%s
                WHERE attendance_id=%s AND punch_in_time IS NOT NULL AND punch_out_time IS NULL
                """,
                (punched_at, image, geo.latitude, geo.longitude, geo.address, actor_id, int(attendance_id)),
            )
            return cur.rowcount > 0
