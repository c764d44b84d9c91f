from __future__ import annotations

from typing import Optional

from mysql.connector import Error as MySQLError

from ..core.exceptions import DuplicateRecord
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchone, is_duplicate_key
from .model import Employee
from .repository import EmployeeRepository

_COLUMNS = "emp_id, emp_code, name, face_id, face_image, face_confidence"


def _to_employee(r: dict) -> Employee:
    confidence = r.get("face_confidence")
    return Employee(
        emp_id=int(r["emp_id"]),
        name=r["name"],
        emp_code=r.get("emp_code"),
        face_id=r.get("face_id"),
        face_image=r.get("face_image"),
        face_confidence=float(confidence) if confidence is not None else None,
    )


class MySQLEmployeeRepository(EmployeeRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get_by_id(self, emp_id: int) -> Optional[Employee]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM employee WHERE emp_id=%s", (int(emp_id),))
            r = fetchone(cur)
            return _to_employee(r) if r else None

    def get_by_face_id(self, face_id: str) -> Optional[Employee]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM employee WHERE face_id=%s", (face_id,))
            r = fetchone(cur)
            return _to_employee(r) if r else None

    def link_face_id(self, emp_id: int, face_id: str) -> bool:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    "UPDATE employee SET face_id=%s WHERE emp_id=%s AND face_id IS NULL",
                    (face_id, int(emp_id)),
                )
                return cur.rowcount > 0
        except MySQLError as exc:
            if is_duplicate_key(exc):
                return False
            raise

    def save_enrollment(self, *, emp_id: int, face_id: str, face_image: str, confidence: float) -> bool:
        try:
            with db_cursor(self._conn_factory) as (_, cur):
                cur.execute(
                    """
                    UPDATE employee
                    SET face_id=%s, face_image=%s, face_confidence=%s
                    WHERE emp_id=%s AND face_id IS NULL AND face_image IS NULL
                    """,
                    (face_id, face_image, confidence, int(emp_id)),
                )
                return cur.rowcount > 0
        except MySQLError as exc:
            if is_duplicate_key(exc):
                raise DuplicateRecord("Face is already linked to another employee") from exc
            raise

    def clear_enrollment(self, emp_id: int) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "UPDATE employee SET face_id=NULL, face_image=NULL, face_confidence=NULL WHERE emp_id=%s",
                (int(emp_id),),
            )
            return cur.rowcount > 0
