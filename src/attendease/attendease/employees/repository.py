from __future__ import annotations

from typing import Optional, Protocol

from .model import Employee


class EmployeeRepository(Protocol):
    """Giao diện repository cho Employee (chỉ phần phục vụ chấm công/khuôn mặt)."""

    def get_by_id(self, emp_id: int) -> Optional[Employee]:
        raise NotImplementedError

    def get_by_face_id(self, face_id: str) -> Optional[Employee]:
        raise NotImplementedError

    def link_face_id(self, emp_id: int, face_id: str) -> bool:
        """Set face_id only while the employee has none; False when nothing changed."""

        raise NotImplementedError

    def save_enrollment(self, *, emp_id: int, face_id: str, face_image: str, confidence: float) -> bool:
        """Persist a new enrollment only if none is present.

        Raises DuplicateRecord when ``face_id`` already belongs to someone else.
        """

        raise NotImplementedError

    def clear_enrollment(self, emp_id: int) -> bool:
        raise NotImplementedError
