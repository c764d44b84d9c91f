from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Employee:
    """Thực thể miền (domain): nhân viên, kèm dữ liệu khuôn mặt đã đăng ký.

    Lưu ý: ``face_image`` là giá trị tham chiếu ảnh như lưu trong CSDL
    (``<tag>:<key>`` hoặc dạng cũ), tầng storage sẽ diễn giải.
    """

    emp_id: int
    name: str
    emp_code: Optional[str] = None
    face_id: Optional[str] = None
    face_image: Optional[str] = None
    face_confidence: Optional[float] = None

    @property
    def has_enrollment(self) -> bool:
        return bool(self.face_id or self.face_image)
