from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class FaceCandidate:
    """Best match returned by a collection search."""

    face_id: str
    external_id: Optional[str]
    similarity: float


@dataclass(frozen=True)
class FaceMatchResult:
    similarity: float
    matched: bool
    threshold: float


@dataclass(frozen=True)
class IndexedFace:
    face_id: str
    confidence: float


@dataclass(frozen=True)
class EnrollmentResult:
    employee_id: int
    face_id: str
    confidence: float
    image_ref: str
    image_url: Optional[str]


@dataclass(frozen=True)
class EnrollmentView:
    employee_id: int
    employee_code: Optional[str]
    employee_name: str
    face_id: Optional[str]
    confidence: Optional[float]
    image_ref: str
    image_url: Optional[str]
    image_exists: bool


@dataclass(frozen=True)
class GalleryImage:
    """A stored face image; ``identifier`` is the first key segment below the prefix."""

    key: str
    image_ref: str
    identifier: Optional[str]
    employee_id: Optional[int]
    size: Optional[int]
    last_modified: Optional[datetime]
    image_url: Optional[str]
