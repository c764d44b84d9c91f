from __future__ import annotations

import logging
import re
import uuid
from dataclasses import replace
from typing import Optional

from ..common.boundary import domain_boundary
from ..common.validators import detect_image_content_type
from ..core.constants import FACE_PREFIX
from ..core.exceptions import (
    DomainError,
    DuplicateRecord,
    EmployeeNotFound,
    EmployeeNotRegistered,
    EnrollmentConflict,
    EnrollmentMissing,
    StorageUnavailable,
)
from ..employees.model import Employee
from ..employees.repository import EmployeeRepository
from ..storage.gateway import ObjectStorageGateway, listing_prefix
from .model import EnrollmentResult, EnrollmentView, FaceCandidate, GalleryImage
from .recognition_client import FaceRecognitionClient

logger = logging.getLogger(__name__)


def identifier_from_key(key: str, prefix: str) -> Optional[str]:
    """First path segment below ``prefix`` (``faces/12/face.jpg`` -> ``12``)."""
    rest = key[len(prefix):] if prefix and key.startswith(prefix) else key
    identifier = rest.split("/", 1)[0]
    return identifier or None


def parse_employee_id(external_id: Optional[str]) -> Optional[int]:
    """Employee id carried in a face's external id ("12", "emp-12" -> 12)."""
    if external_id is None:
        return None
    text = str(external_id).strip()
    if text.isdigit():
        return int(text)
    digits = re.sub(r"\D+", "", text)
    return int(digits) if digits else None


class IdentityResolver:
    """Maps recognition matches to employees and manages face enrollments."""

    def __init__(
        self,
        employees: EmployeeRepository,
        recognition: FaceRecognitionClient,
        storage: ObjectStorageGateway,
    ):
        self._employees = employees
        self._recognition = recognition
        self._storage = storage

    def _require_employee(self, employee_id: int) -> Employee:
        employee = self._employees.get_by_id(employee_id)
        if not employee:
            raise EmployeeNotFound()
        return employee

    def _link_face(self, employee: Employee, candidate: FaceCandidate, via: str) -> Employee:
        if employee.face_id == candidate.face_id:
            return employee
        if employee.face_id:
            # TODO: confirm with product whether this should be a hard conflict instead of a no-op.
            logger.warning(
                "Employee %s (resolved by %s) already has a different face id; not relinking",
                employee.emp_id,
                via,
            )
            return employee
        if self._employees.link_face_id(employee.emp_id, candidate.face_id):
            logger.info("Linked matched face to employee %s (resolved by %s)", employee.emp_id, via)
            return replace(employee, face_id=candidate.face_id)
        logger.warning("Face link for employee %s skipped: changed concurrently or owned elsewhere", employee.emp_id)
        return employee

    @domain_boundary
    def resolve_from_face_match(self, candidate: FaceCandidate, caller_employee_id: Optional[int] = None) -> Employee:
        """Resolve by stored face id, then external id, then the caller-supplied id."""
        employee = self._employees.get_by_face_id(candidate.face_id)
        if employee:
            return employee

        external_emp_id = parse_employee_id(candidate.external_id)
        if external_emp_id is not None:
            employee = self._employees.get_by_id(external_emp_id)
            if employee:
                return self._link_face(employee, candidate, "external id")

        if caller_employee_id is not None:
            employee = self._employees.get_by_id(caller_employee_id)
            if employee:
                return self._link_face(employee, candidate, "caller id")

        raise EmployeeNotRegistered("Employee not registered in system")

    @domain_boundary
    def identify(self, photo: bytes, caller_employee_id: Optional[int] = None) -> tuple[Employee, FaceCandidate]:
        candidate = self._recognition.search_face(photo, max_candidates=1)
        if candidate is None:
            raise EmployeeNotRegistered()
        return self.resolve_from_face_match(candidate, caller_employee_id), candidate

    @domain_boundary
    def enroll(self, employee_id: int, image: bytes, content_type: Optional[str] = None) -> EnrollmentResult:
        employee = self._require_employee(employee_id)
        if employee.has_enrollment:
            raise EnrollmentConflict(face=self._existing_face(employee))

        content_type = content_type or detect_image_content_type(image)
        ref = self._storage.store(image, f"{FACE_PREFIX}/{employee.emp_id}/face_{uuid.uuid4().hex}", content_type)

        try:
            indexed = self._recognition.index_face(image, external_id=str(employee.emp_id))
        except Exception:
            self._storage.discard(ref)
            raise

        try:
            saved = self._employees.save_enrollment(
                emp_id=employee.emp_id,
                face_id=indexed.face_id,
                face_image=ref.serialize(),
                confidence=indexed.confidence,
            )
        except DuplicateRecord:
            saved = False
        except Exception:
            self._undo_index(indexed.face_id)
            self._storage.discard(ref)
            raise

        if not saved:
            # Someone enrolled this employee concurrently; keep theirs.
            self._undo_index(indexed.face_id)
            self._storage.discard(ref)
            raise EnrollmentConflict(face=self._existing_face(self._require_employee(employee.emp_id)))

        return EnrollmentResult(
            employee_id=employee.emp_id,
            face_id=indexed.face_id,
            confidence=indexed.confidence,
            image_ref=ref.serialize(),
            image_url=self._storage.public_url(ref),
        )

    def _existing_face(self, employee: Employee) -> dict:
        ref = self._storage.parse_reference(employee.face_image)
        return {
            "key": ref.serialize() if ref else None,
            "faceId": employee.face_id,
            "confidence": employee.face_confidence,
            "imageUrl": self._storage.public_url(ref) if ref else None,
        }

    def _undo_index(self, face_id: str) -> None:
        try:
            self._recognition.delete_faces([face_id])
        except DomainError:
            logger.warning("Could not remove orphaned face from the collection", exc_info=True)

    @domain_boundary
    def delete_enrollment(self, employee_id: int) -> None:
        employee = self._require_employee(employee_id)
        if not employee.has_enrollment:
            return

        # Collection first: if this fails the local fields stay so the delete can be retried.
        if employee.face_id:
            self._recognition.delete_faces([employee.face_id])

        ref = self._storage.parse_reference(employee.face_image)
        if ref is not None:
            self._storage.discard(ref)

        self._employees.clear_enrollment(employee.emp_id)

    @domain_boundary
    def get_enrollment(self, employee_id: int) -> EnrollmentView:
        employee = self._require_employee(employee_id)
        ref = self._storage.parse_reference(employee.face_image)
        if ref is None:
            raise EnrollmentMissing("Face image not stored for this employee")

        try:
            exists = self._storage.exists(ref)
        except StorageUnavailable:
            exists = False

        return EnrollmentView(
            employee_id=employee.emp_id,
            employee_code=employee.emp_code,
            employee_name=employee.name,
            face_id=employee.face_id,
            confidence=employee.face_confidence,
            image_ref=ref.serialize(),
            image_url=self._storage.public_url(ref),
            image_exists=exists,
        )

    @domain_boundary
    def list_gallery(self, prefix: str = FACE_PREFIX, *, page_size: int = 200) -> list[GalleryImage]:
        prefix = listing_prefix(prefix)
        images = []
        for item in self._storage.list_objects(prefix, page_size=page_size):
            identifier = identifier_from_key(item.ref.key, prefix)
            images.append(
                GalleryImage(
                    key=item.ref.key,
                    image_ref=item.ref.serialize(),
                    identifier=identifier,
                    employee_id=parse_employee_id(identifier),
                    size=item.size,
                    last_modified=item.last_modified,
                    image_url=self._storage.public_url(item.ref),
                )
            )
        return images
