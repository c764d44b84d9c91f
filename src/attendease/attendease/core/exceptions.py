from __future__ import annotations

from typing import Any, Optional


class DomainError(Exception):
    """Base exception for business rule violations.

    ``code`` is the stable kind name shown to API callers, ``hint`` is optional
    actionable guidance and ``retryable`` tells the caller whether the same
    request may succeed later without any change.
    """

    code = "DOMAIN_ERROR"
    default_message = "Request could not be completed"
    hint: Optional[str] = None
    retryable = False

    def __init__(self, message: Optional[str] = None, *, hint: Optional[str] = None, **details: Any):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        if hint is not None:
            self.hint = hint
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code, "retryable": self.retryable}
        if self.hint:
            payload["hint"] = self.hint
        payload.update({k: v for k, v in self.details.items() if v is not None})
        return payload


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""

    code = "VALIDATION_ERROR"
    default_message = "Invalid request"


# Punch ordering


class PunchOrderError(DomainError):
    """A punch that the record's current state does not allow."""


class AlreadyPunchedIn(PunchOrderError):
    code = "ALREADY_PUNCHED_IN"
    default_message = "Already punched in today"


class AlreadyPunchedOut(PunchOrderError):
    code = "ALREADY_PUNCHED_OUT"
    default_message = "Already punched out today"


class MustPunchInFirst(PunchOrderError):
    code = "MUST_PUNCH_IN_FIRST"
    default_message = "Must punch in first"
    hint = "Record the punch-in for today before punching out."


# Lookups


class EmployeeNotFound(DomainError):
    code = "EMPLOYEE_NOT_FOUND"
    default_message = "Employee not found"


class AttendanceNotFound(DomainError):
    code = "ATTENDANCE_NOT_FOUND"
    default_message = "Attendance record not found"


class ImageNotFound(DomainError):
    code = "IMAGE_NOT_FOUND"
    default_message = "Image not found"


# Faces


class NoFaceDetected(DomainError):
    code = "NO_FACE_DETECTED"
    default_message = "No face detected in the image"
    hint = "Retake the photo with the face clearly visible and well lit."


class EmployeeNotRegistered(DomainError):
    code = "EMPLOYEE_NOT_REGISTERED"
    default_message = "No matching employee found"
    hint = "Use manual attendance, or register the employee's face first."


class EnrollmentMissing(DomainError):
    code = "ENROLLMENT_MISSING"
    default_message = "No face enrolled for this employee"
    hint = "Capture the employee's face before requiring verification."


class EnrollmentConflict(DomainError):
    code = "ENROLLMENT_CONFLICT"
    default_message = "Face already exists"
    hint = "Delete the existing face before uploading a new one."


class FaceMismatch(DomainError):
    code = "FACE_MISMATCH"
    default_message = "Face does not match the enrolled face"
    hint = "Retake the photo, or ask a supervisor to record the punch manually."

    def __init__(self, message: Optional[str] = None, *, similarity: float, threshold: float, **details: Any):
        super().__init__(message, similarity=similarity, threshold=threshold, **details)
        self.similarity = similarity
        self.threshold = threshold


class CollectionNotFound(DomainError):
    code = "COLLECTION_NOT_FOUND"
    default_message = "Face collection is not configured"
    hint = "Set REKOGNITION_COLLECTION in the backend environment."


# Outages


class StorageUnavailable(DomainError):
    code = "STORAGE_UNAVAILABLE"
    default_message = "Image storage is unavailable"
    retryable = True

    def __init__(self, message: Optional[str] = None, *, backend: Optional[str] = None, **details: Any):
        super().__init__(message, backend=backend, **details)
        self.backend = backend


class DatabaseUnavailable(DomainError):
    code = "DATABASE_UNAVAILABLE"
    default_message = "Attendance database is unavailable"
    retryable = True


class RecognitionServiceUnavailable(DomainError):
    code = "RECOGNITION_SERVICE_UNAVAILABLE"
    default_message = "Face recognition service is unavailable"
    retryable = True


class RateLimited(RecognitionServiceUnavailable):
    code = "RATE_LIMITED"
    default_message = "Face recognition service is busy"


class InternalError(DomainError):
    code = "INTERNAL_ERROR"
    default_message = "Unexpected server error"


class DuplicateRecord(DomainError):
    """Raised by repositories when an insert/update hits a unique key."""

    code = "DUPLICATE_RECORD"
    default_message = "Record already exists"
