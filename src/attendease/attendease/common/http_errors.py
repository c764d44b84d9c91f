from __future__ import annotations

import logging

from flask import Flask, jsonify
from werkzeug.exceptions import RequestEntityTooLarge

from ..core import exceptions as exc

logger = logging.getLogger(__name__)

# Most specific class first; the first isinstance match wins.
STATUS_BY_ERROR: tuple[tuple[type[exc.DomainError], int], ...] = (
    (exc.ValidationError, 400),
    (exc.EmployeeNotFound, 404),
    (exc.AttendanceNotFound, 404),
    (exc.ImageNotFound, 404),
    (exc.EnrollmentMissing, 404),
    (exc.PunchOrderError, 409),
    (exc.EnrollmentConflict, 409),
    (exc.DuplicateRecord, 409),
    (exc.EmployeeNotRegistered, 401),
    (exc.FaceMismatch, 401),
    (exc.NoFaceDetected, 422),
    (exc.RateLimited, 429),
    (exc.StorageUnavailable, 503),
    (exc.DatabaseUnavailable, 503),
    (exc.RecognitionServiceUnavailable, 503),
    (exc.CollectionNotFound, 503),
)


def status_for(error: exc.DomainError) -> int:
    for error_type, status in STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status
    return 500


def register_error_handlers(app: Flask) -> None:
    @app.errorhandler(exc.DomainError)
    def handle_domain_error(error: exc.DomainError):
        status = status_for(error)
        if status >= 500:
            logger.warning("%s: %s", error.code, error.message)
        return jsonify(error.to_dict()), status

    @app.errorhandler(RequestEntityTooLarge)
    def handle_too_large(_error):
        return jsonify(exc.ValidationError("Uploaded image is too large").to_dict()), 413
