from __future__ import annotations

from typing import Optional

from flask import Flask, Response, jsonify, request

from ..common.datetime_utils import format_hhmm
from ..common.validators import parse_bool
from ..container import Container
from ..core.enums import PunchDirection
from .model import AttendanceRecord, GeoPoint, PunchRequest, PunchResult


def _geo_json(geo: Optional[GeoPoint]) -> Optional[dict]:
    if geo is None:
        return None
    return {"latitude": geo.latitude, "longitude": geo.longitude, "address": geo.address}


def register(app: Flask, container: Container) -> None:
    storage = container.storage
    orchestrator = container.punch_orchestrator

    def _image_url(value: Optional[str]) -> Optional[str]:
        ref = storage.parse_reference(value)
        return storage.public_url(ref) if ref else None

    def _record_json(record: AttendanceRecord) -> dict:
        duration = record.duration
        return {
            "attendance_id": record.attendance_id,
            "emp_id": record.emp_id,
            "date": record.work_date.isoformat(),
            "state": record.state.value,
            "punch_in_time": record.punch_in_time.isoformat() if record.punch_in_time else None,
            "punch_out_time": record.punch_out_time.isoformat() if record.punch_out_time else None,
            "punch_in": format_hhmm(record.punch_in_time),
            "punch_out": format_hhmm(record.punch_out_time),
            "punch_in_image": _image_url(record.punch_in_image),
            "punch_out_image": _image_url(record.punch_out_image),
            "in_location": _geo_json(record.in_geo),
            "out_location": _geo_json(record.out_geo),
            "punched_in_by": record.punched_in_by,
            "punched_out_by": record.punched_out_by,
            "duration_minutes": int(duration.total_seconds() // 60) if duration is not None else None,
        }

    def _result_json(result: PunchResult) -> dict:
        payload = {
            "message": f"Punch {result.direction.value} updated successfully",
            "employee_name": result.employee_name,
            "attendance": _record_json(result.record),
        }
        if result.face_similarity is not None:
            payload["verification"] = {
                "similarity": round(result.face_similarity, 2),
                "threshold": result.face_threshold,
            }
        return payload

    def _punch_request() -> PunchRequest:
        form = request.form
        upload = request.files.get("image")
        return PunchRequest(
            direction=form.get("punch_type"),
            latitude=form.get("latitude"),
            longitude=form.get("longitude"),
            address=form.get("address"),
            employee_id=form.get("emp_id"),
            attendance_id=form.get("attendance_id"),
            photo=upload.read() if upload else None,
            actor_id=form.get("userId"),
            require_face_match=parse_bool(form.get("require_face_match"), default=None),
        )

    @app.route("/attendance", methods=["POST"], endpoint="attendance_open_day")
    def open_day():
        data = request.get_json(silent=True) or request.form
        record = orchestrator.open_day(data.get("emp_id"))
        return jsonify(_record_json(record))

    @app.route("/attendance", methods=["PUT"], endpoint="attendance_punch")
    def punch():
        result = orchestrator.submit_punch(_punch_request())
        return jsonify(_result_json(result))

    @app.route("/attendance/face-attendance", methods=["POST"], endpoint="attendance_face_punch")
    def face_punch():
        """Face-only punch: the employee is whoever the photo matches in the collection."""
        result = orchestrator.submit_face_punch(_punch_request())
        return jsonify(_result_json(result))

    @app.route("/attendance/image", methods=["GET"], endpoint="attendance_image")
    def punch_image():
        stream = orchestrator.fetch_punch_image(
            request.args.get("attendance_id"),
            request.args.get("punch_type", PunchDirection.IN.value),
        )
        return Response(stream.iter_chunks(), mimetype=stream.content_type)
