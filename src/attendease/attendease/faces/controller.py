from __future__ import annotations

from flask import Flask, jsonify, request

from ..common.validators import optional_int, require_int
from ..container import Container
from ..core.constants import FACE_PREFIX, GALLERY_MAX_PAGE_SIZE, GALLERY_PAGE_SIZE
from ..core.exceptions import ValidationError
from ..storage.gateway import listing_prefix


def register(app: Flask, container: Container) -> None:
    identity = container.identity_resolver

    @app.route("/faces/store-face", methods=["POST"], endpoint="faces_store")
    def store_face():
        form = request.form
        emp_id = None
        for field in ("emp_id", "employeeId", "userId"):
            emp_id = optional_int(form.get(field), field)
            if emp_id is not None:
                break
        if emp_id is None:
            raise ValidationError("User or employee identifier is required")

        upload = request.files.get("image")
        if upload is None:
            raise ValidationError("No file uploaded")

        result = identity.enroll(emp_id, upload.read())
        return jsonify(
            {
                "success": True,
                "faceId": result.face_id,
                "confidence": result.confidence,
                "imageUrl": result.image_url,
                "empId": result.employee_id,
            }
        )

    @app.route("/faces/gallery", methods=["GET"], endpoint="faces_gallery")
    def face_gallery():
        prefix = (request.args.get("prefix") or "").strip() or f"{FACE_PREFIX}/"
        page_size = optional_int(request.args.get("maxKeys"), "maxKeys") or GALLERY_PAGE_SIZE
        page_size = min(max(page_size, 1), GALLERY_MAX_PAGE_SIZE)

        images = identity.list_gallery(prefix, page_size=page_size)
        return jsonify(
            {
                "success": True,
                "prefix": listing_prefix(prefix),
                "count": len(images),
                "images": [
                    {
                        "key": image.key,
                        "imageRef": image.image_ref,
                        "identifier": image.identifier,
                        "employeeId": image.employee_id,
                        "size": image.size,
                        "lastModified": image.last_modified.isoformat() if image.last_modified else None,
                        "url": image.image_url,
                    }
                    for image in images
                ],
            }
        )

    @app.route("/faces/<employee_id>", methods=["GET"], endpoint="faces_get")
    def get_face(employee_id: str):
        view = identity.get_enrollment(require_int(employee_id, "employeeId"))
        return jsonify(
            {
                "success": True,
                "face": {
                    "empId": view.employee_id,
                    "employeeCode": view.employee_code,
                    "employeeName": view.employee_name,
                    "key": view.image_ref,
                    "imageUrl": view.image_url,
                    "confidence": view.confidence,
                    "faceId": view.face_id,
                    "imageExists": view.image_exists,
                },
            }
        )

    @app.route("/faces/<employee_id>", methods=["DELETE"], endpoint="faces_delete")
    def delete_face(employee_id: str):
        identity.delete_enrollment(require_int(employee_id, "employeeId"))
        return jsonify({"success": True, "message": "Face data deleted"})
