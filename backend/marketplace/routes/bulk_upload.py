# Overview: Flask API routes for bulk catalog uploads; parses input and returns JSON responses.

"""
Bulk Upload Routes

Merchants download the template, fill it in and upload it back. The upload
is processed within the request; the returned job record is final.
"""

import io
import os
import uuid

from flask import Blueprint, current_app, g, jsonify, request, send_file
from werkzeug.utils import secure_filename

from ..decorators import require_shop
from ..services import import_service, taxonomy_service
from ..services.import_service import BulkUploadError
from ..services.workbook_service import template_bytes
from ..validation import ConflictError, NotFoundError, ValidationError


bulk_upload_bp = Blueprint("bulk_upload", __name__, url_prefix="/api/shop/bulk-upload")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
TEMPLATE_FILENAME = "product-bulk-upload-template.xlsx"


def _int_arg(name: str, default: int) -> int:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


@bulk_upload_bp.get("/template")
@require_shop
def download_template_route():
    return send_file(
        io.BytesIO(template_bytes()),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=TEMPLATE_FILENAME,
    )


@bulk_upload_bp.get("/categories")
@require_shop
def list_categories_route():
    return jsonify({"categories": taxonomy_service.list_active_taxonomy()})


@bulk_upload_bp.post("")
@require_shop
def upload_route():
    if "file" not in request.files:
        return jsonify({"error": "No file uploaded"}), 400

    file = request.files["file"]
    if not file.filename:
        return jsonify({"error": "No file uploaded"}), 400
    if file.mimetype not in current_app.config["ALLOWED_UPLOAD_MIMETYPES"]:
        return jsonify({"error": "Invalid file type. Only Excel files (.xlsx, .xls) are allowed"}), 400

    upload_folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(upload_folder, exist_ok=True)
    original_name = secure_filename(file.filename) or "upload.xlsx"
    path = os.path.join(upload_folder, f"{uuid.uuid4().hex}-{original_name}")
    file.save(path)

    max_bytes = current_app.config["MAX_UPLOAD_BYTES"]
    if os.path.getsize(path) > max_bytes:
        os.remove(path)
        return jsonify({"error": f"File too large. Maximum size is {max_bytes // (1024 * 1024)} MB"}), 413

    try:
        upload = import_service.create_bulk_upload(
            shop_id=g.shop_id,
            user_id=g.user_id,
            file_path=path,
            file_name=original_name,
        )
    except Exception:
        os.remove(path)
        raise

    try:
        upload = import_service.process_bulk_upload(upload.id, path)
    except BulkUploadError as e:
        return jsonify({"error": str(e)}), 500

    return jsonify({"message": "Bulk upload processed", "upload": upload.to_dict()}), 201


@bulk_upload_bp.get("")
@require_shop
def list_uploads_route():
    try:
        result = import_service.list_bulk_uploads(
            g.shop_id,
            status=request.args.get("status") or None,
            page=_int_arg("page", 1),
            limit=_int_arg("limit", import_service.LIST_LIMIT_DEFAULT),
        )
        return jsonify(result)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@bulk_upload_bp.get("/<int:job_id>")
@require_shop
def get_upload_route(job_id: int):
    try:
        upload = import_service.get_bulk_upload(job_id, g.shop_id)
        return jsonify({"upload": upload.to_dict()})
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@bulk_upload_bp.get("/<int:job_id>/errors")
@require_shop
def download_error_report_route(job_id: int):
    try:
        filename, content = import_service.error_report(job_id, g.shop_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return send_file(
        io.BytesIO(content),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=filename,
    )


@bulk_upload_bp.delete("/<int:job_id>")
@require_shop
def delete_upload_route(job_id: int):
    try:
        import_service.delete_bulk_upload(job_id, g.shop_id)
        return jsonify({"message": "Bulk upload deleted"})
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
