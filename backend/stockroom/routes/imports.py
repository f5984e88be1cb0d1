# Overview: Flask API routes for imports; parses input and returns JSON responses.

"""
Import Routes

Accepts CSV as a multipart file, a raw text/csv body or JSON {"csv": "..."}.
Excel workbooks (.xlsx) are accepted as multipart files.

SECURITY: importing needs a role that may modify inventory; staff get 403.
"""

from flask import Blueprint, request

from ..decorators import current_principal, require_auth, require_can_modify
from ..services import import_service
from ..validation import ValidationError
from .common import json_payload, page_args

imports_bp = Blueprint("imports", __name__, url_prefix="/api/imports")

XLSX_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}


@imports_bp.post("/<import_type>")
@require_auth
@require_can_modify
def import_file(import_type: str):
    """
    Import products or suppliers.

    Returns {batch_id, status, total, succeeded, failed, skipped, errors}.
    Missing required columns fail the whole file with 400.
    """
    principal = current_principal()
    company_id = request.args.get("company_id", type=int)

    if "file" in request.files:
        upload = request.files["file"]
        filename = upload.filename or ""
        ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
        if ext in XLSX_EXTENSIONS:
            result = import_service.import_xlsx(
                principal, import_type, upload.stream, source_file_name=filename, company_id=company_id
            )
            return result, 201
        if ext not in ("csv", "txt", ""):
            raise ValidationError(f"Unsupported file type: .{ext}")
        text = upload.stream.read().decode("utf-8-sig")
        source = filename
    elif request.is_json:
        payload = json_payload()
        text = payload.get("csv")
        source = payload.get("source_file_name")
        company_id = payload.get("company_id", company_id)
    else:
        text = request.get_data(as_text=True)
        source = request.headers.get("X-File-Name")

    result = import_service.import_csv(
        principal, import_type, text, source_file_name=source, company_id=company_id
    )
    return result, 201


@imports_bp.get("")
@require_auth
def list_batches():
    limit, _offset = page_args(default_limit=50)
    batches = import_service.list_batches(
        current_principal(),
        import_type=request.args.get("import_type"),
        limit=limit,
    )
    return {"items": [b.to_dict() for b in batches], "count": len(batches)}


@imports_bp.get("/batches/<int:batch_id>")
@require_auth
def get_batch(batch_id: int):
    return import_service.get_batch(current_principal(), batch_id).to_dict()


@imports_bp.post("/batches/<int:batch_id>/cancel")
@require_auth
@require_can_modify
def cancel_batch(batch_id: int):
    """Stops a running import at its next chunk boundary."""
    batch = import_service.request_cancel(current_principal(), batch_id)
    return batch.to_dict()
