# Overview: Flask API routes for departments within a company.

from flask import Blueprint, request

from ..decorators import current_principal, require_auth
from ..services import company_service
from .common import json_payload

departments_bp = Blueprint("departments", __name__, url_prefix="/api/departments")


@departments_bp.get("")
@require_auth
def list_departments():
    departments = company_service.list_departments(
        current_principal(),
        company_id=request.args.get("company_id", type=int),
    )
    return {"items": [d.to_dict() for d in departments], "count": len(departments)}


@departments_bp.post("")
@require_auth
def create_department():
    department = company_service.create_department(current_principal(), json_payload())
    return department.to_dict(), 201


@departments_bp.patch("/<int:department_id>")
@require_auth
def update_department(department_id: int):
    department = company_service.update_department(current_principal(), department_id, json_payload())
    return department.to_dict()


@departments_bp.delete("/<int:department_id>")
@require_auth
def delete_department(department_id: int):
    """Members and pending invites of the department are detached, not removed."""
    company_service.delete_department(current_principal(), department_id)
    return {"ok": True}
