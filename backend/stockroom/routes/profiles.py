# Overview: Flask API routes for profiles (members of a company).

"""
Profile routes.

MULTI-TENANT: listings and edits are confined to the caller's company;
super_admin sees every profile.

SECURITY:
- /me is available to every authenticated profile
- Role changes are checked by the policy engine (no self-escalation,
  nothing above the caller's own rank)
- Bulk status changes apply to the listed ids only and never to the caller
"""
from flask import Blueprint, g, request

from ..decorators import current_principal, require_auth
from ..services import policy_service, profile_service, session_service
from ..validation import ValidationError
from .common import bool_arg, json_payload, page, page_args

profiles_bp = Blueprint("profiles", __name__, url_prefix="/api/profiles")


@profiles_bp.get("/me")
@require_auth
def me():
    principal = current_principal()
    profile = g.current_profile
    data = profile.to_dict()
    data["can_modify"] = policy_service.can_modify(principal)
    return data


@profiles_bp.post("/logout")
@require_auth
def logout():
    session_service.revoke_session(g.session_token, "Logout")
    return {"ok": True}


@profiles_bp.get("")
@require_auth
def list_profiles():
    """
    Query params: search, role, company_id, department_id, active, limit, offset
    """
    limit, offset = page_args()
    rows, total = profile_service.list_profiles(
        current_principal(),
        search=request.args.get("search"),
        role=request.args.get("role"),
        company_id=request.args.get("company_id", type=int),
        department_id=request.args.get("department_id", type=int),
        active=bool_arg("active"),
        limit=limit,
        offset=offset,
    )
    return page([p.to_dict() for p in rows], total, limit, offset)


@profiles_bp.get("/<int:profile_id>")
@require_auth
def get_profile(profile_id: int):
    return profile_service.get_profile(current_principal(), profile_id).to_dict()


@profiles_bp.patch("/<int:profile_id>")
@require_auth
def update_profile(profile_id: int):
    profile = profile_service.update_profile(current_principal(), profile_id, json_payload())
    return profile.to_dict()


@profiles_bp.post("/status")
@require_auth
def set_status():
    """
    Body: {"profile_ids": [..], "is_active": bool}
    """
    payload = json_payload()
    if "is_active" not in payload:
        raise ValidationError("is_active is required")
    profiles = profile_service.set_profiles_active(
        current_principal(),
        payload.get("profile_ids"),
        payload["is_active"],
    )
    return {"items": [p.to_dict() for p in profiles], "count": len(profiles)}


@profiles_bp.delete("/<int:profile_id>")
@require_auth
def delete_profile(profile_id: int):
    profile_service.delete_profile(current_principal(), profile_id)
    return {"ok": True}
