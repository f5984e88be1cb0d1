# Overview: Flask API routes for invitations, including public acceptance.

"""
Invite routes.

SECURITY:
- Creating, listing and revoking invites requires authentication and the
  policy engine's invite rules
- GET /lookup and POST /accept are public: the token is the credential.
  Acceptance is exactly-once and opens a session for the new profile
"""
from flask import Blueprint, request

from ..decorators import current_principal, require_auth
from ..services import invite_service, session_service
from ..services.invite_service import InviteError
from .common import json_payload

invites_bp = Blueprint("invites", __name__, url_prefix="/api/invites")


@invites_bp.get("")
@require_auth
def list_invites():
    invites = invite_service.list_invites(
        current_principal(),
        status=request.args.get("status"),
        company_id=request.args.get("company_id", type=int),
    )
    return {"items": [i.to_dict() for i in invites], "count": len(invites)}


@invites_bp.post("")
@require_auth
def create_invite():
    """
    Body: {"email", "role", "company_id"?, "department_id"?}

    The response carries the acceptance URL so the inviter can share it
    when mail delivery is not configured.
    """
    payload = json_payload()
    invite = invite_service.create_invite(
        current_principal(),
        email=payload.get("email"),
        role=payload.get("role"),
        company_id=payload.get("company_id"),
        department_id=payload.get("department_id"),
    )
    data = invite.to_dict()
    data["accept_url"] = invite_service.accept_url(invite)
    return data, 201


@invites_bp.delete("/<int:invite_id>")
@require_auth
def revoke_invite(invite_id: int):
    invite_service.revoke_invite(current_principal(), invite_id)
    return {"ok": True}


@invites_bp.get("/lookup")
def lookup_invite():
    """Public: what an invite token is for, before the user accepts it."""
    invite = invite_service.get_invite_by_token(request.args.get("token"))
    return {
        "email": invite.email,
        "role": invite.role,
        "company_id": invite.company_id,
        "status": invite.status,
        "expires_at": invite.to_dict()["expires_at"],
    }


@invites_bp.post("/accept")
def accept_invite():
    """
    Public. Body: {"token", "full_name"?, "external_subject"?}

    Returns the new profile and a bearer token.
    Errors: 404 not_found, 409 already_used, 410 expired.
    """
    payload = json_payload()
    token = payload.get("token")
    if not token:
        raise InviteError("not_found", "token is required")
    profile = invite_service.accept_invite(
        token,
        full_name=payload.get("full_name"),
        external_subject=payload.get("external_subject"),
    )
    _session, bearer = session_service.create_session(profile.id)
    return {"profile": profile.to_dict(), "token": bearer}, 201
