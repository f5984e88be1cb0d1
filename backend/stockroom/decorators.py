# Overview: Request decorators for API routes (bearer authentication and modify gate).

from functools import wraps

from flask import g, jsonify, request

from .permissions import Principal
from .services import policy_service, session_service


def _is_authenticated() -> bool:
    return hasattr(g, "current_profile") and hasattr(g, "principal")


def current_principal() -> Principal:
    return g.principal


def require_auth(f):
    """
    Require a bearer session and establish the principal.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_profile: the authenticated Profile row
    - g.principal: the Principal passed to every service call

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - Profile or company deactivated
    - Tenant-bound role without a company (corrupt profile)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()
        profile = session_service.validate_session(token) if token else None

        if profile is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        try:
            principal = Principal.from_profile(profile)
        except ValueError as exc:
            policy_service.log_security_event(
                event_type="TENANT_CONTEXT_MISSING",
                profile_id=profile.id,
                success=False,
                resource=request.path,
                action=request.method,
                reason=str(exc),
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
            )
            return jsonify({"error": "Invalid session: missing tenant context"}), 401

        g.current_profile = profile
        g.principal = principal
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_can_modify(f):
    """
    Require a role that may run bulk stock operations and imports.

    Must be stacked under @require_auth.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401

        if not policy_service.can_modify(g.principal):
            policy_service.log_security_event(
                event_type="PERMISSION_DENIED",
                profile_id=g.principal.user_id,
                company_id=g.principal.company_id,
                success=False,
                resource=request.path,
                action=request.method,
                reason=f"{g.principal.role.value} may not modify inventory in bulk",
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
            )
            return jsonify({"error": "Permission denied", "message": "Insufficient permissions"}), 403

        return f(*args, **kwargs)

    return decorated_function
