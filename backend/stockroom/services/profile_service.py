# Overview: Service-layer operations for profiles (principals) within a tenant.

"""
Profile Service

MULTI-TENANT: profiles are listed and edited within the principal's
company; super_admin sees all.

SECURITY:
- Role changes go through policy_service.check_role_assignment: no
  self-escalation, no assigning above one's own rank
- A profile never deactivates or deletes itself
- Bulk status changes apply to the explicitly listed ids only
- department_id must reference a department of the profile's company
"""

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Invite, Profile, PurchaseOrder, SessionToken, StockMovement, SupplierQuote
from ..permissions import Action, Entity, Principal, Role
from ..validation import ConflictError, ValidationError, coerce_int
from . import event_service
from .company_service import require_department_in_company
from .concurrency import run_with_retry
from .policy_service import PermissionDeniedError, check_profile_mutation, check_role_assignment, require
from .session_service import revoke_profile_sessions
from .tenant_service import get_scoped, scope_query, require_company_active


PROFILE_UPDATE_FIELDS = frozenset({"full_name", "role", "department_id", "is_active", "company_id"})
SELF_SERVICE_FIELDS = frozenset({"full_name"})


def get_profile(principal: Principal, profile_id) -> Profile:
    if principal.user_id == _as_int(profile_id):
        return db.session.get(Profile, principal.user_id)
    require(principal, Action.READ, Entity.PROFILE)
    return get_scoped(principal, Profile, profile_id, label="Profile")


def _as_int(value) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def list_profiles(
    principal: Principal,
    *,
    search=None,
    role=None,
    company_id=None,
    department_id=None,
    active=None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Profile], int]:
    require(principal, Action.READ, Entity.PROFILE)

    if role not in (None, "", "all"):
        try:
            role = Role.parse(role).value
        except ValueError as exc:
            raise ValidationError(str(exc)) from None

    def _op():
        query = scope_query(principal, db.session.query(Profile), Profile)
        if company_id is not None:
            query = query.filter(Profile.company_id == company_id)
        if department_id is not None:
            query = query.filter(Profile.department_id == department_id)
        if role not in (None, "", "all"):
            query = query.filter(Profile.role == role)
        if active is not None:
            query = query.filter(Profile.is_active.is_(bool(active)))
        if search:
            like = f"%{search.strip()}%"
            query = query.filter(or_(Profile.email.ilike(like), Profile.full_name.ilike(like)))
        total = query.count()
        rows = query.order_by(Profile.email.asc(), Profile.id.asc()).offset(offset).limit(limit).all()
        return rows, total

    return run_with_retry(_op)


def update_profile(principal: Principal, profile_id, payload: dict) -> Profile:
    """
    Partial update of a profile.

    A principal may always edit its own full_name. Everything else needs
    profile update rights over the target.
    """
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(payload) - PROFILE_UPDATE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    is_self = principal.user_id == _as_int(profile_id)
    if is_self and set(payload) <= SELF_SERVICE_FIELDS:
        target = db.session.get(Profile, principal.user_id)
    else:
        target = get_scoped(principal, Profile, profile_id, label="Profile")
        check_profile_mutation(principal, target, Action.UPDATE)

    new_company_id = target.company_id
    if "company_id" in payload and payload["company_id"] != target.company_id:
        if not principal.is_super_admin:
            raise PermissionDeniedError("only super_admin may move a profile between companies", principal=principal, action=Action.UPDATE, entity=Entity.PROFILE)
        new_company_id = None if payload["company_id"] is None else coerce_int("company_id", payload["company_id"])
        if new_company_id is not None:
            require_company_active(new_company_id)

    new_role = Role.parse(target.role)
    if "role" in payload:
        staged = _StagedTarget(target.id, target.role, new_company_id)
        new_role = check_role_assignment(principal, staged, payload["role"])
    elif new_company_id is None and new_role.is_tenant_bound:
        raise ValidationError(f"{new_role.value} requires a company")

    department_id = target.department_id
    if "department_id" in payload:
        department_id = payload["department_id"]
    elif new_company_id != target.company_id:
        department_id = None
    department = require_department_in_company(department_id, new_company_id)

    if "is_active" in payload:
        if not isinstance(payload["is_active"], bool):
            raise ValidationError("is_active must be true or false")
        if is_self and payload["is_active"] is False:
            raise PermissionDeniedError("cannot deactivate your own profile", principal=principal, action=Action.UPDATE, entity=Entity.PROFILE)

    try:
        if "full_name" in payload:
            target.full_name = (payload["full_name"] or "").strip() or None
        target.role = new_role.value
        target.company_id = new_company_id
        target.department_id = department.id if department else None
        if "is_active" in payload:
            target.is_active = payload["is_active"]
            if not target.is_active:
                revoke_profile_sessions(target.id, "Profile deactivated")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    event_service.publish(Entity.PROFILE, "update", company_id=target.company_id, ids=[target.id])
    return target


class _StagedTarget:
    """Target as it will look after the update, for role checks."""

    def __init__(self, profile_id: int, role: str, company_id: int | None):
        self.id = profile_id
        self.role = role
        self.company_id = company_id


def set_profiles_active(principal: Principal, profile_ids, active: bool) -> list[Profile]:
    """
    Activate or deactivate an explicit list of profiles, all or nothing.

    The acting principal may not be in the list, and no role changes.
    """
    if not isinstance(profile_ids, list) or not profile_ids:
        raise ValidationError("profile_ids must be a non-empty list")
    if not isinstance(active, bool):
        raise ValidationError("is_active must be true or false")

    ids = []
    for raw in profile_ids:
        pid = coerce_int("profile_ids", raw)
        if pid not in ids:
            ids.append(pid)
    if principal.user_id in ids:
        raise PermissionDeniedError("cannot change your own status", principal=principal, action=Action.UPDATE, entity=Entity.PROFILE)

    targets = []
    for pid in ids:
        target = get_scoped(principal, Profile, pid, label="Profile")
        check_profile_mutation(principal, target, Action.UPDATE)
        targets.append(target)

    try:
        for target in targets:
            target.is_active = active
            if not active:
                revoke_profile_sessions(target.id, "Profile deactivated")
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    for company_id in {t.company_id for t in targets}:
        event_service.publish(
            Entity.PROFILE,
            "update",
            company_id=company_id,
            ids=[t.id for t in targets if t.company_id == company_id],
        )
    return targets


def delete_profile(principal: Principal, profile_id) -> None:
    """
    Hard-delete a profile without history.

    Profiles referenced by ledger rows, quotes or purchase orders are
    kept for attribution; deactivate them instead.
    """
    target = get_scoped(principal, Profile, profile_id, label="Profile")
    check_profile_mutation(principal, target, Action.DELETE)

    for model, column, what in (
        (StockMovement, StockMovement.user_id, "stock movements"),
        (PurchaseOrder, PurchaseOrder.user_id, "purchase orders"),
        (SupplierQuote, SupplierQuote.user_id, "supplier quotes"),
    ):
        if db.session.query(model.id).filter(column == target.id).first() is not None:
            raise ConflictError(f"profile has {what}; deactivate it instead")

    company_id = target.company_id
    try:
        db.session.query(SessionToken).filter_by(profile_id=target.id).delete(synchronize_session=False)
        db.session.query(Invite).filter_by(invited_by=target.id).update({Invite.invited_by: None}, synchronize_session=False)
        db.session.query(Invite).filter_by(accepted_profile_id=target.id).update(
            {Invite.accepted_profile_id: None}, synchronize_session=False
        )
        db.session.delete(target)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    event_service.publish(Entity.PROFILE, "delete", company_id=company_id, ids=[int(profile_id)])
