# Overview: Service-layer operations for companies and departments.

"""
Company and Department Service

MULTI-TENANT: A company is the tenant boundary. Only super_admin creates or
deletes companies; a company_owner reads and updates its own.

LIFECYCLE:
- create_company seeds the predefined departments and can invite the
  first owner in the same call
- delete is soft: is_active=False, profiles of the company are deactivated
  and their sessions revoked. Roles are never changed, and the acting
  principal is never touched.

Department deletion detaches profiles and pending invites from the
department; nobody's role or status changes.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import DEFAULT_DEPARTMENTS, SUBSCRIPTION_PLANS, Company, Department, Invite, Profile
from ..permissions import Action, Entity, Principal
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    validate_payload,
)
from . import event_service
from .concurrency import run_with_retry
from .policy_service import PermissionDeniedError, require
from .session_service import revoke_profile_sessions
from .tenant_service import get_scoped, resolve_company_id, scope_query


COMPANY_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "name", "industry", "address", "phone", "email", "website",
        "subscription_plan", "max_users", "is_active",
    }),
    required_on_create=frozenset({"name"}),
)

# Billing and activation fields are managed by super_admin only
PLATFORM_FIELDS = frozenset({"subscription_plan", "max_users", "is_active"})

DEPARTMENT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "description"}),
    required_on_create=frozenset({"name"}),
)


def _enforce_company_rules(patch: dict) -> None:
    plan = patch.get("subscription_plan")
    if plan is not None and plan not in SUBSCRIPTION_PLANS:
        raise ValidationError(f"subscription_plan must be one of: {', '.join(SUBSCRIPTION_PLANS)}")
    if "max_users" in patch and patch["max_users"] is not None and patch["max_users"] < 1:
        raise ValidationError("max_users must be >= 1")


def create_company(principal: Principal, payload: dict, *, owner_email: str | None = None):
    """
    Create a company with its predefined departments.

    Returns (company, invite) where invite is the owner invitation when
    owner_email was given, else None.
    """
    require(principal, Action.CREATE, Entity.COMPANY)

    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    payload.pop("is_active", None)
    patch = validate_payload(model=Company, payload=payload, policy=COMPANY_POLICY, partial=False)
    _enforce_company_rules(patch)

    try:
        company = Company(
            subscription_plan=patch.pop("subscription_plan", None) or "free",
            max_users=patch.pop("max_users", None) or 50,
            is_active=True,
            **patch,
        )
        db.session.add(company)
        db.session.flush()
        for name, description in DEFAULT_DEPARTMENTS:
            db.session.add(Department(company_id=company.id, name=name, description=description, is_predefined=True))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    event_service.publish(Entity.COMPANY, "insert", company_id=company.id, ids=[company.id])

    invite = None
    if owner_email:
        from .invite_service import create_invite

        invite = create_invite(principal, email=owner_email, role="company_owner", company_id=company.id)
    return company, invite


def update_company(principal: Principal, company_id, payload: dict) -> Company:
    company = get_scoped(principal, Company, company_id, label="Company")
    require(principal, Action.UPDATE, Entity.COMPANY, target_company_id=company.id)

    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    if not principal.is_super_admin and PLATFORM_FIELDS & set(payload):
        raise PermissionDeniedError(
            f"only super_admin may change {', '.join(sorted(PLATFORM_FIELDS & set(payload)))}",
            principal=principal,
            action=Action.UPDATE,
            entity=Entity.COMPANY,
        )

    patch = validate_payload(model=Company, payload=payload, policy=COMPANY_POLICY, partial=True)
    _enforce_company_rules(patch)

    if patch.get("is_active") is False:
        # Deactivation has its own cascade
        patch.pop("is_active")
        for key, value in patch.items():
            setattr(company, key, value)
        return deactivate_company(principal, company.id)

    for key, value in patch.items():
        setattr(company, key, value)

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    event_service.publish(Entity.COMPANY, "update", company_id=company.id, ids=[company.id])
    return company


def deactivate_company(principal: Principal, company_id) -> Company:
    """
    Soft-delete a company.

    Cascades to profiles of the company (deactivated, sessions revoked).
    Roles are untouched and the acting principal is excluded.
    """
    company = get_scoped(principal, Company, company_id, label="Company")
    require(principal, Action.DELETE, Entity.COMPANY, target_company_id=company.id)

    try:
        company.is_active = False
        affected = []
        for profile in db.session.query(Profile).filter(Profile.company_id == company.id, Profile.is_active.is_(True)):
            if profile.id == principal.user_id:
                continue
            profile.is_active = False
            revoke_profile_sessions(profile.id, "Company deactivated")
            affected.append(profile.id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    event_service.publish(Entity.COMPANY, "update", company_id=company.id, ids=[company.id], is_active=False)
    if affected:
        event_service.publish(Entity.PROFILE, "update", company_id=company.id, ids=affected)
    return company


def get_company(principal: Principal, company_id) -> Company:
    require(principal, Action.READ, Entity.COMPANY)
    return get_scoped(principal, Company, company_id, label="Company")


def list_companies(principal: Principal, *, search=None, include_inactive: bool = True) -> list[Company]:
    require(principal, Action.READ, Entity.COMPANY)

    def _op():
        query = scope_query(principal, db.session.query(Company), Company)
        if search:
            query = query.filter(Company.name.ilike(f"%{search.strip()}%"))
        if not include_inactive:
            query = query.filter(Company.is_active.is_(True))
        return query.order_by(Company.name.asc(), Company.id.asc()).all()

    return run_with_retry(_op)


def company_user_counts(company_ids: list[int]) -> dict[int, int]:
    """Active profile count per company (company list view)."""
    if not company_ids:
        return {}
    rows = (
        db.session.query(Profile.company_id, func.count(Profile.id))
        .filter(Profile.company_id.in_(company_ids), Profile.is_active.is_(True))
        .group_by(Profile.company_id)
        .all()
    )
    return {company_id: count for company_id, count in rows}


# =============================================================================
# Departments
# =============================================================================

def _ensure_department_name_available(company_id: int, name: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Department.id).filter(
        Department.company_id == company_id,
        func.lower(Department.name) == name.lower(),
    )
    if exclude_id is not None:
        query = query.filter(Department.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"department {name} already exists")


def create_department(principal: Principal, payload: dict) -> Department:
    requested_company = payload.get("company_id") if isinstance(payload, dict) else None
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = {k: v for k, v in payload.items() if k != "company_id"}
    company_id = resolve_company_id(principal, requested_company)
    require(principal, Action.CREATE, Entity.DEPARTMENT, target_company_id=company_id)

    patch = validate_payload(model=Department, payload=payload, policy=DEPARTMENT_POLICY, partial=False)
    _ensure_department_name_available(company_id, patch["name"])

    department = Department(company_id=company_id, is_predefined=False, **patch)
    try:
        db.session.add(department)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    event_service.publish(Entity.DEPARTMENT, "insert", company_id=company_id, ids=[department.id])
    return department


def update_department(principal: Principal, department_id, payload: dict) -> Department:
    department = get_scoped(principal, Department, department_id, label="Department")
    require(principal, Action.UPDATE, Entity.DEPARTMENT, target_company_id=department.company_id)

    patch = validate_payload(model=Department, payload=payload, policy=DEPARTMENT_POLICY, partial=True)
    if "name" in patch:
        _ensure_department_name_available(department.company_id, patch["name"], exclude_id=department.id)

    for key, value in patch.items():
        setattr(department, key, value)
    db.session.commit()

    event_service.publish(Entity.DEPARTMENT, "update", company_id=department.company_id, ids=[department.id])
    return department


def delete_department(principal: Principal, department_id) -> None:
    """
    Delete a department and detach its members and pending invites.

    Members keep their role and status.
    """
    department = get_scoped(principal, Department, department_id, label="Department")
    require(principal, Action.DELETE, Entity.DEPARTMENT, target_company_id=department.company_id)

    company_id = department.company_id
    try:
        detached = [
            p.id for p in db.session.query(Profile).filter(Profile.department_id == department.id)
        ]
        db.session.query(Profile).filter(Profile.department_id == department.id).update(
            {Profile.department_id: None}, synchronize_session=False
        )
        db.session.query(Invite).filter(Invite.department_id == department.id).update(
            {Invite.department_id: None}, synchronize_session=False
        )
        db.session.delete(department)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    event_service.publish(Entity.DEPARTMENT, "delete", company_id=company_id, ids=[int(department_id)])
    if detached:
        event_service.publish(Entity.PROFILE, "update", company_id=company_id, ids=detached)


def list_departments(principal: Principal, *, company_id=None) -> list[Department]:
    require(principal, Action.READ, Entity.DEPARTMENT)

    def _op():
        query = scope_query(principal, db.session.query(Department), Department)
        if company_id is not None:
            query = query.filter(Department.company_id == company_id)
        return query.order_by(Department.company_id.asc(), Department.name.asc()).all()

    return run_with_retry(_op)


def require_department_in_company(department_id, company_id: int | None) -> Department | None:
    """
    Resolve a department reference for a profile or invite.

    A department of another company is rejected as a validation error.
    """
    if department_id in (None, ""):
        return None
    if company_id is None:
        raise ValidationError("a department requires a company")
    try:
        department = db.session.get(Department, int(department_id))
    except (TypeError, ValueError):
        raise ValidationError("department_id must be an integer") from None
    if department is None or department.company_id != company_id:
        raise ValidationError("department does not belong to the company")
    return department
