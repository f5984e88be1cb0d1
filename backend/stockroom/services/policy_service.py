# Overview: Authorization policy engine; decides ALLOW/DENY for a principal, action and entity.

"""
Authorization Policy Engine

WHY: One decision point for every mutation and read. Routes and services
pass an explicit Principal; nothing here reads request globals, so every
rule can be exercised directly in tests.

MULTI-TENANT: Tenant-bound roles act only inside their own company.
A target in another company is a cross-tenant hit, reported as "not found"
so tenant membership cannot be enumerated.

DESIGN PRINCIPLES:
- Fail closed: an action missing from the capability table is denied
- Denials are distinguishable from "not found" (PermissionDeniedError -> 403)
- Log denials only: grants are not logged
- Role edits never escalate: nobody assigns a role above their own, and
  nobody changes their own role or deletes their own profile
"""

from __future__ import annotations

from dataclasses import dataclass

from ..extensions import db
from ..models import SecurityEvent
from ..permissions import (
    Action,
    Entity,
    MODIFY_ROLES,
    Principal,
    Role,
    allowed_actions,
)
from ..validation import ValidationError
from .tenant_service import TenantAccessError


class PermissionDeniedError(Exception):
    """Raised when the policy engine denies an action (HTTP 403)."""

    def __init__(
        self,
        message: str,
        *,
        principal: Principal | None = None,
        action: Action | None = None,
        entity: Entity | None = None,
    ):
        super().__init__(message)
        self.principal = principal
        self.action = action
        self.entity = entity


@dataclass(frozen=True)
class Decision:
    """
    Outcome of authorize().

    scope_company_id is the row filter listing queries must apply
    (None means unscoped, which only super_admin gets).
    """
    allowed: bool
    reason: str
    scope_company_id: int | None = None
    cross_tenant: bool = False


def log_security_event(
    *,
    event_type: str,
    profile_id: int | None = None,
    company_id: int | None = None,
    success: bool = False,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Append a security event and commit it.

    Commits the session: call only once pending domain writes have been
    committed or rolled back (the app error handlers roll back first).

    event_type examples:
    - PERMISSION_DENIED
    - CROSS_TENANT_ACCESS_DENIED
    - INVALID_TOKEN
    """
    event = SecurityEvent(
        profile_id=profile_id,
        company_id=company_id,
        event_type=event_type,
        success=success,
        resource=resource,
        action=action,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent[:512] if user_agent else None,
    )
    db.session.add(event)
    db.session.commit()
    return event


def authorize(
    principal: Principal,
    action: Action,
    entity: Entity,
    *,
    target_company_id: int | None = None,
) -> Decision:
    """
    Decide whether principal may perform action on entity.

    Precedence:
    1. The role's capability table must list the action for the entity
    2. super_admin: allowed, unscoped
    3. Everyone else: allowed only when the target (if any) is in their own
       company; the decision carries their company as the row filter
    """
    action = Action(action)
    entity = Entity(entity)

    if action not in allowed_actions(principal.role, entity):
        return Decision(
            allowed=False,
            reason=f"{principal.role.value} may not {action.value} {entity.value}",
        )

    if principal.is_super_admin:
        return Decision(allowed=True, reason="super_admin")

    if target_company_id is not None and target_company_id != principal.company_id:
        return Decision(
            allowed=False,
            reason=f"{entity.value} belongs to another company",
            cross_tenant=True,
        )

    return Decision(
        allowed=True,
        reason=f"{principal.role.value} within own company",
        scope_company_id=principal.company_id,
    )


def require(
    principal: Principal,
    action: Action,
    entity: Entity,
    *,
    target_company_id: int | None = None,
) -> Decision:
    """
    authorize() that raises on deny.

    Raises:
        TenantAccessError: target lives in another company (rendered as not found)
        PermissionDeniedError: the role lacks the capability
    """
    decision = authorize(principal, action, entity, target_company_id=target_company_id)
    if decision.allowed:
        return decision
    if decision.cross_tenant:
        raise TenantAccessError(
            f"{Entity(entity).value.replace('_', ' ').capitalize()} not found",
            principal=principal,
            cross_tenant=True,
            detail=decision.reason,
        )
    raise PermissionDeniedError(decision.reason, principal=principal, action=Action(action), entity=Entity(entity))


def can_modify(principal: Principal) -> bool:
    """Gate for bulk stock operations, CSV import and product creation."""
    return principal.role in MODIFY_ROLES


def require_can_modify(principal: Principal, operation: str) -> None:
    if not can_modify(principal):
        raise PermissionDeniedError(
            f"{principal.role.value} may not perform {operation}",
            principal=principal,
        )


# =============================================================================
# Role assignment and profile deletion
# =============================================================================

def check_role_assignment(principal: Principal, target, new_role) -> Role:
    """
    Validate that principal may set target profile's role to new_role.

    RULES:
    - Nobody changes their own role (no self-escalation, no self-demotion)
    - Nobody assigns a role ranked above their own
    - Nobody edits a profile ranked above their own
    - Tenant-bound roles require the target to belong to a company

    Returns the parsed Role. Raises PermissionDeniedError or ValidationError.
    """
    try:
        role = Role.parse(new_role)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None

    current = Role.parse(target.role)

    if target.id == principal.user_id and role is not current:
        raise PermissionDeniedError("cannot change your own role", principal=principal, action=Action.UPDATE, entity=Entity.PROFILE)

    if role.rank > principal.role.rank:
        raise PermissionDeniedError(
            f"{principal.role.value} may not assign {role.value}",
            principal=principal,
            action=Action.UPDATE,
            entity=Entity.PROFILE,
        )

    if current.rank > principal.role.rank:
        raise PermissionDeniedError(
            f"{principal.role.value} may not modify a {current.value}",
            principal=principal,
            action=Action.UPDATE,
            entity=Entity.PROFILE,
        )

    if role.is_tenant_bound and target.company_id is None:
        raise ValidationError(f"{role.value} requires a company")

    return role


def check_profile_mutation(principal: Principal, target, action: Action) -> None:
    """
    Guard for update/delete/deactivate of a specific profile.

    - A profile can never delete or deactivate itself
    - Profiles ranked above the principal are off limits
    """
    require(principal, action, Entity.PROFILE, target_company_id=target.company_id)

    if target.id == principal.user_id and action is Action.DELETE:
        raise PermissionDeniedError("cannot delete your own profile", principal=principal, action=action, entity=Entity.PROFILE)

    if Role.parse(target.role).rank > principal.role.rank:
        raise PermissionDeniedError(
            f"{principal.role.value} may not modify a {target.role}",
            principal=principal,
            action=action,
            entity=Entity.PROFILE,
        )


# =============================================================================
# Invitations
# =============================================================================

def check_invite(
    principal: Principal,
    *,
    role,
    company_id: int | None,
    department_id: int | None,
) -> Role:
    """
    Validate an invite request.

    - super_admin may invite any role; a super_admin invite carries no company
    - company_owner may invite company_owner and below into its own company
    - department_manager may invite staff or department_manager into its
      own company and its own department only
    - staff may not invite

    Returns the parsed Role.
    """
    try:
        invite_role = Role.parse(role)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None

    require(principal, Action.CREATE, Entity.INVITE, target_company_id=company_id)

    if invite_role is Role.SUPER_ADMIN:
        if not principal.is_super_admin:
            raise PermissionDeniedError("only super_admin may invite super_admin", principal=principal, action=Action.CREATE, entity=Entity.INVITE)
        if company_id is not None or department_id is not None:
            raise ValidationError("super_admin invites cannot carry a company or department")
        return invite_role

    if company_id is None:
        raise ValidationError("company_id is required")

    if invite_role.rank > principal.role.rank:
        raise PermissionDeniedError(
            f"{principal.role.value} may not invite {invite_role.value}",
            principal=principal,
            action=Action.CREATE,
            entity=Entity.INVITE,
        )

    if principal.role is Role.DEPARTMENT_MANAGER:
        if invite_role not in (Role.STAFF, Role.DEPARTMENT_MANAGER):
            raise PermissionDeniedError(
                f"department_manager may not invite {invite_role.value}",
                principal=principal,
                action=Action.CREATE,
                entity=Entity.INVITE,
            )
        if principal.department_id is None or department_id != principal.department_id:
            raise PermissionDeniedError(
                "department_manager may only invite into its own department",
                principal=principal,
                action=Action.CREATE,
                entity=Entity.INVITE,
            )

    return invite_role
