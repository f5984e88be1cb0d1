# Overview: Invitations; creation by authorized inviters and exactly-once acceptance.

"""
Invite Service

WHY: New members join a company through a single-use token bound to an
email, a role and (optionally) a department.

EXACTLY-ONCE: accept_invite claims the invite with
    UPDATE invites SET status='accepted' WHERE id=? AND status='pending'
and inserts the profile in the same transaction. Only the caller whose
update touched the row proceeds; any other concurrent caller sees
"already_used" and no second profile is created. If the profile insert
fails, the claim rolls back with it.

DELIVERY: the invite link is handed to the mailer registered at
app.extensions["invite_mailer"]. Without one, the link is logged.
"""

from __future__ import annotations

import re
import secrets
from datetime import timedelta

from flask import current_app
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Company, Invite, Profile
from ..permissions import Action, Entity, Principal, Role
from ..validation import ConflictError, ValidationError
from stockroom.time_utils import as_utc_naive, utcnow
from . import event_service
from .company_service import require_department_in_company
from .concurrency import run_with_retry
from .policy_service import check_invite, require
from .tenant_service import get_scoped, require_company_active, scope_query


EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class InviteError(Exception):
    """
    Invite acceptance failure.

    code is one of: not_found, already_used, expired
    """

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or code.replace("_", " "))
        self.code = code


class LoggingInviteMailer:
    """Fallback mailer: writes the acceptance link to the app log."""

    def send_invite(self, invite: Invite, accept_url: str) -> None:
        current_app.logger.info("Invite for %s (%s): %s", invite.email, invite.role, accept_url)


def _normalize_email(email) -> str:
    if not isinstance(email, str) or not EMAIL_RE.match(email.strip()):
        raise ValidationError("a valid email is required")
    return email.strip().lower()


def accept_url(invite: Invite) -> str:
    base = current_app.config.get("INVITE_BASE_URL", "").rstrip("/")
    return f"{base}/accept-invite?token={invite.token}"


def _deliver(invite: Invite) -> None:
    mailer = current_app.extensions.get("invite_mailer") or LoggingInviteMailer()
    try:
        mailer.send_invite(invite, accept_url(invite))
    except Exception:
        # The invite is committed; it can be re-sent.
        current_app.logger.exception("Failed to deliver invite %s", invite.id)


def create_invite(
    principal: Principal,
    *,
    email,
    role,
    company_id=None,
    department_id=None,
) -> Invite:
    """
    Create a pending invite and hand it to the mailer.

    company_id and department_id default to the inviter's own. The policy
    engine decides which roles the inviter may hand out.
    """
    email = _normalize_email(email)

    if company_id in (None, "") and not principal.is_super_admin:
        company_id = principal.company_id
    if department_id in (None, "") and principal.role is Role.DEPARTMENT_MANAGER:
        department_id = principal.department_id
    company_id = _maybe_int(company_id, "company_id")
    department_id = _maybe_int(department_id, "department_id")

    invite_role = check_invite(principal, role=role, company_id=company_id, department_id=department_id)

    if company_id is not None:
        require_company_active(company_id)
    department = require_department_in_company(department_id, company_id)

    if db.session.query(Profile.id).filter(func.lower(Profile.email) == email).first() is not None:
        raise ConflictError(f"{email} already has a profile")

    pending = db.session.query(Invite.id).filter(Invite.email == email, Invite.status == "pending")
    if company_id is None:
        pending = pending.filter(Invite.company_id.is_(None))
    else:
        pending = pending.filter(Invite.company_id == company_id)
    if pending.first() is not None:
        raise ConflictError(f"{email} already has a pending invite")

    ttl_days = int(current_app.config.get("INVITE_TTL_DAYS", 7))
    invite = Invite(
        email=email,
        role=invite_role.value,
        company_id=company_id,
        department_id=department.id if department else None,
        token=secrets.token_urlsafe(32),
        status="pending",
        invited_by=principal.user_id,
        expires_at=utcnow() + timedelta(days=ttl_days),
    )
    try:
        db.session.add(invite)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    _deliver(invite)
    event_service.publish(Entity.INVITE, "insert", company_id=company_id, ids=[invite.id])
    return invite


def _maybe_int(value, name: str):
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer") from None


def get_invite_by_token(token) -> Invite:
    if not isinstance(token, str) or not token.strip():
        raise InviteError("not_found")
    invite = db.session.query(Invite).filter_by(token=token.strip()).first()
    if invite is None:
        raise InviteError("not_found")
    return invite


def _claim(invite_id: int) -> bool:
    """Flip pending -> accepted. True only for the one caller that wins."""
    result = db.session.execute(
        update(Invite)
        .where(Invite.id == invite_id, Invite.status == "pending")
        .values(status="accepted", accepted_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def accept_invite(token, *, full_name: str | None = None, external_subject: str | None = None) -> Profile:
    """
    Consume an invite and create its profile atomically.

    Raises InviteError(not_found | already_used | expired), or
    ConflictError when the email already has a profile or the company is
    at its user limit.
    """
    invite = get_invite_by_token(token)

    if invite.status != "pending":
        raise InviteError("already_used")
    if as_utc_naive(invite.expires_at) < utcnow():
        raise InviteError("expired")

    company = None
    if invite.company_id is not None:
        company = db.session.get(Company, invite.company_id)
        if company is None or not company.is_active:
            raise InviteError("not_found")

    try:
        if not _claim(invite.id):
            db.session.rollback()
            raise InviteError("already_used")

        # Counted after the claim, in the same transaction as the insert
        if company is not None:
            active_users = (
                db.session.query(func.count(Profile.id))
                .filter(Profile.company_id == company.id, Profile.is_active.is_(True))
                .scalar()
            )
            if active_users >= company.max_users:
                raise ConflictError("company has reached its user limit")

        profile = Profile(
            email=invite.email,
            full_name=(full_name or "").strip() or None,
            role=invite.role,
            company_id=invite.company_id,
            department_id=invite.department_id,
            is_active=True,
            external_subject=(external_subject or None),
        )
        db.session.add(profile)
        db.session.flush()

        db.session.execute(
            update(Invite)
            .where(Invite.id == invite.id)
            .values(accepted_profile_id=profile.id)
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(f"{invite.email} already has a profile") from None
    except InviteError:
        raise
    except Exception:
        db.session.rollback()
        raise

    db.session.refresh(invite)
    event_service.publish(Entity.INVITE, "update", company_id=invite.company_id, ids=[invite.id], status="accepted")
    event_service.publish(Entity.PROFILE, "insert", company_id=profile.company_id, ids=[profile.id])
    return profile


def list_invites(principal: Principal, *, status=None, company_id=None) -> list[Invite]:
    require(principal, Action.READ, Entity.INVITE)

    def _op():
        query = scope_query(principal, db.session.query(Invite), Invite)
        if company_id is not None:
            query = query.filter(Invite.company_id == company_id)
        if status not in (None, "", "all"):
            query = query.filter(Invite.status == status)
        return query.order_by(Invite.created_at.desc(), Invite.id.desc()).all()

    return run_with_retry(_op)


def revoke_invite(principal: Principal, invite_id) -> None:
    """Withdraw a pending invite. Accepted invites are history and stay."""
    invite = get_scoped(principal, Invite, invite_id, label="Invite")
    require(principal, Action.DELETE, Entity.INVITE, target_company_id=invite.company_id)
    if invite.status != "pending":
        raise ConflictError("only pending invites can be revoked")
    company_id = invite.company_id
    db.session.delete(invite)
    db.session.commit()
    event_service.publish(Entity.INVITE, "delete", company_id=company_id, ids=[int(invite_id)])
