from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z


class Profile(db.Model):
    """
    Principal record: one row per person who can act in the system.

    MULTI-TENANT: company_id is required for every role except super_admin.
    department_id, when set, references a department of the same company.

    WHY external_subject: identities live in the external identity
    provider. The profile only stores its subject id so a provider session
    can be bridged to a principal.
    """
    __tablename__ = "profiles"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_profiles_email"),
        db.Index("ix_profiles_company_role", "company_id", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    full_name = db.Column(db.String(255), nullable=True)
    role = db.Column(db.String(32), nullable=False, default="staff", index=True)

    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True, index=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    external_subject = db.Column(db.String(255), nullable=True, unique=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    company = db.relationship("Company", backref=db.backref("profiles", lazy=True))
    department = db.relationship("Department", backref=db.backref("profiles", lazy=True))

    def __repr__(self) -> str:
        return f"<Profile id={self.id} email={self.email!r} role={self.role}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "full_name": self.full_name,
            "role": self.role,
            "company_id": self.company_id,
            "department_id": self.department_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class SessionToken(db.Model):
    """
    Bearer session bridged from the identity provider.

    SECURITY NOTES:
    - Tokens stored hashed (SHA-256), never in plaintext
    - Absolute expiry, revocable
    - Tenant context is read from the profile on every request, so a
      deactivated profile or company loses access immediately
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_profile_active", "profile_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    profile_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=False, index=True)
    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    profile = db.relationship("Profile", backref=db.backref("sessions", lazy=True))


class Invite(db.Model):
    """
    Single-use invitation binding an email to a role/company/department.

    LIFECYCLE: pending -> accepted, never reversed. Acceptance flips the
    status with a conditional update and creates the profile in the same
    transaction, so two concurrent acceptances cannot both succeed.
    """
    __tablename__ = "invites"
    __table_args__ = (
        db.Index("ix_invites_company_status", "company_id", "status"),
        db.Index("ix_invites_email_status", "email", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(32), nullable=False)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)

    token = db.Column(db.String(64), nullable=False, unique=True, index=True)
    status = db.Column(db.String(16), nullable=False, default="pending")

    invited_by = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    accepted_profile_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self, *, include_token: bool = False) -> dict:
        data = {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "company_id": self.company_id,
            "department_id": self.department_id,
            "status": self.status,
            "invited_by": self.invited_by,
            "expires_at": to_utc_z(self.expires_at),
            "accepted_at": to_utc_z(self.accepted_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_token:
            data["token"] = self.token
        return data
