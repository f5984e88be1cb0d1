from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z


class SecurityEvent(db.Model):
    """
    Security event audit log with tenant context.

    WHY: Track denied actions and cross-tenant attempts.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_profile_type", "profile_id", "event_type"),
        db.Index("ix_security_events_company_occurred", "company_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=True, index=True)
    # Plain column: audit rows outlive deleted profiles
    profile_id = db.Column(db.Integer, nullable=True, index=True)

    # PERMISSION_DENIED, CROSS_TENANT_ACCESS_DENIED, INVALID_TOKEN
    event_type = db.Column(db.String(64), nullable=False, index=True)
    resource = db.Column(db.String(255), nullable=True)
    action = db.Column(db.String(64), nullable=True)
    success = db.Column(db.Boolean, nullable=False, default=False)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "profile_id": self.profile_id,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
