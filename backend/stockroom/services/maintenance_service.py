# Overview: Service-layer housekeeping for audit rows and sessions.

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import or_

from ..extensions import db
from ..models import SecurityEvent, SessionToken
from stockroom.time_utils import utcnow


def cleanup_security_events(*, retention_days: int = 90) -> int:
    """Delete security events older than retention_days."""
    cutoff = utcnow() - timedelta(days=retention_days)
    deleted = db.session.query(SecurityEvent).filter(
        SecurityEvent.occurred_at < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted


def cleanup_sessions() -> int:
    """Delete expired or revoked session tokens."""
    deleted = db.session.query(SessionToken).filter(
        or_(SessionToken.expires_at < utcnow(), SessionToken.is_revoked.is_(True))
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
