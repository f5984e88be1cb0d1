# Overview: Bridges identity-provider sessions to profiles via hashed bearer tokens.

"""
Session Token Bridge

WHY: Identity (login, passwords, token issuance) lives in the external
identity provider. This module only resolves an opaque bearer token to an
active Profile, so every request has an explicit principal.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- Absolute timeout (SESSION_TTL_HOURS)
- Revocable; deactivated profiles or companies lose access on the next request
"""

from __future__ import annotations

import hashlib
import secrets
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import Profile, SessionToken
from stockroom.time_utils import as_utc_naive, utcnow


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy). Never stored."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not a password hash: tokens are already high-entropy.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(profile_id: int, *, ttl_hours: int | None = None) -> tuple[SessionToken, str]:
    """
    Create a session for an existing, active profile.

    Returns (session_record, plaintext_token). Raises ValueError if the
    profile is missing or inactive.
    """
    profile = db.session.get(Profile, profile_id)
    if profile is None:
        raise ValueError("Profile not found")
    if not profile.is_active:
        raise ValueError("Profile is not active")

    if ttl_hours is None:
        ttl_hours = int(current_app.config.get("SESSION_TTL_HOURS", 24))

    plaintext = generate_token()
    session = SessionToken(
        profile_id=profile.id,
        token_hash=hash_token(plaintext),
        expires_at=utcnow() + timedelta(hours=ttl_hours),
        is_revoked=False,
    )
    db.session.add(session)
    db.session.commit()
    return session, plaintext


def validate_session(token: str) -> Profile | None:
    """
    Resolve a bearer token to its Profile.

    Returns None if the token is unknown, expired or revoked, the profile
    is deactivated, or the profile's company is deactivated.
    """
    session = (
        db.session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )
    if session is None:
        return None

    if as_utc_naive(session.expires_at) < utcnow():
        return None

    profile = session.profile
    if profile is None or not profile.is_active:
        return None

    if profile.company_id is not None and not profile.company.is_active:
        return None

    return profile


def revoke_session(token: str, reason: str = "Logout") -> bool:
    session = db.session.query(SessionToken).filter_by(token_hash=hash_token(token)).first()
    if session is None or session.is_revoked:
        return False
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason
    db.session.commit()
    return True


def revoke_profile_sessions(profile_id: int, reason: str) -> int:
    """Revoke every live session of a profile. Does not commit."""
    now = utcnow()
    count = 0
    for session in db.session.query(SessionToken).filter_by(profile_id=profile_id, is_revoked=False):
        session.is_revoked = True
        session.revoked_at = now
        session.revoked_reason = reason
        count += 1
    return count
