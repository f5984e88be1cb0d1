# Overview: Row locking and bounded retry helpers for database work.

from __future__ import annotations

import time

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _default_attempts() -> int:
    if has_app_context():
        return int(current_app.config.get("READ_RETRY_ATTEMPTS", 3))
    return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute an idempotent DB read with retry on transient store failures.

    Retries OperationalError (lost connection, lock timeout) a bounded number
    of times with exponential backoff. Writes must not be passed here unless
    they carry an idempotency key; a blind retry of an insert can double count.
    """
    attempts = attempts or _default_attempts()
    for attempt in range(attempts):
        try:
            return func()
        except OperationalError:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            if has_app_context():
                current_app.logger.warning(
                    "Transient store error, retrying (attempt %s of %s)", attempt + 1, attempts
                )
            time.sleep(backoff_base * (2 ** attempt))
    return None
