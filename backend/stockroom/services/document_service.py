# Overview: Atomic allocation of global document numbers.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(*, document_type: str, prefix: str, pad: int = 6) -> str:
    """
    Allocate the next number for a document type, e.g. PO-000001.

    The counter row is bumped with a single UPDATE so concurrent callers
    never receive the same number. Runs inside the caller's transaction:
    a rolled-back order releases nothing but may leave a gap, which is
    acceptable for stable, unique numbering.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(DocumentSequence.document_type == document_type)
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        nested = db.session.begin_nested()
        try:
            db.session.add(DocumentSequence(document_type=document_type, next_number=1))
            nested.commit()
        except IntegrityError:
            # Another writer created the row first
            nested.rollback()
        result = db.session.execute(stmt)
        if not result.rowcount:
            raise DocumentSequenceError(f"could not allocate {document_type} number")

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type)
        .scalar()
    )
    return f"{prefix}-{current - 1:0{pad}d}"
