from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Global counters for human-readable document numbers (PO-000001, ...).

    WHY: numbers must be unique and stable; allocation is a single atomic
    UPDATE ... SET next_number = next_number + 1 on this row.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", name="uq_document_sequences_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
