from __future__ import annotations

from ..extensions import db
from stockroom.time_utils import to_utc_z


IMPORT_TYPES = ("products", "suppliers")


class ImportBatch(db.Model):
    """
    One CSV import run.

    LIFECYCLE:
    1. RUNNING: rows are validated and saved chunk by chunk
    2. CANCEL_REQUESTED: a user asked to stop; honored at the next chunk boundary
    3. COMPLETED / CANCELLED: final counts recorded

    Counts always add up: succeeded + failed + skipped == total_rows once
    the batch leaves RUNNING.
    """
    __tablename__ = "import_batches"
    __table_args__ = (
        db.Index("ix_import_batches_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    import_type = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(24), nullable=False, default="RUNNING", index=True)

    source_file_name = db.Column(db.String(255), nullable=True)

    total_rows = db.Column(db.Integer, nullable=False, default=0)
    succeeded_rows = db.Column(db.Integer, nullable=False, default=0)
    failed_rows = db.Column(db.Integer, nullable=False, default=0)
    skipped_rows = db.Column(db.Integer, nullable=False, default=0)
    errors = db.Column(db.JSON, nullable=False, default=list)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("profiles.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "import_type": self.import_type,
            "status": self.status,
            "source_file_name": self.source_file_name,
            "total_rows": self.total_rows,
            "succeeded": self.succeeded_rows,
            "failed": self.failed_rows,
            "skipped": self.skipped_rows,
            "errors": list(self.errors or []),
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at),
        }
