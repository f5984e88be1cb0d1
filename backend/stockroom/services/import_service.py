# Overview: CSV import of products and suppliers with per-row isolation and chunked commits.

"""
Import Service

WHY: Companies onboard their catalog and supplier list from spreadsheets.
One bad row must not sink the other 999.

LIFECYCLE:
1. The header is checked; missing required columns fail the whole file
   before anything is written
2. An ImportBatch is created (RUNNING) and committed
3. Each row is normalized, validated and saved inside its own savepoint.
   A failing row is rolled back to its savepoint and recorded as
   {row, error}; row numbers count the header as row 1
4. Every IMPORT_CHUNK_SIZE rows the work so far is committed and the batch
   is re-read. A CANCEL_REQUESTED batch stops there: committed rows stay,
   the rest are counted as skipped
5. Final counts are written and the batch becomes COMPLETED or CANCELLED

MULTI-TENANT: rows are always written into the principal's company (or
the company a super_admin names). The CSV never selects a tenant.
"""

from __future__ import annotations

import csv
import io
from typing import Callable

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import IMPORT_TYPES, ImportBatch
from ..permissions import Action, Entity, Principal
from ..validation import ConflictError, ValidationError
from stockroom.time_utils import utcnow
from . import event_service
from .concurrency import run_with_retry
from .import_schemas import SchemaContext, schema_for
from .policy_service import require, require_can_modify
from .tenant_service import get_scoped, resolve_company_id, scope_query


TARGET_ENTITY = {
    "products": Entity.PRODUCT,
    "suppliers": Entity.SUPPLIER,
}

FINAL_STATUSES = ("COMPLETED", "CANCELLED")


def _read_rows(text: str) -> tuple[list[str], list[dict]]:
    if isinstance(text, bytes):
        text = text.decode("utf-8-sig")
    if not isinstance(text, str) or not text.strip():
        raise ValidationError("CSV file is empty")
    text = text.lstrip("\ufeff")

    reader = csv.DictReader(io.StringIO(text))
    header = [(h or "").strip().lower() for h in (reader.fieldnames or [])]
    rows = []
    for raw in reader:
        rows.append({(k or "").strip().lower(): v for k, v in raw.items() if k is not None})
    return header, rows


def _cell_text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _read_xlsx_rows(stream) -> tuple[list[str], list[dict]]:
    from openpyxl import load_workbook

    try:
        workbook = load_workbook(stream, read_only=True, data_only=True)
    except Exception as exc:  # noqa: BLE001
        raise ValidationError(f"Unreadable spreadsheet: {exc}") from None
    data = list(workbook.active.values)
    workbook.close()
    if not data:
        raise ValidationError("Spreadsheet is empty")

    header = [("" if h is None else str(h)).strip().lower() for h in data[0]]
    rows = []
    for values in data[1:]:
        if values is None or all(v is None or str(v).strip() == "" for v in values):
            continue
        rows.append({header[i]: _cell_text(values[i]) for i in range(min(len(header), len(values)))})
    return header, rows


def _cancel_requested(batch: ImportBatch, cancel_check: Callable[[int], bool] | None) -> bool:
    if cancel_check is not None and cancel_check(batch.id):
        return True
    db.session.refresh(batch)
    return batch.status == "CANCEL_REQUESTED"


def _authorize_import(principal: Principal, import_type: str, company_id) -> int:
    require_can_modify(principal, "CSV import")
    if import_type not in IMPORT_TYPES:
        raise ValidationError(f"import_type must be one of: {', '.join(IMPORT_TYPES)}")
    target_company = resolve_company_id(principal, company_id)
    require(principal, Action.CREATE, Entity.IMPORT_BATCH, target_company_id=target_company)
    require(principal, Action.CREATE, TARGET_ENTITY[import_type], target_company_id=target_company)
    return target_company


def import_csv(
    principal: Principal,
    import_type: str,
    text,
    *,
    source_file_name: str | None = None,
    company_id=None,
    cancel_check: Callable[[int], bool] | None = None,
) -> dict:
    """
    Import CSV text as products or suppliers.

    Returns {batch_id, status, total, succeeded, failed, skipped,
    errors: [{row, error}]}.

    cancel_check, when given, is consulted with the batch id at each chunk
    boundary in addition to the stored batch status.
    """
    target_company = _authorize_import(principal, import_type, company_id)
    header, rows = _read_rows(text)
    return _run_import(
        principal,
        import_type,
        target_company,
        header,
        rows,
        source_file_name=source_file_name,
        cancel_check=cancel_check,
    )


def import_xlsx(
    principal: Principal,
    import_type: str,
    stream,
    *,
    source_file_name: str | None = None,
    company_id=None,
) -> dict:
    """Same as import_csv for the first sheet of an .xlsx workbook."""
    target_company = _authorize_import(principal, import_type, company_id)
    header, rows = _read_xlsx_rows(stream)
    return _run_import(principal, import_type, target_company, header, rows, source_file_name=source_file_name)


def _run_import(
    principal: Principal,
    import_type: str,
    target_company: int,
    header: list[str],
    rows: list[dict],
    *,
    source_file_name: str | None = None,
    cancel_check: Callable[[int], bool] | None = None,
) -> dict:
    schema = schema_for(import_type)
    missing = schema.missing_columns(header)
    if missing:
        raise ValidationError(f"Missing required columns: {', '.join(missing)}")
    max_rows = int(current_app.config.get("IMPORT_MAX_ROWS", 5000))
    if len(rows) > max_rows:
        raise ValidationError(f"CSV has {len(rows)} rows; the limit is {max_rows}")

    chunk_size = max(1, int(current_app.config.get("IMPORT_CHUNK_SIZE", 10)))

    batch = ImportBatch(
        company_id=target_company,
        import_type=import_type,
        status="RUNNING",
        source_file_name=(source_file_name or "").strip() or None,
        total_rows=len(rows),
        errors=[],
        created_by_user_id=principal.user_id,
    )
    try:
        db.session.add(batch)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    succeeded = 0
    failed = 0
    skipped = 0
    errors: list[dict] = []
    created_ids: list[int] = []
    cancelled = False

    for index, raw in enumerate(rows):
        row_number = index + 2

        nested = db.session.begin_nested()
        try:
            normalized = schema.normalize_row(raw)
            problems = schema.validate_row(normalized)
            if problems:
                raise ValidationError("; ".join(problems))
            created_ids.append(
                schema.post_row(
                    normalized,
                    SchemaContext(
                        batch_id=batch.id,
                        company_id=target_company,
                        actor_user_id=principal.user_id,
                        row_number=row_number,
                    ),
                )
            )
            nested.commit()
            succeeded += 1
        except (ValueError, LookupError, SQLAlchemyError) as exc:
            nested.rollback()
            failed += 1
            errors.append({"row": row_number, "error": str(exc) or exc.__class__.__name__})

        processed = index + 1
        if processed % chunk_size == 0 and processed < len(rows):
            batch.succeeded_rows = succeeded
            batch.failed_rows = failed
            batch.errors = list(errors)
            db.session.commit()
            if _cancel_requested(batch, cancel_check):
                skipped = len(rows) - processed
                cancelled = True
                break

    try:
        batch.succeeded_rows = succeeded
        batch.failed_rows = failed
        batch.skipped_rows = skipped
        batch.errors = list(errors)
        batch.status = "CANCELLED" if cancelled else "COMPLETED"
        batch.completed_at = utcnow()
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Import %s (%s) for company %s: %s ok, %s failed, %s skipped",
        batch.id, import_type, target_company, succeeded, failed, skipped,
    )
    event_service.publish(Entity.IMPORT_BATCH, "update", company_id=target_company, ids=[batch.id], status=batch.status)
    if created_ids:
        event_service.publish(TARGET_ENTITY[import_type], "insert", company_id=target_company, ids=created_ids)

    return {
        "batch_id": batch.id,
        "status": batch.status,
        "total": len(rows),
        "succeeded": succeeded,
        "failed": failed,
        "skipped": skipped,
        "errors": errors,
    }


def request_cancel(principal: Principal, batch_id) -> ImportBatch:
    """
    Ask a running import to stop at its next chunk boundary.

    Cancelling needs the same right as starting an import.
    """
    batch = get_scoped(principal, ImportBatch, batch_id, label="Import batch")
    require(principal, Action.CREATE, Entity.IMPORT_BATCH, target_company_id=batch.company_id)

    result = db.session.execute(
        update(ImportBatch)
        .where(ImportBatch.id == batch.id, ImportBatch.status == "RUNNING")
        .values(status="CANCEL_REQUESTED")
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        db.session.rollback()
        db.session.refresh(batch)
        if batch.status in FINAL_STATUSES:
            raise ConflictError(f"import batch is already {batch.status.lower()}")
        return batch
    db.session.commit()
    db.session.refresh(batch)
    return batch


def get_batch(principal: Principal, batch_id) -> ImportBatch:
    require(principal, Action.READ, Entity.IMPORT_BATCH)
    return get_scoped(principal, ImportBatch, batch_id, label="Import batch")


def list_batches(principal: Principal, *, import_type=None, limit: int = 50) -> list[ImportBatch]:
    require(principal, Action.READ, Entity.IMPORT_BATCH)

    def _op():
        query = scope_query(principal, db.session.query(ImportBatch), ImportBatch)
        if import_type:
            query = query.filter(ImportBatch.import_type == import_type)
        return query.order_by(ImportBatch.created_at.desc(), ImportBatch.id.desc()).limit(limit).all()

    return run_with_retry(_op)
