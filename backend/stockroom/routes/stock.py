# Overview: Flask API routes for the stock ledger (movements, bulk operations, history, low stock).

"""
Stock routes.

INVARIANT: every change to a product's current_stock goes through a
movement recorded here; there is no endpoint that writes the cache
directly.

Idempotency: POST /movements honours an Idempotency-Key header (or an
idempotency_key field). A retried request with the same key returns the
original movement and books nothing new.
"""
from flask import Blueprint, request

from ..decorators import current_principal, require_auth, require_can_modify
from ..services import ledger_service
from .common import json_payload, page, page_args

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.post("/movements")
@require_auth
def create_movement():
    """
    Body: {"product_id", "type": "in"|"out", "quantity", "notes"?}
    """
    payload = json_payload()
    key = request.headers.get("Idempotency-Key") or payload.get("idempotency_key")
    principal = current_principal()
    movement = ledger_service.apply_movement(
        principal,
        product_id=payload.get("product_id"),
        movement_type=payload.get("type"),
        quantity=payload.get("quantity"),
        notes=payload.get("notes"),
        idempotency_key=key,
    )
    data = movement.to_dict()
    data["current_stock"] = movement.product.current_stock
    return data, 201


@stock_bp.post("/bulk")
@require_auth
@require_can_modify
def bulk_movement():
    """
    Body: {"product_ids": [..], "type": "in"|"out", "quantity", "notes"?}

    All or nothing. Returns {batch_id, succeeded, failed, errors}.
    """
    payload = json_payload()
    result = ledger_service.apply_bulk_movement(
        current_principal(),
        product_ids=payload.get("product_ids"),
        movement_type=payload.get("type"),
        quantity=payload.get("quantity"),
        notes=payload.get("notes"),
    )
    return result.to_dict(), 201 if result.failed == 0 else 409


@stock_bp.get("/movements")
@require_auth
def list_movements():
    """
    Stock history.

    Query params:
    - product_id
    - type: in | out | all
    - window: today | week | month | all
    - search: product name, SKU or notes
    - batch_id
    - limit, offset
    """
    limit, offset = page_args()
    rows, total = ledger_service.list_movements(
        current_principal(),
        product_id=request.args.get("product_id", type=int),
        movement_type=request.args.get("type"),
        window=request.args.get("window"),
        search=request.args.get("search"),
        batch_id=request.args.get("batch_id"),
        limit=limit,
        offset=offset,
    )
    return page([m.to_dict() for m in rows], total, limit, offset)


@stock_bp.get("/summary")
@require_auth
def movement_summary():
    return ledger_service.summarize_movements(
        current_principal(),
        product_id=request.args.get("product_id", type=int),
        window=request.args.get("window"),
        search=request.args.get("search"),
    )


@stock_bp.get("/low-stock")
@require_auth
def low_stock():
    """Products at or below their reorder level, lowest stock first."""
    products = ledger_service.list_low_stock(current_principal(), limit=request.args.get("limit", type=int))
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@stock_bp.get("/verify/<int:product_id>")
@require_auth
def verify(product_id: int):
    return ledger_service.verify_stock(current_principal(), product_id)


@stock_bp.post("/reconcile")
@require_auth
@require_can_modify
def reconcile():
    """Body: {"product_id"?}. Rewrites drifted caches from the ledger."""
    payload = json_payload()
    repairs = ledger_service.reconcile_stock(current_principal(), payload.get("product_id"))
    return {"repaired": repairs, "count": len(repairs)}
