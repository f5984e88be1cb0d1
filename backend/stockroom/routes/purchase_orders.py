# Overview: Flask API routes for purchase orders; creation, status transitions and receiving.

"""
Purchase order routes.

LIFECYCLE: pending -> approved -> sent -> received, with cancellation
from any open state. Receiving books one 'in' movement per line.
"""
from flask import Blueprint, request

from ..decorators import current_principal, require_auth
from ..services import purchase_order_service
from ..validation import ValidationError
from .common import json_payload, page, page_args

purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/purchase-orders")


@purchase_orders_bp.get("")
@require_auth
def list_purchase_orders():
    """
    Query params: status, search (PO number or supplier name), supplier_id,
    company_id, limit, offset
    """
    limit, offset = page_args()
    rows, total = purchase_order_service.list_purchase_orders(
        current_principal(),
        status=request.args.get("status"),
        search=request.args.get("search"),
        supplier_id=request.args.get("supplier_id", type=int),
        company_id=request.args.get("company_id", type=int),
        limit=limit,
        offset=offset,
    )
    return page([po.to_dict() for po in rows], total, limit, offset)


@purchase_orders_bp.post("")
@require_auth
def create_purchase_order():
    """
    Body: {"supplier_id", "items": [{"product_id", "quantity", "unit_price"?}],
    "expected_delivery"?, "notes"?}
    """
    payload = json_payload()
    po = purchase_order_service.create_purchase_order(
        current_principal(),
        supplier_id=payload.get("supplier_id"),
        items=payload.get("items"),
        expected_delivery=payload.get("expected_delivery"),
        notes=payload.get("notes"),
    )
    return po.to_dict(include_items=True), 201


@purchase_orders_bp.get("/<int:po_id>")
@require_auth
def get_purchase_order(po_id: int):
    po = purchase_order_service.get_purchase_order(current_principal(), po_id)
    return po.to_dict(include_items=True)


@purchase_orders_bp.patch("/<int:po_id>")
@require_auth
def update_purchase_order(po_id: int):
    po = purchase_order_service.update_purchase_order(current_principal(), po_id, json_payload())
    return po.to_dict(include_items=True)


@purchase_orders_bp.post("/<int:po_id>/status")
@require_auth
def transition(po_id: int):
    """Body: {"status": "approved" | "sent" | "received" | "cancelled"}"""
    status = json_payload().get("status")
    if not status:
        raise ValidationError("status is required")
    po = purchase_order_service.transition_purchase_order(current_principal(), po_id, status)
    return po.to_dict(include_items=True)


@purchase_orders_bp.post("/<int:po_id>/receive")
@require_auth
def receive(po_id: int):
    """Book the order into stock. Body: {"notes"?}"""
    po = purchase_order_service.receive_purchase_order(
        current_principal(), po_id, notes=json_payload().get("notes")
    )
    return po.to_dict(include_items=True)
