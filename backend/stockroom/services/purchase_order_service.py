# Overview: Purchase order lifecycle; creation with snapshot totals, status transitions and receiving into stock.

"""
Purchase Orders

LIFECYCLE:
    pending -> approved -> sent -> received
    pending | approved | sent -> cancelled

INVARIANTS:
- po_number comes from the global document sequence at creation and is
  never reassigned.
- Each item's total_price_cents == quantity * unit_price_cents.
- total_amount_cents == sum of item totals at creation. Items are
  immutable after creation, so the snapshot never drifts.
- Receiving appends one 'in' movement per item (shared receipt batch id)
  through the ledger, in the same transaction as status -> received.
  A second receive is a conflict and adds nothing.
"""

from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import or_

from ..extensions import db
from ..models import Product, PurchaseOrder, PurchaseOrderItem, Supplier
from ..permissions import Action, Entity, Principal
from ..validation import ConflictError, ValidationError, coerce_cents, coerce_int
from stockroom.time_utils import utcnow
from . import event_service
from .concurrency import run_with_retry
from .document_service import next_document_number
from .ledger_service import _append_movement
from .policy_service import require
from .tenant_service import get_scoped, scope_query


PO_DOCUMENT_TYPE = "PURCHASE_ORDER"
PO_PREFIX = "PO"

ALLOWED_TRANSITIONS = {
    "pending": {"approved", "cancelled"},
    "approved": {"sent", "received", "cancelled"},
    "sent": {"received", "cancelled"},
    "received": set(),
    "cancelled": set(),
}


def _parse_items(principal: Principal, company_id: int, items) -> list[tuple[Product, int, int]]:
    if not isinstance(items, list) or not items:
        raise ValidationError("items must be a non-empty list")

    parsed = []
    for index, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"item {index} must be an object")
        if "product_id" not in item:
            raise ValidationError(f"item {index}: product_id is required")
        product = get_scoped(principal, Product, item["product_id"], label="Product")
        if product.company_id != company_id:
            raise ValidationError(f"item {index}: product belongs to a different company than the supplier")

        quantity = coerce_int(f"item {index} quantity", item.get("quantity"))
        if quantity <= 0:
            raise ValidationError(f"item {index}: quantity must be > 0")

        if "unit_price_cents" in item:
            unit_price = coerce_int(f"item {index} unit_price_cents", item["unit_price_cents"])
            if unit_price < 0:
                raise ValidationError(f"item {index}: unit_price_cents must be >= 0")
        elif "unit_price" in item:
            unit_price = coerce_cents(f"item {index} unit_price", item["unit_price"])
        else:
            unit_price = product.unit_price_cents

        parsed.append((product, quantity, unit_price))
    return parsed


def _parse_expected_delivery(value):
    if value in (None, ""):
        return None
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        raise ValidationError("expected_delivery must be an ISO-8601 date") from None


def create_purchase_order(
    principal: Principal,
    *,
    supplier_id,
    items,
    expected_delivery=None,
    notes: str | None = None,
) -> PurchaseOrder:
    """Create a pending order; allocates po_number and snapshots the total."""
    supplier = get_scoped(principal, Supplier, supplier_id, label="Supplier")
    require(principal, Action.CREATE, Entity.PURCHASE_ORDER, target_company_id=supplier.company_id)

    lines = _parse_items(principal, supplier.company_id, items)
    delivery = _parse_expected_delivery(expected_delivery)

    try:
        po = PurchaseOrder(
            company_id=supplier.company_id,
            po_number=next_document_number(document_type=PO_DOCUMENT_TYPE, prefix=PO_PREFIX),
            supplier_id=supplier.id,
            user_id=principal.user_id,
            status="pending",
            expected_delivery=delivery,
            notes=(notes or "").strip() or None,
        )
        total = 0
        for product, quantity, unit_price in lines:
            line_total = quantity * unit_price
            total += line_total
            po.items.append(
                PurchaseOrderItem(
                    product_id=product.id,
                    quantity=quantity,
                    unit_price_cents=unit_price,
                    total_price_cents=line_total,
                )
            )
        po.total_amount_cents = total
        db.session.add(po)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    event_service.publish(Entity.PURCHASE_ORDER, "insert", company_id=po.company_id, ids=[po.id])
    return po


def get_purchase_order(principal: Principal, po_id) -> PurchaseOrder:
    require(principal, Action.READ, Entity.PURCHASE_ORDER)
    return get_scoped(principal, PurchaseOrder, po_id, label="Purchase order")


def list_purchase_orders(
    principal: Principal,
    *,
    status=None,
    search=None,
    supplier_id=None,
    company_id=None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[PurchaseOrder], int]:
    require(principal, Action.READ, Entity.PURCHASE_ORDER)

    if status not in (None, "", "all") and status not in ALLOWED_TRANSITIONS:
        raise ValidationError(f"unknown status: {status}")

    def _op():
        query = scope_query(principal, db.session.query(PurchaseOrder), PurchaseOrder)
        if company_id is not None:
            query = query.filter(PurchaseOrder.company_id == company_id)
        if status not in (None, "", "all"):
            query = query.filter(PurchaseOrder.status == status)
        if supplier_id is not None:
            query = query.filter(PurchaseOrder.supplier_id == supplier_id)
        if search:
            like = f"%{search.strip()}%"
            query = query.outerjoin(Supplier, Supplier.id == PurchaseOrder.supplier_id).filter(
                or_(PurchaseOrder.po_number.ilike(like), Supplier.name.ilike(like))
            )
        total = query.count()
        rows = query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc()).offset(offset).limit(limit).all()
        return rows, total

    return run_with_retry(_op)


def update_purchase_order(principal: Principal, po_id, payload: dict) -> PurchaseOrder:
    """
    Edit header fields (notes, expected_delivery) of an open order, and
    optionally move its status in the same unit of work.

    Items, supplier and totals are fixed at creation. Every field and the
    transition are checked before anything is written, so a rejected
    status leaves the header untouched.
    """
    po = get_scoped(principal, PurchaseOrder, po_id, label="Purchase order", lock=True)
    require(principal, Action.UPDATE, Entity.PURCHASE_ORDER, target_company_id=po.company_id)

    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    locked = set(payload) & {"items", "supplier_id", "total_amount", "total_amount_cents", "po_number", "company_id"}
    if locked:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(locked))}")
    unknown = set(payload) - {"notes", "expected_delivery", "status"}
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    if po.status in ("received", "cancelled"):
        db.session.rollback()
        raise ConflictError(f"purchase order is {po.status}")

    header = {}
    if "notes" in payload:
        header["notes"] = (payload["notes"] or "").strip() or None
    if "expected_delivery" in payload:
        header["expected_delivery"] = _parse_expected_delivery(payload["expected_delivery"])

    new_status = payload.get("status")
    if new_status is not None and new_status != po.status:
        if new_status not in ALLOWED_TRANSITIONS:
            raise ValidationError(f"unknown status: {new_status}")
        if new_status not in ALLOWED_TRANSITIONS[po.status]:
            db.session.rollback()
            raise ConflictError(f"cannot move purchase order from {po.status} to {new_status}")
        if new_status == "received":
            return receive_purchase_order(principal, po.id, header=header)
    else:
        new_status = None

    try:
        for key, value in header.items():
            setattr(po, key, value)
        if new_status is not None:
            po.status = new_status
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    extra = {"status": new_status} if new_status is not None else {}
    event_service.publish(Entity.PURCHASE_ORDER, "update", company_id=po.company_id, ids=[po.id], **extra)
    return po


def transition_purchase_order(principal: Principal, po_id, new_status: str) -> PurchaseOrder:
    """
    Move an order along its lifecycle. 'received' delegates to
    receive_purchase_order so stock is always booked with the status change.
    """
    if new_status not in ALLOWED_TRANSITIONS:
        raise ValidationError(f"unknown status: {new_status}")
    if new_status == "received":
        return receive_purchase_order(principal, po_id)

    po = get_scoped(principal, PurchaseOrder, po_id, label="Purchase order", lock=True)
    require(principal, Action.UPDATE, Entity.PURCHASE_ORDER, target_company_id=po.company_id)

    if new_status not in ALLOWED_TRANSITIONS[po.status]:
        db.session.rollback()
        raise ConflictError(f"cannot move purchase order from {po.status} to {new_status}")

    po.status = new_status
    db.session.commit()
    event_service.publish(Entity.PURCHASE_ORDER, "update", company_id=po.company_id, ids=[po.id], status=new_status)
    return po


def receive_purchase_order(
    principal: Principal, po_id, *, notes: str | None = None, header: dict | None = None
) -> PurchaseOrder:
    """
    Book an approved or sent order into stock.

    One 'in' movement per item, sharing receipt_batch_id, committed with the
    status change. Header edits passed in header (from a PATCH) land in the
    same commit. Receiving twice raises ConflictError.
    """
    po = get_scoped(principal, PurchaseOrder, po_id, label="Purchase order", lock=True)
    require(principal, Action.UPDATE, Entity.PURCHASE_ORDER, target_company_id=po.company_id)
    require(principal, Action.CREATE, Entity.STOCK_MOVEMENT, target_company_id=po.company_id)

    if po.status == "received":
        db.session.rollback()
        raise ConflictError(f"purchase order {po.po_number} was already received")
    if "received" not in ALLOWED_TRANSITIONS[po.status]:
        db.session.rollback()
        raise ConflictError(f"cannot receive a {po.status} purchase order")

    batch_id = uuid.uuid4().hex
    note = (notes or "").strip() or f"Received {po.po_number}"
    try:
        movement_ids = []
        for item in sorted(po.items, key=lambda i: i.product_id):
            product = db.session.query(Product).filter_by(id=item.product_id).with_for_update().one()
            movement = _append_movement(
                product,
                movement_type="in",
                quantity=item.quantity,
                notes=note,
                user_id=principal.user_id,
                batch_id=batch_id,
                purchase_order_id=po.id,
            )
            movement_ids.append(movement.id)
        for key, value in (header or {}).items():
            setattr(po, key, value)
        po.status = "received"
        po.received_at = utcnow()
        po.receipt_batch_id = batch_id
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    event_service.publish(Entity.PURCHASE_ORDER, "update", company_id=po.company_id, ids=[po.id], status="received")
    event_service.publish(Entity.STOCK_MOVEMENT, "insert", company_id=po.company_id, ids=movement_ids, batch_id=batch_id)
    event_service.publish(Entity.PRODUCT, "update", company_id=po.company_id, ids=sorted({i.product_id for i in po.items}))
    return po
