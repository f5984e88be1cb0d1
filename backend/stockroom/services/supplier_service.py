# Overview: Service-layer operations for suppliers and supplier quotes.

"""
Supplier Service

MULTI-TENANT: suppliers and quotes carry company_id and are resolved
through the principal's scope. A quote must reference a product and a
supplier of the same company.

Quotes are immutable price observations; a new price is a new quote.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Product, PurchaseOrder, Supplier, SupplierQuote
from ..permissions import Action, Entity, Principal
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    coerce_cents,
    enforce_rules_supplier,
    validate_payload,
)
from . import event_service
from .concurrency import run_with_retry
from .policy_service import require
from .tenant_service import get_scoped, resolve_company_id, scope_query


SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "contact_info", "product_types", "rating"}),
    required_on_create=frozenset({"name"}),
)

CONTACT_FIELDS = ("email", "phone", "address")


def _normalize_payload(payload) -> dict:
    """Fold flat email/phone/address keys into contact_info."""
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    payload.pop("company_id", None)

    flat = {k: payload.pop(k) for k in CONTACT_FIELDS if k in payload}
    if flat:
        contact = dict(payload.get("contact_info") or {})
        contact.update(flat)
        payload["contact_info"] = contact
    return payload


def insert_supplier(company_id: int, patch: dict) -> Supplier:
    """Insert a validated supplier (flush only). Shared by the API and CSV import."""
    enforce_rules_supplier(patch)
    supplier = Supplier(
        company_id=company_id,
        name=patch["name"],
        contact_info=patch.get("contact_info") or {},
        product_types=patch.get("product_types") or [],
        rating=patch.get("rating"),
    )
    db.session.add(supplier)
    db.session.flush()
    return supplier


def create_supplier(principal: Principal, payload: dict) -> Supplier:
    requested_company = payload.get("company_id") if isinstance(payload, dict) else None
    payload = _normalize_payload(payload)
    company_id = resolve_company_id(principal, requested_company)
    require(principal, Action.CREATE, Entity.SUPPLIER, target_company_id=company_id)

    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
    try:
        supplier = insert_supplier(company_id, patch)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    event_service.publish(Entity.SUPPLIER, "insert", company_id=company_id, ids=[supplier.id])
    return supplier


def update_supplier(principal: Principal, supplier_id, payload: dict) -> Supplier:
    supplier = get_scoped(principal, Supplier, supplier_id, label="Supplier")
    require(principal, Action.UPDATE, Entity.SUPPLIER, target_company_id=supplier.company_id)

    payload = _normalize_payload(payload)
    if "contact_info" in payload and isinstance(payload["contact_info"], dict):
        merged = dict(supplier.contact_info or {})
        merged.update(payload["contact_info"])
        payload["contact_info"] = merged

    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)
    enforce_rules_supplier(patch)

    for key, value in patch.items():
        if key == "contact_info" and value is None:
            value = {}
        if key == "product_types" and value is None:
            value = []
        setattr(supplier, key, value)

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    event_service.publish(Entity.SUPPLIER, "update", company_id=supplier.company_id, ids=[supplier.id])
    return supplier


def delete_supplier(principal: Principal, supplier_id) -> None:
    supplier = get_scoped(principal, Supplier, supplier_id, label="Supplier")
    require(principal, Action.DELETE, Entity.SUPPLIER, target_company_id=supplier.company_id)

    if db.session.query(PurchaseOrder.id).filter_by(supplier_id=supplier.id).first() is not None:
        raise ConflictError("supplier has purchase orders and cannot be deleted")

    company_id = supplier.company_id
    db.session.query(SupplierQuote).filter_by(supplier_id=supplier.id).delete(synchronize_session=False)
    db.session.delete(supplier)
    db.session.commit()
    event_service.publish(Entity.SUPPLIER, "delete", company_id=company_id, ids=[int(supplier_id)])


def get_supplier(principal: Principal, supplier_id) -> Supplier:
    require(principal, Action.READ, Entity.SUPPLIER)
    return get_scoped(principal, Supplier, supplier_id, label="Supplier")


def supplier_query(principal: Principal, *, search=None, company_id=None, min_rating=None):
    require(principal, Action.READ, Entity.SUPPLIER)
    query = scope_query(principal, db.session.query(Supplier), Supplier)
    if company_id is not None:
        query = query.filter(Supplier.company_id == company_id)
    if search:
        query = query.filter(Supplier.name.ilike(f"%{search.strip()}%"))
    if min_rating is not None:
        query = query.filter(Supplier.rating >= min_rating)
    return query


def list_suppliers(
    principal: Principal,
    *,
    search=None,
    product_type=None,
    company_id=None,
    min_rating=None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Supplier], int]:
    """
    Scoped supplier listing.

    product_type is matched in Python: product_types is a JSON list and
    supplier lists per company are small.
    """
    def _op():
        query = supplier_query(principal, search=search, company_id=company_id, min_rating=min_rating)
        rows = query.order_by(Supplier.name.asc(), Supplier.id.asc()).all()
        if product_type:
            wanted = product_type.strip().lower()
            rows = [s for s in rows if any(t.lower() == wanted for t in (s.product_types or []))]
        return rows[offset: offset + limit], len(rows)

    return run_with_retry(_op)


# =============================================================================
# Quotes
# =============================================================================

def create_quote(principal: Principal, *, supplier_id, product_id, price) -> SupplierQuote:
    supplier = get_scoped(principal, Supplier, supplier_id, label="Supplier")
    product = get_scoped(principal, Product, product_id, label="Product")
    require(principal, Action.CREATE, Entity.SUPPLIER_QUOTE, target_company_id=supplier.company_id)

    if supplier.company_id != product.company_id:
        raise ValidationError("supplier and product belong to different companies")

    quote = SupplierQuote(
        company_id=supplier.company_id,
        supplier_id=supplier.id,
        product_id=product.id,
        price_cents=coerce_cents("price", price),
        user_id=principal.user_id,
    )
    try:
        db.session.add(quote)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    event_service.publish(Entity.SUPPLIER_QUOTE, "insert", company_id=quote.company_id, ids=[quote.id])
    return quote


def list_quotes(principal: Principal, *, product_id=None, supplier_id=None, limit: int = 100) -> list[SupplierQuote]:
    require(principal, Action.READ, Entity.SUPPLIER_QUOTE)

    def _op():
        query = scope_query(principal, db.session.query(SupplierQuote), SupplierQuote)
        if product_id is not None:
            product = get_scoped(principal, Product, product_id, label="Product")
            query = query.filter(SupplierQuote.product_id == product.id)
        if supplier_id is not None:
            supplier = get_scoped(principal, Supplier, supplier_id, label="Supplier")
            query = query.filter(SupplierQuote.supplier_id == supplier.id)
        return query.order_by(SupplierQuote.created_at.desc(), SupplierQuote.id.desc()).limit(limit).all()

    return run_with_retry(_op)


def best_quotes(principal: Principal, product_id) -> list[SupplierQuote]:
    """Latest quote per supplier for a product, cheapest first."""
    require(principal, Action.READ, Entity.SUPPLIER_QUOTE)
    product = get_scoped(principal, Product, product_id, label="Product")

    def _op():
        latest = (
            db.session.query(func.max(SupplierQuote.id).label("id"))
            .filter(SupplierQuote.product_id == product.id)
            .group_by(SupplierQuote.supplier_id)
            .subquery()
        )
        return (
            db.session.query(SupplierQuote)
            .join(latest, SupplierQuote.id == latest.c.id)
            .order_by(SupplierQuote.price_cents.asc(), SupplierQuote.id.asc())
            .all()
        )

    return run_with_retry(_op)

