# backend/stockroom/services/product_service.py
"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations are tenant-scoped through the
principal. A super_admin names the target company explicitly; everyone
else always writes into their own company.

current_stock is never writable here. A product created with an opening
quantity gets an 'in' movement in the same transaction.
"""
from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Product, PurchaseOrderItem, StockMovement, SupplierQuote
from ..permissions import Action, Entity, Principal
from ..validation import (
    ConflictError,
    ModelValidationPolicy,
    ValidationError,
    coerce_cents,
    coerce_int,
    enforce_rules_product,
    validate_payload,
)
from . import event_service
from .concurrency import run_with_retry
from .ledger_service import _append_movement
from .policy_service import require, require_can_modify
from .tenant_service import get_scoped, resolve_company_id, scope_query


PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "sku", "category", "description", "reorder_level", "unit_price_cents"}),
    required_on_create=frozenset({"name", "sku"}),
)


def _normalize_payload(payload: dict) -> tuple[dict, int]:
    """
    Accept unit_price in major units as an alias for unit_price_cents and
    split off initial_stock. Returns (payload, initial_stock).
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = dict(payload)
    payload.pop("company_id", None)

    if "unit_price" in payload:
        if "unit_price_cents" in payload:
            raise ValidationError("send unit_price or unit_price_cents, not both")
        raw = payload.pop("unit_price")
        payload["unit_price_cents"] = None if raw is None else coerce_cents("unit_price", raw)

    initial_stock = payload.pop("initial_stock", None)
    initial = 0
    if initial_stock not in (None, ""):
        initial = coerce_int("initial_stock", initial_stock)
        if initial < 0:
            raise ValidationError("initial_stock must be >= 0")

    if "sku" in payload and isinstance(payload["sku"], str):
        payload["sku"] = payload["sku"].strip().upper()
    return payload, initial


def _ensure_sku_available(company_id: int, sku: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.company_id == company_id, Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"SKU {sku} already exists")


def insert_product(company_id: int, patch: dict, *, user_id: int | None, initial_stock: int = 0) -> Product:
    """
    Insert a validated product (flush only). Shared by the API and CSV import.
    """
    enforce_rules_product(patch)
    _ensure_sku_available(company_id, patch["sku"])

    product = Product(
        company_id=company_id,
        current_stock=0,
        reorder_level=patch.pop("reorder_level", None) or 0,
        unit_price_cents=patch.pop("unit_price_cents", None) or 0,
        **patch,
    )
    db.session.add(product)
    db.session.flush()

    if initial_stock:
        _append_movement(
            product,
            movement_type="in",
            quantity=initial_stock,
            notes="Initial stock",
            user_id=user_id,
        )
    return product


def create_product(principal: Principal, payload: dict) -> Product:
    require_can_modify(principal, "product creation")
    requested_company = payload.get("company_id") if isinstance(payload, dict) else None
    payload, initial_stock = _normalize_payload(payload)
    company_id = resolve_company_id(principal, requested_company)
    require(principal, Action.CREATE, Entity.PRODUCT, target_company_id=company_id)

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)

    try:
        product = insert_product(company_id, patch, user_id=principal.user_id, initial_stock=initial_stock)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    event_service.publish(Entity.PRODUCT, "insert", company_id=company_id, ids=[product.id])
    return product


def update_product(principal: Principal, product_id, payload: dict) -> Product:
    """Partial update. Last write wins for concurrent edits."""
    product = get_scoped(principal, Product, product_id, label="Product")
    require(principal, Action.UPDATE, Entity.PRODUCT, target_company_id=product.company_id)

    payload, initial_stock = _normalize_payload(payload)
    if initial_stock:
        raise ValidationError("initial_stock is only accepted on create; record a stock movement instead")
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    if "sku" in patch:
        _ensure_sku_available(product.company_id, patch["sku"], exclude_id=product.id)

    for key, value in patch.items():
        if key in ("reorder_level", "unit_price_cents") and value is None:
            value = 0
        setattr(product, key, value)

    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    event_service.publish(Entity.PRODUCT, "update", company_id=product.company_id, ids=[product.id])
    return product


def delete_product(principal: Principal, product_id) -> None:
    """
    Delete a product that has no history.

    Products with movements, quotes or order lines are kept: the ledger is
    append-only and must stay resolvable.
    """
    product = get_scoped(principal, Product, product_id, label="Product")
    require(principal, Action.DELETE, Entity.PRODUCT, target_company_id=product.company_id)

    for model, column, what in (
        (StockMovement, StockMovement.product_id, "stock history"),
        (SupplierQuote, SupplierQuote.product_id, "supplier quotes"),
        (PurchaseOrderItem, PurchaseOrderItem.product_id, "purchase order lines"),
    ):
        if db.session.query(model.id).filter(column == product.id).first() is not None:
            raise ConflictError(f"product has {what} and cannot be deleted")

    company_id = product.company_id
    db.session.delete(product)
    db.session.commit()
    event_service.publish(Entity.PRODUCT, "delete", company_id=company_id, ids=[int(product_id)])


def get_product(principal: Principal, product_id) -> Product:
    require(principal, Action.READ, Entity.PRODUCT)
    return get_scoped(principal, Product, product_id, label="Product")


def product_query(principal: Principal, *, search=None, category=None, low_stock: bool = False, company_id=None):
    """Scoped product query shared by listing and CSV export."""
    require(principal, Action.READ, Entity.PRODUCT)
    query = scope_query(principal, db.session.query(Product), Product)

    if company_id is not None:
        # Narrows only: a tenant-bound principal asking for another
        # company simply gets nothing back.
        query = query.filter(Product.company_id == company_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(like), Product.sku.ilike(like), Product.category.ilike(like)))
    if category:
        query = query.filter(Product.category == category)
    if low_stock:
        query = query.filter(Product.is_low_stock)
    return query


def list_products(
    principal: Principal,
    *,
    search=None,
    category=None,
    low_stock: bool = False,
    company_id=None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Product], int]:
    def _op():
        query = product_query(principal, search=search, category=category, low_stock=low_stock, company_id=company_id)
        total = query.count()
        rows = query.order_by(Product.name.asc(), Product.id.asc()).offset(offset).limit(limit).all()
        return rows, total

    return run_with_retry(_op)


def list_categories(principal: Principal) -> list[str]:
    def _op():
        query = product_query(principal).with_entities(Product.category).filter(Product.category.isnot(None)).distinct()
        return sorted(row[0] for row in query.all() if row[0])

    return run_with_retry(_op)
