# Overview: Inventory ledger; stock movements, the cached stock projection, bulk operations and low-stock reads.

"""
Inventory Ledger

INVARIANTS (authoritative):
- StockMovement is append-only and is the system of record for stock.
- Product.current_stock == sum(+quantity for 'in', -quantity for 'out')
  over the product's movements, at every commit.
- The cache is written only by _append_movement(), in the same unit of
  work as the movement row, as an atomic SQL increment. Concurrent writers
  therefore commute.
- A bulk operation over N products commits exactly N movements sharing one
  batch_id, or none. If rows of a failed batch are visible after rollback
  they are removed by the compensating delete before failure is reported.
- Low stock means current_stock <= reorder_level (Product.is_low_stock),
  everywhere.
- Idempotent reads may be retried; movement inserts are never retried
  blindly. A client retry carries idempotency_key and resolves to the
  original movement.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field

from flask import current_app
from sqlalchemy import case, func, or_, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Product, StockMovement
from ..permissions import Action, Entity, Principal
from ..validation import ConflictError, ValidationError, enforce_rules_movement
from stockroom.time_utils import window_start
from . import event_service
from .concurrency import run_with_retry
from .policy_service import require, require_can_modify
from .tenant_service import get_scoped, scope_query


MAX_IDEMPOTENCY_KEY_LENGTH = 128


@dataclass
class BulkResult:
    batch_id: str
    requested: int
    succeeded: int
    failed: int
    errors: list[dict] = field(default_factory=list)
    movements: list[StockMovement] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "requested": self.requested,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "errors": list(self.errors),
            "movements": [m.to_dict() for m in self.movements],
        }


def _signed(movement_type: str, quantity: int) -> int:
    return quantity if movement_type == "in" else -quantity


def _first_line(exc: Exception) -> str:
    lines = str(exc).splitlines()
    return lines[0] if lines else exc.__class__.__name__


def _normalize_idempotency_key(key) -> str | None:
    if key is None:
        return None
    key = str(key).strip()
    if not key:
        return None
    if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise ValidationError(f"idempotency_key exceeds max length {MAX_IDEMPOTENCY_KEY_LENGTH}")
    return key


def _append_movement(
    product: Product,
    *,
    movement_type: str,
    quantity: int,
    notes: str | None,
    user_id: int | None,
    batch_id: str | None = None,
    purchase_order_id: int | None = None,
    idempotency_key: str | None = None,
) -> StockMovement:
    """
    Insert one movement and move the cached stock by the same amount.

    The ONLY write path for Product.current_stock. Does not commit.
    """
    delta = _signed(movement_type, quantity)

    if delta < 0 and not current_app.config.get("STOCK_ALLOW_NEGATIVE", True):
        if product.current_stock + delta < 0:
            raise ValidationError(
                f"stock for {product.sku} would become negative "
                f"(on hand {product.current_stock}, requested {quantity})"
            )

    movement = StockMovement(
        company_id=product.company_id,
        product_id=product.id,
        type=movement_type,
        quantity=quantity,
        notes=(notes or "").strip() or None,
        user_id=user_id,
        batch_id=batch_id,
        purchase_order_id=purchase_order_id,
        idempotency_key=idempotency_key,
    )
    db.session.add(movement)
    db.session.flush()

    db.session.execute(
        update(Product)
        .where(Product.id == product.id)
        .values(current_stock=Product.current_stock + delta)
    )
    return movement


def _find_by_idempotency_key(company_id: int, key: str) -> StockMovement | None:
    return (
        db.session.query(StockMovement)
        .filter_by(company_id=company_id, idempotency_key=key)
        .first()
    )


def _check_replay(existing: StockMovement, product_id: int, movement_type: str, quantity: int) -> StockMovement:
    if (existing.product_id, existing.type, existing.quantity) != (product_id, movement_type, quantity):
        raise ConflictError("idempotency_key was already used for a different movement")
    return existing


def apply_movement(
    principal: Principal,
    *,
    product_id,
    movement_type,
    quantity,
    notes: str | None = None,
    idempotency_key=None,
) -> StockMovement:
    """
    Record one stock movement and update the product's cached stock.

    Single entry point for stock changes. Commits. Publishes stock_movement
    and product change events after the commit.

    Replaying an idempotency_key returns the original movement unchanged.
    """
    require(principal, Action.CREATE, Entity.STOCK_MOVEMENT)
    movement_type, quantity = enforce_rules_movement(movement_type, quantity)
    key = _normalize_idempotency_key(idempotency_key)

    try:
        product = get_scoped(principal, Product, product_id, label="Product", lock=True)

        if key:
            existing = _find_by_idempotency_key(product.company_id, key)
            if existing is not None:
                db.session.rollback()
                return _check_replay(existing, product.id, movement_type, quantity)

        movement = _append_movement(
            product,
            movement_type=movement_type,
            quantity=quantity,
            notes=notes,
            user_id=principal.user_id,
            idempotency_key=key,
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        if key:
            # Lost a race with a concurrent request carrying the same key
            existing = _find_by_idempotency_key(principal.company_id or product.company_id, key)
            if existing is not None:
                return _check_replay(existing, product.id, movement_type, quantity)
        raise
    except Exception:
        db.session.rollback()
        raise

    event_service.publish(
        Entity.STOCK_MOVEMENT,
        "insert",
        company_id=movement.company_id,
        ids=[movement.id],
        product_ids=[movement.product_id],
    )
    event_service.publish(Entity.PRODUCT, "update", company_id=movement.company_id, ids=[movement.product_id])
    return movement


def _compensate_batch(batch_id: str) -> int:
    """
    Remove any committed rows of a failed batch and reverse their cache effect.

    With a transactional store the rollback already discarded everything and
    this finds nothing.
    """
    rows = db.session.query(StockMovement).filter_by(batch_id=batch_id).all()
    for row in rows:
        db.session.execute(
            update(Product)
            .where(Product.id == row.product_id)
            .values(current_stock=Product.current_stock - row.signed_quantity)
        )
        db.session.delete(row)
    if rows:
        db.session.commit()
        current_app.logger.warning("Compensated %s movement(s) of failed batch %s", len(rows), batch_id)
    return len(rows)


def apply_bulk_movement(
    principal: Principal,
    *,
    product_ids,
    movement_type,
    quantity,
    notes: str | None = None,
) -> BulkResult:
    """
    Apply the same movement to several products, all or nothing.

    Products are resolved (and locked, in id order) before any write; an
    unknown or out-of-tenant id fails the request with "not found".
    A store failure while writing rolls the whole batch back and reports
    0 succeeded / N failed.
    """
    require_can_modify(principal, "bulk stock operations")
    require(principal, Action.CREATE, Entity.STOCK_MOVEMENT)
    movement_type, quantity = enforce_rules_movement(movement_type, quantity)

    if not isinstance(product_ids, (list, tuple)) or not product_ids:
        raise ValidationError("product_ids must be a non-empty list")
    ids: list[int] = []
    for raw in product_ids:
        try:
            pid = int(raw)
        except (TypeError, ValueError):
            raise ValidationError("product_ids must be integers") from None
        if pid not in ids:
            ids.append(pid)

    limit = int(current_app.config.get("BULK_MAX_PRODUCTS", 500))
    if len(ids) > limit:
        raise ValidationError(f"bulk operations are limited to {limit} products")

    batch_id = uuid.uuid4().hex

    try:
        locked = {pid: get_scoped(principal, Product, pid, label="Product", lock=True) for pid in sorted(ids)}
    except Exception:
        db.session.rollback()
        raise

    movements: list[StockMovement] = []
    current_product = None
    try:
        for pid in ids:
            current_product = locked[pid]
            movements.append(
                _append_movement(
                    current_product,
                    movement_type=movement_type,
                    quantity=quantity,
                    notes=notes,
                    user_id=principal.user_id,
                    batch_id=batch_id,
                )
            )
        db.session.commit()
    except (ValidationError, SQLAlchemyError) as exc:
        failed_product_id = current_product.id if current_product is not None else None
        db.session.rollback()
        current_app.logger.warning("Bulk movement batch %s failed: %s", batch_id, exc)
        _compensate_batch(batch_id)
        return BulkResult(
            batch_id=batch_id,
            requested=len(ids),
            succeeded=0,
            failed=len(ids),
            errors=[{"product_id": failed_product_id, "error": _first_line(exc)}],
        )

    company_id = movements[0].company_id
    event_service.publish(
        Entity.STOCK_MOVEMENT,
        "insert",
        company_id=company_id,
        ids=[m.id for m in movements],
        batch_id=batch_id,
    )
    event_service.publish(Entity.PRODUCT, "update", company_id=company_id, ids=ids)

    return BulkResult(
        batch_id=batch_id,
        requested=len(ids),
        succeeded=len(movements),
        failed=0,
        movements=movements,
    )


# =============================================================================
# Projection and reconciliation
# =============================================================================

def projected_stock(product_id: int) -> int:
    """Signed sum of all movements for a product (the ledger's answer)."""
    signed = case((StockMovement.type == "in", StockMovement.quantity), else_=-StockMovement.quantity)

    def _op() -> int:
        total = (
            db.session.query(func.coalesce(func.sum(signed), 0))
            .filter(StockMovement.product_id == product_id)
            .scalar()
        )
        return int(total or 0)

    return run_with_retry(_op)


def verify_stock(principal: Principal, product_id) -> dict:
    """Compare the cached stock with the ledger projection."""
    require(principal, Action.READ, Entity.PRODUCT)
    product = get_scoped(principal, Product, product_id, label="Product")
    projected = projected_stock(product.id)
    return {
        "product_id": product.id,
        "cached": product.current_stock,
        "projected": projected,
        "in_sync": product.current_stock == projected,
    }


def reconcile_stock(principal: Principal, product_id=None) -> list[dict]:
    """
    Rewrite drifted caches from the ledger (never the other way round).

    Returns one entry per repaired product. Commits if anything changed.
    """
    require(principal, Action.UPDATE, Entity.PRODUCT)
    query = scope_query(principal, db.session.query(Product), Product)
    if product_id is not None:
        product = get_scoped(principal, Product, product_id, label="Product")
        query = query.filter(Product.id == product.id)

    repairs = []
    for product in query.order_by(Product.id).all():
        projected = projected_stock(product.id)
        if product.current_stock != projected:
            repairs.append({"product_id": product.id, "cached": product.current_stock, "projected": projected})
            product.current_stock = projected

    if repairs:
        db.session.commit()
        current_app.logger.warning("Reconciled stock drift for %s product(s)", len(repairs))
        event_service.publish(
            Entity.PRODUCT,
            "update",
            company_id=None if principal.is_super_admin else principal.company_id,
            ids=[r["product_id"] for r in repairs],
        )
    return repairs


# =============================================================================
# Reads
# =============================================================================

def is_low_stock(product: Product) -> bool:
    return bool(product.is_low_stock)


def low_stock_query(principal: Principal):
    """Scoped query of low-stock products, lowest stock first."""
    require(principal, Action.READ, Entity.PRODUCT)
    query = scope_query(principal, db.session.query(Product), Product)
    return query.filter(Product.is_low_stock).order_by(Product.current_stock.asc(), Product.name.asc(), Product.id.asc())


def list_low_stock(principal: Principal, *, limit: int | None = None) -> list[Product]:
    def _op():
        query = low_stock_query(principal)
        if limit:
            query = query.limit(limit)
        return query.all()

    return run_with_retry(_op)


def _movement_filters(principal: Principal, *, product_id=None, movement_type=None, window=None, search=None, batch_id=None):
    require(principal, Action.READ, Entity.STOCK_MOVEMENT)

    query = scope_query(principal, db.session.query(StockMovement), StockMovement)

    if product_id is not None:
        product = get_scoped(principal, Product, product_id, label="Product")
        query = query.filter(StockMovement.product_id == product.id)

    if movement_type not in (None, "", "all"):
        if movement_type not in ("in", "out"):
            raise ValidationError("type must be 'in', 'out' or 'all'")
        query = query.filter(StockMovement.type == movement_type)

    try:
        start = window_start(window)
    except ValueError as exc:
        raise ValidationError(str(exc)) from None
    if start is not None:
        query = query.filter(StockMovement.created_at >= start)

    if batch_id:
        query = query.filter(StockMovement.batch_id == batch_id)

    if search:
        like = f"%{search.strip()}%"
        query = query.join(Product, Product.id == StockMovement.product_id).filter(
            or_(Product.name.ilike(like), Product.sku.ilike(like), StockMovement.notes.ilike(like))
        )
    return query


def list_movements(
    principal: Principal,
    *,
    product_id=None,
    movement_type=None,
    window=None,
    search=None,
    batch_id=None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[StockMovement], int]:
    """Stock history, newest first, with total count for paging."""
    def _op():
        query = _movement_filters(
            principal,
            product_id=product_id,
            movement_type=movement_type,
            window=window,
            search=search,
            batch_id=batch_id,
        )
        total = query.count()
        rows = (
            query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )
        return rows, total

    return run_with_retry(_op)


def summarize_movements(principal: Principal, *, product_id=None, window=None, search=None) -> dict:
    """Counts and quantities per movement type for the history header."""
    def _op():
        query = _movement_filters(principal, product_id=product_id, window=window, search=search)
        rows = (
            query.with_entities(StockMovement.type, func.count(StockMovement.id), func.coalesce(func.sum(StockMovement.quantity), 0))
            .group_by(StockMovement.type)
            .all()
        )
        summary = {"in": {"count": 0, "quantity": 0}, "out": {"count": 0, "quantity": 0}}
        for movement_type, count, qty in rows:
            summary[movement_type] = {"count": int(count), "quantity": int(qty)}
        return summary

    return run_with_retry(_op)
