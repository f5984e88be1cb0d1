# Overview: Aggregate figures for the tenant dashboard.

"""
Dashboard Service

MULTI-TENANT: every figure is computed over the principal's scope. A
super_admin sees platform totals unless a company_id narrows them.

Order value excludes cancelled purchase orders. Low-stock uses the same
predicate as the low-stock list and the exports.
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Company, Product, Profile, PurchaseOrder, StockMovement, Supplier
from ..permissions import Action, Entity, Principal
from .concurrency import run_with_retry
from .policy_service import require
from .tenant_service import scope_query


RECENT_LIMIT = 5


def _scoped(principal: Principal, model, company_id):
    query = scope_query(principal, db.session.query(model), model)
    if company_id is not None:
        column = model.id if model is Company else model.company_id
        query = query.filter(column == company_id)
    return query


def dashboard_stats(principal: Principal, *, company_id=None) -> dict:
    require(principal, Action.READ, Entity.PRODUCT)

    def _op():
        products = _scoped(principal, Product, company_id)
        suppliers = _scoped(principal, Supplier, company_id)
        orders = _scoped(principal, PurchaseOrder, company_id)

        stats = {
            "total_products": products.count(),
            "total_suppliers": suppliers.count(),
            "low_stock_count": products.filter(Product.is_low_stock).count(),
            "total_stock_units": int(
                products.with_entities(func.coalesce(func.sum(Product.current_stock), 0)).scalar() or 0
            ),
            "total_order_value_cents": int(
                orders.filter(PurchaseOrder.status != "cancelled")
                .with_entities(func.coalesce(func.sum(PurchaseOrder.total_amount_cents), 0))
                .scalar()
                or 0
            ),
            "pending_orders": orders.filter(PurchaseOrder.status == "pending").count(),
        }
        if principal.is_super_admin and company_id is None:
            stats["total_companies"] = db.session.query(func.count(Company.id)).scalar()
            stats["active_companies"] = (
                db.session.query(func.count(Company.id)).filter(Company.is_active.is_(True)).scalar()
            )
            stats["total_users"] = db.session.query(func.count(Profile.id)).scalar()
        return stats

    return run_with_retry(_op)


def recent_activity(principal: Principal, *, company_id=None, limit: int = RECENT_LIMIT) -> dict:
    """Latest purchase orders and stock movements, newest first."""
    require(principal, Action.READ, Entity.PURCHASE_ORDER)
    require(principal, Action.READ, Entity.STOCK_MOVEMENT)

    def _op():
        orders = (
            _scoped(principal, PurchaseOrder, company_id)
            .order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
            .limit(limit)
            .all()
        )
        movements = (
            _scoped(principal, StockMovement, company_id)
            .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
            .limit(limit)
            .all()
        )
        product_names = {}
        if movements:
            ids = {m.product_id for m in movements}
            product_names = dict(
                db.session.query(Product.id, Product.name).filter(Product.id.in_(ids)).all()
            )
        return orders, movements, product_names

    orders, movements, product_names = run_with_retry(_op)
    recent_movements = []
    for m in movements:
        data = m.to_dict()
        data["product_name"] = product_names.get(m.product_id)
        recent_movements.append(data)
    return {
        "recent_orders": [o.to_dict() for o in orders],
        "recent_movements": recent_movements,
    }
