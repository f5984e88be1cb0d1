# Overview: CSV exports of products, suppliers, stock history and the low-stock list.

"""
Export Service

Each export returns (filename, csv_text). Rows come from the same scoped
queries the list endpoints use, so an export never shows more than the
principal could list.
"""

from __future__ import annotations

import csv
import io

from ..extensions import db
from ..models import Product, Profile, StockMovement, Supplier, format_cents
from ..permissions import Principal
from stockroom.time_utils import to_utc_z, utcnow
from .concurrency import run_with_retry
from .ledger_service import _movement_filters, low_stock_query
from .product_service import product_query
from .supplier_service import supplier_query


PRODUCT_COLUMNS = ["id", "name", "sku", "category", "current_stock", "reorder_level", "unit_price", "is_low_stock"]
SUPPLIER_COLUMNS = ["id", "name", "email", "phone", "address", "product_types", "rating"]
MOVEMENT_COLUMNS = ["date", "product", "sku", "type", "quantity", "user", "notes", "batch_id"]


def _write(columns: list[str], rows) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(columns)
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    return buffer.getvalue()


def _filename(kind: str) -> str:
    return f"{kind}_{utcnow().date().isoformat()}.csv"


def _product_row(product: Product) -> list:
    return [
        product.id,
        product.name,
        product.sku,
        product.category,
        product.current_stock,
        product.reorder_level,
        format_cents(product.unit_price_cents),
        "yes" if product.is_low_stock else "no",
    ]


def export_products(principal: Principal, *, search=None, category=None, low_stock: bool = False) -> tuple[str, str]:
    def _op():
        query = product_query(principal, search=search, category=category, low_stock=low_stock)
        return query.order_by(Product.name.asc(), Product.id.asc()).all()

    products = run_with_retry(_op)
    return _filename("products"), _write(PRODUCT_COLUMNS, (_product_row(p) for p in products))


def export_low_stock(principal: Principal) -> tuple[str, str]:
    products = run_with_retry(lambda: low_stock_query(principal).all())
    return _filename("low_stock"), _write(PRODUCT_COLUMNS, (_product_row(p) for p in products))


def export_suppliers(principal: Principal, *, search=None) -> tuple[str, str]:
    def _op():
        query = supplier_query(principal, search=search)
        return query.order_by(Supplier.name.asc(), Supplier.id.asc()).all()

    rows = []
    for supplier in run_with_retry(_op):
        contact = supplier.contact_info or {}
        rows.append([
            supplier.id,
            supplier.name,
            contact.get("email"),
            contact.get("phone"),
            contact.get("address"),
            ";".join(supplier.product_types or []),
            supplier.rating,
        ])
    return _filename("suppliers"), _write(SUPPLIER_COLUMNS, rows)


def export_movements(principal: Principal, *, product_id=None, movement_type=None, window=None, search=None) -> tuple[str, str]:
    """Stock history, newest first, with the same filters as the history view."""
    def _op():
        query = _movement_filters(
            principal,
            product_id=product_id,
            movement_type=movement_type,
            window=window,
            search=search,
        )
        movements = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc()).all()
        product_ids = {m.product_id for m in movements}
        user_ids = {m.user_id for m in movements if m.user_id is not None}
        products = {
            p.id: p for p in db.session.query(Product).filter(Product.id.in_(product_ids))
        } if product_ids else {}
        users = {
            p.id: (p.full_name or p.email) for p in db.session.query(Profile).filter(Profile.id.in_(user_ids))
        } if user_ids else {}
        return movements, products, users

    movements, products, users = run_with_retry(_op)
    rows = []
    for m in movements:
        product = products.get(m.product_id)
        rows.append([
            to_utc_z(m.created_at),
            product.name if product else None,
            product.sku if product else None,
            "Stock In" if m.type == "in" else "Stock Out",
            m.quantity,
            users.get(m.user_id),
            m.notes,
            m.batch_id,
        ])
    return _filename("stock_movements"), _write(MOVEMENT_COLUMNS, rows)
