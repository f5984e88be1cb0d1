# Overview: Flask API routes for products; parses input and returns JSON responses.

"""
Product management routes with multi-tenant support.

MULTI-TENANT: All product operations are scoped to the caller's company.
A super_admin names the company with company_id.

SECURITY: All routes require authentication.
- Creating products needs a role that may modify inventory
- current_stock is read-only here; it only changes through /api/stock
"""
from flask import Blueprint, request

from ..decorators import current_principal, require_auth
from ..services import product_service
from .common import bool_arg, json_payload, page, page_args

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_auth
def list_products():
    """
    Query params:
    - search: name, SKU or category substring
    - category: exact category
    - low_stock: true for current_stock <= reorder_level only
    - company_id: narrow a super_admin listing to one company
    - limit, offset
    """
    limit, offset = page_args()
    rows, total = product_service.list_products(
        current_principal(),
        search=request.args.get("search"),
        category=request.args.get("category"),
        low_stock=bool(bool_arg("low_stock")),
        company_id=request.args.get("company_id", type=int),
        limit=limit,
        offset=offset,
    )
    return page([p.to_dict() for p in rows], total, limit, offset)


@products_bp.get("/categories")
@require_auth
def list_categories():
    return {"items": product_service.list_categories(current_principal())}


@products_bp.post("")
@require_auth
def create_product():
    """
    Body: name, sku, category?, description?, reorder_level?,
    unit_price (or unit_price_cents)?, initial_stock?
    """
    product = product_service.create_product(current_principal(), json_payload())
    return product.to_dict(), 201


@products_bp.get("/<int:product_id>")
@require_auth
def get_product(product_id: int):
    return product_service.get_product(current_principal(), product_id).to_dict()


@products_bp.patch("/<int:product_id>")
@require_auth
def update_product(product_id: int):
    product = product_service.update_product(current_principal(), product_id, json_payload())
    return product.to_dict()


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product(product_id: int):
    """Only products without stock history, quotes or order lines can be deleted."""
    product_service.delete_product(current_principal(), product_id)
    return {"ok": True}
