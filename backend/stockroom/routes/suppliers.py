# Overview: Flask API routes for suppliers and supplier quotes.

"""
Supplier routes.

MULTI-TENANT: suppliers and quotes are scoped to the caller's company.

SECURITY: staff can read suppliers but never create, update or delete
them; the policy engine answers 403 for those calls.
"""
from flask import Blueprint, request

from ..decorators import current_principal, require_auth
from ..services import supplier_service
from .common import json_payload, page, page_args

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_auth
def list_suppliers():
    """
    Query params: search, product_type, min_rating, company_id, limit, offset
    """
    limit, offset = page_args()
    rows, total = supplier_service.list_suppliers(
        current_principal(),
        search=request.args.get("search"),
        product_type=request.args.get("product_type"),
        company_id=request.args.get("company_id", type=int),
        min_rating=request.args.get("min_rating", type=int),
        limit=limit,
        offset=offset,
    )
    return page([s.to_dict() for s in rows], total, limit, offset)


@suppliers_bp.post("")
@require_auth
def create_supplier():
    """
    Body: name, contact_info {email, phone, address}? (or flat email/phone/address),
    product_types?, rating? (1-5)
    """
    supplier = supplier_service.create_supplier(current_principal(), json_payload())
    return supplier.to_dict(), 201


@suppliers_bp.get("/<int:supplier_id>")
@require_auth
def get_supplier(supplier_id: int):
    return supplier_service.get_supplier(current_principal(), supplier_id).to_dict()


@suppliers_bp.patch("/<int:supplier_id>")
@require_auth
def update_supplier(supplier_id: int):
    supplier = supplier_service.update_supplier(current_principal(), supplier_id, json_payload())
    return supplier.to_dict()


@suppliers_bp.delete("/<int:supplier_id>")
@require_auth
def delete_supplier(supplier_id: int):
    supplier_service.delete_supplier(current_principal(), supplier_id)
    return {"ok": True}


@suppliers_bp.get("/quotes")
@require_auth
def list_quotes():
    quotes = supplier_service.list_quotes(
        current_principal(),
        product_id=request.args.get("product_id", type=int),
        supplier_id=request.args.get("supplier_id", type=int),
    )
    return {"items": [q.to_dict() for q in quotes], "count": len(quotes)}


@suppliers_bp.post("/quotes")
@require_auth
def create_quote():
    """Body: {"supplier_id", "product_id", "price"}"""
    payload = json_payload()
    quote = supplier_service.create_quote(
        current_principal(),
        supplier_id=payload.get("supplier_id"),
        product_id=payload.get("product_id"),
        price=payload.get("price"),
    )
    return quote.to_dict(), 201


@suppliers_bp.get("/quotes/best/<int:product_id>")
@require_auth
def best_quotes(product_id: int):
    """Latest quote per supplier for a product, cheapest first."""
    quotes = supplier_service.best_quotes(current_principal(), product_id)
    return {"items": [q.to_dict() for q in quotes], "count": len(quotes)}
