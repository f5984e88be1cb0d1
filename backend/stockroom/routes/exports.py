# Overview: Flask API routes for CSV exports.

"""
Export routes. Each returns text/csv as an attachment; the rows are the
ones the caller could list through the matching JSON endpoint.
"""

from flask import Blueprint, Response, request

from ..decorators import current_principal, require_auth
from ..services import export_service
from .common import bool_arg

exports_bp = Blueprint("exports", __name__, url_prefix="/api/exports")


def _csv_response(filename: str, body: str) -> Response:
    response = Response(body, mimetype="text/csv")
    response.headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response


@exports_bp.get("/products")
@require_auth
def export_products():
    filename, body = export_service.export_products(
        current_principal(),
        search=request.args.get("search"),
        category=request.args.get("category"),
        low_stock=bool(bool_arg("low_stock")),
    )
    return _csv_response(filename, body)


@exports_bp.get("/low-stock")
@require_auth
def export_low_stock():
    return _csv_response(*export_service.export_low_stock(current_principal()))


@exports_bp.get("/suppliers")
@require_auth
def export_suppliers():
    return _csv_response(*export_service.export_suppliers(current_principal(), search=request.args.get("search")))


@exports_bp.get("/movements")
@require_auth
def export_movements():
    filename, body = export_service.export_movements(
        current_principal(),
        product_id=request.args.get("product_id", type=int),
        movement_type=request.args.get("type"),
        window=request.args.get("window"),
        search=request.args.get("search"),
    )
    return _csv_response(filename, body)
