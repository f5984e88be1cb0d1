# Overview: Flask API routes for the dashboard.

from flask import Blueprint, request

from ..decorators import current_principal, require_auth
from ..services import dashboard_service, ledger_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
def dashboard():
    """
    Stats, recent activity and the first low-stock alerts in one call.

    Query params: company_id (super_admin only narrows)
    """
    principal = current_principal()
    company_id = request.args.get("company_id", type=int)
    body = {"stats": dashboard_service.dashboard_stats(principal, company_id=company_id)}
    body.update(dashboard_service.recent_activity(principal, company_id=company_id))
    body["low_stock"] = [p.to_dict() for p in ledger_service.list_low_stock(principal, limit=10)]
    return body


@dashboard_bp.get("/stats")
@require_auth
def stats():
    return dashboard_service.dashboard_stats(
        current_principal(), company_id=request.args.get("company_id", type=int)
    )
