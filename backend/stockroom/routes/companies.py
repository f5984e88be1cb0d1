# Overview: Flask API routes for companies (tenants).

"""
Company routes.

MULTI-TENANT: super_admin manages every company; a company_owner reads
and updates its own; other roles can read their own company.

SECURITY: All routes require authentication. Authorization is decided by
the policy engine inside the services.
"""
from flask import Blueprint, request

from ..decorators import current_principal, require_auth
from ..services import company_service
from .common import bool_arg, json_payload

companies_bp = Blueprint("companies", __name__, url_prefix="/api/companies")


@companies_bp.get("")
@require_auth
def list_companies():
    """
    Query params:
    - search: substring of the company name
    - active_only: true to hide deactivated companies
    """
    principal = current_principal()
    active_only = bool_arg("active_only") or False
    companies = company_service.list_companies(
        principal,
        search=request.args.get("search"),
        include_inactive=not active_only,
    )
    counts = company_service.company_user_counts([c.id for c in companies])
    items = []
    for company in companies:
        data = company.to_dict()
        data["user_count"] = counts.get(company.id, 0)
        items.append(data)
    return {"items": items, "count": len(items)}


@companies_bp.post("")
@require_auth
def create_company():
    """
    Create a company with its default departments.

    Optional owner_email sends a company_owner invite in the same call.
    """
    payload = dict(json_payload())
    owner_email = payload.pop("owner_email", None)
    company, invite = company_service.create_company(current_principal(), payload, owner_email=owner_email)
    body = {"company": company.to_dict()}
    if invite is not None:
        body["invite"] = invite.to_dict()
    return body, 201


@companies_bp.get("/<int:company_id>")
@require_auth
def get_company(company_id: int):
    return company_service.get_company(current_principal(), company_id).to_dict()


@companies_bp.patch("/<int:company_id>")
@require_auth
def update_company(company_id: int):
    company = company_service.update_company(current_principal(), company_id, json_payload())
    return company.to_dict()


@companies_bp.delete("/<int:company_id>")
@require_auth
def deactivate_company(company_id: int):
    """Soft delete: the company and its members are deactivated."""
    company = company_service.deactivate_company(current_principal(), company_id)
    return company.to_dict()
