"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: Centralize tenant scoping for reuse across services. Every row a
tenant-bound principal touches must carry its company_id, and rows of
another company must look exactly like rows that do not exist.

SECURITY INVARIANTS:
1. The company scope comes from the Principal, never from client input
2. Row ids from client input are resolved through get_scoped()
3. Listing queries are narrowed through scope_query()
4. Cross-tenant hits raise TenantAccessError (rendered as 404) and are
   recorded as security events by the app error handler

USAGE:
    from stockroom.services.tenant_service import get_scoped, scope_query

    product = get_scoped(principal, Product, product_id, label="Product")
    query = scope_query(principal, db.session.query(Product), Product)
"""

from __future__ import annotations

from ..extensions import db
from ..models import Company
from ..permissions import Principal
from ..validation import NotFoundError, ValidationError
from .concurrency import lock_for_update


class TenantAccessError(NotFoundError):
    """
    Raised when a row is missing or belongs to another tenant.

    cross_tenant is True only when the row exists in a different company;
    callers see the same "not found" message either way.
    """

    def __init__(
        self,
        message: str,
        *,
        principal: Principal | None = None,
        cross_tenant: bool = False,
        detail: str | None = None,
    ):
        super().__init__(message)
        self.principal = principal
        self.cross_tenant = cross_tenant
        self.detail = detail


def _company_column(model):
    # Company rows are scoped by their own id
    return model.id if model is Company else model.company_id


def scope_query(principal: Principal, query, model):
    """
    Narrow a query to the rows the principal may see.

    super_admin is unscoped; every other role sees its own company only.
    Additional client filters are applied on top, so they can only narrow.
    """
    if principal.is_super_admin:
        return query
    return query.filter(_company_column(model) == principal.company_id)


def row_company_id(row) -> int | None:
    return row.id if isinstance(row, Company) else getattr(row, "company_id", None)


def get_scoped(
    principal: Principal,
    model,
    row_id,
    *,
    label: str | None = None,
    lock: bool = False,
):
    """
    Load a row by id within the principal's tenant.

    Raises TenantAccessError("<label> not found") when the row does not
    exist or belongs to another company.
    """
    label = label or model.__name__
    try:
        row_id = int(row_id)
    except (TypeError, ValueError):
        raise TenantAccessError(f"{label} not found", principal=principal) from None

    query = db.session.query(model).filter(model.id == row_id)
    if lock:
        query = lock_for_update(query)
    row = query.first()

    if row is None:
        raise TenantAccessError(f"{label} not found", principal=principal)

    if not principal.is_super_admin and row_company_id(row) != principal.company_id:
        raise TenantAccessError(
            f"{label} not found",
            principal=principal,
            cross_tenant=True,
            detail=f"{label} {row_id} belongs to company {row_company_id(row)}, not {principal.company_id}",
        )
    return row


def resolve_company_id(principal: Principal, requested=None) -> int:
    """
    Company a new row belongs to.

    Tenant-bound principals always write into their own company and the
    requested value is ignored. super_admin must name the company.
    """
    if not principal.is_super_admin:
        return principal.company_id
    if requested in (None, ""):
        raise ValidationError("company_id is required")
    company = get_scoped(principal, Company, requested, label="Company")
    return company.id


def require_company_active(company_id: int) -> Company:
    """
    Validate that a company exists and is active.

    Raises TenantAccessError if it doesn't exist or is deactivated.
    """
    company = db.session.get(Company, company_id)
    if company is None:
        raise TenantAccessError("Company not found")
    if not company.is_active:
        raise TenantAccessError("Company is not active")
    return company
