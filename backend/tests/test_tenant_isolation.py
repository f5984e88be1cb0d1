# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that cross-tenant access is denied for core resources.

Two companies with their own owners and products; verifies that:
1. Owner A cannot read or write data in Company B
2. A foreign company_id in a payload is ignored
3. Listings never include another company's rows
4. Cross-tenant hits look like "not found" and are logged
5. super_admin sees every company
"""

import pytest

from stockroom.extensions import db
from stockroom.models import Product, SecurityEvent
from stockroom.services.tenant_service import (
    TenantAccessError,
    get_scoped,
    require_company_active,
    resolve_company_id,
)
from stockroom.validation import ValidationError


class TestTenantServiceHelpers:

    def test_get_scoped_own_row(self, owner_a, product_a, as_principal):
        assert get_scoped(as_principal(owner_a), Product, product_a.id).id == product_a.id

    def test_get_scoped_cross_tenant(self, owner_a, product_b, as_principal):
        with pytest.raises(TenantAccessError) as exc_info:
            get_scoped(as_principal(owner_a), Product, product_b.id, label="Product")
        assert exc_info.value.cross_tenant
        assert str(exc_info.value) == "Product not found"

    def test_get_scoped_missing_row(self, owner_a, as_principal):
        with pytest.raises(TenantAccessError) as exc_info:
            get_scoped(as_principal(owner_a), Product, 99999, label="Product")
        assert not exc_info.value.cross_tenant
        assert str(exc_info.value) == "Product not found"

    def test_resolve_company_ignores_request_for_tenant_roles(self, owner_a, company_b, as_principal):
        assert resolve_company_id(as_principal(owner_a), company_b.id) == owner_a.company_id

    def test_super_admin_must_name_company(self, super_admin, as_principal):
        with pytest.raises(ValidationError):
            resolve_company_id(as_principal(super_admin), None)

    def test_inactive_company(self, company_a):
        company_a.is_active = False
        db.session.commit()
        with pytest.raises(TenantAccessError):
            require_company_active(company_a.id)


class TestCrossTenantHttp:

    def test_read_foreign_product_is_404(self, client, owner_a, product_b, headers_for):
        resp = client.get(f"/api/products/{product_b.id}", headers=headers_for(owner_a))
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "Product not found"

    def test_cross_tenant_hit_is_logged(self, client, owner_a, product_b, headers_for):
        client.patch(f"/api/products/{product_b.id}", json={"name": "Mine now"}, headers=headers_for(owner_a))
        event = db.session.query(SecurityEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED").one()
        assert event.profile_id == owner_a.id
        db.session.refresh(product_b)
        assert product_b.name == "Gadget"

    def test_missing_row_is_not_logged(self, client, owner_a, headers_for):
        client.get("/api/products/99999", headers=headers_for(owner_a))
        assert db.session.query(SecurityEvent).filter_by(event_type="CROSS_TENANT_ACCESS_DENIED").count() == 0

    def test_stock_movement_on_foreign_product(self, client, owner_a, product_b, headers_for):
        resp = client.post(
            "/api/stock/movements",
            json={"product_id": product_b.id, "type": "out", "quantity": 1},
            headers=headers_for(owner_a),
        )
        assert resp.status_code == 404
        db.session.refresh(product_b)
        assert product_b.current_stock == 0

    def test_foreign_company_id_in_payload_ignored(self, client, owner_a, company_b, headers_for):
        resp = client.post(
            "/api/products",
            json={"name": "Sneaky", "sku": "SNK-1", "company_id": company_b.id},
            headers=headers_for(owner_a),
        )
        assert resp.status_code == 201
        assert resp.get_json()["company_id"] == owner_a.company_id

    def test_listing_is_scoped(self, client, owner_a, product_a, product_b, headers_for):
        resp = client.get("/api/products", headers=headers_for(owner_a))
        skus = [p["sku"] for p in resp.get_json()["items"]]
        assert skus == ["WID-001"]

    def test_client_company_filter_only_narrows(self, client, owner_a, product_a, company_b, headers_for):
        resp = client.get(f"/api/products?company_id={company_b.id}", headers=headers_for(owner_a))
        assert resp.status_code == 200
        assert resp.get_json()["items"] == []

    def test_foreign_company_record_is_404(self, client, owner_a, company_b, headers_for):
        assert client.get(f"/api/companies/{company_b.id}", headers=headers_for(owner_a)).status_code == 404

    def test_super_admin_sees_all(self, client, super_admin, product_a, product_b, headers_for):
        resp = client.get("/api/products", headers=headers_for(super_admin))
        assert resp.get_json()["count"] == 2

    def test_super_admin_creates_in_named_company(self, client, super_admin, company_b, headers_for):
        resp = client.post(
            "/api/products",
            json={"name": "Admin Made", "sku": "ADM-1", "company_id": company_b.id},
            headers=headers_for(super_admin),
        )
        assert resp.status_code == 201
        assert resp.get_json()["company_id"] == company_b.id
