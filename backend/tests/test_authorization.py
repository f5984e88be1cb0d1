# Overview: Pytest coverage for HTTP authentication and role gates.

"""
Authorization tests.

Verifies:
- Unauthenticated requests return 401
- Staff are denied bulk operations, imports and management (403)
- Denials are recorded as security events
- Owners and managers can perform their privileged operations
"""

import pytest

from stockroom.extensions import db
from stockroom.models import Profile, SecurityEvent
from stockroom.services.session_service import create_session, revoke_session


# =============================================================================
# UNAUTHENTICATED ACCESS (401)
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/companies"),
            ("POST", "/api/companies"),
            ("GET", "/api/departments"),
            ("GET", "/api/profiles"),
            ("GET", "/api/profiles/me"),
            ("GET", "/api/invites"),
            ("GET", "/api/products"),
            ("POST", "/api/stock/movements"),
            ("POST", "/api/stock/bulk"),
            ("GET", "/api/stock/movements"),
            ("GET", "/api/suppliers"),
            ("GET", "/api/purchase-orders"),
            ("POST", "/api/imports/products"),
            ("GET", "/api/exports/products"),
            ("GET", "/api/dashboard"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client):
        resp = client.get("/api/products", headers={"Authorization": "Bearer not-a-real-token"})
        assert resp.status_code == 401

    def test_revoked_token(self, client, owner_a):
        _session, token = create_session(owner_a.id)
        revoke_session(token)
        resp = client.get("/api/products", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 401

    def test_deactivated_profile_loses_access(self, client, owner_a, headers_for):
        headers = headers_for(owner_a)
        owner_a.is_active = False
        db.session.commit()
        assert client.get("/api/products", headers=headers).status_code == 401

    def test_logout_revokes_session(self, client, owner_a, headers_for):
        headers = headers_for(owner_a)
        assert client.post("/api/profiles/logout", headers=headers).status_code == 200
        assert client.get("/api/profiles/me", headers=headers).status_code == 401

    def test_health_is_public(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "healthy"


# =============================================================================
# STAFF DENIED PRIVILEGED OPERATIONS (403)
# =============================================================================


class TestStaffDenied:
    """Staff cannot perform privileged operations."""

    def test_cannot_bulk_update_stock(self, client, staff_a, product_a, headers_for):
        resp = client.post(
            "/api/stock/bulk",
            json={"product_ids": [product_a.id], "type": "in", "quantity": 1},
            headers=headers_for(staff_a),
        )
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "Permission denied"

    def test_cannot_create_product(self, client, staff_a, headers_for):
        resp = client.post("/api/products", json={"name": "X", "sku": "X-1"}, headers=headers_for(staff_a))
        assert resp.status_code == 403

    def test_cannot_list_profiles(self, client, staff_a, headers_for):
        assert client.get("/api/profiles", headers=headers_for(staff_a)).status_code == 403

    def test_cannot_create_company(self, client, owner_a, headers_for):
        resp = client.post("/api/companies", json={"name": "Rogue Ltd"}, headers=headers_for(owner_a))
        assert resp.status_code == 403

    def test_denial_logged_as_security_event(self, client, staff_a, product_a, headers_for):
        client.post(
            "/api/stock/bulk",
            json={"product_ids": [product_a.id], "type": "in", "quantity": 1},
            headers=headers_for(staff_a),
        )
        event = db.session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").one()
        assert event.profile_id == staff_a.id
        assert event.company_id == staff_a.company_id
        assert event.resource == "/api/stock/bulk"
        assert event.success is False

    def test_service_level_denial_logged(self, client, staff_a, product_a, headers_for):
        resp = client.delete(f"/api/products/{product_a.id}", headers=headers_for(staff_a))
        assert resp.status_code == 403
        assert db.session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED", profile_id=staff_a.id).count() == 1


# =============================================================================
# PRIVILEGED ROLES ALLOWED
# =============================================================================


class TestPrivilegedAllowed:

    def test_staff_records_single_movement(self, client, staff_a, product_a, headers_for):
        resp = client.post(
            "/api/stock/movements",
            json={"product_id": product_a.id, "type": "in", "quantity": 15},
            headers=headers_for(staff_a),
        )
        assert resp.status_code == 201
        assert resp.get_json()["current_stock"] == 15

    def test_idempotency_header_replays(self, client, staff_a, product_a, headers_for):
        headers = dict(headers_for(staff_a), **{"Idempotency-Key": "scan-77"})
        body = {"product_id": product_a.id, "type": "in", "quantity": 3}
        first = client.post("/api/stock/movements", json=body, headers=headers)
        second = client.post("/api/stock/movements", json=body, headers=headers)
        assert first.get_json()["id"] == second.get_json()["id"]
        assert second.get_json()["current_stock"] == 3

    def test_manager_runs_bulk(self, client, manager_a, product_a, headers_for):
        resp = client.post(
            "/api/stock/bulk",
            json={"product_ids": [product_a.id], "type": "out", "quantity": 2},
            headers=headers_for(manager_a),
        )
        assert resp.status_code == 201
        assert resp.get_json()["succeeded"] == 1

    def test_manager_creates_product(self, client, manager_a, headers_for):
        resp = client.post(
            "/api/products",
            json={"name": "Hinge", "sku": "hin-9", "unit_price": "3.50", "reorder_level": 4, "initial_stock": 6},
            headers=headers_for(manager_a),
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["sku"] == "HIN-9"
        assert body["unit_price_cents"] == 350
        assert body["current_stock"] == 6
        assert body["is_low_stock"] is False

    def test_current_stock_not_writable(self, client, owner_a, product_a, headers_for):
        resp = client.patch(f"/api/products/{product_a.id}", json={"current_stock": 500}, headers=headers_for(owner_a))
        assert resp.status_code == 400

    def test_me_reports_can_modify(self, client, staff_a, manager_a, headers_for):
        assert client.get("/api/profiles/me", headers=headers_for(staff_a)).get_json()["can_modify"] is False
        assert client.get("/api/profiles/me", headers=headers_for(manager_a)).get_json()["can_modify"] is True

    def test_tenant_role_without_company_is_rejected(self, client, db_session, headers_for):
        orphan = Profile(email="orphan@nowhere.test", role="staff", company_id=None, is_active=True)
        db.session.add(orphan)
        db.session.commit()
        resp = client.get("/api/profiles/me", headers=headers_for(orphan))
        assert resp.status_code == 401
        assert db.session.query(SecurityEvent).filter_by(event_type="TENANT_CONTEXT_MISSING").count() == 1
