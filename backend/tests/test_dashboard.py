# Overview: Pytest coverage for dashboard aggregates.

from stockroom.services import dashboard_service, ledger_service, purchase_order_service


class TestDashboard:

    def test_company_stats(self, owner_a, product_a, product_b, supplier_a, as_principal):
        principal = as_principal(owner_a)
        ledger_service.apply_movement(principal, product_id=product_a.id, movement_type="in", quantity=4)
        purchase_order_service.create_purchase_order(
            principal, supplier_id=supplier_a.id, items=[{"product_id": product_a.id, "quantity": 2, "unit_price_cents": 500}]
        )

        stats = dashboard_service.dashboard_stats(principal)
        assert stats["total_products"] == 1
        assert stats["total_suppliers"] == 1
        assert stats["low_stock_count"] == 1
        assert stats["total_stock_units"] == 4
        assert stats["total_order_value_cents"] == 1000
        assert stats["pending_orders"] == 1
        assert "total_companies" not in stats

    def test_super_admin_platform_totals(self, super_admin, owner_a, owner_b, as_principal):
        stats = dashboard_service.dashboard_stats(as_principal(super_admin))
        assert stats["total_companies"] == 2
        assert stats["active_companies"] == 2
        assert stats["total_users"] == 3

    def test_recent_activity(self, owner_a, product_a, as_principal):
        principal = as_principal(owner_a)
        ledger_service.apply_movement(principal, product_id=product_a.id, movement_type="in", quantity=1)
        activity = dashboard_service.recent_activity(principal)
        assert activity["recent_orders"] == []
        assert activity["recent_movements"][0]["product_name"] == "Widget"

    def test_dashboard_route(self, client, staff_a, product_a, headers_for):
        resp = client.get("/api/dashboard", headers=headers_for(staff_a))
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["stats"]["total_products"] == 1
        assert [p["sku"] for p in body["low_stock"]] == ["WID-001"]
