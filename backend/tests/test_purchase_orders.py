# Overview: Pytest coverage for purchase orders and receiving into stock.

"""
Purchase Order Tests

Verifies:
- po_number allocation is sequential and unique
- Item totals and the order total are snapshotted at creation
- Status transitions follow the lifecycle
- Receiving books one 'in' movement per item, exactly once
"""

import pytest

from stockroom.extensions import db
from stockroom.models import Product, StockMovement
from stockroom.services import ledger_service, purchase_order_service
from stockroom.services.policy_service import PermissionDeniedError
from stockroom.services.tenant_service import TenantAccessError
from stockroom.validation import ConflictError, ValidationError


@pytest.fixture
def second_product(company_a):
    product = Product(company_id=company_a.id, name="Bracket", sku="BRK-001", reorder_level=0, unit_price_cents=150)
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture
def order(owner_a, supplier_a, product_a, second_product, as_principal):
    return purchase_order_service.create_purchase_order(
        as_principal(owner_a),
        supplier_id=supplier_a.id,
        items=[
            {"product_id": product_a.id, "quantity": 10, "unit_price": "24.50"},
            {"product_id": second_product.id, "quantity": 4},
        ],
        expected_delivery="2026-11-01",
        notes="Q4 restock",
    )


class TestCreatePurchaseOrder:

    def test_totals_snapshot(self, order):
        assert order.status == "pending"
        assert order.po_number == "PO-000001"
        lines = {item.product_id: item for item in order.items}
        assert sorted(item.total_price_cents for item in lines.values()) == [600, 24500]
        assert order.total_amount_cents == 25100
        assert order.expected_delivery.isoformat() == "2026-11-01"

    def test_numbers_are_sequential(self, order, owner_a, supplier_a, product_a, as_principal):
        second = purchase_order_service.create_purchase_order(
            as_principal(owner_a), supplier_id=supplier_a.id, items=[{"product_id": product_a.id, "quantity": 1}]
        )
        assert second.po_number == "PO-000002"

    def test_empty_items_rejected(self, owner_a, supplier_a, as_principal):
        with pytest.raises(ValidationError):
            purchase_order_service.create_purchase_order(as_principal(owner_a), supplier_id=supplier_a.id, items=[])

    def test_zero_quantity_rejected(self, owner_a, supplier_a, product_a, as_principal):
        with pytest.raises(ValidationError):
            purchase_order_service.create_purchase_order(
                as_principal(owner_a), supplier_id=supplier_a.id, items=[{"product_id": product_a.id, "quantity": 0}]
            )

    def test_foreign_product_is_not_found(self, owner_a, supplier_a, product_b, as_principal):
        with pytest.raises(TenantAccessError):
            purchase_order_service.create_purchase_order(
                as_principal(owner_a), supplier_id=supplier_a.id, items=[{"product_id": product_b.id, "quantity": 1}]
            )

    def test_staff_cannot_create(self, staff_a, supplier_a, product_a, as_principal):
        with pytest.raises(PermissionDeniedError):
            purchase_order_service.create_purchase_order(
                as_principal(staff_a), supplier_id=supplier_a.id, items=[{"product_id": product_a.id, "quantity": 1}]
            )

    def test_items_are_immutable(self, owner_a, order, as_principal):
        with pytest.raises(ValidationError):
            purchase_order_service.update_purchase_order(as_principal(owner_a), order.id, {"items": []})


class TestLifecycle:

    def test_pending_cannot_jump_to_sent(self, owner_a, order, as_principal):
        with pytest.raises(ConflictError):
            purchase_order_service.transition_purchase_order(as_principal(owner_a), order.id, "sent")

    def test_cancelled_is_final(self, owner_a, order, as_principal):
        principal = as_principal(owner_a)
        purchase_order_service.transition_purchase_order(principal, order.id, "cancelled")
        with pytest.raises(ConflictError):
            purchase_order_service.transition_purchase_order(principal, order.id, "approved")

    def test_pending_cannot_be_received(self, owner_a, order, as_principal):
        with pytest.raises(ConflictError):
            purchase_order_service.receive_purchase_order(as_principal(owner_a), order.id)
        assert db.session.query(StockMovement).count() == 0

    def test_rejected_status_in_patch_leaves_header_untouched(self, owner_a, order, as_principal):
        with pytest.raises(ConflictError):
            purchase_order_service.update_purchase_order(
                as_principal(owner_a), order.id, {"notes": "edited", "status": "sent"}
            )
        db.session.refresh(order)
        assert order.notes == "Q4 restock"
        assert order.status == "pending"

    def test_patch_header_and_status_together(self, owner_a, order, as_principal):
        purchase_order_service.update_purchase_order(
            as_principal(owner_a), order.id, {"notes": "approved by ops", "status": "approved"}
        )
        db.session.refresh(order)
        assert order.notes == "approved by ops"
        assert order.status == "approved"

    def test_patch_to_received_books_stock_with_header(self, owner_a, order, product_a, as_principal):
        principal = as_principal(owner_a)
        purchase_order_service.transition_purchase_order(principal, order.id, "approved")
        purchase_order_service.update_purchase_order(principal, order.id, {"notes": "dock 3", "status": "received"})
        db.session.refresh(order)
        assert order.status == "received"
        assert order.notes == "dock 3"
        assert db.session.get(Product, product_a.id).current_stock == 10


class TestReceive:

    def test_receive_books_stock_once(self, owner_a, order, product_a, second_product, as_principal):
        principal = as_principal(owner_a)
        purchase_order_service.transition_purchase_order(principal, order.id, "approved")
        purchase_order_service.transition_purchase_order(principal, order.id, "sent")

        received = purchase_order_service.receive_purchase_order(principal, order.id)
        assert received.status == "received"
        assert received.received_at is not None

        movements = db.session.query(StockMovement).filter_by(purchase_order_id=order.id).all()
        assert len(movements) == 2
        assert {m.batch_id for m in movements} == {received.receipt_batch_id}
        assert all(m.type == "in" for m in movements)

        db.session.refresh(product_a)
        db.session.refresh(second_product)
        assert product_a.current_stock == 10
        assert second_product.current_stock == 4
        assert ledger_service.projected_stock(product_a.id) == 10

        with pytest.raises(ConflictError):
            purchase_order_service.receive_purchase_order(principal, order.id)
        assert db.session.query(StockMovement).filter_by(purchase_order_id=order.id).count() == 2

    def test_status_route_to_received_books_stock(self, client, owner_a, order, product_a, headers_for):
        headers = headers_for(owner_a)
        assert client.post(f"/api/purchase-orders/{order.id}/status", json={"status": "approved"}, headers=headers).status_code == 200

        resp = client.post(f"/api/purchase-orders/{order.id}/status", json={"status": "received"}, headers=headers)
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "received"

        db.session.refresh(product_a)
        assert product_a.current_stock == 10

        again = client.post(f"/api/purchase-orders/{order.id}/receive", json={}, headers=headers)
        assert again.status_code == 409

    def test_other_company_cannot_see_order(self, client, owner_b, order, headers_for):
        resp = client.get(f"/api/purchase-orders/{order.id}", headers=headers_for(owner_b))
        assert resp.status_code == 404
