# Overview: Pytest coverage for the inventory ledger (movements, projection, bulk operations).

"""
Inventory Ledger Tests

Verifies:
- current_stock always equals the signed sum of movements
- Low stock is current_stock <= reorder_level, inclusive
- Idempotency keys resolve retries to the original movement
- Bulk operations commit all N movements under one batch id, or none
- Reconciliation rewrites drifted caches from the ledger
"""

from itertools import permutations

import pytest
from sqlalchemy.exc import OperationalError

from stockroom.extensions import db
from stockroom.models import Product, StockMovement
from stockroom.services import ledger_service
from stockroom.services.policy_service import PermissionDeniedError
from stockroom.services.tenant_service import TenantAccessError
from stockroom.validation import ConflictError, ValidationError


def _make_products(company, count):
    products = []
    for i in range(count):
        product = Product(company_id=company.id, name=f"Part {i}", sku=f"PART-{i}", reorder_level=2)
        db.session.add(product)
        products.append(product)
    db.session.commit()
    return products


class TestApplyMovement:

    def test_in_then_out_updates_cache_and_low_stock(self, owner_a, product_a, as_principal):
        principal = as_principal(owner_a)

        ledger_service.apply_movement(principal, product_id=product_a.id, movement_type="in", quantity=15)
        db.session.refresh(product_a)
        assert product_a.current_stock == 15
        assert product_a.is_low_stock is False

        ledger_service.apply_movement(principal, product_id=product_a.id, movement_type="out", quantity=8, notes="Order #12")
        db.session.refresh(product_a)
        assert product_a.current_stock == 7
        assert product_a.is_low_stock is True

        assert ledger_service.projected_stock(product_a.id) == 7
        assert db.session.query(StockMovement).filter_by(product_id=product_a.id).count() == 2

    def test_low_stock_is_inclusive(self, owner_a, product_a, as_principal):
        ledger_service.apply_movement(as_principal(owner_a), product_id=product_a.id, movement_type="in", quantity=10)
        db.session.refresh(product_a)
        assert product_a.current_stock == product_a.reorder_level
        assert product_a.is_low_stock is True
        low = ledger_service.list_low_stock(as_principal(owner_a))
        assert [p.id for p in low] == [product_a.id]

    def test_movement_records_actor_and_company(self, staff_a, product_a, as_principal):
        movement = ledger_service.apply_movement(as_principal(staff_a), product_id=product_a.id, movement_type="in", quantity=3)
        assert movement.user_id == staff_a.id
        assert movement.company_id == product_a.company_id

    @pytest.mark.parametrize("quantity", [0, -5, "1.5", "abc", True])
    def test_quantity_must_be_positive_integer(self, owner_a, product_a, as_principal, quantity):
        with pytest.raises(ValidationError):
            ledger_service.apply_movement(as_principal(owner_a), product_id=product_a.id, movement_type="in", quantity=quantity)
        assert db.session.query(StockMovement).count() == 0

    def test_unknown_type_rejected(self, owner_a, product_a, as_principal):
        with pytest.raises(ValidationError):
            ledger_service.apply_movement(as_principal(owner_a), product_id=product_a.id, movement_type="adjust", quantity=1)

    def test_negative_stock_allowed_by_default(self, owner_a, product_a, as_principal):
        ledger_service.apply_movement(as_principal(owner_a), product_id=product_a.id, movement_type="out", quantity=4)
        db.session.refresh(product_a)
        assert product_a.current_stock == -4

    def test_negative_stock_rejected_when_disabled(self, app, owner_a, product_a, as_principal, monkeypatch):
        monkeypatch.setitem(app.config, "STOCK_ALLOW_NEGATIVE", False)
        with pytest.raises(ValidationError):
            ledger_service.apply_movement(as_principal(owner_a), product_id=product_a.id, movement_type="out", quantity=4)
        db.session.refresh(product_a)
        assert product_a.current_stock == 0
        assert db.session.query(StockMovement).count() == 0

    def test_cross_tenant_product_is_not_found(self, owner_a, product_b, as_principal):
        with pytest.raises(TenantAccessError):
            ledger_service.apply_movement(as_principal(owner_a), product_id=product_b.id, movement_type="in", quantity=1)
        db.session.refresh(product_b)
        assert product_b.current_stock == 0


class TestIdempotency:

    def test_replay_returns_original_movement(self, owner_a, product_a, as_principal):
        principal = as_principal(owner_a)
        first = ledger_service.apply_movement(
            principal, product_id=product_a.id, movement_type="in", quantity=5, idempotency_key="req-1"
        )
        second = ledger_service.apply_movement(
            principal, product_id=product_a.id, movement_type="in", quantity=5, idempotency_key="req-1"
        )
        assert second.id == first.id
        db.session.refresh(product_a)
        assert product_a.current_stock == 5
        assert db.session.query(StockMovement).count() == 1

    def test_key_reuse_with_different_movement_conflicts(self, owner_a, product_a, as_principal):
        principal = as_principal(owner_a)
        ledger_service.apply_movement(principal, product_id=product_a.id, movement_type="in", quantity=5, idempotency_key="req-2")
        with pytest.raises(ConflictError):
            ledger_service.apply_movement(principal, product_id=product_a.id, movement_type="out", quantity=5, idempotency_key="req-2")
        db.session.refresh(product_a)
        assert product_a.current_stock == 5


class TestBulkMovement:

    def test_bulk_commits_one_movement_per_product(self, company_a, manager_a, as_principal):
        products = _make_products(company_a, 3)
        result = ledger_service.apply_bulk_movement(
            as_principal(manager_a),
            product_ids=[p.id for p in products],
            movement_type="in",
            quantity=4,
            notes="Cycle count",
        )
        assert result.ok
        assert (result.requested, result.succeeded, result.failed) == (3, 3, 0)

        rows = db.session.query(StockMovement).filter_by(batch_id=result.batch_id).all()
        assert len(rows) == 3
        for product in products:
            db.session.refresh(product)
            assert product.current_stock == 4

    def test_bulk_failure_writes_nothing(self, company_a, owner_a, as_principal, monkeypatch):
        products = _make_products(company_a, 3)
        real_append = ledger_service._append_movement
        calls = {"n": 0}

        def flaky_append(product, **kwargs):
            calls["n"] += 1
            if calls["n"] == 3:
                raise OperationalError("INSERT INTO stock_movements", {}, Exception("store went away"))
            return real_append(product, **kwargs)

        monkeypatch.setattr(ledger_service, "_append_movement", flaky_append)

        result = ledger_service.apply_bulk_movement(
            as_principal(owner_a),
            product_ids=[p.id for p in products],
            movement_type="in",
            quantity=5,
        )

        assert result.succeeded == 0
        assert result.failed == 3
        assert result.errors
        assert db.session.query(StockMovement).count() == 0
        for product in products:
            db.session.refresh(product)
            assert product.current_stock == 0

    def test_bulk_with_foreign_product_fails_whole_request(self, company_a, owner_a, product_b, as_principal):
        products = _make_products(company_a, 2)
        with pytest.raises(TenantAccessError):
            ledger_service.apply_bulk_movement(
                as_principal(owner_a),
                product_ids=[products[0].id, product_b.id, products[1].id],
                movement_type="in",
                quantity=1,
            )
        assert db.session.query(StockMovement).count() == 0

    def test_staff_cannot_run_bulk(self, company_a, staff_a, as_principal):
        products = _make_products(company_a, 2)
        with pytest.raises(PermissionDeniedError):
            ledger_service.apply_bulk_movement(
                as_principal(staff_a), product_ids=[p.id for p in products], movement_type="in", quantity=1
            )

    def test_empty_product_list_rejected(self, owner_a, as_principal):
        with pytest.raises(ValidationError):
            ledger_service.apply_bulk_movement(as_principal(owner_a), product_ids=[], movement_type="in", quantity=1)

    def test_compensation_removes_visible_batch_rows(self, owner_a, product_a):
        ledger_service._append_movement(product_a, movement_type="in", quantity=6, notes=None, user_id=owner_a.id, batch_id="leaked")
        db.session.commit()
        db.session.refresh(product_a)
        assert product_a.current_stock == 6

        removed = ledger_service._compensate_batch("leaked")

        assert removed == 1
        db.session.refresh(product_a)
        assert product_a.current_stock == 0
        assert db.session.query(StockMovement).filter_by(batch_id="leaked").count() == 0


MOVEMENT_SEQUENCE = (("in", 15), ("out", 8), ("in", 4), ("out", 20), ("in", 1))


class TestOrderIndependence:

    @pytest.mark.parametrize("ordering", list(permutations(MOVEMENT_SEQUENCE))[::17])
    def test_cache_matches_ledger_for_any_ordering(self, owner_a, product_a, as_principal, ordering):
        principal = as_principal(owner_a)
        for movement_type, quantity in ordering:
            ledger_service.apply_movement(principal, product_id=product_a.id, movement_type=movement_type, quantity=quantity)
            db.session.refresh(product_a)
            assert product_a.current_stock == ledger_service.projected_stock(product_a.id)

        assert product_a.current_stock == -8
        assert ledger_service.verify_stock(principal, product_a.id)["in_sync"] is True


class TestReconciliation:

    def test_verify_and_reconcile_drift(self, owner_a, product_a, as_principal):
        principal = as_principal(owner_a)
        ledger_service.apply_movement(principal, product_id=product_a.id, movement_type="in", quantity=12)

        db.session.query(Product).filter_by(id=product_a.id).update({"current_stock": 99})
        db.session.commit()

        report = ledger_service.verify_stock(principal, product_a.id)
        assert report == {"product_id": product_a.id, "cached": 99, "projected": 12, "in_sync": False}

        repairs = ledger_service.reconcile_stock(principal)
        assert repairs == [{"product_id": product_a.id, "cached": 99, "projected": 12}]
        assert ledger_service.verify_stock(principal, product_a.id)["in_sync"] is True

    def test_reconcile_noop_when_in_sync(self, owner_a, product_a, as_principal):
        ledger_service.apply_movement(as_principal(owner_a), product_id=product_a.id, movement_type="in", quantity=3)
        assert ledger_service.reconcile_stock(as_principal(owner_a)) == []


class TestHistory:

    def test_filters_and_summary(self, owner_a, product_a, as_principal):
        principal = as_principal(owner_a)
        ledger_service.apply_movement(principal, product_id=product_a.id, movement_type="in", quantity=20, notes="Delivery")
        ledger_service.apply_movement(principal, product_id=product_a.id, movement_type="out", quantity=3, notes="Sale")
        ledger_service.apply_movement(principal, product_id=product_a.id, movement_type="out", quantity=2, notes="Sale")

        rows, total = ledger_service.list_movements(principal, movement_type="out", window="today")
        assert total == 2
        assert all(m.type == "out" for m in rows)

        rows, total = ledger_service.list_movements(principal, search="deliv")
        assert total == 1

        summary = ledger_service.summarize_movements(principal)
        assert summary == {"in": {"count": 1, "quantity": 20}, "out": {"count": 2, "quantity": 5}}

    def test_unknown_window_rejected(self, owner_a, as_principal):
        with pytest.raises(ValidationError):
            ledger_service.list_movements(as_principal(owner_a), window="fortnight")

    def test_history_is_tenant_scoped(self, owner_a, owner_b, product_a, product_b, as_principal):
        ledger_service.apply_movement(as_principal(owner_a), product_id=product_a.id, movement_type="in", quantity=1)
        ledger_service.apply_movement(as_principal(owner_b), product_id=product_b.id, movement_type="in", quantity=1)

        rows, total = ledger_service.list_movements(as_principal(owner_a))
        assert total == 1
        assert rows[0].product_id == product_a.id
