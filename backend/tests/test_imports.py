# Overview: Pytest coverage for CSV import of products and suppliers.

"""
CSV Import Tests

Verifies:
- Valid rows are saved and invalid rows reported as {row, error}, where
  row numbers count the header as row 1
- One bad row never blocks the others
- Missing required columns fail the whole file before anything is written
- Cancellation stops at a chunk boundary: committed rows stay, the rest
  are counted as skipped
- Rows are written into the importer's company only
"""

import io

import pytest

from stockroom.extensions import db
from stockroom.models import ImportBatch, Product, Supplier
from stockroom.services import import_service
from stockroom.services.policy_service import PermissionDeniedError
from stockroom.validation import ConflictError, ValidationError


SUPPLIER_HEADER = "name,email,phone,address,product_types,rating\n"


def _supplier_csv(count, bad_rating_at=None):
    lines = [SUPPLIER_HEADER]
    for i in range(count):
        rating = 7 if i == bad_rating_at else (i % 5) + 1
        lines.append(f"Supplier {i},s{i}@supply.test,555-010{i},{i} Dock Rd,Hardware;Tools,{rating}\n")
    return "".join(lines)


PRODUCTS_CSV = (
    "name,sku,category,reorder_level,unit_price,description\n"
    "Hex Bolt,hb-100,Fasteners,50,0.25,M8 zinc\n"
    "Washer,WA-200,Fasteners,100,0.05,\n"
    ",NO-NAME,Fasteners,1,1.00,\n"
    "Anchor,AN-300,Fasteners,-3,2.00,\n"
    "Hex Bolt Long,HB-100,Fasteners,5,0.40,duplicate sku\n"
)


class TestSupplierImport:

    def test_bad_rating_reports_row_and_keeps_others(self, owner_a, as_principal):
        result = import_service.import_csv(as_principal(owner_a), "suppliers", _supplier_csv(10, bad_rating_at=3))

        assert result["status"] == "COMPLETED"
        assert result["total"] == 10
        assert result["succeeded"] == 9
        assert result["failed"] == 1
        assert result["skipped"] == 0
        assert result["errors"] == [{"row": 5, "error": "rating must be between 1 and 5"}]

        suppliers = db.session.query(Supplier).filter_by(company_id=owner_a.company_id).all()
        assert len(suppliers) == 9
        first = next(s for s in suppliers if s.name == "Supplier 0")
        assert first.contact_info == {"email": "s0@supply.test", "phone": "555-0100", "address": "0 Dock Rd"}
        assert first.product_types == ["Hardware", "Tools"]

    def test_batch_record_matches_result(self, owner_a, as_principal):
        result = import_service.import_csv(
            as_principal(owner_a), "suppliers", _supplier_csv(3), source_file_name="vendors.csv"
        )
        batch = db.session.get(ImportBatch, result["batch_id"])
        assert batch.status == "COMPLETED"
        assert batch.source_file_name == "vendors.csv"
        assert (batch.succeeded_rows, batch.failed_rows, batch.skipped_rows) == (3, 0, 0)
        assert batch.completed_at is not None

    def test_missing_columns_fail_whole_file(self, owner_a, as_principal):
        with pytest.raises(ValidationError) as exc_info:
            import_service.import_csv(as_principal(owner_a), "suppliers", "name,email\nAcme,a@b.test\n")
        assert "phone" in str(exc_info.value)
        assert db.session.query(Supplier).count() == 0
        assert db.session.query(ImportBatch).count() == 0

    def test_header_is_case_insensitive_and_bom_tolerant(self, owner_a, as_principal):
        text = "\ufeffName,EMAIL,Phone,Address,Product_Types,Rating\nAcme,a@acme.test,1,Main St,Tools,5\n"
        result = import_service.import_csv(as_principal(owner_a), "suppliers", text)
        assert result["succeeded"] == 1

    def test_empty_file_rejected(self, owner_a, as_principal):
        with pytest.raises(ValidationError):
            import_service.import_csv(as_principal(owner_a), "suppliers", "   ")


class TestProductImport:

    def test_products_row_errors(self, owner_a, as_principal):
        result = import_service.import_csv(as_principal(owner_a), "products", PRODUCTS_CSV)

        assert result["succeeded"] == 2
        assert result["failed"] == 3
        rows_with_errors = [e["row"] for e in result["errors"]]
        assert rows_with_errors == [4, 5, 6]
        assert "name" in result["errors"][0]["error"]
        assert "reorder_level" in result["errors"][1]["error"]
        assert "HB-100" in result["errors"][2]["error"]

        bolt = db.session.query(Product).filter_by(company_id=owner_a.company_id, sku="HB-100").one()
        assert bolt.unit_price_cents == 25
        assert bolt.reorder_level == 50
        assert bolt.current_stock == 0

    def test_company_id_cannot_come_from_csv(self, owner_a, company_b, as_principal):
        text = "name,sku,category,reorder_level,unit_price,company_id\nX,X-1,Misc,1,1.00,%d\n" % company_b.id
        result = import_service.import_csv(as_principal(owner_a), "products", text)
        assert result["succeeded"] == 1
        product = db.session.query(Product).filter_by(sku="X-1").one()
        assert product.company_id == owner_a.company_id


class TestImportAuthorization:

    def test_staff_cannot_import(self, staff_a, as_principal):
        with pytest.raises(PermissionDeniedError):
            import_service.import_csv(as_principal(staff_a), "suppliers", _supplier_csv(1))

    def test_unknown_import_type(self, owner_a, as_principal):
        with pytest.raises(ValidationError):
            import_service.import_csv(as_principal(owner_a), "invoices", _supplier_csv(1))

    def test_super_admin_must_name_company(self, super_admin, company_a, as_principal):
        with pytest.raises(ValidationError):
            import_service.import_csv(as_principal(super_admin), "suppliers", _supplier_csv(1))
        result = import_service.import_csv(
            as_principal(super_admin), "suppliers", _supplier_csv(1), company_id=company_a.id
        )
        assert db.session.get(ImportBatch, result["batch_id"]).company_id == company_a.id


class TestCancellation:

    def test_cancel_at_chunk_boundary(self, app, owner_a, as_principal, monkeypatch):
        monkeypatch.setitem(app.config, "IMPORT_CHUNK_SIZE", 4)

        result = import_service.import_csv(
            as_principal(owner_a),
            "suppliers",
            _supplier_csv(10),
            cancel_check=lambda batch_id: True,
        )

        assert result["status"] == "CANCELLED"
        assert result["succeeded"] == 4
        assert result["skipped"] == 6
        assert db.session.query(Supplier).count() == 4

    def test_request_cancel_on_finished_batch_conflicts(self, owner_a, as_principal):
        result = import_service.import_csv(as_principal(owner_a), "suppliers", _supplier_csv(2))
        with pytest.raises(ConflictError):
            import_service.request_cancel(as_principal(owner_a), result["batch_id"])

    def test_request_cancel_marks_running_batch(self, company_a, owner_a, as_principal):
        batch = ImportBatch(company_id=company_a.id, import_type="suppliers", status="RUNNING", total_rows=100, errors=[])
        db.session.add(batch)
        db.session.commit()

        updated = import_service.request_cancel(as_principal(owner_a), batch.id)
        assert updated.status == "CANCEL_REQUESTED"


class TestImportRoutes:

    def test_multipart_upload(self, client, owner_a, headers_for):
        data = {"file": (io.BytesIO(_supplier_csv(3, bad_rating_at=0).encode("utf-8")), "suppliers.csv")}
        resp = client.post(
            "/api/imports/suppliers",
            data=data,
            headers=headers_for(owner_a),
            content_type="multipart/form-data",
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert (body["succeeded"], body["failed"]) == (2, 1)
        assert body["errors"][0]["row"] == 2

    def test_staff_gets_403(self, client, staff_a, headers_for):
        resp = client.post("/api/imports/suppliers", json={"csv": _supplier_csv(1)}, headers=headers_for(staff_a))
        assert resp.status_code == 403

    def test_batches_listed_for_own_company_only(self, client, owner_a, owner_b, headers_for, as_principal):
        import_service.import_csv(as_principal(owner_a), "suppliers", _supplier_csv(1))
        import_service.import_csv(as_principal(owner_b), "suppliers", _supplier_csv(1))

        resp = client.get("/api/imports", headers=headers_for(owner_b))
        assert resp.status_code == 200
        items = resp.get_json()["items"]
        assert len(items) == 1
        assert items[0]["company_id"] == owner_b.company_id
