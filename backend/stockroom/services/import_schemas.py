from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..models import Product, Supplier
from ..validation import (
    ValidationError,
    coerce_cents,
    coerce_int,
    validate_payload,
)
from .product_service import PRODUCT_POLICY, insert_product
from .supplier_service import SUPPLIER_POLICY, insert_supplier


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _to_int(name: str, value: Any) -> int | None:
    text = _to_text(value)
    if text is None:
        return None
    return coerce_int(name, text)


def _to_cents(name: str, value: Any) -> int | None:
    text = _to_text(value)
    if text is None:
        return None
    return coerce_cents(name, text)


@dataclass
class SchemaContext:
    batch_id: int
    company_id: int
    actor_user_id: int | None
    row_number: int


class BaseImportSchema:
    """
    One CSV layout.

    normalize_row maps raw CSV cells to a payload, validate_row returns a
    list of problems (empty when the row is good) and post_row writes the
    row inside the caller's savepoint.
    """

    required_columns: tuple[str, ...] = ()

    def normalize_row(self, raw_row: dict[str, Any]) -> dict[str, Any]:
        raise NotImplementedError

    def validate_row(self, normalized_row: dict[str, Any]) -> list[str]:
        raise NotImplementedError

    def post_row(self, normalized_row: dict[str, Any], context: SchemaContext) -> int:
        raise NotImplementedError

    def missing_columns(self, header: list[str] | None) -> list[str]:
        present = {(h or "").strip().lower() for h in (header or [])}
        return [c for c in self.required_columns if c not in present]


class ProductsSchema(BaseImportSchema):
    required_columns = ("name", "sku", "category", "reorder_level", "unit_price")

    def normalize_row(self, raw_row: dict[str, Any]) -> dict[str, Any]:
        row = {
            "name": _to_text(raw_row.get("name")),
            "sku": _to_text(raw_row.get("sku")),
            "category": _to_text(raw_row.get("category")),
            "description": _to_text(raw_row.get("description")),
            "reorder_level": _to_int("reorder_level", raw_row.get("reorder_level")),
            "unit_price_cents": _to_cents("unit_price", raw_row.get("unit_price")),
        }
        if row["sku"]:
            row["sku"] = row["sku"].upper()
        return row

    def validate_row(self, normalized_row: dict[str, Any]) -> list[str]:
        errors = []
        missing = [k for k in ("name", "sku", "category") if not normalized_row.get(k)]
        if missing:
            errors.append(f"Missing required fields: {', '.join(missing)}")
        if (normalized_row.get("reorder_level") or 0) < 0:
            errors.append("reorder_level must be >= 0")
        return errors

    def post_row(self, normalized_row: dict[str, Any], context: SchemaContext) -> int:
        payload = {k: v for k, v in normalized_row.items() if v is not None}
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        product = insert_product(context.company_id, patch, user_id=context.actor_user_id)
        return product.id


class SuppliersSchema(BaseImportSchema):
    required_columns = ("name", "email", "phone", "address", "product_types", "rating")

    def normalize_row(self, raw_row: dict[str, Any]) -> dict[str, Any]:
        contact = {k: _to_text(raw_row.get(k)) for k in ("email", "phone", "address")}
        types_raw = _to_text(raw_row.get("product_types")) or ""
        return {
            "name": _to_text(raw_row.get("name")),
            "contact_info": {k: v for k, v in contact.items() if v is not None},
            "product_types": [t.strip() for t in types_raw.split(";") if t.strip()],
            "rating": _to_int("rating", raw_row.get("rating")),
        }

    def validate_row(self, normalized_row: dict[str, Any]) -> list[str]:
        errors = []
        if not normalized_row.get("name"):
            errors.append("Missing required field: name")
        rating = normalized_row.get("rating")
        if rating is not None and not 1 <= rating <= 5:
            errors.append("rating must be between 1 and 5")
        return errors

    def post_row(self, normalized_row: dict[str, Any], context: SchemaContext) -> int:
        payload = {k: v for k, v in normalized_row.items() if v is not None}
        patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)
        supplier = insert_supplier(context.company_id, patch)
        return supplier.id


SCHEMAS: dict[str, BaseImportSchema] = {
    "products": ProductsSchema(),
    "suppliers": SuppliersSchema(),
}


def schema_for(import_type: str) -> BaseImportSchema:
    try:
        return SCHEMAS[import_type]
    except KeyError:
        raise ValidationError(f"import_type must be one of: {', '.join(SCHEMAS)}") from None
