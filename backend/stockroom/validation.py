from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Integer, String, Text

from stockroom.time_utils import parse_iso_datetime


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999
MAX_QUANTITY = 1_000_000

MOVEMENT_TYPES = ("in", "out")


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (duplicate SKU, reused invite token, ...)."""


class NotFoundError(LookupError):
    """404-level: the row does not exist or is outside the caller's tenant."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Client-facing write policy for one model.

    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST

    company_id is never writable from a payload; services take it from
    the principal.
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)


def _columns_by_key(model) -> dict[str, Any]:
    return {c.key: c for c in model.__mapper__.columns}


def coerce_int(name: str, value: Any) -> int:
    """Strict integer: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer") from None
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def coerce_cents(name: str, value: Any) -> int:
    """
    Money amount in major units ("25.99", 25.99, "$1,200") -> integer cents.

    Rounds half-up to the cent. Negative amounts are rejected.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{name} must be a number")
    raw = str(value).strip().replace("$", "").replace(",", "")
    if not raw:
        raise ValidationError(f"{name} must be a number")
    try:
        amount = Decimal(raw)
    except InvalidOperation:
        raise ValidationError(f"{name} must be a number") from None
    if not amount.is_finite():
        raise ValidationError(f"{name} must be a number")
    cents = int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if cents < 0:
        raise ValidationError(f"{name} must be >= 0")
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{name} cannot exceed {MAX_PRICE_CENTS / 100:,.2f}")
    return cents


def _coerce_value(col, value: Any):
    coltype = col.type

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be true or false")

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime") from None
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, Date):
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value.strip())
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date") from None
        raise ValidationError(f"{col.key} must be a date")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    if isinstance(coltype, JSON):
        return value

    return value


def validate_payload(
    *,
    model,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against column metadata and a policy
    allowlist. Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields or k not in cols:
            raise ValidationError(f"Field not allowed: {k}")

    patch: dict = {}
    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable and val == "":
            raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """Rules beyond column metadata: non-negative reorder level and price."""
    if patch.get("reorder_level") is not None and patch["reorder_level"] < 0:
        raise ValidationError("reorder_level must be >= 0")
    if patch.get("unit_price_cents") is not None:
        price = patch["unit_price_cents"]
        if price < 0:
            raise ValidationError("unit_price_cents must be >= 0")
        if price > MAX_PRICE_CENTS:
            raise ValidationError(f"unit_price_cents cannot exceed {MAX_PRICE_CENTS}")


def enforce_rules_movement(movement_type: Any, quantity: Any) -> tuple[str, int]:
    """Normalize a stock movement request. Quantity must be a positive integer."""
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError("type must be 'in' or 'out'")
    qty = coerce_int("quantity", quantity)
    if qty <= 0:
        raise ValidationError("quantity must be > 0")
    if qty > MAX_QUANTITY:
        raise ValidationError(f"quantity cannot exceed {MAX_QUANTITY}")
    return movement_type, qty


def enforce_rules_supplier(patch: dict) -> None:
    rating = patch.get("rating")
    if rating is not None and not 1 <= rating <= 5:
        raise ValidationError("rating must be between 1 and 5")
    if "product_types" in patch and patch["product_types"] is not None:
        types = patch["product_types"]
        if not isinstance(types, list) or not all(isinstance(t, str) for t in types):
            raise ValidationError("product_types must be a list of strings")
        patch["product_types"] = sorted({t.strip() for t in types if t.strip()})
    if "contact_info" in patch and patch["contact_info"] is not None:
        info = patch["contact_info"]
        if not isinstance(info, dict):
            raise ValidationError("contact_info must be an object")
        unknown = set(info) - {"email", "phone", "address"}
        if unknown:
            raise ValidationError(f"contact_info has unknown keys: {', '.join(sorted(unknown))}")
        patch["contact_info"] = {
            k: (str(v).strip() if v is not None else None) for k, v in info.items()
        }
