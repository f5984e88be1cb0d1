# Overview: Small request helpers shared by the API blueprints.

from flask import request

from ..validation import ValidationError


DEFAULT_LIMIT = 100
MAX_LIMIT = 500


def page_args(default_limit: int = DEFAULT_LIMIT) -> tuple[int, int]:
    """limit/offset from the query string, clamped to [1, MAX_LIMIT] and >= 0."""
    limit = request.args.get("limit", default=default_limit, type=int)
    offset = request.args.get("offset", default=0, type=int)
    limit = max(1, min(limit, MAX_LIMIT))
    offset = max(0, offset)
    return limit, offset


def page(items, total: int, limit: int, offset: int) -> dict:
    return {"items": items, "count": total, "limit": limit, "offset": offset}


def json_payload() -> dict:
    payload = request.get_json(silent=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    return payload


def bool_arg(name: str) -> bool | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes", "on")
