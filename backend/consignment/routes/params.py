# Overview: Query-string parsing shared by the API routes.

from flask import request

from ..time_utils import parse_iso_date
from ..validation import ValidationError


def page_args(default_limit: int = 100) -> tuple[int, int]:
    """limit/offset from the query string; limit clamped to 1..500."""
    limit = request.args.get("limit", default_limit, type=int)
    offset = request.args.get("offset", 0, type=int)

    # Clamp limit
    if limit < 1:
        limit = 1
    if limit > 500:
        limit = 500
    if offset < 0:
        offset = 0
    return limit, offset


def date_arg(name: str, *, required: bool = False):
    raw = request.args.get(name)
    try:
        value = parse_iso_date(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date (YYYY-MM-DD)")
    if value is None and required:
        raise ValidationError(f"{name} is required")
    return value


def body_date(data: dict, name: str, *, required: bool = True):
    raw = data.get(name)
    try:
        value = parse_iso_date(raw) if isinstance(raw, str) else None
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 date (YYYY-MM-DD)")
    if value is None and (required or raw not in (None, "")):
        raise ValidationError(f"{name} is required (YYYY-MM-DD)")
    return value


def bool_arg(name: str):
    """None when absent, else true/false."""
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.strip().lower() in ("1", "true", "yes")


def json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data
