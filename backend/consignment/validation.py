from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from consignment.time_utils import parse_iso_datetime, parse_iso_date

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Date, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: $9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

MIN_SPLIT_PERCENTAGE = Decimal("0")
MAX_SPLIT_PERCENTAGE = Decimal("100")


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, errors: list[str] | None = None):
        super().__init__(message)
        self.errors = errors or []


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., item no longer available)."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(LookupError):
    """404-level: entity missing for the current tenant."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns a client may write, and which a create must supply.
    Anything outside writable_fields is rejected, not ignored.
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)


def parse_percentage(value: Any, field_name: str = "split_percentage") -> Decimal:
    """Coerce a percentage (0-100, two decimals max) to Decimal."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number")
    try:
        pct = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if not pct.is_finite():
        raise ValidationError(f"{field_name} must be a number")
    if not MIN_SPLIT_PERCENTAGE <= pct <= MAX_SPLIT_PERCENTAGE:
        raise ValidationError(f"{field_name} must be between 0 and 100")
    if pct != pct.quantize(Decimal("0.01")):
        raise ValidationError(f"{field_name} allows at most two decimal places")
    return pct


def _to_int(key: str, value: Any) -> int:
    # bool is an int subclass; floats and "1e3" / "12.5" strings are refused
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be an integer")
    text = value.strip()
    if "e" in text.lower():
        raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
    if "." in text:
        raise ValidationError(f"{key} must be an integer (no decimals)")
    try:
        return int(text)
    except ValueError:
        raise ValidationError(f"{key} must be an integer")


def _to_datetime(key: str, value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_iso_datetime(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f"{key} must be an ISO-8601 datetime")


def _to_date(key: str, value: Any) -> date:
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            parsed = None
        if parsed is not None:
            return parsed
    raise ValidationError(f"{key} must be an ISO-8601 date")


def _coerce_value(col, value: Any):
    coltype = col.type
    if isinstance(coltype, Integer):
        return _to_int(col.key, value)
    if isinstance(coltype, Numeric):
        return parse_percentage(value, col.key)
    if isinstance(coltype, Boolean):
        return value if isinstance(value, bool) else bool(value)
    if isinstance(coltype, DateTime):
        return _to_datetime(col.key, value)
    if isinstance(coltype, Date):
        return _to_date(col.key, value)
    if isinstance(coltype, (String, Text)):
        return str(value).strip()
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Check a JSON body against the model's columns and a write policy.

    Types are coerced from column metadata, non-nullable text may not be
    blank, and String(n) lengths are enforced. partial=True is PATCH
    semantics (only the keys sent are checked); partial=False also requires
    policy.required_on_create. Returns the cleaned patch.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    for key in payload:
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        if key not in columns:
            raise ValidationError(f"Unknown field: {key}")

    patch: dict = {}
    for key, raw in payload.items():
        col = columns[key]
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
            continue

        value = _coerce_value(col, raw)
        if isinstance(value, str):
            if value == "" and not col.nullable:
                raise ValidationError(f"{key} cannot be blank")
            length = getattr(col.type, "length", None)
            if length and len(value) > length:
                raise ValidationError(f"{key} exceeds max length {length}")
        patch[key] = value

    return patch


def enforce_price_cents(price: Any, field_name: str = "price_cents") -> int:
    if isinstance(price, bool) or not isinstance(price, int):
        raise ValidationError(f"{field_name} must be an integer")
    if price < 0:
        raise ValidationError(f"{field_name} must be >= 0")
    if price > MAX_PRICE_CENTS:
        raise ValidationError(f"{field_name} cannot exceed {MAX_PRICE_CENTS} (${MAX_PRICE_CENTS / 100:,.2f})")
    return price


def enforce_rules_item(patch: dict) -> None:
    """Item rules that column metadata cannot express."""
    if patch.get("price_cents") is not None:
        enforce_price_cents(patch["price_cents"])


def enforce_rules_provider(patch: dict) -> None:
    email = patch.get("email")
    if email is not None and "@" not in email:
        raise ValidationError("email must be a valid email address")


def require_fields(data: dict, *fields: str) -> None:
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"{', '.join(missing)} required")
