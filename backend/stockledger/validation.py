from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Whole rupiah; keeps prices inside a 32-bit column
MAX_PRICE = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate tag)."""


class NotFoundError(LookupError):
    """404-level missing entity."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which payload keys a route accepts for a model:
    - writable_fields: columns clients may set
    - required_on_create: keys that must be present on create
    - extra_fields: non-column keys passed through to the service untouched
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    extra_fields: set[str] | None = None


def _parse_int(key: str, value: Any) -> int:
    """JSON ints, or plain decimal digit strings. No bools, floats or exponents."""
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    if isinstance(value, str):
        digits = value.strip()
        unsigned = digits[1:] if digits[:1] == "-" else digits
        if unsigned.isascii() and unsigned.isdigit():
            return int(digits)
    raise ValidationError(f"{key} must be an integer")


def _coerce(column, value: Any):
    kind = column.type
    if isinstance(kind, Boolean):
        if not isinstance(value, bool):
            raise ValidationError(f"{column.key} must be true or false")
        return value
    if isinstance(kind, Integer):
        return _parse_int(column.key, value)
    if isinstance(kind, (String, Text)):
        text = str(value).strip()
        if not text and not column.nullable:
            raise ValidationError(f"{column.key} cannot be blank")
        length = getattr(kind, "length", None)
        if length and len(text) > length:
            raise ValidationError(f"{column.key} exceeds max length {length}")
        return text
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Check a JSON body against the policy and the model's column types.

    partial=False enforces required_on_create; partial=True only checks the
    keys present. Returns the cleaned patch.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted((policy.required_on_create or set()) - payload.keys())
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    columns = {c.key: c for c in model.__mapper__.columns}
    extra = policy.extra_fields or set()

    patch: dict = {}
    for key, raw in payload.items():
        if key in extra:
            patch[key] = raw
            continue
        if key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {key}")
        column = columns.get(key)
        if column is None:
            raise ValidationError(f"Unknown field: {key}")

        if raw is None:
            if not column.nullable:
                raise ValidationError(f"{key} cannot be null")
            patch[key] = None
        else:
            patch[key] = _coerce(column, raw)

    return patch


def enforce_rules_product(patch: dict) -> None:
    """Ranges the column types cannot express."""
    for field in ("price", "cost"):
        value = patch.get(field)
        if value is not None and not 0 <= value <= MAX_PRICE:
            raise ValidationError(f"{field} must be between 0 and {MAX_PRICE:,}")

    for field in ("min_stock", "manual_stock"):
        value = patch.get(field)
        if value is not None and value < 0:
            raise ValidationError(f"{field} must be >= 0")

    if "unit_tracked" in patch and not isinstance(patch["unit_tracked"], bool):
        raise ValidationError("unit_tracked must be true or false")


def require_quantity(value: Any, field: str = "quantity", *, allow_zero: bool = False) -> int:
    """Strict integer check for counts coming from JSON or callers."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'>= 0' if allow_zero else '> 0'}")
    return value
