from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import JSON, Boolean, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Maximum price: 9,999,999.99 in the store currency
MAX_PRICE = 9_999_999.99

PRICE_FIELDS = ("cost_price", "selling_price", "price")

_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off"}


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(LookupError):
    """404-level unknown identifier."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate SKU)."""


class InsufficientStockError(ConflictError):
    """409-level rejection: the movement would drive stock below zero."""

    def __init__(self, message: str, *, available: int, requested: int):
        super().__init__(message)
        self.available = available
        self.requested = requested


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for create
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_bool(key: str, value: Any) -> bool:
    """Storage and form inputs arrive as 0/1 or strings; convert once here."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValidationError(f"{key} must be a boolean")


def coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_number(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")
    if number != number or number in (float("inf"), float("-inf")):
        raise ValidationError(f"{key} must be a finite number")
    return number


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Boolean):
        return coerce_bool(col.key, value)

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Float):
        return coerce_number(col.key, value)

    if isinstance(coltype, JSON):
        if not isinstance(value, (dict, list)):
            raise ValidationError(f"{col.key} must be an object or a list")
        return value

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
    extra_fields: frozenset[str] = frozenset(),
) -> dict:
    """
    Validates + normalizes an incoming mapping against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    extra_fields are accepted and passed through untouched; the caller
    validates them (e.g. ``initial_stock`` on create).

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k in extra_fields:
            continue
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        if k in extra_fields:
            patch[k] = raw
            continue
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def validate_price(key: str, price) -> float:
    price = coerce_number(key, price)
    if price < 0:
        raise ValidationError(f"{key} must be >= 0")
    if price > MAX_PRICE:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE:,.2f}")
    return price


def enforce_rules_prices(patch: dict) -> None:
    for key in PRICE_FIELDS:
        if patch.get(key) is not None:
            validate_price(key, patch[key])
    if patch.get("margin_percent") is not None and patch["margin_percent"] < 0:
        raise ValidationError("margin_percent must be >= 0")


def enforce_rules_thresholds(stock_min: int | None, stock_max: int | None) -> None:
    """stock_min >= 0; when stock_max is set it must be >= stock_min."""
    if stock_min is not None and stock_min < 0:
        raise ValidationError("stock_min must be >= 0")
    if stock_max is not None:
        if stock_max < 0:
            raise ValidationError("stock_max must be >= 0")
        if stock_max < (stock_min or 0):
            raise ValidationError("stock_max must be >= stock_min")
