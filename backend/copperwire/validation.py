from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import parse_iso_datetime


# Fixed-point storage: quantities in thousandths, money in cents.
QUANTITY_SCALE = 3
MONEY_SCALE = 2
# Sale amounts keep the exact quantity x price product: thousandths of a cent.
AMOUNT_SCALE = QUANTITY_SCALE + MONEY_SCALE

# 999,999,999.999 units / 9,999,999,999.99 per line; keeps sums inside BigInteger
MAX_QUANTITY_MILLI = 999_999_999_999
MAX_MONEY_CENTS = 999_999_999_999
# Signed 64-bit column limit
MAX_AMOUNT_MILLICENTS = 9_223_372_036_854_775_807


def _to_decimal(value: Any, field: str) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", details={"field": field})
    if isinstance(value, Decimal):
        dec = value
    elif isinstance(value, int):
        dec = Decimal(value)
    elif isinstance(value, float):
        # repr() is the shortest round-trip form, so 12.5 -> "12.5" (no binary noise)
        dec = Decimal(repr(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} is required", details={"field": field})
        try:
            dec = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number", details={"field": field})
    else:
        raise ValidationError(f"{field} must be a number", details={"field": field})

    if not dec.is_finite():
        raise ValidationError(f"{field} must be a finite number", details={"field": field})
    return dec


def _to_fixed(value: Any, *, scale: int, field: str, maximum: int) -> int:
    dec = _to_decimal(value, field)
    scaled = dec.scaleb(scale)
    if scaled != scaled.to_integral_value():
        raise ValidationError(
            f"{field} allows at most {scale} decimal places",
            details={"field": field, "value": str(dec)},
        )
    fixed = int(scaled)
    if abs(fixed) > maximum:
        raise ValidationError(f"{field} is out of range", details={"field": field, "value": str(dec)})
    return fixed


def quantity_to_milli(value: Any, field: str = "quantity") -> int:
    """Exact decimal quantity -> integer thousandths. Never rounds."""
    return _to_fixed(value, scale=QUANTITY_SCALE, field=field, maximum=MAX_QUANTITY_MILLI)


def money_to_cents(value: Any, field: str = "amount") -> int:
    """Exact decimal money amount -> integer cents. Never rounds."""
    return _to_fixed(value, scale=MONEY_SCALE, field=field, maximum=MAX_MONEY_CENTS)


def milli_to_quantity(milli: int | None) -> Decimal | None:
    if milli is None:
        return None
    return Decimal(int(milli)).scaleb(-QUANTITY_SCALE)


def cents_to_money(cents: int | None) -> Decimal | None:
    if cents is None:
        return None
    return Decimal(int(cents)).scaleb(-MONEY_SCALE)


def millicents_to_money(millicents: int | None) -> Decimal | None:
    if millicents is None:
        return None
    return Decimal(int(millicents)).scaleb(-AMOUNT_SCALE)


def format_decimal(value: Decimal | None) -> str | None:
    """JSON form of a fixed-point value: plain notation, no trailing zeros."""
    if value is None:
        return None
    normalized = value.normalize()
    if normalized == normalized.to_integral_value():
        return str(normalized.quantize(Decimal(1)))
    return format(normalized, "f")


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - quantity_fields / money_fields: decimal inputs kept as exact Decimal
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore
    quantity_fields: frozenset[str] = frozenset()
    money_fields: frozenset[str] = frozenset()


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or not stripped.lstrip("-").isdigit():
                raise ValidationError(f"{col.key} must be an integer", details={"field": col.key})
            return int(stripped)
        raise ValidationError(f"{col.key} must be an integer", details={"field": col.key})

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", details={"field": col.key})
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", details={"field": col.key})
            return dt
        raise ValidationError(f"{col.key} must be a datetime", details={"field": col.key})

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta | None,
    payload: dict,
    policy: PayloadPolicy,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - a policy allowlist (writable_fields) and required_on_create
    - exact decimal parsing for quantity/money fields
    - SQLAlchemy column metadata (nullable, type, String length) for the rest
    Returns a cleaned dict with only writable fields. Quantity and money
    fields come back as Decimal.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    missing = sorted(f for f in required if payload.get(f) in (None, ""))
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", details={"fields": missing})

    cols = _columns_by_key(model) if model is not None else {}

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", details={"field": k})

    patch: dict = {}

    for k, raw in payload.items():
        if k in policy.quantity_fields:
            patch[k] = None if raw is None else milli_to_quantity(quantity_to_milli(raw, k))
            continue
        if k in policy.money_fields:
            patch[k] = None if raw is None else cents_to_money(money_to_cents(raw, k))
            continue

        col = cols.get(k)
        if col is None:
            # Non-column passthrough (lists/dicts validated by the service)
            patch[k] = raw
            continue

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", details={"field": k})
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", details={"field": k})

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", details={"field": k})

        patch[k] = val

    return patch
