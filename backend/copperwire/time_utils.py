from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from .errors import ValidationError


def utcnow() -> datetime:
    """Ledger clock: UTC, stored naive."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _as_utc_naive(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    ISO-8601 string -> UTC-naive datetime.

    Accepts a plain date ("2026-03-01"), a naive timestamp (taken as UTC) or
    one with a "Z" / "+HH:MM" suffix. Blank input is None; anything else that
    does not parse raises ValueError.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text[-1] in "zZ":
        text = text[:-1] + "+00:00"
    return _as_utc_naive(datetime.fromisoformat(text))


def parse_business_date(value, field: str = "sale_date") -> Optional[datetime]:
    """
    Date a document is booked on, from a request payload.

    datetime objects pass through (normalized to UTC); strings must be
    ISO-8601. Raises ValidationError instead of ValueError.
    """
    if value is None or isinstance(value, datetime):
        return None if value is None else _as_utc_naive(value)
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 date", details={"field": field})
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date", details={"field": field, "value": value})


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """Wire form of a ledger timestamp: second precision, trailing 'Z'."""
    if dt is None:
        return None
    return _as_utc_naive(dt).replace(microsecond=0).isoformat() + "Z"
