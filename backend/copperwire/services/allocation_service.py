# Overview: Service-layer validation for stock allocation; pure computation, never persists.

"""
Allocation Engine

Every screen that sells, returns or removes material asks this module the
same questions ("can I take this much?", "what does this line cost?",
"do these payments settle the bill?") instead of recomputing them locally.

All arithmetic is exact: quantities and amounts are parsed into fixed-point
integers (thousandths / cents) and compared as integers. Nothing here
commits; the processor re-validates under the entry lock before writing.
"""

from __future__ import annotations

from decimal import Decimal

from ..errors import ValidationError, InsufficientQuantityError
from ..models.khata import VALID_PAYMENT_METHODS
from ..validation import (
    AMOUNT_SCALE,
    MAX_AMOUNT_MILLICENTS,
    quantity_to_milli,
    money_to_cents,
    milli_to_quantity,
    cents_to_money,
)
from . import ledger_store


def can_consume(entry_id: int, quantity) -> bool:
    """
    True when 0 < quantity <= available(entry_id).

    Raises NotFoundError for an unknown entry; a malformed quantity is
    simply not consumable.
    """
    try:
        requested = quantity_to_milli(quantity)
    except ValidationError:
        ledger_store.get_entry(entry_id)
        return False
    available = ledger_store.get_available_milli(entry_id)
    return 0 < requested <= available


def require_consumable(entry_id: int, quantity) -> int:
    """
    Raising form of can_consume(). Returns the requested quantity in milli units.

    Raises:
        ValidationError: quantity is not a positive decimal
        NotFoundError: unknown entry
        InsufficientQuantityError: quantity exceeds available
    """
    requested = quantity_to_milli(quantity)
    if requested <= 0:
        raise ValidationError("quantity must be > 0", details={"field": "quantity", "value": str(quantity)})
    available = ledger_store.get_available_milli(entry_id)
    if requested > available:
        raise InsufficientQuantityError(entry_id, milli_to_quantity(requested), milli_to_quantity(available))
    return requested


def compute_sale_total(quantity, price_per_unit) -> Decimal:
    """
    Exact quantity * price_per_unit.

    Raises ValidationError unless both operands are positive.
    """
    qty_milli = quantity_to_milli(quantity)
    price_cents = money_to_cents(price_per_unit, "price_per_unit")
    if qty_milli <= 0:
        raise ValidationError("quantity must be > 0", details={"field": "quantity", "value": str(quantity)})
    if price_cents <= 0:
        raise ValidationError(
            "price_per_unit must be > 0",
            details={"field": "price_per_unit", "value": str(price_per_unit)},
        )
    return milli_to_quantity(qty_milli) * cents_to_money(price_cents)


def sale_total_millicents(quantity, price_per_unit) -> int:
    """
    compute_sale_total() as integer thousandths of a cent.

    milli-units x cents is always a whole number of millicents, so the
    product of any valid quantity and price is stored without rounding.
    """
    total = compute_sale_total(quantity, price_per_unit)
    millicents = int(total.scaleb(AMOUNT_SCALE))
    if millicents > MAX_AMOUNT_MILLICENTS:
        raise ValidationError(
            f"Sale total {total} is out of range",
            details={"field": "price_per_unit", "total": str(total)},
        )
    return millicents


def sale_total_cents(quantity, price_per_unit) -> int:
    """
    compute_sale_total() as integer cents, for khata bills.

    A bill is settled in cents, so a total with a fraction of a cent cannot
    be paid exactly and is rejected instead of rounded.
    """
    total = compute_sale_total(quantity, price_per_unit)
    try:
        return money_to_cents(total, "total")
    except ValidationError:
        raise ValidationError(
            f"Sale total {total} is not a whole amount in cents",
            details={"field": "price_per_unit", "total": str(total)},
        )


def normalize_payment_line(line) -> dict:
    """
    Accepts {"method": "cash", "amount": 60} or the short form {"cash": 60}.

    Returns {"method": "CASH", "amount_cents": 6000, **extras}.
    """
    if not isinstance(line, dict):
        raise ValidationError("payment line must be an object")

    if "method" in line or "amount" in line:
        method = line.get("method")
        amount = line.get("amount")
        extras = {k: v for k, v in line.items() if k not in ("method", "amount")}
    elif len(line) == 1:
        (method, amount), = line.items()
        extras = {}
    else:
        raise ValidationError("payment line needs a method and an amount")

    method = str(method or "").strip().upper()
    if method not in VALID_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {method or None}. Must be one of {VALID_PAYMENT_METHODS}",
            details={"field": "method"},
        )
    if amount is None:
        raise ValidationError(f"{method} payment needs an amount", details={"field": "amount"})
    amount_cents = money_to_cents(amount, "amount")
    if amount_cents <= 0:
        raise ValidationError(f"{method} payment amount must be > 0", details={"field": "amount"})

    return {"method": method, "amount_cents": amount_cents, **extras}


def validate_payment_split(total_due, payment_lines) -> bool:
    """
    True when the payment lines add up to total_due exactly.

    Malformed lines (unknown method, non-positive amount) raise ValidationError
    rather than counting as a mismatch.
    """
    due_cents = money_to_cents(total_due, "total_due")
    if due_cents <= 0:
        raise ValidationError("total_due must be > 0", details={"field": "total_due"})
    lines = [normalize_payment_line(line) for line in (payment_lines or [])]
    return sum(line["amount_cents"] for line in lines) == due_cents
