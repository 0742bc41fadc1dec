# Overview: Service-layer operations for the stock ledger; durable storage of entries and transactions.

"""
Copper Wire Pro Ledger Invariants (authoritative)

Ledger model:
- A StockEntry is one traceable lot; total_quantity is fixed at creation.
- All quantity changes are append-only LedgerTransaction rows.
- available(E) = E.total_quantity + SUM(quantity_delta of E's transactions),
  always derived in a single SQL statement, never cached or stored.

Business invariants:
- available(E) may never go negative: a transaction that would take it below
  zero is rejected, never clamped.
- RETURN transactions are positive and may not lift available above the
  lot's total quantity; every other kind is negative.
- Entries are never deleted; partial removal is a DELETE_ADJUSTMENT.

Numeric model:
- Quantities are integer thousandths, prices integer cents (see validation.py).

Durability:
- Every public mutating call commits before returning.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..errors import ValidationError, NotFoundError, InsufficientQuantityError
from ..extensions import db
from ..models import StockEntry, LedgerTransaction
from ..models.ledger import (
    VALID_SOURCE_KINDS,
    VALID_TRANSACTION_KINDS,
    INBOUND_TRANSACTION_KINDS,
    TX_DELETE_ADJUSTMENT,
)
from ..time_utils import utcnow
from ..validation import quantity_to_milli, money_to_cents, milli_to_quantity
from .concurrency import lock_for_update, run_atomically


def _clean_text(value, field: str, *, max_length: int, required: bool = False) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{field} is required", details={"field": field})
        return None
    text = str(value).strip()
    if not text:
        if required:
            raise ValidationError(f"{field} cannot be blank", details={"field": field})
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", details={"field": field})
    return text


def _available_expression():
    """SQL expression for an entry's available quantity (milli units)."""
    delta_sum = (
        db.session.query(func.coalesce(func.sum(LedgerTransaction.quantity_delta_milli), 0))
        .filter(LedgerTransaction.entry_id == StockEntry.id)
        .correlate(StockEntry)
        .scalar_subquery()
    )
    return StockEntry.total_quantity_milli + delta_sum


# =============================================================================
# READS
# =============================================================================

def get_entry(entry_id: int, *, lock: bool = False) -> StockEntry:
    query = db.session.query(StockEntry).filter_by(id=entry_id)
    if lock:
        query = lock_for_update(query)
    entry = query.first()
    if entry is None:
        raise NotFoundError(f"Stock entry {entry_id} not found", details={"entry_id": entry_id})
    return entry


def get_transaction(transaction_id: int) -> LedgerTransaction:
    tx = db.session.query(LedgerTransaction).filter_by(id=transaction_id).first()
    if tx is None:
        raise NotFoundError(
            f"Ledger transaction {transaction_id} not found",
            details={"transaction_id": transaction_id},
        )
    return tx


def get_available_milli(entry_id: int) -> int:
    """Available quantity in milli units, read in one statement (consistent snapshot)."""
    row = (
        db.session.query(_available_expression())
        .filter(StockEntry.id == entry_id)
        .first()
    )
    if row is None:
        raise NotFoundError(f"Stock entry {entry_id} not found", details={"entry_id": entry_id})
    return int(row[0])


def get_available_quantity(entry_id: int) -> Decimal:
    return milli_to_quantity(get_available_milli(entry_id))


def get_available_quantities(entry_ids) -> dict[int, Decimal]:
    """Bulk availability for list views. Unknown ids are simply absent."""
    ids = list({int(i) for i in entry_ids})
    if not ids:
        return {}
    rows = (
        db.session.query(StockEntry.id, _available_expression())
        .filter(StockEntry.id.in_(ids))
        .all()
    )
    return {entry_id: milli_to_quantity(int(available)) for entry_id, available in rows}


def list_transactions(entry_id: int) -> list[LedgerTransaction]:
    """Transactions for one entry, oldest first."""
    get_entry(entry_id)
    return (
        db.session.query(LedgerTransaction)
        .filter_by(entry_id=entry_id)
        .order_by(LedgerTransaction.id.asc())
        .all()
    )


def list_entries(
    source_kind: str | None = None,
    label: str | None = None,
    *,
    origin_id: int | None = None,
    only_available: bool = False,
) -> list[StockEntry]:
    """
    Entries matching the filter, oldest first.

    label is a case-insensitive substring match; only_available drops lots
    whose available quantity is zero.
    """
    query = db.session.query(StockEntry)
    if source_kind:
        if source_kind not in VALID_SOURCE_KINDS:
            raise ValidationError(
                f"Invalid source_kind: {source_kind}. Must be one of {VALID_SOURCE_KINDS}",
                details={"field": "source_kind"},
            )
        query = query.filter(StockEntry.source_kind == source_kind)
    if label:
        pattern = f"%{label.strip().lower()}%"
        query = query.filter(func.lower(StockEntry.label).like(pattern))
    if origin_id is not None:
        query = query.filter(StockEntry.origin_id == origin_id)
    if only_available:
        query = query.filter(_available_expression() > 0)
    return query.order_by(StockEntry.id.asc()).all()


# =============================================================================
# ENTRY CREATION
# =============================================================================

def _create_entry_inner(
    *,
    source_kind: str,
    origin_id: int | None,
    label: str,
    total_quantity_milli: int,
    unit_price_cents: int | None,
    unit: str,
    created_by: str | None,
) -> StockEntry:
    """Core insert without locking or commit. Caller owns the transaction."""
    entry = StockEntry(
        source_kind=source_kind,
        origin_id=origin_id,
        label=label,
        unit=unit,
        total_quantity_milli=total_quantity_milli,
        unit_price_cents=unit_price_cents,
        created_by=created_by,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def validate_entry_input(source_kind, label, total_quantity, unit_price, unit) -> dict:
    if source_kind not in VALID_SOURCE_KINDS:
        raise ValidationError(
            f"Invalid source_kind: {source_kind}. Must be one of {VALID_SOURCE_KINDS}",
            details={"field": "source_kind"},
        )
    total_milli = quantity_to_milli(total_quantity, "total_quantity")
    if total_milli <= 0:
        raise ValidationError(
            "total_quantity must be > 0",
            details={"field": "total_quantity", "value": str(total_quantity)},
        )
    price_cents = None
    if unit_price is not None:
        price_cents = money_to_cents(unit_price, "unit_price")
        if price_cents < 0:
            raise ValidationError("unit_price must be >= 0", details={"field": "unit_price"})
    return {
        "source_kind": source_kind,
        "label": _clean_text(label, "label", max_length=255, required=True),
        "total_quantity_milli": total_milli,
        "unit_price_cents": price_cents,
        "unit": _clean_text(unit, "unit", max_length=16) or "kg",
    }


def create_entry(
    source_kind: str,
    origin_id: int | None,
    label: str,
    total_quantity,
    unit_price=None,
    *,
    unit: str = "kg",
    created_by: str | None = None,
) -> StockEntry:
    """
    Record a new lot (purchase completed, processing returned, production completed).

    Raises:
        ValidationError: non-positive quantity, unknown kind, blank label, negative price
    """
    fields = validate_entry_input(source_kind, label, total_quantity, unit_price, unit)

    def _op():
        return _create_entry_inner(
            origin_id=origin_id,
            created_by=_clean_text(created_by, "created_by", max_length=120),
            **fields,
        )

    return run_atomically(_op)


# =============================================================================
# TRANSACTIONS
# =============================================================================

def _validate_delta(kind: str, delta_milli: int, notes: str | None) -> None:
    if kind not in VALID_TRANSACTION_KINDS:
        raise ValidationError(
            f"Invalid transaction kind: {kind}. Must be one of {VALID_TRANSACTION_KINDS}",
            details={"field": "kind"},
        )
    if delta_milli == 0:
        raise ValidationError("quantity_delta must be non-zero", details={"field": "quantity_delta"})
    if kind in INBOUND_TRANSACTION_KINDS and delta_milli < 0:
        raise ValidationError(f"quantity_delta must be > 0 for {kind}", details={"field": "quantity_delta"})
    if kind not in INBOUND_TRANSACTION_KINDS and delta_milli > 0:
        raise ValidationError(f"quantity_delta must be < 0 for {kind}", details={"field": "quantity_delta"})
    if kind == TX_DELETE_ADJUSTMENT and current_app.config.get("REQUIRE_DELETE_NOTES") and not notes:
        raise ValidationError("notes are required for DELETE_ADJUSTMENT", details={"field": "notes"})


def _append_transaction_inner(
    *,
    entry_id: int,
    kind: str,
    quantity_delta_milli: int,
    counterparty_name: str | None = None,
    notes: str | None = None,
    performed_by: str | None = None,
    unit_price_cents: int | None = None,
    amount_millicents: int | None = None,
    reverses_transaction_id: int | None = None,
    khata_sale_id: int | None = None,
) -> LedgerTransaction:
    """
    Core append without entry locks, retry, or commit.

    Must run inside run_atomically() holding the entry's lock: the
    availability check and the insert are only safe together.
    """
    notes = _clean_text(notes, "notes", max_length=2000)
    _validate_delta(kind, quantity_delta_milli, notes)

    entry = get_entry(entry_id, lock=True)
    available = get_available_milli(entry_id)
    resulting = available + quantity_delta_milli

    if resulting < 0:
        raise InsufficientQuantityError(
            entry_id,
            milli_to_quantity(-quantity_delta_milli),
            milli_to_quantity(available),
        )
    if resulting > entry.total_quantity_milli:
        raise ValidationError(
            f"Return of {milli_to_quantity(quantity_delta_milli)} would exceed the total "
            f"quantity {entry.total_quantity} of entry {entry_id}",
            details={
                "entry_id": entry_id,
                "requested": str(milli_to_quantity(quantity_delta_milli)),
                "available": str(milli_to_quantity(available)),
            },
        )

    tx = LedgerTransaction(
        entry_id=entry_id,
        kind=kind,
        quantity_delta_milli=quantity_delta_milli,
        counterparty_name=_clean_text(counterparty_name, "counterparty_name", max_length=255),
        performed_by=_clean_text(performed_by, "performed_by", max_length=120),
        notes=notes,
        unit_price_cents=unit_price_cents,
        amount_millicents=amount_millicents,
        reverses_transaction_id=reverses_transaction_id,
        khata_sale_id=khata_sale_id,
        occurred_at=utcnow(),
    )
    db.session.add(tx)
    db.session.flush()
    return tx


def append_transaction(
    entry_id: int,
    kind: str,
    quantity_delta,
    counterparty_name: str | None = None,
    notes: str | None = None,
    *,
    performed_by: str | None = None,
) -> LedgerTransaction:
    """
    Append one quantity-affecting event to an entry and commit it.

    Raises:
        NotFoundError: unknown entry
        InsufficientQuantityError: available quantity would go negative
        ValidationError: zero delta, sign not matching kind, unknown kind
    """
    delta_milli = quantity_to_milli(quantity_delta, "quantity_delta")

    def _op():
        return _append_transaction_inner(
            entry_id=entry_id,
            kind=kind,
            quantity_delta_milli=delta_milli,
            counterparty_name=counterparty_name,
            notes=notes,
            performed_by=performed_by,
        )

    return run_atomically(_op, entry_ids=[entry_id])
