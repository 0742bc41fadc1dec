# Overview: Service-layer orchestration of sell/return/delete/undo as atomic ledger mutations.

"""
Sale/Return Transaction Processor

WHY: A user-facing action (sell a lot, send it back to stock under a new
name, remove part of it, undo a sale) can touch more than one ledger row.
Each action here runs as a single unit: validated and written under the
entry lock, committed together, or rolled back together.

DESIGN PRINCIPLES:
- Availability is validated by the Allocation Engine, then re-checked by the
  store inside the lock (the second check is the one that guards races).
- No row is ever updated or deleted: removals are DELETE_ADJUSTMENT rows,
  undoing a sale is a compensating RETURN linked to the original SELL.
- Errors propagate to the caller unchanged; nothing is retried except
  transient database lock failures.
"""

from __future__ import annotations

from flask import current_app

from ..errors import ValidationError, ConflictError
from ..extensions import db
from ..models import StockEntry, LedgerTransaction
from ..models.ledger import (
    RETURN_KIND_BY_SOURCE,
    RETURN_SOURCE_KINDS,
    TX_CONSUME,
    TX_DELETE_ADJUSTMENT,
    TX_RETURN,
    TX_SELL,
)
from ..validation import money_to_cents
from . import allocation_service
from . import ledger_store
from .concurrency import run_atomically


# =============================================================================
# SELL
# =============================================================================

def sell(
    entry_id: int,
    quantity,
    price_per_unit,
    buyer_name: str,
    *,
    notes: str | None = None,
    performed_by: str | None = None,
) -> LedgerTransaction:
    """
    Sell part of a lot to a buyer.

    Appends a SELL transaction with quantity_delta = -quantity and snapshots
    the unit price and sale amount on it.

    Raises:
        ValidationError: non-positive quantity/price, missing buyer
        NotFoundError: unknown entry
        InsufficientQuantityError: quantity exceeds available (nothing is written)
    """
    if not buyer_name or not str(buyer_name).strip():
        raise ValidationError("buyer_name is required", details={"field": "buyer_name"})
    amount_millicents = allocation_service.sale_total_millicents(quantity, price_per_unit)
    price_cents = money_to_cents(price_per_unit, "price_per_unit")

    def _op():
        qty_milli = allocation_service.require_consumable(entry_id, quantity)
        return ledger_store._append_transaction_inner(
            entry_id=entry_id,
            kind=TX_SELL,
            quantity_delta_milli=-qty_milli,
            counterparty_name=buyer_name,
            notes=notes,
            performed_by=performed_by,
            unit_price_cents=price_cents,
            amount_millicents=amount_millicents,
        )

    tx = run_atomically(_op, entry_ids=[entry_id])
    current_app.logger.info(
        "Sold %s from entry %s to %r (transaction %s)", tx.quantity_delta.copy_abs(), entry_id, buyer_name, tx.id
    )
    return tx


# =============================================================================
# RETURN TO INVENTORY
# =============================================================================

def _resolve_return_kind(source: StockEntry, return_kind: str | None) -> str:
    if return_kind is not None:
        if return_kind not in RETURN_SOURCE_KINDS:
            raise ValidationError(
                f"Invalid return_kind: {return_kind}. Must be one of {RETURN_SOURCE_KINDS}",
                details={"field": "return_kind"},
            )
        return return_kind
    derived = RETURN_KIND_BY_SOURCE.get(source.source_kind)
    if derived is None:
        raise ValidationError(
            f"Entries of kind {source.source_kind} cannot be returned from processing",
            details={"entry_id": source.id, "source_kind": source.source_kind},
        )
    return derived


def return_to_inventory(
    source_entry_id: int,
    new_label: str,
    quantity,
    *,
    return_kind: str | None = None,
    counterparty_name: str | None = None,
    notes: str | None = None,
    performed_by: str | None = None,
) -> StockEntry:
    """
    Reclassify processed material under a new name.

    Consumes `quantity` from the source entry and creates a new entry of the
    matching return kind (RAW_PURCHASE -> KACHA_RETURN -> DRAW_RETURN ->
    READY_COPPER_RETURN) whose origin_id points back at the source. Both rows
    commit together or not at all.

    Raises:
        ValidationError: bad quantity/label, source kind has no return stage
        NotFoundError: unknown source entry
        InsufficientQuantityError: quantity exceeds the source's available quantity
    """
    def _op():
        source = ledger_store.get_entry(source_entry_id, lock=True)
        kind = _resolve_return_kind(source, return_kind)
        qty_milli = allocation_service.require_consumable(source_entry_id, quantity)
        fields = ledger_store.validate_entry_input(
            kind, new_label, quantity, source.unit_price, source.unit
        )

        ledger_store._append_transaction_inner(
            entry_id=source_entry_id,
            kind=TX_CONSUME,
            quantity_delta_milli=-qty_milli,
            counterparty_name=counterparty_name,
            notes=notes or f"Returned as {fields['label']}",
            performed_by=performed_by,
        )
        return ledger_store._create_entry_inner(
            origin_id=source_entry_id,
            created_by=performed_by,
            **fields,
        )

    entry = run_atomically(_op, entry_ids=[source_entry_id])
    current_app.logger.info(
        "Returned %s from entry %s as entry %s (%s)", entry.total_quantity, source_entry_id, entry.id, entry.source_kind
    )
    return entry


# =============================================================================
# DELETE PARTIAL
# =============================================================================

def delete_partial(
    entry_id: int,
    quantity,
    notes: str | None = None,
    *,
    performed_by: str | None = None,
) -> LedgerTransaction:
    """
    Remove part of a lot from stock, keeping an audit record of it.

    Raises:
        ValidationError: non-positive quantity (or missing notes when REQUIRE_DELETE_NOTES is on)
        NotFoundError: unknown entry
        InsufficientQuantityError: quantity exceeds available
    """
    def _op():
        qty_milli = allocation_service.require_consumable(entry_id, quantity)
        return ledger_store._append_transaction_inner(
            entry_id=entry_id,
            kind=TX_DELETE_ADJUSTMENT,
            quantity_delta_milli=-qty_milli,
            counterparty_name=performed_by,
            notes=notes,
            performed_by=performed_by,
        )

    tx = run_atomically(_op, entry_ids=[entry_id])
    current_app.logger.info(
        "Removed %s from entry %s (transaction %s)", tx.quantity_delta.copy_abs(), entry_id, tx.id
    )
    return tx


# =============================================================================
# UNDO SALE
# =============================================================================

def _reverse_sale_inner(
    sale_tx: LedgerTransaction,
    *,
    notes: str | None = None,
    performed_by: str | None = None,
) -> LedgerTransaction:
    """Append the compensating RETURN for a SELL. Caller holds the entry lock."""
    if sale_tx.kind != TX_SELL:
        raise ValidationError(
            f"Transaction {sale_tx.id} is a {sale_tx.kind}, only SELL transactions can be undone",
            details={"transaction_id": sale_tx.id, "kind": sale_tx.kind},
        )
    existing = (
        db.session.query(LedgerTransaction)
        .filter_by(reverses_transaction_id=sale_tx.id)
        .first()
    )
    if existing is not None:
        raise ConflictError(
            f"Sale {sale_tx.id} was already undone by transaction {existing.id}",
            details={"transaction_id": sale_tx.id, "reversed_by": existing.id},
        )

    return ledger_store._append_transaction_inner(
        entry_id=sale_tx.entry_id,
        kind=TX_RETURN,
        quantity_delta_milli=-sale_tx.quantity_delta_milli,
        counterparty_name=sale_tx.counterparty_name,
        notes=notes or f"Undo of sale {sale_tx.id}",
        performed_by=performed_by,
        unit_price_cents=sale_tx.unit_price_cents,
        amount_millicents=sale_tx.amount_millicents,
        reverses_transaction_id=sale_tx.id,
        khata_sale_id=sale_tx.khata_sale_id,
    )


def undo_sale(
    transaction_id: int,
    *,
    notes: str | None = None,
    performed_by: str | None = None,
) -> LedgerTransaction:
    """
    Return a sold quantity to its lot with a compensating RETURN transaction.

    The original SELL stays in the history; the RETURN references it.

    Raises:
        NotFoundError: unknown transaction
        ValidationError: transaction is not a SELL
        ConflictError: the sale was already undone, or belongs to a khata sale
    """
    entry_id = ledger_store.get_transaction(transaction_id).entry_id

    def _op():
        sale_tx = ledger_store.get_transaction(transaction_id)
        if sale_tx.khata_sale_id is not None:
            raise ConflictError(
                f"Sale {transaction_id} is a line of khata sale {sale_tx.khata_sale_id}; void the khata sale instead",
                details={"transaction_id": transaction_id, "khata_sale_id": sale_tx.khata_sale_id},
            )
        return _reverse_sale_inner(sale_tx, notes=notes, performed_by=performed_by)

    tx = run_atomically(_op, entry_ids=[entry_id])
    current_app.logger.info(
        "Undid sale %s on entry %s (transaction %s)", transaction_id, entry_id, tx.id
    )
    return tx
