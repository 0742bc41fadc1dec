from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..validation import milli_to_quantity, cents_to_money, millicents_to_money, format_decimal


# =============================================================================
# SOURCE KINDS
# =============================================================================

SOURCE_RAW_PURCHASE = "RAW_PURCHASE"
SOURCE_PVC_PURCHASE = "PVC_PURCHASE"
SOURCE_KACHA_RETURN = "KACHA_RETURN"
SOURCE_DRAW_RETURN = "DRAW_RETURN"
SOURCE_READY_COPPER_RETURN = "READY_COPPER_RETURN"
SOURCE_PRODUCTION_OUTPUT = "PRODUCTION_OUTPUT"

VALID_SOURCE_KINDS = [
    SOURCE_RAW_PURCHASE,
    SOURCE_PVC_PURCHASE,
    SOURCE_KACHA_RETURN,
    SOURCE_DRAW_RETURN,
    SOURCE_READY_COPPER_RETURN,
    SOURCE_PRODUCTION_OUTPUT,
]

# Material sent out from an entry of the key kind comes back as the value kind
RETURN_KIND_BY_SOURCE = {
    SOURCE_RAW_PURCHASE: SOURCE_KACHA_RETURN,
    SOURCE_KACHA_RETURN: SOURCE_DRAW_RETURN,
    SOURCE_DRAW_RETURN: SOURCE_READY_COPPER_RETURN,
}

RETURN_SOURCE_KINDS = [SOURCE_KACHA_RETURN, SOURCE_DRAW_RETURN, SOURCE_READY_COPPER_RETURN]


# =============================================================================
# TRANSACTION KINDS
# =============================================================================

TX_CONSUME = "CONSUME"
TX_RETURN = "RETURN"
TX_SELL = "SELL"
TX_DELETE_ADJUSTMENT = "DELETE_ADJUSTMENT"

VALID_TRANSACTION_KINDS = [TX_CONSUME, TX_RETURN, TX_SELL, TX_DELETE_ADJUSTMENT]

# RETURN adds stock back; every other kind takes stock out
INBOUND_TRANSACTION_KINDS = {TX_RETURN}


class StockEntry(db.Model):
    """
    One traceable lot of material at some stage of the workflow.

    Entries are created once (purchase, return from processing, completed
    production) and never updated. Available quantity is never stored: it is
    total_quantity_milli plus the sum of the entry's transaction deltas.
    """
    __tablename__ = "stock_entries"
    __table_args__ = (
        db.Index("ix_stock_entries_kind_label", "source_kind", "label"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # RAW_PURCHASE, PVC_PURCHASE, KACHA_RETURN, DRAW_RETURN, READY_COPPER_RETURN, PRODUCTION_OUTPUT
    source_kind = db.Column(db.String(32), nullable=False, index=True)

    # Weak reference: upstream entry (for returns) or external process/purchase id
    origin_id = db.Column(db.Integer, nullable=True, index=True)

    label = db.Column(db.String(255), nullable=False)
    unit = db.Column(db.String(16), nullable=False, default="kg")

    # Immutable after creation (thousandths of `unit`)
    total_quantity_milli = db.Column(db.BigInteger, nullable=False)

    unit_price_cents = db.Column(db.BigInteger, nullable=True)

    created_by = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    transactions = db.relationship(
        "LedgerTransaction",
        back_populates="entry",
        lazy="dynamic",
        order_by="LedgerTransaction.id",
    )

    def __repr__(self) -> str:
        return f"<StockEntry id={self.id} kind={self.source_kind} label={self.label!r}>"

    @property
    def total_quantity(self):
        return milli_to_quantity(self.total_quantity_milli)

    @property
    def unit_price(self):
        return cents_to_money(self.unit_price_cents)

    def to_dict(self, available_quantity=None) -> dict:
        data = {
            "id": self.id,
            "source_kind": self.source_kind,
            "origin_id": self.origin_id,
            "label": self.label,
            "unit": self.unit,
            "total_quantity": format_decimal(self.total_quantity),
            "unit_price": format_decimal(self.unit_price),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
        if available_quantity is not None:
            data["available_quantity"] = format_decimal(available_quantity)
        return data


class LedgerTransaction(db.Model):
    """
    Append-only, quantity-affecting event against a StockEntry.

    quantity_delta_milli is negative for CONSUME/SELL/DELETE_ADJUSTMENT and
    positive for RETURN. Rows are never updated or deleted; a mistaken sale is
    reversed by a RETURN pointing at it through reverses_transaction_id.
    """
    __tablename__ = "ledger_transactions"
    __table_args__ = (
        db.Index("ix_ledger_tx_entry_id_id", "entry_id", "id"),
        # At most one compensating RETURN per original transaction
        db.UniqueConstraint("reverses_transaction_id", name="uq_ledger_tx_reverses"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entry_id = db.Column(db.Integer, db.ForeignKey("stock_entries.id"), nullable=False, index=True)

    # CONSUME, RETURN, SELL, DELETE_ADJUSTMENT
    kind = db.Column(db.String(32), nullable=False, index=True)

    quantity_delta_milli = db.Column(db.BigInteger, nullable=False)

    # Buyer, processor or user (free text)
    counterparty_name = db.Column(db.String(255), nullable=True)

    # Request actor that recorded the event
    performed_by = db.Column(db.String(120), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    # SELL (and its undo): price snapshot and exact line amount in thousandths of a cent
    unit_price_cents = db.Column(db.BigInteger, nullable=True)
    amount_millicents = db.Column(db.BigInteger, nullable=True)

    reverses_transaction_id = db.Column(
        db.Integer, db.ForeignKey("ledger_transactions.id"), nullable=True
    )
    khata_sale_id = db.Column(db.Integer, db.ForeignKey("khata_sales.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    entry = db.relationship("StockEntry", back_populates="transactions")
    reverses = db.relationship("LedgerTransaction", remote_side=[id], uselist=False)

    def __repr__(self) -> str:
        return f"<LedgerTransaction id={self.id} entry_id={self.entry_id} kind={self.kind} delta={self.quantity_delta_milli}>"

    @property
    def quantity_delta(self):
        return milli_to_quantity(self.quantity_delta_milli)

    @property
    def unit_price(self):
        return cents_to_money(self.unit_price_cents)

    @property
    def amount(self):
        return millicents_to_money(self.amount_millicents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entry_id": self.entry_id,
            "kind": self.kind,
            "quantity_delta": format_decimal(self.quantity_delta),
            "counterparty_name": self.counterparty_name,
            "performed_by": self.performed_by,
            "notes": self.notes,
            "unit_price": format_decimal(self.unit_price),
            "amount": format_decimal(self.amount),
            "reverses_transaction_id": self.reverses_transaction_id,
            "khata_sale_id": self.khata_sale_id,
            "timestamp": to_utc_z(self.occurred_at),
        }
