from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from ..validation import milli_to_quantity, cents_to_money, format_decimal


KHATA_STATUS_POSTED = "POSTED"
KHATA_STATUS_VOIDED = "VOIDED"

PAYMENT_CASH = "CASH"
PAYMENT_BANK = "BANK"
PAYMENT_CHECK = "CHECK"

VALID_PAYMENT_METHODS = [PAYMENT_CASH, PAYMENT_BANK, PAYMENT_CHECK]


class KhataSale(db.Model):
    """
    Credit-style sale document to a recurring customer.

    Each line consumes stock through its own SELL ledger transaction; the
    document itself never holds quantity state. Payments must add up to
    total_cents exactly when the sale is recorded.
    """
    __tablename__ = "khata_sales"
    __table_args__ = (
        db.UniqueConstraint("document_number", name="uq_khata_sales_docnum"),
        db.Index("ix_khata_sales_customer", "customer_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable document number (e.g., "K-000012")
    document_number = db.Column(db.String(32), nullable=False)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=False)

    sale_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    total_cents = db.Column(db.BigInteger, nullable=False)

    # POSTED, VOIDED
    status = db.Column(db.String(16), nullable=False, default=KHATA_STATUS_POSTED, index=True)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(120), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    # Void audit trail
    voided_by = db.Column(db.String(120), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    lines = db.relationship(
        "KhataSaleLine", back_populates="sale", order_by="KhataSaleLine.id", lazy="selectin"
    )
    payments = db.relationship(
        "KhataPayment", back_populates="sale", order_by="KhataPayment.id", lazy="selectin"
    )

    @property
    def total(self):
        return cents_to_money(self.total_cents)

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "document_number": self.document_number,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "sale_date": to_utc_z(self.sale_date),
            "total": format_decimal(self.total),
            "status": self.status,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "voided_by": self.voided_by,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class KhataSaleLine(db.Model):
    __tablename__ = "khata_sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    khata_sale_id = db.Column(db.Integer, db.ForeignKey("khata_sales.id"), nullable=False, index=True)
    entry_id = db.Column(db.Integer, db.ForeignKey("stock_entries.id"), nullable=False, index=True)

    quantity_milli = db.Column(db.BigInteger, nullable=False)
    unit_price_cents = db.Column(db.BigInteger, nullable=False)
    line_total_cents = db.Column(db.BigInteger, nullable=False)

    # The SELL transaction this line posted
    transaction_id = db.Column(db.Integer, db.ForeignKey("ledger_transactions.id"), nullable=False)

    sale = db.relationship("KhataSale", back_populates="lines")
    entry = db.relationship("StockEntry")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "khata_sale_id": self.khata_sale_id,
            "entry_id": self.entry_id,
            "label": self.entry.label if self.entry else None,
            "quantity": format_decimal(milli_to_quantity(self.quantity_milli)),
            "price_per_unit": format_decimal(cents_to_money(self.unit_price_cents)),
            "line_total": format_decimal(cents_to_money(self.line_total_cents)),
            "transaction_id": self.transaction_id,
        }


class KhataPayment(db.Model):
    __tablename__ = "khata_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    khata_sale_id = db.Column(db.Integer, db.ForeignKey("khata_sales.id"), nullable=False, index=True)

    # CASH, BANK, CHECK
    method = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.BigInteger, nullable=False)

    bank_name = db.Column(db.String(120), nullable=True)
    check_number = db.Column(db.String(64), nullable=True)

    sale = db.relationship("KhataSale", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "method": self.method,
            "amount": format_decimal(cents_to_money(self.amount_cents)),
            "bank_name": self.bank_name,
            "check_number": self.check_number,
        }
