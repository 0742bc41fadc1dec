# Overview: Service-layer operations for khata (credit) sales; multi-line sales settled by split payments.

"""
Khata Sale Service

A khata sale sells several lots to one customer in a single bill, paid by
any mix of cash, bank transfer and check.

RULES:
- Customer name and phone are required; at least one line.
- Each line is quantity * price_per_unit, computed exactly; the bill total
  must be a whole number of cents.
- Payment lines must add up to the bill total exactly.
- Lines against the same entry are summed before the availability check,
  so a cart can never oversell a lot across its own lines.
- Recording a sale is atomic: every SELL transaction, the document, its lines
  and its payments commit together.
- Voiding appends a compensating RETURN per line; the document is kept.
"""

from __future__ import annotations

import threading

from flask import current_app

from ..errors import ValidationError, NotFoundError, ConflictError
from ..extensions import db
from ..models import KhataSale, KhataSaleLine, KhataPayment
from ..models.khata import KHATA_STATUS_POSTED, KHATA_STATUS_VOIDED, PAYMENT_BANK, PAYMENT_CHECK
from ..models.ledger import TX_SELL
from ..time_utils import utcnow, parse_business_date
from ..validation import quantity_to_milli, money_to_cents, milli_to_quantity, cents_to_money
from . import allocation_service
from . import ledger_store
from .concurrency import lock_for_update, run_atomically
from .transaction_processor import _reverse_sale_inner


# Document numbers are allocated count+1, so creation is serialized in-process
_document_number_lock = threading.Lock()


def _required_text(value, field: str, max_length: int) -> str:
    text = str(value).strip() if value is not None else ""
    if not text:
        raise ValidationError(f"{field} is required", details={"field": field})
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", details={"field": field})
    return text


def _optional_text(value, field: str, max_length: int) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", details={"field": field})
    return text or None


def _parse_lines(lines) -> list[dict]:
    if not lines:
        raise ValidationError("Add at least one product", details={"field": "lines"})
    parsed = []
    for index, line in enumerate(lines):
        if not isinstance(line, dict):
            raise ValidationError(f"line {index + 1} must be an object", details={"line": index})
        entry_id = line.get("entry_id")
        if isinstance(entry_id, bool) or not isinstance(entry_id, int):
            raise ValidationError(f"line {index + 1}: entry_id must be an integer", details={"line": index})
        quantity = line.get("quantity")
        price = line.get("price_per_unit")
        if quantity is None or price is None:
            raise ValidationError(
                f"line {index + 1}: quantity and price_per_unit are required", details={"line": index}
            )
        parsed.append({
            "entry_id": entry_id,
            "quantity_milli": quantity_to_milli(quantity),
            "unit_price_cents": money_to_cents(price, "price_per_unit"),
            "line_total_cents": allocation_service.sale_total_cents(quantity, price),
        })
    return parsed


def _parse_payments(payments) -> list[dict]:
    if not payments:
        raise ValidationError("At least one payment is required", details={"field": "payments"})
    parsed = []
    for payment in payments:
        line = allocation_service.normalize_payment_line(payment)
        bank_name = _optional_text(line.get("bank_name"), "bank_name", 120)
        check_number = _optional_text(line.get("check_number"), "check_number", 64)
        parsed.append({
            "method": line["method"],
            "amount_cents": line["amount_cents"],
            "bank_name": bank_name if line["method"] == PAYMENT_BANK else None,
            "check_number": check_number if line["method"] == PAYMENT_CHECK else None,
        })
    return parsed


def _next_document_number() -> str:
    count = db.session.query(KhataSale).count()
    return f"K-{str(count + 1).zfill(6)}"


def create_khata_sale(
    customer_name: str,
    customer_phone: str,
    lines,
    payments,
    *,
    sale_date=None,
    notes: str | None = None,
    performed_by: str | None = None,
) -> KhataSale:
    """
    Record a multi-line credit sale.

    Args:
        lines: [{"entry_id": 3, "quantity": "12.5", "price_per_unit": "850"}, ...]
        payments: [{"method": "cash", "amount": "6000"},
                   {"method": "bank", "amount": "4625", "bank_name": "HBL"}, ...]

    Raises:
        ValidationError: missing customer data, bad lines, payments not equal to the bill
        NotFoundError: a line references an unknown entry
        InsufficientQuantityError: a lot does not hold the requested (summed) quantity
    """
    name = _required_text(customer_name, "customer_name", 255)
    phone = _required_text(customer_phone, "customer_phone", 32)
    parsed_lines = _parse_lines(lines)
    parsed_payments = _parse_payments(payments)
    notes = _optional_text(notes, "notes", 2000)

    sale_date = parse_business_date(sale_date)

    total_cents = sum(line["line_total_cents"] for line in parsed_lines)
    paid_cents = sum(payment["amount_cents"] for payment in parsed_payments)
    if not allocation_service.validate_payment_split(
        cents_to_money(total_cents),
        [{"method": p["method"], "amount": cents_to_money(p["amount_cents"])} for p in parsed_payments],
    ):
        raise ValidationError(
            "Total payment amount must equal total bill amount",
            details={"total": str(cents_to_money(total_cents)), "paid": str(cents_to_money(paid_cents))},
        )

    requested_by_entry: dict[int, int] = {}
    for line in parsed_lines:
        requested_by_entry[line["entry_id"]] = requested_by_entry.get(line["entry_id"], 0) + line["quantity_milli"]

    def _op():
        for entry_id, qty_milli in sorted(requested_by_entry.items()):
            ledger_store.get_entry(entry_id, lock=True)
            allocation_service.require_consumable(entry_id, milli_to_quantity(qty_milli))

        sale = KhataSale(
            document_number=_next_document_number(),
            customer_name=name,
            customer_phone=phone,
            sale_date=sale_date or utcnow(),
            total_cents=total_cents,
            status=KHATA_STATUS_POSTED,
            notes=notes,
            created_by=performed_by,
            created_at=utcnow(),
        )
        db.session.add(sale)
        db.session.flush()

        for line in parsed_lines:
            tx = ledger_store._append_transaction_inner(
                entry_id=line["entry_id"],
                kind=TX_SELL,
                quantity_delta_milli=-line["quantity_milli"],
                counterparty_name=name,
                notes=f"Khata sale {sale.document_number}",
                performed_by=performed_by,
                unit_price_cents=line["unit_price_cents"],
                amount_millicents=line["line_total_cents"] * 1000,
                khata_sale_id=sale.id,
            )
            db.session.add(KhataSaleLine(
                khata_sale_id=sale.id,
                entry_id=line["entry_id"],
                quantity_milli=line["quantity_milli"],
                unit_price_cents=line["unit_price_cents"],
                line_total_cents=line["line_total_cents"],
                transaction_id=tx.id,
            ))

        for payment in parsed_payments:
            db.session.add(KhataPayment(khata_sale_id=sale.id, **payment))

        db.session.flush()
        return sale

    with _document_number_lock:
        sale = run_atomically(_op, entry_ids=list(requested_by_entry))

    current_app.logger.info(
        "Recorded khata sale %s for %r: %d line(s), total %s",
        sale.document_number, name, len(parsed_lines), sale.total,
    )
    return sale


def get_khata_sale(sale_id: int, *, lock: bool = False) -> KhataSale:
    query = db.session.query(KhataSale).filter_by(id=sale_id)
    if lock:
        # Re-read the row even if the session already holds it
        query = lock_for_update(query).populate_existing()
    sale = query.first()
    if sale is None:
        raise NotFoundError(f"Khata sale {sale_id} not found", details={"khata_sale_id": sale_id})
    return sale


def list_khata_sales(customer: str | None = None, status: str | None = None) -> list[KhataSale]:
    query = db.session.query(KhataSale)
    if customer:
        pattern = f"%{customer.strip().lower()}%"
        query = query.filter(db.func.lower(KhataSale.customer_name).like(pattern))
    if status:
        query = query.filter(KhataSale.status == status.upper())
    return query.order_by(KhataSale.id.desc()).all()


def void_khata_sale(
    sale_id: int,
    reason: str | None = None,
    *,
    performed_by: str | None = None,
) -> KhataSale:
    """
    Void a khata sale, returning every line's quantity to its lot.

    Raises:
        NotFoundError: unknown sale
        ConflictError: sale already voided
    """
    sale = get_khata_sale(sale_id)
    entry_ids = [line.entry_id for line in sale.lines]
    reason = _optional_text(reason, "reason", 255)

    def _op():
        locked = get_khata_sale(sale_id, lock=True)
        if locked.status == KHATA_STATUS_VOIDED:
            raise ConflictError(
                f"Khata sale {locked.document_number} is already voided",
                details={"khata_sale_id": sale_id},
            )
        for line in locked.lines:
            sale_tx = ledger_store.get_transaction(line.transaction_id)
            _reverse_sale_inner(
                sale_tx,
                notes=f"Void of khata sale {locked.document_number}",
                performed_by=performed_by,
            )
        locked.status = KHATA_STATUS_VOIDED
        locked.voided_by = performed_by
        locked.voided_at = utcnow()
        locked.void_reason = reason
        db.session.flush()
        return locked

    voided = run_atomically(_op, entry_ids=entry_ids)
    current_app.logger.info("Voided khata sale %s", voided.document_number)
    return voided
