"""
Transaction processor tests.

Sell / return / delete / undo flows, including the all-or-nothing behavior
of return_to_inventory when its second write fails.
"""

from decimal import Decimal

import pytest

from copperwire.errors import (
    ValidationError,
    NotFoundError,
    ConflictError,
    InsufficientQuantityError,
)
from copperwire.extensions import db
from copperwire.models import StockEntry, LedgerTransaction
from copperwire.services import allocation_service, ledger_store, transaction_processor


def _transaction_count(entry_id):
    return db.session.query(LedgerTransaction).filter_by(entry_id=entry_id).count()


class TestSell:
    def test_sell_records_negative_delta_and_amount(self, raw_entry):
        tx = transaction_processor.sell(raw_entry.id, 30, 50, "Ahmed Traders", performed_by="clerk")

        assert tx.kind == "SELL"
        assert tx.quantity_delta == Decimal("-30")
        assert tx.unit_price == Decimal("50")
        assert tx.amount == Decimal("1500")
        assert tx.counterparty_name == "Ahmed Traders"
        assert tx.performed_by == "clerk"
        assert ledger_store.get_available_quantity(raw_entry.id) == Decimal("70")

    def test_amount_keeps_fractions_of_a_cent(self, raw_entry):
        tx = transaction_processor.sell(raw_entry.id, "12.345", "850.5", "Bilal")

        assert tx.quantity_delta == Decimal("-12.345")
        assert tx.amount == Decimal("10499.4225")
        assert tx.amount_millicents == 1049942250
        assert ledger_store.get_available_quantity(raw_entry.id) == Decimal("87.655")

        undo = transaction_processor.undo_sale(tx.id)
        assert undo.amount == Decimal("10499.4225")
        assert ledger_store.get_available_quantity(raw_entry.id) == Decimal("100")

    def test_oversell_is_rejected_without_writing(self, raw_entry):
        transaction_processor.sell(raw_entry.id, 30, 50, "Ahmed Traders")

        with pytest.raises(InsufficientQuantityError) as exc_info:
            transaction_processor.sell(raw_entry.id, 80, 50, "Bilal")

        assert exc_info.value.available == Decimal("70")
        assert ledger_store.get_available_quantity(raw_entry.id) == Decimal("70")
        assert _transaction_count(raw_entry.id) == 1

    def test_buyer_is_required(self, raw_entry):
        with pytest.raises(ValidationError):
            transaction_processor.sell(raw_entry.id, 1, 50, "  ")

    def test_price_must_be_positive(self, raw_entry):
        with pytest.raises(ValidationError):
            transaction_processor.sell(raw_entry.id, 1, 0, "Bilal")

    def test_unknown_entry(self, db_session):
        with pytest.raises(NotFoundError):
            transaction_processor.sell(999999, 1, 50, "Bilal")


class TestDeletePartial:
    def test_delete_everything_leaves_nothing_to_consume(self, raw_entry):
        transaction_processor.sell(raw_entry.id, 30, 50, "Ahmed Traders")

        tx = transaction_processor.delete_partial(raw_entry.id, 70, "Water damage", performed_by="owner")

        assert tx.kind == "DELETE_ADJUSTMENT"
        assert tx.quantity_delta == Decimal("-70")
        assert tx.notes == "Water damage"
        assert ledger_store.get_available_quantity(raw_entry.id) == Decimal("0")
        assert allocation_service.can_consume(raw_entry.id, 1) is False

    def test_cannot_delete_more_than_available(self, raw_entry):
        with pytest.raises(InsufficientQuantityError):
            transaction_processor.delete_partial(raw_entry.id, "100.5")

    def test_notes_optional_by_default(self, raw_entry):
        tx = transaction_processor.delete_partial(raw_entry.id, 1)
        assert tx.notes is None

    def test_notes_required_when_configured(self, app, raw_entry, monkeypatch):
        monkeypatch.setitem(app.config, "REQUIRE_DELETE_NOTES", True)

        with pytest.raises(ValidationError):
            transaction_processor.delete_partial(raw_entry.id, 1, "   ")
        assert _transaction_count(raw_entry.id) == 0

        transaction_processor.delete_partial(raw_entry.id, 1, "Counted short")
        assert ledger_store.get_available_quantity(raw_entry.id) == Decimal("99")


class TestUndoSale:
    def test_undo_restores_quantity_and_keeps_history(self, raw_entry):
        sale = transaction_processor.sell(raw_entry.id, 30, 50, "Ahmed Traders")

        undo = transaction_processor.undo_sale(sale.id, performed_by="clerk")

        assert undo.kind == "RETURN"
        assert undo.quantity_delta == Decimal("30")
        assert undo.reverses_transaction_id == sale.id
        assert undo.counterparty_name == "Ahmed Traders"
        assert ledger_store.get_available_quantity(raw_entry.id) == Decimal("100")
        assert [tx.kind for tx in ledger_store.list_transactions(raw_entry.id)] == ["SELL", "RETURN"]

    def test_undo_twice_is_a_conflict(self, raw_entry):
        sale = transaction_processor.sell(raw_entry.id, 30, 50, "Ahmed Traders")
        transaction_processor.undo_sale(sale.id)

        with pytest.raises(ConflictError):
            transaction_processor.undo_sale(sale.id)
        assert ledger_store.get_available_quantity(raw_entry.id) == Decimal("100")

    def test_only_sales_can_be_undone(self, raw_entry):
        tx = transaction_processor.delete_partial(raw_entry.id, 5)

        with pytest.raises(ValidationError):
            transaction_processor.undo_sale(tx.id)

    def test_unknown_transaction(self, db_session):
        with pytest.raises(NotFoundError):
            transaction_processor.undo_sale(999999)


class TestReturnToInventory:
    def test_return_creates_linked_entry(self, raw_entry):
        kacha = transaction_processor.return_to_inventory(
            raw_entry.id, "Kacha 8mm", "40.5", counterparty_name="Drawing unit", performed_by="clerk"
        )

        assert kacha.source_kind == "KACHA_RETURN"
        assert kacha.origin_id == raw_entry.id
        assert kacha.label == "Kacha 8mm"
        assert kacha.total_quantity == Decimal("40.5")
        assert kacha.unit_price == raw_entry.unit_price
        assert ledger_store.get_available_quantity(kacha.id) == Decimal("40.5")
        assert ledger_store.get_available_quantity(raw_entry.id) == Decimal("59.5")

        (consume,) = ledger_store.list_transactions(raw_entry.id)
        assert consume.kind == "CONSUME"
        assert consume.quantity_delta == Decimal("-40.5")
        assert consume.counterparty_name == "Drawing unit"

    def test_return_kind_follows_the_stage(self, raw_entry):
        kacha = transaction_processor.return_to_inventory(raw_entry.id, "Kacha", 50)
        draw = transaction_processor.return_to_inventory(kacha.id, "Draw", 50)
        ready = transaction_processor.return_to_inventory(draw.id, "Ready copper", 20)

        assert [kacha.source_kind, draw.source_kind, ready.source_kind] == [
            "KACHA_RETURN", "DRAW_RETURN", "READY_COPPER_RETURN",
        ]
        assert ledger_store.get_available_quantity(draw.id) == Decimal("30")

    def test_explicit_return_kind(self, small_entry):
        entry = transaction_processor.return_to_inventory(
            small_entry.id, "Reworked wire", 2, return_kind="DRAW_RETURN"
        )
        assert entry.source_kind == "DRAW_RETURN"

    def test_stage_without_return_kind(self, small_entry):
        with pytest.raises(ValidationError):
            transaction_processor.return_to_inventory(small_entry.id, "Reworked wire", 2)

    def test_invalid_return_kind(self, raw_entry):
        with pytest.raises(ValidationError):
            transaction_processor.return_to_inventory(raw_entry.id, "Kacha", 2, return_kind="RAW_PURCHASE")

    def test_return_more_than_available(self, raw_entry):
        before = db.session.query(StockEntry).count()

        with pytest.raises(InsufficientQuantityError):
            transaction_processor.return_to_inventory(raw_entry.id, "Kacha", 101)

        assert db.session.query(StockEntry).count() == before
        assert _transaction_count(raw_entry.id) == 0

    def test_failed_entry_creation_rolls_back_consumption(self, raw_entry, monkeypatch):
        def _fail(**kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(ledger_store, "_create_entry_inner", _fail)
        before = db.session.query(StockEntry).count()

        with pytest.raises(RuntimeError):
            transaction_processor.return_to_inventory(raw_entry.id, "Kacha", 40)

        assert ledger_store.get_available_quantity(raw_entry.id) == Decimal("100")
        assert _transaction_count(raw_entry.id) == 0
        assert db.session.query(StockEntry).count() == before

    def test_returned_entry_can_be_sold(self, raw_entry):
        kacha = transaction_processor.return_to_inventory(raw_entry.id, "Kacha", 40)
        transaction_processor.sell(kacha.id, 15, 60, "Bilal")

        assert ledger_store.get_available_quantity(kacha.id) == Decimal("25")
        assert ledger_store.get_available_quantity(raw_entry.id) == Decimal("60")
