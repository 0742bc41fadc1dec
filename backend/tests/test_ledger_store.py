"""
Stock ledger store tests.

Covers entry creation, append-only transactions, derived availability and
the read helpers used by list screens.
"""

from decimal import Decimal

import pytest

from copperwire.extensions import db
from copperwire.errors import ValidationError, NotFoundError, InsufficientQuantityError
from copperwire.models import LedgerTransaction
from copperwire.services import ledger_store


def _delta_sum(entry_id):
    rows = ledger_store.list_transactions(entry_id)
    return sum((tx.quantity_delta for tx in rows), Decimal("0"))


class TestCreateEntry:
    def test_new_entry_is_fully_available(self, db_session):
        entry = ledger_store.create_entry("RAW_PURCHASE", None, "  Copper rod  ", "250.5", "41.25")

        assert entry.id is not None
        assert entry.label == "Copper rod"
        assert entry.unit == "kg"
        assert entry.total_quantity == Decimal("250.5")
        assert entry.unit_price == Decimal("41.25")
        assert ledger_store.get_available_quantity(entry.id) == Decimal("250.5")
        assert ledger_store.list_transactions(entry.id) == []

    def test_origin_id_is_kept(self, raw_entry):
        child = ledger_store.create_entry("KACHA_RETURN", raw_entry.id, "Kacha 8mm", 20)
        assert child.origin_id == raw_entry.id
        assert child.unit_price is None

    @pytest.mark.parametrize("quantity", [0, "0", -5, "-0.001"])
    def test_rejects_non_positive_quantity(self, db_session, quantity):
        with pytest.raises(ValidationError):
            ledger_store.create_entry("RAW_PURCHASE", None, "Rod", quantity)

    def test_rejects_unknown_kind(self, db_session):
        with pytest.raises(ValidationError):
            ledger_store.create_entry("SCRAP", None, "Rod", 10)

    def test_rejects_blank_label(self, db_session):
        with pytest.raises(ValidationError):
            ledger_store.create_entry("RAW_PURCHASE", None, "   ", 10)

    def test_rejects_more_decimals_than_stored(self, db_session):
        with pytest.raises(ValidationError):
            ledger_store.create_entry("RAW_PURCHASE", None, "Rod", "1.0005")

    def test_rejects_negative_price(self, db_session):
        with pytest.raises(ValidationError):
            ledger_store.create_entry("RAW_PURCHASE", None, "Rod", 10, -1)


class TestAppendTransaction:
    def test_negative_delta_reduces_available(self, raw_entry):
        tx = ledger_store.append_transaction(raw_entry.id, "CONSUME", "-12.25", "Drawing unit")

        assert tx.kind == "CONSUME"
        assert tx.quantity_delta == Decimal("-12.25")
        assert tx.counterparty_name == "Drawing unit"
        assert ledger_store.get_available_quantity(raw_entry.id) == Decimal("87.75")

    def test_rejects_delta_below_zero_available(self, raw_entry):
        with pytest.raises(InsufficientQuantityError) as exc_info:
            ledger_store.append_transaction(raw_entry.id, "SELL", "-100.001")

        assert exc_info.value.entry_id == raw_entry.id
        assert exc_info.value.available == Decimal("100")
        assert ledger_store.get_available_quantity(raw_entry.id) == Decimal("100")
        assert ledger_store.list_transactions(raw_entry.id) == []

    def test_taking_everything_leaves_zero(self, raw_entry):
        ledger_store.append_transaction(raw_entry.id, "DELETE_ADJUSTMENT", -100)
        assert ledger_store.get_available_quantity(raw_entry.id) == Decimal("0")

    def test_return_may_not_exceed_total(self, raw_entry):
        ledger_store.append_transaction(raw_entry.id, "SELL", -10)

        with pytest.raises(ValidationError):
            ledger_store.append_transaction(raw_entry.id, "RETURN", 11)

        ledger_store.append_transaction(raw_entry.id, "RETURN", 10)
        assert ledger_store.get_available_quantity(raw_entry.id) == Decimal("100")

    @pytest.mark.parametrize("kind, delta", [
        ("SELL", 5),
        ("CONSUME", 5),
        ("DELETE_ADJUSTMENT", 5),
        ("RETURN", -5),
    ])
    def test_sign_must_match_kind(self, raw_entry, kind, delta):
        with pytest.raises(ValidationError):
            ledger_store.append_transaction(raw_entry.id, kind, delta)

    def test_rejects_zero_delta(self, raw_entry):
        with pytest.raises(ValidationError):
            ledger_store.append_transaction(raw_entry.id, "SELL", 0)

    def test_rejects_unknown_kind(self, raw_entry):
        with pytest.raises(ValidationError):
            ledger_store.append_transaction(raw_entry.id, "THEFT", -1)

    def test_unknown_entry(self, db_session):
        with pytest.raises(NotFoundError):
            ledger_store.append_transaction(999999, "SELL", -1)


class TestReads:
    def test_available_is_total_plus_deltas(self, raw_entry):
        ledger_store.append_transaction(raw_entry.id, "SELL", "-30")
        ledger_store.append_transaction(raw_entry.id, "CONSUME", "-12.125")
        ledger_store.append_transaction(raw_entry.id, "RETURN", "2.125")
        ledger_store.append_transaction(raw_entry.id, "DELETE_ADJUSTMENT", "-0.5")

        available = ledger_store.get_available_quantity(raw_entry.id)
        assert available == raw_entry.total_quantity + _delta_sum(raw_entry.id)
        assert available == Decimal("59.5")

    def test_reading_twice_gives_the_same_answer(self, raw_entry):
        ledger_store.append_transaction(raw_entry.id, "SELL", "-33.333")

        first = ledger_store.get_available_quantity(raw_entry.id)
        second = ledger_store.get_available_quantity(raw_entry.id)

        assert first == second == Decimal("66.667")
        assert db.session.query(LedgerTransaction).count() == 1

    def test_available_for_unknown_entry(self, db_session):
        with pytest.raises(NotFoundError):
            ledger_store.get_available_quantity(999999)

    def test_transactions_are_oldest_first(self, raw_entry):
        first = ledger_store.append_transaction(raw_entry.id, "SELL", -1)
        second = ledger_store.append_transaction(raw_entry.id, "SELL", -2)
        third = ledger_store.append_transaction(raw_entry.id, "RETURN", 1)

        assert [tx.id for tx in ledger_store.list_transactions(raw_entry.id)] == [first.id, second.id, third.id]

    def test_transactions_for_unknown_entry(self, db_session):
        with pytest.raises(NotFoundError):
            ledger_store.list_transactions(999999)

    def test_list_entries_filters(self, raw_entry, small_entry):
        kacha = ledger_store.create_entry("KACHA_RETURN", raw_entry.id, "Kacha ROD 8mm", 5)
        ledger_store.append_transaction(small_entry.id, "SELL", -10)

        assert [e.id for e in ledger_store.list_entries()] == [raw_entry.id, small_entry.id, kacha.id]
        assert [e.id for e in ledger_store.list_entries("KACHA_RETURN")] == [kacha.id]
        assert [e.id for e in ledger_store.list_entries(label="rod")] == [raw_entry.id, kacha.id]
        assert [e.id for e in ledger_store.list_entries(origin_id=raw_entry.id)] == [kacha.id]
        assert small_entry.id not in [e.id for e in ledger_store.list_entries(only_available=True)]

    def test_list_entries_rejects_unknown_kind(self, db_session):
        with pytest.raises(ValidationError):
            ledger_store.list_entries("SCRAP")

    def test_bulk_availability(self, raw_entry, small_entry):
        ledger_store.append_transaction(small_entry.id, "SELL", -4)

        available = ledger_store.get_available_quantities([raw_entry.id, small_entry.id, 999999])

        assert available == {raw_entry.id: Decimal("100"), small_entry.id: Decimal("6")}
