"""
Allocation engine tests: consumable checks, exact sale totals, payment splits.
"""

from decimal import Decimal

import pytest

from copperwire.errors import ValidationError, NotFoundError, InsufficientQuantityError
from copperwire.services import allocation_service, ledger_store


class TestCanConsume:
    def test_up_to_available(self, raw_entry):
        ledger_store.append_transaction(raw_entry.id, "SELL", -30)

        assert allocation_service.can_consume(raw_entry.id, 70) is True
        assert allocation_service.can_consume(raw_entry.id, "69.999") is True
        assert allocation_service.can_consume(raw_entry.id, "70.001") is False

    @pytest.mark.parametrize("quantity", [0, -1, "abc", None, "1.0001", True])
    def test_invalid_quantities_are_not_consumable(self, raw_entry, quantity):
        assert allocation_service.can_consume(raw_entry.id, quantity) is False

    def test_unknown_entry(self, db_session):
        with pytest.raises(NotFoundError):
            allocation_service.can_consume(999999, 1)

    def test_unknown_entry_with_bad_quantity(self, db_session):
        with pytest.raises(NotFoundError):
            allocation_service.can_consume(999999, "abc")

    def test_require_consumable_returns_milli(self, raw_entry):
        assert allocation_service.require_consumable(raw_entry.id, "12.5") == 12500

    def test_require_consumable_raises(self, raw_entry):
        with pytest.raises(InsufficientQuantityError) as exc_info:
            allocation_service.require_consumable(raw_entry.id, 101)
        assert exc_info.value.requested == Decimal("101")
        assert exc_info.value.available == Decimal("100")

        with pytest.raises(ValidationError):
            allocation_service.require_consumable(raw_entry.id, 0)


class TestSaleTotal:
    def test_exact_product(self):
        assert allocation_service.compute_sale_total(30, 50) == Decimal("1500")
        assert allocation_service.compute_sale_total("12.5", "850.25") == Decimal("10628.125")
        assert allocation_service.compute_sale_total(0.1, 3) == Decimal("0.3")

    @pytest.mark.parametrize("quantity, price", [(0, 10), (-1, 10), (5, 0), (5, -2)])
    def test_operands_must_be_positive(self, quantity, price):
        with pytest.raises(ValidationError):
            allocation_service.compute_sale_total(quantity, price)

    def test_total_in_cents(self):
        assert allocation_service.sale_total_cents("12.5", "850.20") == 1062750

    def test_fraction_of_a_cent_is_rejected(self):
        with pytest.raises(ValidationError):
            allocation_service.sale_total_cents("12.5", "850.25")

    def test_total_in_millicents_is_exact(self):
        assert allocation_service.sale_total_millicents("12.345", "850.5") == 1049942250
        assert allocation_service.sale_total_millicents("12.5", "850.25") == 1062812500

    def test_total_beyond_column_range(self):
        with pytest.raises(ValidationError):
            allocation_service.sale_total_millicents("1000000000", "100000000000")


class TestPaymentSplit:
    def test_exact_split(self):
        payments = [{"method": "cash", "amount": 60}, {"method": "bank", "amount": 40}]
        assert allocation_service.validate_payment_split(100, payments) is True

    def test_short_split(self):
        payments = [{"method": "cash", "amount": 60}, {"method": "bank", "amount": 39}]
        assert allocation_service.validate_payment_split(100, payments) is False

    def test_over_payment(self):
        payments = [{"cash": 60}, {"check": "40.01"}]
        assert allocation_service.validate_payment_split(100, payments) is False

    def test_decimal_amounts_are_exact(self):
        payments = [{"method": "CASH", "amount": 0.1}, {"method": "BANK", "amount": 0.2}]
        assert allocation_service.validate_payment_split("0.3", payments) is True

    def test_no_payments_is_a_mismatch(self):
        assert allocation_service.validate_payment_split(100, []) is False

    def test_unknown_method(self):
        with pytest.raises(ValidationError):
            allocation_service.validate_payment_split(100, [{"method": "crypto", "amount": 100}])

    def test_non_positive_amount(self):
        with pytest.raises(ValidationError):
            allocation_service.validate_payment_split(100, [{"cash": 100}, {"bank": 0}])

    def test_total_must_be_positive(self):
        with pytest.raises(ValidationError):
            allocation_service.validate_payment_split(0, [{"cash": 1}])

    def test_normalized_line_keeps_extras(self):
        line = allocation_service.normalize_payment_line(
            {"method": "bank", "amount": "10.50", "bank_name": "HBL"}
        )
        assert line == {"method": "BANK", "amount_cents": 1050, "bank_name": "HBL"}
