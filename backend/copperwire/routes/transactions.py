# backend/copperwire/routes/transactions.py
"""
Ledger transaction routes (read one, undo a sale) and the allocation
checks used by the sale screens before they submit.
"""
from flask import Blueprint, request, jsonify, g

from ..services import ledger_store, allocation_service, transaction_processor
from ..validation import PayloadPolicy, validate_payload, format_decimal
from ..decorators import with_request_context, ledger_errors


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")
allocation_bp = Blueprint("allocation", __name__, url_prefix="/api/allocation")

UNDO_POLICY = PayloadPolicy(writable_fields={"notes"}, required_on_create=set())

PAYMENT_SPLIT_POLICY = PayloadPolicy(
    writable_fields={"total_due", "payments"},
    required_on_create={"total_due", "payments"},
    money_fields=frozenset({"total_due"}),
)

SALE_TOTAL_POLICY = PayloadPolicy(
    writable_fields={"quantity", "price_per_unit"},
    required_on_create={"quantity", "price_per_unit"},
)


@transactions_bp.get("/<int:transaction_id>")
@with_request_context
@ledger_errors("load transaction")
def get_transaction_route(transaction_id: int):
    tx = ledger_store.get_transaction(transaction_id)
    return jsonify({"transaction": tx.to_dict()}), 200


@transactions_bp.post("/<int:transaction_id>/undo")
@with_request_context
@ledger_errors("undo sale")
def undo_sale_route(transaction_id: int):
    """
    Undo a SELL with a compensating RETURN.

    409 when the sale was already undone or belongs to a khata sale.
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=None, payload=payload, policy=UNDO_POLICY)

    tx = transaction_processor.undo_sale(
        transaction_id,
        notes=patch.get("notes"),
        performed_by=g.actor,
    )
    return jsonify({
        "transaction": tx.to_dict(),
        "available_quantity": format_decimal(ledger_store.get_available_quantity(tx.entry_id)),
    }), 201


@allocation_bp.post("/payment-split")
@with_request_context
@ledger_errors("validate payment split")
def payment_split_route():
    """
    Body: {"total_due": "100", "payments": [{"method": "cash", "amount": 60}, ...]}
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=None, payload=payload, policy=PAYMENT_SPLIT_POLICY)
    payments = patch["payments"]
    if not isinstance(payments, list):
        return jsonify({"error": "payments must be a list"}), 400

    valid = allocation_service.validate_payment_split(patch["total_due"], payments)
    return jsonify({"total_due": format_decimal(patch["total_due"]), "valid": valid}), 200


@allocation_bp.post("/sale-total")
@with_request_context
@ledger_errors("compute sale total")
def sale_total_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=None, payload=payload, policy=SALE_TOTAL_POLICY)

    total = allocation_service.compute_sale_total(patch["quantity"], patch["price_per_unit"])
    return jsonify({"total": format_decimal(total)}), 200
