# backend/copperwire/routes/entries.py
"""
Stock entry routes: lots, their availability and history, and the
sell / return / delete-partial commands.

All quantity arithmetic happens in the services; these routes only parse
input, call one service function and serialize the result together with the
re-read available quantity.

Numbers are accepted as JSON numbers or decimal strings and returned as
decimal strings (exact, no float rounding).
"""
from flask import Blueprint, request, jsonify, g

from ..errors import ValidationError
from ..models import StockEntry
from ..services import ledger_store, allocation_service, transaction_processor
from ..validation import PayloadPolicy, validate_payload, format_decimal
from ..decorators import with_request_context, ledger_errors


entries_bp = Blueprint("entries", __name__, url_prefix="/api/entries")

ENTRY_CREATE_POLICY = PayloadPolicy(
    writable_fields={"source_kind", "origin_id", "label", "total_quantity", "unit_price", "unit"},
    required_on_create={"source_kind", "label", "total_quantity"},
    quantity_fields=frozenset({"total_quantity"}),
    money_fields=frozenset({"unit_price"}),
)

SELL_POLICY = PayloadPolicy(
    writable_fields={"quantity", "price_per_unit", "buyer_name", "notes"},
    required_on_create={"quantity", "price_per_unit", "buyer_name"},
    quantity_fields=frozenset({"quantity"}),
    money_fields=frozenset({"price_per_unit"}),
)

RETURN_POLICY = PayloadPolicy(
    writable_fields={"new_label", "quantity", "return_kind", "counterparty_name", "notes"},
    required_on_create={"new_label", "quantity"},
    quantity_fields=frozenset({"quantity"}),
)

DELETE_PARTIAL_POLICY = PayloadPolicy(
    writable_fields={"quantity", "notes"},
    required_on_create={"quantity"},
    quantity_fields=frozenset({"quantity"}),
)


def _entry_with_available(entry: StockEntry) -> dict:
    return entry.to_dict(available_quantity=ledger_store.get_available_quantity(entry.id))


def _int_arg(name: str) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw.strip() == "":
        return None
    stripped = raw.strip()
    if not stripped.lstrip("-").isdigit():
        raise ValidationError(f"{name} must be an integer", details={"field": name, "value": raw})
    return int(stripped)


def _truthy(raw: str | None) -> bool:
    return (raw or "").strip().lower() in {"1", "true", "yes"}


@entries_bp.post("")
@with_request_context
@ledger_errors("create stock entry")
def create_entry_route():
    """
    Record a new lot (purchase / processing / production completed).
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=StockEntry, payload=payload, policy=ENTRY_CREATE_POLICY)

    entry = ledger_store.create_entry(
        patch["source_kind"],
        patch.get("origin_id"),
        patch["label"],
        patch["total_quantity"],
        patch.get("unit_price"),
        unit=patch.get("unit") or "kg",
        created_by=g.actor,
    )
    return jsonify({"entry": _entry_with_available(entry)}), 201


@entries_bp.get("")
@with_request_context
@ledger_errors("list stock entries")
def list_entries_route():
    """
    List lots with their available quantity.

    Query: source_kind, label (substring), origin_id, only_available
    """
    entries = ledger_store.list_entries(
        request.args.get("source_kind") or None,
        request.args.get("label") or None,
        origin_id=_int_arg("origin_id"),
        only_available=_truthy(request.args.get("only_available")),
    )
    available = ledger_store.get_available_quantities(e.id for e in entries)
    return jsonify([e.to_dict(available_quantity=available[e.id]) for e in entries]), 200


@entries_bp.get("/<int:entry_id>")
@with_request_context
@ledger_errors("load stock entry")
def get_entry_route(entry_id: int):
    entry = ledger_store.get_entry(entry_id)
    return jsonify({"entry": _entry_with_available(entry)}), 200


@entries_bp.get("/<int:entry_id>/available")
@with_request_context
@ledger_errors("load available quantity")
def available_quantity_route(entry_id: int):
    available = ledger_store.get_available_quantity(entry_id)
    return jsonify({"entry_id": entry_id, "available_quantity": format_decimal(available)}), 200


@entries_bp.get("/<int:entry_id>/can-consume")
@with_request_context
@ledger_errors("check consumable quantity")
def can_consume_route(entry_id: int):
    quantity = request.args.get("quantity")
    return jsonify({
        "entry_id": entry_id,
        "quantity": quantity,
        "can_consume": allocation_service.can_consume(entry_id, quantity),
    }), 200


@entries_bp.get("/<int:entry_id>/transactions")
@with_request_context
@ledger_errors("list entry transactions")
def list_transactions_route(entry_id: int):
    """Entry history, oldest first."""
    rows = ledger_store.list_transactions(entry_id)
    return jsonify([r.to_dict() for r in rows]), 200


@entries_bp.post("/<int:entry_id>/sell")
@with_request_context
@ledger_errors("sell from stock entry")
def sell_route(entry_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=None, payload=payload, policy=SELL_POLICY)

    tx = transaction_processor.sell(
        entry_id,
        patch["quantity"],
        patch["price_per_unit"],
        patch["buyer_name"],
        notes=patch.get("notes"),
        performed_by=g.actor,
    )
    return jsonify({
        "transaction": tx.to_dict(),
        "available_quantity": format_decimal(ledger_store.get_available_quantity(entry_id)),
    }), 201


@entries_bp.post("/<int:entry_id>/return")
@with_request_context
@ledger_errors("return stock to inventory")
def return_route(entry_id: int):
    """
    Reclassify processed material under a new name (Kacha/Draw/Ready copper returned).
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=None, payload=payload, policy=RETURN_POLICY)

    new_entry = transaction_processor.return_to_inventory(
        entry_id,
        patch["new_label"],
        patch["quantity"],
        return_kind=patch.get("return_kind"),
        counterparty_name=patch.get("counterparty_name"),
        notes=patch.get("notes"),
        performed_by=g.actor,
    )
    return jsonify({
        "entry": _entry_with_available(new_entry),
        "source_available_quantity": format_decimal(ledger_store.get_available_quantity(entry_id)),
    }), 201


@entries_bp.post("/<int:entry_id>/delete-partial")
@with_request_context
@ledger_errors("remove quantity from stock entry")
def delete_partial_route(entry_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=None, payload=payload, policy=DELETE_PARTIAL_POLICY)

    tx = transaction_processor.delete_partial(
        entry_id,
        patch["quantity"],
        patch.get("notes"),
        performed_by=g.actor,
    )
    return jsonify({
        "transaction": tx.to_dict(),
        "available_quantity": format_decimal(ledger_store.get_available_quantity(entry_id)),
    }), 201
