# backend/copperwire/routes/khata.py
"""
Khata (credit) sale documents.

POST   /api/khata-sales            record a multi-line sale with split payment
GET    /api/khata-sales            list (filters: customer, status)
GET    /api/khata-sales/<id>       one document with lines and payments
POST   /api/khata-sales/<id>/void  return every line to stock
"""
from flask import Blueprint, request, jsonify, g

from ..models import KhataSale
from ..services import khata_service
from ..validation import PayloadPolicy, validate_payload
from ..decorators import with_request_context, ledger_errors


khata_bp = Blueprint("khata", __name__, url_prefix="/api/khata-sales")

KHATA_CREATE_POLICY = PayloadPolicy(
    writable_fields={"customer_name", "customer_phone", "sale_date", "notes", "lines", "payments"},
    required_on_create={"customer_name", "customer_phone", "lines", "payments"},
)

VOID_POLICY = PayloadPolicy(writable_fields={"reason"}, required_on_create=set())


@khata_bp.post("")
@with_request_context
@ledger_errors("record khata sale")
def create_khata_sale_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=KhataSale, payload=payload, policy=KHATA_CREATE_POLICY)

    lines = patch["lines"]
    payments = patch["payments"]
    if not isinstance(lines, list) or not isinstance(payments, list):
        return jsonify({"error": "lines and payments must be lists"}), 400

    sale = khata_service.create_khata_sale(
        patch["customer_name"],
        patch["customer_phone"],
        lines,
        payments,
        sale_date=patch.get("sale_date"),
        notes=patch.get("notes"),
        performed_by=g.actor,
    )
    return jsonify({"khata_sale": sale.to_dict()}), 201


@khata_bp.get("")
@with_request_context
@ledger_errors("list khata sales")
def list_khata_sales_route():
    sales = khata_service.list_khata_sales(
        customer=request.args.get("customer") or None,
        status=request.args.get("status") or None,
    )
    return jsonify([s.to_dict(include_lines=False) for s in sales]), 200


@khata_bp.get("/<int:sale_id>")
@with_request_context
@ledger_errors("load khata sale")
def get_khata_sale_route(sale_id: int):
    sale = khata_service.get_khata_sale(sale_id)
    return jsonify({"khata_sale": sale.to_dict()}), 200


@khata_bp.post("/<int:sale_id>/void")
@with_request_context
@ledger_errors("void khata sale")
def void_khata_sale_route(sale_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=None, payload=payload, policy=VOID_POLICY)

    sale = khata_service.void_khata_sale(sale_id, patch.get("reason"), performed_by=g.actor)
    return jsonify({"khata_sale": sale.to_dict()}), 200
