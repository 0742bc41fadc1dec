# backend/copperwire/routes/reports.py
from flask import Blueprint, request, jsonify

from ..services import reporting_service
from ..decorators import with_request_context, ledger_errors


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/stock-levels")
@with_request_context
@ledger_errors("build stock levels report")
def stock_levels_route():
    return jsonify({"stock_levels": reporting_service.stock_levels()}), 200


@reports_bp.get("/recent-activity")
@with_request_context
@ledger_errors("build recent activity report")
def recent_activity_route():
    """Query: limit (default 5, max 100)"""
    limit = request.args.get("limit", default=5, type=int)
    return jsonify({"activity": reporting_service.recent_activity(limit)}), 200
