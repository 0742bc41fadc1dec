# backend/copperwire/routes/system.py
"""
System health endpoint.

Reports database connectivity and ledger row counts for deployment debugging.
"""

import time
from flask import Blueprint, current_app

from ..extensions import db
from ..models import StockEntry, LedgerTransaction, KhataSale
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        entry_count = db.session.query(StockEntry).count()
        transaction_count = db.session.query(LedgerTransaction).count()
        khata_count = db.session.query(KhataSale).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "stock_entries": entry_count,
                "ledger_transactions": transaction_count,
                "khata_sales": khata_count,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database check failed
    """
    start_time = time.time()
    database_health = check_database_health()

    healthy = database_health["status"] == "healthy"
    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {"database": database_health},
    }
    return response, 200 if healthy else 503
