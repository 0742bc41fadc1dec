# Overview: Service-layer read models for dashboards; stock levels and recent ledger activity.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import StockEntry, LedgerTransaction
from ..models.ledger import VALID_SOURCE_KINDS
from ..validation import milli_to_quantity, format_decimal


def stock_levels() -> list[dict]:
    """
    Per source kind: lots, quantity ever created, quantity still available.

    Both sums come from one grouped query each, so the numbers are derived
    from the ledger exactly as get_available_quantity() derives them.
    """
    created_rows = (
        db.session.query(
            StockEntry.source_kind,
            func.count(StockEntry.id),
            func.coalesce(func.sum(StockEntry.total_quantity_milli), 0),
        )
        .group_by(StockEntry.source_kind)
        .all()
    )
    delta_rows = (
        db.session.query(
            StockEntry.source_kind,
            func.coalesce(func.sum(LedgerTransaction.quantity_delta_milli), 0),
        )
        .join(LedgerTransaction, LedgerTransaction.entry_id == StockEntry.id)
        .group_by(StockEntry.source_kind)
        .all()
    )
    created = {kind: (int(count), int(total)) for kind, count, total in created_rows}
    deltas = {kind: int(delta) for kind, delta in delta_rows}

    levels = []
    for kind in VALID_SOURCE_KINDS:
        entry_count, total_milli = created.get(kind, (0, 0))
        available_milli = total_milli + deltas.get(kind, 0)
        percentage = None
        if total_milli > 0:
            # integer percent, half-up
            percentage = (available_milli * 100 * 2 + total_milli) // (total_milli * 2)
        levels.append({
            "source_kind": kind,
            "entries": entry_count,
            "total_quantity": format_decimal(milli_to_quantity(total_milli)),
            "available_quantity": format_decimal(milli_to_quantity(available_milli)),
            "percentage_available": percentage,
        })
    return levels


def recent_activity(limit: int = 5) -> list[dict]:
    """Newest ledger transactions across all entries, with their entry label."""
    limit = max(1, min(int(limit), 100))
    rows = (
        db.session.query(LedgerTransaction, StockEntry.label, StockEntry.source_kind)
        .join(StockEntry, StockEntry.id == LedgerTransaction.entry_id)
        .order_by(LedgerTransaction.id.desc())
        .limit(limit)
        .all()
    )
    activity = []
    for tx, label, source_kind in rows:
        item = tx.to_dict()
        item["entry_label"] = label
        item["entry_source_kind"] = source_kind
        activity.append(item)
    return activity
