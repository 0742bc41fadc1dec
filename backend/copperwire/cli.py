# Overview: Flask CLI command groups for bootstrap, inspection, and ledger verification.

# backend/copperwire/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Ledger inspection:
# - python -m flask ledger entries [--kind RAW_PURCHASE] [--label "8mm"] [--available]
#   List stock entries with their available quantity.
# - python -m flask ledger history 12
#   Print an entry's transactions, oldest first, with a running balance.
# - python -m flask ledger verify
#   Recompute every entry's balance from its rows; exit 1 on any violation.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import StockEntry, LedgerTransaction
from .models.ledger import TX_RETURN
from .services import ledger_store
from .validation import format_decimal, milli_to_quantity


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating missing tables...")
    db.create_all()
    click.echo("PASS Database ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the ledger history!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete.")


@click.group('ledger')
def ledger_group():
    """Stock ledger inspection commands."""


@ledger_group.command('entries')
@click.option('--kind', 'source_kind', help='Filter by source kind (e.g. RAW_PURCHASE)')
@click.option('--label', help='Filter by label substring')
@click.option('--available', 'only_available', is_flag=True, help='Only entries with stock left')
@with_appcontext
def list_entries_cli(source_kind, label, only_available):
    """
    List stock entries.

    Example:
        flask ledger entries
        flask ledger entries --kind KACHA_RETURN --available
    """
    entries = ledger_store.list_entries(source_kind, label, only_available=only_available)
    if not entries:
        click.echo("No entries found.")
        return

    available = ledger_store.get_available_quantities(e.id for e in entries)

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<6} {'Kind':<22} {'Label':<30} {'Total':>14} {'Available':>14} {'Origin':>8}")
    click.echo("="*100)
    for entry in entries:
        click.echo(
            f"{entry.id:<6} {entry.source_kind:<22} {entry.label[:30]:<30} "
            f"{format_decimal(entry.total_quantity):>14} {format_decimal(available[entry.id]):>14} "
            f"{entry.origin_id if entry.origin_id is not None else '-':>8}"
        )
    click.echo("="*100)
    click.echo(f"Total: {len(entries)} entries")


@ledger_group.command('history')
@click.argument('entry_id', type=int)
@with_appcontext
def history_cli(entry_id):
    """Print an entry's transaction history with a running balance."""
    try:
        entry = ledger_store.get_entry(entry_id)
        rows = ledger_store.list_transactions(entry_id)
    except LedgerError as e:
        raise click.ClickException(str(e))

    click.echo(f"Entry {entry.id}: {entry.label} ({entry.source_kind}), total {format_decimal(entry.total_quantity)} {entry.unit}")
    balance = entry.total_quantity_milli
    for tx in rows:
        balance += tx.quantity_delta_milli
        who = tx.counterparty_name or "-"
        click.echo(
            f"  #{tx.id:<6} {tx.kind:<18} {format_decimal(tx.quantity_delta):>12} "
            f"-> {format_decimal(milli_to_quantity(balance)):>12}  {who}"
        )
    click.echo(f"Available: {format_decimal(ledger_store.get_available_quantity(entry_id))}")


@ledger_group.command('verify')
@with_appcontext
def verify_cli():
    """
    Recompute every entry's balance transaction by transaction.

    Fails when a running balance goes negative, when a RETURN lifts it above
    the entry total, or when the SQL-derived available quantity disagrees
    with the recomputed one.
    """
    entries = db.session.query(StockEntry).order_by(StockEntry.id).all()
    derived = ledger_store.get_available_quantities(e.id for e in entries)

    problems = []
    for entry in entries:
        balance = entry.total_quantity_milli
        rows = (
            db.session.query(LedgerTransaction)
            .filter_by(entry_id=entry.id)
            .order_by(LedgerTransaction.id)
            .all()
        )
        for tx in rows:
            balance += tx.quantity_delta_milli
            if balance < 0:
                problems.append(f"entry {entry.id}: negative balance after transaction {tx.id}")
            if tx.kind == TX_RETURN and balance > entry.total_quantity_milli:
                problems.append(f"entry {entry.id}: transaction {tx.id} returns above the entry total")
        if milli_to_quantity(balance) != derived[entry.id]:
            problems.append(
                f"entry {entry.id}: recomputed {format_decimal(milli_to_quantity(balance))} "
                f"!= derived {format_decimal(derived[entry.id])}"
            )

    if problems:
        for problem in problems:
            click.echo(f"FAIL {problem}")
        raise SystemExit(1)

    click.echo(f"PASS {len(entries)} entries verified.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
