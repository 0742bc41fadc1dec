"""Initial stock ledger schema: entries, transactions and khata sales

Revision ID: 20261018_ledger_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_ledger_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "stock_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("source_kind", sa.String(32), nullable=False),
        sa.Column("origin_id", sa.Integer(), nullable=True),
        sa.Column("label", sa.String(255), nullable=False),
        sa.Column("unit", sa.String(16), nullable=False),
        sa.Column("total_quantity_milli", sa.BigInteger(), nullable=False),
        sa.Column("unit_price_cents", sa.BigInteger(), nullable=True),
        sa.Column("created_by", sa.String(120), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stock_entries_source_kind", "stock_entries", ["source_kind"])
    op.create_index("ix_stock_entries_origin_id", "stock_entries", ["origin_id"])
    op.create_index("ix_stock_entries_kind_label", "stock_entries", ["source_kind", "label"])

    op.create_table(
        "khata_sales",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("document_number", sa.String(32), nullable=False),
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_phone", sa.String(32), nullable=False),
        sa.Column("sale_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("total_cents", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(120), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("voided_by", sa.String(120), nullable=True),
        sa.Column("voided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("void_reason", sa.String(255), nullable=True),
        sa.UniqueConstraint("document_number", name="uq_khata_sales_docnum"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_khata_sales_customer", "khata_sales", ["customer_name"])
    op.create_index("ix_khata_sales_status", "khata_sales", ["status"])

    op.create_table(
        "ledger_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("entry_id", sa.Integer(), sa.ForeignKey("stock_entries.id"), nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("quantity_delta_milli", sa.BigInteger(), nullable=False),
        sa.Column("counterparty_name", sa.String(255), nullable=True),
        sa.Column("performed_by", sa.String(120), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("unit_price_cents", sa.BigInteger(), nullable=True),
        sa.Column("amount_millicents", sa.BigInteger(), nullable=True),
        sa.Column(
            "reverses_transaction_id",
            sa.Integer(),
            sa.ForeignKey("ledger_transactions.id"),
            nullable=True,
        ),
        sa.Column("khata_sale_id", sa.Integer(), sa.ForeignKey("khata_sales.id"), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("reverses_transaction_id", name="uq_ledger_tx_reverses"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_ledger_transactions_entry_id", "ledger_transactions", ["entry_id"])
    op.create_index("ix_ledger_transactions_kind", "ledger_transactions", ["kind"])
    op.create_index("ix_ledger_transactions_khata_sale_id", "ledger_transactions", ["khata_sale_id"])
    op.create_index("ix_ledger_transactions_occurred_at", "ledger_transactions", ["occurred_at"])
    op.create_index("ix_ledger_tx_entry_id_id", "ledger_transactions", ["entry_id", "id"])

    op.create_table(
        "khata_sale_lines",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("khata_sale_id", sa.Integer(), sa.ForeignKey("khata_sales.id"), nullable=False),
        sa.Column("entry_id", sa.Integer(), sa.ForeignKey("stock_entries.id"), nullable=False),
        sa.Column("quantity_milli", sa.BigInteger(), nullable=False),
        sa.Column("unit_price_cents", sa.BigInteger(), nullable=False),
        sa.Column("line_total_cents", sa.BigInteger(), nullable=False),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("ledger_transactions.id"),
            nullable=False,
        ),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_khata_sale_lines_khata_sale_id", "khata_sale_lines", ["khata_sale_id"])
    op.create_index("ix_khata_sale_lines_entry_id", "khata_sale_lines", ["entry_id"])

    op.create_table(
        "khata_payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("khata_sale_id", sa.Integer(), sa.ForeignKey("khata_sales.id"), nullable=False),
        sa.Column("method", sa.String(16), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("bank_name", sa.String(120), nullable=True),
        sa.Column("check_number", sa.String(64), nullable=True),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_khata_payments_khata_sale_id", "khata_payments", ["khata_sale_id"])


def downgrade():
    op.drop_index("ix_khata_payments_khata_sale_id", table_name="khata_payments")
    op.drop_table("khata_payments")

    op.drop_index("ix_khata_sale_lines_entry_id", table_name="khata_sale_lines")
    op.drop_index("ix_khata_sale_lines_khata_sale_id", table_name="khata_sale_lines")
    op.drop_table("khata_sale_lines")

    op.drop_index("ix_ledger_tx_entry_id_id", table_name="ledger_transactions")
    op.drop_index("ix_ledger_transactions_occurred_at", table_name="ledger_transactions")
    op.drop_index("ix_ledger_transactions_khata_sale_id", table_name="ledger_transactions")
    op.drop_index("ix_ledger_transactions_kind", table_name="ledger_transactions")
    op.drop_index("ix_ledger_transactions_entry_id", table_name="ledger_transactions")
    op.drop_table("ledger_transactions")

    op.drop_index("ix_khata_sales_status", table_name="khata_sales")
    op.drop_index("ix_khata_sales_customer", table_name="khata_sales")
    op.drop_table("khata_sales")

    op.drop_index("ix_stock_entries_kind_label", table_name="stock_entries")
    op.drop_index("ix_stock_entries_origin_id", table_name="stock_entries")
    op.drop_index("ix_stock_entries_source_kind", table_name="stock_entries")
    op.drop_table("stock_entries")
