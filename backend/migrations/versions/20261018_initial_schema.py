"""Initial distribution back-office schema

Revision ID: 20261018_initial
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "skus",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.Column("tax_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("hsn_code", sa.String(32), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("skus", schema=None) as batch_op:
        batch_op.create_index("ix_skus_name", ["name"], unique=False)

    op.create_table(
        "price_tiers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_price_tiers_name"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "price_tier_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tier_id", sa.Integer(), nullable=False),
        sa.Column("sku_id", sa.Integer(), nullable=False),
        sa.Column("price_cents", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["tier_id"], ["price_tiers.id"]),
        sa.ForeignKeyConstraint(["sku_id"], ["skus.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tier_id", "sku_id", name="uq_price_tier_items_tier_sku"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("price_tier_items", schema=None) as batch_op:
        batch_op.create_index("ix_price_tier_items_tier_id", ["tier_id"], unique=False)
        batch_op.create_index("ix_price_tier_items_sku_id", ["sku_id"], unique=False)

    op.create_table(
        "stores",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("location", sa.String(120), nullable=True),
        sa.Column("address_line1", sa.String(255), nullable=True),
        sa.Column("address_line2", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("gstin", sa.String(32), nullable=True),
        sa.Column("wallet_balance_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name", name="uq_stores_name"),
        sqlite_autoincrement=True,
    )

    op.create_table(
        "distributors",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("state", sa.String(64), nullable=True),
        sa.Column("area", sa.String(120), nullable=True),
        sa.Column("gstin", sa.String(32), nullable=True),
        sa.Column("billing_address", sa.Text(), nullable=True),
        sa.Column("asm_name", sa.String(120), nullable=True),
        sa.Column("executive_name", sa.String(120), nullable=True),
        sa.Column("credit_limit_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("has_special_schemes", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("price_tier_id", sa.Integer(), nullable=True),
        sa.Column("store_id", sa.Integer(), nullable=True),
        sa.Column("wallet_balance_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("date_added", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["price_tier_id"], ["price_tiers.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("distributors", schema=None) as batch_op:
        batch_op.create_index("ix_distributors_store", ["store_id"], unique=False)
        batch_op.create_index("ix_distributors_price_tier_id", ["price_tier_id"], unique=False)

    op.create_table(
        "schemes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(255), nullable=False),
        sa.Column("buy_sku_id", sa.Integer(), nullable=False),
        sa.Column("buy_quantity", sa.Integer(), nullable=False),
        sa.Column("get_sku_id", sa.Integer(), nullable=False),
        sa.Column("get_quantity", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("scope", sa.String(16), nullable=False, server_default="GLOBAL"),
        sa.Column("store_id", sa.Integer(), nullable=True),
        sa.Column("distributor_id", sa.Integer(), nullable=True),
        sa.Column("stopped_by", sa.String(120), nullable=True),
        sa.Column("stopped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint("buy_quantity > 0", name="ck_schemes_buy_quantity_positive"),
        sa.CheckConstraint("get_quantity > 0", name="ck_schemes_get_quantity_positive"),
        sa.ForeignKeyConstraint(["buy_sku_id"], ["skus.id"]),
        sa.ForeignKeyConstraint(["get_sku_id"], ["skus.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.ForeignKeyConstraint(["distributor_id"], ["distributors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("schemes", schema=None) as batch_op:
        batch_op.create_index("ix_schemes_scope_dates", ["scope", "start_date", "end_date"], unique=False)
        batch_op.create_index("ix_schemes_buy_sku_id", ["buy_sku_id"], unique=False)
        batch_op.create_index("ix_schemes_store_id", ["store_id"], unique=False)
        batch_op.create_index("ix_schemes_distributor_id", ["distributor_id"], unique=False)

    op.create_table(
        "stock_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.String(32), nullable=False),
        sa.Column("sku_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reserved", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.ForeignKeyConstraint(["sku_id"], ["skus.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("location_id", "sku_id", name="uq_stock_items_location_sku"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_items", schema=None) as batch_op:
        batch_op.create_index("ix_stock_items_location_id", ["location_id"], unique=False)
        batch_op.create_index("ix_stock_items_sku_id", ["sku_id"], unique=False)

    op.create_table(
        "stock_ledger_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("location_id", sa.String(32), nullable=False),
        sa.Column("sku_id", sa.Integer(), nullable=False),
        sa.Column("movement_type", sa.String(16), nullable=False),
        sa.Column("quantity_change", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reserved_change", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("balance_after", sa.Integer(), nullable=False),
        sa.Column("reserved_after", sa.Integer(), nullable=False),
        sa.Column("actor", sa.String(120), nullable=False),
        sa.Column("notes", sa.String(255), nullable=True),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("transfer_id", sa.Integer(), nullable=True),
        sa.Column("return_id", sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(["sku_id"], ["skus.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_ledger_entries", schema=None) as batch_op:
        batch_op.create_index("ix_stock_ledger_location_sku_occurred", ["location_id", "sku_id", "occurred_at"], unique=False)
        batch_op.create_index("ix_stock_ledger_entries_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index("ix_stock_ledger_entries_location_id", ["location_id"], unique=False)
        batch_op.create_index("ix_stock_ledger_entries_sku_id", ["sku_id"], unique=False)
        batch_op.create_index("ix_stock_ledger_entries_movement_type", ["movement_type"], unique=False)
        batch_op.create_index("ix_stock_ledger_entries_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_stock_ledger_entries_transfer_id", ["transfer_id"], unique=False)
        batch_op.create_index("ix_stock_ledger_entries_return_id", ["return_id"], unique=False)

    op.create_table(
        "stock_transfers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("source_location_id", sa.String(32), nullable=False),
        sa.Column("destination_store_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="Pending"),
        sa.Column("total_value_cents", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("initiated_by", sa.String(120), nullable=False),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_by", sa.String(120), nullable=True),
        sa.ForeignKeyConstraint(["destination_store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_transfers", schema=None) as batch_op:
        batch_op.create_index("ix_stock_transfers_store_status", ["destination_store_id", "status"], unique=False)
        batch_op.create_index("ix_stock_transfers_status", ["status"], unique=False)

    op.create_table(
        "stock_transfer_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transfer_id", sa.Integer(), nullable=False),
        sa.Column("sku_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("is_freebie", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["transfer_id"], ["stock_transfers.id"]),
        sa.ForeignKeyConstraint(["sku_id"], ["skus.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("stock_transfer_items", schema=None) as batch_op:
        batch_op.create_index("ix_stock_transfer_items_transfer_id", ["transfer_id"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("distributor_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.String(32), nullable=False),
        sa.Column("order_date", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("total_amount_cents", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="Pending"),
        sa.Column("placed_by", sa.String(120), nullable=False),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_by", sa.String(120), nullable=True),
        sa.ForeignKeyConstraint(["distributor_id"], ["distributors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("orders", schema=None) as batch_op:
        batch_op.create_index("ix_orders_distributor_date", ["distributor_id", "order_date"], unique=False)
        batch_op.create_index("ix_orders_distributor_id", ["distributor_id"], unique=False)
        batch_op.create_index("ix_orders_status", ["status"], unique=False)

    op.create_table(
        "order_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("sku_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("tax_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_freebie", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("returned_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("returned_quantity <= quantity", name="ck_order_items_returned_le_quantity"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"]),
        sa.ForeignKeyConstraint(["sku_id"], ["skus.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_items", schema=None) as batch_op:
        batch_op.create_index("ix_order_items_order_id", ["order_id"], unique=False)

    op.create_table(
        "order_returns",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("distributor_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("credit_amount_cents", sa.Integer(), nullable=False),
        sa.Column("initiated_by", sa.String(120), nullable=False),
        sa.Column("initiated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("confirmed_by", sa.String(120), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["distributor_id"], ["distributors.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_returns", schema=None) as batch_op:
        batch_op.create_index("ix_order_returns_status_initiated", ["status", "initiated_at"], unique=False)
        batch_op.create_index("ix_order_returns_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_order_returns_distributor_id", ["distributor_id"], unique=False)
        batch_op.create_index("ix_order_returns_status", ["status"], unique=False)

    op.create_table(
        "order_return_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("return_id", sa.Integer(), nullable=False),
        sa.Column("sku_id", sa.Integer(), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_cents", sa.Integer(), nullable=False),
        sa.Column("tax_rate_bps", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.ForeignKeyConstraint(["return_id"], ["order_returns.id"]),
        sa.ForeignKeyConstraint(["sku_id"], ["skus.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("order_return_items", schema=None) as batch_op:
        batch_op.create_index("ix_order_return_items_return_id", ["return_id"], unique=False)

    op.create_table(
        "wallet_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("distributor_id", sa.Integer(), nullable=True),
        sa.Column("store_id", sa.Integer(), nullable=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("balance_after_cents", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=True),
        sa.Column("transfer_id", sa.Integer(), nullable=True),
        sa.Column("payment_method", sa.String(32), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("initiated_by", sa.String(120), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint(
            "(distributor_id IS NULL) <> (store_id IS NULL)",
            name="ck_wallet_tx_single_account",
        ),
        sa.ForeignKeyConstraint(["distributor_id"], ["distributors.id"]),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("wallet_transactions", schema=None) as batch_op:
        batch_op.create_index("ix_wallet_tx_distributor_occurred", ["distributor_id", "occurred_at"], unique=False)
        batch_op.create_index("ix_wallet_tx_store_occurred", ["store_id", "occurred_at"], unique=False)
        batch_op.create_index("ix_wallet_transactions_type", ["type"], unique=False)
        batch_op.create_index("ix_wallet_transactions_order_id", ["order_id"], unique=False)
        batch_op.create_index("ix_wallet_transactions_transfer_id", ["transfer_id"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(32), nullable=False),
        sa.Column("message", sa.String(500), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("notifications", schema=None) as batch_op:
        batch_op.create_index("ix_notifications_type", ["type"], unique=False)
        batch_op.create_index("ix_notifications_created_at", ["created_at"], unique=False)


def downgrade():
    op.drop_table("notifications")
    op.drop_table("wallet_transactions")
    op.drop_table("order_return_items")
    op.drop_table("order_returns")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("stock_transfer_items")
    op.drop_table("stock_transfers")
    op.drop_table("stock_ledger_entries")
    op.drop_table("stock_items")
    op.drop_table("schemes")
    op.drop_table("distributors")
    op.drop_table("stores")
    op.drop_table("price_tier_items")
    op.drop_table("price_tiers")
    op.drop_table("skus")
