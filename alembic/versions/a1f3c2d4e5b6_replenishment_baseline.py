"""replenishment baseline: items, warehouses, batches, stock position, reorder, purchase orders

Revision ID: a1f3c2d4e5b6
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "a1f3c2d4e5b6"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _ts(name: str, nullable: bool = False) -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=nullable,
        server_default=None if nullable else sa.func.now(),
    )


def upgrade() -> None:
    # ---- master data ----
    op.create_table(
        "items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sku", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("unit", sa.String(8), nullable=False, server_default=sa.text("'PCS'")),
        sa.Column("cost_price", sa.Numeric(14, 4), nullable=False, server_default=sa.text("0")),
        sa.Column("reorder_level", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reorder_qty", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("track_inventory", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _ts("created_at"),
    )
    op.create_table(
        "warehouses",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(32), nullable=True, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
    )

    # ---- lots ----
    op.create_table(
        "batches",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column("batch_number", sa.String(64), nullable=False),
        sa.Column("initial_qty", sa.Integer(), nullable=False),
        sa.Column("qty_remaining", sa.Integer(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("manufacture_date", sa.Date(), nullable=True),
        sa.Column("expiry_date", sa.Date(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        sa.Column("supplier_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("item_id", "warehouse_id", "batch_number", name="uq_batches_item_wh_number"),
        sa.CheckConstraint("qty_remaining >= 0", name="ck_batches_qty_non_negative"),
    )
    op.create_index("ix_batches_item_wh_status", "batches", ["item_id", "warehouse_id", "status"])
    op.create_index("ix_batches_expiry_date", "batches", ["expiry_date"])
    op.create_index("ix_batches_status", "batches", ["status"])

    op.create_table(
        "batch_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("batch_id", sa.Integer(), sa.ForeignKey("batches.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("qty", sa.Integer(), nullable=False),
        sa.Column("after_qty", sa.Integer(), nullable=False),
        sa.Column("ref", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_batch_transactions_batch_id", "batch_transactions", ["batch_id"])
    op.create_index("ix_batch_txn_batch_created", "batch_transactions", ["batch_id", "created_at"])

    # ---- stock position / ledger ----
    op.create_table(
        "stock_levels",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column("on_hand", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("committed", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("incoming", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.UniqueConstraint("item_id", "warehouse_id", name="uq_stock_levels_item_wh"),
    )
    op.create_table(
        "stock_ledger",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("warehouse_id", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(32), nullable=False),
        sa.Column("ref", sa.String(128), nullable=False),
        sa.Column("ref_line", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("delta", sa.Integer(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        _ts("created_at"),
        sa.UniqueConstraint(
            "reason", "ref", "ref_line", "item_id", "warehouse_id", name="uq_ledger_reason_ref_line_item_wh"
        ),
    )
    op.create_index("ix_stock_ledger_warehouse_id", "stock_ledger", ["warehouse_id"])
    op.create_index("ix_stock_ledger_item_id", "stock_ledger", ["item_id"])
    op.create_index("ix_ledger_item_wh_occurred", "stock_ledger", ["item_id", "warehouse_id", "occurred_at"])

    # ---- replenishment ----
    op.create_table(
        "reorder_settings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("item_id", sa.Integer(), sa.ForeignKey("items.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=True),
        sa.Column("scope_key", sa.String(64), nullable=False, unique=True),
        sa.Column("reorder_level", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reorder_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("safety_stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("lead_time_days", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("preferred_vendor_id", sa.Integer(), nullable=True),
        sa.Column("auto_reorder", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        _ts("updated_at"),
        sa.CheckConstraint(
            "reorder_level >= 0 AND reorder_quantity >= 0 AND safety_stock >= 0 AND lead_time_days >= 0",
            name="ck_reorder_settings_non_negative",
        ),
    )
    op.create_index("ix_reorder_settings_item_id", "reorder_settings", ["item_id"])

    op.create_table(
        "reorder_alerts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("open_key", sa.String(64), nullable=True, unique=True),
        sa.Column("suggested_qty", sa.Integer(), nullable=False),
        sa.Column("current_stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("reorder_level", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("purchase_order_id", sa.Integer(), nullable=True),
        sa.Column("po_claim_token", sa.String(64), nullable=True),
        sa.Column("po_claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_error", sa.String(255), nullable=True),
        _ts("created_at"),
        _ts("notified_at", nullable=True),
        _ts("acknowledged_at", nullable=True),
        _ts("resolved_at", nullable=True),
    )
    op.create_index("ix_reorder_alerts_item_id", "reorder_alerts", ["item_id"])
    op.create_index("ix_reorder_alerts_status", "reorder_alerts", ["status"])
    op.create_index("ix_reorder_alerts_item_wh_status", "reorder_alerts", ["item_id", "warehouse_id", "status"])

    # ---- purchase orders (DRAFT only from here) ----
    op.create_table(
        "purchase_orders",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("order_number", sa.String(32), nullable=False, unique=True),
        sa.Column("vendor_id", sa.Integer(), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), nullable=True),
        sa.Column("total_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="DRAFT"),
        sa.Column("source_ref", sa.String(128), nullable=True),
        sa.Column("remark", sa.String(255), nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_purchase_orders_vendor_id", "purchase_orders", ["vendor_id"])
    op.create_index("ix_purchase_orders_warehouse_id", "purchase_orders", ["warehouse_id"])
    op.create_index("ix_purchase_orders_source_ref", "purchase_orders", ["source_ref"])
    op.create_index("ix_purchase_orders_wh_status", "purchase_orders", ["warehouse_id", "status"])

    op.create_table(
        "purchase_order_lines",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "po_id", sa.Integer(), sa.ForeignKey("purchase_orders.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("line_no", sa.Integer(), nullable=False),
        sa.Column("item_id", sa.Integer(), nullable=False),
        sa.Column("unit", sa.String(8), nullable=True),
        sa.Column("qty_ordered", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(14, 4), nullable=True),
        sa.Column("line_amount", sa.Numeric(14, 2), nullable=True),
        sa.UniqueConstraint("po_id", "line_no", name="uq_purchase_order_lines_po_id_line_no"),
    )
    op.create_index("ix_purchase_order_lines_po_id", "purchase_order_lines", ["po_id"])
    op.create_index("ix_purchase_order_lines_item_id", "purchase_order_lines", ["item_id"])


def downgrade() -> None:
    op.drop_table("purchase_order_lines")
    op.drop_table("purchase_orders")
    op.drop_table("reorder_alerts")
    op.drop_table("reorder_settings")
    op.drop_table("stock_ledger")
    op.drop_table("stock_levels")
    op.drop_table("batch_transactions")
    op.drop_table("batches")
    op.drop_table("warehouses")
    op.drop_table("items")
