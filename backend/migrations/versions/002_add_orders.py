"""Add orders, order_items and the per-shop inventory_sync switch.

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        "shops",
        sa.Column("inventory_sync", sa.Boolean, nullable=False, server_default=sa.text("true")),
    )

    # Orders
    op.create_table(
        "orders",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("shop_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("shops.id"), nullable=False, index=True),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("platform_order_id", sa.String(255), nullable=False),
        sa.Column("fulfillment_status", sa.String(50)),
        sa.Column("payment_status", sa.String(50)),
        sa.Column("subtotal", sa.Numeric(12, 2)),
        sa.Column("total_price", sa.Numeric(12, 2)),
        sa.Column("shipping_cost", sa.Numeric(12, 2)),
        sa.Column("customer_name", sa.String(255)),
        sa.Column("order_placed_at", sa.DateTime(timezone=True)),
        sa.Column("paid_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("last_synced_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("platform", "platform_order_id", name="uq_order_platform_order"),
    )
    op.create_index("idx_order_shop_placed", "orders", ["shop_id", "order_placed_at"])

    op.create_table(
        "order_items",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "order_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True,
        ),
        sa.Column(
            "kuralis_product_id", postgresql.UUID(as_uuid=True),
            sa.ForeignKey("kuralis_products.id"), index=True,
        ),
        sa.Column("platform_item_id", sa.String(255), nullable=False),
        sa.Column("title", sa.String(500)),
        sa.Column("quantity", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("allocated_quantity", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("order_id", "platform_item_id", name="uq_order_item_platform_item"),
        sa.CheckConstraint("allocated_quantity >= 0", name="ck_order_items_allocated"),
    )


def downgrade() -> None:
    op.drop_table("order_items")
    op.drop_index("idx_order_shop_placed", table_name="orders")
    op.drop_table("orders")
    op.drop_column("shops", "inventory_sync")
