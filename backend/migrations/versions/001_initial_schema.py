"""Initial schema: shops, kuralis_products, listings, job_runs.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Shops
    op.create_table(
        "shops",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("shopify_domain", sa.String(255), unique=True, index=True),
        sa.Column("shopify_token", sa.Text),
        sa.Column("ebay_user_id", sa.String(255), unique=True, index=True),
        sa.Column("ebay_token", sa.Text),
        sa.Column("last_listing_import_at", sa.DateTime(timezone=True)),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("sync_enabled", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Local catalog
    op.create_table(
        "kuralis_products",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("shop_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("shops.id"), nullable=False, index=True),
        sa.Column("title", sa.String(500), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("sku", sa.String(255), index=True),
        sa.Column("price", sa.Numeric(12, 2)),
        sa.Column("quantity", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("initial_quantity", sa.Integer),
        sa.Column("weight_oz", sa.Numeric(10, 2), server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("source_platform", sa.String(20)),
        sa.Column("imported_at", sa.DateTime(timezone=True)),
        sa.Column("last_synced_at", sa.DateTime(timezone=True)),
        sa.Column("last_inventory_update", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_kuralis_products_quantity"),
        sa.CheckConstraint("weight_oz >= 0", name="ck_kuralis_products_weight"),
    )

    # Platform listings (single table, discriminated by platform)
    op.create_table(
        "listings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("platform", sa.String(20), nullable=False),
        sa.Column("platform_item_id", sa.String(255), nullable=False),
        sa.Column("shop_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("shops.id"), nullable=False, index=True),
        sa.Column("kuralis_product_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("kuralis_products.id"), index=True),
        sa.Column("title", sa.String(500)),
        sa.Column("sku", sa.String(255), index=True),
        sa.Column("price", sa.Numeric(12, 2)),
        sa.Column("quantity", sa.Integer, server_default=sa.text("0")),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("remote_updated_at", sa.DateTime(timezone=True)),
        sa.Column("last_synced_at", sa.DateTime(timezone=True)),
        sa.Column("listing_format", sa.String(50)),
        sa.Column("end_time", sa.DateTime(timezone=True)),
        sa.Column("quantity_sold", sa.Integer),
        sa.Column("handle", sa.String(255)),
        sa.Column("extra_data", postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column("description", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("platform", "platform_item_id", name="uq_listing_platform_item"),
        sa.UniqueConstraint("kuralis_product_id", "platform", name="uq_listing_product_platform"),
    )
    op.create_index("idx_listing_shop_platform", "listings", ["shop_id", "platform"])

    # Job runs
    op.create_table(
        "job_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("job_id", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("job_class", sa.String(100), nullable=False, index=True),
        sa.Column("shop_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("shops.id"), index=True),
        sa.Column("queue", sa.String(50)),
        sa.Column("status", sa.String(20), nullable=False, server_default="queued"),
        sa.Column("arguments", postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column("progress_data", postgresql.JSONB, server_default=sa.text("'{}'::jsonb")),
        sa.Column("attempt", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("error_message", sa.Text),
    )
    op.create_index("idx_job_run_checkpoint", "job_runs", ["shop_id", "job_class", "status", "completed_at"])
    op.create_index("idx_job_run_status_created", "job_runs", ["status", "created_at"])


def downgrade() -> None:
    op.drop_table("job_runs")
    op.drop_table("listings")
    op.drop_table("kuralis_products")
    op.drop_table("shops")
