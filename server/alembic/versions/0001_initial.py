"""cylinder inventory ledger, pricing lookups and empty-return credits

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "customers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "warehouses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("code", sa.String(length=50), nullable=True, unique=True),
        sa.Column("is_mobile", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sku", sa.String(length=100), nullable=False, unique=True),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("sku_variant", sa.String(length=20), nullable=False, server_default="OTHER"),
        sa.Column(
            "product_type",
            sa.Enum("cylinder", "accessory", name="product_type"),
            nullable=False,
            server_default="cylinder",
        ),
        sa.Column("capacity", sa.Numeric(8, 2), nullable=True),
        sa.Column("tax_rate", sa.Numeric(5, 4), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "price_list_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=True),
        sa.Column("unit_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("tax_rate", sa.Numeric(5, 4), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_price_list_items_product_customer", "price_list_items", ["product_id", "customer_id"])

    op.create_table(
        "cylinder_deposit_rates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("capacity", sa.Numeric(8, 2), nullable=False),
        sa.Column("deposit_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False, server_default="KES"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.CheckConstraint("capacity > 0", name="ck_deposit_rate_capacity_positive"),
        sa.CheckConstraint("deposit_amount >= 0", name="ck_deposit_rate_amount_non_negative"),
    )

    op.create_table(
        "inventory_balances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("qty_full", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("qty_empty", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("qty_reserved", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("qty_quarantine", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("qty_damaged", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("qty_in_transit", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("qty_under_maintenance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("product_id", "warehouse_id", name="uq_inventory_balance_product_warehouse"),
        sa.CheckConstraint(
            "qty_full >= 0 AND qty_empty >= 0 AND qty_reserved >= 0 AND qty_quarantine >= 0 "
            "AND qty_damaged >= 0 AND qty_in_transit >= 0 AND qty_under_maintenance >= 0",
            name="ck_inventory_balance_non_negative",
        ),
        sa.CheckConstraint("qty_reserved <= qty_full", name="ck_inventory_balance_reserved_within_full"),
    )

    op.create_table(
        "stock_movements",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("movement_type", sa.String(length=30), nullable=False),
        sa.Column("qty_full_change", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("qty_empty_change", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("reference_type", sa.String(length=50), nullable=True),
        sa.Column("reference_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_stock_movements_product_warehouse", "stock_movements", ["product_id", "warehouse_id"])

    op.create_table(
        "empty_return_credits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("order_reference", sa.String(length=64), nullable=False),
        sa.Column("customer_id", sa.Integer(), sa.ForeignKey("customers.id"), nullable=False),
        sa.Column("warehouse_id", sa.Integer(), sa.ForeignKey("warehouses.id"), nullable=False),
        sa.Column("product_id", sa.Integer(), sa.ForeignKey("products.id"), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("capacity", sa.Numeric(8, 2), nullable=True),
        sa.Column("unit_credit_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("credit_value", sa.Numeric(14, 2), nullable=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False, server_default="KES"),
        sa.Column(
            "status",
            sa.Enum("pending", "returned", "cancelled", "expired", name="empty_return_credit_status"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("due_by", sa.DateTime(), nullable=False),
        sa.Column("expires_at", sa.DateTime(), nullable=False),
        sa.Column("returned_at", sa.DateTime(), nullable=True),
        sa.Column("cancelled_reason", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_empty_return_credit_quantity_positive"),
    )
    op.create_index("ix_empty_return_credits_order", "empty_return_credits", ["order_reference"])
    op.create_index("ix_empty_return_credits_status_expiry", "empty_return_credits", ["status", "expires_at"])


def downgrade() -> None:
    op.drop_index("ix_empty_return_credits_status_expiry", table_name="empty_return_credits")
    op.drop_index("ix_empty_return_credits_order", table_name="empty_return_credits")
    op.drop_table("empty_return_credits")
    op.drop_index("ix_stock_movements_product_warehouse", table_name="stock_movements")
    op.drop_table("stock_movements")
    op.drop_table("inventory_balances")
    op.drop_table("cylinder_deposit_rates")
    op.drop_index("ix_price_list_items_product_customer", table_name="price_list_items")
    op.drop_table("price_list_items")
    op.drop_table("products")
    op.drop_table("warehouses")
    op.drop_table("customers")
