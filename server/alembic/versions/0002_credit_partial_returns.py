"""track remaining quantity on empty-return credits

Revision ID: 0002_credit_partial_returns
Revises: 0001_initial
Create Date: 2026-10-18 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


revision = "0002_credit_partial_returns"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    with op.batch_alter_table("empty_return_credits") as batch_op:
        batch_op.add_column(sa.Column("quantity_remaining", sa.Integer(), nullable=False, server_default="0"))

    op.execute("UPDATE empty_return_credits SET quantity_remaining = quantity WHERE status = 'pending'")

    with op.batch_alter_table("empty_return_credits") as batch_op:
        batch_op.create_check_constraint(
            "ck_empty_return_credit_remaining_within_quantity",
            "quantity_remaining >= 0 AND quantity_remaining <= quantity",
        )


def downgrade() -> None:
    with op.batch_alter_table("empty_return_credits") as batch_op:
        batch_op.drop_constraint("ck_empty_return_credit_remaining_within_quantity", type_="check")
        batch_op.drop_column("quantity_remaining")
