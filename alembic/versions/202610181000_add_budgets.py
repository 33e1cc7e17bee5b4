"""add budgets

Revision ID: 202610181000
Revises: 202610180900
Create Date: 2026-10-18 10:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610181000"
down_revision = "202610180900"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("cycle_key", sa.String(length=10), nullable=False),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=True
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount_cents > 0", name="ck_budget_amount_positive"),
        sa.UniqueConstraint(
            "user_id", "cycle_key", "category_id", name="uq_budget_user_cycle_category"
        ),
    )
    op.create_index("ix_budget_user_cycle", "budgets", ["user_id", "cycle_key"])

    # NULL category ids never collide in a plain unique constraint.
    op.execute(
        "CREATE UNIQUE INDEX uq_budget_user_cycle_overall "
        "ON budgets(user_id, cycle_key, IFNULL(category_id, -1))"
    )


def downgrade():
    op.drop_index("uq_budget_user_cycle_overall", table_name="budgets")
    op.drop_index("ix_budget_user_cycle", table_name="budgets")
    op.drop_table("budgets")
