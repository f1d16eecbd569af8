"""Initial schema — settings, accounts, rules, import batches, transactions, goals

Revision ID: 0001
Revises:
Create Date: 2026-10-01 00:00:00.000000
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "settings",
        sa.Column("key", sa.String(length=100), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("key"),
    )

    op.create_table(
        "accounts",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("account_type", sa.String(length=20), nullable=False),
        sa.Column("starting_balance_cents", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "category_rules",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("subcategory", sa.String(length=50), nullable=True),
        sa.Column("keywords", sa.JSON(), nullable=False),
        sa.Column("min_amount_cents", sa.Integer(), nullable=True),
        sa.Column("max_amount_cents", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_category_rules_id", "category_rules", ["id"], unique=False)
    op.create_index("ix_category_rules_position", "category_rules", ["position"], unique=False)

    op.create_table(
        "import_batches",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("file_name", sa.String(length=255), nullable=False),
        sa.Column("account_id", sa.String(length=64), nullable=False),
        sa.Column("total_rows", sa.Integer(), nullable=False),
        sa.Column("imported", sa.Integer(), nullable=False),
        sa.Column("skipped", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.String(length=32), nullable=False),
        sa.Column("import_batch_id", sa.String(length=32), nullable=True),
        sa.Column("posted_date", sa.String(length=10), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("transaction_type", sa.String(length=20), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("subcategory", sa.String(length=50), nullable=True),
        sa.Column("categorization_confidence", sa.Integer(), nullable=False),
        sa.Column("categorization_reason", sa.Text(), nullable=True),
        sa.Column("is_recurring", sa.Boolean(), nullable=False),
        sa.Column("recurring_group_id", sa.String(length=32), nullable=True),
        sa.Column("recurring_confidence", sa.Integer(), nullable=True),
        sa.Column("recurring_pattern", sa.JSON(), nullable=True),
        sa.Column("recurring_type", sa.String(length=20), nullable=True),
        sa.Column("account_id", sa.String(length=64), nullable=False),
        sa.Column("transfer_account_id", sa.String(length=64), nullable=True),
        sa.Column("tags", sa.JSON(), nullable=False),
        sa.Column("is_paid", sa.Boolean(), nullable=False),
        sa.Column("fingerprint_hash", sa.String(length=64), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(["import_batch_id"], ["import_batches.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_transactions_posted_date", "transactions", ["posted_date"], unique=False)
    op.create_index("ix_transactions_account_id", "transactions", ["account_id"], unique=False)
    op.create_index("ix_transactions_recurring_group_id", "transactions", ["recurring_group_id"], unique=False)
    op.create_index(
        "ix_transactions_fingerprint_hash",
        "transactions",
        ["fingerprint_hash"],
        unique=True,
    )

    op.create_table(
        "savings_goals",
        sa.Column("id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("target_cents", sa.Integer(), nullable=False),
        sa.Column("current_cents", sa.Integer(), nullable=False),
        sa.Column("monthly_contribution_cents", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.String(length=10), nullable=True),
        sa.Column("end_date", sa.String(length=10), nullable=True),
        sa.Column("account_id", sa.String(length=64), nullable=True),
        sa.Column("spent_date", sa.String(length=10), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    op.drop_table("savings_goals")
    op.drop_index("ix_transactions_fingerprint_hash", table_name="transactions")
    op.drop_index("ix_transactions_recurring_group_id", table_name="transactions")
    op.drop_index("ix_transactions_account_id", table_name="transactions")
    op.drop_index("ix_transactions_posted_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("import_batches")
    op.drop_index("ix_category_rules_position", table_name="category_rules")
    op.drop_index("ix_category_rules_id", table_name="category_rules")
    op.drop_table("category_rules")
    op.drop_table("accounts")
    op.drop_table("settings")
