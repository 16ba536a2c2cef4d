"""create budget period tables

Revision ID: 20240101_budget_tables
Revises:
Create Date: 2024-01-01 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from app.core.types import GUID, Money

# revision identifiers, used by Alembic.
revision: str = "20240101_budget_tables"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

DEFAULT_NOW = sa.func.now()

CATEGORY_TYPE = sa.Enum("income", "expense", name="categorytype")
TRANSACTION_TYPE = sa.Enum("income", "expense", "transfer", name="transactiontype")
PERIOD_TYPE = sa.Enum("weekly", "monthly", "yearly", "custom", name="periodtype")
BUDGET_STATUS = sa.Enum("draft", "pending_approval", "active", "completed", name="budgetstatus")


def upgrade() -> None:
    # users
    op.create_table(
        "users",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=DEFAULT_NOW, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # categories
    op.create_table(
        "categories",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("user_id", GUID(), nullable=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", CATEGORY_TYPE, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=DEFAULT_NOW, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )

    # transactions
    op.create_table(
        "transactions",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("user_id", GUID(), nullable=False),
        sa.Column("account_id", GUID(), nullable=True),
        sa.Column("category_id", GUID(), nullable=True),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("amount", Money(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=DEFAULT_NOW, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_transactions_user_type_date", "transactions", ["user_id", "type", "transaction_date"])
    op.create_index("idx_transactions_category_date", "transactions", ["category_id", "transaction_date"])

    # budgets
    op.create_table(
        "budgets",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("user_id", GUID(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("period_type", PERIOD_TYPE, nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("planned_income", Money(), nullable=False),
        sa.Column("actual_income", Money(), nullable=False),
        sa.Column("planned_expenses", Money(), nullable=False),
        sa.Column("actual_expenses", Money(), nullable=False),
        sa.Column("status", BUDGET_STATUS, nullable=False),
        sa.Column("is_template", sa.Boolean(), nullable=False),
        sa.Column("template_name", sa.String(), nullable=True),
        sa.Column("rollover_unused", sa.Boolean(), nullable=False),
        sa.Column("deduct_overspent", sa.Boolean(), nullable=False),
        sa.Column("alert_percentage", sa.Integer(), nullable=False),
        sa.Column("created_by", GUID(), nullable=True),
        sa.Column("approved_by", GUID(), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=DEFAULT_NOW, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("start_date <= end_date", name="ck_budgets_date_range"),
        sa.CheckConstraint("alert_percentage >= 0 AND alert_percentage <= 100", name="ck_budgets_alert_percentage"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"]),
        sa.ForeignKeyConstraint(["approved_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_budgets_user_period", "budgets", ["user_id", "start_date", "end_date"])
    op.create_index("idx_budgets_user_status", "budgets", ["user_id", "status"])

    # budget_categories
    op.create_table(
        "budget_categories",
        sa.Column("id", GUID(), nullable=False),
        sa.Column("budget_id", GUID(), nullable=False),
        sa.Column("category_id", GUID(), nullable=False),
        sa.Column("allocated_amount", Money(), nullable=False),
        sa.Column("spent_amount", Money(), nullable=False),
        sa.Column("previous_period_spent", Money(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("is_fixed_amount", sa.Boolean(), nullable=False),
        sa.Column("alert_on_overspend", sa.Boolean(), nullable=False),
        sa.Column("alert_threshold", sa.Integer(), nullable=True),
        sa.Column("rollover_unused", sa.Boolean(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("last_calculated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=DEFAULT_NOW, nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("allocated_amount >= 0", name="ck_budget_categories_allocated_positive"),
        sa.CheckConstraint("spent_amount >= 0", name="ck_budget_categories_spent_positive"),
        sa.ForeignKeyConstraint(["budget_id"], ["budgets.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["category_id"], ["categories.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("budget_id", "category_id", name="uq_budget_category"),
    )
    op.create_index("idx_budget_categories_budget_priority", "budget_categories", ["budget_id", "priority"])


def downgrade() -> None:
    op.drop_index("idx_budget_categories_budget_priority", table_name="budget_categories")
    op.drop_table("budget_categories")
    op.drop_index("idx_budgets_user_status", table_name="budgets")
    op.drop_index("idx_budgets_user_period", table_name="budgets")
    op.drop_table("budgets")
    op.drop_index("idx_transactions_category_date", table_name="transactions")
    op.drop_index("idx_transactions_user_type_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("categories")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in (BUDGET_STATUS, PERIOD_TYPE, TRANSACTION_TYPE, CATEGORY_TYPE):
        enum_type.drop(bind, checkfirst=True)
