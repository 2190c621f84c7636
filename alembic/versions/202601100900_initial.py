"""initial budget schema

Revision ID: 202601100900
Revises:
Create Date: 2026-01-10 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202601100900"
down_revision = None
branch_labels = None
depends_on = None

ENTRY_TYPE = sa.Enum("bill", "income", name="entrytype")
BILLING_PERIOD = sa.Enum(
    "monthly", "bi_weekly", "weekly", "semi_annually", name="billingperiod"
)
SOURCE_TYPE = sa.Enum("bank_account", "credit_card", "cash", name="paymentsourcetype")
UNDO_ENTITY = sa.Enum(
    "bill",
    "income",
    "variable_expense",
    "free_flowing_expense",
    "payment_source",
    "bill_instance",
    "income_instance",
    name="undoentitytype",
)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _recurring_table(name: str):
    op.create_table(
        name,
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("billing_period", BILLING_PERIOD, nullable=False),
        sa.Column("start_date", sa.Date()),
        sa.Column("day_of_month", sa.Integer()),
        sa.Column("recurrence_week", sa.Integer()),
        sa.Column("recurrence_day", sa.Integer()),
        sa.Column("due_day", sa.Integer()),
        sa.Column(
            "payment_source_id",
            sa.Integer(),
            sa.ForeignKey("payment_sources.id"),
            nullable=False,
        ),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint(
            "amount >= 0", name=f"ck_{name.rstrip('s')}_amount_positive"
        ),
    )


def _instance_table(name: str, parent_column: str, parent_table: str):
    prefix = name.rstrip("s")
    op.create_table(
        name,
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "monthly_data_id",
            sa.Integer(),
            sa.ForeignKey("monthly_data.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(parent_column, sa.Integer(), sa.ForeignKey(f"{parent_table}.id")),
        sa.Column("expected_amount", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("actual_amount", sa.Integer()),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_closed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_adhoc", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("due_date", sa.Date()),
        sa.Column("closed_date", sa.Date()),
        sa.Column("name", sa.String(length=120)),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column(
            "payment_source_id", sa.Integer(), sa.ForeignKey("payment_sources.id")
        ),
        *_timestamps(),
        sa.CheckConstraint("expected_amount >= 0", name=f"ck_{prefix}_expected"),
        sa.CheckConstraint(
            "actual_amount IS NULL OR actual_amount >= 0", name=f"ck_{prefix}_actual"
        ),
    )
    op.create_index(f"ix_{name}_month", name, ["monthly_data_id"])


def _expense_table(name: str, check_name: str):
    op.create_table(
        name,
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "monthly_data_id",
            sa.Integer(),
            sa.ForeignKey("monthly_data.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column(
            "payment_source_id", sa.Integer(), sa.ForeignKey("payment_sources.id")
        ),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name=check_name),
    )


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", ENTRY_TYPE, nullable=False),
        sa.Column("color", sa.String(length=7), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "is_predefined", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        *_timestamps(),
        sa.UniqueConstraint("type", "name", name="uq_category_type_name"),
    )

    op.create_table(
        "payment_sources",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", SOURCE_TYPE, nullable=False),
        sa.Column("balance", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    _recurring_table("bills")
    _recurring_table("incomes")

    op.create_table(
        "monthly_data",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("month", sa.String(length=7), nullable=False, unique=True),
        sa.Column(
            "is_read_only", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        *_timestamps(),
    )

    _instance_table("bill_instances", "bill_id", "bills")
    _instance_table("income_instances", "income_id", "incomes")

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "bill_instance_id",
            sa.Integer(),
            sa.ForeignKey("bill_instances.id", ondelete="CASCADE"),
        ),
        sa.Column(
            "income_instance_id",
            sa.Integer(),
            sa.ForeignKey("income_instances.id", ondelete="CASCADE"),
        ),
        sa.Column("amount", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_payment_amount_positive"),
        sa.CheckConstraint(
            "(bill_instance_id IS NULL) <> (income_instance_id IS NULL)",
            name="ck_payment_single_owner",
        ),
    )

    _expense_table("variable_expenses", "ck_variable_expense_amount_positive")
    _expense_table("free_flowing_expenses", "ck_free_flowing_amount_positive")

    op.create_table(
        "bank_balances",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "monthly_data_id",
            sa.Integer(),
            sa.ForeignKey("monthly_data.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "payment_source_id",
            sa.Integer(),
            sa.ForeignKey("payment_sources.id"),
            nullable=False,
        ),
        sa.Column("balance", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint(
            "monthly_data_id", "payment_source_id", name="uq_bank_balance_month_source"
        ),
    )

    op.create_table(
        "undo_entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("entity_type", UNDO_ENTITY, nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("old_value", sa.Text()),
        sa.Column("new_value", sa.Text()),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_undo_entries_timestamp", "undo_entries", ["timestamp"])


def downgrade():
    op.drop_index("ix_undo_entries_timestamp", table_name="undo_entries")
    op.drop_table("undo_entries")
    op.drop_table("bank_balances")
    op.drop_table("free_flowing_expenses")
    op.drop_table("variable_expenses")
    op.drop_table("payments")
    op.drop_index("ix_income_instances_month", table_name="income_instances")
    op.drop_table("income_instances")
    op.drop_index("ix_bill_instances_month", table_name="bill_instances")
    op.drop_table("bill_instances")
    op.drop_table("monthly_data")
    op.drop_table("incomes")
    op.drop_table("bills")
    op.drop_table("payment_sources")
    op.drop_table("categories")
