"""initial schema: accounts, ledger, recurring series, exceptions, settings

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-03-01 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "0001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


FREQUENCY = sa.Enum("DAILY", "WEEKLY", "BIWEEKLY", "MONTHLY", "QUARTERLY", "YEARLY", name="recurrencefrequency")
EXCEPTION_TYPE = sa.Enum("SKIPPED", "MODIFIED", name="exceptiontype")
DIRECTION = sa.Enum("SOURCE", "DESTINATION", name="transferdirection")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def _recurrence_columns() -> list[sa.Column]:
    return [
        sa.Column("frequency", FREQUENCY, nullable=False),
        sa.Column("interval", sa.Integer(), nullable=False),
        sa.Column("day_of_month", sa.Integer(), nullable=True),
        sa.Column("day_of_week", sa.Integer(), nullable=True),
        sa.Column("month_of_year", sa.Integer(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("next_occurrence", sa.Date(), nullable=False),
        sa.Column("last_generated_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
    ]


def _exception_columns(series_table: str) -> list[sa.Column]:
    return [
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("series_id", sa.Integer(), sa.ForeignKey(f"{series_table}.id", ondelete="CASCADE"), nullable=False),
        sa.Column("original_date", sa.Date(), nullable=False),
        sa.Column("exception_type", EXCEPTION_TYPE, nullable=False),
        sa.Column("modified_amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("modified_description", sa.String(length=500), nullable=True),
        sa.Column("modified_date", sa.Date(), nullable=True),
        *_timestamps(),
    ]


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)
    existing = set(inspector.get_table_names())

    if "account" not in existing:
        op.create_table(
            "account",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("currency", sa.String(length=3), nullable=False),
            sa.Column("initial_balance", sa.Numeric(18, 2), nullable=False),
            sa.Column("initial_balance_date", sa.Date(), nullable=False),
            *_timestamps(),
        )

    if "recurringtransaction" not in existing:
        op.create_table(
            "recurringtransaction",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=False),
            sa.Column("amount", sa.Numeric(18, 2), nullable=False),
            sa.Column("currency", sa.String(length=3), nullable=False),
            *_recurrence_columns(),
            *_timestamps(),
        )
        op.create_index("ix_recurring_txn_account_active", "recurringtransaction", ["account_id", "is_active"])

    if "recurringtransfer" not in existing:
        op.create_table(
            "recurringtransfer",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("source_account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=False),
            sa.Column("destination_account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=False),
            sa.Column("amount", sa.Numeric(18, 2), nullable=False),
            sa.Column("currency", sa.String(length=3), nullable=False),
            *_recurrence_columns(),
            *_timestamps(),
            sa.CheckConstraint("source_account_id <> destination_account_id", name="ck_recurring_transfer_distinct_accounts"),
            sa.CheckConstraint("amount > 0", name="ck_recurring_transfer_positive_amount"),
        )

    if "transaction" not in existing:
        op.create_table(
            "transaction",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("account_id", sa.Integer(), sa.ForeignKey("account.id"), nullable=False),
            sa.Column("amount", sa.Numeric(18, 2), nullable=False),
            sa.Column("currency", sa.String(length=3), nullable=False),
            sa.Column("occurred_at", sa.Date(), nullable=False),
            sa.Column("description", sa.String(length=500), nullable=False),
            sa.Column(
                "recurring_transaction_id",
                sa.Integer(),
                sa.ForeignKey("recurringtransaction.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("recurring_instance_date", sa.Date(), nullable=True),
            sa.Column(
                "recurring_transfer_id",
                sa.Integer(),
                sa.ForeignKey("recurringtransfer.id", ondelete="SET NULL"),
                nullable=True,
            ),
            sa.Column("recurring_transfer_instance_date", sa.Date(), nullable=True),
            sa.Column("transfer_id", sa.String(length=36), nullable=True),
            sa.Column("transfer_direction", DIRECTION, nullable=True),
            *_timestamps(),
            sa.UniqueConstraint("recurring_transaction_id", "recurring_instance_date", name="uq_txn_recurring_instance"),
            sa.UniqueConstraint(
                "recurring_transfer_id",
                "recurring_transfer_instance_date",
                "transfer_direction",
                name="uq_txn_recurring_transfer_leg",
            ),
        )
        op.create_index("ix_txn_account_date", "transaction", ["account_id", "occurred_at"])
        op.create_index("ix_transaction_transfer_id", "transaction", ["transfer_id"])

    if "recurringtransactionexception" not in existing:
        op.create_table(
            "recurringtransactionexception",
            *_exception_columns("recurringtransaction"),
            sa.UniqueConstraint("series_id", "original_date", name="uq_recurring_txn_exception_date"),
        )

    if "recurringtransferexception" not in existing:
        op.create_table(
            "recurringtransferexception",
            *_exception_columns("recurringtransfer"),
            sa.UniqueConstraint("series_id", "original_date", name="uq_recurring_transfer_exception_date"),
        )

    if "appsettings" not in existing:
        op.create_table(
            "appsettings",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("auto_realize_past_due_items", sa.Boolean(), nullable=False),
            sa.Column("past_due_lookback_days", sa.Integer(), nullable=False),
            *_timestamps(),
            sa.CheckConstraint("past_due_lookback_days BETWEEN 1 AND 365", name="ck_settings_lookback_range"),
        )


def downgrade() -> None:
    op.drop_table("appsettings")
    op.drop_table("recurringtransferexception")
    op.drop_table("recurringtransactionexception")
    op.drop_index("ix_transaction_transfer_id", table_name="transaction")
    op.drop_index("ix_txn_account_date", table_name="transaction")
    op.drop_table("transaction")
    op.drop_table("recurringtransfer")
    op.drop_index("ix_recurring_txn_account_active", table_name="recurringtransaction")
    op.drop_table("recurringtransaction")
    op.drop_table("account")
