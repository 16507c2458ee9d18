from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Index,
    Boolean,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .core.config import settings
from .core.database import Base
from .domain.overlay import ExceptionType
from .domain.recurrence import RecurrenceFrequency, RecurrencePattern, SeriesCursor, build_pattern, describe


try:
    LOCAL_ZONE = ZoneInfo(settings.TIMEZONE)
except ZoneInfoNotFoundError:
    LOCAL_ZONE = ZoneInfo("UTC")


def now_local_naive() -> datetime:
    """Return naive datetime normalized to configured local timezone."""
    return datetime.now(LOCAL_ZONE).replace(tzinfo=None)


def today_local() -> date:
    return now_local_naive().date()


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=now_local_naive, onupdate=now_local_naive, nullable=False)


class Account(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    initial_balance: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"))
    initial_balance_date: Mapped[date] = mapped_column(Date, nullable=False)


class TransferDirection(str, Enum):
    SOURCE = "SOURCE"
    DESTINATION = "DESTINATION"


class Transaction(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    occurred_at: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    # Backlinks to the projected occurrence this entry realizes
    recurring_transaction_id: Mapped[int | None] = mapped_column(ForeignKey("recurringtransaction.id", ondelete="SET NULL"))
    recurring_instance_date: Mapped[date | None] = mapped_column(Date)
    recurring_transfer_id: Mapped[int | None] = mapped_column(ForeignKey("recurringtransfer.id", ondelete="SET NULL"))
    recurring_transfer_instance_date: Mapped[date | None] = mapped_column(Date)

    transfer_id: Mapped[str | None] = mapped_column(String(36), index=True)
    transfer_direction: Mapped[TransferDirection | None] = mapped_column(SAEnum(TransferDirection))

    account: Mapped[Account] = relationship(Account)

    __table_args__ = (
        UniqueConstraint("recurring_transaction_id", "recurring_instance_date", name="uq_txn_recurring_instance"),
        UniqueConstraint(
            "recurring_transfer_id",
            "recurring_transfer_instance_date",
            "transfer_direction",
            name="uq_txn_recurring_transfer_leg",
        ),
        Index("ix_txn_account_date", "account_id", "occurred_at"),
    )

    @property
    def is_transfer(self) -> bool:
        return self.transfer_id is not None


class RecurrenceColumnsMixin:
    """Pattern and lifecycle columns shared by both series tables."""

    frequency: Mapped[RecurrenceFrequency] = mapped_column(SAEnum(RecurrenceFrequency), nullable=False)
    interval: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    day_of_month: Mapped[int | None] = mapped_column(Integer)
    day_of_week: Mapped[int | None] = mapped_column(Integer)  # 0=Mon .. 6=Sun
    month_of_year: Mapped[int | None] = mapped_column(Integer)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date | None] = mapped_column(Date)
    next_occurrence: Mapped[date] = mapped_column(Date, nullable=False)
    last_generated_date: Mapped[date | None] = mapped_column(Date)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def pattern(self) -> RecurrencePattern:
        return build_pattern(self.frequency, self.interval, self.day_of_month, self.day_of_week, self.month_of_year)

    @property
    def pattern_label(self) -> str:
        return describe(self.pattern)

    @property
    def cursor(self) -> SeriesCursor:
        return SeriesCursor(self.next_occurrence, self.last_generated_date, self.is_active)

    def apply_cursor(self, cursor: SeriesCursor) -> None:
        self.next_occurrence = cursor.next_occurrence
        self.last_generated_date = cursor.last_generated_date
        self.is_active = cursor.is_active


class RecurringTransaction(Base, TimestampMixin, RecurrenceColumnsMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(ForeignKey("account.id"), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    account: Mapped[Account] = relationship(Account)

    __table_args__ = (
        Index("ix_recurring_txn_account_active", "account_id", "is_active"),
    )


class RecurringTransfer(Base, TimestampMixin, RecurrenceColumnsMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    source_account_id: Mapped[int] = mapped_column(ForeignKey("account.id"), nullable=False)
    destination_account_id: Mapped[int] = mapped_column(ForeignKey("account.id"), nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    source_account: Mapped[Account] = relationship(Account, foreign_keys=[source_account_id])
    destination_account: Mapped[Account] = relationship(Account, foreign_keys=[destination_account_id])

    __table_args__ = (
        CheckConstraint("source_account_id <> destination_account_id", name="ck_recurring_transfer_distinct_accounts"),
        CheckConstraint("amount > 0", name="ck_recurring_transfer_positive_amount"),
    )


class RecurringTransactionException(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    series_id: Mapped[int] = mapped_column(ForeignKey("recurringtransaction.id", ondelete="CASCADE"), nullable=False)
    original_date: Mapped[date] = mapped_column(Date, nullable=False)
    exception_type: Mapped[ExceptionType] = mapped_column(SAEnum(ExceptionType), nullable=False)
    modified_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2))
    modified_description: Mapped[str | None] = mapped_column(String(500))
    modified_date: Mapped[date | None] = mapped_column(Date)

    __table_args__ = (
        UniqueConstraint("series_id", "original_date", name="uq_recurring_txn_exception_date"),
    )


class RecurringTransferException(Base, TimestampMixin):
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    series_id: Mapped[int] = mapped_column(ForeignKey("recurringtransfer.id", ondelete="CASCADE"), nullable=False)
    original_date: Mapped[date] = mapped_column(Date, nullable=False)
    exception_type: Mapped[ExceptionType] = mapped_column(SAEnum(ExceptionType), nullable=False)
    modified_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2))
    modified_description: Mapped[str | None] = mapped_column(String(500))
    modified_date: Mapped[date | None] = mapped_column(Date)

    __table_args__ = (
        UniqueConstraint("series_id", "original_date", name="uq_recurring_transfer_exception_date"),
    )


class AppSettings(Base, TimestampMixin):
    # Singleton row, always id=1
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    auto_realize_past_due_items: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=lambda: settings.AUTO_REALIZE_DEFAULT
    )
    past_due_lookback_days: Mapped[int] = mapped_column(
        Integer, nullable=False, default=lambda: settings.PAST_DUE_LOOKBACK_DEFAULT
    )

    __table_args__ = (
        CheckConstraint("past_due_lookback_days BETWEEN 1 AND 365", name="ck_settings_lookback_range"),
    )
