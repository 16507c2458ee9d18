from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .domain.overlay import ExceptionType
from .domain.recurrence import RecurrenceFrequency
from .models import TransferDirection
from .repositories import SeriesKind

# Alias for fields named ``date`` that also carry a default
DateType = date


def _money_checks(v: Decimal | None) -> Decimal | None:
    if v is None:
        return v
    if not v.is_finite():
        raise ValueError("amount must be finite")
    return v


class MoneyOut(BaseModel):
    currency: str
    amount: Decimal


# ===== Projection =====

class ProjectedInstance(BaseModel):
    """One leg of a not-yet-realized occurrence, built fresh per request."""

    model_config = ConfigDict(frozen=True)

    kind: SeriesKind
    series_id: int
    original_date: date
    effective_date: date
    account_id: int
    account_name: str = ""
    amount: Decimal
    currency: str
    description: str
    is_modified: bool = False
    is_skipped: bool = False
    transfer_direction: Optional[TransferDirection] = None


# ===== Calendar grid =====

class CalendarDay(BaseModel):
    date: date
    is_current_month: bool
    is_today: bool
    actual_total: MoneyOut
    projected_total: MoneyOut
    combined_total: MoneyOut
    transaction_count: int = 0
    recurring_count: int = 0
    has_recurring: bool = False
    end_of_day_balance: Optional[MoneyOut] = None
    is_balance_negative: bool = False


class CalendarMonthSummary(BaseModel):
    total_income: MoneyOut
    total_expenses: MoneyOut
    net_change: MoneyOut
    projected_income: MoneyOut
    projected_expenses: MoneyOut


class CalendarGrid(BaseModel):
    year: int
    month: int
    days: list[CalendarDay]
    month_summary: CalendarMonthSummary
    starting_balance: MoneyOut


# ===== Day detail =====

DayItemType = Literal["transaction", "recurring", "recurring-transfer"]


class DayDetailItem(BaseModel):
    id: int
    type: DayItemType
    description: str
    amount: MoneyOut
    account_id: int
    account_name: str = ""
    created_at: Optional[datetime] = None
    is_modified: bool = False
    instance_date: Optional[date] = None
    recurring_transaction_id: Optional[int] = None
    recurring_transfer_id: Optional[int] = None
    is_transfer: bool = False
    transfer_id: Optional[str] = None
    transfer_direction: Optional[TransferDirection] = None


class DayDetailSummary(BaseModel):
    total_actual: MoneyOut
    total_projected: MoneyOut
    combined_total: MoneyOut
    item_count: int


class DayDetail(BaseModel):
    date: date
    items: list[DayDetailItem]
    summary: DayDetailSummary


# ===== Account transaction list =====

class TransactionListItem(DayDetailItem):
    date: date
    running_balance: Optional[MoneyOut] = None


class DailyBalanceSummary(BaseModel):
    date: date
    starting_balance: MoneyOut
    ending_balance: MoneyOut
    day_total: MoneyOut
    transaction_count: int


class TransactionListSummary(BaseModel):
    total_amount: MoneyOut
    total_income: MoneyOut
    total_expenses: MoneyOut
    transaction_count: int
    recurring_count: int
    current_balance: MoneyOut


class TransactionList(BaseModel):
    account_id: int
    account_name: str
    start_date: date
    end_date: date
    initial_balance: MoneyOut
    initial_balance_date: date
    starting_balance: MoneyOut
    items: list[TransactionListItem]
    daily_balances: list[DailyBalanceSummary]
    summary: TransactionListSummary


# ===== Auto-realize =====

class AutoRealizeResult(BaseModel):
    count: int = 0
    transaction_ids: list[int] = Field(default_factory=list)


# ===== Past-due review =====

PastDueItemType = Literal["recurring-transaction", "recurring-transfer"]


class PastDueItem(BaseModel):
    """A scheduled occurrence in the lookback window with no ledger entry yet."""

    id: int
    type: PastDueItemType
    instance_date: date
    days_past_due: int
    description: str
    amount: MoneyOut
    account_id: Optional[int] = None
    account_name: Optional[str] = None
    source_account_id: Optional[int] = None
    source_account_name: Optional[str] = None
    destination_account_id: Optional[int] = None
    destination_account_name: Optional[str] = None


class PastDueSummary(BaseModel):
    items: list[PastDueItem]
    total_count: int
    oldest_date: Optional[date] = None
    total_amount: Optional[MoneyOut] = None


class BatchRealizeItem(BaseModel):
    id: int
    type: PastDueItemType
    instance_date: date


class BatchRealizeRequest(BaseModel):
    items: list[BatchRealizeItem]


class BatchRealizeFailure(BatchRealizeItem):
    error: str


class BatchRealizeResult(BaseModel):
    success_count: int = 0
    failure_count: int = 0
    failures: list[BatchRealizeFailure] = Field(default_factory=list)
    transaction_ids: list[int] = Field(default_factory=list)


# ===== Ledger =====

class TransactionOut(BaseModel):
    id: int
    account_id: int
    amount: Decimal
    currency: str
    occurred_at: date
    description: str
    created_at: datetime
    recurring_transaction_id: Optional[int] = None
    recurring_instance_date: Optional[date] = None
    recurring_transfer_id: Optional[int] = None
    recurring_transfer_instance_date: Optional[date] = None
    transfer_id: Optional[str] = None
    transfer_direction: Optional[TransferDirection] = None

    model_config = ConfigDict(from_attributes=True)


# ===== Recurring series =====

class RecurrenceIn(BaseModel):
    frequency: str
    interval: int = 1
    day_of_month: Optional[int] = None
    day_of_week: Optional[int | str] = None
    month_of_year: Optional[int] = None


class _SeriesCreateBase(RecurrenceIn):
    description: str
    amount: Decimal
    currency: str = "USD"
    start_date: date
    end_date: Optional[date] = None

    @field_validator("currency")
    def currency_len(cls, v: str):
        if len(v) != 3:
            raise ValueError("currency must be 3-letter code")
        return v.upper()

    @field_validator("description")
    def description_required(cls, v: str):
        v = v.strip()
        if not v:
            raise ValueError("description is required")
        return v

    @field_validator("amount")
    def amount_finite(cls, v: Decimal):
        return _money_checks(v)

    @model_validator(mode="after")
    def check_dates(self):
        if self.end_date is not None and self.end_date < self.start_date:
            raise ValueError("end_date must be on or after start_date")
        return self


class RecurringTransactionCreate(_SeriesCreateBase):
    account_id: int


class RecurringTransferCreate(_SeriesCreateBase):
    source_account_id: int
    destination_account_id: int

    @field_validator("amount")
    def amount_positive(cls, v: Decimal):
        if v <= 0:
            raise ValueError("transfer amount must be positive")
        return v

    @model_validator(mode="after")
    def check_accounts(self):
        if self.source_account_id == self.destination_account_id:
            raise ValueError("source and destination accounts must differ")
        return self


class RecurringSeriesUpdate(BaseModel):
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    frequency: Optional[str] = None
    interval: Optional[int] = None
    day_of_month: Optional[int] = None
    day_of_week: Optional[int | str] = None
    month_of_year: Optional[int] = None
    end_date: Optional[date] = None
    clear_end_date: bool = False

    @field_validator("amount")
    def amount_finite(cls, v: Decimal | None):
        return _money_checks(v)


class _SeriesOutBase(BaseModel):
    id: int
    description: str
    amount: Decimal
    currency: str
    frequency: RecurrenceFrequency
    interval: int
    day_of_month: Optional[int]
    day_of_week: Optional[int]
    month_of_year: Optional[int]
    pattern_label: str
    start_date: date
    end_date: Optional[date]
    next_occurrence: date
    last_generated_date: Optional[date]
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class RecurringTransactionOut(_SeriesOutBase):
    account_id: int


class RecurringTransferOut(_SeriesOutBase):
    source_account_id: int
    destination_account_id: int


class InstanceModify(BaseModel):
    amount: Optional[Decimal] = None
    description: Optional[str] = None
    date: Optional[DateType] = None

    @field_validator("amount")
    def amount_finite(cls, v: Decimal | None):
        return _money_checks(v)


class RealizeRequest(BaseModel):
    instance_date: DateType
    date: Optional[DateType] = None
    amount: Optional[Decimal] = None
    description: Optional[str] = None

    @field_validator("amount")
    def amount_finite(cls, v: Decimal | None):
        return _money_checks(v)


class RecurringInstanceOut(BaseModel):
    series_id: int
    scheduled_date: date
    effective_date: date
    amount: Decimal
    description: str
    is_modified: bool
    is_skipped: bool
    realized_transaction_ids: list[int] = Field(default_factory=list)


class InstanceExceptionOut(BaseModel):
    series_id: int
    original_date: date
    exception_type: ExceptionType
    modified_amount: Optional[Decimal] = None
    modified_description: Optional[str] = None
    modified_date: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


# ===== Settings =====

class AppSettingsOut(BaseModel):
    auto_realize_past_due_items: bool
    past_due_lookback_days: int

    model_config = ConfigDict(from_attributes=True)


class AppSettingsUpdate(BaseModel):
    auto_realize_past_due_items: Optional[bool] = None
    past_due_lookback_days: Optional[int] = None
