"""SQLAlchemy-backed stores used by the calendar services.

All reads go through one ``Session`` and are issued one after another; the
session is not shared across threads. ``UnitOfWork`` is the only place that
commits.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Optional, Union

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from . import models
from .domain.overlay import ExceptionType


class SeriesKind(str, Enum):
    TRANSACTION = "transaction"
    TRANSFER = "transfer"


Series = Union[models.RecurringTransaction, models.RecurringTransfer]
SeriesException = Union[models.RecurringTransactionException, models.RecurringTransferException]


@dataclass(frozen=True)
class _KindMapping:
    series: type
    exception: type
    ledger_series_col: object
    ledger_date_col: object


_KINDS = {
    SeriesKind.TRANSACTION: _KindMapping(
        models.RecurringTransaction,
        models.RecurringTransactionException,
        models.Transaction.recurring_transaction_id,
        models.Transaction.recurring_instance_date,
    ),
    SeriesKind.TRANSFER: _KindMapping(
        models.RecurringTransfer,
        models.RecurringTransferException,
        models.Transaction.recurring_transfer_id,
        models.Transaction.recurring_transfer_instance_date,
    ),
}


def kind_of(series: Series) -> SeriesKind:
    if isinstance(series, models.RecurringTransfer):
        return SeriesKind.TRANSFER
    return SeriesKind.TRANSACTION


CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Normalize a DB aggregate (Decimal, float, int or None) to a 2dp Decimal."""
    return Decimal(str(value or 0)).quantize(CENT)


@dataclass(frozen=True)
class DailyTotal:
    day: date
    amount: Decimal
    count: int


class LedgerRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def daily_totals(self, year: int, month: int, account_id: Optional[int] = None) -> dict[date, DailyTotal]:
        start = date(year, month, 1)
        end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
        q = (
            self.db.query(
                models.Transaction.occurred_at,
                func.sum(models.Transaction.amount),
                func.count(models.Transaction.id),
            )
            .filter(models.Transaction.occurred_at >= start, models.Transaction.occurred_at < end)
        )
        if account_id is not None:
            q = q.filter(models.Transaction.account_id == account_id)
        rows = q.group_by(models.Transaction.occurred_at).all()
        return {
            day: DailyTotal(day, to_money(total), int(count))
            for day, total, count in rows
        }

    def by_date_range(self, from_date: date, to_date: date, account_id: Optional[int] = None) -> list[models.Transaction]:
        q = self.db.query(models.Transaction).filter(
            models.Transaction.occurred_at >= from_date,
            models.Transaction.occurred_at <= to_date,
        )
        if account_id is not None:
            q = q.filter(models.Transaction.account_id == account_id)
        return q.order_by(models.Transaction.occurred_at, models.Transaction.id).all()

    def by_recurring_instance(self, series_id: int, day: date) -> Optional[models.Transaction]:
        return (
            self.db.query(models.Transaction)
            .filter(
                models.Transaction.recurring_transaction_id == series_id,
                models.Transaction.recurring_instance_date == day,
            )
            .first()
        )

    def by_recurring_transfer_instance(self, series_id: int, day: date) -> list[models.Transaction]:
        return (
            self.db.query(models.Transaction)
            .filter(
                models.Transaction.recurring_transfer_id == series_id,
                models.Transaction.recurring_transfer_instance_date == day,
            )
            .all()
        )

    def realized_instance_keys(
        self, kind: SeriesKind, series_id: int, from_date: date, to_date: date
    ) -> set[tuple[date, Optional[models.TransferDirection]]]:
        """``(original_date, transfer_direction)`` pairs already realized for a series.

        Direction is None for transaction series.

        The window is on the original scheduled date, not ``occurred_at``.
        """
        mapping = _KINDS[kind]
        rows = (
            self.db.query(mapping.ledger_date_col, models.Transaction.transfer_direction)
            .filter(
                mapping.ledger_series_col == series_id,
                mapping.ledger_date_col >= from_date,
                mapping.ledger_date_col <= to_date,
            )
            .all()
        )
        return {(day, direction) for day, direction in rows}

    def add(self, txn: models.Transaction) -> models.Transaction:
        self.db.add(txn)
        return txn


class RecurringRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def active_series(self, kind: SeriesKind, account_id: Optional[int] = None) -> list[Series]:
        model = _KINDS[kind].series
        q = self.db.query(model).filter(model.is_active.is_(True))
        if account_id is not None:
            if kind is SeriesKind.TRANSFER:
                q = q.filter(or_(model.source_account_id == account_id, model.destination_account_id == account_id))
            else:
                q = q.filter(model.account_id == account_id)
        return q.order_by(model.id).all()

    def all_series(self, kind: SeriesKind, account_id: Optional[int] = None) -> list[Series]:
        model = _KINDS[kind].series
        q = self.db.query(model)
        if account_id is not None:
            if kind is SeriesKind.TRANSFER:
                q = q.filter(or_(model.source_account_id == account_id, model.destination_account_id == account_id))
            else:
                q = q.filter(model.account_id == account_id)
        return q.order_by(model.id).all()

    def get(self, kind: SeriesKind, series_id: int) -> Optional[Series]:
        return self.db.get(_KINDS[kind].series, series_id)

    def add(self, series: Series) -> Series:
        self.db.add(series)
        return series

    def delete(self, series: Series) -> None:
        kind = kind_of(series)
        mapping = _KINDS[kind]
        # Realized entries stay in the ledger; only the backlink goes away.
        (
            self.db.query(models.Transaction)
            .filter(mapping.ledger_series_col == series.id)
            .update({mapping.ledger_series_col: None, mapping.ledger_date_col: None}, synchronize_session=False)
        )
        (
            self.db.query(mapping.exception)
            .filter(mapping.exception.series_id == series.id)
            .delete(synchronize_session=False)
        )
        self.db.delete(series)

    def exceptions_in_range(self, kind: SeriesKind, series_id: int, from_date: date, to_date: date) -> list[SeriesException]:
        model = _KINDS[kind].exception
        return (
            self.db.query(model)
            .filter(model.series_id == series_id, model.original_date >= from_date, model.original_date <= to_date)
            .order_by(model.original_date)
            .all()
        )

    def moved_into_range(self, kind: SeriesKind, series_id: int, from_date: date, to_date: date) -> list[SeriesException]:
        """Modified exceptions scheduled outside the window whose new date lands inside it."""
        model = _KINDS[kind].exception
        return (
            self.db.query(model)
            .filter(
                model.series_id == series_id,
                model.exception_type == ExceptionType.MODIFIED,
                model.modified_date >= from_date,
                model.modified_date <= to_date,
                or_(model.original_date < from_date, model.original_date > to_date),
            )
            .all()
        )

    def exception(self, kind: SeriesKind, series_id: int, day: date) -> Optional[SeriesException]:
        model = _KINDS[kind].exception
        return (
            self.db.query(model)
            .filter(model.series_id == series_id, model.original_date == day)
            .first()
        )

    def new_exception(self, kind: SeriesKind, series_id: int, day: date, **fields) -> SeriesException:
        return _KINDS[kind].exception(series_id=series_id, original_date=day, **fields)

    def add_exception(self, exc: SeriesException) -> SeriesException:
        self.db.add(exc)
        return exc

    def remove_exception(self, exc: SeriesException) -> None:
        self.db.delete(exc)
        # Flush so a replacement row for the same date does not hit the unique key.
        self.db.flush()

    def remove_exceptions_from(self, kind: SeriesKind, series_id: int, day: date) -> int:
        model = _KINDS[kind].exception
        return (
            self.db.query(model)
            .filter(model.series_id == series_id, model.original_date >= day)
            .delete(synchronize_session=False)
        )


class AccountRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def all(self) -> list[models.Account]:
        return self.db.query(models.Account).order_by(models.Account.id).all()

    def by_id(self, account_id: int) -> Optional[models.Account]:
        return self.db.get(models.Account, account_id)

    def sum_between(self, account_id: int, from_date: date, to_date: date) -> Decimal:
        """Sum of realized amounts for an account dated within ``[from_date, to_date]``."""
        if from_date > to_date:
            return Decimal("0")
        total = (
            self.db.query(func.coalesce(func.sum(models.Transaction.amount), 0))
            .filter(
                models.Transaction.account_id == account_id,
                models.Transaction.occurred_at >= from_date,
                models.Transaction.occurred_at <= to_date,
            )
            .scalar()
        )
        return to_money(total)


class SettingsRepository:
    def __init__(self, db: Session) -> None:
        self.db = db

    def get(self) -> models.AppSettings:
        """Return the singleton settings row, creating it with defaults when missing."""
        row = self.db.get(models.AppSettings, 1)
        if row is None:
            row = models.AppSettings(id=1)
            self.db.add(row)
            self.db.flush()
        return row


class UnitOfWork:
    def __init__(self, db: Session) -> None:
        self.db = db

    def save_changes(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
