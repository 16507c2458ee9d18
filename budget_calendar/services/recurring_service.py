from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.orm import Session

from .. import models
from ..core.errors import AlreadyRealizedError, NotFoundError, RecurrenceValidationError
from ..core.logging import get_logger
from ..domain.overlay import ExceptionType, apply_exceptions
from ..domain.recurrence import (
    RecurrencePattern,
    build_pattern,
    first_occurrence_on_or_after,
    occurrences,
    pattern_columns,
)
from ..repositories import (
    AccountRepository,
    LedgerRepository,
    RecurringRepository,
    Series,
    SeriesException,
    SeriesKind,
    UnitOfWork,
    to_money,
)
from ..schemas import RecurringInstanceOut
from .realization import transaction_entry, transfer_legs

logger = get_logger(__name__)

_PATTERN_FIELDS = ("frequency", "interval", "day_of_month", "day_of_week", "month_of_year")


class RecurringService:
    """Lifecycle of recurring transaction and transfer series and their exceptions.

    Lookups return ``None`` for a missing series; operations that write on
    behalf of a missing series raise ``NotFoundError``.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self.recurring = RecurringRepository(db)
        self.ledger = LedgerRepository(db)
        self.accounts = AccountRepository(db)
        self.uow = UnitOfWork(db)

    # ===== Series =====

    def create_transaction_series(
        self,
        *,
        account_id: int,
        description: str,
        amount: Decimal,
        start_date: date,
        frequency: str,
        interval: int = 1,
        day_of_month: Optional[int] = None,
        day_of_week: Any = None,
        month_of_year: Optional[int] = None,
        end_date: Optional[date] = None,
        currency: str = "USD",
    ) -> models.RecurringTransaction:
        self._require_account(account_id)
        pattern = build_pattern(frequency, interval, day_of_month, day_of_week, month_of_year)
        series = models.RecurringTransaction(
            account_id=account_id,
            description=description.strip(),
            amount=to_money(amount),
            currency=currency.upper(),
            **self._lifecycle_columns(pattern, start_date, end_date),
        )
        self.recurring.add(series)
        self.uow.save_changes()
        self.db.refresh(series)
        logger.debug("created recurring transaction %s (%s)", series.id, series.pattern_label)
        return series

    def create_transfer_series(
        self,
        *,
        source_account_id: int,
        destination_account_id: int,
        description: str,
        amount: Decimal,
        start_date: date,
        frequency: str,
        interval: int = 1,
        day_of_month: Optional[int] = None,
        day_of_week: Any = None,
        month_of_year: Optional[int] = None,
        end_date: Optional[date] = None,
        currency: str = "USD",
    ) -> models.RecurringTransfer:
        if source_account_id == destination_account_id:
            raise RecurrenceValidationError("Source and destination accounts must differ.")
        if to_money(amount) <= 0:
            raise RecurrenceValidationError("Transfer amount must be positive.")
        self._require_account(source_account_id)
        self._require_account(destination_account_id)
        pattern = build_pattern(frequency, interval, day_of_month, day_of_week, month_of_year)
        series = models.RecurringTransfer(
            source_account_id=source_account_id,
            destination_account_id=destination_account_id,
            description=description.strip(),
            amount=to_money(amount),
            currency=currency.upper(),
            **self._lifecycle_columns(pattern, start_date, end_date),
        )
        self.recurring.add(series)
        self.uow.save_changes()
        self.db.refresh(series)
        logger.debug("created recurring transfer %s (%s)", series.id, series.pattern_label)
        return series

    def get(self, kind: SeriesKind, series_id: int) -> Optional[Series]:
        return self.recurring.get(kind, series_id)

    def list_series(self, kind: SeriesKind, account_id: Optional[int] = None) -> list[Series]:
        return self.recurring.all_series(kind, account_id)

    def update(
        self,
        kind: SeriesKind,
        series_id: int,
        *,
        from_date: Optional[date] = None,
        **changes: Any,
    ) -> Optional[Series]:
        """Apply ``changes`` to a series.

        With ``from_date`` every exception on or after that date is dropped
        first, so the new definition governs the rest of the series.
        """
        series = self.recurring.get(kind, series_id)
        if series is None:
            return None

        if from_date is not None:
            removed = self.recurring.remove_exceptions_from(kind, series.id, from_date)
            logger.debug("dropped %d exceptions from %s on series %s", removed, from_date, series.id)

        if changes.get("description") is not None:
            description = changes["description"].strip()
            if not description:
                raise RecurrenceValidationError("Description is required.")
            series.description = description
        if changes.get("amount") is not None:
            amount = to_money(changes["amount"])
            if kind is SeriesKind.TRANSFER and amount <= 0:
                raise RecurrenceValidationError("Transfer amount must be positive.")
            series.amount = amount
        if changes.get("clear_end_date"):
            series.end_date = None
        elif changes.get("end_date") is not None:
            if changes["end_date"] < series.start_date:
                raise RecurrenceValidationError("End date must be on or after start date.")
            series.end_date = changes["end_date"]

        if any(changes.get(f) is not None for f in _PATTERN_FIELDS):
            merged = {f: getattr(series, f) for f in _PATTERN_FIELDS}
            merged.update({f: changes[f] for f in _PATTERN_FIELDS if changes.get(f) is not None})
            if changes.get("frequency") is not None and changes.get("interval") is None:
                merged["interval"] = 1
            pattern = build_pattern(**merged)
            for column, value in pattern_columns(pattern).items():
                setattr(series, column, value)
            anchor = max(series.start_date, series.next_occurrence)
            nxt = first_occurrence_on_or_after(pattern, series.start_date, anchor)
            if nxt is not None:
                series.next_occurrence = nxt

        if series.end_date is not None and series.next_occurrence > series.end_date:
            series.is_active = False

        self.uow.save_changes()
        self.db.refresh(series)
        return series

    def delete(self, kind: SeriesKind, series_id: int) -> bool:
        series = self.recurring.get(kind, series_id)
        if series is None:
            return False
        self.recurring.delete(series)
        self.uow.save_changes()
        logger.debug("deleted %s series %s", kind.value, series_id)
        return True

    def pause(self, kind: SeriesKind, series_id: int) -> Optional[Series]:
        return self._set_active(kind, series_id, False)

    def resume(self, kind: SeriesKind, series_id: int) -> Optional[Series]:
        return self._set_active(kind, series_id, True)

    def skip_next(self, kind: SeriesKind, series_id: int) -> Optional[Series]:
        """Skip the occurrence at the cursor and advance the cursor past it."""
        series = self.recurring.get(kind, series_id)
        if series is None:
            return None
        self._replace_exception(kind, series.id, series.next_occurrence, exception_type=ExceptionType.SKIPPED)
        series.apply_cursor(series.cursor.advance(series.pattern, series.start_date, series.end_date))
        self.uow.save_changes()
        self.db.refresh(series)
        logger.debug("series %s skipped to %s", series.id, series.next_occurrence)
        return series

    # ===== Instances =====

    def list_instances(
        self, kind: SeriesKind, series_id: int, from_date: date, to_date: date
    ) -> Optional[list[RecurringInstanceOut]]:
        """Every scheduled occurrence in the window, skipped ones included."""
        series = self.recurring.get(kind, series_id)
        if series is None:
            return None
        dates = occurrences(series.pattern, series.start_date, series.end_date, from_date, to_date)
        exceptions = self.recurring.exceptions_in_range(kind, series.id, from_date, to_date)
        effective = apply_exceptions(
            dates, exceptions, to_money(series.amount), series.description, include_skipped=True
        )
        realized: dict[date, list[int]] = {}
        for day in dates:
            if kind is SeriesKind.TRANSACTION:
                txn = self.ledger.by_recurring_instance(series.id, day)
                realized[day] = [txn.id] if txn else []
            else:
                realized[day] = sorted(t.id for t in self.ledger.by_recurring_transfer_instance(series.id, day))
        return [
            RecurringInstanceOut(
                series_id=series.id,
                scheduled_date=occ.original_date,
                effective_date=occ.effective_date,
                amount=occ.amount,
                description=occ.description,
                is_modified=occ.is_modified,
                is_skipped=occ.is_skipped,
                realized_transaction_ids=realized.get(occ.original_date, []),
            )
            for occ in effective
        ]

    def modify_instance(
        self,
        kind: SeriesKind,
        series_id: int,
        instance_date: date,
        *,
        amount: Optional[Decimal] = None,
        description: Optional[str] = None,
        new_date: Optional[date] = None,
    ) -> SeriesException:
        series = self._require_series(kind, series_id)
        self._require_occurrence(series, instance_date)
        if description is not None:
            description = description.strip() or None
        if amount is None and description is None and new_date is None:
            raise RecurrenceValidationError("A modification needs an amount, description or date.")

        exc = self.recurring.exception(kind, series.id, instance_date)
        if exc is None or exc.exception_type == ExceptionType.SKIPPED:
            exc = self._replace_exception(
                kind,
                series.id,
                instance_date,
                exception_type=ExceptionType.MODIFIED,
                modified_amount=None if amount is None else to_money(amount),
                modified_description=description,
                modified_date=new_date,
            )
        else:
            exc.modified_amount = None if amount is None else to_money(amount)
            exc.modified_description = description
            exc.modified_date = new_date
        self.uow.save_changes()
        self.db.refresh(exc)
        logger.debug("modified %s series %s at %s", kind.value, series.id, instance_date)
        return exc

    def skip_instance(self, kind: SeriesKind, series_id: int, instance_date: date) -> SeriesException:
        """Record a skip for one occurrence, replacing any earlier modification."""
        series = self._require_series(kind, series_id)
        self._require_occurrence(series, instance_date)
        exc = self._replace_exception(kind, series.id, instance_date, exception_type=ExceptionType.SKIPPED)
        self.uow.save_changes()
        self.db.refresh(exc)
        logger.debug("skipped %s series %s at %s", kind.value, series.id, instance_date)
        return exc

    def realize_instance(
        self,
        kind: SeriesKind,
        series_id: int,
        instance_date: date,
        *,
        occurred_at: Optional[date] = None,
        amount: Optional[Decimal] = None,
        description: Optional[str] = None,
    ) -> list[models.Transaction]:
        """Manually post one occurrence.

        Values resolve as request override, then exception, then series
        default. Fails with ``AlreadyRealizedError`` when the occurrence is
        already in the ledger.
        """
        series = self._require_series(kind, series_id)
        self._require_occurrence(series, instance_date)

        existing: list[models.Transaction] = []
        if kind is SeriesKind.TRANSACTION:
            if self.ledger.by_recurring_instance(series.id, instance_date) is not None:
                raise AlreadyRealizedError("This instance has already been realized.")
        else:
            existing = self.ledger.by_recurring_transfer_instance(series.id, instance_date)
            if len(existing) >= 2:
                raise AlreadyRealizedError("This instance has already been realized.")

        exc = self.recurring.exception(kind, series.id, instance_date)
        modified = exc if exc is not None and exc.exception_type == ExceptionType.MODIFIED else None

        actual_date = occurred_at or (modified.modified_date if modified else None) or instance_date
        if amount is not None:
            actual_amount = to_money(amount)
        elif modified is not None and modified.modified_amount is not None:
            actual_amount = to_money(modified.modified_amount)
        else:
            actual_amount = to_money(series.amount)
        actual_description = (
            (description.strip() if description else None)
            or (modified.modified_description if modified else None)
            or series.description
        )

        if kind is SeriesKind.TRANSACTION:
            entries = [
                transaction_entry(
                    series, instance_date, occurred_at=actual_date, amount=actual_amount, description=actual_description
                )
            ]
        else:
            entries = transfer_legs(
                series,
                instance_date,
                occurred_at=actual_date,
                amount=actual_amount,
                description=actual_description,
                existing=existing,
            )
        for entry in entries:
            self.ledger.add(entry)
        self.uow.save_changes()
        for entry in entries:
            self.db.refresh(entry)
        logger.info("realized %s series %s at %s (%d entries)", kind.value, series.id, instance_date, len(entries))
        return entries

    # ===== helpers =====

    @staticmethod
    def _lifecycle_columns(pattern: RecurrencePattern, start_date: date, end_date: Optional[date]) -> dict[str, Any]:
        if end_date is not None and end_date < start_date:
            raise RecurrenceValidationError("End date must be on or after start date.")
        first = first_occurrence_on_or_after(pattern, start_date, start_date, end_date)
        return dict(
            **pattern_columns(pattern),
            start_date=start_date,
            end_date=end_date,
            next_occurrence=first or start_date,
            is_active=True,
        )

    def _set_active(self, kind: SeriesKind, series_id: int, active: bool) -> Optional[Series]:
        series = self.recurring.get(kind, series_id)
        if series is None:
            return None
        series.is_active = active
        self.uow.save_changes()
        self.db.refresh(series)
        logger.debug("%s %s series %s", "resumed" if active else "paused", kind.value, series.id)
        return series

    def _replace_exception(self, kind: SeriesKind, series_id: int, day: date, **fields: Any) -> SeriesException:
        existing = self.recurring.exception(kind, series_id, day)
        if existing is not None:
            self.recurring.remove_exception(existing)
        return self.recurring.add_exception(self.recurring.new_exception(kind, series_id, day, **fields))

    def _require_series(self, kind: SeriesKind, series_id: int) -> Series:
        series = self.recurring.get(kind, series_id)
        if series is None:
            label = "Recurring transfer" if kind is SeriesKind.TRANSFER else "Recurring transaction"
            raise NotFoundError(f"{label} not found")
        return series

    def _require_account(self, account_id: int) -> models.Account:
        account = self.accounts.by_id(account_id)
        if account is None:
            raise NotFoundError(f"Account {account_id} not found")
        return account

    @staticmethod
    def _require_occurrence(series: Series, day: date) -> None:
        if not occurrences(series.pattern, series.start_date, series.end_date, day, day):
            raise RecurrenceValidationError("Date is not a scheduled occurrence for this series")
