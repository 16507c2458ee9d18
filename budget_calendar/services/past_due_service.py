from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from threading import Event
from typing import Iterable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..core.cancellation import check_cancelled
from ..core.config import settings
from ..core.errors import AlreadyRealizedError, OperationCancelled
from ..core.logging import get_logger
from ..domain.recurrence import occurrences
from ..repositories import (
    AccountRepository,
    LedgerRepository,
    RecurringRepository,
    SeriesKind,
    SettingsRepository,
    UnitOfWork,
)
from ..schemas import (
    BatchRealizeFailure,
    BatchRealizeItem,
    BatchRealizeResult,
    MoneyOut,
    PastDueItem,
    PastDueSummary,
)
from .realization import PendingOccurrence, pending_occurrence

logger = get_logger(__name__)

_ITEM_TYPES = {
    SeriesKind.TRANSACTION: "recurring-transaction",
    SeriesKind.TRANSFER: "recurring-transfer",
}
_KIND_BY_TYPE = {v: k for k, v in _ITEM_TYPES.items()}


class PastDueService:
    """Review and hand-pick overdue recurring occurrences.

    Same window and dedup rules as auto-realize, but listing never writes and
    realization only covers the items the caller chose.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self.ledger = LedgerRepository(db)
        self.recurring = RecurringRepository(db)
        self.accounts = AccountRepository(db)
        self.settings = SettingsRepository(db)
        self.uow = UnitOfWork(db)

    def past_due_items(
        self,
        today: date,
        account_id: Optional[int] = None,
        *,
        cancel: Optional[Event] = None,
    ) -> PastDueSummary:
        lookback = self.settings.get().past_due_lookback_days
        window_start = today - timedelta(days=lookback)
        window_end = today - timedelta(days=1)
        names = {a.id: a.name for a in self.accounts.all()}

        items: list[PastDueItem] = []
        for kind in (SeriesKind.TRANSACTION, SeriesKind.TRANSFER):
            check_cancelled(cancel, "past-due")
            for series in self.recurring.active_series(kind, account_id):
                for day in occurrences(series.pattern, series.start_date, series.end_date, window_start, window_end):
                    check_cancelled(cancel, "past-due")
                    pending = pending_occurrence(self.ledger, self.recurring, kind, series, day)
                    if pending is not None:
                        items.append(_item(pending, today, names))

        items.sort(key=lambda i: (i.instance_date, i.type, i.id))
        if not items:
            return PastDueSummary(items=[], total_count=0)
        total = sum((i.amount.amount for i in items), Decimal("0"))
        return PastDueSummary(
            items=items,
            total_count=len(items),
            oldest_date=items[0].instance_date,
            total_amount=MoneyOut(currency=settings.DISPLAY_CURRENCY, amount=total),
        )

    def realize_batch(
        self,
        items: Iterable[BatchRealizeItem],
        *,
        cancel: Optional[Event] = None,
    ) -> BatchRealizeResult:
        """Post the chosen occurrences in one commit.

        Items that are unknown, not scheduled, already realized, skipped or
        repeated are reported as failures; the rest are committed together.
        """
        created: list[models.Transaction] = []
        failures: list[BatchRealizeFailure] = []
        seen: set[tuple[SeriesKind, int, date]] = set()
        realized = 0

        try:
            for item in items:
                check_cancelled(cancel, "batch realize")
                error = self._stage(item, seen, created)
                if error is None:
                    realized += 1
                else:
                    failures.append(BatchRealizeFailure(**item.model_dump(), error=error))
            if created:
                self.db.flush()
                self.uow.save_changes()
        except OperationCancelled:
            self.uow.rollback()
            raise
        except IntegrityError as exc:
            self.uow.rollback()
            logger.warning("batch realize lost a race; batch rolled back")
            raise AlreadyRealizedError("An item was realized concurrently; nothing was committed.") from exc
        except SQLAlchemyError:
            self.uow.rollback()
            raise

        logger.info("batch realized %d items (%d ledger entries, %d failures)", realized, len(created), len(failures))
        return BatchRealizeResult(
            success_count=realized,
            failure_count=len(failures),
            failures=failures,
            transaction_ids=[t.id for t in created],
        )

    def _stage(
        self,
        item: BatchRealizeItem,
        seen: set[tuple[SeriesKind, int, date]],
        created: list[models.Transaction],
    ) -> Optional[str]:
        kind = _KIND_BY_TYPE[item.type]
        key = (kind, item.id, item.instance_date)
        if key in seen:
            return "Duplicate item in batch."
        seen.add(key)

        series = self.recurring.get(kind, item.id)
        if series is None:
            return "Recurring transfer not found." if kind is SeriesKind.TRANSFER else "Recurring transaction not found."
        day = item.instance_date
        if not occurrences(series.pattern, series.start_date, series.end_date, day, day):
            return "Date is not a scheduled occurrence for this series."
        pending = pending_occurrence(self.ledger, self.recurring, kind, series, day)
        if pending is None:
            return "Occurrence is already realized or skipped."

        entries = pending.entries()
        for entry in entries:
            self.ledger.add(entry)
        created.extend(entries)
        return None


def _item(pending: PendingOccurrence, today: date, names: dict[int, str]) -> PastDueItem:
    series = pending.series
    fields = dict(
        id=series.id,
        type=_ITEM_TYPES[pending.kind],
        instance_date=pending.instance_date,
        days_past_due=(today - pending.instance_date).days,
        description=pending.description,
        amount=MoneyOut(currency=series.currency, amount=pending.amount),
    )
    if pending.kind is SeriesKind.TRANSFER:
        fields.update(
            source_account_id=series.source_account_id,
            source_account_name=names.get(series.source_account_id),
            destination_account_id=series.destination_account_id,
            destination_account_name=names.get(series.destination_account_id),
        )
    else:
        fields.update(account_id=series.account_id, account_name=names.get(series.account_id))
    return PastDueItem(**fields)
