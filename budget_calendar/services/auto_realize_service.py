from __future__ import annotations

from datetime import date, timedelta
from threading import Event
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import models
from ..core.cancellation import check_cancelled
from ..core.errors import AutoRealizeError, OperationCancelled
from ..core.logging import get_logger
from ..domain.recurrence import occurrences
from ..repositories import (
    LedgerRepository,
    RecurringRepository,
    SeriesKind,
    SettingsRepository,
    UnitOfWork,
)
from ..schemas import AutoRealizeResult
from .realization import pending_occurrence

logger = get_logger(__name__)


class AutoRealizeService:
    """Turn past-due projected occurrences into ledger entries, exactly once.

    Runs only when ``auto_realize_past_due_items`` is enabled. The window is
    ``[today - past_due_lookback_days, today - 1]``. Everything created in a
    pass is committed together or not at all.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self.ledger = LedgerRepository(db)
        self.recurring = RecurringRepository(db)
        self.settings = SettingsRepository(db)
        self.uow = UnitOfWork(db)

    def realize_past_due(
        self,
        today: date,
        account_id: Optional[int] = None,
        *,
        cancel: Optional[Event] = None,
    ) -> AutoRealizeResult:
        cfg = self.settings.get()
        if not cfg.auto_realize_past_due_items:
            return AutoRealizeResult()

        window_start = today - timedelta(days=cfg.past_due_lookback_days)
        window_end = today - timedelta(days=1)

        # A unique-key violation means another caller realized the same
        # occurrence first: roll back and recompute once against fresh state.
        for attempt in (1, 2):
            try:
                created = self._realize_window(window_start, window_end, account_id, cancel)
                if not created:
                    return AutoRealizeResult()
                self.uow.save_changes()
            except OperationCancelled:
                self.uow.rollback()
                logger.info("auto-realize cancelled; pending entries discarded")
                raise
            except IntegrityError:
                self.uow.rollback()
                logger.warning("auto-realize race on attempt %d (account=%s); batch rolled back", attempt, account_id)
                continue
            except SQLAlchemyError as exc:
                self.uow.rollback()
                logger.error("auto-realize failed; batch rolled back: %s", exc)
                raise AutoRealizeError("Auto-realize failed; no entries were committed.") from exc

            logger.info(
                "auto-realized %d ledger entries for %s..%s (account=%s)",
                len(created), window_start, window_end, account_id,
            )
            return AutoRealizeResult(count=len(created), transaction_ids=[t.id for t in created])

        # Lost the race twice: the other caller owns these occurrences.
        return AutoRealizeResult()

    def _realize_window(
        self,
        window_start: date,
        window_end: date,
        account_id: Optional[int],
        cancel: Optional[Event],
    ) -> list[models.Transaction]:
        created: list[models.Transaction] = []
        for kind in (SeriesKind.TRANSACTION, SeriesKind.TRANSFER):
            check_cancelled(cancel, "auto-realize")
            for series in self.recurring.active_series(kind, account_id):
                for day in occurrences(series.pattern, series.start_date, series.end_date, window_start, window_end):
                    check_cancelled(cancel, "auto-realize")
                    created.extend(self._realize_occurrence(kind, series, day))
        if created:
            # Surface constraint violations here so the whole batch fails together.
            self.db.flush()
        return created

    def _realize_occurrence(self, kind: SeriesKind, series, day: date) -> list[models.Transaction]:
        pending = pending_occurrence(self.ledger, self.recurring, kind, series, day)
        if pending is None:
            return []
        entries = pending.entries()
        for entry in entries:
            self.ledger.add(entry)
        return entries
