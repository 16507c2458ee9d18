from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal
from threading import Event
from typing import Optional

from sqlalchemy.orm import Session

from ..core.cancellation import check_cancelled
from ..core.config import settings
from ..core.errors import RecurrenceValidationError
from ..core.logging import get_logger
from ..repositories import LedgerRepository, RecurringRepository, SeriesKind
from ..schemas import CalendarDay, CalendarGrid, CalendarMonthSummary, MoneyOut
from .auto_realize_service import AutoRealizeService
from .balance_service import BalanceCalculationService
from .projector import InstanceProjector

logger = get_logger(__name__)

GRID_DAYS = 42  # 6 weeks


def grid_start_for(year: int, month: int) -> date:
    """The Sunday on or before the 1st of the month."""
    first = date(year, month, 1)
    # date.weekday(): Monday=0 .. Sunday=6
    return first - timedelta(days=(first.weekday() + 1) % 7)


def _money(amount: Decimal) -> MoneyOut:
    return MoneyOut(currency=settings.DISPLAY_CURRENCY, amount=amount)


class CalendarGridService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.ledger = LedgerRepository(db)
        self.recurring = RecurringRepository(db)
        self.balances = BalanceCalculationService(db)
        self.projector = InstanceProjector(db)
        self.auto_realize = AutoRealizeService(db)

    def build_grid(
        self,
        year: int,
        month: int,
        account_id: Optional[int] = None,
        *,
        today: date,
        cancel: Optional[Event] = None,
    ) -> CalendarGrid:
        """Build the 42-day grid for ``year``/``month``.

        Viewing a grid is also what realizes past-due occurrences, so the
        auto-realize pass runs before anything is read.
        """
        if not 1 <= month <= 12:
            raise RecurrenceValidationError(f"Invalid month: {month}")
        if not 1 <= year <= 9999:
            raise RecurrenceValidationError(f"Invalid year: {year}")

        grid_start = grid_start_for(year, month)
        grid_end = grid_start + timedelta(days=GRID_DAYS - 1)

        self.auto_realize.realize_past_due(today, account_id, cancel=cancel)

        check_cancelled(cancel, "calendar grid")
        daily_totals = self.ledger.daily_totals(year, month, account_id)
        check_cancelled(cancel, "calendar grid")
        txn_series = self.recurring.active_series(SeriesKind.TRANSACTION, account_id)
        check_cancelled(cancel, "calendar grid")
        transfer_series = self.recurring.active_series(SeriesKind.TRANSFER, account_id)

        projected = self.projector.instances_in_range(
            [*txn_series, *transfer_series], grid_start, grid_end, account_id, cancel=cancel
        )

        days: list[CalendarDay] = []
        for i in range(GRID_DAYS):
            day = grid_start + timedelta(days=i)
            total = daily_totals.get(day)
            instances = projected.get(day, [])
            actual = total.amount if total else Decimal("0")
            projected_amount = sum((inst.amount for inst in instances), Decimal("0"))
            days.append(
                CalendarDay(
                    date=day,
                    is_current_month=(day.year == year and day.month == month),
                    is_today=(day == today),
                    actual_total=_money(actual),
                    projected_total=_money(projected_amount),
                    combined_total=_money(actual + projected_amount),
                    transaction_count=total.count if total else 0,
                    recurring_count=len(instances),
                    has_recurring=bool(instances),
                )
            )

        check_cancelled(cancel, "calendar grid")
        starting_balance = self.balances.opening_balance_for_date(grid_start, account_id, cancel=cancel)
        opening_in_grid = self.balances.initial_balances_in_range(grid_start, grid_end, account_id)

        running = starting_balance
        for day in days:
            running += opening_in_grid.get(day.date, Decimal("0"))
            running += day.combined_total.amount
            day.end_of_day_balance = _money(running)
            day.is_balance_negative = running < 0

        logger.debug("built grid %04d-%02d (account=%s)", year, month, account_id)
        return CalendarGrid(
            year=year,
            month=month,
            days=days,
            month_summary=_month_summary(days),
            starting_balance=_money(starting_balance),
        )


def _month_summary(days: list[CalendarDay]) -> CalendarMonthSummary:
    current = [d for d in days if d.is_current_month]
    zero = Decimal("0")
    income = sum((d.actual_total.amount for d in current if d.actual_total.amount > 0), zero)
    expenses = sum((d.actual_total.amount for d in current if d.actual_total.amount < 0), zero)
    projected_income = sum((d.projected_total.amount for d in current if d.projected_total.amount > 0), zero)
    projected_expenses = sum((d.projected_total.amount for d in current if d.projected_total.amount < 0), zero)
    return CalendarMonthSummary(
        total_income=_money(income),
        total_expenses=_money(expenses),
        net_change=_money(income + expenses),
        projected_income=_money(projected_income),
        projected_expenses=_money(projected_expenses),
    )
