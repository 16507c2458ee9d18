from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from threading import Event
from typing import Optional

from sqlalchemy.orm import Session

from ..core.cancellation import check_cancelled
from ..core.config import settings
from ..repositories import AccountRepository, LedgerRepository, RecurringRepository, SeriesKind, to_money
from ..schemas import (
    DailyBalanceSummary,
    MoneyOut,
    TransactionList,
    TransactionListItem,
    TransactionListSummary,
)
from .balance_service import BalanceCalculationService
from .day_detail_service import projected_item_fields, realized_item_fields
from .projector import InstanceProjector


def _money(amount: Decimal) -> MoneyOut:
    return MoneyOut(currency=settings.DISPLAY_CURRENCY, amount=amount)


class TransactionListService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.ledger = LedgerRepository(db)
        self.recurring = RecurringRepository(db)
        self.accounts = AccountRepository(db)
        self.balances = BalanceCalculationService(db)
        self.projector = InstanceProjector(db)

    def account_transaction_list(
        self,
        account_id: int,
        start_date: date,
        end_date: date,
        include_recurring: bool = True,
        *,
        cancel: Optional[Event] = None,
    ) -> Optional[TransactionList]:
        """One account's ledger for a range, with projected items and running balances.

        Returns ``None`` when the account does not exist. Items come back
        newest first; running balances are accumulated oldest first from the
        balance before ``start_date``.
        """
        check_cancelled(cancel, "transaction list")
        account = self.accounts.by_id(account_id)
        if account is None:
            return None
        names = {a.id: a.name for a in self.accounts.all()}

        check_cancelled(cancel, "transaction list")
        items = [
            TransactionListItem(date=txn.occurred_at, **realized_item_fields(txn, names))
            for txn in self.ledger.by_date_range(start_date, end_date, account_id)
        ]

        if include_recurring:
            check_cancelled(cancel, "transaction list")
            series = [
                *self.recurring.active_series(SeriesKind.TRANSACTION, account_id),
                *self.recurring.active_series(SeriesKind.TRANSFER, account_id),
            ]
            projected = self.projector.instances_in_range(series, start_date, end_date, account_id, cancel=cancel)
            for day, instances in projected.items():
                items.extend(TransactionListItem(date=day, **projected_item_fields(inst)) for inst in instances)

        check_cancelled(cancel, "transaction list")
        starting_balance = self.balances.opening_balance_for_date(start_date, account_id, cancel=cancel)

        ascending = sorted(items, key=lambda i: (i.date, i.created_at or datetime.min))
        running = starting_balance
        for item in ascending:
            running += item.amount.amount
            item.running_balance = _money(running)

        daily = _daily_balances(ascending, starting_balance)
        newest_first = sorted(items, key=lambda i: (i.date, i.created_at or datetime.min), reverse=True)

        zero = Decimal("0")
        total = sum((i.amount.amount for i in items), zero)
        income = sum((i.amount.amount for i in items if i.amount.amount > 0), zero)
        expenses = sum((i.amount.amount for i in items if i.amount.amount < 0), zero)
        initial = to_money(account.initial_balance)

        return TransactionList(
            account_id=account.id,
            account_name=account.name,
            start_date=start_date,
            end_date=end_date,
            initial_balance=MoneyOut(currency=account.currency, amount=initial),
            initial_balance_date=account.initial_balance_date,
            starting_balance=_money(starting_balance),
            items=newest_first,
            daily_balances=daily,
            summary=TransactionListSummary(
                total_amount=_money(total),
                total_income=_money(income),
                total_expenses=_money(expenses),
                transaction_count=sum(1 for i in items if i.type == "transaction"),
                recurring_count=sum(1 for i in items if i.type != "transaction"),
                current_balance=_money(initial + total),
            ),
        )


def _daily_balances(ascending: list[TransactionListItem], starting_balance: Decimal) -> list[DailyBalanceSummary]:
    groups: dict[date, list[TransactionListItem]] = defaultdict(list)
    for item in ascending:
        groups[item.date].append(item)

    result: list[DailyBalanceSummary] = []
    balance = starting_balance
    for day in sorted(groups):
        day_total = sum((i.amount.amount for i in groups[day]), Decimal("0"))
        start = balance
        balance += day_total
        result.append(
            DailyBalanceSummary(
                date=day,
                starting_balance=_money(start),
                ending_balance=_money(balance),
                day_total=_money(day_total),
                transaction_count=len(groups[day]),
            )
        )
    result.reverse()
    return result
