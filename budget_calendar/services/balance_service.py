from __future__ import annotations

from collections import defaultdict
from datetime import date, timedelta
from decimal import Decimal
from threading import Event
from typing import Optional

from sqlalchemy.orm import Session

from .. import models
from ..core.cancellation import check_cancelled
from ..repositories import AccountRepository, to_money


class BalanceCalculationService:
    """Opening/closing balances derived from initial balances plus realized entries."""

    def __init__(self, db: Session) -> None:
        self.db = db
        self.accounts = AccountRepository(db)

    def opening_balance_for_date(
        self, day: date, account_id: Optional[int] = None, *, cancel: Optional[Event] = None
    ) -> Decimal:
        """Balance at the start of ``day``.

        Only accounts whose initial balance date is strictly before ``day``
        contribute; their realized entries in ``[initial_balance_date, day - 1]``
        are added. Accounts opening on or after ``day`` are handled by
        ``initial_balances_in_range``.
        """
        total = Decimal("0")
        for account in self._accounts(account_id):
            if account.initial_balance_date >= day:
                continue
            check_cancelled(cancel, "opening balance")
            total += to_money(account.initial_balance)
            total += self.accounts.sum_between(account.id, account.initial_balance_date, day - timedelta(days=1))
        return to_money(total)

    def initial_balances_in_range(
        self, from_date: date, to_date: date, account_id: Optional[int] = None
    ) -> dict[date, Decimal]:
        """Initial balances of accounts opening inside the window, summed per day."""
        result: dict[date, Decimal] = defaultdict(lambda: Decimal("0"))
        for account in self._accounts(account_id):
            if from_date <= account.initial_balance_date <= to_date:
                result[account.initial_balance_date] += to_money(account.initial_balance)
        return dict(result)

    def _accounts(self, account_id: Optional[int]) -> list[models.Account]:
        if account_id is None:
            return self.accounts.all()
        account = self.accounts.by_id(account_id)
        return [account] if account else []
