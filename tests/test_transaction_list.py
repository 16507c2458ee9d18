from __future__ import annotations

from datetime import date
from decimal import Decimal

from budget_calendar.services import RecurringService, TransactionListService

FEB_1 = date(2026, 2, 1)
FEB_28 = date(2026, 2, 28)


def _setup(db_session, make_account, add_txn):
    checking = make_account("Checking", "1000", date(2026, 1, 1))
    add_txn(checking, "-100", date(2026, 1, 15), "Before range")
    add_txn(checking, "-20", date(2026, 2, 3), "Lunch")
    RecurringService(db_session).create_transaction_series(
        account_id=checking.id,
        description="Phone",
        amount=Decimal("-50"),
        start_date=date(2026, 1, 1),
        frequency="MONTHLY",
        day_of_month=10,
    )
    return checking


def test_items_newest_first_with_running_balance(db_session, make_account, add_txn):
    checking = _setup(db_session, make_account, add_txn)

    result = TransactionListService(db_session).account_transaction_list(checking.id, FEB_1, FEB_28)

    assert result.account_name == "Checking"
    assert result.starting_balance.amount == Decimal("900.00")
    assert [(i.date, i.type) for i in result.items] == [
        (date(2026, 2, 10), "recurring"),
        (date(2026, 2, 3), "transaction"),
    ]
    assert [i.running_balance.amount for i in result.items] == [Decimal("830.00"), Decimal("880.00")]


def test_daily_balances_and_summary(db_session, make_account, add_txn):
    checking = _setup(db_session, make_account, add_txn)

    result = TransactionListService(db_session).account_transaction_list(checking.id, FEB_1, FEB_28)

    newest, oldest = result.daily_balances
    assert oldest.date == date(2026, 2, 3)
    assert (oldest.starting_balance.amount, oldest.ending_balance.amount) == (Decimal("900.00"), Decimal("880.00"))
    assert newest.date == date(2026, 2, 10)
    assert newest.day_total.amount == Decimal("-50.00")
    assert newest.transaction_count == 1

    summary = result.summary
    assert summary.total_amount.amount == Decimal("-70.00")
    assert summary.total_expenses.amount == Decimal("-70.00")
    assert summary.total_income.amount == Decimal("0")
    assert summary.transaction_count == 1
    assert summary.recurring_count == 1
    assert summary.current_balance.amount == Decimal("930.00")


def test_without_recurring(db_session, make_account, add_txn):
    checking = _setup(db_session, make_account, add_txn)

    result = TransactionListService(db_session).account_transaction_list(
        checking.id, FEB_1, FEB_28, include_recurring=False
    )

    assert [i.type for i in result.items] == ["transaction"]
    assert result.summary.recurring_count == 0


def test_unknown_account_returns_none(db_session):
    assert TransactionListService(db_session).account_transaction_list(999, FEB_1, FEB_28) is None
