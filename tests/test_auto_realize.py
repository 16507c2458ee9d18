from __future__ import annotations

import threading
from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker

from budget_calendar import models
from budget_calendar.core.errors import AutoRealizeError, OperationCancelled
from budget_calendar.repositories import SeriesKind
from budget_calendar.services import AutoRealizeService, RecurringService

TODAY = date(2026, 3, 10)
FRIDAY = 4


def _weekly_paycheck(db_session, account):
    return RecurringService(db_session).create_transaction_series(
        account_id=account.id,
        description="Paycheck",
        amount=Decimal("500"),
        start_date=date(2026, 1, 1),
        frequency="WEEKLY",
        day_of_week=FRIDAY,
    )


def _ledger(db_session):
    return db_session.query(models.Transaction).order_by(models.Transaction.occurred_at, models.Transaction.id).all()


def test_disabled_by_default(db_session, make_account):
    checking = make_account()
    _weekly_paycheck(db_session, checking)

    result = AutoRealizeService(db_session).realize_past_due(TODAY)

    assert result.count == 0
    assert _ledger(db_session) == []


def test_realizes_past_due_window_once(db_session, make_account, enable_auto_realize):
    checking = make_account()
    paycheck = _weekly_paycheck(db_session, checking)
    enable_auto_realize(30)

    first = AutoRealizeService(db_session).realize_past_due(TODAY)

    assert first.count == 4
    ledger = _ledger(db_session)
    assert [t.occurred_at for t in ledger] == [
        date(2026, 2, 13),
        date(2026, 2, 20),
        date(2026, 2, 27),
        date(2026, 3, 6),
    ]
    assert all(t.recurring_transaction_id == paycheck.id for t in ledger)
    assert [t.recurring_instance_date for t in ledger] == [t.occurred_at for t in ledger]
    assert sorted(first.transaction_ids) == sorted(t.id for t in ledger)

    second = AutoRealizeService(db_session).realize_past_due(TODAY)
    assert second.count == 0
    assert len(_ledger(db_session)) == 4


def test_today_is_never_realized(db_session, make_account, enable_auto_realize):
    checking = make_account()
    _weekly_paycheck(db_session, checking)
    enable_auto_realize(30)

    # Friday: that day's paycheck stays projected
    AutoRealizeService(db_session).realize_past_due(date(2026, 3, 6))

    assert date(2026, 3, 6) not in {t.occurred_at for t in _ledger(db_session)}


def test_skipped_and_modified_occurrences(db_session, make_account, enable_auto_realize):
    checking = make_account()
    paycheck = _weekly_paycheck(db_session, checking)
    service = RecurringService(db_session)
    service.skip_instance(SeriesKind.TRANSACTION, paycheck.id, date(2026, 2, 13))
    service.modify_instance(
        SeriesKind.TRANSACTION,
        paycheck.id,
        date(2026, 2, 20),
        amount=Decimal("650"),
        description="Paycheck + bonus",
        new_date=date(2026, 2, 19),
    )
    enable_auto_realize(30)

    result = AutoRealizeService(db_session).realize_past_due(TODAY)

    assert result.count == 3
    ledger = _ledger(db_session)
    bonus = ledger[0]
    assert bonus.occurred_at == date(2026, 2, 19)
    assert bonus.recurring_instance_date == date(2026, 2, 20)
    assert bonus.amount == Decimal("650.00")
    assert bonus.description == "Paycheck + bonus"
    assert date(2026, 2, 13) not in {t.recurring_instance_date for t in ledger}


def test_transfer_realizes_both_legs_with_shared_id(db_session, make_account, enable_auto_realize):
    checking = make_account("Checking")
    savings = make_account("Savings")
    RecurringService(db_session).create_transfer_series(
        source_account_id=checking.id,
        destination_account_id=savings.id,
        description="Savings",
        amount=Decimal("250"),
        start_date=date(2026, 1, 1),
        frequency="MONTHLY",
        day_of_month=1,
    )
    enable_auto_realize(30)

    result = AutoRealizeService(db_session).realize_past_due(TODAY)

    # Window Feb 8 .. Mar 9 holds only the Mar 1 occurrence
    assert result.count == 2
    source, destination = sorted(_ledger(db_session), key=lambda t: t.amount)
    assert (source.account_id, source.amount) == (checking.id, Decimal("-250.00"))
    assert (destination.account_id, destination.amount) == (savings.id, Decimal("250.00"))
    assert source.transfer_id == destination.transfer_id is not None
    assert source.transfer_direction is models.TransferDirection.SOURCE
    assert destination.transfer_direction is models.TransferDirection.DESTINATION


def test_partial_transfer_creates_only_missing_leg(db_session, make_account, add_txn, enable_auto_realize):
    checking = make_account("Checking")
    savings = make_account("Savings")
    transfer = RecurringService(db_session).create_transfer_series(
        source_account_id=checking.id,
        destination_account_id=savings.id,
        description="Savings",
        amount=Decimal("250"),
        start_date=date(2026, 1, 1),
        frequency="MONTHLY",
        day_of_month=1,
    )
    add_txn(
        checking,
        "-250",
        date(2026, 3, 1),
        recurring_transfer_id=transfer.id,
        recurring_transfer_instance_date=date(2026, 3, 1),
        transfer_id="existing-transfer",
        transfer_direction=models.TransferDirection.SOURCE,
    )
    enable_auto_realize(30)

    result = AutoRealizeService(db_session).realize_past_due(TODAY)

    assert result.count == 1
    created = db_session.get(models.Transaction, result.transaction_ids[0])
    assert created.transfer_direction is models.TransferDirection.DESTINATION
    assert created.transfer_id == "existing-transfer"
    assert created.account_id == savings.id


def test_account_filter_limits_series(db_session, make_account, enable_auto_realize):
    checking = make_account("Checking")
    other = make_account("Other")
    _weekly_paycheck(db_session, checking)
    _weekly_paycheck(db_session, other)
    enable_auto_realize(30)

    result = AutoRealizeService(db_session).realize_past_due(TODAY, account_id=other.id)

    assert result.count == 4
    assert {t.account_id for t in _ledger(db_session)} == {other.id}


def test_cancellation_discards_the_batch(db_session, make_account, enable_auto_realize):
    checking = make_account()
    _weekly_paycheck(db_session, checking)
    enable_auto_realize(30)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(OperationCancelled):
        AutoRealizeService(db_session).realize_past_due(TODAY, cancel=cancel)
    assert _ledger(db_session) == []


def test_lost_race_twice_returns_zero(db_session, make_account, enable_auto_realize, monkeypatch):
    checking = make_account()
    _weekly_paycheck(db_session, checking)
    enable_auto_realize(30)
    service = AutoRealizeService(db_session)
    calls = []

    def _conflict(*args, **kwargs):
        calls.append(args)
        raise IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))

    monkeypatch.setattr(service, "_realize_window", _conflict)

    result = service.realize_past_due(TODAY)

    assert result.count == 0
    assert len(calls) == 2


def test_concurrent_realizer_wins_and_duplicate_insert_is_absorbed(
    db_session, engine, make_account, enable_auto_realize, monkeypatch
):
    checking = make_account()
    _weekly_paycheck(db_session, checking)
    enable_auto_realize(30)
    other = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    real_flush = db_session.flush
    winner = []

    def _flush_after_other_session_commits(*args, **kwargs):
        # The other session commits the same occurrences after our reads
        if not winner:
            winner.append(AutoRealizeService(other).realize_past_due(TODAY))
        return real_flush(*args, **kwargs)

    monkeypatch.setattr(db_session, "flush", _flush_after_other_session_commits)
    try:
        result = AutoRealizeService(db_session).realize_past_due(TODAY)
    finally:
        other.close()

    assert winner[0].count == 4
    assert result.count == 0
    assert result.transaction_ids == []
    ledger = _ledger(db_session)
    assert len(ledger) == 4
    assert len({t.recurring_instance_date for t in ledger}) == 4


def test_storage_failure_rolls_back_and_raises(db_session, make_account, enable_auto_realize, monkeypatch):
    checking = make_account()
    _weekly_paycheck(db_session, checking)
    enable_auto_realize(30)
    service = AutoRealizeService(db_session)

    def _broken(*args, **kwargs):
        raise OperationalError("INSERT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(service, "_realize_window", _broken)

    with pytest.raises(AutoRealizeError):
        service.realize_past_due(TODAY)
    assert _ledger(db_session) == []
