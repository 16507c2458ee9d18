from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from budget_calendar import models
from budget_calendar.core.errors import AlreadyRealizedError, NotFoundError, RecurrenceValidationError
from budget_calendar.domain.overlay import ExceptionType
from budget_calendar.domain.recurrence import RecurrenceFrequency
from budget_calendar.repositories import SeriesKind
from budget_calendar.services import RecurringService

TXN = SeriesKind.TRANSACTION
XFER = SeriesKind.TRANSFER


def _rent(service, account, **overrides):
    fields = dict(
        account_id=account.id,
        description="  Rent  ",
        amount=Decimal("-1200"),
        start_date=date(2026, 1, 10),
        frequency="monthly",
        day_of_month=15,
    )
    fields.update(overrides)
    return service.create_transaction_series(**fields)


def test_create_sets_columns_and_cursor(db_session, make_account):
    checking = make_account()
    series = _rent(RecurringService(db_session), checking)

    assert series.description == "Rent"
    assert series.frequency is RecurrenceFrequency.MONTHLY
    assert series.next_occurrence == date(2026, 1, 15)
    assert series.is_active is True
    assert series.pattern_label == "Monthly on day 15"


def test_create_rejects_bad_input(db_session, make_account):
    checking = make_account()
    service = RecurringService(db_session)

    with pytest.raises(NotFoundError):
        _rent(service, checking, account_id=999)
    with pytest.raises(RecurrenceValidationError):
        _rent(service, checking, frequency="weekly")
    with pytest.raises(RecurrenceValidationError):
        _rent(service, checking, end_date=date(2025, 12, 31))
    with pytest.raises(RecurrenceValidationError):
        service.create_transfer_series(
            source_account_id=checking.id,
            destination_account_id=checking.id,
            description="Loop",
            amount=Decimal("10"),
            start_date=date(2026, 1, 1),
            frequency="MONTHLY",
        )


def test_skip_next_records_exception_and_advances(db_session, make_account):
    checking = make_account()
    service = RecurringService(db_session)
    series = _rent(service, checking)

    service.skip_next(TXN, series.id)

    assert series.next_occurrence == date(2026, 2, 15)
    assert series.last_generated_date == date(2026, 1, 15)
    instances = service.list_instances(TXN, series.id, date(2026, 1, 1), date(2026, 2, 28))
    assert [(i.scheduled_date, i.is_skipped) for i in instances] == [
        (date(2026, 1, 15), True),
        (date(2026, 2, 15), False),
    ]


def test_skip_next_past_end_date_deactivates(db_session, make_account):
    checking = make_account()
    service = RecurringService(db_session)
    series = _rent(service, checking, end_date=date(2026, 1, 31))

    service.skip_next(TXN, series.id)

    assert series.is_active is False


def test_modify_then_skip_replaces_exception(db_session, make_account):
    checking = make_account()
    service = RecurringService(db_session)
    series = _rent(service, checking)

    modified = service.modify_instance(TXN, series.id, date(2026, 2, 15), amount=Decimal("-1250"), description=" ")
    assert modified.exception_type == ExceptionType.MODIFIED
    assert modified.modified_amount == Decimal("-1250.00")
    assert modified.modified_description is None

    skipped = service.skip_instance(TXN, series.id, date(2026, 2, 15))
    assert skipped.exception_type == ExceptionType.SKIPPED
    assert db_session.query(models.RecurringTransactionException).count() == 1


def test_modify_requires_a_change_and_a_scheduled_date(db_session, make_account):
    checking = make_account()
    service = RecurringService(db_session)
    series = _rent(service, checking)

    with pytest.raises(RecurrenceValidationError):
        service.modify_instance(TXN, series.id, date(2026, 2, 15))
    with pytest.raises(RecurrenceValidationError):
        service.modify_instance(TXN, series.id, date(2026, 2, 14), amount=Decimal("1"))
    with pytest.raises(NotFoundError):
        service.skip_instance(TXN, 999, date(2026, 2, 15))


def test_update_from_date_drops_later_exceptions_and_reanchors(db_session, make_account):
    checking = make_account()
    service = RecurringService(db_session)
    series = _rent(service, checking)
    service.skip_instance(TXN, series.id, date(2026, 1, 15))
    service.skip_instance(TXN, series.id, date(2026, 3, 15))

    updated = service.update(TXN, series.id, from_date=date(2026, 2, 1), day_of_month=1, amount=Decimal("-1300"))

    assert updated.day_of_month == 1
    assert updated.amount == Decimal("-1300.00")
    assert updated.next_occurrence == date(2026, 2, 1)
    remaining = db_session.query(models.RecurringTransactionException).all()
    assert [e.original_date for e in remaining] == [date(2026, 1, 15)]


def test_update_frequency_resets_interval(db_session, make_account):
    checking = make_account()
    service = RecurringService(db_session)
    series = _rent(service, checking, interval=3)

    updated = service.update(TXN, series.id, frequency="WEEKLY", day_of_week="mon")

    assert updated.frequency is RecurrenceFrequency.WEEKLY
    assert updated.interval == 1
    assert updated.day_of_week == 0


def test_pause_resume_and_missing(db_session, make_account):
    checking = make_account()
    service = RecurringService(db_session)
    series = _rent(service, checking)

    assert service.pause(TXN, series.id).is_active is False
    assert service.resume(TXN, series.id).is_active is True
    assert service.pause(TXN, 999) is None
    assert service.update(TXN, 999, amount=Decimal("1")) is None


def test_realize_instance_once(db_session, make_account):
    checking = make_account()
    service = RecurringService(db_session)
    series = _rent(service, checking)
    service.modify_instance(TXN, series.id, date(2026, 2, 15), description="Rent (Feb)")

    entries = service.realize_instance(TXN, series.id, date(2026, 2, 15), occurred_at=date(2026, 2, 16))

    assert len(entries) == 1
    txn = entries[0]
    assert txn.occurred_at == date(2026, 2, 16)
    assert txn.recurring_instance_date == date(2026, 2, 15)
    assert txn.amount == Decimal("-1200.00")
    assert txn.description == "Rent (Feb)"
    with pytest.raises(AlreadyRealizedError):
        service.realize_instance(TXN, series.id, date(2026, 2, 15))

    instances = service.list_instances(TXN, series.id, date(2026, 2, 1), date(2026, 2, 28))
    assert instances[0].realized_transaction_ids == [txn.id]


def test_realize_transfer_creates_paired_legs(db_session, make_account):
    checking = make_account("Checking")
    savings = make_account("Savings")
    service = RecurringService(db_session)
    transfer = service.create_transfer_series(
        source_account_id=checking.id,
        destination_account_id=savings.id,
        description="Savings",
        amount=Decimal("75"),
        start_date=date(2026, 1, 1),
        frequency="BIWEEKLY",
        day_of_week="friday",
    )

    legs = service.realize_instance(XFER, transfer.id, date(2026, 1, 2), amount=Decimal("80"))

    assert sorted(leg.amount for leg in legs) == [Decimal("-80.00"), Decimal("80.00")]
    assert len({leg.transfer_id for leg in legs}) == 1
    with pytest.raises(AlreadyRealizedError):
        service.realize_instance(XFER, transfer.id, date(2026, 1, 2))


def test_delete_keeps_realized_entries(db_session, make_account):
    checking = make_account()
    service = RecurringService(db_session)
    series = _rent(service, checking)
    txn = service.realize_instance(TXN, series.id, date(2026, 1, 15))[0]
    service.skip_instance(TXN, series.id, date(2026, 2, 15))

    assert service.delete(TXN, series.id) is True
    assert service.delete(TXN, series.id) is False

    db_session.expire_all()
    kept = db_session.get(models.Transaction, txn.id)
    assert kept is not None
    assert kept.recurring_transaction_id is None
    assert db_session.query(models.RecurringTransactionException).count() == 0
