from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional

from .. import models
from ..domain.overlay import ExceptionType
from ..repositories import LedgerRepository, RecurringRepository, Series, SeriesKind, to_money


def transaction_entry(
    series: models.RecurringTransaction,
    instance_date: date,
    *,
    occurred_at: date,
    amount: Decimal,
    description: str,
) -> models.Transaction:
    """Ledger entry realizing one occurrence of a transaction series."""
    return models.Transaction(
        account_id=series.account_id,
        amount=to_money(amount),
        currency=series.currency,
        occurred_at=occurred_at,
        description=description,
        recurring_transaction_id=series.id,
        recurring_instance_date=instance_date,
    )


def transfer_legs(
    series: models.RecurringTransfer,
    instance_date: date,
    *,
    occurred_at: date,
    amount: Decimal,
    description: str,
    existing: Optional[list[models.Transaction]] = None,
) -> list[models.Transaction]:
    """Missing legs of a transfer occurrence, sharing one ``transfer_id``.

    When one leg was realized earlier its ``transfer_id`` is reused and only
    the other leg is returned.
    """
    existing = existing or []
    have = {t.transfer_direction for t in existing}
    transfer_id = next((t.transfer_id for t in existing if t.transfer_id), None) or str(uuid.uuid4())
    magnitude = abs(to_money(amount))

    legs: list[models.Transaction] = []
    for direction, account_id, signed in (
        (models.TransferDirection.SOURCE, series.source_account_id, -magnitude),
        (models.TransferDirection.DESTINATION, series.destination_account_id, magnitude),
    ):
        if direction in have:
            continue
        legs.append(
            models.Transaction(
                account_id=account_id,
                amount=signed,
                currency=series.currency,
                occurred_at=occurred_at,
                description=description,
                recurring_transfer_id=series.id,
                recurring_transfer_instance_date=instance_date,
                transfer_id=transfer_id,
                transfer_direction=direction,
            )
        )
    return legs


@dataclass(frozen=True)
class PendingOccurrence:
    """An occurrence due for posting, with any Modified overrides resolved."""

    kind: SeriesKind
    series: Series
    instance_date: date
    occurred_at: date
    amount: Decimal
    description: str
    existing: tuple[models.Transaction, ...] = ()

    def entries(self) -> list[models.Transaction]:
        if self.kind is SeriesKind.TRANSACTION:
            return [
                transaction_entry(
                    self.series,
                    self.instance_date,
                    occurred_at=self.occurred_at,
                    amount=self.amount,
                    description=self.description,
                )
            ]
        return transfer_legs(
            self.series,
            self.instance_date,
            occurred_at=self.occurred_at,
            amount=self.amount,
            description=self.description,
            existing=list(self.existing),
        )


def pending_occurrence(
    ledger: LedgerRepository,
    recurring: RecurringRepository,
    kind: SeriesKind,
    series: Series,
    day: date,
) -> Optional[PendingOccurrence]:
    """Resolve the scheduled occurrence ``day`` of ``series``.

    Returns None when it is already in the ledger (both legs, for a transfer)
    or is Skipped.
    """
    existing: list[models.Transaction] = []
    if kind is SeriesKind.TRANSACTION:
        if ledger.by_recurring_instance(series.id, day) is not None:
            return None
    else:
        existing = ledger.by_recurring_transfer_instance(series.id, day)
        if len(existing) >= 2:
            return None

    exc = recurring.exception(kind, series.id, day)
    if exc is not None and exc.exception_type == ExceptionType.SKIPPED:
        return None

    amount = series.amount
    description = series.description
    occurred_at = day
    if exc is not None:
        if exc.modified_amount is not None:
            amount = exc.modified_amount
        if exc.modified_description is not None:
            description = exc.modified_description
        if exc.modified_date is not None:
            occurred_at = exc.modified_date

    return PendingOccurrence(
        kind=kind,
        series=series,
        instance_date=day,
        occurred_at=occurred_at,
        amount=to_money(amount),
        description=description,
        existing=tuple(existing),
    )
