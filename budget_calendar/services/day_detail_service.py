from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from threading import Event
from typing import Any, Optional

from sqlalchemy.orm import Session

from .. import models
from ..core.cancellation import check_cancelled
from ..core.config import settings
from ..repositories import AccountRepository, LedgerRepository, RecurringRepository, SeriesKind
from ..schemas import DayDetail, DayDetailItem, DayDetailSummary, MoneyOut, ProjectedInstance
from .projector import InstanceProjector


def realized_item_fields(txn: models.Transaction, names: dict[int, str]) -> dict[str, Any]:
    return dict(
        id=txn.id,
        type="transaction",
        description=txn.description,
        amount=MoneyOut(currency=txn.currency, amount=txn.amount),
        account_id=txn.account_id,
        account_name=names.get(txn.account_id, ""),
        created_at=txn.created_at,
        instance_date=txn.recurring_instance_date or txn.recurring_transfer_instance_date,
        recurring_transaction_id=txn.recurring_transaction_id,
        recurring_transfer_id=txn.recurring_transfer_id,
        is_transfer=txn.is_transfer,
        transfer_id=txn.transfer_id,
        transfer_direction=txn.transfer_direction,
    )


def projected_item_fields(inst: ProjectedInstance) -> dict[str, Any]:
    is_transfer = inst.kind is SeriesKind.TRANSFER
    return dict(
        id=inst.series_id,
        type="recurring-transfer" if is_transfer else "recurring",
        description=inst.description,
        amount=MoneyOut(currency=inst.currency, amount=inst.amount),
        account_id=inst.account_id,
        account_name=inst.account_name,
        created_at=None,
        is_modified=inst.is_modified,
        instance_date=inst.original_date,
        recurring_transaction_id=None if is_transfer else inst.series_id,
        recurring_transfer_id=inst.series_id if is_transfer else None,
        is_transfer=is_transfer,
        transfer_direction=inst.transfer_direction,
    )


class DayDetailService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.ledger = LedgerRepository(db)
        self.recurring = RecurringRepository(db)
        self.accounts = AccountRepository(db)
        self.projector = InstanceProjector(db)

    def day_detail(
        self,
        day: date,
        account_id: Optional[int] = None,
        *,
        cancel: Optional[Event] = None,
    ) -> DayDetail:
        """Realized entries of ``day`` merged with its still-projected instances.

        Skipped and already-realized occurrences are not listed. Items are
        ordered by type, then creation time with projected items last.
        """
        check_cancelled(cancel, "day detail")
        transactions = self.ledger.by_date_range(day, day, account_id)
        check_cancelled(cancel, "day detail")
        names = {a.id: a.name for a in self.accounts.all()}
        check_cancelled(cancel, "day detail")
        series = [
            *self.recurring.active_series(SeriesKind.TRANSACTION, account_id),
            *self.recurring.active_series(SeriesKind.TRANSFER, account_id),
        ]
        instances = self.projector.instance_on_date(series, day, account_id, cancel=cancel)

        items = [DayDetailItem(**realized_item_fields(txn, names)) for txn in transactions]
        items.extend(DayDetailItem(**projected_item_fields(inst)) for inst in instances if not inst.is_skipped)
        items.sort(key=lambda i: (i.type, i.created_at or datetime.max))

        zero = Decimal("0")
        actual = sum((i.amount.amount for i in items if i.type == "transaction"), zero)
        projected = sum((i.amount.amount for i in items if i.type != "transaction"), zero)
        currency = settings.DISPLAY_CURRENCY
        return DayDetail(
            date=day,
            items=items,
            summary=DayDetailSummary(
                total_actual=MoneyOut(currency=currency, amount=actual),
                total_projected=MoneyOut(currency=currency, amount=projected),
                combined_total=MoneyOut(currency=currency, amount=actual + projected),
                item_count=len(items),
            ),
        )
