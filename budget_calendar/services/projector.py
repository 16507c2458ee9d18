from __future__ import annotations

from collections import defaultdict
from datetime import date
from threading import Event
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from .. import models
from ..core.cancellation import check_cancelled
from ..domain.overlay import EffectiveOccurrence, apply_exceptions
from ..domain.recurrence import occurrences
from ..repositories import (
    AccountRepository,
    LedgerRepository,
    RecurringRepository,
    Series,
    SeriesKind,
    kind_of,
    to_money,
)
from ..schemas import ProjectedInstance


class InstanceProjector:
    """Expand recurring series into de-duplicated projected instances.

    Transaction series expand to one leg on their account. Transfer series
    expand to a source leg (negative) and a destination leg (positive). Each
    leg is dropped independently once a realized ledger entry exists for its
    ``(series, original date, direction)``.
    """

    def __init__(self, db: Session) -> None:
        self.db = db
        self.ledger = LedgerRepository(db)
        self.recurring = RecurringRepository(db)
        self.accounts = AccountRepository(db)

    def instances_in_range(
        self,
        series: Iterable[Series],
        from_date: date,
        to_date: date,
        account_id: Optional[int] = None,
        *,
        cancel: Optional[Event] = None,
    ) -> dict[date, list[ProjectedInstance]]:
        """Projected, non-skipped, non-realized legs keyed by effective date."""
        by_date: dict[date, list[ProjectedInstance]] = defaultdict(list)
        for inst in self._project(series, from_date, to_date, account_id, include_skipped=False, cancel=cancel):
            by_date[inst.effective_date].append(inst)
        return dict(by_date)

    def instance_on_date(
        self,
        series: Iterable[Series],
        day: date,
        account_id: Optional[int] = None,
        *,
        cancel: Optional[Event] = None,
    ) -> list[ProjectedInstance]:
        """Legs falling on ``day``; skipped occurrences come back flagged ``is_skipped``."""
        return self._project(series, day, day, account_id, include_skipped=True, cancel=cancel)

    # ------------------------------------------------------------------

    def _project(
        self,
        series: Iterable[Series],
        from_date: date,
        to_date: date,
        account_id: Optional[int],
        *,
        include_skipped: bool,
        cancel: Optional[Event],
    ) -> list[ProjectedInstance]:
        if from_date > to_date:
            return []
        names = {a.id: a.name for a in self.accounts.all()}
        result: list[ProjectedInstance] = []
        for s in series:
            if not s.is_active:
                continue
            check_cancelled(cancel, "projector")
            kind = kind_of(s)
            effective = self._effective_occurrences(kind, s, from_date, to_date, include_skipped)
            if not effective:
                continue
            originals = [e.original_date for e in effective]
            realized = self.ledger.realized_instance_keys(kind, s.id, min(originals), max(originals))
            for occ in effective:
                for leg in _expand(kind, s, occ, names):
                    if account_id is not None and leg.account_id != account_id:
                        continue
                    if (occ.original_date, leg.transfer_direction) in realized:
                        continue
                    result.append(leg)
        result.sort(key=lambda i: (i.effective_date, i.kind.value, i.series_id, i.amount))
        return result

    def _effective_occurrences(
        self,
        kind: SeriesKind,
        s: Series,
        from_date: date,
        to_date: date,
        include_skipped: bool,
    ) -> list[EffectiveOccurrence]:
        pattern = s.pattern
        dates = occurrences(pattern, s.start_date, s.end_date, from_date, to_date)
        exceptions = self.recurring.exceptions_in_range(kind, s.id, from_date, to_date)

        # Occurrences scheduled outside the window but moved into it
        moved_in = [
            exc
            for exc in self.recurring.moved_into_range(kind, s.id, from_date, to_date)
            if occurrences(pattern, s.start_date, s.end_date, exc.original_date, exc.original_date)
        ]
        dates = sorted(set(dates) | {exc.original_date for exc in moved_in})
        exceptions = list(exceptions) + moved_in

        effective = apply_exceptions(
            dates,
            exceptions,
            to_money(s.amount),
            s.description,
            include_skipped=include_skipped,
        )
        return [e for e in effective if from_date <= e.effective_date <= to_date]


def _expand(
    kind: SeriesKind,
    s: Series,
    occ: EffectiveOccurrence,
    names: dict[int, str],
) -> list[ProjectedInstance]:
    common = dict(
        kind=kind,
        series_id=s.id,
        original_date=occ.original_date,
        effective_date=occ.effective_date,
        currency=s.currency,
        is_modified=occ.is_modified,
        is_skipped=occ.is_skipped,
    )
    if kind is SeriesKind.TRANSACTION:
        return [
            ProjectedInstance(
                account_id=s.account_id,
                account_name=names.get(s.account_id, ""),
                amount=occ.amount,
                description=occ.description,
                **common,
            )
        ]
    source = names.get(s.source_account_id, "")
    destination = names.get(s.destination_account_id, "")
    magnitude = abs(occ.amount)
    return [
        ProjectedInstance(
            account_id=s.source_account_id,
            account_name=source,
            amount=-magnitude,
            description=f"Transfer to {destination}: {occ.description}",
            transfer_direction=models.TransferDirection.SOURCE,
            **common,
        ),
        ProjectedInstance(
            account_id=s.destination_account_id,
            account_name=destination,
            amount=magnitude,
            description=f"Transfer from {source}: {occ.description}",
            transfer_direction=models.TransferDirection.DESTINATION,
            **common,
        ),
    ]
