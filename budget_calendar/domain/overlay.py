from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Protocol


class ExceptionType(str, Enum):
    SKIPPED = "SKIPPED"
    MODIFIED = "MODIFIED"


class InstanceException(Protocol):
    """Shape shared by both exception tables (and plain test doubles)."""

    original_date: date
    exception_type: ExceptionType
    modified_amount: Optional[Decimal]
    modified_description: Optional[str]
    modified_date: Optional[date]


@dataclass(frozen=True)
class EffectiveOccurrence:
    original_date: date
    effective_date: date
    amount: Decimal
    description: str
    is_modified: bool = False
    is_skipped: bool = False


def apply_exceptions(
    dates: Iterable[date],
    exceptions: Iterable[InstanceException],
    default_amount: Decimal,
    default_description: str,
    *,
    include_skipped: bool = False,
) -> list[EffectiveOccurrence]:
    """Overlay per-occurrence exceptions on generated dates.

    Skipped dates are dropped unless ``include_skipped`` is set, in which case
    they come back flagged with series defaults. A modified date may move the
    instance, but ``original_date`` stays the identity used for dedup.
    """
    by_date = {exc.original_date: exc for exc in exceptions}
    result: list[EffectiveOccurrence] = []
    for day in dates:
        exc = by_date.get(day)
        if exc is None:
            result.append(EffectiveOccurrence(day, day, default_amount, default_description))
            continue
        if exc.exception_type == ExceptionType.SKIPPED:
            if include_skipped:
                result.append(EffectiveOccurrence(day, day, default_amount, default_description, is_skipped=True))
            continue
        result.append(
            EffectiveOccurrence(
                original_date=day,
                effective_date=exc.modified_date or day,
                amount=exc.modified_amount if exc.modified_amount is not None else default_amount,
                description=(
                    exc.modified_description if exc.modified_description is not None else default_description
                ),
                is_modified=True,
            )
        )
    return result
