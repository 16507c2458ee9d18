from __future__ import annotations

from typing import Optional

from sqlalchemy.orm import Session

from .. import models
from ..core.errors import RecurrenceValidationError
from ..repositories import SettingsRepository, UnitOfWork

LOOKBACK_MIN = 1
LOOKBACK_MAX = 365


class SettingsService:
    def __init__(self, db: Session) -> None:
        self.db = db
        self.repo = SettingsRepository(db)
        self.uow = UnitOfWork(db)

    def get(self) -> models.AppSettings:
        row = self.repo.get()
        self.uow.save_changes()
        return row

    def update(
        self,
        auto_realize_past_due_items: Optional[bool] = None,
        past_due_lookback_days: Optional[int] = None,
    ) -> models.AppSettings:
        if past_due_lookback_days is not None and not LOOKBACK_MIN <= past_due_lookback_days <= LOOKBACK_MAX:
            raise RecurrenceValidationError(
                f"Past-due lookback must be between {LOOKBACK_MIN} and {LOOKBACK_MAX} days."
            )
        row = self.repo.get()
        if auto_realize_past_due_items is not None:
            row.auto_realize_past_due_items = auto_realize_past_due_items
        if past_due_lookback_days is not None:
            row.past_due_lookback_days = past_due_lookback_days
        self.uow.save_changes()
        self.db.refresh(row)
        return row
