"""
Services package

Calendar, ledger and recurring-series services over a SQLAlchemy session.
"""

from .auto_realize_service import AutoRealizeService
from .balance_service import BalanceCalculationService
from .calendar_grid_service import CalendarGridService
from .day_detail_service import DayDetailService
from .past_due_service import PastDueService
from .projector import InstanceProjector
from .recurring_service import RecurringService
from .settings_service import SettingsService
from .transaction_list_service import TransactionListService

__all__ = [
    "AutoRealizeService",
    "BalanceCalculationService",
    "CalendarGridService",
    "DayDetailService",
    "InstanceProjector",
    "PastDueService",
    "RecurringService",
    "SettingsService",
    "TransactionListService",
]
