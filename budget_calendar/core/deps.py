from __future__ import annotations

from datetime import date

from ..models import today_local


def get_today() -> date:
    """Resolve "today" in the configured timezone.

    Services never read the clock themselves; routes take this as a
    dependency and tests override it with a fixed date.
    """
    return today_local()
