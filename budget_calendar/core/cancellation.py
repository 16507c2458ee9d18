from __future__ import annotations

from threading import Event
from typing import Optional

from .errors import OperationCancelled


def check_cancelled(cancel: Optional[Event], where: str = "") -> None:
    """Raise ``OperationCancelled`` when the caller has set ``cancel``.

    Services call this between repository calls. A ``None`` signal never cancels.
    """
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"Operation cancelled{f' ({where})' if where else ''}")
