from __future__ import annotations


class DomainError(Exception):
    """Base class for errors surfaced to callers of the budget calendar core."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class RecurrenceValidationError(DomainError):
    """Bad frequency, missing day of week, out-of-range numbers or year/month."""

    status_code = 400


class NotFoundError(DomainError):
    status_code = 404


class AlreadyRealizedError(DomainError):
    """Manual realization of an occurrence that already has a ledger entry."""

    status_code = 409


class AutoRealizeError(DomainError):
    """The auto-realize batch failed and was rolled back; nothing was committed."""

    status_code = 500


class OperationCancelled(DomainError):
    status_code = 499
