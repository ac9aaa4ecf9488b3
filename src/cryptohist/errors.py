"""Exceptions raised by the backfill engine."""


class BackfillError(Exception):
    """Base class for all backfill errors."""


class FetchError(BackfillError):
    """Transport or decode failure while fetching a page."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class StoreError(BackfillError):
    """Persistence failure other than a uniqueness conflict."""


class EmptyBatchError(BackfillError):
    """A write was requested for an empty batch."""


class InvalidSymbolError(BackfillError, ValueError):
    """Symbol cannot be used as a table name or request parameter."""


class CursorStalledError(BackfillError):
    """The cursor did not move back in time after a write."""
