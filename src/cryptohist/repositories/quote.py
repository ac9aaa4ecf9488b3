"""
Instrument quote repository: the write path of the backfill
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import structlog
from sqlalchemy import Engine, MetaData, Table, func, inspect, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from ..db.schema import quote_table
from ..dto import Quote, is_sentinel
from ..errors import EmptyBatchError, StoreError
from .base import BaseRepository


@dataclass(frozen=True)
class WriteResult:
    """Outcome of persisting one page"""

    earliest: Quote  # first quote of the batch, source of the next cursor
    inserted: int = 0
    skipped: int = 0
    reached_sentinel: bool = False


class QuoteRepository(BaseRepository):
    """Repository for per-instrument hourly quote tables"""

    def __init__(self, engine: Engine, logger: structlog.BoundLogger | None = None) -> None:
        super().__init__(engine)
        self._metadata = MetaData()
        self._logger = logger or structlog.get_logger()

    def _table(self, symbol: str) -> Table:
        return quote_table(symbol, self._metadata)

    def table_exists(self, symbol: str) -> bool:
        table = self._table(symbol)
        with self._connection() as conn:
            return inspect(conn).has_table(table.name)

    def ensure_table(self, symbol: str) -> bool:
        """Create the instrument table if missing; returns True when created"""
        table = self._table(symbol)
        try:
            with self._transaction() as conn:
                if inspect(conn).has_table(table.name):
                    return False
                table.create(conn, checkfirst=True)
        except SQLAlchemyError as e:
            self._logger.error("table_creation_failed", symbol=symbol, error=str(e))
            raise StoreError(f"Could not create table for {symbol}: {e}") from e

        self._logger.info("table_created", symbol=symbol)
        return True

    def write(self, symbol: str, quotes: Sequence[Quote]) -> WriteResult:
        """Persist one page of quotes in a single transaction.

        Records are inserted in the order received. Processing stops at the
        first sentinel quote; everything before it is committed. A record
        whose ``time`` already exists is skipped. Any other database error
        rolls back the whole batch.

        Args:
            symbol: Instrument symbol, also the table name
            quotes: Non-empty page as returned by the API

        Returns:
            WriteResult whose ``earliest`` is the first quote of the batch

        Raises:
            EmptyBatchError: If ``quotes`` is empty
            StoreError: If the table cannot be created or an insert fails
        """
        if not quotes:
            raise EmptyBatchError(f"Refusing to write an empty batch for {symbol}")

        table = self._table(symbol)
        self.ensure_table(symbol)

        stmt = sqlite_insert(table).on_conflict_do_nothing(index_elements=["time"])
        inserted = 0
        skipped = 0
        reached_sentinel = False

        try:
            with self._transaction() as conn:
                for quote in quotes:
                    # Sentinels pad the tail of the page, nothing after them matters
                    if is_sentinel(quote):
                        reached_sentinel = True
                        break

                    result = conn.execute(stmt, quote.to_row())
                    if result.rowcount:
                        inserted += 1
                    else:
                        skipped += 1
                        self._logger.debug("duplicate_skipped", symbol=symbol, time=quote.time)
        except SQLAlchemyError as e:
            self._logger.error("write_failed", symbol=symbol, error=str(e))
            raise StoreError(f"Write to {symbol} failed: {e}") from e

        if skipped:
            self._logger.info("duplicates_skipped", symbol=symbol, count=skipped)

        return WriteResult(
            earliest=quotes[0],
            inserted=inserted,
            skipped=skipped,
            reached_sentinel=reached_sentinel,
        )

    def count(self, symbol: str) -> int:
        """Number of stored quotes for a symbol (0 if it has no table)"""
        if not self.table_exists(symbol):
            return 0

        table = self._table(symbol)
        with self._connection() as conn:
            return conn.scalar(select(func.count()).select_from(table)) or 0

    def get(self, symbol: str, time: int) -> Quote | None:
        """Stored quote at an exact timestamp"""
        if not self.table_exists(symbol):
            return None

        table = self._table(symbol)
        with self._connection() as conn:
            row = conn.execute(select(table).where(table.c.time == time)).mappings().first()

        if row is None:
            return None
        return Quote(**dict(row))

    def time_range(self, symbol: str) -> tuple[int, int] | None:
        """Oldest and newest stored timestamps for a symbol"""
        if not self.table_exists(symbol):
            return None

        table = self._table(symbol)
        with self._connection() as conn:
            oldest, newest = conn.execute(
                select(func.min(table.c.time), func.max(table.c.time))
            ).one()

        if oldest is None:
            return None
        return oldest, newest
