"""
Per-instrument backfill driver: walks the cursor backward page by page
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import structlog

from ..dto import Quote, is_sentinel
from ..errors import BackfillError, CursorStalledError
from ..repositories.quote import QuoteRepository, WriteResult


class DriverState(str, Enum):
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"


class PageFetcher(Protocol):
    async def fetch_page(self, symbol: str, before_time: int) -> Sequence[Quote]: ...


@dataclass
class BackfillOutcome:
    """Terminal result of one instrument's backfill"""

    symbol: str
    state: DriverState = DriverState.RUNNING
    pages_fetched: int = 0
    rows_written: int = 0
    duplicates_skipped: int = 0
    oldest_time: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.state is DriverState.DONE


class BackfillDriver:
    """Fetch -> classify -> persist loop for a single instrument.

    The cursor starts at ``start_time`` (now by default) and after every
    successful write moves to one second before the first quote of the page.
    The loop ends when a page's last quote is a sentinel (``DONE``) or on the
    first fetch or store error (``FAILED``).
    """

    def __init__(
        self,
        symbol: str,
        fetcher: PageFetcher,
        repository: QuoteRepository,
        request_delay: float = 0.5,
        start_time: int | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.symbol = symbol
        self._fetcher = fetcher
        self._repo = repository
        self._delay = request_delay
        self._start_time = start_time
        self._logger = (logger or structlog.get_logger()).bind(symbol=symbol)
        self.outcome = BackfillOutcome(symbol=symbol)

    @property
    def state(self) -> DriverState:
        return self.outcome.state

    async def run(self) -> BackfillOutcome:
        cursor = self._start_time if self._start_time is not None else int(time.time())
        self._logger.info("backfill_started", cursor=cursor)

        try:
            while self.outcome.state is DriverState.RUNNING:
                cursor = await self._step(cursor)
        except BackfillError as e:
            self.outcome.state = DriverState.FAILED
            self.outcome.error = str(e)
            self._logger.error("backfill_failed", cursor=cursor, error=str(e))
            return self.outcome

        self._logger.info(
            "backfill_done",
            pages=self.outcome.pages_fetched,
            rows_written=self.outcome.rows_written,
            oldest_time=self.outcome.oldest_time,
        )
        return self.outcome

    async def _step(self, cursor: int) -> int:
        """Run one fetch cycle and return the next cursor"""
        page = await self._fetcher.fetch_page(self.symbol, cursor)
        self.outcome.pages_fetched += 1

        if not page:
            self._logger.warning("empty_page", cursor=cursor)
            self.outcome.state = DriverState.DONE
            return cursor

        if is_sentinel(page[-1]):
            # Final page: keep the real quotes that precede the padding
            if not is_sentinel(page[0]):
                await self._write(page)
            self.outcome.state = DriverState.DONE
            return cursor

        result = await self._write(page)
        next_cursor = result.earliest.time - 1
        if next_cursor >= cursor:
            raise CursorStalledError(
                f"Cursor for {self.symbol} did not move back: {cursor} -> {next_cursor}"
            )

        await asyncio.sleep(self._delay)
        return next_cursor

    async def _write(self, page: Sequence[Quote]) -> WriteResult:
        # Store calls block; keep them off the event loop
        write = asyncio.ensure_future(asyncio.to_thread(self._repo.write, self.symbol, page))
        try:
            result = await asyncio.shield(write)
        except asyncio.CancelledError:
            # The transaction must finish before the engine can be released
            await asyncio.wait({write})
            raise

        self.outcome.rows_written += result.inserted
        self.outcome.duplicates_skipped += result.skipped
        self.outcome.oldest_time = result.earliest.time
        self._logger.debug(
            "page_written",
            inserted=result.inserted,
            skipped=result.skipped,
            earliest=result.earliest.time,
        )
        return result
