"""
Fan-out coordinator: one concurrent backfill driver per instrument
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import Any

import structlog

from ..config import Settings
from ..db.schema import validate_symbol
from ..errors import InvalidSymbolError
from ..repositories.quote import QuoteRepository
from .backfill import BackfillDriver, BackfillOutcome, DriverState, PageFetcher
from .market import CryptoCompareClient

FetcherFactory = Callable[[Settings], AbstractAsyncContextManager[PageFetcher]]


@dataclass
class BackfillReport:
    """Per-instrument outcomes of one run, in request order"""

    outcomes: list[BackfillOutcome] = field(default_factory=list)

    @property
    def by_symbol(self) -> dict[str, BackfillOutcome]:
        return {o.symbol: o for o in self.outcomes}

    @property
    def done(self) -> list[str]:
        return [o.symbol for o in self.outcomes if o.state is DriverState.DONE]

    @property
    def failed(self) -> list[str]:
        return [o.symbol for o in self.outcomes if o.state is DriverState.FAILED]

    @property
    def rows_written(self) -> int:
        return sum(o.rows_written for o in self.outcomes)

    def summary(self) -> dict[str, Any]:
        return {
            "total": len(self.outcomes),
            "done": len(self.done),
            "failed": len(self.failed),
            "rows_written": self.rows_written,
        }


class BackfillCoordinator:
    """Runs one driver per symbol concurrently and collects their outcomes.

    A failing instrument never stops the others; the run reports one
    terminal outcome per requested symbol.
    """

    def __init__(
        self,
        config: Settings,
        repository: QuoteRepository,
        fetcher_factory: FetcherFactory = CryptoCompareClient,
        start_time: int | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.config = config
        self._repo = repository
        self._fetcher_factory = fetcher_factory
        self._start_time = start_time
        self._logger = logger or structlog.get_logger()
        self._tasks: dict[str, asyncio.Task[BackfillOutcome]] = {}

    async def run(self, symbols: Iterable[str]) -> BackfillReport:
        """Backfill every symbol and return the aggregated report"""
        requested: list[str] = []
        seen: set[str] = set()
        for symbol in symbols:
            # SQLite table names ignore case, so BTC and btc share one table
            key = symbol.casefold()
            if key in seen:
                self._logger.warning("duplicate_symbol_ignored", symbol=symbol)
                continue
            seen.add(key)
            requested.append(symbol)

        outcomes: dict[str, BackfillOutcome] = {}

        valid: list[str] = []
        for symbol in requested:
            try:
                valid.append(validate_symbol(symbol))
            except InvalidSymbolError as e:
                self._logger.error("symbol_rejected", symbol=symbol, error=str(e))
                outcomes[symbol] = BackfillOutcome(
                    symbol=symbol, state=DriverState.FAILED, error=str(e)
                )

        if valid:
            drivers: dict[str, BackfillDriver] = {}
            async with self._fetcher_factory(self.config) as fetcher:
                for symbol in valid:
                    self._logger.info("fetching_historical_data", symbol=symbol)
                    drivers[symbol] = BackfillDriver(
                        symbol,
                        fetcher,
                        self._repo,
                        request_delay=self.config.request_delay,
                        start_time=self._start_time,
                        logger=self._logger,
                    )
                    self._tasks[symbol] = asyncio.create_task(
                        drivers[symbol].run(), name=f"backfill-{symbol}"
                    )

                try:
                    results = await asyncio.gather(*self._tasks.values(), return_exceptions=True)
                finally:
                    self._tasks = {}

            for (symbol, driver), result in zip(drivers.items(), results):
                outcomes[symbol] = self._collect(driver, result)

        report = BackfillReport([outcomes[s] for s in requested])
        self._logger.info("backfill_run_complete", **report.summary())
        return report

    def cancel(self) -> None:
        """Cancel every in-flight driver; they are reported as failed"""
        for task in self._tasks.values():
            task.cancel()

    def _collect(
        self, driver: BackfillDriver, result: BackfillOutcome | BaseException
    ) -> BackfillOutcome:
        symbol = driver.symbol
        outcome = driver.outcome
        # Cancelled or crashed drivers keep the progress they made
        if isinstance(result, asyncio.CancelledError):
            outcome.state = DriverState.FAILED
            outcome.error = "cancelled"
        elif isinstance(result, BaseException):
            outcome.state = DriverState.FAILED
            outcome.error = f"{type(result).__name__}: {result}"

        if outcome.ok:
            self._logger.info("got_all_data", symbol=symbol, rows_written=outcome.rows_written)
        else:
            self._logger.error("symbol_backfill_failed", symbol=symbol, error=outcome.error)
        return outcome
