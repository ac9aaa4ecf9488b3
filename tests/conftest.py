from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from cryptohist.db.engine import make_engine
from cryptohist.dto import Quote
from cryptohist.repositories.quote import QuoteRepository


def _quote(time: int, price: float = 100.0) -> Quote:
    return Quote(
        time=time,
        open=price,
        high=price * 1.1,
        low=price * 0.9,
        close=price,
        volume_from=10.0,
        volume_to=10.0 * price,
    )


def _sentinel(time: int) -> Quote:
    return Quote(time=time, open=0, high=0, low=0, close=0)


class SimulatedHistory:
    """Fake histohour API over a continuous history of ``first..last``.

    Pages are ascending and always ``page_size`` long; once the history runs
    out the page is padded at the end with sentinels.
    """

    def __init__(self, first: int, last: int, page_size: int = 2000) -> None:
        self.first = first
        self.last = last
        self.page_size = page_size
        self.calls: list[tuple[str, int]] = []
        self.failures: dict[str, Exception] = {}

    async def __aenter__(self) -> "SimulatedHistory":
        return self

    async def __aexit__(self, *args: Any) -> None:
        pass

    def factory(self, config: Any) -> "SimulatedHistory":
        return self

    async def fetch_page(self, symbol: str, before_time: int) -> list[Quote]:
        self.calls.append((symbol, before_time))
        if symbol in self.failures:
            raise self.failures[symbol]

        end = min(before_time, self.last)
        start = end - self.page_size + 1
        real = [_quote(t) for t in range(max(start, self.first), end + 1)]
        padding = [_sentinel(start + i) for i in range(self.page_size - len(real))]
        return real + padding


@pytest.fixture
def make_quote() -> Any:
    return _quote


@pytest.fixture
def make_sentinel() -> Any:
    return _sentinel


@pytest.fixture
def make_history() -> Any:
    return SimulatedHistory


@pytest.fixture
def repo(tmp_path: Path) -> Iterator[QuoteRepository]:
    engine = make_engine(tmp_path / "historical.db")
    yield QuoteRepository(engine)
    engine.dispose()
