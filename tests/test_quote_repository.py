import pytest
from sqlalchemy import text

from cryptohist.errors import EmptyBatchError, InvalidSymbolError, StoreError


def test_table_created_lazily(repo, make_quote) -> None:
    assert not repo.table_exists("BTC")
    assert repo.count("BTC") == 0

    repo.write("BTC", [make_quote(3600)])

    assert repo.table_exists("BTC")
    assert repo.count("BTC") == 1


def test_ensure_table_is_idempotent(repo) -> None:
    assert repo.ensure_table("ETH") is True
    assert repo.ensure_table("ETH") is False
    assert repo.table_exists("ETH")


def test_write_returns_first_quote_of_batch(repo, make_quote) -> None:
    batch = [make_quote(t) for t in (1000, 1001, 1002)]
    result = repo.write("BTC", batch)

    assert result.earliest == batch[0]
    assert result.inserted == 3
    assert result.skipped == 0
    assert not result.reached_sentinel
    assert repo.time_range("BTC") == (1000, 1002)


def test_write_stops_at_first_sentinel(repo, make_quote, make_sentinel) -> None:
    batch = [make_quote(1), make_quote(2), make_sentinel(3), make_quote(4)]
    result = repo.write("BTC", batch)

    assert result.reached_sentinel
    assert result.inserted == 2
    assert repo.count("BTC") == 2
    assert repo.get("BTC", 3) is None
    assert repo.get("BTC", 4) is None


def test_duplicate_time_skipped_and_existing_row_kept(repo, make_quote) -> None:
    repo.write("BTC", [make_quote(2, price=50.0)])

    batch = [make_quote(1, price=10.0), make_quote(2, price=999.0), make_quote(3, price=10.0)]
    result = repo.write("BTC", batch)

    assert result.inserted == 2
    assert result.skipped == 1
    assert repo.count("BTC") == 3
    assert repo.get("BTC", 2).close == 50.0
    assert repo.get("BTC", 1).close == 10.0


def test_rewrite_same_batch_changes_nothing(repo, make_quote) -> None:
    batch = [make_quote(t) for t in range(100)]
    repo.write("BTC", batch)
    result = repo.write("BTC", batch)

    assert result.inserted == 0
    assert result.skipped == 100
    assert repo.count("BTC") == 100


def test_non_conflict_error_rolls_back_whole_batch(repo, make_quote) -> None:
    # Table pre-created with a constraint the middle quote violates
    with repo.engine.begin() as conn:
        conn.execute(
            text(
                'CREATE TABLE "BTC" (time INTEGER NOT NULL UNIQUE, '
                "close REAL CHECK (close < 100), high REAL, low REAL, open REAL, "
                "volume_from REAL, volume_to REAL)"
            )
        )

    batch = [make_quote(1, price=1.0), make_quote(2, price=500.0), make_quote(3, price=1.0)]
    with pytest.raises(StoreError):
        repo.write("BTC", batch)

    assert repo.count("BTC") == 0


def test_empty_batch_rejected(repo) -> None:
    with pytest.raises(EmptyBatchError):
        repo.write("BTC", [])
    assert not repo.table_exists("BTC")


def test_unsafe_symbol_never_reaches_the_store(repo, make_quote) -> None:
    with pytest.raises(InvalidSymbolError):
        repo.write('BTC"; DROP TABLE x; --', [make_quote(1)])


def test_tables_are_per_instrument(repo, make_quote) -> None:
    repo.write("BTC", [make_quote(1), make_quote(2)])
    repo.write("ETH", [make_quote(1)])

    assert repo.count("BTC") == 2
    assert repo.count("ETH") == 1
    assert repo.time_range("DOGE") is None
