"""Per-instrument table definitions."""

from __future__ import annotations

import re

from sqlalchemy import Column, Float, Integer, MetaData, Table

from ..errors import InvalidSymbolError

# Symbols become table names verbatim, so only identifier-safe characters pass
SYMBOL_PATTERN = re.compile(r"^[A-Za-z0-9_]{1,32}$")

# Reserved by SQLite for its internal tables
RESERVED_PREFIX = "sqlite_"


def validate_symbol(symbol: str) -> str:
    """Return ``symbol`` unchanged if it is safe to use as a table name.

    Raises:
        InvalidSymbolError: If the symbol is empty, too long, contains
            characters outside ``[A-Za-z0-9_]`` or uses the SQLite prefix.
    """
    if not isinstance(symbol, str) or not SYMBOL_PATTERN.match(symbol):
        raise InvalidSymbolError(f"Invalid instrument symbol: {symbol!r}")
    if symbol.lower().startswith(RESERVED_PREFIX):
        raise InvalidSymbolError(f"Reserved instrument symbol: {symbol!r}")
    return symbol


def quote_table(symbol: str, metadata: MetaData) -> Table:
    """Table holding the hourly quotes of one instrument, keyed by time."""
    name = validate_symbol(symbol)
    if name in metadata.tables:
        return metadata.tables[name]

    return Table(
        name,
        metadata,
        Column("time", Integer, nullable=False, unique=True),
        Column("close", Float),
        Column("high", Float),
        Column("low", Float),
        Column("open", Float),
        Column("volume_from", Float),
        Column("volume_to", Float),
    )
