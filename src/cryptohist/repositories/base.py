"""
Base repository with serialised access to the shared SQLite connection
"""

from __future__ import annotations

from abc import ABC
from collections.abc import Iterator
from contextlib import contextmanager
from threading import RLock

from sqlalchemy import Connection, Engine


class BaseRepository(ABC):
    """Base repository owning the engine handle and the store lock"""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        # SQLite has a single writer and the engine shares one connection
        self._lock = RLock()

    @property
    def engine(self) -> Engine:
        return self._engine

    @contextmanager
    def _transaction(self) -> Iterator[Connection]:
        """Provide a transactional scope; commits on success, rolls back on error"""
        with self._lock, self._engine.begin() as conn:
            yield conn

    @contextmanager
    def _connection(self) -> Iterator[Connection]:
        """Provide a read-only connection scope"""
        with self._lock, self._engine.connect() as conn:
            yield conn
