from __future__ import annotations

from pathlib import Path
from typing import Any

import sqlalchemy.event
import sqlalchemy.pool
from sqlalchemy import Engine, create_engine


def make_engine(db_path: str | Path) -> Engine:
    """Open the SQLite store at ``db_path``.

    All drivers share a single connection; writes are serialised by the
    repository, so the connection may be used from worker threads.
    """
    url = f"sqlite:///{db_path}"
    engine = create_engine(
        url,
        future=True,
        pool_pre_ping=False,
        poolclass=sqlalchemy.pool.StaticPool,
        connect_args={
            "check_same_thread": False,
            "timeout": 10,
        },
        echo=False,
    )

    @sqlalchemy.event.listens_for(engine, "connect")
    def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA temp_store=MEMORY")
        cursor.close()

    return engine
