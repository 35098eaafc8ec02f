"""Database engine setup for SQLite with WAL mode.

The DB is stored at ``{cache dir}/state.db``, one per machine. Every host,
local or remote, keeps its own; nothing is shared across hosts.

SQLAlchemy Core (not ORM) is used because convergectl is a short-lived
CLI process with a handful of key/value tables.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from convergectl.infrastructure.database.schema import metadata

DB_FILENAME = "state.db"


def create_db_engine(db_path: Path) -> Engine:
    """Create a SQLite engine with WAL mode enabled."""
    engine = create_engine(f"sqlite:///{db_path}", echo=False)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()

    return engine


def init_cache_database(cache_dir: Path) -> Engine:
    """Open (creating if needed) ``{cache_dir}/state.db`` with all tables.

    Idempotent — safe to call on an existing cache directory.
    """
    cache_dir.mkdir(parents=True, exist_ok=True)
    engine = create_db_engine(cache_dir / DB_FILENAME)
    metadata.create_all(engine)
    return engine
