"""Repositories over the per-machine state database.

* :class:`CacheStore` — item identity → last cache key.
* :class:`BlobCache` — probe raw output and fetched URL bodies, each with
  an explicit stored-at timestamp compared against a caller's max age.
* :class:`ArtifactHashStore` — watch hash recorded after a successful build.

All three are single-writer; concurrent invocations on one machine are
not coordinated.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert
from sqlalchemy.engine import Engine

from convergectl.infrastructure.database.schema import artifact_hashes, blob_cache, item_cache


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class CacheStore:
    """Last cache key per item identity."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get(self, identity: str) -> str | None:
        stmt = select(item_cache.c.cache_key).where(item_cache.c.identity == identity)
        with self._engine.connect() as conn:
            return conn.execute(stmt).scalar_one_or_none()

    def set(self, identity: str, key: str) -> None:
        stmt = insert(item_cache).values(identity=identity, cache_key=key, updated_at=_now_iso())
        stmt = stmt.on_conflict_do_update(
            index_elements=[item_cache.c.identity],
            set_={"cache_key": stmt.excluded.cache_key, "updated_at": stmt.excluded.updated_at},
        )
        with self._engine.begin() as conn:
            conn.execute(stmt)

    def all(self) -> dict[str, str]:
        with self._engine.connect() as conn:
            rows = conn.execute(select(item_cache.c.identity, item_cache.c.cache_key)).all()
        return {str(r.identity): str(r.cache_key) for r in rows}


class BlobCache:
    """Timestamped byte blobs keyed by name (``probe:<name>``, ``url:<url>``).

    *clock* returns unix seconds; tests inject their own.
    """

    def __init__(self, engine: Engine, clock: Callable[[], float] = time.time) -> None:
        self._engine = engine
        self._clock = clock

    def get(self, key: str, max_age: timedelta) -> bytes | None:
        """Stored data for *key* if younger than *max_age*, else None."""
        stmt = select(blob_cache.c.data, blob_cache.c.stored_at).where(blob_cache.c.key == key)
        with self._engine.connect() as conn:
            row = conn.execute(stmt).first()
        if row is None:
            return None
        age = self._clock() - float(row.stored_at)
        if age < 0 or age >= max_age.total_seconds():
            return None
        return bytes(row.data)

    def set(self, key: str, data: bytes) -> None:
        stmt = insert(blob_cache).values(key=key, data=data, stored_at=self._clock())
        stmt = stmt.on_conflict_do_update(
            index_elements=[blob_cache.c.key],
            set_={"data": stmt.excluded.data, "stored_at": stmt.excluded.stored_at},
        )
        with self._engine.begin() as conn:
            conn.execute(stmt)

    def invalidate(self, key: str) -> None:
        with self._engine.begin() as conn:
            conn.execute(delete(blob_cache).where(blob_cache.c.key == key))


class ArtifactHashStore:
    """Watch hash per artifact, written only after a successful build."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    def get(self, key: str) -> str | None:
        stmt = select(artifact_hashes.c.hash).where(artifact_hashes.c.key == key)
        with self._engine.connect() as conn:
            return conn.execute(stmt).scalar_one_or_none()

    def set(self, key: str, digest: str) -> None:
        stmt = insert(artifact_hashes).values(key=key, hash=digest, updated_at=_now_iso())
        stmt = stmt.on_conflict_do_update(
            index_elements=[artifact_hashes.c.key],
            set_={"hash": stmt.excluded.hash, "updated_at": stmt.excluded.updated_at},
        )
        with self._engine.begin() as conn:
            conn.execute(stmt)
