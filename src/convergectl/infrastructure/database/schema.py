"""SQLAlchemy Core table definitions for the per-machine state database."""

from __future__ import annotations

from sqlalchemy import BLOB, REAL, Column, MetaData, Table, Text

metadata = MetaData()

# identity -> last cache key recorded after a successful apply
item_cache = Table(
    "item_cache",
    metadata,
    Column("identity", Text, primary_key=True),
    Column("cache_key", Text, nullable=False),
    Column("updated_at", Text, nullable=False),
)

# probe raw output and fetched URL bodies, with the time they were stored
blob_cache = Table(
    "blob_cache",
    metadata,
    Column("key", Text, primary_key=True),
    Column("data", BLOB, nullable=False),
    Column("stored_at", REAL, nullable=False),  # unix seconds
)

artifact_hashes = Table(
    "artifact_hashes",
    metadata,
    Column("key", Text, primary_key=True),
    Column("hash", Text, nullable=False),
    Column("updated_at", Text, nullable=False),
)
