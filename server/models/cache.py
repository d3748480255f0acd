"""SQLite-backed cache models for query results, schemas and cache metrics.

These tables live in the process-local cache database, never in the
application database. Each worker process owns its own copy.
"""

import time
from typing import Optional
from sqlmodel import SQLModel, Field


class CacheEntryBase(SQLModel):
    """Columns shared by every cache record set."""

    cache_key: str = Field(primary_key=True, max_length=512)
    scope_label: Optional[str] = Field(default=None, index=True, max_length=255)
    content_hash: str = Field(index=True, max_length=64)
    parameters_hash: Optional[str] = Field(default=None, max_length=64)
    payload: str  # JSON: success flag, rows or schema, errors
    entry_metadata: str = Field(default="{}")  # JSON: columns, counts, timings
    payload_bytes: int = Field(default=0)
    created_at: float = Field(default_factory=time.time)
    expires_at: float = Field(index=True)  # Unix timestamp
    ttl_seconds: int
    hit_count: int = Field(default=0)
    last_accessed_at: Optional[float] = Field(default=None)


class QueryResultEntry(CacheEntryBase, table=True):
    """Cached dataclip/SQL execution results."""

    __tablename__ = "query_result_cache"


class SchemaCacheEntry(CacheEntryBase, table=True):
    """Cached schema introspection results, keyed by connection."""

    __tablename__ = "schema_cache"


class CacheMetric(SQLModel, table=True):
    """Append-only cache metric event (hit, write, expiry, ...)."""

    __tablename__ = "cache_metrics"

    id: Optional[int] = Field(default=None, primary_key=True)
    metric_name: str = Field(index=True, max_length=100)
    value: float = Field(default=1.0)
    recorded_at: float = Field(default_factory=time.time, index=True)


CACHE_TABLES = [
    QueryResultEntry.__table__,
    SchemaCacheEntry.__table__,
    CacheMetric.__table__,
]
