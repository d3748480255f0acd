"""Process-local result cache backed by an embedded SQLite database.

Each worker process owns one CacheBackend. Query results and schema
introspection results are stored in separate record sets, each wrapped by
a ResultCacheStore. Expiry is lazy: expired entries are removed when read
or when clear_expired() sweeps the record set.
"""

import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Type, Union

import orjson
from sqlalchemy import create_engine, delete, func, text, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, select

from core.cache_keys import CacheKey
from core.cache_stats import CacheStatsRecorder
from core.errors import CacheError
from core.logging import get_logger, log_cache_operation
from models.cache import CACHE_TABLES, CacheEntryBase

logger = get_logger(__name__)


class CacheBackend:
    """Embedded SQLite storage shared by every cache store in one process.

    The default URL ``sqlite://`` is an in-memory database held on a single
    connection; access to it is serialized with a re-entrant lock.
    """

    def __init__(self, url: str = "sqlite://"):
        self.url = url
        self.engine = None
        self._lock = threading.RLock()

    def startup(self) -> None:
        """Create the engine and cache tables."""
        if self.engine is not None:
            return
        if not self.url.startswith("sqlite"):
            raise CacheError(f"Cache backend must be SQLite, got '{self.url.split(':')[0]}'")

        options: Dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if self.url in ("sqlite://", "sqlite:///:memory:"):
            options["poolclass"] = StaticPool

        self.engine = create_engine(self.url, **options)
        SQLModel.metadata.create_all(self.engine, tables=CACHE_TABLES)
        logger.info("Cache backend initialized", url=self.url)

    def shutdown(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
            logger.info("Cache backend closed")

    def reset(self) -> None:
        """Drop all cached state (tests and admin use)."""
        self.shutdown()
        self.startup()

    @contextmanager
    def session(self):
        """Yield a session with exclusive use of the backing connection."""
        if self.engine is None:
            raise CacheError("Cache backend not initialized")

        with self._lock:
            with Session(self.engine) as session:
                try:
                    yield session
                except Exception:
                    session.rollback()
                    raise

    def ping(self) -> bool:
        try:
            with self.session() as session:
                session.exec(text("SELECT 1"))
            return True
        except (SQLAlchemyError, CacheError):
            return False


# ============================================================================
# Lookup results
# ============================================================================

@dataclass
class CacheHit:
    """Live entry found. ``value`` is payload + metadata + provenance."""
    key: str
    value: Dict[str, Any]
    hit = True


@dataclass
class CacheMiss:
    """No live entry. ``reason`` is 'absent' or 'expired'."""
    key: str
    reason: str = "absent"
    hit = False


@dataclass
class CacheFailure:
    """Storage failure while reading; treated as a miss by callers."""
    key: str
    error: CacheError = field(default_factory=lambda: CacheError("unknown cache failure"))
    hit = False


CacheLookup = Union[CacheHit, CacheMiss, CacheFailure]


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _key_value(key: Union[CacheKey, str]) -> str:
    return key.value if isinstance(key, CacheKey) else key


class ResultCacheStore:
    """Generic TTL key/value store with hit tracking over one record set.

    Writes are atomic upserts by key (last writer wins). Reads of an
    expired entry delete it and report a miss. Every failure inside the
    store is logged and absorbed.
    """

    def __init__(
        self,
        backend: CacheBackend,
        entry_model: Type[CacheEntryBase],
        stats: CacheStatsRecorder,
        metric_prefix: str,
        content_hasher: Callable[[str], str],
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend
        self.model = entry_model
        self.stats_recorder = stats
        self.metric_prefix = metric_prefix
        self.content_hasher = content_hasher
        self.clock = clock

    def _metric(self, event: str) -> str:
        return f"{self.metric_prefix}_{event}"

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def put(self, key: CacheKey, payload: Dict[str, Any], metadata: Dict[str, Any],
            ttl_seconds: int) -> bool:
        """Store (or replace) the entry for key. Returns False on failure."""
        try:
            serialized = orjson.dumps(payload, default=str).decode("utf-8")
            now = self.clock()
            values = {
                "cache_key": key.value,
                "scope_label": key.scope_label,
                "content_hash": key.content_hash,
                "parameters_hash": key.parameters_hash,
                "payload": serialized,
                "entry_metadata": orjson.dumps(metadata, default=str).decode("utf-8"),
                "payload_bytes": len(serialized.encode("utf-8")),
                "created_at": now,
                "expires_at": now + ttl_seconds,
                "ttl_seconds": ttl_seconds,
                "hit_count": 0,
                "last_accessed_at": None,
            }
            stmt = sqlite_insert(self.model.__table__).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["cache_key"],
                set_={name: stmt.excluded[name] for name in values if name != "cache_key"},
            )
            with self.backend.session() as session:
                session.exec(stmt)
                session.commit()
        except (SQLAlchemyError, CacheError, TypeError) as e:
            logger.error("Cache write failed", cache_key=key.value, error=str(e))
            return False

        self.stats_recorder.record(self._metric("write"))
        log_cache_operation(logger, "put", key.value, ttl=ttl_seconds, scope=key.scope_label)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def lookup(self, key: Union[CacheKey, str]) -> CacheLookup:
        """Read a live entry, deleting it if it has expired."""
        cache_key = _key_value(key)
        try:
            now = self.clock()
            with self.backend.session() as session:
                entry = session.get(self.model, cache_key)
                if entry is None:
                    log_cache_operation(logger, "get", cache_key, hit=False)
                    return CacheMiss(cache_key, "absent")

                if now >= entry.expires_at:
                    session.exec(delete(self.model).where(self.model.cache_key == cache_key))
                    session.commit()
                    expired = True
                else:
                    value = orjson.loads(entry.payload)
                    value.update(orjson.loads(entry.entry_metadata))
                    value.update({
                        "cached": True,
                        "cache_key": cache_key,
                        "cached_at": _iso(entry.created_at),
                    })
                    session.exec(
                        update(self.model)
                        .where(self.model.cache_key == cache_key)
                        .values(hit_count=self.model.hit_count + 1, last_accessed_at=now)
                    )
                    session.commit()
                    expired = False
        except (SQLAlchemyError, CacheError, orjson.JSONDecodeError) as e:
            logger.error("Cache read failed", cache_key=cache_key, error=str(e))
            return CacheFailure(cache_key, CacheError(str(e)))

        if expired:
            self.stats_recorder.record(self._metric("expiry"))
            log_cache_operation(logger, "get", cache_key, hit=False, expired=True)
            return CacheMiss(cache_key, "expired")

        self.stats_recorder.record(self._metric("hit"))
        log_cache_operation(logger, "get", cache_key, hit=True)
        return CacheHit(cache_key, value)

    def get(self, key: Union[CacheKey, str]) -> Optional[Dict[str, Any]]:
        """Cached value for key, or None on miss or failure."""
        result = self.lookup(key)
        return result.value if isinstance(result, CacheHit) else None

    def inspect(self, key: Union[CacheKey, str]) -> Optional[Dict[str, Any]]:
        """Raw entry fields, without hit tracking or expiry handling."""
        try:
            with self.backend.session() as session:
                entry = session.get(self.model, _key_value(key))
                return entry.model_dump() if entry else None
        except (SQLAlchemyError, CacheError) as e:
            logger.error("Cache inspect failed", cache_key=_key_value(key), error=str(e))
            return None

    # ------------------------------------------------------------------
    # Invalidation and cleanup
    # ------------------------------------------------------------------

    def _delete_where(self, operation: str, *criteria) -> int:
        try:
            with self.backend.session() as session:
                stmt = delete(self.model)
                if criteria:
                    stmt = stmt.where(*criteria)
                result = session.exec(stmt)
                session.commit()
                return result.rowcount or 0
        except (SQLAlchemyError, CacheError) as e:
            logger.error("Cache delete failed", operation=operation,
                         table=self.model.__tablename__, error=str(e))
            return 0

    def invalidate_by_scope(self, scope_label: str) -> int:
        """Delete every entry with the given scope label."""
        count = self._delete_where("invalidate_by_scope", self.model.scope_label == scope_label)
        self.stats_recorder.record(self._metric("invalidation"), count)
        log_cache_operation(logger, "invalidate_by_scope", scope_label, deleted=count)
        return count

    def invalidate_by_content(self, content: str) -> int:
        """Delete every entry built from the same SQL text or descriptor."""
        content_hash = self.content_hasher(content)
        count = self._delete_where("invalidate_by_content", self.model.content_hash == content_hash)
        self.stats_recorder.record(self._metric("invalidation"), count)
        log_cache_operation(logger, "invalidate_by_content", content_hash, deleted=count)
        return count

    def clear_expired(self) -> int:
        """Sweep entries whose expiry time has passed."""
        count = self._delete_where("clear_expired", self.model.expires_at < self.clock())
        self.stats_recorder.record(self._metric("cleanup"), count)
        if count:
            logger.info("Cleaned up expired cache entries", table=self.model.__tablename__, count=count)
        return count

    def clear_all(self) -> int:
        count = self._delete_where("clear_all")
        self.stats_recorder.record(self._metric("clear"), count)
        logger.info("Cleared cache", table=self.model.__tablename__, count=count)
        return count

    # ------------------------------------------------------------------
    # Visibility
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        """Entry counts, hit totals, payload sizes and the recent hit ratio."""
        now = self.clock()
        model = self.model
        try:
            with self.backend.session() as session:
                row = session.exec(
                    select(
                        func.count(model.cache_key),
                        func.coalesce(func.sum(model.hit_count), 0),
                        func.coalesce(func.max(model.hit_count), 0),
                        func.coalesce(func.sum(model.payload_bytes), 0),
                    )
                ).one()
                active = session.exec(
                    select(func.count(model.cache_key)).where(model.expires_at > now)
                ).one()
        except (SQLAlchemyError, CacheError) as e:
            logger.error("Cache stats failed", table=model.__tablename__, error=str(e))
            row, active = (0, 0, 0, 0), 0

        total, total_hits, max_hits, total_bytes = row
        return {
            "total_entries": total,
            "active_entries": active,
            "expired_entries": total - active,
            "total_hits": total_hits,
            "avg_hits_per_entry": round(total_hits / total, 2) if total else 0.0,
            "max_hits": max_hits,
            "total_payload_bytes": total_bytes,
            "avg_payload_bytes": round(total_bytes / total, 2) if total else 0.0,
            "hit_ratio": self.stats_recorder.hit_ratio(self._metric("hit"), self._metric("write")),
        }

    def top(self, n: int = 10) -> List[Dict[str, Any]]:
        """Most frequently hit entries, payload omitted."""
        try:
            with self.backend.session() as session:
                entries = session.exec(
                    select(self.model).order_by(self.model.hit_count.desc()).limit(n)
                ).all()
                return [
                    {
                        "cache_key": entry.cache_key,
                        "scope_label": entry.scope_label,
                        "hit_count": entry.hit_count,
                        "payload_bytes": entry.payload_bytes,
                        "created_at": _iso(entry.created_at),
                        "expires_at": _iso(entry.expires_at),
                        "last_accessed_at": _iso(entry.last_accessed_at) if entry.last_accessed_at else None,
                    }
                    for entry in entries
                ]
        except (SQLAlchemyError, CacheError) as e:
            logger.error("Cache top failed", table=self.model.__tablename__, error=str(e))
            return []
