"""Read-only dataclip execution with result caching.

The guard validates SQL before any connection is opened, serves cached
results when available, runs the statement on an isolated connection and
writes successful results through to the query-result cache.

Read-only is enforced in layers. The keyword check only looks at statement
starts, and every run ends in a rollback. Neither stops a multi-statement
batch such as ``SELECT 1; COMMIT; WITH d AS (DELETE ...) SELECT 1``, since
the driver commits mid-batch. That case is closed by the connection itself
being read-only (see ``core.connections.make_read_only``), which covers
PostgreSQL and SQLite targets only.
"""

import re
import time
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

import orjson
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from core.cache import CacheHit, ResultCacheStore
from core.cache_keys import derive_query_key
from core.connections import ConnectionProvider, SavedQueryResolver
from core.errors import ExecutionError, ValidationError
from core.logging import get_logger, log_execution_time, truncate_sql

logger = get_logger(__name__)

MUTATING_KEYWORDS = ("drop", "truncate", "delete", "alter", "create", "insert", "update")

# Whitespace and SQL comments that may precede a statement keyword
_NOISE = r"(?:\s|--[^\n]*|/\*.*?\*/)*"
_KEYWORDS = "|".join(MUTATING_KEYWORDS)

_LEADING_MUTATION = re.compile(rf"^{_NOISE}({_KEYWORDS})\b", re.IGNORECASE | re.DOTALL)
_CHAINED_MUTATION = re.compile(rf";{_NOISE}({_KEYWORDS})\b", re.IGNORECASE | re.DOTALL)


@dataclass
class CacheOptions:
    """Per-call caching behaviour."""
    enabled: bool = True
    ttl_seconds: int = 3600
    scope_label: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None


@dataclass
class QueryResult:
    """Structured outcome of a query run, cached or fresh."""
    success: bool = False
    data: List[Dict[str, Any]] = field(default_factory=list)
    columns: List[str] = field(default_factory=list)
    row_count: int = 0
    execution_time_ms: float = 0.0
    errors: List[str] = field(default_factory=list)
    cached: bool = False
    cache_key: Optional[str] = None
    cached_at: Optional[str] = None

    def payload(self) -> Dict[str, Any]:
        return {"success": self.success, "data": self.data, "errors": self.errors}

    def metadata(self) -> Dict[str, Any]:
        return {
            "columns": self.columns,
            "row_count": self.row_count,
            "execution_time_ms": self.execution_time_ms,
        }

    def to_dict(self) -> Dict[str, Any]:
        result = {**self.payload(), **self.metadata(), "cached": self.cached}
        if self.cached:
            result["cache_key"] = self.cache_key
            result["cached_at"] = self.cached_at
        return result

    @classmethod
    def failure(cls, *errors: str) -> "QueryResult":
        return cls(success=False, errors=list(errors))

    @classmethod
    def from_cache(cls, value: Dict[str, Any]) -> "QueryResult":
        return cls(
            success=value.get("success", True),
            data=value.get("data", []),
            columns=value.get("columns", []),
            row_count=value.get("row_count", 0),
            execution_time_ms=value.get("execution_time_ms", 0.0),
            errors=value.get("errors", []),
            cached=True,
            cache_key=value.get("cache_key"),
            cached_at=value.get("cached_at"),
        )


def find_mutation(sql_text: str) -> Optional[str]:
    """Return the first mutating keyword found at a statement start, if any.

    Only the first token of the text and tokens right after a ``;`` are
    checked, so keywords inside literals or later in a SELECT are allowed.
    This is a heuristic; execution also runs on a read-only connection
    and never commits.
    """
    for pattern in (_LEADING_MUTATION, _CHAINED_MUTATION):
        match = pattern.search(sql_text)
        if match:
            return match.group(1).lower()
    return None


class QueryExecutionGuard:
    """Validates, executes and caches read-only SQL."""

    def __init__(
        self,
        cache: ResultCacheStore,
        connections: ConnectionProvider,
        resolver: SavedQueryResolver,
        default_descriptor: Optional[str] = None,
        cache_enabled: bool = True,
        cache_ttl: int = 3600,
    ):
        self.cache = cache
        self.connections = connections
        self.resolver = resolver
        self.default_descriptor = default_descriptor
        self.cache_enabled = cache_enabled
        self.cache_ttl = cache_ttl

    def default_options(self) -> CacheOptions:
        return CacheOptions(enabled=self.cache_enabled, ttl_seconds=self.cache_ttl)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, sql_text: Optional[str]) -> None:
        if sql_text is None or not sql_text.strip():
            raise ValidationError("SQL query cannot be empty")

        keyword = find_mutation(sql_text)
        if keyword:
            logger.warning("Rejected mutating SQL", keyword=keyword, sql=truncate_sql(sql_text))
            raise ValidationError("Query contains potentially dangerous SQL operations")

    def _require_descriptor(self, connection_descriptor: Optional[str]) -> str:
        descriptor = connection_descriptor or self.default_descriptor
        if descriptor is None or not descriptor.strip():
            raise ValidationError("Database connection URL is required")
        return descriptor

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def execute(self, sql_text: str, connection_descriptor: Optional[str] = None,
                cache_options: Optional[CacheOptions] = None) -> QueryResult:
        """Run SQL against the target database, using the cache when enabled."""
        self.validate(sql_text)
        descriptor = self._require_descriptor(connection_descriptor)
        options = cache_options or self.default_options()

        key = None
        if options.enabled:
            key = derive_query_key(sql_text, options.parameters, options.scope_label)
            lookup = self.cache.lookup(key)
            if isinstance(lookup, CacheHit):
                logger.info("Cache HIT", scope=options.scope_label, sql=truncate_sql(sql_text, 60))
                return QueryResult.from_cache(lookup.value)

        result = self._run(sql_text, descriptor, options.parameters)

        if key is not None and result.success:
            if self.cache.put(key, result.payload(), result.metadata(), options.ttl_seconds):
                logger.info("Cache WRITE", scope=options.scope_label, sql=truncate_sql(sql_text, 60))

        return result

    def execute_named(self, identifier: str, connection_descriptor: Optional[str] = None,
                      cache_options: Optional[CacheOptions] = None) -> QueryResult:
        """Run a saved dataclip by slug, scoping its cache entries to the slug."""
        if identifier is None or not identifier.strip():
            raise ValidationError("Dataclip slug is required")

        try:
            sql_text = self.resolver.resolve_sql(identifier)
        except SQLAlchemyError as e:
            logger.error("Failed to resolve dataclip", slug=identifier, error=str(e))
            return QueryResult.failure(f"Database error: {e}")

        if sql_text is None:
            return QueryResult.failure(f"Dataclip with slug '{identifier}' not found")

        options = replace(cache_options or self.default_options(), scope_label=identifier)
        return self.execute(sql_text, connection_descriptor, options)

    def _run(self, sql_text: str, descriptor: str,
             parameters: Optional[Dict[str, Any]]) -> QueryResult:
        result = QueryResult()
        start_time = time.perf_counter()

        try:
            columns, data = self._fetch(sql_text, descriptor, parameters)
        except ExecutionError as e:
            result.errors.append(str(e))
            logger.error("Error executing query", sql=truncate_sql(sql_text), error=str(e))
            return result

        result.success = True
        result.data = data
        result.columns = columns
        result.row_count = len(data)
        result.execution_time_ms = log_execution_time(
            logger, "execute_query", start_time, time.perf_counter(),
            row_count=result.row_count, sql=sql_text,
        )
        return result

    def _fetch(self, sql_text: str, descriptor: str,
               parameters: Optional[Dict[str, Any]]) -> Tuple[List[str], List[Dict[str, Any]]]:
        """Run the statement and return its columns and JSON-normalized rows.

        Raises ExecutionError for any failure on the target database.
        """
        try:
            with self.connections.connect(descriptor) as connection:
                try:
                    if parameters:
                        cursor = connection.execute(text(sql_text), dict(parameters))
                    else:
                        # Bare cursor.execute(sql): literal % signs reach the server as-is
                        cursor = connection.execution_options(no_parameters=True).exec_driver_sql(sql_text)

                    if cursor.returns_rows:
                        columns = [str(name) for name in cursor.keys()]
                        rows = [dict(row._mapping) for row in cursor]
                    else:
                        columns, rows = [], []
                finally:
                    # Dataclips are read-only: never commit
                    connection.rollback()

            # Normalize values (dates, decimals, uuids) to their JSON form so
            # fresh and cached results are identical
            return columns, orjson.loads(orjson.dumps(rows, default=str))
        except SQLAlchemyError as e:
            raise ExecutionError(f"Database error: {e}") from e
        except Exception as e:
            raise ExecutionError(f"Execution error: {e}") from e

    # ------------------------------------------------------------------
    # Cache administration
    # ------------------------------------------------------------------

    def invalidate(self, identifier: str) -> int:
        """Drop cached results of one dataclip."""
        if not self.cache_enabled:
            return 0
        return self.cache.invalidate_by_scope(identifier)

    def invalidate_sql(self, sql_text: str) -> int:
        if not self.cache_enabled:
            return 0
        return self.cache.invalidate_by_content(sql_text)

    def cache_stats(self) -> Dict[str, Any]:
        if not self.cache_enabled:
            return {}
        return self.cache.stats()

    def cache_top(self, n: int = 10) -> List[Dict[str, Any]]:
        if not self.cache_enabled:
            return []
        return self.cache.top(n)

    def cleanup_cache(self) -> int:
        if not self.cache_enabled:
            return 0
        return self.cache.clear_expired()

    def clear_cache(self) -> int:
        if not self.cache_enabled:
            return 0
        return self.cache.clear_all()
