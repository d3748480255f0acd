"""Target database schema browsing with schema-cache write-through."""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import inspect, text, types as sqltypes
from sqlalchemy.engine import Connection, Dialect
from sqlalchemy.exc import SQLAlchemyError

from core.cache import CacheHit, ResultCacheStore
from core.cache_keys import derive_connection_key, sanitize_descriptor
from core.connections import ConnectionProvider
from core.errors import ValidationError
from core.logging import get_logger
from services.query_guard import CacheOptions

logger = get_logger(__name__)

SYSTEM_TABLE_PREFIXES = ("pg_", "sql_", "sqlite_")

# PostgreSQL catalog query used when reflection fails for a table
FALLBACK_COLUMNS_SQL = text("""
    SELECT
        c.column_name,
        c.data_type,
        c.is_nullable,
        c.column_default,
        CASE WHEN tc.constraint_type = 'PRIMARY KEY' THEN true ELSE false END AS is_primary_key
    FROM information_schema.columns c
    LEFT JOIN information_schema.key_column_usage kcu
        ON c.table_name = kcu.table_name AND c.column_name = kcu.column_name
    LEFT JOIN information_schema.table_constraints tc
        ON kcu.constraint_name = tc.constraint_name AND tc.constraint_type = 'PRIMARY KEY'
    WHERE c.table_name = :table_name AND c.table_schema = 'public'
    ORDER BY c.ordinal_position
""")


@dataclass
class SchemaResult:
    """Structured outcome of a schema fetch, cached or fresh."""
    success: bool = False
    schema: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    fetch_time_ms: float = 0.0
    cached: bool = False
    cache_key: Optional[str] = None
    cached_at: Optional[str] = None

    def payload(self) -> Dict[str, Any]:
        return {"success": self.success, "schema": self.schema, "errors": self.errors}

    def metadata(self) -> Dict[str, Any]:
        return {
            "table_count": len(self.schema),
            "column_count": sum(table["column_count"] for table in self.schema.values()),
            "fetch_time_ms": self.fetch_time_ms,
        }

    def to_dict(self) -> Dict[str, Any]:
        result = {**self.payload(), "fetch_time_ms": self.fetch_time_ms, "cached": self.cached}
        if self.cached:
            result["cache_key"] = self.cache_key
            result["cached_at"] = self.cached_at
        return result

    @classmethod
    def from_cache(cls, value: Dict[str, Any]) -> "SchemaResult":
        return cls(
            success=value.get("success", True),
            schema=value.get("schema", {}),
            errors=value.get("errors", []),
            fetch_time_ms=value.get("fetch_time_ms", 0.0),
            cached=True,
            cache_key=value.get("cache_key"),
            cached_at=value.get("cached_at"),
        )


def _raw_type_name(column_type: Any, dialect: Optional[Dialect]) -> str:
    if dialect is not None:
        try:
            return column_type.compile(dialect=dialect).lower()
        except SQLAlchemyError:
            pass
    return getattr(column_type, "__visit_name__", type(column_type).__name__).lower()


def normalize_type(column_type: Any, dialect: Optional[Dialect] = None) -> str:
    """Display label for a reflected column type."""
    # Order matters: Text subclasses String, Double subclasses Float,
    # Float subclasses Numeric, BigInteger subclasses Integer.
    if isinstance(column_type, sqltypes.Text):
        return "text"
    if isinstance(column_type, sqltypes.String):
        length = column_type.length
        return f"varchar({length})" if length else "varchar"
    if isinstance(column_type, sqltypes.BigInteger):
        return "bigint"
    if isinstance(column_type, sqltypes.Integer):
        return "integer"
    if isinstance(column_type, sqltypes.Double):
        return "double"
    if isinstance(column_type, sqltypes.Float):
        return "float"
    if isinstance(column_type, sqltypes.Numeric):
        precision, scale = column_type.precision, column_type.scale
        if precision is not None and scale is not None:
            return f"decimal({precision},{scale})"
        if precision is not None:
            return f"decimal({precision})"
        return "decimal"
    if isinstance(column_type, sqltypes.Boolean):
        return "boolean"
    if isinstance(column_type, sqltypes.DateTime):
        return "timestamp"
    if isinstance(column_type, sqltypes.Date):
        return "date"
    if isinstance(column_type, sqltypes.Time):
        return "time"
    if isinstance(column_type, sqltypes.Uuid):
        return "uuid"
    if isinstance(column_type, sqltypes.JSON):
        return column_type.__visit_name__.lower()
    return _raw_type_name(column_type, dialect)


class SchemaIntrospector:
    """Enumerates tables and columns of a target database."""

    def __init__(
        self,
        cache: ResultCacheStore,
        connections: ConnectionProvider,
        default_descriptor: Optional[str] = None,
        cache_enabled: bool = True,
        cache_ttl: int = 7200,
    ):
        self.cache = cache
        self.connections = connections
        self.default_descriptor = default_descriptor
        self.cache_enabled = cache_enabled
        self.cache_ttl = cache_ttl

    def default_options(self) -> CacheOptions:
        return CacheOptions(enabled=self.cache_enabled, ttl_seconds=self.cache_ttl)

    def fetch(self, connection_descriptor: Optional[str] = None,
              cache_options: Optional[CacheOptions] = None) -> SchemaResult:
        """Fetch the schema of the target database, using the cache when enabled."""
        descriptor = connection_descriptor or self.default_descriptor
        if descriptor is None or not descriptor.strip():
            raise ValidationError("Database connection URL is required")
        options = cache_options or self.default_options()
        target = sanitize_descriptor(descriptor)

        key = None
        if options.enabled:
            key = derive_connection_key(descriptor)
            lookup = self.cache.lookup(key)
            if isinstance(lookup, CacheHit):
                logger.info("Schema cache HIT", target=target)
                return SchemaResult.from_cache(lookup.value)

        result = SchemaResult()
        start_time = time.perf_counter()

        try:
            with self.connections.connect(descriptor) as connection:
                try:
                    tables = self._user_tables(connection)
                    result.schema = {name: self._table_schema(connection, name) for name in tables}
                finally:
                    connection.rollback()

            result.success = True
            result.fetch_time_ms = round((time.perf_counter() - start_time) * 1000, 2)
            logger.info("Fetched schema", table_count=len(result.schema),
                        fetch_time_ms=result.fetch_time_ms, target=target)
        except SQLAlchemyError as e:
            result.schema = {}
            result.errors.append(f"Database error: {e}")
            logger.error("Error fetching schema", target=target, error=str(e))
        except Exception as e:
            result.schema = {}
            result.errors.append(f"Schema fetch error: {e}")
            logger.error("Error fetching schema", target=target, error=str(e))

        if key is not None and result.success:
            if self.cache.put(key, result.payload(), result.metadata(), options.ttl_seconds):
                logger.info("Schema cache WRITE", target=target)

        return result

    def _user_tables(self, connection: Connection) -> List[str]:
        names = inspect(connection).get_table_names()
        return sorted(name for name in names if not name.lower().startswith(SYSTEM_TABLE_PREFIXES))

    def _table_schema(self, connection: Connection, table_name: str) -> Dict[str, Any]:
        try:
            columns = self._reflect_columns(connection, table_name)
        except SQLAlchemyError as e:
            logger.warning("Reflection failed, using catalog fallback", table=table_name, error=str(e))
            connection.rollback()
            columns = self._catalog_columns(connection, table_name)

        return {"columns": columns, "column_count": len(columns)}

    def _reflect_columns(self, connection: Connection, table_name: str) -> List[Dict[str, Any]]:
        inspector = inspect(connection)
        primary_keys = set(inspector.get_pk_constraint(table_name).get("constrained_columns") or [])

        return [
            {
                "name": column["name"],
                "type": normalize_type(column["type"], connection.dialect),
                "nullable": column.get("nullable", True),
                "primary_key": column["name"] in primary_keys,
                "default": column.get("default"),
            }
            for column in inspector.get_columns(table_name)
        ]

    def _catalog_columns(self, connection: Connection, table_name: str) -> List[Dict[str, Any]]:
        try:
            rows = connection.execute(FALLBACK_COLUMNS_SQL, {"table_name": table_name}).mappings().all()
        except SQLAlchemyError as e:
            logger.warning("Catalog fallback failed", table=table_name, error=str(e))
            connection.rollback()
            return []

        return [
            {
                "name": row["column_name"],
                "type": row["data_type"],
                "nullable": row["is_nullable"] == "YES",
                "primary_key": bool(row["is_primary_key"]),
                "default": row["column_default"],
            }
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Cache administration
    # ------------------------------------------------------------------

    def cache_stats(self) -> Dict[str, Any]:
        if not self.cache_enabled:
            return {}
        return self.cache.stats()

    def cleanup_cache(self) -> int:
        if not self.cache_enabled:
            return 0
        return self.cache.clear_expired()

    def clear_cache(self) -> int:
        if not self.cache_enabled:
            return 0
        return self.cache.clear_all()

    def invalidate(self, connection_descriptor: str) -> int:
        if not self.cache_enabled:
            return 0
        return self.cache.invalidate_by_content(connection_descriptor)
