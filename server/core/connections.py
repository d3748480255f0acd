"""Isolated connections to target databases.

Dataclips and schema browsing never share the application's pool: each
call builds a throwaway engine without pooling, and the connection and
engine are released on every exit path.

Connections are switched to read-only mode where the dialect supports it:
PostgreSQL sessions get ``default_transaction_read_only`` through the
``postgresql_readonly`` execution option and SQLite connections get
``PRAGMA query_only``. Other dialects rely on the keyword check and the
final rollback alone.
"""

from contextlib import contextmanager
from typing import ContextManager, Iterator, Optional, Protocol

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection
from sqlalchemy.pool import NullPool

from core.cache_keys import sanitize_descriptor
from core.logging import get_logger

logger = get_logger(__name__)


class ConnectionProvider(Protocol):
    def connect(self, descriptor: str) -> ContextManager[Connection]:
        ...


class SavedQueryResolver(Protocol):
    def resolve_sql(self, identifier: str) -> Optional[str]:
        ...


def make_read_only(connection: Connection) -> str:
    """Put a fresh connection into read-only mode. Returns how it was done."""
    dialect_name = connection.dialect.name
    if dialect_name == "postgresql":
        # Must be applied before the first statement opens a transaction
        connection.execution_options(postgresql_readonly=True)
        return "postgresql_readonly"
    if dialect_name == "sqlite":
        connection.exec_driver_sql("PRAGMA query_only = ON")
        return "query_only"
    return "none"


class EngineConnectionProvider:
    """Opens one unpooled, read-only connection per call."""

    def __init__(self, echo: bool = False):
        self.echo = echo

    @contextmanager
    def connect(self, descriptor: str) -> Iterator[Connection]:
        engine = create_engine(descriptor, poolclass=NullPool, echo=self.echo)
        try:
            with engine.connect() as connection:
                mode = make_read_only(connection)
                logger.debug("Opened isolated connection",
                             target=sanitize_descriptor(descriptor), read_only=mode)
                yield connection
        finally:
            engine.dispose()
