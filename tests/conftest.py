import sqlite3
from contextlib import contextmanager

import pytest
from fastapi.testclient import TestClient

from core.cache import CacheBackend, ResultCacheStore
from core.cache_keys import connection_content_hash, query_content_hash
from core.cache_stats import CacheStatsRecorder
from core.config import Settings
from core.connections import EngineConnectionProvider
from core.container import container
from core.database import Database
from models.cache import QueryResultEntry, SchemaCacheEntry
from services.query_guard import QueryExecutionGuard
from services.schema_introspector import SchemaIntrospector

T0 = 1_700_000_000.0


class FakeClock:
    """Manually advanced replacement for time.time."""

    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class CountingConnectionProvider(EngineConnectionProvider):
    """Real connections, plus a count of how many were opened."""

    def __init__(self):
        super().__init__()
        self.opened = 0

    @contextmanager
    def connect(self, descriptor):
        self.opened += 1
        with super().connect(descriptor) as connection:
            yield connection


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache_backend():
    backend = CacheBackend("sqlite://")
    backend.startup()
    yield backend
    backend.shutdown()


@pytest.fixture
def cache_stats(cache_backend, clock):
    return CacheStatsRecorder(cache_backend, clock=clock)


@pytest.fixture
def query_cache(cache_backend, cache_stats, clock):
    return ResultCacheStore(cache_backend, QueryResultEntry, cache_stats,
                            "query_cache", query_content_hash, clock=clock)


@pytest.fixture
def schema_cache(cache_backend, cache_stats, clock):
    return ResultCacheStore(cache_backend, SchemaCacheEntry, cache_stats,
                            "schema_cache", connection_content_hash, clock=clock)


@pytest.fixture
def target_url(tmp_path):
    """SQLite file with a small users/orders dataset to run dataclips against."""
    path = tmp_path / "target.db"
    conn = sqlite3.connect(path)
    conn.executescript("""
        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            email VARCHAR(120) NOT NULL,
            bio TEXT,
            active BOOLEAN DEFAULT 1,
            created_at DATETIME
        );
        CREATE TABLE orders (
            id INTEGER PRIMARY KEY,
            user_id INTEGER NOT NULL,
            amount NUMERIC(10, 2)
        );
        INSERT INTO users (id, email, bio, active, created_at) VALUES
            (1, 'ada@example.com', 'insert coin', 1, '2024-01-05 10:00:00'),
            (2, 'grace@example.com', NULL, 1, '2024-02-11 09:30:00'),
            (3, 'linus@example.com', NULL, 0, '2024-03-20 18:15:00');
        INSERT INTO orders (id, user_id, amount) VALUES (1, 1, 19.99), (2, 2, 5.00);
    """)
    conn.commit()
    conn.close()
    return f"sqlite:///{path}"


@pytest.fixture
def connections():
    return CountingConnectionProvider()


@pytest.fixture
def database(tmp_path):
    db = Database(Settings(database_url=f"sqlite:///{tmp_path / 'app.db'}"))
    db.startup()
    yield db
    db.shutdown()


@pytest.fixture
def guard(query_cache, connections, database, target_url):
    return QueryExecutionGuard(query_cache, connections, database, default_descriptor=target_url)


@pytest.fixture
def introspector(schema_cache, connections, target_url):
    return SchemaIntrospector(schema_cache, connections, default_descriptor=target_url)


@pytest.fixture
def settings(tmp_path, target_url):
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'app.db'}",
        target_database_url=target_url,
        cache_database_url="sqlite://",
        cleanup_enabled=False,
        heroku_api_token=None,
        heroku_app_name=None,
    )


@pytest.fixture
def client(settings):
    """API client backed by a fresh container."""
    from main import app

    container.settings.override(settings)
    container.reset_singletons()
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        container.settings.reset_override()
        container.reset_singletons()
