"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.cache import CacheBackend, ResultCacheStore
from core.cache_keys import connection_content_hash, query_content_hash
from core.cache_stats import CacheStatsRecorder
from core.cleanup import CleanupService
from core.config import Settings
from core.connections import EngineConnectionProvider
from core.database import Database
from models.cache import QueryResultEntry, SchemaCacheEntry
from services.addon_sync import AddonSyncService
from services.dataclips import DataclipService
from services.heroku import HerokuClient
from services.query_guard import QueryExecutionGuard
from services.schema_introspector import SchemaIntrospector


class Container(containers.DeclarativeContainer):
    """Application dependency injection container.

    Each worker process builds its own container, so the cache backend
    singleton is process-local.
    """

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Application database (dataclips, add-ons)
    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Embedded cache storage shared by both result caches
    cache_backend = providers.Singleton(
        CacheBackend,
        url=settings.provided.cache_database_url
    )

    cache_stats = providers.Singleton(
        CacheStatsRecorder,
        backend=cache_backend,
        window_seconds=settings.provided.cache_stats_window
    )

    query_cache = providers.Singleton(
        ResultCacheStore,
        backend=cache_backend,
        entry_model=QueryResultEntry,
        stats=cache_stats,
        metric_prefix="query_cache",
        content_hasher=query_content_hash
    )

    schema_cache = providers.Singleton(
        ResultCacheStore,
        backend=cache_backend,
        entry_model=SchemaCacheEntry,
        stats=cache_stats,
        metric_prefix="schema_cache",
        content_hasher=connection_content_hash
    )

    connections = providers.Singleton(
        EngineConnectionProvider,
        echo=settings.provided.database_echo
    )

    # Services
    query_guard = providers.Singleton(
        QueryExecutionGuard,
        cache=query_cache,
        connections=connections,
        resolver=database,
        default_descriptor=settings.provided.query_target_url,
        cache_enabled=settings.provided.query_cache_enabled,
        cache_ttl=settings.provided.query_cache_ttl
    )

    schema_introspector = providers.Singleton(
        SchemaIntrospector,
        cache=schema_cache,
        connections=connections,
        default_descriptor=settings.provided.query_target_url,
        cache_enabled=settings.provided.schema_cache_enabled,
        cache_ttl=settings.provided.schema_cache_ttl
    )

    dataclip_service = providers.Factory(
        DataclipService,
        database=database,
        query_guard=query_guard
    )

    cleanup = providers.Singleton(
        CleanupService,
        query_guard=query_guard,
        schema_introspector=schema_introspector,
        cache_stats=cache_stats,
        settings=settings
    )

    heroku_client = providers.Factory(
        HerokuClient,
        settings=settings
    )

    addon_sync = providers.Factory(
        AddonSyncService,
        database=database,
        settings=settings,
        client_factory=heroku_client.provider
    )


# Global container instance
container = Container()
