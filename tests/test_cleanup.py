from core.cache_keys import derive_connection_key, derive_query_key
from core.cleanup import CleanupService
from core.config import Settings

PAYLOAD = {"success": True, "data": [], "errors": []}


def test_run_once_sweeps_both_caches_and_old_metrics(guard, introspector, query_cache,
                                                      schema_cache, cache_stats, clock):
    query_cache.put(derive_query_key("SELECT 1"), PAYLOAD, {}, ttl_seconds=60)
    query_cache.put(derive_query_key("SELECT 2"), PAYLOAD, {}, ttl_seconds=86400 * 2)
    schema_cache.put(derive_connection_key("sqlite:///a.db"), PAYLOAD, {}, ttl_seconds=60)
    clock.advance(86400 + 1)

    settings = Settings(cache_metrics_retention=86400, cleanup_interval=60)
    service = CleanupService(guard, introspector, cache_stats, settings)

    results = service.run_once()

    assert results["expired_queries"] == 1
    assert results["expired_schemas"] == 1
    # The three write events are older than the retention period
    assert results["old_metrics"] == 3
    assert query_cache.stats()["total_entries"] == 1
