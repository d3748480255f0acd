import pytest

from core.cache import CacheBackend, CacheFailure, CacheHit, CacheMiss
from core.cache_keys import derive_query_key
from core.errors import CacheError

PAYLOAD = {
    "success": True,
    "data": [{"id": 1, "email": "ada@example.com"}, {"id": 2, "email": None}],
    "errors": [],
}
METADATA = {"columns": ["id", "email"], "row_count": 2, "execution_time_ms": 3.5}


def test_put_then_get_returns_payload_with_provenance(query_cache):
    key = derive_query_key("SELECT id, email FROM users")
    assert query_cache.put(key, PAYLOAD, METADATA, ttl_seconds=60)

    value = query_cache.get(key)

    assert value["data"] == PAYLOAD["data"]
    assert value["columns"] == METADATA["columns"]
    assert value["row_count"] == 2
    assert value["errors"] == []
    assert value["cached"] is True
    assert value["cache_key"] == key.value
    assert value["cached_at"].startswith("2023-11-14T22:13:20")


def test_repeated_reads_are_identical_and_count_hits(query_cache):
    key = derive_query_key("SELECT 1")
    query_cache.put(key, PAYLOAD, METADATA, ttl_seconds=60)

    first = query_cache.get(key)
    hits_after_first = query_cache.inspect(key)["hit_count"]
    second = query_cache.get(key)
    hits_after_second = query_cache.inspect(key)["hit_count"]

    assert first == second
    assert hits_after_first == 1
    assert hits_after_second == 2


def test_missing_key_is_a_miss(query_cache):
    result = query_cache.lookup(derive_query_key("SELECT 'nothing'"))

    assert isinstance(result, CacheMiss)
    assert result.reason == "absent"
    assert not result.hit


def test_entry_is_live_until_ttl_and_removed_after(query_cache, clock):
    key = derive_query_key("SELECT 1")
    query_cache.put(key, PAYLOAD, METADATA, ttl_seconds=100)

    clock.advance(99)
    assert isinstance(query_cache.lookup(key), CacheHit)

    clock.advance(2)
    result = query_cache.lookup(key)
    assert isinstance(result, CacheMiss)
    assert result.reason == "expired"
    assert query_cache.inspect(key) is None


def test_put_replaces_existing_entry(query_cache):
    key = derive_query_key("SELECT 1")
    query_cache.put(key, PAYLOAD, METADATA, ttl_seconds=60)
    query_cache.get(key)

    replacement = {"success": True, "data": [{"id": 9}], "errors": []}
    query_cache.put(key, replacement, {"columns": ["id"], "row_count": 1}, ttl_seconds=60)

    entry = query_cache.inspect(key)
    assert entry["hit_count"] == 0
    assert query_cache.get(key)["data"] == [{"id": 9}]


def test_invalidate_by_scope_only_touches_that_scope(query_cache):
    query_cache.put(derive_query_key("SELECT 1", scope_label="A"), PAYLOAD, METADATA, 60)
    query_cache.put(derive_query_key("SELECT 2", scope_label="A"), PAYLOAD, METADATA, 60)
    survivor = derive_query_key("SELECT 3", scope_label="B")
    query_cache.put(survivor, PAYLOAD, METADATA, 60)

    assert query_cache.invalidate_by_scope("A") == 2
    assert query_cache.get(survivor) is not None


def test_invalidate_by_content_matches_normalized_sql(query_cache):
    query_cache.put(derive_query_key("SELECT * FROM users"), PAYLOAD, METADATA, 60)
    query_cache.put(derive_query_key("SELECT * FROM users", {"limit": 1}), PAYLOAD, METADATA, 60)
    query_cache.put(derive_query_key("SELECT * FROM orders"), PAYLOAD, METADATA, 60)

    assert query_cache.invalidate_by_content("  select * from USERS ") == 2
    assert query_cache.stats()["total_entries"] == 1


def test_clear_expired_and_clear_all(query_cache, clock):
    query_cache.put(derive_query_key("SELECT 1"), PAYLOAD, METADATA, ttl_seconds=10)
    query_cache.put(derive_query_key("SELECT 2"), PAYLOAD, METADATA, ttl_seconds=1000)

    clock.advance(11)
    assert query_cache.clear_expired() == 1
    assert query_cache.clear_all() == 1
    assert query_cache.stats()["total_entries"] == 0


def test_stats_and_top(query_cache, clock):
    hot = derive_query_key("SELECT 'hot'")
    cold = derive_query_key("SELECT 'cold'")
    short = derive_query_key("SELECT 'short'")
    query_cache.put(hot, PAYLOAD, METADATA, ttl_seconds=600)
    query_cache.put(cold, PAYLOAD, METADATA, ttl_seconds=600)
    query_cache.put(short, PAYLOAD, METADATA, ttl_seconds=5)
    for _ in range(3):
        query_cache.get(hot)
    query_cache.get(cold)
    clock.advance(10)

    stats = query_cache.stats()
    assert stats["total_entries"] == 3
    assert stats["active_entries"] == 2
    assert stats["expired_entries"] == 1
    assert stats["total_hits"] == 4
    assert stats["max_hits"] == 3
    assert stats["avg_hits_per_entry"] == round(4 / 3, 2)
    assert stats["total_payload_bytes"] > 0
    # 4 hits and 3 writes inside the window
    assert stats["hit_ratio"] == round(4 / 7 * 100, 2)

    top = query_cache.top(2)
    assert [entry["cache_key"] for entry in top] == [hot.value, cold.value]
    assert top[0]["hit_count"] == 3
    assert "payload" not in top[0]


def test_select_42_lifecycle(query_cache, clock):
    key = derive_query_key("SELECT 42")
    query_cache.put(key, {"success": True, "data": [{"answer": 42}], "errors": []},
                    {"columns": ["answer"], "row_count": 1}, ttl_seconds=3600)

    clock.advance(10)
    value = query_cache.get(key)
    assert value["cached"] is True
    assert value["data"] == [{"answer": 42}]
    assert query_cache.clear_expired() == 0

    clock.advance(3591)
    assert query_cache.get(key) is None
    assert query_cache.inspect(key) is None


def test_reads_on_a_stopped_backend_fail_softly(query_cache, cache_backend):
    key = derive_query_key("SELECT 1")
    cache_backend.shutdown()

    result = query_cache.lookup(key)

    assert isinstance(result, CacheFailure)
    assert isinstance(result.error, CacheError)
    assert query_cache.get(key) is None
    assert query_cache.put(key, PAYLOAD, METADATA, 60) is False
    assert query_cache.clear_all() == 0


def test_backend_rejects_non_sqlite_urls():
    with pytest.raises(CacheError):
        CacheBackend("postgresql://localhost/cache").startup()


def test_backend_ping(cache_backend):
    assert cache_backend.ping()
    cache_backend.shutdown()
    assert not cache_backend.ping()
