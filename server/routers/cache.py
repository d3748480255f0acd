"""Cache administration routes."""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from core.cache_stats import CacheStatsRecorder
from core.config import Settings
from core.container import container
from core.logging import get_logger
from services.query_guard import QueryExecutionGuard
from services.schema_introspector import SchemaIntrospector

logger = get_logger(__name__)
router = APIRouter(prefix="/api/cache", tags=["cache"])


# ============================================================================
# Query result cache
# ============================================================================

@router.get("/stats")
def query_cache_stats(
    guard: QueryExecutionGuard = Depends(lambda: container.query_guard()),
    stats: CacheStatsRecorder = Depends(lambda: container.cache_stats())
):
    return {
        "success": True,
        "enabled": guard.cache_enabled,
        "stats": guard.cache_stats(),
        "metrics": stats.counts(),
    }


@router.get("/top")
def query_cache_top(
    limit: int = Query(default=10, ge=1, le=100),
    guard: QueryExecutionGuard = Depends(lambda: container.query_guard())
):
    """Most frequently served cached queries."""
    return {"success": True, "entries": guard.cache_top(limit)}


@router.post("/cleanup")
def query_cache_cleanup(
    guard: QueryExecutionGuard = Depends(lambda: container.query_guard()),
    stats: CacheStatsRecorder = Depends(lambda: container.cache_stats()),
    settings: Settings = Depends(lambda: container.settings())
):
    """Sweep expired query results and prune old metric events."""
    deleted = guard.cleanup_cache()
    pruned = stats.prune(settings.cache_metrics_retention)
    logger.info("Query cache cleanup", deleted_count=deleted, pruned_metrics=pruned)
    return {"success": True, "deleted_count": deleted, "pruned_metrics": pruned}


@router.delete("")
def query_cache_clear(guard: QueryExecutionGuard = Depends(lambda: container.query_guard())):
    deleted = guard.clear_cache()
    return {"success": True, "deleted_count": deleted}


@router.delete("/dataclip/{slug}")
def query_cache_invalidate(
    slug: str,
    guard: QueryExecutionGuard = Depends(lambda: container.query_guard())
):
    """Drop cached results of one dataclip."""
    deleted = guard.invalidate(slug)
    return {"success": True, "slug": slug, "deleted_count": deleted}


class InvalidateSQLRequest(BaseModel):
    sql: str


@router.post("/invalidate")
def query_cache_invalidate_sql(
    request: InvalidateSQLRequest,
    guard: QueryExecutionGuard = Depends(lambda: container.query_guard())
):
    """Drop every cached result of a SQL text, whatever its parameters or scope."""
    deleted = guard.invalidate_sql(request.sql)
    logger.info("Query cache invalidated by SQL", deleted_count=deleted)
    return {"success": True, "deleted_count": deleted}


# ============================================================================
# Schema cache
# ============================================================================

@router.get("/schema/stats")
def schema_cache_stats(
    introspector: SchemaIntrospector = Depends(lambda: container.schema_introspector())
):
    return {
        "success": True,
        "enabled": introspector.cache_enabled,
        "stats": introspector.cache_stats(),
    }


@router.post("/schema/cleanup")
def schema_cache_cleanup(
    introspector: SchemaIntrospector = Depends(lambda: container.schema_introspector())
):
    deleted = introspector.cleanup_cache()
    return {"success": True, "deleted_count": deleted}


@router.delete("/schema")
def schema_cache_clear(
    introspector: SchemaIntrospector = Depends(lambda: container.schema_introspector())
):
    deleted = introspector.clear_cache()
    return {"success": True, "deleted_count": deleted}
