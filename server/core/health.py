"""Health check utilities for process monitoring.

Provides uptime tracking and comprehensive health status for /health endpoint.
"""
import time
from typing import Dict, Any, TYPE_CHECKING

import psutil
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

if TYPE_CHECKING:
    from core.cache import CacheBackend
    from core.config import Settings
    from core.database import Database

# Module-level startup time tracking
_startup_time: float = 0.0


def set_startup_time() -> None:
    """Record the application startup time. Call once during lifespan startup."""
    global _startup_time
    _startup_time = time.time()


def get_uptime() -> float:
    """Get uptime in seconds since startup."""
    return time.time() - _startup_time if _startup_time else 0.0


def get_memory_mb() -> float:
    """Get current process memory usage in MB."""
    try:
        return psutil.Process().memory_info().rss / (1024 * 1024)
    except psutil.Error:
        return 0.0


def get_disk_percent(path: str = ".") -> float:
    """Get disk usage percentage for given path."""
    try:
        return psutil.disk_usage(path).percent
    except (psutil.Error, OSError):
        return 0.0


def get_cpu_percent() -> float:
    """Get current process CPU usage percentage."""
    try:
        return psutil.Process().cpu_percent(interval=0.1)
    except psutil.Error:
        return 0.0


def check_database(database: "Database") -> bool:
    """Check application database connectivity."""
    try:
        with database.get_session() as session:
            session.exec(text("SELECT 1"))
        return True
    except (SQLAlchemyError, RuntimeError):
        return False


def check_cache(cache_backend: "CacheBackend") -> bool:
    """Check cache backend connectivity."""
    return cache_backend.ping()


def get_health_status(
    database: "Database",
    cache_backend: "CacheBackend",
    settings: "Settings"
) -> Dict[str, Any]:
    """Get comprehensive health status for /health endpoint.

    Returns:
        Dict containing status, uptime, resource usage, and feature flags.
    """
    db_healthy = check_database(database)
    cache_healthy = check_cache(cache_backend)

    overall_status = "healthy" if (db_healthy and cache_healthy) else "degraded"

    return {
        "status": overall_status,
        "uptime_seconds": round(get_uptime(), 1),
        "memory_mb": round(get_memory_mb(), 1),
        "disk_percent": round(get_disk_percent(), 1),
        "cpu_percent": round(get_cpu_percent(), 1),
        "checks": {
            "database": db_healthy,
            "cache": cache_healthy,
        },
        "features": {
            "query_cache": settings.query_cache_enabled,
            "schema_cache": settings.schema_cache_enabled,
            "heroku": bool(settings.heroku_api_token),
        },
    }
