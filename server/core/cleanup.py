"""Periodic cache sweeper for long-running workers.

Expiry is otherwise lazy, so entries that are never read again would stay
in the cache until an admin cleanup. All configuration from Settings.
"""
import asyncio
from typing import Dict, Optional, TYPE_CHECKING

from core.logging import get_logger

if TYPE_CHECKING:
    from core.cache_stats import CacheStatsRecorder
    from core.config import Settings
    from services.query_guard import QueryExecutionGuard
    from services.schema_introspector import SchemaIntrospector

logger = get_logger(__name__)


class CleanupService:
    """Background cleanup of expired cache state.

    Periodically cleans up:
    - Expired query-result entries
    - Expired schema entries
    - Cache metric events older than the retention period
    """

    def __init__(
        self,
        query_guard: "QueryExecutionGuard",
        schema_introspector: "SchemaIntrospector",
        cache_stats: "CacheStatsRecorder",
        settings: "Settings"
    ):
        self.query_guard = query_guard
        self.schema_introspector = schema_introspector
        self.cache_stats = cache_stats
        self.settings = settings
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Start the cleanup background task."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._cleanup_loop())
        logger.info(
            "Cleanup service started",
            interval=self.settings.cleanup_interval,
            metrics_retention=self.settings.cache_metrics_retention
        )

    async def stop(self) -> None:
        """Stop the cleanup service gracefully."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Cleanup service stopped")

    async def _cleanup_loop(self) -> None:
        """Main cleanup loop - runs at configured interval."""
        while self._running:
            await asyncio.sleep(self.settings.cleanup_interval)
            try:
                # Cache access is blocking, keep it off the event loop
                await asyncio.to_thread(self.run_once)
            except Exception as e:
                logger.error("Cleanup failed", error=str(e))

    def run_once(self) -> Dict[str, int]:
        """Run every cleanup task once and return the deleted counts."""
        results = {
            "expired_queries": self.query_guard.cleanup_cache(),
            "expired_schemas": self.schema_introspector.cleanup_cache(),
            "old_metrics": self.cache_stats.prune(self.settings.cache_metrics_retention),
        }

        # Only log if something was cleaned up
        if sum(results.values()) > 0:
            logger.info("Cleanup completed", **results)
        return results
