"""Append-only cache metric log with trailing-window hit ratios."""

import time
from typing import Callable, Dict, Optional, TYPE_CHECKING

from sqlalchemy import delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select

from core.errors import CacheError
from core.logging import get_logger
from models.cache import CacheMetric

if TYPE_CHECKING:
    from core.cache import CacheBackend

logger = get_logger(__name__)

DEFAULT_WINDOW_SECONDS = 3600


class CacheStatsRecorder:
    """Records cache metric events. Recording is best-effort."""

    def __init__(self, backend: "CacheBackend", clock: Callable[[], float] = time.time,
                 window_seconds: int = DEFAULT_WINDOW_SECONDS):
        self.backend = backend
        self.clock = clock
        self.window_seconds = window_seconds

    def record(self, metric_name: str, value: float = 1.0) -> None:
        """Append a metric event. Failures never reach the caller."""
        try:
            with self.backend.session() as session:
                session.add(CacheMetric(metric_name=metric_name, value=value, recorded_at=self.clock()))
                session.commit()
        except (SQLAlchemyError, CacheError) as e:
            logger.debug("Cache metric not recorded", metric=metric_name, error=str(e))

    def counts(self, window: Optional[int] = None) -> Dict[str, int]:
        """Number of events per metric within the trailing window."""
        since = self.clock() - (window or self.window_seconds)
        try:
            with self.backend.session() as session:
                stmt = (
                    select(CacheMetric.metric_name, func.count(CacheMetric.id))
                    .where(CacheMetric.recorded_at >= since)
                    .group_by(CacheMetric.metric_name)
                )
                return {name: count for name, count in session.exec(stmt).all()}
        except (SQLAlchemyError, CacheError) as e:
            logger.warning("Failed to count cache metrics", error=str(e))
            return {}

    def hit_ratio(self, hit_metric: str, write_metric: str, window: Optional[int] = None) -> float:
        """Percentage of hits among hits and writes in the trailing window."""
        counts = self.counts(window)
        hits = counts.get(hit_metric, 0)
        writes = counts.get(write_metric, 0)
        if hits + writes == 0:
            return 0.0
        return round(hits / (hits + writes) * 100, 2)

    def prune(self, older_than_seconds: int) -> int:
        """Delete events older than the given age. Returns count deleted."""
        cutoff = self.clock() - older_than_seconds
        try:
            with self.backend.session() as session:
                result = session.exec(delete(CacheMetric).where(CacheMetric.recorded_at < cutoff))
                session.commit()
                return result.rowcount or 0
        except (SQLAlchemyError, CacheError) as e:
            logger.warning("Failed to prune cache metrics", error=str(e))
            return 0
