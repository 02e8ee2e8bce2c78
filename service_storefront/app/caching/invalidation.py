"""
Cache invalidation for catalog mutations.
"""

import asyncio
from typing import Optional, TYPE_CHECKING

from shared.errors import CacheUnavailableError
from shared.logging import get_logger

from .keys import CacheKeyScheme
from .redis_store import RedisCacheStore
from .tasks import DetachedTaskGroup

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class CacheInvalidator:
    """Evicts every cached response under a scope after a successful write.

    Must be called only once the document store has acknowledged the write;
    calling it earlier lets a concurrent reader repopulate the cache with the
    pre-write document.
    """

    def __init__(
        self,
        store: RedisCacheStore,
        key_scheme: CacheKeyScheme,
        tasks: DetachedTaskGroup,
        *,
        wait_seconds: float = 0.25,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.key_scheme = key_scheme
        self.tasks = tasks
        self.wait_seconds = wait_seconds
        self.metrics = metrics
        self.logger = get_logger("storefront.cache.invalidation")

    @property
    def default_scope(self) -> str:
        return self.key_scheme.product_scope

    async def invalidate(self, scope: Optional[str] = None) -> int:
        """Delete all keys under ``scope`` and return the count. Never raises."""
        scope = scope or self.default_scope
        try:
            deleted = await self.store.delete_by_prefix(scope)
        except CacheUnavailableError as e:
            self.logger.error("Cache invalidation failed", scope=scope, error=e.message, details=e.details)
            self._record(scope, "error")
            return 0

        self._record(scope, "ok", deleted)
        self.logger.info("Invalidated cached responses", scope=scope, count=deleted)
        return deleted

    async def invalidate_after_write(self, scope: Optional[str] = None) -> None:
        """Run invalidation detached, waiting at most ``wait_seconds`` for it.

        The wait lets a client normally read its own write; a slow cache store
        never holds the response longer than the grace period, and the
        deletion carries on in the background.
        """
        scope = scope or self.default_scope
        task = self.tasks.spawn(self.invalidate(scope), description=f"invalidate {scope}")
        if self.wait_seconds > 0:
            done, _ = await asyncio.wait({task}, timeout=self.wait_seconds)
            if not done:
                self.logger.warning(
                    "Cache invalidation still running after grace period",
                    scope=scope,
                    wait_seconds=self.wait_seconds,
                )

    def _record(self, scope: str, status: str, deleted: int = 0) -> None:
        if not self.metrics:
            return
        self.metrics.increment_counter("cache_invalidations_total", scope=scope, status=status)
        if deleted:
            self.metrics.increment_counter("cache_keys_invalidated_total", amount=deleted, scope=scope)
