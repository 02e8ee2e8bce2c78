"""
Redis client for the read-through response cache.
"""

import asyncio
from typing import List, Optional, TYPE_CHECKING

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError, RedisError, TimeoutError as RedisTimeoutError

from shared.errors import CacheUnavailableError
from shared.logging import get_logger
from shared.retry import RetryConfig, calculate_delay

from .keys import escape_glob

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.config import BaseConfig
    from shared.metrics import MetricsCollector


# Transport-level failures; anything else is a programming error and propagates
CACHE_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


class RedisCacheStore:
    """Fail-open wrapper around a shared Redis instance.

    Reads degrade to misses and writes are dropped while the store is
    unreachable. A background loop reconnects with capped exponential
    backoff; request handlers never wait on it.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        db: int = 0,
        tls: bool = False,
        connect_timeout: float = 1.0,
        socket_timeout: float = 1.0,
        scan_count: int = 100,
        delete_batch_size: int = 500,
        reconnect: Optional[RetryConfig] = None,
        client: Optional[redis.Redis] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.logger = get_logger("storefront.cache.redis")
        self.metrics = metrics
        self.scan_count = scan_count
        self.delete_batch_size = delete_batch_size
        self.reconnect_config = reconnect or RetryConfig(base_delay=0.05, max_delay=2.0)
        self.redis = client if client is not None else redis.Redis(
            host=host,
            port=port,
            db=db,
            username=username,
            password=password,
            ssl=tls,
            socket_connect_timeout=connect_timeout,
            socket_timeout=socket_timeout,
            health_check_interval=30,
        )

        # Optimistic until a call proves otherwise
        self._available = True
        self._reconnect_task: Optional[asyncio.Task] = None
        self._closed = False

    @classmethod
    def from_config(
        cls,
        config: "BaseConfig",
        *,
        client: Optional[redis.Redis] = None,
        metrics: Optional["MetricsCollector"] = None,
    ) -> "RedisCacheStore":
        """Build a store from service configuration."""
        return cls(
            config.redis_host,
            config.redis_port,
            username=config.redis_username,
            password=config.redis_password,
            db=config.redis_db,
            tls=bool(config.redis_tls),
            connect_timeout=config.redis_connect_timeout,
            socket_timeout=config.redis_socket_timeout,
            scan_count=config.cache_scan_count,
            delete_batch_size=config.cache_delete_batch_size,
            reconnect=RetryConfig(
                base_delay=config.cache_reconnect_base_delay,
                max_delay=config.cache_reconnect_max_delay,
            ),
            client=client,
            metrics=metrics,
        )

    @property
    def available(self) -> bool:
        return self._available

    async def start(self) -> None:
        """Probe the connection. Never raises; an outage starts the reconnect loop."""
        self._closed = False
        try:
            await self.redis.ping()
        except CACHE_ERRORS as e:
            self.logger.warning("Cache store unreachable at startup, serving without cache", error=str(e))
            self._mark_unavailable("start", e)
            return

        self._set_available(True)
        self.logger.info("Cache store connected")

    async def stop(self) -> None:
        """Stop reconnecting and close the connection pool."""
        self._closed = True
        if self._reconnect_task:
            self._reconnect_task.cancel()
            try:
                await self._reconnect_task
            except asyncio.CancelledError:
                pass
            self._reconnect_task = None

        try:
            await self.redis.aclose()
        except CACHE_ERRORS as e:
            self.logger.warning("Error closing cache store", error=str(e))
        self.logger.info("Cache store stopped")

    async def get(self, key: str) -> Optional[bytes]:
        """Return the stored payload, or None on miss or any transport error."""
        if not self._available:
            return None

        try:
            value = await self.redis.get(key)
        except CACHE_ERRORS as e:
            self.logger.warning("Cache lookup failed, treating as miss", key=key, error=str(e))
            self._mark_unavailable("get", e)
            return None

        if value is None:
            return None
        if isinstance(value, str):
            value = value.encode("utf-8")
        return value

    async def set_with_expiry(self, key: str, value: bytes, ttl_seconds: int) -> bool:
        """Store ``value`` under ``key`` for ``ttl_seconds``. Best-effort."""
        if not self._available:
            return False

        try:
            await self.redis.set(key, value, ex=ttl_seconds)
        except CACHE_ERRORS as e:
            self.logger.error("Cache write failed", key=key, error=str(e))
            self._mark_unavailable("set", e)
            return False

        self.logger.debug("Cached response", key=key, ttl=ttl_seconds)
        return True

    async def delete(self, key: str) -> bool:
        """Delete a single key. Best-effort."""
        try:
            removed = await self.redis.delete(key)
        except CACHE_ERRORS as e:
            self.logger.warning("Cache delete failed", key=key, error=str(e))
            self._mark_unavailable("delete", e)
            return False
        return bool(removed)

    async def delete_by_prefix(self, prefix: str) -> int:
        """Delete every key starting with ``prefix`` and return how many were removed.

        Keys are enumerated with incremental SCAN rounds of ``scan_count`` and
        deleted in batches of ``delete_batch_size``. Attempted even while the
        store is flagged unavailable. Raises CacheUnavailableError on
        transport failure.
        """
        pattern = f"{escape_glob(prefix)}*"
        deleted = 0
        batch: List[bytes] = []

        try:
            async for key in self.redis.scan_iter(match=pattern, count=self.scan_count):
                batch.append(key)
                if len(batch) >= self.delete_batch_size:
                    deleted += await self.redis.delete(*batch)
                    batch = []
            if batch:
                deleted += await self.redis.delete(*batch)
        except CACHE_ERRORS as e:
            self._mark_unavailable("delete_by_prefix", e)
            raise CacheUnavailableError(
                "delete_by_prefix",
                details={"prefix": prefix, "deleted": deleted, "error": str(e)},
            ) from e

        if not self._available:
            # A full scan just succeeded
            self._set_available(True)
        return deleted

    async def health_check(self) -> bool:
        """Check Redis health."""
        try:
            await self.redis.ping()
        except CACHE_ERRORS:
            return False
        return True

    def _set_available(self, value: bool) -> None:
        self._available = value
        if self.metrics:
            self.metrics.set_gauge("cache_available", 1 if value else 0)

    def _mark_unavailable(self, operation: str, error: BaseException) -> None:
        if self.metrics:
            self.metrics.increment_counter("cache_store_errors_total", operation=operation)

        # Server-side command errors do not mean the store is unreachable
        if not isinstance(error, (RedisConnectionError, RedisTimeoutError, OSError, asyncio.TimeoutError)):
            return

        self._set_available(False)
        if self._closed:
            return
        if self._reconnect_task is None or self._reconnect_task.done():
            try:
                self._reconnect_task = asyncio.get_running_loop().create_task(self._reconnect_loop())
            except RuntimeError:
                # No running loop (synchronous teardown); next call retries
                self._reconnect_task = None

    async def _reconnect_loop(self) -> None:
        attempt = 0
        while not self._closed:
            attempt += 1
            delay = calculate_delay(attempt, self.reconnect_config)
            await asyncio.sleep(delay)
            try:
                await self.redis.ping()
            except CACHE_ERRORS as e:
                self.logger.debug("Cache reconnect attempt failed", attempt=attempt, delay=delay, error=str(e))
                continue

            self._set_available(True)
            self.logger.info("Cache store reconnected", attempts=attempt)
            return
