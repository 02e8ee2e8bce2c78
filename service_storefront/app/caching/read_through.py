"""
Read-through response cache for FastAPI read endpoints.
"""

import functools
import json
from typing import Any, Callable, Optional, TYPE_CHECKING

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response

from shared.logging import get_logger

from .keys import CacheKeyScheme
from .redis_store import RedisCacheStore
from .tasks import DetachedTaskGroup

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


DEFAULT_TTL_SECONDS = 300
JSON_MEDIA_TYPE = "application/json"
CACHE_STATUS_HEADER = "X-Cache"


class ReadThroughCache:
    """Wraps read handlers so their JSON responses are served from Redis.

    On a hit the stored body is returned with status 200 and the handler is
    not called. On a miss the handler runs once; a 2xx JSON body is stored by
    a detached task and returned unchanged. Only successful bodies are stored,
    so replaying them as 200 is faithful.
    """

    def __init__(
        self,
        store: RedisCacheStore,
        key_scheme: CacheKeyScheme,
        tasks: DetachedTaskGroup,
        *,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.store = store
        self.key_scheme = key_scheme
        self.tasks = tasks
        self.default_ttl = default_ttl
        self.metrics = metrics
        self.logger = get_logger("storefront.cache.read_through")

    def cached(self, ttl_seconds: Optional[int] = None, family: str = "default") -> Callable:
        """Decorator for an async FastAPI endpoint that declares a ``Request`` parameter."""
        ttl = ttl_seconds or self.default_ttl

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            @functools.wraps(func)
            async def wrapper(*args, **kwargs):
                request = _find_request(args, kwargs)
                if request is None:
                    raise TypeError(f"{func.__name__} must accept a fastapi.Request to be cached")

                key = self.key_scheme.key_for(request.method, request.url.path, request.url.query)
                if key is None:
                    return await func(*args, **kwargs)

                hit = await self._lookup(key, family)
                if hit is not None:
                    return Response(
                        content=hit,
                        status_code=200,
                        media_type=JSON_MEDIA_TYPE,
                        headers={CACHE_STATUS_HEADER: "HIT"},
                    )

                result = await func(*args, **kwargs)
                response = _as_response(result)

                if _is_cacheable(response):
                    self.tasks.spawn(
                        self.store.set_with_expiry(key, bytes(response.body), ttl),
                        description=f"populate {key}",
                    )
                    response.headers[CACHE_STATUS_HEADER] = "MISS"
                return response

            return wrapper

        return decorator

    async def _lookup(self, key: str, family: str) -> Optional[bytes]:
        payload = await self.store.get(key)
        if payload is None:
            self._count("cache_misses_total", family)
            return None

        try:
            json.loads(payload)
        except ValueError as e:
            self.logger.warning("Discarding malformed cache entry", key=key, error=str(e))
            self.tasks.spawn(self.store.delete(key), description=f"evict {key}")
            self._count("cache_misses_total", family)
            return None

        self._count("cache_hits_total", family)
        self.logger.debug("Cache hit", key=key)
        return payload

    def _count(self, metric: str, family: str) -> None:
        if self.metrics:
            self.metrics.increment_counter(metric, family=family)


def _find_request(args: tuple, kwargs: dict) -> Optional[Request]:
    for value in list(kwargs.values()) + list(args):
        if isinstance(value, Request):
            return value
    return None


def _as_response(result: Any) -> Response:
    if isinstance(result, Response):
        return result
    return JSONResponse(content=jsonable_encoder(result))


def _is_cacheable(response: Response) -> bool:
    # Streaming responses have no materialized body
    if not hasattr(response, "body"):
        return False
    if not 200 <= response.status_code < 300:
        return False
    return (response.media_type or "").startswith(JSON_MEDIA_TYPE)
