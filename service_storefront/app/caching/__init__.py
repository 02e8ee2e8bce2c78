"""
Caching package for the Storefront service.

Provides the Redis-backed read-through cache used in front of the product
catalog: key scheme, fail-open store client, the handler decorator and the
invalidation trigger that catalog mutations call after a successful write.
"""

from .invalidation import CacheInvalidator
from .keys import CacheKeyScheme
from .read_through import ReadThroughCache
from .redis_store import RedisCacheStore
from .tasks import DetachedTaskGroup

__all__ = [
    "CacheInvalidator",
    "CacheKeyScheme",
    "DetachedTaskGroup",
    "ReadThroughCache",
    "RedisCacheStore",
]
