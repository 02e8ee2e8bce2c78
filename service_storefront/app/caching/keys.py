"""
Cache key scheme for read-through HTTP caching.
"""

from typing import FrozenSet, Optional
from urllib.parse import parse_qsl, urlencode

DEFAULT_NAMESPACE = "cache:"
PRODUCTS_PATH = "/api/products"

# Characters with special meaning in a Redis SCAN MATCH glob
_GLOB_SPECIAL = "\\*?[]"


class CacheKeyScheme:
    """Maps request identity to cache keys and resource families to key prefixes.

    Keys are ``namespace + path + "?" + query`` with the query taken verbatim,
    so ``?a=1&b=2`` and ``?b=2&a=1`` are distinct entries. Setting
    ``normalize_query`` sorts the parameters first.
    """

    READ_METHODS: FrozenSet[str] = frozenset({"GET"})

    def __init__(self, namespace: str = DEFAULT_NAMESPACE, normalize_query: bool = False):
        self.namespace = namespace
        self.normalize_query = normalize_query

    def key_for(self, method: str, path: str, query_string: str = "") -> Optional[str]:
        """Return the cache key for a request, or None when it must not be cached."""
        if method.upper() not in self.READ_METHODS:
            return None

        query = query_string or ""
        if query.startswith("?"):
            query = query[1:]
        if query and self.normalize_query:
            query = urlencode(sorted(parse_qsl(query, keep_blank_values=True)))

        if query:
            return f"{self.namespace}{path}?{query}"
        return f"{self.namespace}{path}"

    def scope_for(self, path_prefix: str) -> str:
        """Return the key prefix covering every cached response under a path."""
        return f"{self.namespace}{path_prefix}"

    @property
    def product_scope(self) -> str:
        """Prefix for product listings, category listings and detail pages."""
        return self.scope_for(PRODUCTS_PATH)


def escape_glob(value: str) -> str:
    """Escape glob metacharacters so a literal prefix can be used in SCAN MATCH."""
    return "".join(f"\\{ch}" if ch in _GLOB_SPECIAL else ch for ch in value)
