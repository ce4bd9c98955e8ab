"""Query result caching."""

from cache.query_cache import DEFAULT_CACHE_CAPACITY, QueryCache

__all__ = ["DEFAULT_CACHE_CAPACITY", "QueryCache"]
