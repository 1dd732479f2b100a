"""
Caching package for the Render Service.

Provides the deterministic cache key, the read-time freshness policy,
the persisted entry model and the stores (Redis and in-memory).
"""

from .keys import derive_cache_key
from .freshness import is_fresh, parse_ttl
from .models import CacheEntry
from .store import CacheStore, InMemoryCacheStore

__all__ = [
    "derive_cache_key",
    "is_fresh",
    "parse_ttl",
    "CacheEntry",
    "CacheStore",
    "InMemoryCacheStore",
]
