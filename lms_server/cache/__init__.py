"""Caching: read-through response cache, invalidation, stores and helpers."""

from .helpers import cached, get_or_set
from .invalidation import invalidate_all, invalidate_namespace, invalidate_patterns
from .keys import path_pattern, response_cache_key
from .middleware import ResponseCache, default_identity
from .routing import CacheRoute, cache_response, invalidate_cache
from .store import CacheStore, MemoryStore, RedisStore

__all__ = [
    "CacheRoute",
    "CacheStore",
    "MemoryStore",
    "RedisStore",
    "ResponseCache",
    "cache_response",
    "cached",
    "default_identity",
    "get_or_set",
    "invalidate_all",
    "invalidate_cache",
    "invalidate_namespace",
    "invalidate_patterns",
    "path_pattern",
    "response_cache_key",
]
