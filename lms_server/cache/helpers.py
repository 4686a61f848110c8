"""Value-level caching helpers on top of a ``CacheStore``.

Usage:
    from lms_server.cache import cached, get_or_set

    @cached(lambda: app.state.cache_store, namespace="courses", ttl=3600)
    async def list_published_courses(category: str | None = None):
        ...

    summary = await get_or_set(store, f"progress:{user_id}", load_summary, ttl=60)
"""

from __future__ import annotations

import functools
from typing import Any, Awaitable, Callable, Optional, Union

from lms_server.logging_config import get_logger

from .keys import build_cache_key
from .serialization import deserialize, serialize
from .store import CacheStore

logger = get_logger(name=__name__)

DEFAULT_TTL_SECONDS = 3600

StoreSource = Union[CacheStore, Callable[[], CacheStore]]


def _resolve_store(source: StoreSource) -> CacheStore:
    if isinstance(source, CacheStore):
        return source
    return source()


async def get_or_set(
    store: CacheStore,
    key: str,
    fetch: Callable[[], Awaitable[Any]],
    ttl: Optional[int] = DEFAULT_TTL_SECONDS,
) -> Any:
    """Return the value cached under ``key``, computing and storing it on a miss.

    Store failures fall back to ``fetch()``; errors raised by ``fetch`` propagate.
    """
    try:
        cached_raw = await store.get(key)
        if cached_raw is not None:
            return deserialize(cached_raw)
    except Exception as e:
        logger.warning("Cache GET failed for {}: {}", key, e)

    value = await fetch()

    try:
        await store.set(key, serialize(value), ttl)
    except Exception as e:
        logger.warning("Cache SET failed for {}: {}", key, e)

    return value


def cached(
    store: StoreSource,
    namespace: str,
    ttl: int = DEFAULT_TTL_SECONDS,
    key_builder: Optional[Callable[..., str]] = None,
) -> Callable:
    """Decorator that caches async function results in the store.

    Args:
        store: A CacheStore, or a zero-argument callable returning one at call
            time (for stores created during application startup).
        namespace: Cache namespace for grouped invalidation (e.g., "courses")
        ttl: Time-to-live in seconds (safety net; primary invalidation is explicit)
        key_builder: Optional custom key builder function(func, args, kwargs) -> str.

    Notes:
        - Only works with async functions.
        - If the store cannot be resolved or fails, falls through to the
          original function (cache miss behavior, logged as warning).
        - The function return value must be serializable (Pydantic models,
          dicts, lists, tuples of those, or primitives).
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                cache_store = _resolve_store(store)
            except Exception as e:
                logger.warning("Cache store unavailable, skipping cache for {}: {}", func.__name__, e)
                return await func(*args, **kwargs)

            if key_builder:
                cache_key = key_builder(func, args, kwargs)
            else:
                cache_key = build_cache_key(namespace, func.__name__, args, kwargs)

            async def compute():
                return await func(*args, **kwargs)

            return await get_or_set(cache_store, cache_key, compute, ttl)

        wrapper._cache_namespace = namespace
        wrapper._cache_ttl = ttl
        wrapper._is_cached = True

        return wrapper
    return decorator
