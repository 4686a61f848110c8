"""Cache invalidation helpers.

Every helper is best-effort: a failing pattern is logged and skipped, the
remaining patterns are still attempted. A multi-pattern purge is therefore
not atomic; entries it misses expire with their TTL.
"""

from typing import Iterable

from lms_server.logging_config import get_logger

from .keys import FUNCTION_KEY_PREFIX, namespace_pattern
from .store import CacheStore

logger = get_logger(name=__name__)


async def invalidate_patterns(store: CacheStore, patterns: Iterable[str]) -> int:
    """Delete every key matching any of ``patterns``.

    Returns:
        Number of keys deleted across all patterns that succeeded.
    """
    deleted = 0
    for pattern in patterns:
        try:
            count = await store.delete_pattern(pattern)
        except Exception as e:
            logger.warning("Cache invalidation failed for pattern '{}': {}", pattern, e)
            continue
        deleted += count
        if count:
            logger.info("Invalidated {} cache keys matching '{}'", count, pattern)
        else:
            logger.debug("No cache keys matching '{}' to invalidate", pattern)
    return deleted


async def invalidate_namespace(store: CacheStore, namespace: str) -> int:
    """Delete all function-result keys in a namespace.

    Args:
        namespace: Cache namespace (e.g., "courses", "progress")

    Returns:
        Number of keys deleted.
    """
    return await invalidate_patterns(store, [namespace_pattern(namespace)])


async def invalidate_all(store: CacheStore, prefix: str = FUNCTION_KEY_PREFIX) -> int:
    """Delete ALL keys under one top-level prefix.

    Defaults to function-result keys (``cache:*``); pass the response cache
    prefix (``api``) to flush cached responses. Other key families, such as
    counters, are not affected.

    Returns:
        Number of keys deleted.
    """
    deleted = await invalidate_patterns(store, [f"{prefix}:*"])
    logger.info("Invalidated ALL {} '{}' cache keys", deleted, prefix)
    return deleted
