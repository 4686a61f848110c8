"""Key-value stores backing the response cache.

Both stores speak the same small async interface (``CacheStore``) and share
Redis glob semantics for ``delete_pattern``: ``*`` matches any run of
characters, ``?`` a single character and ``[...]`` a character class,
always against the whole key. A pattern without wildcards therefore
deletes at most one key; a prefix purge is spelled ``prefix*``.
"""

from __future__ import annotations

import time
from fnmatch import fnmatchcase
from typing import Callable, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from redis.asyncio import Redis

from lms_server.logging_config import get_logger

logger = get_logger(name=__name__)

SCAN_COUNT = 100


@runtime_checkable
class CacheStore(Protocol):
    """Async key-value store consumed by the cache layer.

    Every call may fail independently of the request being served; callers
    in the cache layer catch and log those failures.
    """

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool: ...

    async def delete(self, key: str) -> int: ...

    async def delete_pattern(self, pattern: str) -> int: ...

    async def incr(self, key: str) -> int: ...

    async def ping(self) -> bool: ...

    async def close(self) -> None: ...


class RedisStore:
    """CacheStore over a shared ``redis.asyncio`` client (decode_responses=True)."""

    backend = "redis"

    def __init__(self, client: Redis, scan_count: int = SCAN_COUNT):
        self.client = client
        self.scan_count = scan_count

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        if ttl:
            await self.client.set(key, value, ex=ttl)
        else:
            await self.client.set(key, value)
        return True

    async def delete(self, key: str) -> int:
        return await self.client.delete(key)

    async def delete_pattern(self, pattern: str) -> int:
        """Delete all keys matching a glob pattern.

        Uses SCAN with cursor iteration (non-blocking, safe for production).
        Keys written while the scan is running may survive it.

        Returns:
            Number of keys deleted.
        """
        deleted = 0

        cursor = 0
        while True:
            cursor, keys = await self.client.scan(cursor=cursor, match=pattern, count=self.scan_count)
            if keys:
                await self.client.delete(*keys)
                deleted += len(keys)
            if cursor == 0:
                break

        return deleted

    async def incr(self, key: str) -> int:
        return await self.client.incr(key)

    async def ping(self) -> bool:
        return bool(await self.client.ping())

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis client closed")


class MemoryStore:
    """Process-local CacheStore with per-key expiry.

    Mutations never await, so concurrent request tasks on one event loop
    cannot interleave inside an operation. ``clock`` must be monotonic.
    """

    backend = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        # key -> (expires_at or None, value)
        self._entries: Dict[str, Tuple[Optional[float], str]] = {}

    def _live(self, key: str) -> Optional[Tuple[Optional[float], str]]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, _ = entry
        if expires_at is not None and self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return entry

    def keys(self) -> List[str]:
        """Return all live keys."""
        return [key for key in list(self._entries) if self._live(key) is not None]

    async def get(self, key: str) -> Optional[str]:
        entry = self._live(key)
        return None if entry is None else entry[1]

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> bool:
        expires_at = self._clock() + ttl if ttl else None
        self._entries[key] = (expires_at, value)
        return True

    async def delete(self, key: str) -> int:
        if self._live(key) is None:
            return 0
        del self._entries[key]
        return 1

    async def delete_pattern(self, pattern: str) -> int:
        matched = [key for key in self.keys() if fnmatchcase(key, pattern)]
        for key in matched:
            del self._entries[key]
        return len(matched)

    async def incr(self, key: str) -> int:
        entry = self._live(key)
        expires_at, current = entry if entry is not None else (None, "0")
        try:
            value = int(current) + 1
        except ValueError:
            raise ValueError(f"value at {key!r} is not an integer") from None
        self._entries[key] = (expires_at, str(value))
        return value

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._entries.clear()
