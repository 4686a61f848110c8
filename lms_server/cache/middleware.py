"""Read-through response cache for the LMS API.

Read requests (GET by default) are answered from the store when a response
for the same caller and URL is cached; otherwise the route handler runs and
a successful response is written back in the background. Write routes purge
matching entries once they have succeeded, before their response is
returned, so a read issued right after a write sees fresh data.

The cache is strictly best-effort: no store failure ever reaches the caller.

Usage:
    store = RedisStore(create_redis(settings.redis_url))
    app.state.response_cache = ResponseCache(store, default_ttl=300)

Routes opt in through ``cache_response`` / ``invalidate_cache`` (see
``lms_server.cache.routing``).
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Iterable, Optional, Sequence, Set

from starlette.requests import Request
from starlette.responses import Response

from lms_server.logging_config import get_logger

from .invalidation import invalidate_all, invalidate_patterns
from .keys import expand_pattern, response_cache_key
from .serialization import CachedResponse, dump_response, load_response
from .store import CacheStore

logger = get_logger(name=__name__)

DEFAULT_TTL_SECONDS = 300
DEFAULT_KEY_PREFIX = "api"
CACHE_STATUS_HEADER = "X-Cache"

Handler = Callable[[Request], Awaitable[Response]]
IdentityResolver = Callable[[Request], Optional[str]]


def default_identity(request: Request) -> Optional[str]:
    """Caller identity attached to ``request.state.user_id`` by the auth layer."""
    user_id = getattr(request.state, "user_id", None)
    return str(user_id) if user_id is not None else None


def is_success(status_code: int) -> bool:
    return 200 <= status_code < 300


class ResponseCache:
    """Read-through cache and post-write invalidation over a ``CacheStore``.

    Args:
        store: Shared key-value store; must tolerate concurrent use.
        default_ttl: Seconds a response stays cached when the route sets none.
        key_prefix: First segment of every response key.
        identity_resolver: Returns the caller identity, or None for anonymous.
        cacheable_methods: Methods treated as reads. Anything else bypasses
            the cache entirely.
        enabled: When False both wrappers pass requests straight through.
    """

    def __init__(
        self,
        store: CacheStore,
        default_ttl: int = DEFAULT_TTL_SECONDS,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        identity_resolver: IdentityResolver = default_identity,
        cacheable_methods: Iterable[str] = ("GET",),
        enabled: bool = True,
    ):
        if default_ttl <= 0:
            raise ValueError("default_ttl must be a positive number of seconds")
        self.store = store
        self.default_ttl = default_ttl
        self.key_prefix = key_prefix
        self.identity_resolver = identity_resolver
        self.cacheable_methods = frozenset(m.upper() for m in cacheable_methods)
        self.enabled = enabled
        self._pending_writes: Set[asyncio.Task] = set()

    def key_for(self, request: Request) -> Optional[str]:
        """Derive the cache key for a request, or None when it cannot be cached."""
        try:
            identity = self.identity_resolver(request)
            return response_cache_key(
                self.key_prefix, identity, request.url.path, request.url.query
            )
        except Exception as e:
            logger.warning("Skipping cache for {} {}: {}", request.method, request.url, e)
            return None

    async def serve(self, request: Request, call_next: Handler, ttl: Optional[int] = None) -> Response:
        """Answer a read request from the cache, or run ``call_next`` and cache its result."""
        if not self.enabled or request.method not in self.cacheable_methods:
            return await call_next(request)

        cache_key = self.key_for(request)
        if cache_key is None:
            return await call_next(request)

        hit = await self._lookup(cache_key)
        if hit is not None:
            logger.debug("Cache HIT: {}", cache_key)
            response = hit.to_response()
            response.headers[CACHE_STATUS_HEADER] = "HIT"
            return response

        logger.debug("Cache MISS: {}", cache_key)
        response = await call_next(request)
        if self._is_storable(response):
            self._schedule_write(cache_key, dump_response(response), ttl or self.default_ttl)
        response.headers[CACHE_STATUS_HEADER] = "MISS"
        return response

    async def invalidate_after(
        self, request: Request, call_next: Handler, patterns: Sequence[str]
    ) -> Response:
        """Run ``call_next``; on a 2xx response purge every key matching ``patterns``.

        Patterns may name path parameters, e.g. ``api:*:/api/courses/{course_id}*``.
        Handler exceptions propagate and nothing is purged.
        """
        response = await call_next(request)
        if not self.enabled or not patterns:
            return response
        if not is_success(response.status_code):
            logger.debug(
                "Skipping invalidation for {} {} (status {})",
                request.method,
                request.url.path,
                response.status_code,
            )
            return response

        expanded = [expand_pattern(p, request.path_params) for p in patterns]
        await invalidate_patterns(self.store, expanded)
        return response

    async def clear(self) -> int:
        """Drop every cached response under this cache's key prefix."""
        return await invalidate_all(self.store, prefix=self.key_prefix)

    async def drain(self) -> None:
        """Wait for background cache writes scheduled so far."""
        if self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    async def _lookup(self, cache_key: str) -> Optional[CachedResponse]:
        try:
            raw = await self.store.get(cache_key)
        except Exception as e:
            logger.warning("Cache store GET failed for {}: {}", cache_key, e)
            return None
        if raw is None:
            return None
        try:
            return load_response(raw)
        except Exception as e:
            logger.warning("Ignoring undecodable cache entry {}: {}", cache_key, e)
            return None

    @staticmethod
    def _is_storable(response: Response) -> bool:
        if not is_success(response.status_code):
            return False
        # Streaming and file responses have no materialized body.
        if not isinstance(getattr(response, "body", None), bytes):
            return False
        return "no-store" not in response.headers.get("cache-control", "").lower()

    def _schedule_write(self, cache_key: str, payload: str, ttl: int) -> None:
        task = asyncio.create_task(self._write(cache_key, payload, ttl))
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _write(self, cache_key: str, payload: str, ttl: int) -> None:
        try:
            await self.store.set(cache_key, payload, ttl)
        except Exception as e:
            logger.warning("Cache store SET failed for {}: {}", cache_key, e)
