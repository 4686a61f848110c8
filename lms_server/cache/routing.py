"""Route registration for the response cache.

Usage:
    from lms_server.cache import CacheRoute, cache_response, invalidate_cache

    router = APIRouter(prefix="/api/courses", route_class=CacheRoute)

    @router.get("")
    @cache_response(ttl=300)
    async def list_courses(page: int = 1):
        ...

    @router.put("/{course_id}")
    @invalidate_cache("api:*:/api/courses*")
    async def update_course(course_id: int, payload: CourseUpdate):
        ...

The marks must sit below the router decorator: FastAPI builds the route
handler when the endpoint is registered. ``CacheRoute`` wraps that handler
with the ``ResponseCache`` found on ``request.app.state.response_cache``;
when none is configured the route behaves as if it were not marked.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Union

from fastapi.routing import APIRoute
from starlette.requests import Request
from starlette.responses import Response

from lms_server.logging_config import get_logger

from .middleware import Handler, ResponseCache

logger = get_logger(name=__name__)

POLICIES_ATTR = "_response_cache_policies"


@dataclass(frozen=True)
class ReadThrough:
    ttl: Optional[int] = None


@dataclass(frozen=True)
class InvalidateAfter:
    patterns: Tuple[str, ...]


CachePolicy = Union[ReadThrough, InvalidateAfter]


def _mark(endpoint: Callable, policy: CachePolicy) -> Callable:
    policies = getattr(endpoint, POLICIES_ATTR, ())
    setattr(endpoint, POLICIES_ATTR, policies + (policy,))
    return endpoint


def cache_response(ttl: Optional[int] = None) -> Callable[[Callable], Callable]:
    """Mark a read endpoint for read-through caching.

    Args:
        ttl: Seconds to keep the response; the cache's default when omitted.
    """
    if ttl is not None and ttl <= 0:
        raise ValueError("ttl must be a positive number of seconds")

    def decorator(endpoint: Callable) -> Callable:
        return _mark(endpoint, ReadThrough(ttl=ttl))

    return decorator


def invalidate_cache(*patterns: str) -> Callable[[Callable], Callable]:
    """Mark a write endpoint to purge cache keys matching ``patterns`` after a 2xx."""
    if not patterns:
        raise ValueError("invalidate_cache() needs at least one pattern")

    def decorator(endpoint: Callable) -> Callable:
        return _mark(endpoint, InvalidateAfter(patterns=tuple(patterns)))

    return decorator


def get_response_cache(request: Request) -> Optional[ResponseCache]:
    return getattr(request.app.state, "response_cache", None)


def _wrap(handler: Handler, policy: CachePolicy) -> Handler:
    async def cached_route_handler(request: Request) -> Response:
        response_cache = get_response_cache(request)
        if response_cache is None:
            return await handler(request)
        if isinstance(policy, ReadThrough):
            return await response_cache.serve(request, handler, ttl=policy.ttl)
        return await response_cache.invalidate_after(request, handler, policy.patterns)

    return cached_route_handler


class CacheRoute(APIRoute):
    """APIRoute that applies the endpoint's cache marks around its handler."""

    def get_route_handler(self) -> Handler:
        handler = super().get_route_handler()
        for policy in getattr(self.endpoint, POLICIES_ATTR, ()):
            handler = _wrap(handler, policy)
        return handler
