"""Health check and cache status endpoints."""
from fastapi import APIRouter, Request
from pydantic import BaseModel

from lms_server.logging_config import get_logger

logger = get_logger(name=__name__)

router = APIRouter(prefix="/v1/health", tags=["Health"])


class CacheStatus(BaseModel):
    enabled: bool
    backend: str
    connected: bool
    pending_writes: int


class HealthResponse(BaseModel):
    status: str  # "healthy" or "degraded"
    cache: CacheStatus


@router.get("", response_model=HealthResponse)
async def health_check(request: Request):
    """Report whether the cache store answers a ping.

    A down store only degrades the service: requests still succeed, they
    just miss the cache.
    """
    response_cache = getattr(request.app.state, "response_cache", None)
    if response_cache is None:
        return HealthResponse(
            status="degraded",
            cache=CacheStatus(enabled=False, backend="none", connected=False, pending_writes=0),
        )

    connected = False
    try:
        connected = await response_cache.store.ping()
    except Exception as e:
        logger.warning("Cache store ping failed: {}", e)

    cache_status = CacheStatus(
        enabled=response_cache.enabled,
        backend=getattr(response_cache.store, "backend", type(response_cache.store).__name__),
        connected=connected,
        pending_writes=response_cache.pending_writes,
    )
    return HealthResponse(
        status="healthy" if connected else "degraded",
        cache=cache_status,
    )
