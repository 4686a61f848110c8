"""Manual cache invalidation for operators (e.g. after a direct database fix)."""
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from lms_server.cache import ResponseCache, invalidate_patterns
from lms_server.logging_config import get_logger

logger = get_logger(name=__name__)

router = APIRouter(prefix="/v1/cache", tags=["Cache"])


class InvalidateRequest(BaseModel):
    patterns: List[str] = Field(min_length=1, description="Store glob patterns, e.g. api:*:/api/courses*")


class InvalidateResponse(BaseModel):
    deleted: int


def require_response_cache(request: Request) -> ResponseCache:
    response_cache = getattr(request.app.state, "response_cache", None)
    if response_cache is None:
        raise HTTPException(status_code=503, detail="Response cache is not configured")
    return response_cache


@router.post("/invalidate", response_model=InvalidateResponse)
async def invalidate(
    body: InvalidateRequest,
    response_cache: ResponseCache = Depends(require_response_cache),
):
    patterns = [p.strip() for p in body.patterns]
    if any(not p for p in patterns):
        raise HTTPException(status_code=400, detail="Patterns must not be blank")

    deleted = await invalidate_patterns(response_cache.store, patterns)
    logger.info("Manual invalidation of {} removed {} keys", patterns, deleted)
    return InvalidateResponse(deleted=deleted)


@router.delete("", response_model=InvalidateResponse)
async def flush(response_cache: ResponseCache = Depends(require_response_cache)):
    """Drop every cached response."""
    deleted = await response_cache.clear()
    return InvalidateResponse(deleted=deleted)
