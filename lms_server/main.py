"""FastAPI application entrypoint for the LMS API server."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from lms_server.api.main import api_router
from lms_server.cache import CacheRoute, CacheStore, MemoryStore, RedisStore, ResponseCache
from lms_server.config import Settings, create_redis, get_settings, verify_redis
from lms_server.logging_config import configure_logging, get_logger
from lms_server.middleware.request_logging import RequestLoggingMiddleware

logger = get_logger(name=__name__)


def build_store(settings: Settings) -> CacheStore:
    """Create the configured cache store. Redis connects lazily."""
    if settings.cache_backend == "memory":
        return MemoryStore()
    client = create_redis(
        settings.redis_url,
        socket_timeout=settings.redis_socket_timeout,
        max_retries=settings.redis_max_retries,
    )
    return RedisStore(client)


def create_app(settings: Optional[Settings] = None, store: Optional[CacheStore] = None) -> FastAPI:
    """Build the application.

    Args:
        settings: Defaults to ``get_settings()``.
        store: Cache store to use instead of the configured one. An injected
            store is left open on shutdown; the caller owns it.
    """
    settings = settings or get_settings()
    owns_store = store is None
    cache_store = store if store is not None else build_store(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        configure_logging(settings.log_level)
        if isinstance(cache_store, RedisStore):
            await verify_redis(cache_store.client)
        logger.info(
            "Response cache {} (backend={}, ttl={}s)",
            "enabled" if settings.cache_enabled else "disabled",
            getattr(cache_store, "backend", type(cache_store).__name__),
            settings.cache_default_ttl,
        )
        yield
        await app.state.response_cache.drain()
        if owns_store:
            await cache_store.close()

    app = FastAPI(
        title="Therapy LMS API",
        version="0.1.0",
        lifespan=lifespan,
    )
    # Routes registered on the app after this point honour cache marks.
    app.router.route_class = CacheRoute

    app.state.cache_store = cache_store
    app.state.response_cache = ResponseCache(
        cache_store,
        default_ttl=settings.cache_default_ttl,
        key_prefix=settings.cache_key_prefix,
        enabled=settings.cache_enabled,
    )

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Cache"],
    )

    app.include_router(api_router)
    return app


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run(create_app(_settings), host=_settings.uvicorn_host, port=_settings.uvicorn_port)
