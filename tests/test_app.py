"""Tests for the application factory, settings, health and cache admin endpoints."""

from collections.abc import AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from pydantic import ValidationError

from lms_server.cache import MemoryStore, RedisStore, cache_response
from lms_server.config import Settings
from lms_server.main import build_store, create_app


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, cache_backend="memory", **overrides)


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def lms_app(memory_store) -> FastAPI:
    app = create_app(_settings(), store=memory_store)
    calls = []

    @app.get("/api/notifications")
    @cache_response(ttl=60)
    async def list_notifications():
        calls.append(1)
        return {"notifications": ["Session tomorrow at 10:00"]}

    app.state.notification_calls = calls
    return app


@pytest.fixture
async def lms_client(lms_app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=lms_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def test_settings_defaults():
    settings = Settings(_env_file=None)
    assert settings.cache_default_ttl == 300
    assert settings.cache_key_prefix == "api"
    assert settings.cache_backend == "redis"
    assert settings.redis_url == "redis://localhost:6379/0"


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("CACHE_DEFAULT_TTL", "60")
    monkeypatch.setenv("REDIS_URL", "redis://cache:6379/2")
    monkeypatch.setenv("ALLOWED_ORIGINS", "http://localhost:5173, capacitor://localhost")

    settings = Settings(_env_file=None)

    assert settings.cache_default_ttl == 60
    assert settings.redis_url == "redis://cache:6379/2"
    assert settings.allowed_origins_list == ["http://localhost:5173", "capacitor://localhost"]


@pytest.mark.parametrize("overrides", [{"cache_default_ttl": 0}, {"cache_key_prefix": "api:v2"}, {"cache_backend": "memcached"}])
def test_settings_validation(overrides):
    with pytest.raises(ValidationError):
        Settings(_env_file=None, **overrides)


def test_build_store_picks_backend():
    assert isinstance(build_store(_settings()), MemoryStore)
    redis_store = build_store(Settings(_env_file=None))
    assert isinstance(redis_store, RedisStore)


async def test_app_routes_honour_cache_marks(lms_app, lms_client, memory_store):
    first = await lms_client.get("/api/notifications", headers={"Origin": "http://localhost:5173"})
    await lms_app.state.response_cache.drain()
    second = await lms_client.get("/api/notifications")

    assert first.headers["X-Cache"] == "MISS"
    assert second.headers["X-Cache"] == "HIT"
    assert second.json() == {"notifications": ["Session tomorrow at 10:00"]}
    assert lms_app.state.notification_calls == [1]
    assert memory_store.keys() == ["api:anonymous:/api/notifications"]


async def test_health_reports_store_status(lms_client):
    resp = await lms_client.get("/v1/health")
    assert resp.status_code == 200
    assert resp.json() == {
        "status": "healthy",
        "cache": {"enabled": True, "backend": "memory", "connected": True, "pending_writes": 0},
    }


async def test_health_degrades_when_store_is_down(lms_client, memory_store):
    memory_store.ping = AsyncMock(side_effect=ConnectionError("redis down"))

    resp = await lms_client.get("/v1/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "degraded"
    assert resp.json()["cache"]["connected"] is False


async def test_admin_invalidate(lms_client, memory_store):
    await memory_store.set("api:U1:/api/courses?page=1", "x", 60)
    await memory_store.set("api:U2:/api/courses/42", "x", 60)
    await memory_store.set("api:U1:/api/lessons/3", "x", 60)

    resp = await lms_client.post("/v1/cache/invalidate", json={"patterns": ["api:*:/api/courses*"]})

    assert resp.status_code == 200
    assert resp.json() == {"deleted": 2}
    assert memory_store.keys() == ["api:U1:/api/lessons/3"]


async def test_admin_invalidate_rejects_bad_patterns(lms_client):
    blank = await lms_client.post("/v1/cache/invalidate", json={"patterns": ["  "]})
    assert blank.status_code == 400
    empty = await lms_client.post("/v1/cache/invalidate", json={"patterns": []})
    assert empty.status_code == 422


async def test_admin_flush(lms_client, memory_store):
    await memory_store.set("api:U1:/api/courses", "x", 60)
    await memory_store.set("cache:courses:list:abc", "x", 60)

    resp = await lms_client.delete("/v1/cache")

    assert resp.json() == {"deleted": 1}
    assert memory_store.keys() == ["cache:courses:list:abc"]


async def test_lifespan_leaves_injected_store_open(memory_store):
    app = create_app(_settings(), store=memory_store)
    await memory_store.set("api:U1:/api/courses", "x", 60)

    async with app.router.lifespan_context(app):
        pass

    assert memory_store.keys() == ["api:U1:/api/courses"]


async def test_lifespan_closes_owned_store():
    app = create_app(_settings())
    store = app.state.cache_store
    await store.set("api:U1:/api/courses", "x", 60)

    async with app.router.lifespan_context(app):
        pass

    assert store.keys() == []
