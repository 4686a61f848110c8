"""Shared test fixtures: in-memory cache store, a small course API and an httpx client."""

from collections import Counter
from collections.abc import AsyncGenerator

import pytest
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, StreamingResponse
from httpx import ASGITransport, AsyncClient

from lms_server.cache import CacheRoute, MemoryStore, ResponseCache, cache_response, invalidate_cache


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingStore(MemoryStore):
    """MemoryStore that remembers every operation it served."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.calls: list[tuple[str, str]] = []

    async def get(self, key):
        self.calls.append(("get", key))
        return await super().get(key)

    async def set(self, key, value, ttl=None):
        self.calls.append(("set", key))
        return await super().set(key, value, ttl)

    async def delete_pattern(self, pattern):
        self.calls.append(("delete_pattern", pattern))
        return await super().delete_pattern(pattern)


class Catalog:
    """Course/lesson data behind the test routes, with per-handler call counts."""

    def __init__(self):
        self.courses = {
            7: {"id": 7, "title": "Grounding for beginners", "status": "published"},
            42: {"id": 42, "title": "Breathwork basics", "status": "published"},
            99: {"id": 99, "title": "Retired programme", "status": "archived"},
        }
        self.lessons = {
            7: [{"id": 1, "title": "Five senses"}],
            42: [{"id": 1, "title": "Box breathing"}, {"id": 2, "title": "Slow exhale"}],
        }
        self.calls = Counter()


def build_app(response_cache: ResponseCache | None, catalog: Catalog) -> FastAPI:
    app = FastAPI()
    if response_cache is not None:
        app.state.response_cache = response_cache

    @app.middleware("http")
    async def attach_identity(request: Request, call_next):
        # Stand-in for the auth layer.
        user_id = request.headers.get("X-User-Id")
        if user_id:
            request.state.user_id = user_id
        return await call_next(request)

    courses = APIRouter(prefix="/api/courses", route_class=CacheRoute)

    @courses.get("")
    @cache_response(ttl=300)
    async def list_courses(page: int = 1):
        catalog.calls["list_courses"] += 1
        items = [catalog.courses[k] for k in sorted(catalog.courses)]
        return {"page": page, "courses": items}

    @courses.api_route("/search", methods=["GET", "POST"])
    @cache_response()
    async def search_courses(request: Request):
        catalog.calls["search_courses"] += 1
        return {"method": request.method, "hits": len(catalog.courses)}

    @courses.get("/export")
    @cache_response()
    async def export_courses():
        catalog.calls["export_courses"] += 1

        async def rows():
            for course_id in sorted(catalog.courses):
                yield f"{course_id},{catalog.courses[course_id]['title']}\n"

        return StreamingResponse(rows(), media_type="text/csv")

    @courses.get("/recommended")
    @cache_response()
    async def recommended_courses():
        catalog.calls["recommended_courses"] += 1
        return JSONResponse({"courses": [42]}, headers={"Cache-Control": "no-store"})

    @courses.get("/{course_id}")
    @cache_response()
    async def get_course(course_id: int):
        catalog.calls["get_course"] += 1
        if course_id not in catalog.courses:
            raise HTTPException(status_code=404, detail="Course not found")
        course = catalog.courses[course_id]
        if course["status"] == "archived":
            return JSONResponse({"detail": "Course archived"}, status_code=410)
        return course

    @courses.put("/{course_id}")
    @invalidate_cache("api:*:/api/courses*")
    async def update_course(course_id: int, payload: dict):
        catalog.calls["update_course"] += 1
        if course_id not in catalog.courses:
            raise HTTPException(status_code=404, detail="Course not found")
        course = catalog.courses[course_id]
        if course["status"] == "archived":
            return JSONResponse({"detail": "Course archived"}, status_code=409)
        course.update(payload)
        return course

    @courses.get("/{course_id}/lessons")
    @cache_response()
    async def list_lessons(course_id: int):
        catalog.calls["list_lessons"] += 1
        return {"course_id": course_id, "lessons": catalog.lessons.get(course_id, [])}

    @courses.delete("/{course_id}/lessons/{lesson_id}")
    @invalidate_cache("api:*:/api/courses/{course_id}/lessons*")
    async def delete_lesson(course_id: int, lesson_id: int):
        catalog.calls["delete_lesson"] += 1
        remaining = [item for item in catalog.lessons.get(course_id, []) if item["id"] != lesson_id]
        catalog.lessons[course_id] = remaining
        return {"deleted": lesson_id}

    app.include_router(courses)
    return app


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> RecordingStore:
    return RecordingStore(clock=clock)


@pytest.fixture
def response_cache(store) -> ResponseCache:
    return ResponseCache(store, default_ttl=300)


@pytest.fixture
def catalog() -> Catalog:
    return Catalog()


@pytest.fixture
def app(response_cache, catalog) -> FastAPI:
    return build_app(response_cache, catalog)


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def fetch(client, response_cache):
    """GET a URL as a given user and wait for the background cache write."""

    async def _fetch(url: str, user: str | None = None):
        headers = {"X-User-Id": user} if user else {}
        resp = await client.get(url, headers=headers)
        await response_cache.drain()
        return resp

    return _fetch
