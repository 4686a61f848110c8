from fastapi import APIRouter

from . import cache_admin
from . import health

api_router = APIRouter()

api_router.include_router(health.router)
api_router.include_router(cache_admin.router)
