"""Configuration module for the application.

This module provides:
- Settings management with environment variables
- Redis client construction for the response cache
"""

from .redis import create_redis, verify_redis
from .settings import Settings, get_settings

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    # Redis
    "create_redis",
    "verify_redis",
]
