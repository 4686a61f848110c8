"""Redis async connection management.

Provides the async Redis client behind the response cache via redis-py
with the hiredis parser. The client connects lazily, so the server can
start while Redis is down; cache lookups then degrade to misses.
"""

from redis.asyncio import Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff

from lms_server.logging_config import get_logger

logger = get_logger(name=__name__)


def create_redis(url: str, socket_timeout: float = 5.0, max_retries: int = 3) -> Redis:
    """Build an async Redis client without opening a connection.

    Args:
        url: Redis connection URL (e.g., redis://localhost:6379/0)
        socket_timeout: Connect and read timeout in seconds
        max_retries: Retries per command on connection errors and timeouts
    """
    return Redis.from_url(
        url,
        decode_responses=True,
        protocol=3,
        socket_timeout=socket_timeout,
        socket_connect_timeout=socket_timeout,
        retry=Retry(ExponentialBackoff(), max_retries),
        health_check_interval=30,
    )


async def verify_redis(client: Redis) -> bool:
    """Ping Redis once and log the outcome. Never raises."""
    try:
        await client.ping()
    except Exception as e:
        logger.warning("Redis unreachable, response cache will miss until it recovers: {}", e)
        return False
    logger.info("Redis client connected")
    return True
