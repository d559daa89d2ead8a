"""Redis connection management shared by the message bus and event stream."""

import logging

from redis.asyncio import ConnectionPool, Redis

logger = logging.getLogger(__name__)


async def connect_redis(url: str, max_connections: int = 20) -> Redis:
    """Create a Redis client and verify the connection.

    Raises:
        redis.exceptions.RedisError: If the server is unreachable.
    """
    pool = ConnectionPool.from_url(
        url,
        decode_responses=True,
        max_connections=max_connections,
        retry_on_timeout=True,
    )
    client = Redis(connection_pool=pool)
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        await pool.disconnect()
        raise
    logger.info("redis_connected", extra={"redis.url": url})
    return client


async def close_redis(client: Redis) -> None:
    await client.aclose()
    await client.connection_pool.disconnect()
