"""
Redis connection management
Shared client for the Redis rate limit ledger and health checks
"""

import redis.asyncio as redis
from typing import Optional
import logging

from .config import settings

logger = logging.getLogger(__name__)

class RedisConnection:
    """Lazily created Redis client"""

    def __init__(self):
        self.redis_client: Optional[redis.Redis] = None

    def get_client(self) -> redis.Redis:
        """Return the client, creating the connection pool on first use"""
        if self.redis_client is None:
            self.redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=settings.REDIS_DECODE_RESPONSES,
                max_connections=settings.REDIS_MAX_CONNECTIONS
            )
            logger.info("Redis client created")
        return self.redis_client

    async def disconnect(self):
        """Close Redis connection"""
        if self.redis_client:
            await self.redis_client.close()
            self.redis_client = None
            logger.info("Redis connection closed")

# Global connection instance
redis_connection = RedisConnection()

def get_redis() -> redis.Redis:
    return redis_connection.get_client()
