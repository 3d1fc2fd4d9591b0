"""
Redis client management module.

This module provides a Redis client manager with connection pooling
and error handling for async Redis operations.
"""

from typing import Optional

import redis.asyncio as redis
from loguru import logger
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError


class RedisClientManager:
    """
    Async Redis client manager with connection pooling.

    One manager is created at application startup and closed on shutdown.
    """

    def __init__(self, uri: str, max_connections: int = 50):
        self.uri = uri
        self.max_connections = max_connections
        self._connection_pool: Optional[ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._is_connected = False

    def _initialize(self) -> None:
        """Initialize the Redis connection pool."""
        self._connection_pool = redis.ConnectionPool.from_url(
            self.uri,
            max_connections=self.max_connections,
            decode_responses=True,
        )
        logger.debug("Redis connection pool created")

    def get_client(self) -> redis.Redis:
        """
        Get a Redis client instance from the connection pool.

        Returns:
            redis.Redis: Redis client instance
        """
        if self._client is None:
            if self._connection_pool is None:
                self._initialize()
            self._client = redis.Redis(connection_pool=self._connection_pool)

        return self._client

    async def ping(self) -> bool:
        """
        Test the Redis connection with a ping command.

        Returns:
            bool: True if successful, False otherwise
        """
        try:
            result = await self.get_client().ping()
            self._is_connected = bool(result)
            return self._is_connected
        except (RedisError, OSError) as e:
            logger.error(f"Redis ping failed: {str(e)}")
            self._is_connected = False
            return False

    @property
    def is_connected(self) -> bool:
        return self._is_connected

    async def close(self) -> None:
        """Close the Redis client and connection pool."""
        if self._client:
            await self._client.aclose()
            self._client = None

        if self._connection_pool:
            await self._connection_pool.disconnect()
            self._connection_pool = None

        self._is_connected = False
        logger.debug("Redis connections closed")
