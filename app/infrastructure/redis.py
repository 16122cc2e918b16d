"""Redis client wrapper for token revocation and realtime pub/sub."""

import logging

import redis.asyncio as aioredis
from redis.asyncio.client import PubSub

from app.settings import settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Redis client wrapper for async operations."""

    def __init__(self) -> None:
        """Initialize Redis client."""
        self._client: aioredis.Redis | None = None
        self._enabled: bool = settings.redis_enabled

    @property
    def is_available(self) -> bool:
        """Whether a live Redis connection is in use."""
        return self._enabled and self._client is not None

    async def connect(self) -> None:
        """Connect to Redis."""
        if not self._enabled:
            logger.info("Redis disabled - skipping connection")
            return
        if self._client is None:
            try:
                self._client = aioredis.from_url(
                    settings.redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )
                await self._client.ping()
                logger.info("Redis connected successfully")
            except Exception as e:
                logger.warning(f"Redis connection failed: {e}. Continuing without Redis.")
                self._client = None
                self._enabled = False

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def set(
        self, key: str, value: str, ttl: int | None = None
    ) -> bool:
        """Set value in Redis.

        Args:
            key: Redis key
            value: Value to set
            ttl: Optional time-to-live in seconds

        Returns:
            True if successful
        """
        if not self.is_available:
            return True  # Pretend success when disabled
        if ttl:
            return await self._client.setex(key, ttl, value)
        return await self._client.set(key, value)

    async def exists(self, key: str) -> bool:
        """Check if key exists in Redis.

        Args:
            key: Redis key

        Returns:
            True if key exists
        """
        if not self.is_available:
            return False
        return await self._client.exists(key) > 0

    async def publish(self, channel: str, data: str) -> int:
        """Publish a message on a pub/sub channel.

        Returns:
            Number of subscribers that received the message
        """
        if not self.is_available:
            return 0
        return await self._client.publish(channel, data)

    def pubsub(self) -> PubSub:
        """Create a pub/sub connection.

        Raises:
            RuntimeError: If Redis is not connected
        """
        if not self.is_available:
            raise RuntimeError("Redis is not connected")
        return self._client.pubsub(ignore_subscribe_messages=True)


# Global Redis client instance
redis_client = RedisClient()
