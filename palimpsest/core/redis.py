"""
Redis pub/sub for realtime notifications OR silent no-op.
Controlled by FF_USE_REDIS flag.
"""

import json
import logging
from typing import Any

logger = logging.getLogger(__name__)


class RedisPublisher:
    def __init__(self, redis_url: str, enabled: bool = True):
        self.redis_url = redis_url
        self.enabled = enabled
        self._client = None

    async def _get_redis(self):
        if self._client is None:
            import redis.asyncio as aioredis

            self._client = aioredis.from_url(
                self.redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
            )
        return self._client

    async def publish(self, channel: str, event_type: str, data: Any = None) -> None:
        """
        Publish a realtime event. If Redis is disabled, this is a no-op.
        """
        if not self.enabled:
            return

        try:
            client = await self._get_redis()
            payload = json.dumps({"type": event_type, "data": data}, default=str)
            await client.publish(channel, payload)
        except Exception as e:
            # Never crash on notification failure
            logger.warning("Redis publish failed (channel=%s): %s", channel, e)

    async def notify_user(self, user_id: str, event_type: str, data: Any = None) -> None:
        """Publish to user-scoped channel."""
        await self.publish(f"user:{user_id}", event_type, data)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection closed")
