"""
Redis connection holder for PlanTrust.

One connection pool per process, shared by the Redis rate-window store
and the ``acceptance_updated`` notifications published after every
aggregate change.  Redis is optional: callers only build a
:class:`RedisClient` when ``PT_REDIS_URL`` is set.
"""

from __future__ import annotations

import json
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import RedisError

ACCEPTANCE_UPDATED_CHANNEL = "acceptance_updated"

SOCKET_TIMEOUT_S = 2.0


class RedisClient:
    """Lazily connected ``redis.asyncio`` pool with publish and ping helpers."""

    def __init__(self, url: str) -> None:
        self.url = url
        self._redis: aioredis.Redis | None = None

    async def connect(self) -> None:
        if self._redis is None:
            self._redis = aioredis.from_url(
                self.url,
                decode_responses=True,
                socket_timeout=SOCKET_TIMEOUT_S,
                socket_connect_timeout=SOCKET_TIMEOUT_S,
            )

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    @property
    def redis(self) -> aioredis.Redis:
        """The raw connection, for the window store's sorted-set pipeline."""
        if self._redis is None:
            raise RuntimeError("RedisClient is not connected")
        return self._redis

    async def publish(self, channel: str, message: dict[str, Any]) -> int:
        """JSON-encode *message* onto *channel*; returns the receiver count."""
        receivers: int = await self.redis.publish(channel, json.dumps(message, default=str))
        return receivers

    async def health_check(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except (RedisError, OSError, RuntimeError):
            return False
