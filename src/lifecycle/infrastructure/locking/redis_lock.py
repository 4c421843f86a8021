"""Redis-backed distributed lock for per-target mutual exclusion."""

from __future__ import annotations

import uuid

import redis.asyncio
import structlog

from lifecycle.config import RedisSettings
from lifecycle.domain.ports.services import DistributedLock


logger = structlog.get_logger(__name__)

# Atomic check-and-delete: only the holder's token may release the key.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""

_EXTEND_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("expire", KEYS[1], ARGV[2])
else
    return 0
end
"""


class RedisDistributedLock(DistributedLock):
    """Redis implementation of distributed locking using SET NX EX.

    Lets several coordinator processes on the host share one view of which
    targets are busy. Each acquisition stores a random token; release and
    extend only touch the key while it still holds that token, so an
    expired-and-reacquired lock is never freed by its previous owner.
    """

    def __init__(self, client: redis.asyncio.Redis, namespace: str = "lifecycle") -> None:
        self._client = client
        self._namespace = namespace
        self._tokens: dict[str, str] = {}

    def _key(self, resource_id: str) -> str:
        return f"{self._namespace}:lock:{resource_id}"

    async def acquire(self, resource_id: str, ttl_seconds: int = 30) -> bool:
        token = uuid.uuid4().hex
        acquired = await self._client.set(
            self._key(resource_id), token, nx=True, ex=ttl_seconds
        )
        if acquired:
            self._tokens[resource_id] = token
            logger.debug("lock_acquired", resource_id=resource_id, ttl=ttl_seconds)
            return True

        logger.debug("lock_not_acquired", resource_id=resource_id)
        return False

    async def release(self, resource_id: str) -> bool:
        token = self._tokens.pop(resource_id, None)
        if token is None:
            return False

        result = await self._client.eval(_RELEASE_SCRIPT, 1, self._key(resource_id), token)
        if not result:
            logger.warning("lock_lost_before_release", resource_id=resource_id)
            return False
        logger.debug("lock_released", resource_id=resource_id)
        return True

    async def extend(self, resource_id: str, ttl_seconds: int = 30) -> bool:
        token = self._tokens.get(resource_id)
        if token is None:
            return False

        result = await self._client.eval(
            _EXTEND_SCRIPT, 1, self._key(resource_id), token, str(ttl_seconds)
        )
        return bool(result)

    async def is_locked(self, resource_id: str) -> bool:
        return bool(await self._client.exists(self._key(resource_id)))


def create_redis_client(settings: RedisSettings) -> redis.asyncio.Redis:
    """Factory function to create a Redis client."""
    return redis.asyncio.Redis.from_url(
        settings.url,
        decode_responses=False,
        socket_timeout=5.0,
        socket_connect_timeout=5.0,
        retry_on_timeout=True,
    )
