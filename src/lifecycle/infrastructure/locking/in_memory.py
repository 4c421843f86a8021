"""In-process distributed lock for single-host deployments and tests."""

from __future__ import annotations

import time

import structlog

from lifecycle.domain.ports.services import DistributedLock


logger = structlog.get_logger(__name__)


class InMemoryDistributedLock(DistributedLock):
    """Lock table held in a dict of resource id to expiry deadline.

    All calls run on the event loop thread without awaiting in between,
    so check-and-set is atomic with respect to other coroutines. Share one
    instance between coordinators that must exclude each other.
    """

    def __init__(self) -> None:
        self._deadlines: dict[str, float] = {}

    def _expire(self, resource_id: str) -> None:
        deadline = self._deadlines.get(resource_id)
        if deadline is not None and deadline <= time.monotonic():
            del self._deadlines[resource_id]
            logger.warning("lock_expired", resource_id=resource_id)

    async def acquire(self, resource_id: str, ttl_seconds: int = 30) -> bool:
        self._expire(resource_id)
        if resource_id in self._deadlines:
            logger.debug("lock_not_acquired", resource_id=resource_id)
            return False
        self._deadlines[resource_id] = time.monotonic() + ttl_seconds
        logger.debug("lock_acquired", resource_id=resource_id, ttl=ttl_seconds)
        return True

    async def release(self, resource_id: str) -> bool:
        if self._deadlines.pop(resource_id, None) is None:
            return False
        logger.debug("lock_released", resource_id=resource_id)
        return True

    async def extend(self, resource_id: str, ttl_seconds: int = 30) -> bool:
        self._expire(resource_id)
        if resource_id not in self._deadlines:
            return False
        self._deadlines[resource_id] = time.monotonic() + ttl_seconds
        return True

    async def is_locked(self, resource_id: str) -> bool:
        self._expire(resource_id)
        return resource_id in self._deadlines
