"""Redis implementations of the cache and lock ports.

Requires the ``redis`` extra: ``pip install cqrs-ddd-verification[redis]``.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from redis.exceptions import LockError, RedisError

from ..exceptions import LockAcquisitionError, StorageError
from ..ports import ICacheService, ILockStrategy

if TYPE_CHECKING:
    from redis.asyncio import Redis
    from redis.asyncio.lock import Lock

logger = logging.getLogger("cqrs_ddd.verification.redis")


class RedisCacheService(ICacheService):
    """
    Redis implementation of ICacheService.
    Uses generic JSON serialization and ``SETEX`` for expiring entries.

    A failed read is logged and reported as a miss, which the issuance store
    treats as "no challenge" (verification fails closed). A failed write or
    delete raises :class:`StorageError`: silently dropping an attempt counter
    or a consumed challenge would weaken lockout and single use.
    """

    def __init__(self, redis_client: Redis[bytes]) -> None:
        self._redis = redis_client

    async def get(self, key: str, cls: type[Any] | None = None) -> Any | None:
        try:
            val = await self._redis.get(key)
            if not val:
                return None

            if cls and hasattr(cls, "model_validate_json"):
                return cls.model_validate_json(val)
            return json.loads(val)
        except (RedisError, ValueError) as e:
            logger.warning("Redis get failed for key %s: %s", key, e)
            return None

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        if hasattr(value, "model_dump_json"):
            val = value.model_dump_json()
        else:
            val = json.dumps(value, default=str)

        try:
            if ttl:
                await self._redis.setex(key, ttl, val)
            else:
                await self._redis.set(key, val)
        except RedisError as e:
            raise StorageError(f"Redis set failed for key {key}") from e

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as e:
            raise StorageError(f"Redis delete failed for key {key}") from e


class RedisLockStrategy(ILockStrategy):
    """
    Per-key lock backed by redis-py's token-checked ``Lock``.

    Lock names are ``lock:{key}``. The lock auto-expires after ``ttl`` seconds
    so a crashed worker cannot block an identity forever.

    Example:
        ```python
        from redis.asyncio import Redis

        lock = RedisLockStrategy(Redis.from_url("redis://localhost:6379/0"))
        ```
    """

    def __init__(self, redis_client: Redis[bytes], *, prefix: str = "lock:") -> None:
        self._redis = redis_client
        self._prefix = prefix
        self._held: dict[tuple[str, str], Lock] = {}

    async def acquire(
        self,
        key: str,
        *,
        timeout: float = 5.0,
        ttl: float = 10.0,
    ) -> str:
        token = uuid4().hex
        lock = self._redis.lock(
            f"{self._prefix}{key}", timeout=ttl, blocking_timeout=timeout
        )
        try:
            acquired = await lock.acquire(token=token)
        except RedisError as e:
            raise LockAcquisitionError(key, timeout) from e

        if not acquired:
            logger.warning("Lock acquisition timed out after %.1fs: %s", timeout, key)
            raise LockAcquisitionError(key, timeout)

        self._held[(key, token)] = lock
        logger.debug("Lock acquired: %s", key)
        return token

    async def release(self, key: str, token: str) -> None:
        lock = self._held.pop((key, token), None)
        if lock is None:
            logger.warning("Attempted to release unknown lock: %s", key)
            return

        try:
            await lock.release()
        except LockError as e:
            # Expired (ttl elapsed) or taken over by another holder.
            logger.warning("Lock release failed for %s: %s", key, e)
            return
        logger.debug("Lock released: %s", key)


__all__: list[str] = ["RedisCacheService", "RedisLockStrategy"]
