"""In-memory cache and lock adapters for testing and single-process use."""

from __future__ import annotations

import asyncio
import copy
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from ..exceptions import LockAcquisitionError
from ..ports import ICacheService, ILockStrategy

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger("cqrs_ddd.verification.memory")


class InMemoryCacheService(ICacheService):
    """
    Dict-backed ICacheService with lazy TTL expiry.

    Expired entries are dropped on the next read; there is no background sweep.
    Values are deep-copied in and out so callers cannot mutate stored state.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._data: dict[str, tuple[Any, float | None]] = {}

    async def get(self, key: str, cls: type[Any] | None = None) -> Any | None:
        entry = self._data.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None

        if cls is not None and hasattr(cls, "model_validate"):
            return cls.model_validate(value)
        return copy.deepcopy(value)

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        if hasattr(value, "model_dump"):
            value = value.model_dump(mode="json")
        expires_at = self._clock() + ttl if ttl else None
        self._data[key] = (copy.deepcopy(value), expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


@dataclass
class _LockState:
    """State for a single key lock."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    token: str | None = None
    waiters: int = 0


class InMemoryLockStrategy(ILockStrategy):
    """
    Per-key asyncio locks.

    Entries are created on first use and removed once no task holds or
    waits for them. The ``ttl`` argument is accepted for interface
    compatibility; a single event loop cannot leave a lock orphaned.
    """

    def __init__(self) -> None:
        self._locks: dict[str, _LockState] = {}

    async def acquire(
        self,
        key: str,
        *,
        timeout: float = 5.0,
        ttl: float = 10.0,  # noqa: ARG002
    ) -> str:
        state = self._locks.setdefault(key, _LockState())
        state.waiters += 1
        try:
            await asyncio.wait_for(state.lock.acquire(), timeout=timeout)
        except asyncio.TimeoutError as err:
            logger.warning("Lock acquisition timed out after %.1fs: %s", timeout, key)
            raise LockAcquisitionError(key, timeout) from err
        finally:
            state.waiters -= 1
            self._cleanup(key, state)

        token = str(uuid4())
        state.token = token
        logger.debug("Lock acquired: %s", key)
        return token

    async def release(self, key: str, token: str) -> None:
        state = self._locks.get(key)
        if state is None or state.token != token:
            logger.warning("Attempted to release invalid or expired lock: %s", key)
            return

        state.token = None
        state.lock.release()
        self._cleanup(key, state)
        logger.debug("Lock released: %s", key)

    def _cleanup(self, key: str, state: _LockState) -> None:
        if state.waiters == 0 and not state.lock.locked():
            self._locks.pop(key, None)

    @property
    def active_keys(self) -> list[str]:
        return list(self._locks)


__all__: list[str] = ["InMemoryCacheService", "InMemoryLockStrategy"]
