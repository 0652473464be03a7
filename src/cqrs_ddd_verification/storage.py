"""OtpIssuanceStore - one-time code challenges with throttling and lockout.

Challenges live under ``otp:{step}:{identity}``, burst windows under
``otp:rate:{identity}``. Only a salted SHA-256 digest of each code is stored.
Every read-modify-write runs inside a per-key lock so concurrent wrong
guesses cannot under-count attempts.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict

from .adapters.memory import InMemoryLockStrategy
from .config import StorageConfig
from .exceptions import (
    IdentityKeyMissingError,
    RateLimitExceededError,
    ResendCooldownActiveError,
)
from .observability import VerificationMetrics

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Mapping

    from .ports import ICacheService, ILockStrategy

logger = logging.getLogger("cqrs_ddd.verification.storage")

SALT_BYTES = 8


class OtpChallenge(BaseModel):
    """Stored state of one issued code for an (identity, step) pair.

    All timestamps are integer Unix seconds; ``locked_until == 0`` means
    not locked.
    """

    model_config = ConfigDict(frozen=True)

    hash: str
    salt: str
    expires_at: int
    attempts: int = 0
    locked_until: int = 0
    last_issued_at: int = 0

    def is_locked(self, now: int) -> bool:
        return now < self.locked_until

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at


class RateWindow(BaseModel):
    """Issuance counter for one identity within the burst period."""

    model_config = ConfigDict(frozen=True)

    window_start: int = 0
    count: int = 0


def hash_code(salt: str, code: str) -> str:
    return hashlib.sha256(f"{salt}{code}".encode()).hexdigest()


def _unix_now() -> int:
    return int(time.time())


class OtpIssuanceStore:
    """Issue and verify one-time codes against an injected cache.

    Args:
        cache: Default backend for challenges and rate windows.
        lock: Per-key lock; defaults to a process-local
            :class:`InMemoryLockStrategy`.
        config: Attempt, lockout, cooldown and burst policy.
        backends: Optional per-step cache overrides keyed by step key.
        clock: Returns the current Unix time in whole seconds.
    """

    def __init__(
        self,
        cache: ICacheService,
        *,
        lock: ILockStrategy | None = None,
        config: StorageConfig | None = None,
        backends: Mapping[str, ICacheService] | None = None,
        clock: Callable[[], int] = _unix_now,
    ) -> None:
        self._cache = cache
        self._lock = lock or InMemoryLockStrategy()
        self._config = config or StorageConfig()
        self._backends = dict(backends or {})
        self._clock = clock

    @property
    def config(self) -> StorageConfig:
        return self._config

    @staticmethod
    def challenge_key(identity_key: str, step: str) -> str:
        return f"otp:{step}:{identity_key}"

    @staticmethod
    def rate_key(identity_key: str) -> str:
        return f"otp:rate:{identity_key}"

    def backend_for(self, step: str) -> ICacheService:
        return self._backends.get(step, self._cache)

    @asynccontextmanager
    async def _locked(self, key: str) -> AsyncIterator[None]:
        token = await self._lock.acquire(
            key, timeout=self._config.lock_timeout, ttl=self._config.lock_ttl
        )
        try:
            yield
        finally:
            await self._lock.release(key, token)

    def _entry_ttl(self, challenge: OtpChallenge, now: int) -> int:
        """Cache TTL that outlives expiry, lockout and the resend cooldown."""
        remaining = max(
            challenge.expires_at - now,
            challenge.locked_until - now,
            self._config.resend_cooldown,
        )
        return max(1, remaining + self._config.cache_grace_seconds)

    async def issue(self, identity_key: str, step: str, code: str, ttl: int) -> None:
        """Store a new challenge for ``code``, replacing any previous one.

        Raises:
            IdentityKeyMissingError: ``identity_key`` is empty.
            RateLimitExceededError: Burst limit reached for this identity.
            ResendCooldownActiveError: Previous code issued too recently.
        """
        if not identity_key:
            raise IdentityKeyMissingError("Cannot issue an OTP without an identity key.")

        with VerificationMetrics.operation("issue", step=step):
            if self._config.burst > 0 and self._config.period_seconds > 0:
                async with self._locked(self.rate_key(identity_key)):
                    await self._consume_rate(identity_key)

            key = self.challenge_key(identity_key, step)
            cache = self.backend_for(step)
            async with self._locked(key):
                now = self._clock()
                existing = await cache.get(key, OtpChallenge)
                if existing is not None:
                    cooldown = self._config.resend_cooldown
                    elapsed = now - existing.last_issued_at
                    if cooldown > 0 and elapsed < cooldown:
                        raise ResendCooldownActiveError(retry_after=cooldown - elapsed)

                salt = secrets.token_hex(SALT_BYTES)
                challenge = OtpChallenge(
                    hash=hash_code(salt, code),
                    salt=salt,
                    expires_at=now + ttl,
                    attempts=0,
                    locked_until=0,
                    last_issued_at=now,
                )
                await cache.set(key, challenge, ttl=self._entry_ttl(challenge, now))
                logger.debug("Issued OTP challenge for step %s", step)

    async def _consume_rate(self, identity_key: str) -> None:
        key = self.rate_key(identity_key)
        period = self._config.period_seconds
        now = self._clock()

        window = await self._cache.get(key, RateWindow) or RateWindow()
        if window.window_start == 0 or window.window_start + period <= now:
            window = RateWindow(window_start=now, count=0)

        remaining = window.window_start + period - now
        if window.count >= self._config.burst:
            logger.debug("OTP burst limit reached (%d)", window.count)
            raise RateLimitExceededError(retry_after=remaining)

        window = window.model_copy(update={"count": window.count + 1})
        await self._cache.set(
            key, window, ttl=max(1, remaining + self._config.cache_grace_seconds)
        )

    async def verify(self, identity_key: str, step: str, code: str) -> bool:
        """Check ``code`` against the stored challenge.

        Returns False for a missing, locked, expired or wrong code; a wrong
        code counts an attempt and may start a lockout. A correct code
        consumes the challenge.

        Raises:
            IdentityKeyMissingError: ``identity_key`` is empty.
        """
        if not identity_key:
            raise IdentityKeyMissingError("Cannot verify an OTP without an identity key.")

        key = self.challenge_key(identity_key, step)
        cache = self.backend_for(step)
        with VerificationMetrics.operation("verify", step=step) as outcome:
            async with self._locked(key):
                now = self._clock()
                challenge = await cache.get(key, OtpChallenge)
                if challenge is None:
                    outcome.result = "missing"
                    return False

                if challenge.is_locked(now):
                    outcome.result = "locked"
                    return False

                if challenge.locked_until:
                    challenge = challenge.model_copy(
                        update={"attempts": 0, "locked_until": 0}
                    )

                if challenge.is_expired(now):
                    await cache.delete(key)
                    outcome.result = "expired"
                    return False

                if secrets.compare_digest(
                    hash_code(challenge.salt, code), challenge.hash
                ):
                    await cache.delete(key)
                    return True

                attempts = challenge.attempts + 1
                locked_until = 0
                if attempts >= self._config.max_attempts:
                    locked_until = now + self._config.lockout_seconds
                    logger.info(
                        "OTP challenge for step %s locked for %ds",
                        step,
                        self._config.lockout_seconds,
                    )
                challenge = challenge.model_copy(
                    update={"attempts": attempts, "locked_until": locked_until}
                )
                await cache.set(key, challenge, ttl=self._entry_ttl(challenge, now))
                outcome.result = "rejected"
                return False

    async def invalidate(self, identity_key: str, step: str) -> None:
        """Delete the challenge for ``(identity_key, step)`` if any."""
        key = self.challenge_key(identity_key, step)
        with VerificationMetrics.operation("invalidate", step=step):
            async with self._locked(key):
                await self.backend_for(step).delete(key)

    async def get_challenge(self, identity_key: str, step: str) -> OtpChallenge | None:
        """Read the current challenge without modifying it."""
        key = self.challenge_key(identity_key, step)
        return await self.backend_for(step).get(key, OtpChallenge)


__all__: list[str] = [
    "OtpChallenge",
    "RateWindow",
    "OtpIssuanceStore",
    "hash_code",
]
