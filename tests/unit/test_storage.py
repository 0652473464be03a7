"""Tests for OtpIssuanceStore: single use, expiry, lockout and rate limiting."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from cqrs_ddd_verification import (
    InMemoryCacheService,
    OtpIssuanceStore,
    StorageConfig,
)
from cqrs_ddd_verification.exceptions import (
    IdentityKeyMissingError,
    RateLimitExceededError,
    ResendCooldownActiveError,
)
from cqrs_ddd_verification.storage import OtpChallenge, hash_code

if TYPE_CHECKING:
    from prometheus_client import CollectorRegistry

    from tests.conftest import FakeClock


@pytest.mark.asyncio
class TestIssueAndVerify:
    async def test_correct_code_is_single_use(self, store: OtpIssuanceStore) -> None:
        await store.issue("42", "sms_otp", "123456", ttl=300)

        assert await store.verify("42", "sms_otp", "123456")
        assert not await store.verify("42", "sms_otp", "123456")

    async def test_code_is_stored_hashed(self, store: OtpIssuanceStore) -> None:
        await store.issue("42", "sms_otp", "123456", ttl=300)

        challenge = await store.get_challenge("42", "sms_otp")
        assert challenge is not None
        assert challenge.hash != "123456"
        assert challenge.hash == hash_code(challenge.salt, "123456")
        assert len(challenge.salt) == 16

    async def test_steps_are_isolated(self, store: OtpIssuanceStore) -> None:
        await store.issue("42", "sms_otp", "111111", ttl=300)
        await store.issue("42", "email_otp", "222222", ttl=300)

        assert not await store.verify("42", "sms_otp", "222222")
        assert await store.verify("42", "email_otp", "222222")
        assert await store.verify("42", "sms_otp", "111111")

    async def test_missing_challenge(self, store: OtpIssuanceStore) -> None:
        assert not await store.verify("42", "sms_otp", "123456")

    async def test_expired_code(self, store: OtpIssuanceStore, clock: FakeClock) -> None:
        await store.issue("42", "sms_otp", "123456", ttl=60)
        clock.advance(60)

        assert not await store.verify("42", "sms_otp", "123456")
        assert await store.get_challenge("42", "sms_otp") is None

    async def test_negative_ttl_is_already_expired(self, store: OtpIssuanceStore) -> None:
        await store.issue("42", "sms_otp", "123456", ttl=-1)
        assert not await store.verify("42", "sms_otp", "123456")

    async def test_reissue_replaces_code(self, store: OtpIssuanceStore) -> None:
        await store.issue("42", "sms_otp", "111111", ttl=300)
        await store.issue("42", "sms_otp", "222222", ttl=300)

        assert not await store.verify("42", "sms_otp", "111111")
        assert await store.verify("42", "sms_otp", "222222")

    async def test_invalidate(self, store: OtpIssuanceStore) -> None:
        await store.issue("42", "sms_otp", "123456", ttl=300)
        await store.invalidate("42", "sms_otp")
        assert not await store.verify("42", "sms_otp", "123456")

    async def test_empty_identity(self, store: OtpIssuanceStore) -> None:
        with pytest.raises(IdentityKeyMissingError):
            await store.issue("", "sms_otp", "123456", ttl=300)
        with pytest.raises(IdentityKeyMissingError):
            await store.verify("", "sms_otp", "123456")

    async def test_entry_ttl_outlives_expiry(
        self, cache: InMemoryCacheService, clock: FakeClock
    ) -> None:
        config = StorageConfig(resend_cooldown=0, cache_grace_seconds=60)
        store = OtpIssuanceStore(cache, config=config, clock=clock)
        challenge = OtpChallenge(
            hash="h", salt="s", expires_at=clock.now + 300, last_issued_at=clock.now
        )
        assert store._entry_ttl(challenge, clock.now) == 360

    async def test_records_metrics(
        self, store: OtpIssuanceStore, metrics_registry: CollectorRegistry
    ) -> None:
        await store.issue("42", "sms_otp", "123456", ttl=300)
        await store.verify("42", "sms_otp", "000000")

        labels = {"step": "sms_otp", "operation": "verify", "result": "rejected"}
        assert metrics_registry.get_sample_value(
            "verification_operations_total", labels
        ) == 1.0


@pytest.mark.asyncio
class TestLockout:
    async def test_wrong_codes_lock_the_challenge(
        self, store: OtpIssuanceStore
    ) -> None:
        await store.issue("42", "sms_otp", "123456", ttl=300)
        for _ in range(3):
            assert not await store.verify("42", "sms_otp", "000000")

        challenge = await store.get_challenge("42", "sms_otp")
        assert challenge is not None
        assert challenge.attempts == 3
        assert challenge.locked_until > 0

        # The right code is refused while locked.
        assert not await store.verify("42", "sms_otp", "123456")

    async def test_lockout_elapses(self, store: OtpIssuanceStore, clock: FakeClock) -> None:
        await store.issue("42", "sms_otp", "123456", ttl=3600)
        for _ in range(3):
            await store.verify("42", "sms_otp", "000000")

        clock.advance(600)
        assert await store.verify("42", "sms_otp", "123456")

    async def test_attempts_reset_after_lockout(
        self, store: OtpIssuanceStore, clock: FakeClock
    ) -> None:
        await store.issue("42", "sms_otp", "123456", ttl=3600)
        for _ in range(3):
            await store.verify("42", "sms_otp", "000000")
        clock.advance(600)

        assert not await store.verify("42", "sms_otp", "000000")
        challenge = await store.get_challenge("42", "sms_otp")
        assert challenge is not None
        assert challenge.attempts == 1
        assert challenge.locked_until == 0

    async def test_reissue_resets_attempts_and_lockout(
        self, store: OtpIssuanceStore
    ) -> None:
        await store.issue("42", "sms_otp", "111111", ttl=300)
        for _ in range(3):
            await store.verify("42", "sms_otp", "000000")
        locked = await store.get_challenge("42", "sms_otp")
        assert locked is not None
        assert locked.locked_until > 0

        await store.issue("42", "sms_otp", "222222", ttl=300)

        challenge = await store.get_challenge("42", "sms_otp")
        assert challenge is not None
        assert challenge.attempts == 0
        assert challenge.locked_until == 0
        assert await store.verify("42", "sms_otp", "222222")

    async def test_non_ascii_digits_do_not_match(self, store: OtpIssuanceStore) -> None:
        await store.issue("42", "sms_otp", "123456", ttl=300)

        assert not await store.verify("42", "sms_otp", "１２３４５６")
        assert await store.verify("42", "sms_otp", "123456")

    async def test_concurrent_wrong_codes_are_all_counted(
        self, cache: InMemoryCacheService, clock: FakeClock
    ) -> None:
        config = StorageConfig(max_attempts=100, resend_cooldown=0)
        store = OtpIssuanceStore(cache, config=config, clock=clock)
        await store.issue("42", "sms_otp", "123456", ttl=300)

        results = await asyncio.gather(
            *(store.verify("42", "sms_otp", "000000") for _ in range(20))
        )

        assert not any(results)
        challenge = await store.get_challenge("42", "sms_otp")
        assert challenge is not None
        assert challenge.attempts == 20

    async def test_concurrent_correct_code_succeeds_once(
        self, store: OtpIssuanceStore
    ) -> None:
        await store.issue("42", "sms_otp", "123456", ttl=300)

        results = await asyncio.gather(
            *(store.verify("42", "sms_otp", "123456") for _ in range(10))
        )
        assert results.count(True) == 1


@pytest.mark.asyncio
class TestRateLimits:
    async def test_resend_cooldown(
        self, cache: InMemoryCacheService, clock: FakeClock
    ) -> None:
        store = OtpIssuanceStore(
            cache, config=StorageConfig(resend_cooldown=60), clock=clock
        )
        await store.issue("42", "sms_otp", "111111", ttl=300)

        clock.advance(20)
        with pytest.raises(ResendCooldownActiveError) as exc_info:
            await store.issue("42", "sms_otp", "222222", ttl=300)
        assert exc_info.value.retry_after == 40

        clock.advance(40)
        await store.issue("42", "sms_otp", "333333", ttl=300)
        assert await store.verify("42", "sms_otp", "333333")

    async def test_cooldown_is_per_step(
        self, cache: InMemoryCacheService, clock: FakeClock
    ) -> None:
        store = OtpIssuanceStore(
            cache, config=StorageConfig(resend_cooldown=60), clock=clock
        )
        await store.issue("42", "sms_otp", "111111", ttl=300)
        await store.issue("42", "email_otp", "222222", ttl=300)

        assert await store.verify("42", "email_otp", "222222")

    async def test_burst_limit(self, cache: InMemoryCacheService, clock: FakeClock) -> None:
        config = StorageConfig(resend_cooldown=0, burst=2, period_seconds=300)
        store = OtpIssuanceStore(cache, config=config, clock=clock)

        await store.issue("42", "sms_otp", "111111", ttl=300)
        await store.issue("42", "email_otp", "222222", ttl=300)
        clock.advance(100)
        with pytest.raises(RateLimitExceededError) as exc_info:
            await store.issue("42", "sms_otp", "333333", ttl=300)
        assert exc_info.value.retry_after == 200

        # Other identities have their own window.
        await store.issue("43", "sms_otp", "444444", ttl=300)

    async def test_burst_window_resets(
        self, cache: InMemoryCacheService, clock: FakeClock
    ) -> None:
        config = StorageConfig(resend_cooldown=0, burst=1, period_seconds=300)
        store = OtpIssuanceStore(cache, config=config, clock=clock)

        await store.issue("42", "sms_otp", "111111", ttl=300)
        with pytest.raises(RateLimitExceededError):
            await store.issue("42", "sms_otp", "222222", ttl=300)

        clock.advance(300)
        await store.issue("42", "sms_otp", "333333", ttl=300)
        assert await store.verify("42", "sms_otp", "333333")


@pytest.mark.asyncio
class TestBackends:
    async def test_step_backend_override(
        self, cache: InMemoryCacheService, clock: FakeClock
    ) -> None:
        sms_cache = InMemoryCacheService()
        store = OtpIssuanceStore(
            cache,
            config=StorageConfig(resend_cooldown=0),
            backends={"sms_otp": sms_cache},
            clock=clock,
        )
        await store.issue("42", "sms_otp", "123456", ttl=300)

        assert "otp:sms_otp:42" in sms_cache
        assert "otp:sms_otp:42" not in cache
        assert await store.verify("42", "sms_otp", "123456")

    async def test_rate_window_lives_on_default_cache(
        self, cache: InMemoryCacheService, clock: FakeClock
    ) -> None:
        sms_cache = InMemoryCacheService()
        config = StorageConfig(resend_cooldown=0, burst=5, period_seconds=60)
        store = OtpIssuanceStore(
            cache, config=config, backends={"sms_otp": sms_cache}, clock=clock
        )
        await store.issue("42", "sms_otp", "123456", ttl=300)

        assert "otp:rate:42" in cache
        assert "otp:rate:42" not in sms_cache
