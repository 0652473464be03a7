"""Test configuration and fixtures."""

from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry

from cqrs_ddd_verification import (
    InMemoryCacheService,
    OtpIssuanceStore,
    Principal,
    StorageConfig,
    VerificationMetrics,
)


class FakeClock:
    """Settable Unix clock shared by the store and TOTP checks."""

    def __init__(self, now: int = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests that require external services",
    )


@pytest.fixture(autouse=True)
def metrics_registry() -> CollectorRegistry:
    """Isolate Prometheus collectors per test."""
    registry = CollectorRegistry()
    VerificationMetrics.configure(registry)
    return registry


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache() -> InMemoryCacheService:
    return InMemoryCacheService()


@pytest.fixture
def storage_config() -> StorageConfig:
    return StorageConfig(max_attempts=3, lockout_seconds=600, resend_cooldown=0)


@pytest.fixture
def store(
    cache: InMemoryCacheService, storage_config: StorageConfig, clock: FakeClock
) -> OtpIssuanceStore:
    return OtpIssuanceStore(cache, config=storage_config, clock=clock)


@pytest.fixture
def principal() -> Principal:
    """A user with an email and phone but nothing verified yet."""
    return Principal(
        data={
            "id": 42,
            "email": "jane@example.com",
            "phone": "+38591234567",
        }
    )
