"""Tests for the Principal value object and verification metrics."""

from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry

from cqrs_ddd_verification import Principal, VerificationMetrics


class TestPrincipal:
    def test_with_data_returns_copy(self) -> None:
        principal = Principal(data={"id": 1})
        updated = principal.with_data({"phone": "+1555"}, email="a@example.com")

        assert updated.data == {"id": 1, "phone": "+1555", "email": "a@example.com"}
        assert principal.data == {"id": 1}

    def test_login_state(self) -> None:
        principal = Principal(data={"id": 1}).with_login_state(
            login_required=True, login_triggered_id="1"
        )

        assert principal.login_in_progress
        assert principal.login_triggered_id == "1"
        assert not principal.login_code_sent

        cleared = principal.without_login_state()
        assert not cleared.login_in_progress
        assert cleared.login_triggered_id is None

    def test_equality_and_hash(self) -> None:
        a = Principal(data={"id": 1, "roles": ["x"]})
        b = Principal(data={"id": 1, "roles": ["x"]})

        assert a == b
        assert hash(a) == hash(b)
        assert a != a.with_login_state(login_required=True)

    def test_get_default(self) -> None:
        assert Principal().get("missing", "fallback") == "fallback"


class TestVerificationMetrics:
    def test_records_success(self, metrics_registry: CollectorRegistry) -> None:
        with VerificationMetrics.operation("issue", step="sms_otp"):
            pass

        assert metrics_registry.get_sample_value(
            "verification_operations_total",
            {"step": "sms_otp", "operation": "issue", "result": "success"},
        ) == 1.0
        assert metrics_registry.get_sample_value(
            "verification_operation_duration_seconds_count",
            {"step": "sms_otp", "operation": "issue"},
        ) == 1.0

    def test_records_exception_class(self, metrics_registry: CollectorRegistry) -> None:
        with pytest.raises(KeyError), VerificationMetrics.operation("verify", step="totp"):
            raise KeyError("boom")

        assert metrics_registry.get_sample_value(
            "verification_operations_total",
            {"step": "totp", "operation": "verify", "result": "KeyError"},
        ) == 1.0

    def test_custom_result(self, metrics_registry: CollectorRegistry) -> None:
        with VerificationMetrics.operation("verify", step="totp") as outcome:
            outcome.result = "expired"

        assert metrics_registry.get_sample_value(
            "verification_operations_total",
            {"step": "totp", "operation": "verify", "result": "expired"},
        ) == 1.0
