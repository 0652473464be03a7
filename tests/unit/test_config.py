"""Tests for VerificationSettings and the step config models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from cqrs_ddd_verification import (
    EmailOtpStep,
    SmsOtpStep,
    StorageConfig,
    TotpStep,
    VerificationSettings,
)
from cqrs_ddd_verification.steps import (
    StepKind,
    dasherize,
    normalize_step_name,
    normalize_steps,
)


@pytest.fixture(autouse=True)
def _no_dotenv(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)


class TestSteps:
    @pytest.mark.parametrize(
        "name", ["emailVerify", "email-verify", "EMAIL_VERIFY", "Email Verify", " email_verify "]
    )
    def test_normalize_step_name(self, name: str) -> None:
        assert normalize_step_name(name) == "email_verify"

    def test_normalize_steps_from_csv(self) -> None:
        assert normalize_steps("totp, sms-otp,,TOTP") == ["totp", "sms_otp"]
        assert normalize_steps(None) == []

    def test_dasherize(self) -> None:
        assert dasherize("sms_otp") == "sms-otp"

    def test_step_kind(self) -> None:
        assert not StepKind.EMAIL_VERIFY.is_otp
        assert StepKind.TOTP.is_otp
        assert StepKind("sms_otp") is StepKind.SMS_OTP


class TestDefaults:
    def test_settings_defaults(self) -> None:
        settings = VerificationSettings()

        assert settings.enabled
        assert settings.required_setup_steps == ["email_verify", "totp", "sms_otp"]
        assert settings.otp_length == 6
        assert settings.storage.max_attempts == 5
        assert settings.storage.lockout_seconds == 900
        assert settings.storage.resend_cooldown == 60
        assert settings.crypto.key.get_secret_value() == ""
        assert settings.routing.next_route == {"controller": "Users", "action": "verify"}

    def test_step_defaults(self) -> None:
        assert EmailOtpStep().ttl == 600
        assert SmsOtpStep().ttl == 300
        totp = TotpStep()
        assert (totp.digits, totp.period, totp.algorithm, totp.drift) == (6, 30, "sha1", 1)

    def test_step_configs_by_key(self) -> None:
        settings = VerificationSettings()

        assert list(settings.step_configs()) == ["email_verify", "email_otp", "sms_otp", "totp"]
        assert isinstance(settings.step_config("SMS-OTP"), SmsOtpStep)
        assert settings.step_config("carrier_pigeon") is None

    def test_models_are_frozen(self) -> None:
        config = StorageConfig()
        with pytest.raises(ValidationError):
            config.max_attempts = 1  # type: ignore[misc]

    def test_unknown_fields_are_rejected(self) -> None:
        with pytest.raises(ValidationError):
            StorageConfig(max_attempt=3)  # type: ignore[call-arg]

    @pytest.mark.parametrize(
        "kwargs", [{"max_attempts": 0}, {"burst": -1}, {"lock_timeout": 0}]
    )
    def test_invalid_storage_values(self, kwargs: dict[str, int]) -> None:
        with pytest.raises(ValidationError):
            StorageConfig(**kwargs)

    def test_step_backends_are_normalized(self) -> None:
        config = StorageConfig(step_backends={"SMS-OTP": "redis"})
        assert config.step_backends == {"sms_otp": "redis"}


class TestEnvironment:
    def test_required_steps_from_csv(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VERIFICATION_REQUIRED_SETUP_STEPS", "email-verify, smsOtp")
        assert VerificationSettings().required_setup_steps == ["email_verify", "sms_otp"]

    def test_nested_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("VERIFICATION_STORAGE__MAX_ATTEMPTS", "3")
        monkeypatch.setenv("VERIFICATION_TOTP__DIGITS", "8")
        monkeypatch.setenv("VERIFICATION_CRYPTO__KEY", "secret-key")
        monkeypatch.setenv("VERIFICATION_ENABLED", "false")

        settings = VerificationSettings()

        assert settings.storage.max_attempts == 3
        assert settings.totp.digits == 8
        assert settings.crypto.key.get_secret_value() == "secret-key"
        assert "secret-key" not in repr(settings)
        assert not settings.enabled

    def test_dotenv_file(self, tmp_path) -> None:
        (tmp_path / ".env").write_text("VERIFICATION_OTP_LENGTH=8\n")
        assert VerificationSettings().otp_length == 8
