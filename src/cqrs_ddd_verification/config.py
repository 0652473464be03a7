"""Typed configuration for the verification engine.

Built once at startup from ``VERIFICATION_*`` environment variables (nested
fields use ``__``, e.g. ``VERIFICATION_STORAGE__MAX_ATTEMPTS=3``) or passed
in directly. Every section is a frozen model.
"""

from __future__ import annotations

from typing import Annotated, ClassVar

from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .steps import StepKind, normalize_step_name, normalize_steps

DEFAULT_SMS_TEMPLATE = "Your verification code is {code}. It expires in {ttl} minutes."

Route = dict[str, str]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


# ═══════════════════════════════════════════════════════════════
# INFRASTRUCTURE
# ═══════════════════════════════════════════════════════════════


class StorageConfig(_Frozen):
    """Throttling policy for one-time codes.

    Attributes:
        max_attempts: Wrong guesses before the challenge locks.
        lockout_seconds: Lock duration once ``max_attempts`` is reached.
        resend_cooldown: Minimum seconds between two issuances (0 disables).
        burst: Issuances allowed per identity per period (0 disables).
        period_seconds: Burst window length (0 disables).
        step_backends: Step key -> named cache backend.
        cache_grace_seconds: Extra cache TTL beyond the logical expiry.
        lock_timeout: Seconds to wait for a per-key lock.
        lock_ttl: Seconds before an orphaned lock expires.
    """

    max_attempts: int = Field(5, ge=1)
    lockout_seconds: int = Field(900, ge=0)
    resend_cooldown: int = Field(60, ge=0)
    burst: int = Field(0, ge=0)
    period_seconds: int = Field(0, ge=0)
    step_backends: dict[str, str] = Field(default_factory=dict)
    cache_grace_seconds: int = Field(60, ge=0)
    lock_timeout: float = Field(5.0, gt=0)
    lock_ttl: float = Field(10.0, gt=0)

    @field_validator("step_backends", mode="after")
    @classmethod
    def _normalize_step_backends(cls, value: dict[str, str]) -> dict[str, str]:
        return {normalize_step_name(k): v for k, v in value.items() if k.strip()}


class CryptoConfig(_Frozen):
    """Driver (``aes-gcm`` or ``secretbox``) and key for TOTP secrets at rest."""

    driver: str = "aes-gcm"
    key: SecretStr = SecretStr("")


def _route(action: str) -> Route:
    return {"controller": "Users", "action": action}


class RoutingConfig(_Frozen):
    """Abstract destinations handed to the route resolver."""

    next_route: Route = Field(default_factory=lambda: _route("verify"))
    pending_route: Route = Field(default_factory=lambda: _route("pending"))
    on_verified_route: Route = Field(default_factory=lambda: _route("index"))
    enroll_route: Route = Field(default_factory=lambda: _route("enroll"))
    enroll_phone_route: Route = Field(default_factory=lambda: _route("enroll-phone"))
    choose_verification_route: Route = Field(
        default_factory=lambda: _route("choose-verification")
    )


class ColumnsConfig(_Frozen):
    """External column names of the principal record."""

    email: str = "email"
    phone: str = "phone"
    totp_secret: str = "totp_secret"
    email_verified_at: str = "email_verified_at"
    phone_verified_at: str = "phone_verified_at"
    totp_verified_at: str = "totp_verified_at"
    phone_verified: str = "phone_verified"
    verification_preferences: str = "verification_preferences"


class SmsConfig(_Frozen):
    default_transport: str = "default"


# ═══════════════════════════════════════════════════════════════
# STEPS
# ═══════════════════════════════════════════════════════════════


class StepConfig(_Frozen):
    """Common options of every step.

    ``field_map`` maps a driver alias (``email``, ``verified_at`` ...) to an
    external column and overrides :class:`ColumnsConfig` for this step only.
    """

    kind: ClassVar[StepKind]

    enabled: bool = True
    label: str = ""
    field_map: dict[str, str] = Field(default_factory=dict)

    @property
    def key(self) -> str:
        return self.kind.value


class EmailVerifyStep(StepConfig):
    kind: ClassVar[StepKind] = StepKind.EMAIL_VERIFY


class OtpStepConfig(StepConfig):
    """Code-based step. ``length=None`` uses the global ``otp_length``."""

    length: int | None = Field(None, ge=1)
    ttl: int = 300


class EmailOtpStep(OtpStepConfig):
    kind: ClassVar[StepKind] = StepKind.EMAIL_OTP

    ttl: int = 600


class SmsOtpStep(OtpStepConfig):
    kind: ClassVar[StepKind] = StepKind.SMS_OTP

    message_template: str = DEFAULT_SMS_TEMPLATE
    sender_id: str | None = None
    normalize_e164: bool = False
    default_country_code: str = ""


class TotpStep(StepConfig):
    kind: ClassVar[StepKind] = StepKind.TOTP

    digits: int = Field(6, ge=1, le=10)
    period: int = Field(30, ge=1)
    algorithm: str = "sha1"
    drift: int = Field(1, ge=0)
    issuer: str = ""


AnyStepConfig = EmailVerifyStep | EmailOtpStep | SmsOtpStep | TotpStep


# ═══════════════════════════════════════════════════════════════
# SETTINGS
# ═══════════════════════════════════════════════════════════════


class VerificationSettings(BaseSettings):
    """Verification settings loaded from VERIFICATION_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="VERIFICATION_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    enabled: bool = True
    required_setup_steps: Annotated[list[str], NoDecode] = Field(
        default_factory=lambda: ["email_verify", "totp", "sms_otp"]
    )
    otp_length: int = Field(6, ge=1)
    identity_field: str = "id"

    storage: StorageConfig = Field(default_factory=StorageConfig)
    crypto: CryptoConfig = Field(default_factory=CryptoConfig)
    routing: RoutingConfig = Field(default_factory=RoutingConfig)
    columns: ColumnsConfig = Field(default_factory=ColumnsConfig)
    sms: SmsConfig = Field(default_factory=SmsConfig)

    email_verify: EmailVerifyStep = Field(default_factory=EmailVerifyStep)
    email_otp: EmailOtpStep = Field(default_factory=EmailOtpStep)
    sms_otp: SmsOtpStep = Field(default_factory=SmsOtpStep)
    totp: TotpStep = Field(default_factory=TotpStep)

    @field_validator("required_setup_steps", mode="before")
    @classmethod
    def _parse_required_steps(cls, value: object) -> object:
        if value is None or isinstance(value, str):
            return normalize_steps(value)
        if isinstance(value, (list, tuple)):
            return normalize_steps(str(v) for v in value)
        return value

    def step_configs(self) -> dict[str, AnyStepConfig]:
        """Built-in step configs keyed by step key."""
        return {
            cfg.key: cfg
            for cfg in (self.email_verify, self.email_otp, self.sms_otp, self.totp)
        }

    def step_config(self, step: str) -> AnyStepConfig | None:
        return self.step_configs().get(normalize_step_name(step))


__all__: list[str] = [
    "VerificationSettings",
    "StorageConfig",
    "CryptoConfig",
    "RoutingConfig",
    "ColumnsConfig",
    "SmsConfig",
    "StepConfig",
    "OtpStepConfig",
    "EmailVerifyStep",
    "EmailOtpStep",
    "SmsOtpStep",
    "TotpStep",
    "AnyStepConfig",
    "DEFAULT_SMS_TEMPLATE",
]
